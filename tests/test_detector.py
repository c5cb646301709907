"""
Tests for keypoint detection and filtering.
"""

import cv2
import numpy as np
import pytest

from imgdiff.models import ROI, Keypoint
from imgdiff.services.detector import KeypointDetector, KeypointsResult

from conftest import FakeFeatureDetector, solid_rgba


def make_raw(responses):
    """Keypoints with the given responses; descriptor row i is filled with i."""
    keypoints = [
        cv2.KeyPoint(float(10 * i), float(5 * i), 8.0, 0.0, float(r), 1)
        for i, r in enumerate(responses)
    ]
    descriptors = np.repeat(np.arange(len(responses), dtype=np.float32)[:, None], 128, axis=1)
    return keypoints, descriptors


class TestKeypointFiltering:
    """Filtering, ordering and re-indexing with a deterministic detector."""

    def test_filter_sort_and_reindex(self):
        fake = FakeFeatureDetector(make_raw([0.5, 0.005, 0.9, 0.2]))
        detector = KeypointDetector(feature_detector=fake, min_response=0.01, max_keypoints=100)

        result = detector.detect(solid_rgba(64, 64))

        assert result.count == 3
        assert [kp.response for kp in result.keypoints] == pytest.approx([0.9, 0.5, 0.2])
        assert [kp.id for kp in result.keypoints] == [0, 1, 2]

    def test_descriptor_rows_follow_keypoints(self):
        fake = FakeFeatureDetector(make_raw([0.5, 0.005, 0.9, 0.2]))
        detector = KeypointDetector(feature_detector=fake, min_response=0.01, max_keypoints=100)

        result = detector.detect(solid_rgba(64, 64))

        # Original indices after sorting are 2, 0, 3
        assert result.descriptors.shape == (3, 128)
        assert result.descriptors.dtype == np.float32
        assert list(result.descriptors[:, 0]) == [2.0, 0.0, 3.0]
        assert result.keypoints[0].x == 20.0, "Strongest keypoint came from raw index 2"

    def test_max_keypoints_truncates(self):
        fake = FakeFeatureDetector(make_raw([0.1, 0.4, 0.3, 0.2]))
        detector = KeypointDetector(feature_detector=fake, min_response=0.0, max_keypoints=2)

        result = detector.detect(solid_rgba(64, 64))

        assert result.count == 2
        assert [kp.response for kp in result.keypoints] == pytest.approx([0.4, 0.3])
        assert list(result.descriptors[:, 0]) == [1.0, 2.0]

    def test_zero_max_means_no_limit(self):
        fake = FakeFeatureDetector(make_raw([0.1] * 150))
        detector = KeypointDetector(feature_detector=fake, min_response=0.0, max_keypoints=0)

        assert detector.detect(solid_rgba(64, 64)).count == 150

    def test_sort_is_stable_for_equal_responses(self):
        fake = FakeFeatureDetector(make_raw([0.3, 0.3, 0.3]))
        detector = KeypointDetector(feature_detector=fake, min_response=0.0)

        result = detector.detect(solid_rgba(64, 64))

        assert [kp.x for kp in result.keypoints] == [0.0, 10.0, 20.0]

    def test_all_filtered_gives_empty_result(self):
        fake = FakeFeatureDetector(make_raw([0.001, 0.002]))
        detector = KeypointDetector(feature_detector=fake, min_response=0.01)

        result = detector.detect(solid_rgba(64, 64))

        assert result.count == 0
        assert result.descriptors.shape[0] == 0

    def test_no_detections(self):
        fake = FakeFeatureDetector(((), None))
        detector = KeypointDetector(feature_detector=fake)

        result = detector.detect(solid_rgba(64, 64))

        assert result.count == 0
        assert result.descriptors.shape == (0, 128)

    def test_roi_produces_mask(self):
        fake = FakeFeatureDetector(((), None))
        detector = KeypointDetector(feature_detector=fake)

        detector.detect(solid_rgba(100, 100), roi=ROI.default())

        _, mask = fake.calls[0]
        assert mask is not None
        assert mask.shape == (100, 100)
        assert mask[50, 50] == 255
        assert mask[5, 5] == 0

    def test_invalid_roi_is_ignored(self):
        fake = FakeFeatureDetector(((), None))
        detector = KeypointDetector(feature_detector=fake)

        detector.detect(solid_rgba(100, 100), roi=ROI(left=0.7, top=0.1, right=0.2, bottom=0.9))

        _, mask = fake.calls[0]
        assert mask is None


class TestSiftDetection:
    """Detection with the real SIFT backend."""

    def test_uniform_image_has_no_keypoints(self):
        result = KeypointDetector().detect(solid_rgba(200, 200, rgb=(128, 128, 128)))
        assert result.count == 0
        assert result.descriptors.shape[0] == 0

    def test_textured_image(self, textured_image):
        result = KeypointDetector(min_response=0.01, max_keypoints=100).detect(textured_image)

        assert 0 < result.count <= 100
        assert result.descriptors.shape == (result.count, 128)
        assert [kp.id for kp in result.keypoints] == list(range(result.count))

        responses = [kp.response for kp in result.keypoints]
        assert all(r >= 0.01 for r in responses), "Weak keypoints should be filtered"
        assert responses == sorted(responses, reverse=True)

    def test_roi_limits_detection(self, textured_image):
        roi = ROI(left=0.0, top=0.0, right=0.5, bottom=0.5)
        result = KeypointDetector(max_keypoints=0).detect(textured_image, roi=roi)

        # SIFT keypoints can sit slightly outside the mask edge
        for kp in result.keypoints:
            assert kp.x <= 205 and kp.y <= 205, f"Keypoint outside ROI: ({kp.x}, {kp.y})"


class TestKeypointModels:
    """Tests for keypoint value models."""

    def test_manual_keypoint(self):
        kp = Keypoint.manual(3, 12.5, 40.0)
        assert kp.is_manual and kp.is_selected
        assert kp.size == 10.0
        assert kp.response == 1.0
        assert (kp.x, kp.y) == (12.5, 40.0)

    def test_distance_to(self):
        kp = Keypoint(id=0, x=0.0, y=0.0)
        assert kp.distance_to(3.0, 4.0) == pytest.approx(5.0)

    def test_empty_keypoints_result(self):
        result = KeypointsResult()
        assert result.count == 0
        assert result.descriptors.shape == (0, 128)
