"""
Tests for the ImageDiffer facade and its background execution.
"""

from concurrent.futures import Future

import cv2
import numpy as np
import pytest

from imgdiff import (
    AlignmentErrorCode,
    AlignmentState,
    DiffMode,
    DiffResult,
    HandleType,
    ImageDiffer,
    Keypoint,
    ROI,
)
from imgdiff.services.align import Point2D

from conftest import solid_rgba, textured_rgba, translate


@pytest.fixture
def differ():
    with ImageDiffer(max_workers=2) as instance:
        yield instance


class TestSynchronousSurface:
    """Synchronous facade methods."""

    def test_opencv_version(self, differ):
        assert differ.opencv_version() == cv2.__version__

    def test_rgb_and_gray_inputs_are_promoted(self, differ):
        rgb = np.full((30, 40, 3), 200, dtype=np.uint8)
        gray = np.full((30, 40), 200, dtype=np.uint8)

        result = differ.calculate_diff_direct(rgb, gray, DiffMode.PIXEL_DIFF)

        assert result.source_image.shape == (30, 40, 4)
        assert result.diff_pixel_count == 0

    def test_non_uint8_image_is_rejected(self, differ):
        with pytest.raises(ValueError):
            differ.calculate_diff_direct(np.zeros((10, 10, 4), dtype=np.float32), solid_rgba(10, 10))

    def test_align_then_diff(self, differ):
        source = textured_rgba()
        target = translate(source, 6, 4)

        alignment = differ.align_auto(source, target)
        assert alignment.is_successful, alignment.error_message

        aligned_diff = differ.calculate_diff(alignment, DiffMode.PIXEL_DIFF)
        raw_diff = differ.calculate_diff_direct(source, target, DiffMode.PIXEL_DIFF)

        # Compare away from the borders uncovered by the shift
        inner = (slice(20, 380), slice(20, 380))
        aligned_count = np.count_nonzero(aligned_diff.diff_mask[inner])
        raw_count = np.count_nonzero(raw_diff.diff_mask[inner])
        assert aligned_count < raw_count, f"Aligned: {aligned_count}, raw: {raw_count}"

    def test_failed_alignment_can_still_be_diffed(self, differ):
        blank = solid_rgba(80, 80)
        alignment = differ.align_auto(blank, blank)

        assert alignment.error_code == AlignmentErrorCode.INSUFFICIENT_FEATURES
        result = differ.calculate_diff(alignment, DiffMode.HIGHLIGHT)
        assert result.diff_percentage == 0.0

    def test_detect_keypoints_with_roi(self, differ):
        result = differ.detect_keypoints(textured_rgba(), ROI.default())
        for kp in result.keypoints:
            assert 95 <= kp.x <= 305 and 95 <= kp.y <= 305

    def test_create_manual_pairs_prefers_manual_points(self, differ):
        manual_source = [Keypoint.manual(i, 10 * i, 20) for i in range(4)]
        selected_source = [Keypoint(id=i, x=1.0, y=1.0, is_selected=True) for i in range(6)]
        selected_target = [Keypoint(id=i, x=2.0, y=2.0, is_selected=True) for i in range(5)]

        pairs = differ.create_manual_pairs(manual_source, [], selected_source, selected_target)

        assert len(pairs) == 4
        assert all(p.source_keypoint.is_manual for p in pairs)
        assert all(p.target_keypoint.x == 2.0 for p in pairs)

    def test_find_closest_keypoint(self, differ):
        points = [Keypoint(id=0, x=0.0, y=0.0), Keypoint(id=1, x=50.0, y=50.0)]
        assert differ.find_closest_keypoint(points, 45.0, 45.0).id == 1
        assert differ.find_closest_keypoint(points, 45.0, 45.0, max_distance=1.0) is None

    def test_roi_helpers(self, differ):
        image = solid_rgba(100, 100, rgb=(90, 90, 90))
        roi = ROI.default()

        assert differ.crop_to_roi(image, roi).shape == (50, 50, 4)
        assert tuple(differ.apply_roi_mask(image, roi)[0, 0]) == (30, 30, 30, 255)
        assert differ.hit_test(Point2D(x=25, y=25), roi, 100, 100, tolerance=5) == HandleType.TOP_LEFT

        moved = differ.apply_drag(roi, HandleType.MOVE, 0.1, 0.0)
        assert moved.left == pytest.approx(0.35)


class TestBackgroundExecution:
    """submit_* variants return futures with the same results."""

    def test_submit_diff_direct(self, differ):
        source = solid_rgba(50, 50)
        target = solid_rgba(50, 50, rgb=(0, 0, 0))

        future = differ.submit_calculate_diff_direct(source, target, DiffMode.MINUS)
        result = future.result(timeout=30)

        assert isinstance(result, DiffResult)
        assert result.diff_percentage == pytest.approx(100.0)

    def test_submit_snapshots_inputs(self, differ):
        source = solid_rgba(50, 50)
        target = solid_rgba(50, 50)

        future = differ.submit_calculate_diff_direct(source, target, DiffMode.PIXEL_DIFF)
        # Later edits by the caller must not reach the job
        target[...] = 0
        result = future.result(timeout=30)

        assert result.diff_pixel_count == 0

    def test_submit_align_failure_is_a_result(self, differ):
        blank = solid_rgba(64, 64)

        result = differ.submit_align_auto(blank, blank, ROI.default(), None).result(timeout=30)

        assert not result.is_successful
        assert result.error_code == AlignmentErrorCode.INSUFFICIENT_FEATURES

    def test_submit_align_manual_and_diff(self, differ, scene_points):
        source = textured_rgba()
        target = translate(source, 10, 0)
        pairs = differ.create_manual_pairs(
            [Keypoint.manual(i, x, y) for i, (x, y) in enumerate(scene_points)],
            [Keypoint.manual(i, x + 10, y) for i, (x, y) in enumerate(scene_points)],
        )

        alignment = differ.submit_align_manual(source, target, pairs).result(timeout=30)
        assert alignment.is_successful, alignment.error_message

        diff = differ.submit_calculate_diff(alignment, DiffMode.ABSOLUTE).result(timeout=30)
        inner = diff.diff_mask[60:340, 60:340]
        assert not inner.any()

    def test_alignment_state_follows_future(self, differ, scene_points):
        pending = Future()
        assert differ.alignment_state(pending) == AlignmentState.IDLE

        pending.set_running_or_notify_cancel()
        assert differ.alignment_state(pending) == AlignmentState.RUNNING

        blank = solid_rgba(64, 64)
        failed = differ.submit_align_auto(blank, blank)
        failed.result(timeout=30)
        assert differ.alignment_state(failed) == AlignmentState.FAILURE

        source = textured_rgba()
        points = [Keypoint.manual(i, x, y) for i, (x, y) in enumerate(scene_points)]
        succeeded = differ.submit_align_manual(source, source, differ.create_manual_pairs(points, points))
        succeeded.result(timeout=30)
        assert differ.alignment_state(succeeded) == AlignmentState.SUCCESS

    def test_submit_detect_keypoints(self, differ):
        result = differ.submit_detect_keypoints(textured_rgba()).result(timeout=30)
        assert result.count > 0


def test_close_shuts_down_pool():
    differ = ImageDiffer(max_workers=1)
    differ.close()
    with pytest.raises(RuntimeError):
        differ.submit_detect_keypoints(solid_rgba(10, 10))
