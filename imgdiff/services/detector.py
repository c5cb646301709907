"""
Keypoint detection service.

Wraps the feature-detection capability and turns its raw output into a
filtered, strength-ordered, re-indexed keypoint list with matching
descriptor rows.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from imgdiff.config import settings
from imgdiff.models import ROI, Keypoint
from imgdiff.services.image_utils import to_gray
from imgdiff.services.roi import roi_processor
from imgdiff.services.vision import FeatureDetector, SiftFeatureDetector, keypoints_from_cv

logger = logging.getLogger(__name__)

SIFT_DESCRIPTOR_SIZE = 128


def _empty_descriptors() -> np.ndarray:
    return np.zeros((0, SIFT_DESCRIPTOR_SIZE), dtype=np.float32)


@dataclass(frozen=True)
class KeypointsResult:
    """Result of keypoint detection on an image.

    Row i of ``descriptors`` describes ``keypoints[i]``.
    """
    keypoints: List[Keypoint] = field(default_factory=list)
    descriptors: np.ndarray = field(default_factory=_empty_descriptors)

    @property
    def count(self) -> int:
        return len(self.keypoints)


class KeypointDetector:
    """Service for detecting and filtering keypoints."""

    def __init__(
        self,
        feature_detector: Optional[FeatureDetector] = None,
        min_response: float = None,
        max_keypoints: int = None,
    ):
        """
        Initialize the keypoint detector.

        Args:
            feature_detector: Detection capability (SIFT by default)
            min_response: Default minimum response for kept keypoints
            max_keypoints: Default cap on returned keypoints (0 = no limit)
        """
        self.feature_detector = feature_detector or SiftFeatureDetector()
        self.min_response = min_response if min_response is not None else settings.keypoint_min_response
        self.max_keypoints = max_keypoints if max_keypoints is not None else settings.keypoint_max_count

    def detect(
        self,
        image: np.ndarray,
        roi: Optional[ROI] = None,
        min_response: float = None,
        max_keypoints: int = None,
    ) -> KeypointsResult:
        """
        Detect keypoints in an RGBA image.

        Args:
            image: RGBA image
            roi: Optional region of interest limiting detection (ignored if invalid)
            min_response: Minimum response to keep a keypoint
            max_keypoints: Maximum number of keypoints to return (0 = no limit)

        Returns:
            KeypointsResult sorted by descending response with ids 0..n-1
        """
        min_response = self.min_response if min_response is None else min_response
        max_keypoints = self.max_keypoints if max_keypoints is None else max_keypoints

        gray = to_gray(image)
        h, w = gray.shape[:2]

        mask = None
        if roi is not None and roi.is_valid:
            mask = roi_processor.create_roi_mask(w, h, roi)
            logger.debug(f"Detecting inside ROI {roi.to_rect(w, h)}")

        cv_keypoints, descriptors = self.feature_detector.detect_and_compute(gray, mask)
        raw = keypoints_from_cv(cv_keypoints or [])

        if descriptors is None or len(raw) == 0:
            logger.debug(f"No keypoints detected in {w}x{h} image")
            return KeypointsResult()

        # Keep original indices so descriptor rows can follow the reorder
        order = [i for i, kp in enumerate(raw) if kp["response"] >= min_response]
        order.sort(key=lambda i: raw[i]["response"], reverse=True)

        if max_keypoints > 0:
            order = order[:max_keypoints]

        keypoints = [Keypoint(id=new_id, **raw[i]) for new_id, i in enumerate(order)]

        if order:
            kept_descriptors = np.asarray(descriptors, dtype=np.float32)[order]
        else:
            kept_descriptors = np.zeros((0, descriptors.shape[1]), dtype=np.float32)

        logger.debug(f"Detected {len(raw)} keypoints, filtered to {len(keypoints)}")

        return KeypointsResult(keypoints=keypoints, descriptors=kept_descriptors)


# Global service instance - uses settings from config
keypoint_detector = KeypointDetector()
