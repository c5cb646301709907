"""
Computer-vision capability interfaces and their OpenCV backends.

The engine only talks to feature detection, descriptor search and robust
homography fitting through these narrow protocols, so tests can substitute
deterministic fakes for the OpenCV implementations.
"""

import logging
from enum import Enum
from typing import List, Optional, Protocol, Sequence, Tuple

import cv2
import numpy as np

from imgdiff.config import settings

logger = logging.getLogger(__name__)


class MatchType(str, Enum):
    """Descriptor search strategy."""
    BRUTE_FORCE = "BRUTE_FORCE"
    FLANN = "FLANN"


class FeatureDetector(Protocol):
    """Scale-space keypoint detection with descriptors."""

    def detect_and_compute(
        self,
        gray: np.ndarray,
        mask: Optional[np.ndarray],
    ) -> Tuple[Sequence[cv2.KeyPoint], Optional[np.ndarray]]:
        ...


class DescriptorMatcher(Protocol):
    """k-nearest-neighbour descriptor search."""

    def knn_match(
        self,
        query: np.ndarray,
        train: np.ndarray,
        k: int,
    ) -> Sequence[Sequence[cv2.DMatch]]:
        ...


class HomographySolver(Protocol):
    """Robust projective transform fitting."""

    def find_homography(
        self,
        points_from: np.ndarray,
        points_to: np.ndarray,
        reproj_threshold: float,
    ) -> Tuple[Optional[np.ndarray], Optional[np.ndarray]]:
        ...


class SiftFeatureDetector:
    """SIFT detector configured for fewer, stronger keypoints."""

    def __init__(
        self,
        max_features: int = None,
        octave_layers: int = None,
        contrast_threshold: float = None,
        edge_threshold: float = None,
        sigma: float = None,
    ):
        self.max_features = max_features if max_features is not None else settings.sift_max_features
        self.octave_layers = octave_layers if octave_layers is not None else settings.sift_octave_layers
        self.contrast_threshold = (
            contrast_threshold if contrast_threshold is not None else settings.sift_contrast_threshold
        )
        self.edge_threshold = edge_threshold if edge_threshold is not None else settings.sift_edge_threshold
        self.sigma = sigma if sigma is not None else settings.sift_sigma

    def _create(self) -> cv2.SIFT:
        # SIFT objects are not shared between threads; one per call
        return cv2.SIFT_create(
            nfeatures=self.max_features,
            nOctaveLayers=self.octave_layers,
            contrastThreshold=self.contrast_threshold,
            edgeThreshold=self.edge_threshold,
            sigma=self.sigma,
        )

    def detect_and_compute(
        self,
        gray: np.ndarray,
        mask: Optional[np.ndarray],
    ) -> Tuple[Sequence[cv2.KeyPoint], Optional[np.ndarray]]:
        return self._create().detectAndCompute(gray, mask)


class OpenCVDescriptorMatcher:
    """L2 descriptor matcher backed by brute force or FLANN search."""

    def __init__(self, match_type: MatchType = None):
        self.match_type = MatchType(match_type or settings.match_type)

    def _create(self) -> cv2.DescriptorMatcher:
        if self.match_type == MatchType.FLANN:
            index_params = dict(algorithm=1, trees=5)  # FLANN_INDEX_KDTREE
            search_params = dict(checks=50)
            return cv2.FlannBasedMatcher(index_params, search_params)
        return cv2.BFMatcher(cv2.NORM_L2, crossCheck=False)

    def knn_match(
        self,
        query: np.ndarray,
        train: np.ndarray,
        k: int,
    ) -> Sequence[Sequence[cv2.DMatch]]:
        return self._create().knnMatch(
            np.ascontiguousarray(query, dtype=np.float32),
            np.ascontiguousarray(train, dtype=np.float32),
            k=k,
        )


class RansacHomographySolver:
    """Homography fitting with RANSAC consensus."""

    def find_homography(
        self,
        points_from: np.ndarray,
        points_to: np.ndarray,
        reproj_threshold: float,
    ) -> Tuple[Optional[np.ndarray], Optional[np.ndarray]]:
        matrix, mask = cv2.findHomography(
            points_from.reshape(-1, 1, 2).astype(np.float32),
            points_to.reshape(-1, 1, 2).astype(np.float32),
            cv2.RANSAC,
            reproj_threshold,
        )
        if matrix is None or matrix.size == 0:
            logger.debug("findHomography returned no matrix")
            return None, None
        return matrix, mask


def opencv_version() -> str:
    """Version string of the OpenCV backend."""
    return cv2.__version__


def keypoints_from_cv(cv_keypoints: Sequence[cv2.KeyPoint]) -> List[dict]:
    """Extract plain attributes from OpenCV keypoints."""
    return [
        {
            "x": float(kp.pt[0]),
            "y": float(kp.pt[1]),
            "size": float(kp.size),
            "angle": float(kp.angle),
            "response": float(kp.response),
            "octave": int(kp.octave),
        }
        for kp in cv_keypoints
    ]
