"""
Engine services: detection, matching, homography, warping, alignment and diff.
"""

from imgdiff.services.align import AlignmentErrorCode, AlignmentFailure, Homography, Point2D
from imgdiff.services.alignment import (
    AlignmentMode,
    AlignmentOrchestrator,
    AlignmentResult,
    AlignmentState,
    alignment_orchestrator,
)
from imgdiff.services.detector import KeypointDetector, KeypointsResult, keypoint_detector
from imgdiff.services.diff import DiffCalculator, DiffMode, DiffRegion, DiffResult, diff_calculator
from imgdiff.services.homography import HomographyEstimate, HomographyEstimator, homography_estimator
from imgdiff.services.matcher import KeypointMatcher, keypoint_matcher
from imgdiff.services.roi import HandleType, ROIProcessor, roi_processor
from imgdiff.services.vision import MatchType
from imgdiff.services.warp import ImageWarper, image_warper

__all__ = [
    "AlignmentErrorCode",
    "AlignmentFailure",
    "AlignmentMode",
    "AlignmentOrchestrator",
    "AlignmentResult",
    "AlignmentState",
    "DiffCalculator",
    "DiffMode",
    "DiffRegion",
    "DiffResult",
    "HandleType",
    "Homography",
    "HomographyEstimate",
    "HomographyEstimator",
    "ImageWarper",
    "KeypointDetector",
    "KeypointMatcher",
    "KeypointsResult",
    "MatchType",
    "Point2D",
    "ROIProcessor",
    "alignment_orchestrator",
    "diff_calculator",
    "homography_estimator",
    "image_warper",
    "keypoint_detector",
    "keypoint_matcher",
    "roi_processor",
]
