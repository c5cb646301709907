"""
Alignment orchestration.

Composes detection, matching, homography estimation and warping into the
two alignment modes:

1. AUTO: detect keypoints on both images (optionally inside ROIs), match
   descriptors, fit a homography and warp the target into the source frame
2. MANUAL: fit a homography to caller-supplied correspondences and warp

Every run ends in SUCCESS or FAILURE. Expected failures come back as
failure-shaped results; unexpected faults from the vision backend are caught
here and reported as INTERNAL_COMPUTATION_ERROR. Nothing is raised to the
caller.

COORDINATE FRAME NOTES:
- The homography maps target points onto source points
- The aligned image always has the source image's size
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

import numpy as np

from imgdiff.config import settings
from imgdiff.models import ROI, KeypointPair
from imgdiff.services.align import AlignmentErrorCode, AlignmentFailure
from imgdiff.services.detector import KeypointDetector
from imgdiff.services.homography import HomographyEstimate, HomographyEstimator
from imgdiff.services.matcher import KeypointMatcher
from imgdiff.services.warp import ImageWarper

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal computation error during alignment"


class AlignmentMode(str, Enum):
    """How correspondences are obtained."""
    AUTO = "AUTO"
    MANUAL = "MANUAL"


class AlignmentState(str, Enum):
    """Lifecycle of one alignment request."""
    IDLE = "IDLE"
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


@dataclass(frozen=True)
class AlignmentResult:
    """Result of an alignment run.

    ``aligned_image`` is newly allocated for every call; on failure it is a
    copy of the unaligned target so the result can still be diffed.
    """
    source_image: np.ndarray
    aligned_image: np.ndarray
    homography: Optional[List[float]]     # 9 row-major values, None on failure
    matched_pairs: List[KeypointPair]
    inlier_count: int
    is_successful: bool
    mode: AlignmentMode = AlignmentMode.AUTO
    error_code: Optional[AlignmentErrorCode] = None
    error_message: Optional[str] = None
    details: dict = field(default_factory=dict)

    @property
    def state(self) -> AlignmentState:
        return AlignmentState.SUCCESS if self.is_successful else AlignmentState.FAILURE

    @classmethod
    def failure(
        cls,
        source: np.ndarray,
        target: np.ndarray,
        failure: AlignmentFailure,
        mode: AlignmentMode,
    ) -> "AlignmentResult":
        return cls(
            source_image=source,
            aligned_image=target.copy(),
            homography=None,
            matched_pairs=[],
            inlier_count=0,
            is_successful=False,
            mode=mode,
            error_code=failure.code,
            error_message=failure.message,
            details=dict(failure.details),
        )


class AlignmentOrchestrator:
    """
    Single entry point for AUTO and MANUAL alignment.

    Collaborators are injected so the vision backend can be replaced by test
    doubles.
    """

    def __init__(
        self,
        detector: Optional[KeypointDetector] = None,
        matcher: Optional[KeypointMatcher] = None,
        estimator: Optional[HomographyEstimator] = None,
        warper: Optional[ImageWarper] = None,
        min_match_count: int = None,
    ):
        self.detector = detector or KeypointDetector()
        self.matcher = matcher or KeypointMatcher()
        self.estimator = estimator or HomographyEstimator()
        self.warper = warper or ImageWarper()
        self.min_match_count = min_match_count if min_match_count is not None else settings.min_match_count

    # ============================================================
    # PIPELINE STEPS
    # ============================================================

    def _run_auto(
        self,
        source: np.ndarray,
        target: np.ndarray,
        source_roi: Optional[ROI],
        target_roi: Optional[ROI],
    ) -> AlignmentResult:
        mode = AlignmentMode.AUTO

        # Step 1: Detect keypoints on both sides
        source_kps = self.detector.detect(source, source_roi)
        target_kps = self.detector.detect(target, target_roi)

        if source_kps.count < self.min_match_count or target_kps.count < self.min_match_count:
            return AlignmentResult.failure(source, target, AlignmentFailure(
                code=AlignmentErrorCode.INSUFFICIENT_FEATURES,
                message=(
                    f"Not enough keypoints detected. "
                    f"Source: {source_kps.count}, Target: {target_kps.count}"
                ),
                details={
                    "source_keypoints": source_kps.count,
                    "target_keypoints": target_kps.count,
                    "minimum": self.min_match_count,
                },
            ), mode)

        # Step 2: Match descriptors
        pairs = self.matcher.match(
            source_kps.descriptors,
            target_kps.descriptors,
            source_kps.keypoints,
            target_kps.keypoints,
        )

        if len(pairs) < self.min_match_count:
            return AlignmentResult.failure(source, target, AlignmentFailure(
                code=AlignmentErrorCode.INSUFFICIENT_MATCHES,
                message=f"Not enough matches found: {len(pairs)}",
                details={"matches": len(pairs), "minimum": self.min_match_count},
            ), mode)

        # Step 3-4: Estimate and warp
        return self._compute_alignment(source, target, pairs, mode)

    def _compute_alignment(
        self,
        source: np.ndarray,
        target: np.ndarray,
        pairs: List[KeypointPair],
        mode: AlignmentMode,
    ) -> AlignmentResult:
        estimate = self.estimator.estimate(pairs)

        if isinstance(estimate, AlignmentFailure):
            return AlignmentResult.failure(source, target, estimate, mode)

        aligned = self.warper.warp_to_reference(target, estimate.homography, source)

        return self._success(source, aligned, estimate, pairs, mode)

    def _success(
        self,
        source: np.ndarray,
        aligned: np.ndarray,
        estimate: HomographyEstimate,
        pairs: List[KeypointPair],
        mode: AlignmentMode,
    ) -> AlignmentResult:
        return AlignmentResult(
            source_image=source,
            aligned_image=aligned,
            homography=estimate.homography.to_list(),
            matched_pairs=list(pairs),
            inlier_count=estimate.inlier_count,
            is_successful=True,
            mode=mode,
        )

    def _finish(self, result: AlignmentResult) -> AlignmentResult:
        if result.is_successful:
            logger.info(
                f"Alignment ({result.mode.value}) complete: "
                f"{result.inlier_count}/{len(result.matched_pairs)} inliers"
            )
        else:
            logger.warning(
                f"Alignment ({result.mode.value}) failed: "
                f"{result.error_code.value} - {result.error_message}"
            )
        return result

    def _internal_failure(
        self,
        source: np.ndarray,
        target: np.ndarray,
        mode: AlignmentMode,
        exc: Exception,
    ) -> AlignmentResult:
        logger.exception(f"Alignment ({mode.value}) computation failed: {exc}")
        return AlignmentResult.failure(source, target, AlignmentFailure(
            code=AlignmentErrorCode.INTERNAL_COMPUTATION_ERROR,
            message=INTERNAL_ERROR_MESSAGE,
            details={"exception": type(exc).__name__},
        ), mode)

    # ============================================================
    # MAIN ENTRY POINTS
    # ============================================================

    def align_auto(
        self,
        source: np.ndarray,
        target: np.ndarray,
        source_roi: Optional[ROI] = None,
        target_roi: Optional[ROI] = None,
    ) -> AlignmentResult:
        """
        Align target to source using automatic keypoint matching.

        Args:
            source: Reference RGBA image
            target: RGBA image to be aligned
            source_roi: Optional ROI for source keypoint detection
            target_roi: Optional ROI for target keypoint detection

        Returns:
            AlignmentResult (never raises)
        """
        try:
            logger.info(
                f"Auto alignment starting: source={source.shape[:2]}, target={target.shape[:2]}, "
                f"source_roi={'yes' if source_roi else 'no'}, target_roi={'yes' if target_roi else 'no'}"
            )
            result = self._run_auto(source, target, source_roi, target_roi)
        except Exception as e:
            return self._internal_failure(source, target, AlignmentMode.AUTO, e)
        return self._finish(result)

    def align_manual(
        self,
        source: np.ndarray,
        target: np.ndarray,
        pairs: Sequence[KeypointPair],
    ) -> AlignmentResult:
        """
        Align target to source using caller-supplied correspondences.

        Args:
            source: Reference RGBA image
            target: RGBA image to be aligned
            pairs: Corresponding points (at least 4)

        Returns:
            AlignmentResult (never raises)
        """
        mode = AlignmentMode.MANUAL
        try:
            logger.info(f"Manual alignment starting with {len(pairs)} pairs")
            if len(pairs) < self.min_match_count:
                result = AlignmentResult.failure(source, target, AlignmentFailure(
                    code=AlignmentErrorCode.INSUFFICIENT_MATCHES,
                    message=f"At least {self.min_match_count} point pairs required. Got: {len(pairs)}",
                    details={"pairs": len(pairs), "minimum": self.min_match_count},
                ), mode)
            else:
                result = self._compute_alignment(source, target, list(pairs), mode)
        except Exception as e:
            return self._internal_failure(source, target, mode, e)
        return self._finish(result)


# Global service instance - uses settings from config
alignment_orchestrator = AlignmentOrchestrator()
