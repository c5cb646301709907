"""
Public facade for the alignment and difference engine.

ImageDiffer bundles the engine services behind one object. Synchronous
methods run in the caller's thread; the ``submit_*`` variants schedule the
same work on a background thread pool and return a Future. Inputs are
snapshotted at submission so later edits by the caller cannot race with a
running job.
"""

import copy
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional, Sequence

import numpy as np

from imgdiff.config import settings
from imgdiff.models import ROI, Keypoint, KeypointPair
from imgdiff.services.align import Point2D
from imgdiff.services.alignment import AlignmentOrchestrator, AlignmentResult, AlignmentState
from imgdiff.services.detector import KeypointDetector, KeypointsResult
from imgdiff.services.diff import DiffCalculator, DiffMode, DiffResult
from imgdiff.services.homography import HomographyEstimator
from imgdiff.services.image_utils import ensure_rgba
from imgdiff.services.matcher import KeypointMatcher
from imgdiff.services.roi import HandleType, ROIProcessor
from imgdiff.services.vision import opencv_version
from imgdiff.services.warp import ImageWarper

logger = logging.getLogger(__name__)


class ImageDiffer:
    """
    Entry point for keypoint detection, alignment and difference calculation.

    Usage:
        with ImageDiffer() as differ:
            alignment = differ.align_auto(source, target)
            if alignment.is_successful:
                diff = differ.calculate_diff(alignment, DiffMode.HIGHLIGHT)
    """

    def __init__(
        self,
        detector: Optional[KeypointDetector] = None,
        matcher: Optional[KeypointMatcher] = None,
        estimator: Optional[HomographyEstimator] = None,
        warper: Optional[ImageWarper] = None,
        diff_calculator: Optional[DiffCalculator] = None,
        roi_processor: Optional[ROIProcessor] = None,
        max_workers: int = None,
    ):
        self.detector = detector or KeypointDetector()
        self.matcher = matcher or KeypointMatcher()
        self.orchestrator = AlignmentOrchestrator(
            detector=self.detector,
            matcher=self.matcher,
            estimator=estimator or HomographyEstimator(),
            warper=warper or ImageWarper(),
        )
        self.diff_calculator = diff_calculator or DiffCalculator()
        self.roi_processor = roi_processor or ROIProcessor()

        max_workers = max_workers if max_workers is not None else settings.worker_count
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="imgdiff")

        logger.info(f"ImageDiffer initialized: OpenCV {opencv_version()}, {max_workers} workers")

    # ============================================================
    # LIFECYCLE
    # ============================================================

    def close(self) -> None:
        """Shut down the worker pool, waiting for running jobs."""
        self._executor.shutdown(wait=True)

    def __enter__(self) -> "ImageDiffer":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @staticmethod
    def opencv_version() -> str:
        return opencv_version()

    # ============================================================
    # KEYPOINTS
    # ============================================================

    def detect_keypoints(self, image: np.ndarray, roi: Optional[ROI] = None) -> KeypointsResult:
        """Detect keypoints, optionally restricted to an ROI."""
        return self.detector.detect(ensure_rgba(image), roi)

    def find_closest_keypoint(
        self,
        keypoints: Sequence[Keypoint],
        x: float,
        y: float,
        max_distance: float = float("inf"),
    ) -> Optional[Keypoint]:
        return self.matcher.find_closest(keypoints, x, y, max_distance)

    def create_manual_pairs(
        self,
        source_points: Sequence[Keypoint],
        target_points: Sequence[Keypoint],
        selected_source: Sequence[Keypoint] = (),
        selected_target: Sequence[Keypoint] = (),
    ) -> list:
        """
        Build correspondences for MANUAL alignment.

        On each side, manually placed points are used when there are any;
        otherwise the selected detected keypoints are used.
        """
        source = KeypointMatcher.resolve_points(source_points, selected_source)
        target = KeypointMatcher.resolve_points(target_points, selected_target)
        return self.matcher.manual_pairs(source, target)

    # ============================================================
    # ALIGNMENT
    # ============================================================

    def align_auto(
        self,
        source: np.ndarray,
        target: np.ndarray,
        source_roi: Optional[ROI] = None,
        target_roi: Optional[ROI] = None,
    ) -> AlignmentResult:
        """Align target to source with automatic keypoint matching. Never raises for vision failures."""
        return self.orchestrator.align_auto(
            ensure_rgba(source), ensure_rgba(target), source_roi, target_roi
        )

    def align_manual(
        self,
        source: np.ndarray,
        target: np.ndarray,
        pairs: Sequence[KeypointPair],
    ) -> AlignmentResult:
        """Align target to source from user-supplied correspondences."""
        return self.orchestrator.align_manual(ensure_rgba(source), ensure_rgba(target), list(pairs))

    # ============================================================
    # DIFFERENCE
    # ============================================================

    def calculate_diff(
        self,
        alignment: AlignmentResult,
        mode: DiffMode = DiffMode.PIXEL_DIFF,
        threshold: int = None,
    ) -> DiffResult:
        """Diff the source of an alignment against its aligned image."""
        return self.diff_calculator.calculate_diff(
            alignment.source_image, alignment.aligned_image, mode, threshold
        )

    def calculate_diff_direct(
        self,
        source: np.ndarray,
        target: np.ndarray,
        mode: DiffMode = DiffMode.PIXEL_DIFF,
        threshold: int = None,
    ) -> DiffResult:
        """Diff two images without aligning them first."""
        return self.diff_calculator.calculate_diff(
            ensure_rgba(source), ensure_rgba(target), mode, threshold
        )

    # ============================================================
    # ROI
    # ============================================================

    def crop_to_roi(self, image: np.ndarray, roi: ROI) -> np.ndarray:
        return self.roi_processor.crop_to_roi(ensure_rgba(image), roi)

    def apply_roi_mask(self, image: np.ndarray, roi: ROI, keep_outside: bool = True) -> np.ndarray:
        return self.roi_processor.apply_roi_mask(ensure_rgba(image), roi, keep_outside)

    def hit_test(
        self,
        point: Point2D,
        roi: ROI,
        image_width: int,
        image_height: int,
        tolerance: float = None,
    ) -> Optional[HandleType]:
        return self.roi_processor.hit_test(point, roi, image_width, image_height, tolerance)

    def apply_drag(
        self,
        roi: ROI,
        handle: HandleType,
        delta_x: float,
        delta_y: float,
        min_size: float = None,
    ) -> ROI:
        return self.roi_processor.apply_drag(roi, handle, delta_x, delta_y, min_size)

    # ============================================================
    # BACKGROUND EXECUTION
    # ============================================================

    def submit_detect_keypoints(self, image: np.ndarray, roi: Optional[ROI] = None) -> Future:
        image = ensure_rgba(image)
        return self._executor.submit(self.detector.detect, image, copy.deepcopy(roi))

    def submit_align_auto(
        self,
        source: np.ndarray,
        target: np.ndarray,
        source_roi: Optional[ROI] = None,
        target_roi: Optional[ROI] = None,
    ) -> Future:
        source = ensure_rgba(source)
        target = ensure_rgba(target)
        return self._executor.submit(
            self.orchestrator.align_auto,
            source,
            target,
            copy.deepcopy(source_roi),
            copy.deepcopy(target_roi),
        )

    def submit_align_manual(
        self,
        source: np.ndarray,
        target: np.ndarray,
        pairs: Sequence[KeypointPair],
    ) -> Future:
        source = ensure_rgba(source)
        target = ensure_rgba(target)
        return self._executor.submit(
            self.orchestrator.align_manual, source, target, copy.deepcopy(list(pairs))
        )

    @staticmethod
    def alignment_state(future: Future) -> AlignmentState:
        """State of a submitted alignment: IDLE while queued, RUNNING, then the result state."""
        if not future.done():
            return AlignmentState.RUNNING if future.running() else AlignmentState.IDLE
        return future.result().state

    def submit_calculate_diff(
        self,
        alignment: AlignmentResult,
        mode: DiffMode = DiffMode.PIXEL_DIFF,
        threshold: int = None,
    ) -> Future:
        return self._executor.submit(
            self.diff_calculator.calculate_diff,
            alignment.source_image.copy(),
            alignment.aligned_image.copy(),
            mode,
            threshold,
        )

    def submit_calculate_diff_direct(
        self,
        source: np.ndarray,
        target: np.ndarray,
        mode: DiffMode = DiffMode.PIXEL_DIFF,
        threshold: int = None,
    ) -> Future:
        source = ensure_rgba(source)
        target = ensure_rgba(target)
        return self._executor.submit(self.diff_calculator.calculate_diff, source, target, mode, threshold)
