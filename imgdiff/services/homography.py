"""
Homography estimation from point correspondences.

Fits the 3x3 projective transform that maps target points onto source
points using RANSAC. RANSAC is randomized: when several equally valid
consensus sets exist, repeated calls may pick different inlier subsets.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Union

import numpy as np

from imgdiff.config import settings
from imgdiff.models import KeypointPair
from imgdiff.services.align import AlignmentErrorCode, AlignmentFailure, Homography
from imgdiff.services.vision import HomographySolver, RansacHomographySolver

logger = logging.getLogger(__name__)


@dataclass
class HomographyEstimate:
    """A fitted homography and its consensus size."""
    homography: Homography
    inlier_count: int
    inlier_mask: np.ndarray

    @property
    def matrix(self) -> np.ndarray:
        return self.homography.matrix


def _is_collinear(points: np.ndarray, tolerance: float = 1e-6) -> bool:
    """True if all points lie on (or very near) a single line."""
    centered = points - points.mean(axis=0)
    singular_values = np.linalg.svd(centered, compute_uv=False)
    if singular_values[0] <= tolerance:
        return True
    return singular_values[-1] / singular_values[0] <= tolerance


class HomographyEstimator:
    """Service for robust homography fitting."""

    def __init__(
        self,
        solver: Optional[HomographySolver] = None,
        reproj_threshold: float = None,
        min_pairs: int = None,
    ):
        self.solver = solver or RansacHomographySolver()
        self.reproj_threshold = (
            reproj_threshold if reproj_threshold is not None else settings.ransac_reproj_threshold
        )
        self.min_pairs = min_pairs if min_pairs is not None else settings.min_match_count

    def estimate(
        self,
        pairs: Sequence[KeypointPair],
    ) -> Union[HomographyEstimate, AlignmentFailure]:
        """
        Estimate the target -> source homography.

        Args:
            pairs: Point correspondences (at least 4)

        Returns:
            HomographyEstimate on success, AlignmentFailure otherwise
        """
        if len(pairs) < self.min_pairs:
            return AlignmentFailure(
                code=AlignmentErrorCode.INSUFFICIENT_MATCHES,
                message=f"At least {self.min_pairs} point pairs required. Got: {len(pairs)}",
                details={"pairs": len(pairs), "minimum": self.min_pairs},
            )

        source_pts = np.array(
            [[p.source_keypoint.x, p.source_keypoint.y] for p in pairs], dtype=np.float64
        )
        target_pts = np.array(
            [[p.target_keypoint.x, p.target_keypoint.y] for p in pairs], dtype=np.float64
        )

        if _is_collinear(source_pts) or _is_collinear(target_pts):
            return AlignmentFailure(
                code=AlignmentErrorCode.HOMOGRAPHY_FAILURE,
                message="Failed to compute homography: points are collinear",
            )

        # Target -> source so the target can be warped into the source frame
        matrix, mask = self.solver.find_homography(target_pts, source_pts, self.reproj_threshold)

        if matrix is None:
            return AlignmentFailure(
                code=AlignmentErrorCode.HOMOGRAPHY_FAILURE,
                message="Failed to compute homography",
            )

        homography = Homography(matrix)
        if homography.is_degenerate:
            logger.debug(f"Rejecting degenerate homography (det={homography.determinant:.3e})")
            return AlignmentFailure(
                code=AlignmentErrorCode.HOMOGRAPHY_FAILURE,
                message="Failed to compute homography: degenerate matrix",
            )

        if mask is None:
            inlier_mask = np.ones(len(pairs), dtype=bool)
        else:
            inlier_mask = np.asarray(mask).ravel().astype(bool)
        inlier_count = int(np.count_nonzero(inlier_mask))

        if inlier_count == 0:
            return AlignmentFailure(
                code=AlignmentErrorCode.HOMOGRAPHY_FAILURE,
                message="Failed to compute homography: no inliers",
            )

        logger.debug(f"Homography computed with {inlier_count} inliers out of {len(pairs)} matches")

        return HomographyEstimate(
            homography=homography,
            inlier_count=inlier_count,
            inlier_mask=inlier_mask,
        )


# Global service instance - uses settings from config
homography_estimator = HomographyEstimator()
