"""
Core alignment types and math utilities.

Provides the projective transform type and the failure values used
throughout the alignment pipeline.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Sequence

import numpy as np


class AlignmentErrorCode(str, Enum):
    """Reasons an alignment can fail."""
    INSUFFICIENT_FEATURES = "INSUFFICIENT_FEATURES"    # A side has < 4 keypoints
    INSUFFICIENT_MATCHES = "INSUFFICIENT_MATCHES"      # < 4 accepted correspondences
    HOMOGRAPHY_FAILURE = "HOMOGRAPHY_FAILURE"          # Solver produced no usable transform
    INTERNAL_COMPUTATION_ERROR = "INTERNAL_COMPUTATION_ERROR"  # Unexpected vision-backend fault


@dataclass
class Point2D:
    """A point in image pixel coordinates."""
    x: float
    y: float


@dataclass
class Homography:
    """
    A 3x3 projective transform.

    Maps point p_T in the target image to point p_S in the source image:
        [x_S*w, y_S*w, w]^T = H @ [x_T, y_T, 1]^T
    """
    matrix: np.ndarray

    def __post_init__(self):
        self.matrix = np.asarray(self.matrix, dtype=np.float64).reshape(3, 3)

    @classmethod
    def identity(cls) -> "Homography":
        return cls(np.eye(3, dtype=np.float64))

    @classmethod
    def from_list(cls, values: Sequence[float]) -> "Homography":
        """Build from 9 row-major values."""
        if len(values) != 9:
            raise ValueError(f"Homography needs 9 values, got {len(values)}")
        return cls(np.array(values, dtype=np.float64))

    def to_list(self) -> List[float]:
        """Row-major list of 9 floats."""
        return [float(v) for v in self.matrix.ravel()]

    @property
    def determinant(self) -> float:
        return float(np.linalg.det(self.matrix))

    @property
    def is_degenerate(self) -> bool:
        """True if the matrix cannot be used for warping."""
        if not np.all(np.isfinite(self.matrix)):
            return True
        return abs(self.determinant) < 1e-12

    def transform_point(self, p: Point2D) -> Point2D:
        """Apply this transform to a point."""
        vec = self.matrix @ np.array([p.x, p.y, 1.0])
        if math.isclose(vec[2], 0.0, abs_tol=1e-15):
            return Point2D(x=math.inf, y=math.inf)
        return Point2D(x=float(vec[0] / vec[2]), y=float(vec[1] / vec[2]))

    def is_close_to(self, other: "Homography", tolerance: float = 1e-6) -> bool:
        """Compare two transforms after normalizing the projective scale."""
        a = self.matrix / self.matrix[2, 2]
        b = other.matrix / other.matrix[2, 2]
        return bool(np.allclose(a, b, atol=tolerance))


@dataclass
class AlignmentFailure:
    """A failed alignment step, carried as a value rather than raised."""
    code: AlignmentErrorCode
    message: str
    details: dict = field(default_factory=dict)
