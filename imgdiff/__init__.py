"""
Image alignment and difference engine.
"""

__version__ = "0.1.0"

from imgdiff.differ import ImageDiffer
from imgdiff.models import ROI, Keypoint, KeypointPair
from imgdiff.services import (
    AlignmentErrorCode,
    AlignmentMode,
    AlignmentResult,
    AlignmentState,
    DiffMode,
    DiffResult,
    HandleType,
    KeypointsResult,
)

__all__ = [
    "AlignmentErrorCode",
    "AlignmentMode",
    "AlignmentResult",
    "AlignmentState",
    "DiffMode",
    "DiffResult",
    "HandleType",
    "ImageDiffer",
    "Keypoint",
    "KeypointPair",
    "KeypointsResult",
    "ROI",
]
