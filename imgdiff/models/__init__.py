"""
Pydantic value models shared across the engine.
"""

from imgdiff.models.roi import ROI
from imgdiff.models.keypoint import Keypoint, KeypointPair

__all__ = [
    "ROI",
    "Keypoint",
    "KeypointPair",
]
