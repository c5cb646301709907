"""
Keypoint models shared by detection, matching and manual alignment.
"""

import math
from pydantic import BaseModel, Field


class Keypoint(BaseModel):
    """
    A detected (or manually placed) interest point.

    Position is in source-image pixel coordinates. ``id`` is contiguous
    0..n-1 within a single detection result.
    """
    id: int
    x: float
    y: float
    size: float = 0.0
    angle: float = 0.0
    response: float = 0.0
    octave: int = 0
    is_selected: bool = False
    is_manual: bool = False

    class Config:
        frozen = True

    def distance_to(self, x: float, y: float) -> float:
        """Euclidean distance from this keypoint to (x, y)."""
        return math.hypot(self.x - x, self.y - y)

    @classmethod
    def manual(cls, id: int, x: float, y: float) -> "Keypoint":
        """Create a manually placed keypoint."""
        return cls(
            id=id,
            x=x,
            y=y,
            size=10.0,
            angle=0.0,
            response=1.0,
            octave=0,
            is_selected=True,
            is_manual=True,
        )


class KeypointPair(BaseModel):
    """A pair of corresponding keypoints between source and target images."""
    source_keypoint: Keypoint
    target_keypoint: Keypoint
    match_distance: float = Field(default=0.0, description="Descriptor distance (0 for manual pairs)")

    class Config:
        frozen = True
