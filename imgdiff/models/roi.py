"""
Region of interest model.

The ROI is stored in normalized coordinates (0-1) relative to the image
dimensions so the same region can be applied to images of any size.
"""

from typing import Tuple
from pydantic import BaseModel, Field


class ROI(BaseModel):
    """A normalized rectangular region of an image."""
    left: float = Field(description="Left edge (0-1)")
    top: float = Field(description="Top edge (0-1)")
    right: float = Field(description="Right edge (0-1)")
    bottom: float = Field(description="Bottom edge (0-1)")

    class Config:
        frozen = True

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.bottom - self.top

    @property
    def center_x(self) -> float:
        return (self.left + self.right) / 2.0

    @property
    def center_y(self) -> float:
        return (self.top + self.bottom) / 2.0

    @property
    def is_valid(self) -> bool:
        return (
            self.left >= 0.0 and self.top >= 0.0
            and self.right <= 1.0 and self.bottom <= 1.0
            and self.left < self.right and self.top < self.bottom
        )

    def to_rect(self, image_width: int, image_height: int) -> Tuple[int, int, int, int]:
        """
        Convert to pixel coordinates for a given image size.

        Returns:
            (left, top, right, bottom) in pixels, truncated toward zero
        """
        return (
            int(self.left * image_width),
            int(self.top * image_height),
            int(self.right * image_width),
            int(self.bottom * image_height),
        )

    def to_rect_f(self, image_width: float, image_height: float) -> Tuple[float, float, float, float]:
        """Convert to floating point pixel coordinates."""
        return (
            self.left * image_width,
            self.top * image_height,
            self.right * image_width,
            self.bottom * image_height,
        )

    def contains(self, x: float, y: float) -> bool:
        """Check if a point (in normalized coordinates) is inside the ROI."""
        return self.left <= x <= self.right and self.top <= y <= self.bottom

    @classmethod
    def full(cls) -> "ROI":
        """ROI covering the whole image."""
        return cls(left=0.0, top=0.0, right=1.0, bottom=1.0)

    @classmethod
    def default(cls) -> "ROI":
        """Centered ROI with a 25% margin on each side."""
        return cls(left=0.25, top=0.25, right=0.75, bottom=0.75)

    @classmethod
    def from_rect(
        cls,
        rect: Tuple[float, float, float, float],
        image_width: float,
        image_height: float,
    ) -> "ROI":
        """Create an ROI from pixel coordinates (left, top, right, bottom)."""
        left, top, right, bottom = rect
        return cls(
            left=left / image_width,
            top=top / image_height,
            right=right / image_width,
            bottom=bottom / image_height,
        )
