"""
Image warping with a projective transform.
"""

import logging

import cv2
import numpy as np

from imgdiff.services.align import Homography

logger = logging.getLogger(__name__)


class ImageWarper:
    """Resamples an image into another image's frame."""

    def __init__(self, interpolation: int = cv2.INTER_LINEAR):
        self.interpolation = interpolation

    def warp(
        self,
        image: np.ndarray,
        matrix,
        output_width: int,
        output_height: int,
    ) -> np.ndarray:
        """
        Warp an image with a homography to a fixed output size.

        Each output pixel is mapped back through the inverse transform and
        bilinearly sampled; pixels that land outside the input are zero
        (transparent for RGBA).

        Args:
            image: Image to warp
            matrix: Homography or 3x3 array mapping input -> output coordinates
            output_width, output_height: Output size in pixels

        Returns:
            Newly allocated warped image
        """
        if isinstance(matrix, Homography):
            matrix = matrix.matrix

        return cv2.warpPerspective(
            image,
            np.asarray(matrix, dtype=np.float64).reshape(3, 3),
            (int(output_width), int(output_height)),
            flags=self.interpolation,
            borderMode=cv2.BORDER_CONSTANT,
            borderValue=0,
        )

    def warp_to_reference(
        self,
        image: np.ndarray,
        matrix,
        reference: np.ndarray,
    ) -> np.ndarray:
        """Warp into the frame of `reference` so the result is directly diff-able against it."""
        h, w = reference.shape[:2]
        return self.warp(image, matrix, w, h)


# Global service instance
image_warper = ImageWarper()
