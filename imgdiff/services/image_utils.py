"""
Image buffer helpers.

All engine images are RGBA ``uint8`` arrays of shape (H, W, 4). These helpers
promote other layouts to RGBA and resize buffers without touching the input.
"""

import logging
from typing import Tuple

import cv2
import numpy as np

logger = logging.getLogger(__name__)


def ensure_rgba(image: np.ndarray) -> np.ndarray:
    """
    Return a new RGBA copy of a grayscale, RGB or RGBA image.

    Raises:
        ValueError: If the array is not a uint8 image of a supported layout
    """
    if not isinstance(image, np.ndarray) or image.dtype != np.uint8:
        raise ValueError("Images must be uint8 numpy arrays")

    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2RGBA)
    if image.ndim == 3 and image.shape[2] == 3:
        return cv2.cvtColor(image, cv2.COLOR_RGB2RGBA)
    if image.ndim == 3 and image.shape[2] == 4:
        return image.copy()

    raise ValueError(f"Unsupported image shape: {image.shape}")


def to_gray(image: np.ndarray) -> np.ndarray:
    """Convert an RGBA image to single-channel grayscale."""
    if image.ndim == 2:
        return image.copy()
    return cv2.cvtColor(image, cv2.COLOR_RGBA2GRAY)


def image_size(image: np.ndarray) -> Tuple[int, int]:
    """Return (width, height) of an image."""
    h, w = image.shape[:2]
    return w, h


def resize_to_match(
    image_a: np.ndarray,
    image_b: np.ndarray,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Resize both images to the smaller of each dimension.

    Images that already have the target size are copied unchanged.
    """
    w_a, h_a = image_size(image_a)
    w_b, h_b = image_size(image_b)

    width = min(w_a, w_b)
    height = min(h_a, h_b)

    def _fit(image: np.ndarray, w: int, h: int) -> np.ndarray:
        if w == width and h == height:
            return image.copy()
        return cv2.resize(image, (width, height), interpolation=cv2.INTER_LINEAR)

    if (w_a, h_a) != (w_b, h_b):
        logger.debug(f"Resizing to match: A={w_a}x{h_a}, B={w_b}x{h_b} -> {width}x{height}")

    return _fit(image_a, w_a, h_a), _fit(image_b, w_b, h_b)
