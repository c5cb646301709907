"""
Region of interest processing.

Handle geometry and drag transitions for interactive ROI editing, plus the
mask, crop and overlay operations that apply an ROI to an image. The ROI
itself is immutable; every edit produces a new value.
"""

import logging
from enum import Enum
from typing import Optional, Tuple

import cv2
import numpy as np

from imgdiff.config import settings
from imgdiff.models import ROI
from imgdiff.services.align import Point2D

logger = logging.getLogger(__name__)

MIN_SIZE_EPSILON = 1e-12


class HandleType(str, Enum):
    """Handles for ROI manipulation."""
    TOP_LEFT = "TOP_LEFT"
    TOP = "TOP"
    TOP_RIGHT = "TOP_RIGHT"
    LEFT = "LEFT"
    RIGHT = "RIGHT"
    BOTTOM_LEFT = "BOTTOM_LEFT"
    BOTTOM = "BOTTOM"
    BOTTOM_RIGHT = "BOTTOM_RIGHT"
    MOVE = "MOVE"


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(value, high))


def _is_near(point: Point2D, target_x: float, target_y: float, tolerance: float) -> bool:
    dx = point.x - target_x
    dy = point.y - target_y
    return dx * dx + dy * dy <= tolerance * tolerance


class ROIProcessor:
    """Service for ROI handle geometry and ROI-based image operations."""

    def __init__(
        self,
        min_size: float = None,
        handle_tolerance: float = None,
    ):
        self.min_size = min_size if min_size is not None else settings.roi_min_size
        self.handle_tolerance = (
            handle_tolerance if handle_tolerance is not None else settings.roi_handle_tolerance
        )

    # ============================================================
    # HANDLE GEOMETRY
    # ============================================================

    def hit_test(
        self,
        point: Point2D,
        roi: ROI,
        image_width: int,
        image_height: int,
        tolerance: float = None,
    ) -> Optional[HandleType]:
        """
        Find the ROI handle under a point.

        Corners are checked first, then edge midpoints, then the interior.

        Args:
            point: Touch point in image pixel coordinates
            roi: Current ROI
            image_width, image_height: Image dimensions in pixels
            tolerance: Hit radius in pixels

        Returns:
            Handle under the point, or None
        """
        if not roi.is_valid:
            return None

        tolerance = self.handle_tolerance if tolerance is None else tolerance

        left, top, right, bottom = roi.to_rect_f(image_width, image_height)
        mid_x = (left + right) / 2
        mid_y = (top + bottom) / 2

        anchors = [
            (HandleType.TOP_LEFT, left, top),
            (HandleType.TOP_RIGHT, right, top),
            (HandleType.BOTTOM_LEFT, left, bottom),
            (HandleType.BOTTOM_RIGHT, right, bottom),
            (HandleType.TOP, mid_x, top),
            (HandleType.BOTTOM, mid_x, bottom),
            (HandleType.LEFT, left, mid_y),
            (HandleType.RIGHT, right, mid_y),
        ]

        for handle, anchor_x, anchor_y in anchors:
            if _is_near(point, anchor_x, anchor_y, tolerance):
                return handle

        if left <= point.x <= right and top <= point.y <= bottom:
            return HandleType.MOVE

        return None

    def _normalize(self, roi: ROI, min_size: float) -> Tuple[float, float, float, float]:
        """Grow and shift an ROI so it lies in [0, 1] with at least min_size per side."""
        # Edges set to other edge +/- min_size can land one float step short
        floor = min_size - MIN_SIZE_EPSILON
        if roi.is_valid and roi.width >= floor and roi.height >= floor:
            return roi.left, roi.top, roi.right, roi.bottom

        width = max(roi.right - roi.left, min_size)
        height = max(roi.bottom - roi.top, min_size)
        width = min(width, 1.0)
        height = min(height, 1.0)

        left = _clamp(roi.center_x - width / 2, 0.0, 1.0 - width)
        top = _clamp(roi.center_y - height / 2, 0.0, 1.0 - height)

        return left, top, min(left + width, 1.0), min(top + height, 1.0)

    def apply_drag(
        self,
        roi: ROI,
        handle: HandleType,
        delta_x: float,
        delta_y: float,
        min_size: float = None,
    ) -> ROI:
        """
        Update an ROI for a handle drag.

        Args:
            roi: Current ROI
            handle: Handle being dragged
            delta_x, delta_y: Movement in normalized coordinates
            min_size: Minimum ROI edge length (normalized)

        Returns:
            New ROI; always valid and at least min_size wide and tall
        """
        min_size = self.min_size if min_size is None else min_size
        if not 0.0 < min_size < 1.0:
            raise ValueError(f"min_size must be in (0, 1), got {min_size}")

        left, top, right, bottom = self._normalize(roi, min_size)

        if handle in (HandleType.TOP_LEFT, HandleType.LEFT, HandleType.BOTTOM_LEFT):
            left = _clamp(left + delta_x, 0.0, right - min_size)
        if handle in (HandleType.TOP_RIGHT, HandleType.RIGHT, HandleType.BOTTOM_RIGHT):
            right = _clamp(right + delta_x, left + min_size, 1.0)
        if handle in (HandleType.TOP_LEFT, HandleType.TOP, HandleType.TOP_RIGHT):
            top = _clamp(top + delta_y, 0.0, bottom - min_size)
        if handle in (HandleType.BOTTOM_LEFT, HandleType.BOTTOM, HandleType.BOTTOM_RIGHT):
            bottom = _clamp(bottom + delta_y, top + min_size, 1.0)

        if handle == HandleType.MOVE:
            width = right - left
            height = bottom - top
            left = _clamp(left + delta_x, 0.0, 1.0 - width)
            top = _clamp(top + delta_y, 0.0, 1.0 - height)
            right = min(left + width, 1.0)
            bottom = min(top + height, 1.0)

        return ROI(left=left, top=top, right=right, bottom=bottom)

    # ============================================================
    # IMAGE OPERATIONS
    # ============================================================

    def create_roi_mask(self, width: int, height: int, roi: ROI) -> np.ndarray:
        """
        Create a binary mask for the ROI.

        Returns:
            uint8 mask, 255 inside the ROI rectangle and 0 outside
        """
        mask = np.zeros((height, width), dtype=np.uint8)

        if roi.is_valid:
            left, top, right, bottom = roi.to_rect(width, height)
            cv2.rectangle(mask, (left, top), (right, bottom), 255, -1)

        return mask

    def crop_to_roi(self, image: np.ndarray, roi: ROI) -> np.ndarray:
        """Crop an image to the ROI. Invalid or empty ROIs return a copy of the input."""
        if not roi.is_valid:
            return image.copy()

        h, w = image.shape[:2]
        left, top, right, bottom = roi.to_rect(w, h)

        left = int(_clamp(left, 0, w))
        top = int(_clamp(top, 0, h))
        right = int(_clamp(right, 0, w))
        bottom = int(_clamp(bottom, 0, h))

        if right - left <= 0 or bottom - top <= 0:
            return image.copy()

        return image[top:bottom, left:right].copy()

    def apply_roi_mask(
        self,
        image: np.ndarray,
        roi: ROI,
        keep_outside: bool = True,
    ) -> np.ndarray:
        """
        Mask out everything outside the ROI.

        Args:
            image: RGBA image
            roi: Region of interest
            keep_outside: If True, outside pixels are dimmed to a third;
                          otherwise they become fully transparent

        Returns:
            New RGBA image
        """
        result = image.copy()
        if not roi.is_valid:
            return result

        h, w = image.shape[:2]
        left, top, right, bottom = roi.to_rect(w, h)

        outside = np.ones((h, w), dtype=bool)
        outside[max(top, 0):max(bottom, 0), max(left, 0):max(right, 0)] = False

        if keep_outside:
            result[outside, :3] = result[outside, :3] // 3
        else:
            result[outside] = 0

        return result

    def draw_roi_overlay(
        self,
        image: np.ndarray,
        roi: ROI,
        color: Tuple[int, int, int, int] = (33, 150, 243, 255),  # Blue (RGBA)
        stroke_width: int = 3,
        show_handles: bool = True,
    ) -> np.ndarray:
        """
        Draw the ROI border and handles on a copy of an RGBA image.

        The area outside the ROI is darkened with 50% black.
        """
        result = image.copy()
        if not roi.is_valid:
            return result

        h, w = image.shape[:2]
        left, top, right, bottom = roi.to_rect(w, h)

        outside = np.ones((h, w), dtype=bool)
        outside[top:bottom, left:right] = False
        result[outside, :3] = (result[outside, :3] * 0.5).astype(np.uint8)

        cv2.rectangle(result, (left, top), (right, bottom), color, stroke_width, cv2.LINE_AA)

        if show_handles:
            radius = stroke_width * 3
            edge_radius = max(1, int(radius * 0.7))
            mid_x = (left + right) // 2
            mid_y = (top + bottom) // 2

            for cx, cy in ((left, top), (right, top), (left, bottom), (right, bottom)):
                cv2.circle(result, (cx, cy), radius, color, -1, cv2.LINE_AA)
            for cx, cy in ((mid_x, top), (mid_x, bottom), (left, mid_y), (right, mid_y)):
                cv2.circle(result, (cx, cy), edge_radius, color, -1, cv2.LINE_AA)

        return result


# Global service instance - uses settings from config
roi_processor = ROIProcessor()
