"""
Difference detection service for comparing aligned images.

Computes per-pixel difference masks between a source image and an aligned
target in one of six modes, renders a visualization for each, and extracts
labeled regions for the threshold-based modes.

Key features:
- Size tolerance: images of different sizes are both rescaled to the
  smaller width and height before comparison.
- Morphological cleanup: removes isolated noise and closes small gaps.
- Region filtering: ignores connected regions below a configurable area.

Every mode is a pure function of (source, target, threshold); the
DiffCalculator only normalizes inputs and dispatches.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

import cv2
import numpy as np

from imgdiff.config import settings
from imgdiff.services.image_utils import resize_to_match, to_gray

logger = logging.getLogger(__name__)

# Visualization colors (RGB)
CHANGED_COLOR = (255, 152, 0)       # Orange tint for PIXEL_DIFF / STRUCTURAL
SOURCE_BRIGHTER_COLOR = (0, 200, 0)  # Green in HIGHLIGHT
TARGET_BRIGHTER_COLOR = (220, 0, 0)  # Red in HIGHLIGHT
NEUTRAL_GRAY = 128


class DiffMode(str, Enum):
    """Available difference calculation modes."""
    PIXEL_DIFF = "PIXEL_DIFF"
    STRUCTURAL = "STRUCTURAL"
    ABSOLUTE = "ABSOLUTE"
    OVERLAY = "OVERLAY"
    HIGHLIGHT = "HIGHLIGHT"
    MINUS = "MINUS"


@dataclass
class DiffRegion:
    """A detected difference region."""
    id: int
    bbox: Tuple[int, int, int, int]  # x, y, width, height
    area: int
    centroid: Tuple[float, float]  # x, y

    def to_rect(self) -> Tuple[int, int, int, int]:
        """Bounding box as (left, top, right, bottom)."""
        x, y, w, h = self.bbox
        return x, y, x + w, y + h


@dataclass(frozen=True)
class DiffResult:
    """Result of a difference calculation."""
    source_image: np.ndarray        # Source after size normalization
    target_image: np.ndarray        # Target after size normalization
    diff_visualization: np.ndarray  # RGBA rendering of the differences
    diff_mask: np.ndarray           # Binary mask, 255 = different
    diff_percentage: float
    diff_pixel_count: int
    total_pixel_count: int
    mode: DiffMode
    mean_difference: float
    diff_regions: List[DiffRegion] = field(default_factory=list)
    ssim_score: Optional[float] = None

    @property
    def has_differences(self) -> bool:
        return self.diff_pixel_count > 0


# ============================================================
# SHARED HELPERS
# ============================================================

def _threshold(diff: np.ndarray, threshold: float) -> np.ndarray:
    """Binary mask of pixels strictly greater than threshold."""
    _, mask = cv2.threshold(diff, float(threshold), 255, cv2.THRESH_BINARY)
    return mask


def _tint(image: np.ndarray, mask: np.ndarray, color: Tuple[int, int, int]) -> np.ndarray:
    """Blend `color` 50/50 into the masked pixels of an RGBA image, fully opaque."""
    result = image.copy()
    selected = mask > 0

    blended = image[selected, :3].astype(np.float32) * 0.5 + np.array(color, dtype=np.float32) * 0.5
    result[selected, :3] = np.clip(np.rint(blended), 0, 255).astype(np.uint8)
    result[selected, 3] = 255

    return result


def extract_regions(diff_mask: np.ndarray, min_region_area: int = 100) -> List[DiffRegion]:
    """
    Extract labeled regions from the difference mask.

    Args:
        diff_mask: Binary difference mask
        min_region_area: Regions with fewer pixels are skipped

    Returns:
        List of DiffRegion objects, largest first, ids starting at 1
    """
    num_labels, labels, stats, centroids = cv2.connectedComponentsWithStats(
        diff_mask, connectivity=8
    )

    regions = []

    # Skip background label 0
    for label in range(1, num_labels):
        area = int(stats[label, cv2.CC_STAT_AREA])
        if area < min_region_area:
            continue

        regions.append(DiffRegion(
            id=0,
            bbox=(
                int(stats[label, cv2.CC_STAT_LEFT]),
                int(stats[label, cv2.CC_STAT_TOP]),
                int(stats[label, cv2.CC_STAT_WIDTH]),
                int(stats[label, cv2.CC_STAT_HEIGHT]),
            ),
            area=area,
            centroid=(float(centroids[label, 0]), float(centroids[label, 1])),
        ))

    regions.sort(key=lambda r: r.area, reverse=True)

    for i, region in enumerate(regions):
        region.id = i + 1

    logger.debug(f"Extracted {len(regions)} difference regions")
    return regions


def simplified_ssim(
    gray_a: np.ndarray,
    gray_b: np.ndarray,
    window_size: int = 11,
    sigma: float = 1.5,
    c1: float = 6.5025,
    c2: float = 58.5225,
) -> float:
    """
    Global structural similarity approximation.

    Local means, variances and covariance come from Gaussian windows; the
    score combines their image-wide averages rather than averaging a per-pixel
    SSIM map. Computed in float64 and clamped to [0, 1].
    """
    a = gray_a.astype(np.float64)
    b = gray_b.astype(np.float64)
    ksize = (window_size, window_size)

    mu1 = cv2.GaussianBlur(a, ksize, sigma)
    mu2 = cv2.GaussianBlur(b, ksize, sigma)

    mu1_sq = mu1 * mu1
    mu2_sq = mu2 * mu2
    mu1_mu2 = mu1 * mu2

    sigma1_sq = cv2.GaussianBlur(a * a, ksize, sigma) - mu1_sq
    sigma2_sq = cv2.GaussianBlur(b * b, ksize, sigma) - mu2_sq
    sigma12 = cv2.GaussianBlur(a * b, ksize, sigma) - mu1_mu2

    numerator = (2 * mu1_mu2.mean() + c1) * (2 * sigma12.mean() + c2)
    denominator = (mu1_sq.mean() + mu2_sq.mean() + c1) * (sigma1_sq.mean() + sigma2_sq.mean() + c2)

    return float(np.clip(numerator / denominator, 0.0, 1.0))


def _build_result(
    source: np.ndarray,
    target: np.ndarray,
    visualization: np.ndarray,
    mask: np.ndarray,
    mode: DiffMode,
    mean_difference: float,
    regions: Optional[List[DiffRegion]] = None,
    ssim_score: Optional[float] = None,
) -> DiffResult:
    diff_pixels = int(cv2.countNonZero(mask))
    total_pixels = mask.shape[0] * mask.shape[1]

    return DiffResult(
        source_image=source,
        target_image=target,
        diff_visualization=visualization,
        diff_mask=mask,
        diff_percentage=diff_pixels / total_pixels * 100 if total_pixels > 0 else 0.0,
        diff_pixel_count=diff_pixels,
        total_pixel_count=total_pixels,
        mode=mode,
        mean_difference=float(mean_difference),
        diff_regions=regions or [],
        ssim_score=ssim_score,
    )


# ============================================================
# DIFF MODES
# ============================================================

def pixel_diff(
    source: np.ndarray,
    target: np.ndarray,
    threshold: int,
    kernel_size: int = 3,
    min_region_area: int = 100,
) -> DiffResult:
    """Grayscale difference, thresholded and cleaned with open then close."""
    diff = cv2.absdiff(to_gray(source), to_gray(target))
    mask = _threshold(diff, threshold)

    kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (kernel_size, kernel_size))
    mask = cv2.morphologyEx(mask, cv2.MORPH_OPEN, kernel)
    mask = cv2.morphologyEx(mask, cv2.MORPH_CLOSE, kernel)

    return _build_result(
        source, target,
        visualization=_tint(source, mask, CHANGED_COLOR),
        mask=mask,
        mode=DiffMode.PIXEL_DIFF,
        mean_difference=diff.mean(),
        regions=extract_regions(mask, min_region_area),
    )


def structural_diff(
    source: np.ndarray,
    target: np.ndarray,
    threshold: int,
    blur_size: int = 5,
    kernel_size: int = 5,
    min_region_area: int = 100,
    ssim_window_size: int = 11,
    ssim_sigma: float = 1.5,
    ssim_c1: float = 6.5025,
    ssim_c2: float = 58.5225,
) -> DiffResult:
    """Difference of blurred grayscale images plus a global SSIM score."""
    src_blur = cv2.GaussianBlur(to_gray(source), (blur_size, blur_size), 0)
    tgt_blur = cv2.GaussianBlur(to_gray(target), (blur_size, blur_size), 0)

    diff = cv2.absdiff(src_blur, tgt_blur)
    mask = _threshold(diff, threshold)

    kernel = cv2.getStructuringElement(cv2.MORPH_ELLIPSE, (kernel_size, kernel_size))
    mask = cv2.morphologyEx(mask, cv2.MORPH_CLOSE, kernel)

    ssim = simplified_ssim(src_blur, tgt_blur, ssim_window_size, ssim_sigma, ssim_c1, ssim_c2)

    return _build_result(
        source, target,
        visualization=_tint(source, mask, CHANGED_COLOR),
        mask=mask,
        mode=DiffMode.STRUCTURAL,
        mean_difference=diff.mean(),
        regions=extract_regions(mask, min_region_area),
        ssim_score=ssim,
    )


def absolute_diff(
    source: np.ndarray,
    target: np.ndarray,
    fixed_threshold: int = 10,
    gain: float = 3.0,
) -> DiffResult:
    """Raw per-channel difference, amplified for visibility."""
    diff = cv2.absdiff(source, target)
    diff_gray = to_gray(diff)
    mask = _threshold(diff_gray, fixed_threshold)

    visualization = np.empty_like(diff)
    visualization[..., :3] = np.clip(np.rint(diff[..., :3].astype(np.float32) * gain), 0, 255).astype(np.uint8)
    visualization[..., 3] = 255

    return _build_result(
        source, target,
        visualization=visualization,
        mask=mask,
        mode=DiffMode.ABSOLUTE,
        mean_difference=diff_gray.mean(),
    )


def overlay_diff(source: np.ndarray, target: np.ndarray, threshold: int) -> DiffResult:
    """50/50 blend of both images with differing pixels pushed to red."""
    diff = cv2.absdiff(to_gray(source), to_gray(target))
    mask = _threshold(diff, threshold)

    overlay = cv2.addWeighted(source, 0.5, target, 0.5, 0)
    selected = mask > 0
    dimmed = np.rint(overlay[selected, 1:3].astype(np.float32) * 0.3).astype(np.uint8)
    overlay[selected, 0] = 255
    overlay[selected, 1:3] = dimmed
    overlay[selected, 3] = 255

    return _build_result(
        source, target,
        visualization=overlay,
        mask=mask,
        mode=DiffMode.OVERLAY,
        mean_difference=diff.mean(),
    )


def highlight_diff(source: np.ndarray, target: np.ndarray, threshold: int) -> DiffResult:
    """
    Classify differing pixels by which image is brighter.

    Green where the source is brighter, red otherwise; unchanged pixels are
    shown as the source luminance in gray.
    """
    src_gray = to_gray(source)
    tgt_gray = to_gray(target)
    diff = cv2.absdiff(src_gray, tgt_gray)
    mask = _threshold(diff, threshold)

    h, w = src_gray.shape
    result = np.empty((h, w, 4), dtype=np.uint8)
    result[..., 0] = src_gray
    result[..., 1] = src_gray
    result[..., 2] = src_gray
    result[..., 3] = 255

    selected = mask > 0
    source_brighter = src_gray > tgt_gray
    result[selected & source_brighter, :3] = SOURCE_BRIGHTER_COLOR
    result[selected & ~source_brighter, :3] = TARGET_BRIGHTER_COLOR

    return _build_result(
        source, target,
        visualization=result,
        mask=mask,
        mode=DiffMode.HIGHLIGHT,
        mean_difference=diff.mean(),
    )


def minus_diff(
    source: np.ndarray,
    target: np.ndarray,
    fixed_threshold: int = 10,
) -> DiffResult:
    """
    Signed difference (source - target) on a diverging color ramp.

    Neutral gray where |delta| < fixed_threshold, warm where the source is
    brighter, cool where the target is brighter.
    """
    src_gray = to_gray(source)
    tgt_gray = to_gray(target)

    delta = src_gray.astype(np.float32) - tgt_gray.astype(np.float32)
    intensity = np.minimum(np.abs(delta) / 255.0, 1.0)

    r = np.full(delta.shape, float(NEUTRAL_GRAY), dtype=np.float32)
    g = r.copy()
    b = r.copy()

    positive = delta >= fixed_threshold
    negative = delta <= -fixed_threshold

    r[positive] = 128 + 127 * intensity[positive]
    g[positive] = 128 - 64 * intensity[positive]
    b[positive] = 128 - 128 * intensity[positive]

    r[negative] = 128 - 128 * intensity[negative]
    g[negative] = 128 + 64 * intensity[negative]
    b[negative] = 128 + 127 * intensity[negative]

    alpha = np.full(delta.shape, 255.0, dtype=np.float32)
    visualization = np.clip(np.rint(np.dstack([r, g, b, alpha])), 0, 255).astype(np.uint8)

    diff = cv2.absdiff(src_gray, tgt_gray)
    mask = _threshold(diff, fixed_threshold)

    return _build_result(
        source, target,
        visualization=visualization,
        mask=mask,
        mode=DiffMode.MINUS,
        mean_difference=diff.mean(),
    )


class DiffCalculator:
    """Service for computing differences between aligned images."""

    def __init__(
        self,
        default_threshold: int = None,
        fixed_threshold: int = None,
        min_region_area: int = None,
    ):
        self.default_threshold = (
            default_threshold if default_threshold is not None else settings.diff_threshold
        )
        self.fixed_threshold = (
            fixed_threshold if fixed_threshold is not None else settings.diff_fixed_threshold
        )
        self.min_region_area = (
            min_region_area if min_region_area is not None else settings.diff_min_region_area
        )

    def calculate_diff(
        self,
        source: np.ndarray,
        target: np.ndarray,
        mode: DiffMode = DiffMode.PIXEL_DIFF,
        threshold: int = None,
    ) -> DiffResult:
        """
        Calculate the difference between two RGBA images.

        Args:
            source: Source/reference image
            target: Target image (should be aligned with source)
            mode: Difference calculation mode
            threshold: Grayscale difference threshold (0-255). ABSOLUTE and
                       MINUS always use the fixed threshold.

        Returns:
            DiffResult with visualization, mask, regions and statistics
        """
        threshold = self.default_threshold if threshold is None else threshold
        mode = DiffMode(mode)

        src, tgt = resize_to_match(source, target)

        if mode == DiffMode.PIXEL_DIFF:
            result = pixel_diff(
                src, tgt, threshold,
                kernel_size=settings.diff_morph_kernel_size,
                min_region_area=self.min_region_area,
            )
        elif mode == DiffMode.STRUCTURAL:
            result = structural_diff(
                src, tgt, threshold,
                blur_size=settings.diff_structural_blur_size,
                kernel_size=settings.diff_structural_kernel_size,
                min_region_area=self.min_region_area,
                ssim_window_size=settings.ssim_window_size,
                ssim_sigma=settings.ssim_sigma,
                ssim_c1=settings.ssim_c1,
                ssim_c2=settings.ssim_c2,
            )
        elif mode == DiffMode.ABSOLUTE:
            result = absolute_diff(
                src, tgt,
                fixed_threshold=self.fixed_threshold,
                gain=settings.diff_absolute_gain,
            )
        elif mode == DiffMode.OVERLAY:
            result = overlay_diff(src, tgt, threshold)
        elif mode == DiffMode.HIGHLIGHT:
            result = highlight_diff(src, tgt, threshold)
        else:
            result = minus_diff(src, tgt, fixed_threshold=self.fixed_threshold)

        logger.info(
            f"Difference calculation ({mode.value}) complete: "
            f"{len(result.diff_regions)} regions, {result.diff_percentage:.2f}% difference"
        )

        return result


# Global service instance - uses settings from config
diff_calculator = DiffCalculator()
