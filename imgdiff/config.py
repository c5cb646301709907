"""
Engine configuration settings.
"""

import logging

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Engine settings with environment variable support."""

    debug: bool = False
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # Background worker pool used by the ImageDiffer facade
    worker_count: int = 4

    # ============================================================
    # KEYPOINT DETECTION SETTINGS
    # ============================================================

    # SIFT parameters - higher contrast threshold for fewer, stronger keypoints
    sift_max_features: int = 500
    sift_octave_layers: int = 3
    sift_contrast_threshold: float = 0.08   # OpenCV default is 0.04
    sift_edge_threshold: float = 10.0
    sift_sigma: float = 1.6

    # Post-detection filtering
    keypoint_min_response: float = 0.01
    keypoint_max_count: int = 100           # 0 = no limit

    # ============================================================
    # MATCHING / HOMOGRAPHY SETTINGS
    # ============================================================

    match_lowe_ratio: float = 0.75          # Lowe's ratio test threshold
    match_type: str = "BRUTE_FORCE"         # "BRUTE_FORCE" or "FLANN"
    min_match_count: int = 4                # Minimum correspondences for a homography

    # RANSAC parameters
    ransac_reproj_threshold: float = 5.0    # Reprojection error threshold (pixels)

    # ============================================================
    # DIFFERENCE DETECTION SETTINGS
    # ============================================================

    # Grayscale difference threshold (0-255) for PIXEL_DIFF, STRUCTURAL,
    # OVERLAY and HIGHLIGHT
    diff_threshold: int = 30

    # ABSOLUTE and MINUS always count pixels against this fixed threshold
    diff_fixed_threshold: int = 10

    # Morphological cleanup
    diff_morph_kernel_size: int = 3         # PIXEL_DIFF open + close (rect)
    diff_structural_blur_size: int = 5      # STRUCTURAL pre-blur
    diff_structural_kernel_size: int = 5    # STRUCTURAL close (ellipse)

    # Connected regions smaller than this (in pixels) are not reported
    diff_min_region_area: int = 100

    # Visibility gain applied to the ABSOLUTE diff image
    diff_absolute_gain: float = 3.0

    # Simplified SSIM
    ssim_window_size: int = 11
    ssim_sigma: float = 1.5
    ssim_c1: float = 6.5025    # (0.01 * 255)^2
    ssim_c2: float = 58.5225   # (0.03 * 255)^2

    # ============================================================
    # ROI SETTINGS
    # ============================================================

    roi_min_size: float = 0.05              # Normalized minimum ROI edge length
    roi_handle_tolerance: float = 30.0      # Handle hit radius in image pixels

    class Config:
        env_prefix = "IMGDIFF_"
        env_file = ".env"
        extra = "ignore"


# Global settings instance
settings = Settings()


def configure_logging(level: int = None) -> None:
    """Configure root logging for applications embedding the engine."""
    if level is None:
        level = logging.DEBUG if settings.debug else logging.INFO
    logging.basicConfig(level=level, format=settings.log_format)
