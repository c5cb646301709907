"""
Shared fixtures: synthetic RGBA images and deterministic vision fakes.
"""

import cv2
import numpy as np
import pytest


def solid_rgba(width, height, rgb=(255, 255, 255), alpha=255):
    """Create a uniform RGBA image."""
    image = np.zeros((height, width, 4), dtype=np.uint8)
    image[..., :3] = rgb
    image[..., 3] = alpha
    return image


def textured_rgba(width=400, height=400, seed=7, margin=40):
    """
    Create an image full of random high-contrast shapes.

    Shapes stay `margin` pixels away from the border so small shifts do not
    clip any content.
    """
    rng = np.random.default_rng(seed)
    gray = np.full((height, width), 128, dtype=np.uint8)

    for _ in range(70):
        x = int(rng.integers(margin, width - margin))
        y = int(rng.integers(margin, height - margin))
        value = int(rng.integers(0, 256))
        if rng.random() < 0.5:
            radius = int(rng.integers(4, 18))
            cv2.circle(gray, (x, y), radius, value, -1)
        else:
            w = int(rng.integers(6, 30))
            h = int(rng.integers(6, 30))
            cv2.rectangle(gray, (x, y), (min(x + w, width - margin), min(y + h, height - margin)), value, -1)

    gray = cv2.GaussianBlur(gray, (3, 3), 0)
    return cv2.cvtColor(gray, cv2.COLOR_GRAY2RGBA)


def translate(image, dx, dy):
    """Shift an image by (dx, dy) pixels, filling with the border value."""
    h, w = image.shape[:2]
    matrix = np.float32([[1, 0, dx], [0, 1, dy]])
    return cv2.warpAffine(image, matrix, (w, h), flags=cv2.INTER_NEAREST, borderMode=cv2.BORDER_REPLICATE)


class FakeFeatureDetector:
    """Returns queued (keypoints, descriptors) results in call order."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = []

    def detect_and_compute(self, gray, mask):
        self.calls.append((gray.shape, mask))
        return self.results.pop(0)


class RaisingFeatureDetector:
    """Simulates a fault inside the vision backend."""

    def detect_and_compute(self, gray, mask):
        raise RuntimeError("simulated backend fault")


class FakeDescriptorMatcher:
    """Returns a fixed list of knn candidate lists."""

    def __init__(self, knn_matches):
        self.knn_matches = knn_matches

    def knn_match(self, query, train, k):
        return self.knn_matches


class FakeHomographySolver:
    """Returns a fixed (matrix, mask) result."""

    def __init__(self, matrix=None, mask=None):
        self.matrix = matrix
        self.mask = mask
        self.calls = []

    def find_homography(self, points_from, points_to, reproj_threshold):
        self.calls.append((points_from.copy(), points_to.copy()))
        return self.matrix, self.mask


def grid_keypoints(points, response=0.5):
    """OpenCV keypoints and one-hot descriptors for a list of (x, y) points."""
    keypoints = [cv2.KeyPoint(float(x), float(y), 10.0, 0.0, response, 0) for x, y in points]
    descriptors = np.zeros((len(points), 128), dtype=np.float32)
    for i in range(len(points)):
        descriptors[i, i] = 10.0
    return keypoints, descriptors


@pytest.fixture
def white_image():
    return solid_rgba(100, 100)


@pytest.fixture
def textured_image():
    return textured_rgba()


@pytest.fixture
def scene_points():
    """Non-collinear points spread over a 400x400 image."""
    return [(60, 70), (320, 80), (90, 300), (300, 310), (200, 150), (150, 220)]
