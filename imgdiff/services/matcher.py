"""
Keypoint matching utilities.

Descriptor correspondence search with Lowe's ratio test, plus the distance
filters and manual pairing helpers used by the interactive workflow.
"""

import logging
import math
from typing import List, Optional, Sequence

import numpy as np

from imgdiff.config import settings
from imgdiff.models import Keypoint, KeypointPair
from imgdiff.services.vision import DescriptorMatcher, MatchType, OpenCVDescriptorMatcher

logger = logging.getLogger(__name__)


class KeypointMatcher:
    """Service for matching keypoints between two images."""

    def __init__(
        self,
        descriptor_matcher: Optional[DescriptorMatcher] = None,
        lowe_ratio: float = None,
        match_type: MatchType = None,
    ):
        self.descriptor_matcher = descriptor_matcher or OpenCVDescriptorMatcher(match_type)
        self.lowe_ratio = lowe_ratio if lowe_ratio is not None else settings.match_lowe_ratio

    def match(
        self,
        source_descriptors: np.ndarray,
        target_descriptors: np.ndarray,
        source_keypoints: Sequence[Keypoint],
        target_keypoints: Sequence[Keypoint],
        lowe_ratio: float = None,
    ) -> List[KeypointPair]:
        """
        Match keypoints using descriptors with Lowe's ratio test.

        For each source descriptor the two nearest target descriptors are
        found; the nearest is accepted only if it is clearly better than the
        second nearest.

        Args:
            source_descriptors: Descriptors from the source image
            target_descriptors: Descriptors from the target image
            source_keypoints: Source keypoints (row i <-> descriptor i)
            target_keypoints: Target keypoints (row i <-> descriptor i)
            lowe_ratio: Ratio threshold (default 0.75)

        Returns:
            Accepted keypoint pairs
        """
        lowe_ratio = self.lowe_ratio if lowe_ratio is None else lowe_ratio

        if source_descriptors is None or target_descriptors is None:
            return []
        if len(source_descriptors) == 0 or len(target_descriptors) == 0:
            return []

        knn_matches = self.descriptor_matcher.knn_match(source_descriptors, target_descriptors, 2)

        pairs = []
        for match_pair in knn_matches:
            if len(match_pair) < 2:
                continue
            m, n = match_pair[0], match_pair[1]
            if not m.distance < lowe_ratio * n.distance:
                continue
            if m.queryIdx >= len(source_keypoints) or m.trainIdx >= len(target_keypoints):
                continue
            pairs.append(KeypointPair(
                source_keypoint=source_keypoints[m.queryIdx],
                target_keypoint=target_keypoints[m.trainIdx],
                match_distance=float(m.distance),
            ))

        logger.debug(f"Found {len(pairs)} good matches after ratio test ({len(knn_matches)} candidates)")
        return pairs

    def filter_by_distance(
        self,
        pairs: Sequence[KeypointPair],
        max_distance: float,
    ) -> List[KeypointPair]:
        """Keep only pairs with match distance <= max_distance."""
        return [p for p in pairs if p.match_distance <= max_distance]

    def keep_best(self, pairs: Sequence[KeypointPair], count: int) -> List[KeypointPair]:
        """Keep the `count` pairs with the smallest match distance."""
        return sorted(pairs, key=lambda p: p.match_distance)[:count]

    def manual_pairs(
        self,
        source_points: Sequence[Keypoint],
        target_points: Sequence[Keypoint],
    ) -> List[KeypointPair]:
        """
        Pair manually placed points by their order in the lists.

        Extra points on the longer side are dropped.
        """
        return [
            KeypointPair(source_keypoint=s, target_keypoint=t, match_distance=0.0)
            for s, t in zip(source_points, target_points)
        ]

    def find_closest(
        self,
        keypoints: Sequence[Keypoint],
        x: float,
        y: float,
        max_distance: float = math.inf,
    ) -> Optional[Keypoint]:
        """
        Find the keypoint closest to (x, y).

        Returns:
            The closest keypoint, or None if none is within max_distance
        """
        closest = None
        min_dist = max_distance

        for kp in keypoints:
            dist = kp.distance_to(x, y)
            if dist < min_dist:
                min_dist = dist
                closest = kp

        return closest

    @staticmethod
    def resolve_points(
        manual: Sequence[Keypoint],
        selected: Sequence[Keypoint],
    ) -> List[Keypoint]:
        """Manual placements take precedence over detected selections."""
        return list(manual) if manual else list(selected)


# Global service instance - uses settings from config
keypoint_matcher = KeypointMatcher()
