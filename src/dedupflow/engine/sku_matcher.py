"""Near-match hints for newly seen SKUs."""
from typing import Iterable, Optional

import Levenshtein

from ..utils.logger import get_logger

logger = get_logger()


class SkuMatcher:
    """Finds the known SKU closest to a new one, to flag probable typos."""

    def __init__(self, fuzzy_threshold: int = 2):
        """
        Initialize SKU matcher.

        Args:
            fuzzy_threshold: Maximum Levenshtein distance for a match
        """
        self.fuzzy_threshold = fuzzy_threshold

    def closest(self, sku: str, known: Iterable[str]) -> Optional[str]:
        """
        Look up the nearest known SKU.

        Args:
            sku: Newly seen SKU
            known: SKUs remembered from earlier runs

        Returns:
            Closest known SKU within the threshold, or None
        """
        normalized_sku = self._normalize_sku(sku)
        best: Optional[str] = None
        best_distance = self.fuzzy_threshold + 1

        for candidate in sorted(known):
            normalized_candidate = self._normalize_sku(candidate)
            if normalized_candidate == normalized_sku:
                continue
            distance = Levenshtein.distance(normalized_sku, normalized_candidate)
            if distance < best_distance:
                best, best_distance = candidate, distance

        if best is not None:
            logger.debug(f"New SKU {sku} resembles {best} (distance: {best_distance})")
        return best

    @staticmethod
    def _normalize_sku(sku: str) -> str:
        """Normalize SKU for matching."""
        return sku.strip().upper()
