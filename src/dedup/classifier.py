"""
Similarity classifier - maps a best-match score onto a coarse tier.

Bands are monotonic and non-overlapping (see ThresholdConfig). Boundaries
lean away from AUTO_DUPLICATE: a score exactly at duplicate_min is an
AUTO_UPDATE, and a score exactly at update_min is AUTO_UPDATE rather than
BORDERLINE.
"""

import logging
from typing import Optional

from ..infra.settings import ThresholdConfig
from ..resolution.entities import Decision, SimilarityTier

logger = logging.getLogger(__name__)

# Ordering used to compare tiers by similarity
TIER_RANK = {
    SimilarityTier.NEW: 0,
    SimilarityTier.BORDERLINE: 1,
    SimilarityTier.AUTO_UPDATE: 2,
    SimilarityTier.AUTO_DUPLICATE: 3,
}


class SimilarityClassifier:
    """Threshold-band classifier; thresholds come from configuration."""

    def __init__(self, thresholds: Optional[ThresholdConfig] = None):
        self.thresholds = thresholds or ThresholdConfig()

    def classify(self, best_match: Optional[str], score: Optional[float]) -> SimilarityTier:
        """
        Classify the best lexical match of a candidate.

        Args:
            best_match: canonical_id of the best match, None if no match
            score: Positive similarity score of that match

        Returns:
            SimilarityTier
        """
        if best_match is None or score is None:
            return SimilarityTier.NEW

        t = self.thresholds
        if score > t.duplicate_min:
            tier = SimilarityTier.AUTO_DUPLICATE
        elif score >= t.update_min:
            tier = SimilarityTier.AUTO_UPDATE
        elif score >= t.borderline_min:
            tier = SimilarityTier.BORDERLINE
        else:
            tier = SimilarityTier.NEW

        logger.debug(f"[Classifier] score={score:.1f} match={best_match} -> {tier.value}")
        return tier


def tier_to_decision(tier: SimilarityTier) -> Optional[Decision]:
    """
    Decision implied by a tier without arbitration.

    Returns:
        None for BORDERLINE, which needs the arbitration oracle
    """
    return {
        SimilarityTier.NEW: Decision.NEW,
        SimilarityTier.AUTO_UPDATE: Decision.UPDATE,
        SimilarityTier.AUTO_DUPLICATE: Decision.SKIP,
    }.get(tier)
