"""
Deduplication module - lexical similarity search and score classification.
"""

from .lexical_index import (
    IndexMatch,
    LexicalIndex,
    build_match_query,
    extract_terms,
    lookback_window,
)
from .classifier import (
    TIER_RANK,
    SimilarityClassifier,
    tier_to_decision,
)

__all__ = [
    # Lexical index
    "IndexMatch",
    "LexicalIndex",
    "build_match_query",
    "extract_terms",
    "lookback_window",
    # Classifier
    "TIER_RANK",
    "SimilarityClassifier",
    "tier_to_decision",
]
