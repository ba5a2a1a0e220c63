"""
Resolution engine configuration.

Scoring weights, similarity thresholds and oracle limits were tuned
empirically and retuned several times, so every value lives here as
configuration with a documented default rather than inside the algorithms.

Environment Variables (defaults in parentheses):
- FTS_WEIGHT_HEADLINE (10.0), FTS_WEIGHT_SUMMARY (5.0), FTS_WEIGHT_BODY (1.0)
- DEDUP_LOOKBACK_DAYS (30): prior days eligible for matching
- DEDUP_MIN_TERM_LENGTH (3): shortest query term kept
- DEDUP_BORDERLINE_MIN (80.0): lowest score sent to arbitration
- DEDUP_UPDATE_MIN (150.0): lowest score auto-resolved as UPDATE
- DEDUP_DUPLICATE_MIN (200.0): scores strictly above are auto-skipped
- ORACLE_MODEL (claude-sonnet-4-5-20250929), ORACLE_MAX_TOKENS (1024),
  ORACLE_TEMPERATURE (0.1), ORACLE_TIMEOUT_SECONDS (60)
- ORACLE_MAX_ATTEMPTS (2), ORACLE_BASE_DELAY_SECONDS (2.0)
- ORACLE_MIN_INTERVAL_SECONDS (0.5), ORACLE_WORKERS (4)
- BATCH_TIMEOUT_SECONDS (900)
- PUBLICATION_TYPE (daily)

Score polarity: all thresholds are on the positive similarity scale
produced by LexicalIndex (negated FTS5 bm25), higher means more similar.
"""

import logging
import os
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


# =============================================================================
# Environment Variable Helpers
# =============================================================================

def _get_env_float(key: str, default: float) -> float:
    """Get float value from environment variable."""
    val = os.getenv(key)
    if val is not None:
        try:
            return float(val)
        except ValueError:
            logger.warning(f"[Settings] Invalid float for {key}: {val}, using default: {default}")
    return default


def _get_env_int(key: str, default: int) -> int:
    """Get integer value from environment variable."""
    val = os.getenv(key)
    if val is not None:
        try:
            return int(val)
        except ValueError:
            logger.warning(f"[Settings] Invalid integer for {key}: {val}, using default: {default}")
    return default


def _get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean value from environment variable."""
    val = os.getenv(key, "").lower()
    if val in ("true", "1", "yes", "on"):
        return True
    elif val in ("false", "0", "no", "off"):
        return False
    return default


# =============================================================================
# Configuration Sections
# =============================================================================

@dataclass(frozen=True)
class ScoringConfig:
    """Lexical index tuning: BM25 field weights and candidate window."""
    headline_weight: float = 10.0
    summary_weight: float = 5.0
    body_weight: float = 1.0
    lookback_days: int = 30
    min_term_length: int = 3

    def __post_init__(self):
        if min(self.headline_weight, self.summary_weight, self.body_weight) < 0:
            raise ValueError("Field weights must be non-negative")
        if self.lookback_days < 1:
            raise ValueError("lookback_days must be at least 1")
        if self.min_term_length < 1:
            raise ValueError("min_term_length must be at least 1")

    @classmethod
    def from_env(cls) -> "ScoringConfig":
        return cls(
            headline_weight=_get_env_float("FTS_WEIGHT_HEADLINE", cls.headline_weight),
            summary_weight=_get_env_float("FTS_WEIGHT_SUMMARY", cls.summary_weight),
            body_weight=_get_env_float("FTS_WEIGHT_BODY", cls.body_weight),
            lookback_days=_get_env_int("DEDUP_LOOKBACK_DAYS", cls.lookback_days),
            min_term_length=_get_env_int("DEDUP_MIN_TERM_LENGTH", cls.min_term_length),
        )


@dataclass(frozen=True)
class ThresholdConfig:
    """
    Similarity bands for the classifier.

    Bands, from least to most similar:
        score <  borderline_min                 -> NEW
        borderline_min <= score < update_min    -> BORDERLINE
        update_min <= score <= duplicate_min    -> AUTO_UPDATE
        score >  duplicate_min                  -> AUTO_DUPLICATE
    """
    borderline_min: float = 80.0
    update_min: float = 150.0
    duplicate_min: float = 200.0

    def __post_init__(self):
        if not (0 <= self.borderline_min <= self.update_min <= self.duplicate_min):
            raise ValueError(
                "Thresholds must satisfy 0 <= borderline_min <= update_min <= duplicate_min "
                f"(got {self.borderline_min}, {self.update_min}, {self.duplicate_min})"
            )

    @classmethod
    def from_env(cls) -> "ThresholdConfig":
        return cls(
            borderline_min=_get_env_float("DEDUP_BORDERLINE_MIN", cls.borderline_min),
            update_min=_get_env_float("DEDUP_UPDATE_MIN", cls.update_min),
            duplicate_min=_get_env_float("DEDUP_DUPLICATE_MIN", cls.duplicate_min),
        )


@dataclass(frozen=True)
class OracleConfig:
    """Arbitration oracle model, retry and rate limits."""
    model: str = "claude-sonnet-4-5-20250929"
    max_tokens: int = 1024
    temperature: float = 0.1
    timeout_seconds: float = 60.0
    max_attempts: int = 2
    base_delay_seconds: float = 2.0
    min_interval_seconds: float = 0.5
    workers: int = 4

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.workers < 1:
            raise ValueError("workers must be at least 1")

    @classmethod
    def from_env(cls) -> "OracleConfig":
        return cls(
            model=os.getenv("ORACLE_MODEL", cls.model),
            max_tokens=_get_env_int("ORACLE_MAX_TOKENS", cls.max_tokens),
            temperature=_get_env_float("ORACLE_TEMPERATURE", cls.temperature),
            timeout_seconds=_get_env_float("ORACLE_TIMEOUT_SECONDS", cls.timeout_seconds),
            max_attempts=_get_env_int("ORACLE_MAX_ATTEMPTS", cls.max_attempts),
            base_delay_seconds=_get_env_float("ORACLE_BASE_DELAY_SECONDS", cls.base_delay_seconds),
            min_interval_seconds=_get_env_float("ORACLE_MIN_INTERVAL_SECONDS", cls.min_interval_seconds),
            workers=_get_env_int("ORACLE_WORKERS", cls.workers),
        )


@dataclass(frozen=True)
class PipelineConfig:
    """Batch-level limits."""
    batch_timeout_seconds: float = 900.0
    query_workers: int = 4
    publication_type: str = "daily"
    regenerate_on_skip: bool = True

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        return cls(
            batch_timeout_seconds=_get_env_float("BATCH_TIMEOUT_SECONDS", cls.batch_timeout_seconds),
            query_workers=_get_env_int("QUERY_WORKERS", cls.query_workers),
            publication_type=os.getenv("PUBLICATION_TYPE", cls.publication_type),
            regenerate_on_skip=_get_env_bool("PUBLICATION_REGENERATE_ON_SKIP", cls.regenerate_on_skip),
        )


@dataclass(frozen=True)
class ResolverSettings:
    """All engine settings, passed explicitly to the components."""
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    thresholds: ThresholdConfig = field(default_factory=ThresholdConfig)
    oracle: OracleConfig = field(default_factory=OracleConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)

    @classmethod
    def from_env(cls) -> "ResolverSettings":
        settings = cls(
            scoring=ScoringConfig.from_env(),
            thresholds=ThresholdConfig.from_env(),
            oracle=OracleConfig.from_env(),
            pipeline=PipelineConfig.from_env(),
        )
        logger.debug(f"[Settings] Loaded: {settings}")
        return settings
