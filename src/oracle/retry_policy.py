"""
Retry and rate limiting around an arbitration oracle.

Backoff:
    delay = base_delay * (2 ^ attempt_number)
    Example with 2s base: 2s -> 4s -> 8s

When every attempt fails the wrapper raises OracleExhaustedError. It never
substitutes a default decision: the candidate stays unresolved.
"""

import logging
import threading
import time
from typing import Callable, Optional

from ..infra.settings import OracleConfig
from ..resolution.errors import OracleExhaustedError, TransientOracleFailure
from .base import ArbitrationOracle, ArbitrationResult

logger = logging.getLogger(__name__)


def calculate_backoff(attempt: int, base_delay_seconds: float) -> float:
    """
    Delay before the retry following a failed attempt.

    Args:
        attempt: Zero-based number of the failed attempt
        base_delay_seconds: Base delay
    """
    return base_delay_seconds * (2 ** attempt)


class RateLimiter:
    """Minimum interval between calls, shared by all worker threads."""

    def __init__(
        self,
        min_interval_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.min_interval_seconds = min_interval_seconds
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._next_slot = 0.0

    def acquire(self) -> float:
        """
        Block until the next call slot.

        Returns:
            Seconds waited
        """
        with self._lock:
            now = self._clock()
            slot = max(now, self._next_slot)
            self._next_slot = slot + self.min_interval_seconds
        wait = slot - now
        if wait > 0:
            self._sleep(wait)
        return wait


class RetryingOracle(ArbitrationOracle):
    """
    Wraps an oracle with bounded retries and rate limiting.

    Only TransientOracleFailure (including AmbiguousOracleResponse) is
    retried; anything else propagates on the first occurrence.
    """

    def __init__(
        self,
        oracle: ArbitrationOracle,
        max_attempts: int = 2,
        base_delay_seconds: float = 2.0,
        rate_limiter: Optional[RateLimiter] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.oracle = oracle
        self.max_attempts = max_attempts
        self.base_delay_seconds = base_delay_seconds
        self.rate_limiter = rate_limiter
        self._sleep = sleep

    @classmethod
    def from_config(cls, oracle: ArbitrationOracle, config: OracleConfig) -> "RetryingOracle":
        return cls(
            oracle,
            max_attempts=config.max_attempts,
            base_delay_seconds=config.base_delay_seconds,
            rate_limiter=RateLimiter(config.min_interval_seconds),
        )

    @property
    def oracle_name(self) -> str:
        return self.oracle.oracle_name

    def arbitrate(
        self,
        candidate_text: str,
        canonical_text: str,
        score: float,
    ) -> ArbitrationResult:
        last_error: Optional[TransientOracleFailure] = None

        for attempt in range(self.max_attempts):
            if attempt > 0:
                delay = calculate_backoff(attempt - 1, self.base_delay_seconds)
                logger.info(
                    f"[Oracle] Retry {attempt + 1}/{self.max_attempts} in {delay:.1f}s"
                )
                self._sleep(delay)

            if self.rate_limiter is not None:
                self.rate_limiter.acquire()

            try:
                return self.oracle.arbitrate(candidate_text, canonical_text, score)
            except TransientOracleFailure as e:
                last_error = e
                logger.warning(
                    f"[Oracle] Attempt {attempt + 1}/{self.max_attempts} failed: {e}"
                )

        raise OracleExhaustedError(self.max_attempts, last_error)
