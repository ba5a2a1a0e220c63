"""
Arbitration oracle module - LLM-backed decisions for BORDERLINE candidates.
"""

from .base import ArbitrationOracle, ArbitrationResult
from .claude_oracle import ClaudeArbitrationOracle, complete, create_client
from .retry_policy import RateLimiter, RetryingOracle, calculate_backoff
from .response import (
    extract_json_from_response,
    parse_arbitration_reply,
    parse_publication_reply,
)

__all__ = [
    "ArbitrationOracle",
    "ArbitrationResult",
    "ClaudeArbitrationOracle",
    "complete",
    "create_client",
    "RateLimiter",
    "RetryingOracle",
    "calculate_backoff",
    "extract_json_from_response",
    "parse_arbitration_reply",
    "parse_publication_reply",
]
