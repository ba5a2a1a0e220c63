"""
Claude (Anthropic) backed arbitration oracle.

Network-level failures from the Anthropic SDK are mapped onto
TransientOracleFailure; malformed replies onto AmbiguousOracleResponse.
Neither is retried here: retry and rate limiting live in retry_policy.
"""

import logging
import os
from typing import Optional

import anthropic

from ..infra.settings import OracleConfig
from ..resolution.errors import AmbiguousOracleResponse, TransientOracleFailure
from .base import ArbitrationOracle, ArbitrationResult
from .prompts import ARBITRATION_SYSTEM_PROMPT, build_arbitration_prompt
from .response import parse_arbitration_reply

logger = logging.getLogger(__name__)

# SDK errors worth another attempt
TRANSIENT_API_ERRORS = (
    anthropic.APITimeoutError,
    anthropic.APIConnectionError,
    anthropic.RateLimitError,
    anthropic.InternalServerError,
)


def create_client(config: OracleConfig, api_key: Optional[str] = None) -> anthropic.Anthropic:
    """Create an Anthropic client with the configured request timeout."""
    return anthropic.Anthropic(
        api_key=api_key or os.getenv("ANTHROPIC_API_KEY"),
        timeout=config.timeout_seconds,
        max_retries=0,
    )


def complete(
    client: anthropic.Anthropic,
    config: OracleConfig,
    system_prompt: str,
    user_prompt: str,
) -> str:
    """
    Run one Messages API call and return the reply text.

    Raises:
        TransientOracleFailure: On timeout, connection, rate-limit or 5xx errors
        AmbiguousOracleResponse: If the reply carries no text
    """
    try:
        message = client.messages.create(
            model=config.model,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
        )
    except TRANSIENT_API_ERRORS as e:
        raise TransientOracleFailure(f"{type(e).__name__}: {e}", cause=e) from e

    if not message.content:
        raise AmbiguousOracleResponse("Empty reply from model")

    text = message.content[0].text

    if getattr(message, "usage", None):
        try:
            logger.debug(
                f"[Oracle] Tokens - Input: {message.usage.input_tokens}, "
                f"Output: {message.usage.output_tokens}"
            )
        except (AttributeError, TypeError):
            pass

    return text


class ClaudeArbitrationOracle(ArbitrationOracle):
    """Arbitration oracle using the Anthropic Messages API."""

    def __init__(
        self,
        config: Optional[OracleConfig] = None,
        api_key: Optional[str] = None,
        client: Optional[anthropic.Anthropic] = None,
    ):
        self.config = config or OracleConfig()
        self.client = client or create_client(self.config, api_key)

    @property
    def oracle_name(self) -> str:
        return f"anthropic:{self.config.model}"

    def arbitrate(
        self,
        candidate_text: str,
        canonical_text: str,
        score: float,
    ) -> ArbitrationResult:
        logger.info(f"[Oracle] Arbitrating with {self.config.model} (score={score:.1f})")

        raw = complete(
            self.client,
            self.config,
            ARBITRATION_SYSTEM_PROMPT,
            build_arbitration_prompt(candidate_text, canonical_text, score),
        )

        try:
            result = parse_arbitration_reply(raw)
        except AmbiguousOracleResponse:
            logger.warning(f"[Oracle] Ambiguous reply: {raw[:200]!r}")
            raise

        logger.info(f"[Oracle] Decision: {result.decision.value} ({result.confidence.value})")
        return result
