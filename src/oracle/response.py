"""
Parsing and validation of model replies.

Replies may wrap the JSON object in markdown fences or surrounding prose;
the object is located first, then validated with pydantic.
"""

import json
import logging
import re
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError, field_validator

from ..resolution.entities import Confidence, Decision, SeverityChange
from ..resolution.errors import AmbiguousOracleResponse
from .base import ArbitrationResult

logger = logging.getLogger(__name__)

_CODE_BLOCK = re.compile(r"```(?:json)?\s*\n?(.*?)\n?```", re.DOTALL)


def extract_json_from_response(raw_response: str) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """
    Extract a JSON object from a model reply.

    Returns:
        Tuple of (parsed_json_or_None, error_message_or_None)
    """
    if not raw_response or not raw_response.strip():
        return None, "Empty response"

    text = raw_response.strip()

    try:
        parsed = json.loads(text)
        if isinstance(parsed, dict):
            return parsed, None
    except json.JSONDecodeError:
        pass

    for match in _CODE_BLOCK.findall(text):
        try:
            parsed = json.loads(match.strip())
            if isinstance(parsed, dict):
                return parsed, None
        except json.JSONDecodeError:
            continue

    brace_start = text.find("{")
    brace_end = text.rfind("}")
    if brace_start != -1 and brace_end > brace_start:
        try:
            parsed = json.loads(text[brace_start:brace_end + 1])
            if isinstance(parsed, dict):
                return parsed, None
        except json.JSONDecodeError as e:
            return None, f"JSON parse error: {e}"

    return None, "No JSON object found in response"


class ArbitrationReply(BaseModel):
    """Validated shape of an arbitration reply."""

    decision: Decision
    confidence: Confidence = Confidence.MEDIUM
    rationale: str = Field(min_length=1)
    update_summary: Optional[str] = None
    update_content: Optional[str] = None
    severity_change: Optional[SeverityChange] = None

    @field_validator("decision", mode="before")
    @classmethod
    def _normalize_decision(cls, value: Any) -> Any:
        return value.strip().upper() if isinstance(value, str) else value

    @field_validator("confidence", "severity_change", mode="before")
    @classmethod
    def _normalize_lowercase(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value


class PublicationSummaryReply(BaseModel):
    headline: str = Field(min_length=1)
    summary: str = Field(min_length=1)


def parse_arbitration_reply(raw_response: str) -> ArbitrationResult:
    """
    Parse a raw arbitration reply.

    Raises:
        AmbiguousOracleResponse: On malformed JSON or out-of-enum values
    """
    data, error = extract_json_from_response(raw_response)
    if data is None:
        raise AmbiguousOracleResponse(f"Unparseable arbitration reply: {error}", raw_response)

    try:
        reply = ArbitrationReply.model_validate(data)
    except ValidationError as e:
        raise AmbiguousOracleResponse(
            f"Invalid arbitration reply: {e.error_count()} validation error(s)",
            raw_response,
        ) from e

    if reply.decision != Decision.UPDATE:
        return ArbitrationResult(
            decision=reply.decision,
            rationale=reply.rationale.strip(),
            confidence=reply.confidence,
        )

    return ArbitrationResult(
        decision=reply.decision,
        rationale=reply.rationale.strip(),
        confidence=reply.confidence,
        update_summary=reply.update_summary.strip() if reply.update_summary else None,
        update_content=reply.update_content.strip() if reply.update_content else None,
        severity_change=reply.severity_change,
    )


def parse_publication_reply(raw_response: str) -> PublicationSummaryReply:
    """
    Parse a publication headline/summary reply.

    Raises:
        ValueError: On malformed or incomplete replies
    """
    data, error = extract_json_from_response(raw_response)
    if data is None:
        raise ValueError(f"Unparseable publication reply: {error}")
    try:
        return PublicationSummaryReply.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid publication reply: {e}") from e
