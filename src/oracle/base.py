"""
Arbitration oracle interface.

The oracle is a narrow capability: two texts and a similarity score in, a
decision with rationale out. No prompt format or model choice leaks through
this boundary, so tests inject a scripted fake.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from ..resolution.entities import Confidence, Decision, SeverityChange


@dataclass
class ArbitrationResult:
    """Decision returned by an arbitration oracle."""
    decision: Decision
    rationale: str
    confidence: Confidence = Confidence.MEDIUM
    update_summary: Optional[str] = None
    update_content: Optional[str] = None
    severity_change: Optional[SeverityChange] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "decision": self.decision.value,
            "rationale": self.rationale,
            "confidence": self.confidence.value,
            "update_summary": self.update_summary,
            "update_content": self.update_content,
            "severity_change": self.severity_change.value if self.severity_change else None,
        }


class ArbitrationOracle(ABC):
    """Abstract base class for arbitration oracles."""

    @abstractmethod
    def arbitrate(
        self,
        candidate_text: str,
        canonical_text: str,
        score: float,
    ) -> ArbitrationResult:
        """
        Decide whether a candidate is NEW, an UPDATE of the canonical article, or a SKIP.

        Args:
            candidate_text: Full text of the candidate article
            canonical_text: Full text of the best-matching canonical article
            score: Lexical similarity score between the two

        Returns:
            ArbitrationResult

        Raises:
            TransientOracleFailure: On timeout or network failure
            AmbiguousOracleResponse: If the reply is not a valid decision
        """
        pass

    @property
    @abstractmethod
    def oracle_name(self) -> str:
        """Return oracle name for log lines and audit."""
        pass
