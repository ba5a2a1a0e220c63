"""
Resolution Domain Entities.

- CandidateArticle: ephemeral draft for one batch, staged until resolved
- CanonicalArticle: permanent, identity-stable record of a published story
- ResolutionRecord: the single NEW/UPDATE/SKIP decision for a candidate
- ResolutionAmendment: audit record overturning a decision (never an edit)
- UpdateEntry: append-only follow-up merged into a canonical article
- Publication / PublicationMember: the daily aggregate exposed downstream
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class Decision(str, Enum):
    """Final resolution of a candidate."""

    NEW = "NEW"
    UPDATE = "UPDATE"
    SKIP = "SKIP"


class DecisionSource(str, Enum):
    """
    How a decision was reached.

    - THRESHOLD: classifier band, no model involved
    - ARBITER: arbitration oracle for a BORDERLINE score
    - MANUAL: operator triage of an unresolved candidate
    """

    THRESHOLD = "threshold"
    ARBITER = "arbiter"
    MANUAL = "manual"


class SimilarityTier(str, Enum):
    """Coarse classifier output for a best-match score."""

    NEW = "NEW"
    BORDERLINE = "BORDERLINE"
    AUTO_UPDATE = "AUTO_UPDATE"
    AUTO_DUPLICATE = "AUTO_DUPLICATE"


class Confidence(str, Enum):
    """Arbiter confidence in its decision."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class SeverityChange(str, Enum):
    """How an update changes the severity of the story it follows up."""

    INCREASED = "increased"
    DECREASED = "decreased"
    UNCHANGED = "unchanged"


class MemberRole(str, Enum):
    """Role of a canonical article within a publication."""

    PRIMARY = "primary"
    UPDATE = "update"


def now_iso() -> str:
    """Get current time as ISO format string."""
    return datetime.utcnow().isoformat() + "Z"


@dataclass
class CandidateArticle:
    """
    Freshly drafted article awaiting resolution.

    candidate_id is only unique within its batch_date.
    """

    candidate_id: str
    headline: str
    summary: str
    body: str
    batch_date: str

    def searchable_text(self) -> str:
        return f"{self.headline} {self.summary} {self.body}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "candidate_id": self.candidate_id,
            "headline": self.headline,
            "summary": self.summary,
            "body": self.body,
            "batch_date": self.batch_date,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], batch_date: Optional[str] = None) -> "CandidateArticle":
        date = data.get("batch_date") or batch_date
        if not date:
            raise ValueError(f"Candidate {data.get('candidate_id')!r} has no batch_date")
        for key in ("candidate_id", "headline", "summary", "body"):
            if not data.get(key):
                raise ValueError(f"Candidate is missing required field: {key}")
        return cls(
            candidate_id=str(data["candidate_id"]),
            headline=data["headline"],
            summary=data["summary"],
            body=data["body"],
            batch_date=date,
        )


@dataclass
class CanonicalArticle:
    """
    Permanent record of a published story.

    canonical_id and slug are assigned once on a NEW resolution and never
    change; UPDATEs only bump update_count and last_updated_date.
    """

    canonical_id: str
    slug: str
    headline: str
    summary: str
    body: str
    first_published_date: str
    update_count: int = 0
    source_candidate_id: Optional[str] = None
    last_updated_date: Optional[str] = None
    created_at: str = field(default_factory=now_iso)

    def searchable_text(self) -> str:
        return f"{self.headline} {self.summary} {self.body}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "canonical_id": self.canonical_id,
            "slug": self.slug,
            "headline": self.headline,
            "summary": self.summary,
            "body": self.body,
            "first_published_date": self.first_published_date,
            "update_count": self.update_count,
            "source_candidate_id": self.source_candidate_id,
            "last_updated_date": self.last_updated_date,
            "created_at": self.created_at,
        }


@dataclass
class ResolutionRecord:
    """
    The one decision recorded for a candidate.

    matched_canonical_id and the update_* fields are set only for UPDATE.
    nearest_canonical_id keeps the best lexical match for audit whatever the
    decision was.
    """

    candidate_id: str
    batch_date: str
    decision: Decision
    decision_source: DecisionSource
    lexical_score: Optional[float] = None
    matched_canonical_id: Optional[str] = None
    rationale: Optional[str] = None
    similarity_tier: Optional[SimilarityTier] = None
    nearest_canonical_id: Optional[str] = None
    confidence: Optional[Confidence] = None
    update_summary: Optional[str] = None
    update_content: Optional[str] = None
    severity_change: Optional[SeverityChange] = None
    recorded_at: str = field(default_factory=now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "candidate_id": self.candidate_id,
            "batch_date": self.batch_date,
            "decision": self.decision.value,
            "decision_source": self.decision_source.value,
            "lexical_score": self.lexical_score,
            "matched_canonical_id": self.matched_canonical_id,
            "rationale": self.rationale,
            "similarity_tier": self.similarity_tier.value if self.similarity_tier else None,
            "nearest_canonical_id": self.nearest_canonical_id,
            "confidence": self.confidence.value if self.confidence else None,
            "update_summary": self.update_summary,
            "update_content": self.update_content,
            "severity_change": self.severity_change.value if self.severity_change else None,
            "recorded_at": self.recorded_at,
        }


@dataclass
class ResolutionAmendment:
    """Audit record overturning a ledger decision."""

    candidate_id: str
    decision: Decision
    rationale: str
    amended_by: str
    matched_canonical_id: Optional[str] = None
    amendment_id: Optional[int] = None
    created_at: str = field(default_factory=now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "amendment_id": self.amendment_id,
            "candidate_id": self.candidate_id,
            "decision": self.decision.value,
            "matched_canonical_id": self.matched_canonical_id,
            "rationale": self.rationale,
            "amended_by": self.amended_by,
            "created_at": self.created_at,
        }


@dataclass
class UpdateEntry:
    """
    Follow-up information appended to a canonical article.

    update_summary is the one-line teaser; update_content the full
    description of what is new. severity_change tells downstream renderers
    whether the follow-up raises or lowers the story's severity.
    """

    canonical_id: str
    update_date: str
    update_summary: str
    source_candidate_id: str
    update_content: str = ""
    severity_change: SeverityChange = SeverityChange.UNCHANGED
    update_id: Optional[int] = None
    created_at: str = field(default_factory=now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "update_id": self.update_id,
            "canonical_id": self.canonical_id,
            "update_date": self.update_date,
            "update_summary": self.update_summary,
            "update_content": self.update_content,
            "severity_change": self.severity_change.value,
            "source_candidate_id": self.source_candidate_id,
            "created_at": self.created_at,
        }


@dataclass
class PublicationMember:
    canonical_id: str
    position: int
    role: MemberRole

    def to_dict(self) -> dict[str, Any]:
        return {
            "canonical_id": self.canonical_id,
            "position": self.position,
            "role": self.role.value,
        }


@dataclass
class Publication:
    """
    Daily aggregate of canonical articles.

    The slug is a deterministic function of (pub_type, pub_date); only
    headline and summary are ever regenerated.
    """

    pub_date: str
    slug: str
    headline: str
    summary: str
    pub_type: str = "daily"
    members: list[PublicationMember] = field(default_factory=list)
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)

    @property
    def canonical_ids(self) -> list[str]:
        return [m.canonical_id for m in sorted(self.members, key=lambda m: m.position)]

    def to_dict(self) -> dict[str, Any]:
        return {
            "pub_date": self.pub_date,
            "pub_type": self.pub_type,
            "slug": self.slug,
            "headline": self.headline,
            "summary": self.summary,
            "members": [m.to_dict() for m in sorted(self.members, key=lambda m: m.position)],
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
