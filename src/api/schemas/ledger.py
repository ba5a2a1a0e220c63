"""
Ledger operation schemas.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from src.resolution.entities import Decision


class AmendmentResponse(BaseModel):
    """An audit record overturning a decision."""

    amendment_id: int
    candidate_id: str
    decision: str
    matched_canonical_id: Optional[str] = None
    rationale: str
    amended_by: str
    created_at: str


class ResolutionRecordResponse(BaseModel):
    """A ledger record with its amendments."""

    candidate_id: str
    batch_date: str
    decision: str
    decision_source: str
    lexical_score: Optional[float] = None
    matched_canonical_id: Optional[str] = None
    rationale: Optional[str] = None
    similarity_tier: Optional[str] = None
    nearest_canonical_id: Optional[str] = None
    confidence: Optional[str] = None
    update_summary: Optional[str] = None
    update_content: Optional[str] = None
    severity_change: Optional[str] = None
    recorded_at: str
    effective_decision: str = Field(..., description="Latest amendment's decision, else the original")
    amendments: List[AmendmentResponse] = Field(default_factory=list)


class AmendmentRequest(BaseModel):
    """Request to overturn a decision. Audit only; canonical articles are not changed."""

    decision: Decision
    rationale: str = Field(..., min_length=1)
    amended_by: str = Field(..., min_length=1, description="Operator recording the amendment")
    matched_canonical_id: Optional[str] = Field(default=None, description="Required for UPDATE")


class TriageRequest(BaseModel):
    """Manual decision for an unresolved candidate."""

    decision: Decision
    rationale: str = Field(..., min_length=1)
    matched_canonical_id: Optional[str] = Field(default=None, description="Required for UPDATE")
