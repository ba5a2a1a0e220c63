"""
Batch operation schemas.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class CandidateIn(BaseModel):
    """A drafted candidate article."""

    candidate_id: str = Field(..., min_length=1, description="Batch-scoped candidate ID")
    headline: str = Field(..., min_length=1)
    summary: str = Field(..., min_length=1)
    body: str = Field(..., min_length=1, description="Full article text")


class StageCandidatesRequest(BaseModel):
    """Request to stage candidates for a batch."""

    candidates: List[CandidateIn] = Field(..., description="Candidates drafted for the batch")


class StageCandidatesResponse(BaseModel):
    """Response from staging candidates."""

    batch_date: str
    staged: int = Field(..., description="Newly staged candidates")
    pending: int = Field(..., description="Candidates of the batch awaiting resolution")


class ResolveBatchRequest(BaseModel):
    """Request to resolve the staged candidates of a batch."""

    dry_run: bool = Field(default=False, description="Classify and arbitrate without writing")


class BatchReportResponse(BaseModel):
    """Outcome of a batch run."""

    batch_date: str
    total: int
    new: int
    update: int
    skip: int
    reused: int
    unresolved: int = Field(..., description="Candidates left for the next run or manual triage")
    failed: int = Field(..., description="Candidates whose identity mutation failed an integrity check")
    unresolved_ids: List[str] = Field(default_factory=list)
    failed_ids: List[str] = Field(default_factory=list)
    decisions: Dict[str, str] = Field(default_factory=dict, description="candidate_id -> decision")
    paused: bool = Field(default=False, description="True if the lexical index was unavailable")
    dry_run: bool = False
    publication_slug: Optional[str] = None


class UnresolvedCandidate(BaseModel):
    """Summary of a candidate awaiting resolution."""

    candidate_id: str
    headline: str
    summary: str


class UnresolvedListResponse(BaseModel):
    """Candidates of a batch awaiting resolution."""

    batch_date: str
    count: int
    candidates: List[UnresolvedCandidate] = Field(default_factory=list)
