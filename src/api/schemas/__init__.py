"""
API Schemas package.

Pydantic models for request/response validation.
"""

from .batches import (
    CandidateIn,
    StageCandidatesRequest,
    StageCandidatesResponse,
    ResolveBatchRequest,
    BatchReportResponse,
    UnresolvedCandidate,
    UnresolvedListResponse,
)
from .ledger import (
    AmendmentRequest,
    AmendmentResponse,
    ResolutionRecordResponse,
    TriageRequest,
)
from .publications import (
    PublicationResponse,
    PublishedArticle,
    UpdateEntryResponse,
)

__all__ = [
    "CandidateIn",
    "StageCandidatesRequest",
    "StageCandidatesResponse",
    "ResolveBatchRequest",
    "BatchReportResponse",
    "UnresolvedCandidate",
    "UnresolvedListResponse",
    "AmendmentRequest",
    "AmendmentResponse",
    "ResolutionRecordResponse",
    "TriageRequest",
    "PublicationResponse",
    "PublishedArticle",
    "UpdateEntryResponse",
]
