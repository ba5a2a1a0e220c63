"""
Batch operations router.

Endpoints:
- POST /batches/{batch_date}/candidates - Stage candidates
- POST /batches/{batch_date}/resolve - Resolve staged candidates
- GET /batches/{batch_date}/unresolved - List candidates awaiting resolution
"""

from datetime import date

from fastapi import APIRouter, HTTPException

from src.resolution.entities import CandidateArticle
from ..schemas.batches import (
    BatchReportResponse,
    ResolveBatchRequest,
    StageCandidatesRequest,
    StageCandidatesResponse,
    UnresolvedCandidate,
    UnresolvedListResponse,
)
from .._resolver_state import get_resolver

router = APIRouter()


def validate_batch_date(batch_date: str) -> str:
    try:
        date.fromisoformat(batch_date)
    except ValueError:
        raise HTTPException(status_code=422, detail=f"Invalid batch date: {batch_date}")
    return batch_date


@router.post("/{batch_date}/candidates", response_model=StageCandidatesResponse)
def stage_candidates(batch_date: str, request: StageCandidatesRequest):
    """
    Stage drafted candidates for a batch.

    Candidates already staged are left untouched.
    """
    validate_batch_date(batch_date)
    resolver = get_resolver()

    candidates = [
        CandidateArticle(
            candidate_id=c.candidate_id,
            headline=c.headline,
            summary=c.summary,
            body=c.body,
            batch_date=batch_date,
        )
        for c in request.candidates
    ]
    staged = resolver.store.stage_candidates(candidates)

    return StageCandidatesResponse(
        batch_date=batch_date,
        staged=staged,
        pending=len(resolver.unresolved(batch_date)),
    )


@router.post("/{batch_date}/resolve", response_model=BatchReportResponse)
def resolve_batch(batch_date: str, request: ResolveBatchRequest = ResolveBatchRequest()):
    """
    Resolve every staged candidate of a batch.

    Idempotent: candidates already in the ledger are not re-arbitrated.
    """
    validate_batch_date(batch_date)
    report = get_resolver().run(batch_date, dry_run=request.dry_run)
    return BatchReportResponse(**report.to_dict())


@router.get("/{batch_date}/unresolved", response_model=UnresolvedListResponse)
def list_unresolved(batch_date: str):
    """List candidates of a batch that are still staged."""
    validate_batch_date(batch_date)
    pending = get_resolver().unresolved(batch_date)

    return UnresolvedListResponse(
        batch_date=batch_date,
        count=len(pending),
        candidates=[
            UnresolvedCandidate(
                candidate_id=c.candidate_id,
                headline=c.headline,
                summary=c.summary,
            )
            for c in pending
        ],
    )
