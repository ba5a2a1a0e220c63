"""
Ledger router.

Endpoints:
- GET /ledger/{batch_date}/{candidate_id} - Resolution record with amendments
- POST /ledger/{batch_date}/{candidate_id}/amendments - Overturn a decision (audit only)
- POST /ledger/{batch_date}/{candidate_id}/triage - Manual decision for an unresolved candidate
"""

from fastapi import APIRouter, HTTPException

from src.resolution.errors import (
    CandidateNotFoundError,
    IdentityIntegrityError,
    IndexUnavailable,
    LedgerConflict,
)
from ..schemas.ledger import (
    AmendmentRequest,
    AmendmentResponse,
    ResolutionRecordResponse,
    TriageRequest,
)
from .._resolver_state import get_resolver
from .batches import validate_batch_date

router = APIRouter()


def _record_response(batch_date: str, candidate_id: str) -> ResolutionRecordResponse:
    ledger = get_resolver().ledger
    record = ledger.get(candidate_id, batch_date)
    if record is None:
        raise HTTPException(status_code=404, detail=f"No resolution for candidate: {candidate_id}")

    amendments = ledger.list_amendments(candidate_id, batch_date)
    effective = amendments[-1].decision if amendments else record.decision

    return ResolutionRecordResponse(
        **record.to_dict(),
        effective_decision=effective.value,
        amendments=[AmendmentResponse(**a.to_dict()) for a in amendments],
    )


@router.get("/{batch_date}/{candidate_id}", response_model=ResolutionRecordResponse)
def get_resolution(batch_date: str, candidate_id: str):
    """Get the ledger record of a candidate."""
    validate_batch_date(batch_date)
    return _record_response(batch_date, candidate_id)


@router.post("/{batch_date}/{candidate_id}/amendments", response_model=AmendmentResponse)
def amend_resolution(batch_date: str, candidate_id: str, request: AmendmentRequest):
    """
    Record an amendment overturning a decision.

    The original record and canonical articles are left unchanged.
    """
    validate_batch_date(batch_date)
    try:
        amendment = get_resolver().ledger.amend(
            candidate_id,
            batch_date,
            decision=request.decision,
            rationale=request.rationale,
            amended_by=request.amended_by,
            matched_canonical_id=request.matched_canonical_id,
        )
    except CandidateNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return AmendmentResponse(**amendment.to_dict())


@router.post("/{batch_date}/{candidate_id}/triage", response_model=ResolutionRecordResponse)
def triage_candidate(batch_date: str, candidate_id: str, request: TriageRequest):
    """Record and apply a manual decision for an unresolved candidate."""
    validate_batch_date(batch_date)
    try:
        get_resolver().triage(
            batch_date,
            candidate_id,
            decision=request.decision,
            rationale=request.rationale,
            matched_canonical_id=request.matched_canonical_id,
        )
    except CandidateNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except LedgerConflict as e:
        raise HTTPException(status_code=409, detail=str(e))
    except IndexUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))
    except IdentityIntegrityError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return _record_response(batch_date, candidate_id)
