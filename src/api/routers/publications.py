"""
Publications router.

Endpoints:
- GET /publications/{pub_date} - Ordered publication export
"""

from fastapi import APIRouter, HTTPException

from src.resolution.errors import PublicationNotFoundError
from ..schemas.publications import PublicationResponse
from .._resolver_state import get_resolver
from .batches import validate_batch_date

router = APIRouter()


@router.get("/{pub_date}", response_model=PublicationResponse)
def get_publication(pub_date: str):
    """
    Export a publication.

    Returns the ordered canonical articles with their update history,
    ready for rendering without further engine involvement.
    """
    validate_batch_date(pub_date)
    try:
        data = get_resolver().assembler.export_publication(pub_date)
    except PublicationNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return PublicationResponse(**data)
