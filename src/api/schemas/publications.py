"""
Publication schemas.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class UpdateEntryResponse(BaseModel):
    update_id: Optional[int] = None
    canonical_id: str
    update_date: str
    update_summary: str
    update_content: str = ""
    severity_change: str = Field("unchanged", description="increased, decreased or unchanged")
    source_candidate_id: str
    created_at: str


class PublishedArticle(BaseModel):
    """A canonical article as exported with a publication."""

    canonical_id: str
    slug: str
    headline: str
    summary: str
    body: str
    first_published_date: str
    update_count: int
    last_updated_date: Optional[str] = None
    role: str = Field(..., description="primary or update")
    position: int
    updates: List[UpdateEntryResponse] = Field(default_factory=list)


class PublicationResponse(BaseModel):
    """A publication with its ordered articles."""

    pub_date: str
    pub_type: str
    slug: str
    headline: str
    summary: str
    created_at: str
    updated_at: str
    articles: List[PublishedArticle] = Field(default_factory=list)
