"""
Resolution module - ledger, identity and publication state of the engine.

Components are imported from their modules directly
(src.resolution.pipeline, src.resolution.assembler, ...); this package only
re-exports the entities, errors and store shared by every layer.
"""

from .entities import (
    CandidateArticle,
    CanonicalArticle,
    Confidence,
    Decision,
    DecisionSource,
    MemberRole,
    Publication,
    PublicationMember,
    ResolutionAmendment,
    ResolutionRecord,
    SeverityChange,
    SimilarityTier,
    UpdateEntry,
)
from .errors import (
    AmbiguousOracleResponse,
    CandidateNotFoundError,
    IdentityIntegrityError,
    IndexUnavailable,
    LedgerConflict,
    OracleExhaustedError,
    PublicationNotFoundError,
    ResolutionError,
    TransientOracleFailure,
)
from .persistence import ResolutionStore

__all__ = [
    # Entities
    "CandidateArticle",
    "CanonicalArticle",
    "Confidence",
    "Decision",
    "DecisionSource",
    "MemberRole",
    "Publication",
    "PublicationMember",
    "ResolutionAmendment",
    "ResolutionRecord",
    "SeverityChange",
    "SimilarityTier",
    "UpdateEntry",
    # Errors
    "AmbiguousOracleResponse",
    "CandidateNotFoundError",
    "IdentityIntegrityError",
    "IndexUnavailable",
    "LedgerConflict",
    "OracleExhaustedError",
    "PublicationNotFoundError",
    "ResolutionError",
    "TransientOracleFailure",
    # Store
    "ResolutionStore",
]
