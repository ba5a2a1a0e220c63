"""
Resolver state management for API integration.

Provides singleton access to the BatchResolver instance.
Initialized during FastAPI lifespan.

Usage:
    from ._resolver_state import get_resolver, init_resolver

    # In lifespan:
    init_resolver(db_path)

    # In routers:
    resolver = get_resolver()
"""

from pathlib import Path
from typing import Optional

from src.infra.settings import ResolverSettings
from src.oracle.base import ArbitrationOracle
from src.resolution.assembler import PublicationSummarizer
from src.resolution.pipeline import BatchResolver


# Global resolver instance
_resolver: Optional[BatchResolver] = None


def init_resolver(
    db_path: str | Path,
    settings: Optional[ResolverSettings] = None,
    oracle: Optional[ArbitrationOracle] = None,
    summarizer: Optional[PublicationSummarizer] = None,
) -> BatchResolver:
    """
    Initialize the resolver singleton.

    Idempotent: an already initialized resolver is returned unchanged.
    """
    global _resolver

    if _resolver is not None:
        return _resolver

    _resolver = BatchResolver.create(
        db_path,
        settings=settings,
        oracle=oracle,
        summarizer=summarizer,
    )
    return _resolver


def get_resolver() -> BatchResolver:
    """
    Get the resolver singleton.

    Raises:
        RuntimeError: If the resolver is not initialized
    """
    if _resolver is None:
        raise RuntimeError(
            "Resolver not initialized. "
            "Ensure init_resolver() is called during startup."
        )

    return _resolver


def shutdown_resolver() -> None:
    """Drop the resolver singleton. Called during FastAPI lifespan shutdown."""
    global _resolver
    _resolver = None
