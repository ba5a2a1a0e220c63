"""
Pytest configuration and shared fixtures.
"""

import os
import threading
from typing import Optional

import pytest

from src.dedup.lexical_index import IndexMatch, LexicalIndex
from src.infra.settings import OracleConfig, PipelineConfig, ResolverSettings
from src.oracle.base import ArbitrationOracle, ArbitrationResult
from src.resolution.entities import CandidateArticle, CanonicalArticle, Decision
from src.resolution.errors import IndexUnavailable
from src.resolution.identity import slugify
from src.resolution.persistence import ResolutionStore


BATCH_DATE = "2025-10-14"
PRIOR_DATE = "2025-10-12"


@pytest.fixture(autouse=True, scope="function")
def reset_auth_module():
    """
    Reset auth module state before each test.

    This ensures tests run with API_AUTH_ENABLED=false by default,
    unless the test explicitly sets it otherwise.
    """
    # Store original values
    original_auth_enabled = os.environ.get("API_AUTH_ENABLED")
    original_api_key = os.environ.get("API_KEY")

    # Set defaults for tests (auth disabled)
    os.environ["API_AUTH_ENABLED"] = "false"

    yield

    # Restore original values
    if original_auth_enabled is not None:
        os.environ["API_AUTH_ENABLED"] = original_auth_enabled
    elif "API_AUTH_ENABLED" in os.environ:
        del os.environ["API_AUTH_ENABLED"]

    if original_api_key is not None:
        os.environ["API_KEY"] = original_api_key
    elif "API_KEY" in os.environ:
        del os.environ["API_KEY"]

    # Reload auth module to reset state
    try:
        import importlib
        import src.api.dependencies.auth as auth_module
        importlib.reload(auth_module)
    except ImportError:
        pass


# =============================================================================
# Fakes
# =============================================================================

class ScriptedOracle(ArbitrationOracle):
    """
    Oracle replaying scripted outcomes.

    Outcomes are keyed by a fragment of the candidate text; each key holds a
    list consumed in order, the last entry repeating. An outcome that is an
    exception instance is raised instead of returned.
    """

    def __init__(self, script: Optional[dict] = None, default: Optional[ArbitrationResult] = None):
        self.script = {
            key: list(value) if isinstance(value, list) else [value]
            for key, value in (script or {}).items()
        }
        self.default = default or ArbitrationResult(
            decision=Decision.NEW,
            rationale="Different incident",
        )
        self.calls: list[tuple[str, str, float]] = []
        self._lock = threading.Lock()

    def on(self, fragment: str, *outcomes) -> None:
        self.script[fragment] = list(outcomes)

    @property
    def oracle_name(self) -> str:
        return "scripted"

    def arbitrate(self, candidate_text: str, canonical_text: str, score: float) -> ArbitrationResult:
        with self._lock:
            self.calls.append((candidate_text, canonical_text, score))
            outcome = self.default
            for key, outcomes in self.script.items():
                if key in candidate_text:
                    outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
                    break

        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class ScriptedIndex(LexicalIndex):
    """
    Lexical index with scripted scores.

    Writes go to the real FTS5 table unless writes_unavailable is set; queries
    return the scripted matches of the fragments found in the candidate text.
    """

    def __init__(self, store: ResolutionStore, config=None):
        super().__init__(store, config)
        self.scores: dict[str, tuple[str, float]] = {}
        self.unavailable = False
        self.writes_unavailable = False
        self.queries: list[dict] = []

    def script(self, fragment: str, canonical_id: str, score: float) -> None:
        self.scores[fragment] = (canonical_id, score)

    def insert(self, *args, **kwargs):
        if self.writes_unavailable:
            raise IndexUnavailable("database is locked")
        return super().insert(*args, **kwargs)

    def augment(self, *args, **kwargs):
        if self.writes_unavailable:
            raise IndexUnavailable("database is locked")
        return super().augment(*args, **kwargs)

    def query(self, text, excluded_ids=(), date_floor=None, date_ceiling=None, limit=10):
        if self.unavailable:
            raise IndexUnavailable("database is locked")

        excluded = set(excluded_ids)
        self.queries.append({
            "text": text,
            "excluded_ids": excluded,
            "date_floor": date_floor,
            "date_ceiling": date_ceiling,
        })
        matches = [
            IndexMatch(canonical_id=canonical_id, score=score)
            for fragment, (canonical_id, score) in self.scores.items()
            if fragment in text and canonical_id not in excluded
        ]
        matches.sort(key=lambda m: -m.score)
        return matches[:limit]


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def temp_db_path(tmp_path):
    """Path to a fresh resolution database."""
    return tmp_path / "resolution.db"


@pytest.fixture
def store(temp_db_path):
    return ResolutionStore(temp_db_path)


@pytest.fixture
def index(store):
    return LexicalIndex(store)


@pytest.fixture
def scripted_index(store):
    return ScriptedIndex(store)


@pytest.fixture
def fast_settings():
    """Settings without retry or rate-limit delays."""
    return ResolverSettings(
        oracle=OracleConfig(base_delay_seconds=0.0, min_interval_seconds=0.0, workers=2),
        pipeline=PipelineConfig(batch_timeout_seconds=30.0, query_workers=2),
    )


@pytest.fixture
def make_candidate():
    """Factory for candidates of the default batch."""

    def _make(
        candidate_id: str,
        headline: Optional[str] = None,
        summary: Optional[str] = None,
        body: Optional[str] = None,
        batch_date: str = BATCH_DATE,
    ) -> CandidateArticle:
        headline = headline or f"Headline {candidate_id}"
        return CandidateArticle(
            candidate_id=candidate_id,
            headline=headline,
            summary=summary or f"Summary of {headline}",
            body=body or f"Body of {headline}",
            batch_date=batch_date,
        )

    return _make


@pytest.fixture
def seed_canonical(store):
    """
    Factory inserting a published canonical article and its index document.

    The index used is the one passed in, or a plain LexicalIndex on the store.
    """

    def _seed(
        canonical_id: str,
        headline: str,
        summary: Optional[str] = None,
        body: Optional[str] = None,
        published: str = PRIOR_DATE,
        index: Optional[LexicalIndex] = None,
    ) -> CanonicalArticle:
        index = index or LexicalIndex(store)
        article = CanonicalArticle(
            canonical_id=canonical_id,
            slug=slugify(headline),
            headline=headline,
            summary=summary or f"Summary of {headline}",
            body=body or f"Body of {headline}",
            first_published_date=published,
        )
        with store.transaction() as conn:
            store.insert_canonical(article, conn)
            index.insert(
                article.canonical_id,
                article.headline,
                article.summary,
                article.body,
                conn=conn,
            )
        return article

    return _seed


@pytest.fixture
def oracle():
    return ScriptedOracle()


@pytest.fixture
def resolver(store, scripted_index, oracle, fast_settings):
    """Batch resolver wired to the scripted index and oracle."""
    from src.resolution.pipeline import BatchResolver

    return BatchResolver(store, oracle, settings=fast_settings, index=scripted_index)
