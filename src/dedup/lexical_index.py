"""
Lexical index over canonical articles.

SQLite FTS5 table living in the resolution database, ranked with bm25()
and per-field weights (headline > summary > body).

Score polarity:
    FTS5 bm25() returns negative values where more negative means a better
    match. The index negates it, so IndexMatch.score is a positive
    similarity: higher means more similar. Every threshold in ThresholdConfig
    is expressed on this positive scale.

Query semantics:
    The candidate text is lowercased, stripped of non-word characters and
    split into unique terms of at least min_term_length characters. Terms are
    quoted and joined with OR, so no term is mandatory and documents sharing
    more terms rank higher.
"""

import logging
import re
import sqlite3
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Optional

from ..infra.settings import ScoringConfig
from ..resolution.errors import IndexUnavailable
from ..resolution.persistence import ResolutionStore

logger = logging.getLogger(__name__)

FTS_TABLE = "articles_fts"
DEFAULT_QUERY_LIMIT = 10

_NON_WORD = re.compile(r"[^\w\s]")


@dataclass(frozen=True)
class IndexMatch:
    """A ranked lexical match. score is positive, higher is more similar."""
    canonical_id: str
    score: float


def extract_terms(text: str, min_term_length: int = 3) -> list[str]:
    """
    Extract unique query terms in first-seen order.

    Args:
        text: Free text (headline, summary and body of a candidate)
        min_term_length: Shortest term kept

    Returns:
        Lowercased, de-duplicated terms
    """
    cleaned = _NON_WORD.sub(" ", text.lower())
    seen: dict[str, None] = {}
    for word in cleaned.split():
        if len(word) >= min_term_length:
            seen.setdefault(word, None)
    return list(seen)


def build_match_query(terms: Iterable[str]) -> str:
    """Join terms into an FTS5 OR expression with each term quoted."""
    return " OR ".join(f'"{term}"' for term in terms)


def lookback_window(batch_date: str, lookback_days: int) -> tuple[str, str]:
    """
    Eligible publication window for a batch.

    Returns:
        (date_floor, date_ceiling): floor inclusive, ceiling (the batch date)
        exclusive, so nothing from the batch itself is ever eligible.
    """
    ceiling = date.fromisoformat(batch_date)
    floor = ceiling - timedelta(days=lookback_days)
    return floor.isoformat(), ceiling.isoformat()


class LexicalIndex:
    """
    Field-weighted full-text index of canonical articles.

    Writes accept an open store transaction so a canonical row and its index
    document commit together.
    """

    def __init__(self, store: ResolutionStore, config: Optional[ScoringConfig] = None):
        self.store = store
        self.config = config or ScoringConfig()
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        try:
            with self.store.transaction() as conn:
                conn.execute(f"""
                    CREATE VIRTUAL TABLE IF NOT EXISTS {FTS_TABLE} USING fts5(
                        canonical_id UNINDEXED,
                        headline,
                        summary,
                        body
                    )
                """)
        except sqlite3.DatabaseError as e:
            raise IndexUnavailable(f"Cannot initialize lexical index: {e}") from e

    def _rank_expression(self) -> str:
        # First weight belongs to the UNINDEXED canonical_id column
        c = self.config
        return (
            f"bm25({FTS_TABLE}, 0.0, {float(c.headline_weight)}, "
            f"{float(c.summary_weight)}, {float(c.body_weight)})"
        )

    def insert(
        self,
        canonical_id: str,
        headline: str,
        summary: str,
        body: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> None:
        """Insert or replace the document of a canonical article."""
        try:
            with self.store.scope(conn) as c:
                c.execute(f"DELETE FROM {FTS_TABLE} WHERE canonical_id = ?", (canonical_id,))
                c.execute(
                    f"INSERT INTO {FTS_TABLE} (canonical_id, headline, summary, body) VALUES (?, ?, ?, ?)",
                    (canonical_id, headline, summary, body),
                )
        except sqlite3.DatabaseError as e:
            raise IndexUnavailable(f"Lexical index insert failed for {canonical_id}: {e}") from e

        logger.debug(f"[LexicalIndex] Indexed {canonical_id}")

    def augment(
        self,
        canonical_id: str,
        text: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> bool:
        """
        Append text to the searchable body of an existing document.

        Never creates a document.

        Returns:
            False if no document exists for canonical_id
        """
        try:
            with self.store.scope(conn) as c:
                cursor = c.execute(
                    f"UPDATE {FTS_TABLE} SET body = body || ' ' || ? WHERE canonical_id = ?",
                    (text, canonical_id),
                )
                updated = cursor.rowcount > 0
        except sqlite3.DatabaseError as e:
            raise IndexUnavailable(f"Lexical index augment failed for {canonical_id}: {e}") from e

        if not updated:
            logger.warning(f"[LexicalIndex] No document to augment for {canonical_id}")
        return updated

    def query(
        self,
        text: str,
        excluded_ids: Iterable[str] = (),
        date_floor: Optional[str] = None,
        date_ceiling: Optional[str] = None,
        limit: int = DEFAULT_QUERY_LIMIT,
    ) -> list[IndexMatch]:
        """
        Rank eligible canonical articles against text, best match first.

        Args:
            text: Candidate text
            excluded_ids: Canonical ids never returned
            date_floor: Earliest first_published_date allowed (inclusive)
            date_ceiling: first_published_date must be strictly before this
            limit: Maximum matches returned

        Returns:
            Matches sorted by descending score; empty when nothing matches

        Raises:
            IndexUnavailable: If the backing store cannot be read
        """
        terms = extract_terms(text, self.config.min_term_length)
        if not terms:
            logger.debug("[LexicalIndex] No usable query terms")
            return []

        excluded = sorted(set(excluded_ids))
        sql = f"""
            SELECT {FTS_TABLE}.canonical_id AS canonical_id,
                   {self._rank_expression()} AS bm25_score
            FROM {FTS_TABLE}
            JOIN canonical_articles c ON c.canonical_id = {FTS_TABLE}.canonical_id
            WHERE {FTS_TABLE} MATCH ?
        """
        params: list = [build_match_query(terms)]

        if date_floor is not None:
            sql += " AND c.first_published_date >= ?"
            params.append(date_floor)
        if date_ceiling is not None:
            sql += " AND c.first_published_date < ?"
            params.append(date_ceiling)
        if excluded:
            placeholders = ", ".join("?" for _ in excluded)
            sql += f" AND c.canonical_id NOT IN ({placeholders})"
            params.extend(excluded)

        sql += " ORDER BY bm25_score ASC LIMIT ?"
        params.append(limit)

        try:
            with self.store.connection() as conn:
                rows = conn.execute(sql, params).fetchall()
        except sqlite3.DatabaseError as e:
            raise IndexUnavailable(f"Lexical index query failed: {e}") from e

        matches = [IndexMatch(canonical_id=row["canonical_id"], score=-row["bm25_score"]) for row in rows]
        logger.debug(
            f"[LexicalIndex] {len(terms)} terms, {len(matches)} matches"
            + (f", best={matches[0].score:.1f}" if matches else "")
        )
        return matches

    def best_match(
        self,
        text: str,
        excluded_ids: Iterable[str] = (),
        date_floor: Optional[str] = None,
        date_ceiling: Optional[str] = None,
    ) -> Optional[IndexMatch]:
        matches = self.query(text, excluded_ids, date_floor, date_ceiling, limit=1)
        return matches[0] if matches else None

    def count(self) -> int:
        try:
            with self.store.connection() as conn:
                return conn.execute(f"SELECT COUNT(*) AS cnt FROM {FTS_TABLE}").fetchone()["cnt"]
        except sqlite3.DatabaseError as e:
            raise IndexUnavailable(f"Lexical index count failed: {e}") from e

    def contains(self, canonical_id: str) -> bool:
        with self.store.connection() as conn:
            row = conn.execute(
                f"SELECT 1 FROM {FTS_TABLE} WHERE canonical_id = ?",
                (canonical_id,),
            ).fetchone()
        return row is not None
