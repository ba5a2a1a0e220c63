"""
Resolution Store - SQLite persistence for all durable resolution state.

Tables:
- candidates: staged candidates of open batches (deleted once resolved)
- canonical_articles: identity-stable published stories
- article_updates: append-only follow-ups per canonical article
- resolution_ledger: one immutable decision per candidate
- resolution_amendments: audit records overturning ledger decisions
- publications / publication_members: daily aggregates

The FTS5 index lives in the same database file (see src.dedup.lexical_index)
so canonical rows and their index documents commit together.

Writes use BEGIN IMMEDIATE on WAL-mode connections: one writer at a time,
readers never blocked. Multi-step writes share a connection obtained from
transaction(); every write method accepts it as ``conn``.
"""

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

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
    now_iso,
)
from .errors import LedgerConflict


logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1.1.0"

# Seconds a writer waits for the database lock before failing
BUSY_TIMEOUT_SECONDS = 30.0


class ResolutionStore:
    """
    SQLite-backed store handle passed explicitly to every component.

    Holds no business logic: validation and decisions live in the ledger,
    identity resolver and assembler.
    """

    def __init__(self, db_path: str | Path):
        """
        Initialize the store and create the schema if needed.

        Args:
            db_path: Path to SQLite database file.
        """
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()
        logger.info(f"[Store] Resolution store ready: {self.db_path}")

    # =========================================================================
    # Connection Management
    # =========================================================================

    def _get_connection(self) -> sqlite3.Connection:
        """Get an autocommit connection with WAL mode enabled."""
        conn = sqlite3.connect(
            self.db_path,
            timeout=BUSY_TIMEOUT_SECONDS,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Context manager for read-only work."""
        conn = self._get_connection()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for an immediate (write-locked) transaction."""
        conn = self._get_connection()
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.execute("COMMIT")
        except Exception:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    @contextmanager
    def scope(self, conn: Optional[sqlite3.Connection]) -> Iterator[sqlite3.Connection]:
        """Reuse the caller's transaction, or open a new one."""
        if conn is not None:
            yield conn
        else:
            with self.transaction() as new_conn:
                yield new_conn

    @contextmanager
    def read_scope(self, conn: Optional[sqlite3.Connection]) -> Iterator[sqlite3.Connection]:
        if conn is not None:
            yield conn
        else:
            with self.connection() as new_conn:
                yield new_conn

    def _init_db(self) -> None:
        """Initialize database schema with version tracking."""
        with self.transaction() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS meta (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            """)

            row = conn.execute(
                "SELECT value FROM meta WHERE key = 'schema_version'"
            ).fetchone()
            current_version = row["value"] if row else None

            self._create_schema(conn)

            if current_version is None:
                conn.execute(
                    "INSERT INTO meta (key, value) VALUES ('schema_version', ?)",
                    (SCHEMA_VERSION,),
                )
                logger.info(f"[Store] Schema created (v{SCHEMA_VERSION})")
            elif current_version != SCHEMA_VERSION:
                self._migrate_schema(conn, current_version)
                conn.execute(
                    "UPDATE meta SET value = ? WHERE key = 'schema_version'",
                    (SCHEMA_VERSION,),
                )
                logger.info(f"[Store] Schema migrated: {current_version} -> {SCHEMA_VERSION}")

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS candidates (
                batch_date TEXT NOT NULL,
                candidate_id TEXT NOT NULL,
                headline TEXT NOT NULL,
                summary TEXT NOT NULL,
                body TEXT NOT NULL,
                staged_at TEXT NOT NULL,
                PRIMARY KEY (batch_date, candidate_id)
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS canonical_articles (
                canonical_id TEXT PRIMARY KEY,
                slug TEXT NOT NULL UNIQUE,
                headline TEXT NOT NULL,
                summary TEXT NOT NULL,
                body TEXT NOT NULL,
                first_published_date TEXT NOT NULL,
                update_count INTEGER NOT NULL DEFAULT 0,
                source_candidate_id TEXT,
                last_updated_date TEXT,
                created_at TEXT NOT NULL
            )
        """)

        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_canonical_published
            ON canonical_articles (first_published_date)
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS article_updates (
                update_id INTEGER PRIMARY KEY AUTOINCREMENT,
                canonical_id TEXT NOT NULL,
                update_date TEXT NOT NULL,
                update_summary TEXT NOT NULL,
                update_content TEXT NOT NULL DEFAULT '',
                severity_change TEXT NOT NULL DEFAULT 'unchanged',
                source_candidate_id TEXT NOT NULL,
                created_at TEXT NOT NULL,
                UNIQUE (update_date, source_candidate_id),
                FOREIGN KEY (canonical_id) REFERENCES canonical_articles(canonical_id)
            )
        """)

        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_updates_canonical
            ON article_updates (canonical_id, update_date)
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS resolution_ledger (
                batch_date TEXT NOT NULL,
                candidate_id TEXT NOT NULL,
                decision TEXT NOT NULL CHECK (decision IN ('NEW', 'UPDATE', 'SKIP')),
                decision_source TEXT NOT NULL CHECK (decision_source IN ('threshold', 'arbiter', 'manual')),
                lexical_score REAL,
                matched_canonical_id TEXT,
                rationale TEXT,
                similarity_tier TEXT,
                nearest_canonical_id TEXT,
                confidence TEXT,
                update_summary TEXT,
                update_content TEXT,
                severity_change TEXT,
                recorded_at TEXT NOT NULL,
                PRIMARY KEY (batch_date, candidate_id)
            )
        """)

        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_ledger_matched
            ON resolution_ledger (batch_date, matched_canonical_id)
            WHERE matched_canonical_id IS NOT NULL
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS resolution_amendments (
                amendment_id INTEGER PRIMARY KEY AUTOINCREMENT,
                batch_date TEXT NOT NULL,
                candidate_id TEXT NOT NULL,
                decision TEXT NOT NULL CHECK (decision IN ('NEW', 'UPDATE', 'SKIP')),
                matched_canonical_id TEXT,
                rationale TEXT NOT NULL,
                amended_by TEXT NOT NULL,
                created_at TEXT NOT NULL,
                FOREIGN KEY (batch_date, candidate_id)
                    REFERENCES resolution_ledger(batch_date, candidate_id)
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS publications (
                pub_date TEXT PRIMARY KEY,
                pub_type TEXT NOT NULL,
                slug TEXT NOT NULL UNIQUE,
                headline TEXT NOT NULL,
                summary TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS publication_members (
                pub_date TEXT NOT NULL,
                canonical_id TEXT NOT NULL,
                position INTEGER NOT NULL,
                role TEXT NOT NULL CHECK (role IN ('primary', 'update')),
                PRIMARY KEY (pub_date, canonical_id),
                FOREIGN KEY (pub_date) REFERENCES publications(pub_date),
                FOREIGN KEY (canonical_id) REFERENCES canonical_articles(canonical_id)
            )
        """)

    def _migrate_schema(self, conn: sqlite3.Connection, from_version: str) -> None:
        """
        Migrate schema from older version to current.

        Args:
            conn: Connection holding the init transaction
            from_version: Version to migrate from
        """
        logger.info(f"[Store] Schema migration: {from_version} -> {SCHEMA_VERSION}")

        if from_version == "1.0.0":
            # 1.0.0 -> 1.1.0: update content and severity change
            columns = [
                ("article_updates", "update_content TEXT NOT NULL DEFAULT ''"),
                ("article_updates", "severity_change TEXT NOT NULL DEFAULT 'unchanged'"),
                ("resolution_ledger", "update_content TEXT"),
                ("resolution_ledger", "severity_change TEXT"),
            ]
            for table, column in columns:
                try:
                    conn.execute(f"ALTER TABLE {table} ADD COLUMN {column}")
                    logger.info(f"[Store] Added column: {table}.{column.split()[0]}")
                except sqlite3.OperationalError:
                    pass  # Column already exists
        else:
            logger.warning(
                f"[Store] Unknown schema version {from_version}, expected {SCHEMA_VERSION}"
            )

    # =========================================================================
    # Candidate Staging
    # =========================================================================

    def stage_candidates(self, candidates: list[CandidateArticle]) -> int:
        """
        Stage candidates for resolution.

        Already staged candidates are left untouched.

        Returns:
            Number of newly staged candidates
        """
        staged = 0
        with self.transaction() as conn:
            for candidate in candidates:
                cursor = conn.execute(
                    """
                    INSERT OR IGNORE INTO candidates
                    (batch_date, candidate_id, headline, summary, body, staged_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        candidate.batch_date,
                        candidate.candidate_id,
                        candidate.headline,
                        candidate.summary,
                        candidate.body,
                        now_iso(),
                    ),
                )
                staged += cursor.rowcount
        return staged

    def get_staged_candidates(self, batch_date: str) -> list[CandidateArticle]:
        """Get all candidates of a batch that are not fully resolved yet."""
        with self.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM candidates WHERE batch_date = ? ORDER BY candidate_id ASC",
                (batch_date,),
            ).fetchall()
        return [self._row_to_candidate(row) for row in rows]

    def get_staged_candidate(self, batch_date: str, candidate_id: str) -> Optional[CandidateArticle]:
        with self.connection() as conn:
            row = conn.execute(
                "SELECT * FROM candidates WHERE batch_date = ? AND candidate_id = ?",
                (batch_date, candidate_id),
            ).fetchone()
        return self._row_to_candidate(row) if row else None

    def delete_candidate(
        self,
        batch_date: str,
        candidate_id: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> None:
        """Remove a candidate from staging once it is fully resolved."""
        with self.scope(conn) as c:
            c.execute(
                "DELETE FROM candidates WHERE batch_date = ? AND candidate_id = ?",
                (batch_date, candidate_id),
            )

    @staticmethod
    def _row_to_candidate(row: sqlite3.Row) -> CandidateArticle:
        return CandidateArticle(
            candidate_id=row["candidate_id"],
            headline=row["headline"],
            summary=row["summary"],
            body=row["body"],
            batch_date=row["batch_date"],
        )

    # =========================================================================
    # Canonical Articles
    # =========================================================================

    def insert_canonical(
        self,
        article: CanonicalArticle,
        conn: Optional[sqlite3.Connection] = None,
    ) -> CanonicalArticle:
        """Insert a new canonical article. Identity fields are never updated afterwards."""
        with self.scope(conn) as c:
            c.execute(
                """
                INSERT INTO canonical_articles
                (canonical_id, slug, headline, summary, body, first_published_date,
                 update_count, source_candidate_id, last_updated_date, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    article.canonical_id,
                    article.slug,
                    article.headline,
                    article.summary,
                    article.body,
                    article.first_published_date,
                    article.update_count,
                    article.source_candidate_id,
                    article.last_updated_date,
                    article.created_at,
                ),
            )
        return article

    def get_canonical(
        self,
        canonical_id: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Optional[CanonicalArticle]:
        """Get a canonical article by ID."""
        with self.read_scope(conn) as c:
            row = c.execute(
                "SELECT * FROM canonical_articles WHERE canonical_id = ?",
                (canonical_id,),
            ).fetchone()
        return self._row_to_canonical(row) if row else None

    def get_canonical_by_slug(self, slug: str) -> Optional[CanonicalArticle]:
        with self.connection() as conn:
            row = conn.execute(
                "SELECT * FROM canonical_articles WHERE slug = ?",
                (slug,),
            ).fetchone()
        return self._row_to_canonical(row) if row else None

    def slug_exists(self, slug: str, conn: Optional[sqlite3.Connection] = None) -> bool:
        with self.read_scope(conn) as c:
            row = c.execute(
                "SELECT 1 FROM canonical_articles WHERE slug = ?",
                (slug,),
            ).fetchone()
        return row is not None

    def record_update_applied(
        self,
        canonical_id: str,
        update_date: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> None:
        """Bump update_count and last_updated_date. Identity fields stay untouched."""
        with self.scope(conn) as c:
            c.execute(
                """
                UPDATE canonical_articles
                SET update_count = update_count + 1,
                    last_updated_date = ?
                WHERE canonical_id = ?
                """,
                (update_date, canonical_id),
            )

    def count_canonical(self) -> int:
        with self.connection() as conn:
            return conn.execute("SELECT COUNT(*) AS cnt FROM canonical_articles").fetchone()["cnt"]

    @staticmethod
    def _row_to_canonical(row: sqlite3.Row) -> CanonicalArticle:
        return CanonicalArticle(
            canonical_id=row["canonical_id"],
            slug=row["slug"],
            headline=row["headline"],
            summary=row["summary"],
            body=row["body"],
            first_published_date=row["first_published_date"],
            update_count=row["update_count"],
            source_candidate_id=row["source_candidate_id"],
            last_updated_date=row["last_updated_date"],
            created_at=row["created_at"],
        )

    # =========================================================================
    # Update History
    # =========================================================================

    def insert_update(
        self,
        entry: UpdateEntry,
        conn: Optional[sqlite3.Connection] = None,
    ) -> bool:
        """
        Append an update entry.

        Returns:
            False if this source candidate already produced an update
        """
        with self.scope(conn) as c:
            cursor = c.execute(
                """
                INSERT OR IGNORE INTO article_updates
                (canonical_id, update_date, update_summary, update_content, severity_change,
                 source_candidate_id, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.canonical_id,
                    entry.update_date,
                    entry.update_summary,
                    entry.update_content,
                    entry.severity_change.value,
                    entry.source_candidate_id,
                    entry.created_at,
                ),
            )
            if cursor.rowcount:
                entry.update_id = cursor.lastrowid
            return cursor.rowcount > 0

    def list_updates(self, canonical_id: str) -> list[UpdateEntry]:
        """Get the update history of an article, oldest first."""
        with self.connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM article_updates
                WHERE canonical_id = ?
                ORDER BY update_date ASC, update_id ASC
                """,
                (canonical_id,),
            ).fetchall()

        return [
            UpdateEntry(
                update_id=row["update_id"],
                canonical_id=row["canonical_id"],
                update_date=row["update_date"],
                update_summary=row["update_summary"],
                update_content=row["update_content"],
                severity_change=SeverityChange(row["severity_change"]),
                source_candidate_id=row["source_candidate_id"],
                created_at=row["created_at"],
            )
            for row in rows
        ]

    # =========================================================================
    # Resolution Ledger
    # =========================================================================

    def insert_resolution(
        self,
        record: ResolutionRecord,
        conn: Optional[sqlite3.Connection] = None,
    ) -> ResolutionRecord:
        """
        Insert a resolution record.

        Raises:
            LedgerConflict: If the candidate already has a record
        """
        try:
            with self.scope(conn) as c:
                c.execute(
                    """
                    INSERT INTO resolution_ledger
                    (batch_date, candidate_id, decision, decision_source, lexical_score,
                     matched_canonical_id, rationale, similarity_tier, nearest_canonical_id,
                     confidence, update_summary, update_content, severity_change, recorded_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record.batch_date,
                        record.candidate_id,
                        record.decision.value,
                        record.decision_source.value,
                        record.lexical_score,
                        record.matched_canonical_id,
                        record.rationale,
                        record.similarity_tier.value if record.similarity_tier else None,
                        record.nearest_canonical_id,
                        record.confidence.value if record.confidence else None,
                        record.update_summary,
                        record.update_content,
                        record.severity_change.value if record.severity_change else None,
                        record.recorded_at,
                    ),
                )
        except sqlite3.IntegrityError as e:
            raise LedgerConflict(record.candidate_id) from e
        return record

    def get_resolution(
        self,
        batch_date: str,
        candidate_id: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Optional[ResolutionRecord]:
        with self.read_scope(conn) as c:
            row = c.execute(
                "SELECT * FROM resolution_ledger WHERE batch_date = ? AND candidate_id = ?",
                (batch_date, candidate_id),
            ).fetchone()
        return self._row_to_resolution(row) if row else None

    def list_resolutions(self, batch_date: str) -> list[ResolutionRecord]:
        with self.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM resolution_ledger WHERE batch_date = ? ORDER BY candidate_id ASC",
                (batch_date,),
            ).fetchall()
        return [self._row_to_resolution(row) for row in rows]

    def find_batch_update(
        self,
        batch_date: str,
        canonical_id: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Optional[ResolutionRecord]:
        """Find the UPDATE record of a batch targeting a canonical article, if any."""
        with self.read_scope(conn) as c:
            row = c.execute(
                """
                SELECT * FROM resolution_ledger
                WHERE batch_date = ? AND matched_canonical_id = ? AND decision = 'UPDATE'
                ORDER BY recorded_at ASC
                LIMIT 1
                """,
                (batch_date, canonical_id),
            ).fetchone()
        return self._row_to_resolution(row) if row else None

    def insert_amendment(
        self,
        batch_date: str,
        amendment: ResolutionAmendment,
    ) -> ResolutionAmendment:
        with self.transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO resolution_amendments
                (batch_date, candidate_id, decision, matched_canonical_id, rationale, amended_by, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    batch_date,
                    amendment.candidate_id,
                    amendment.decision.value,
                    amendment.matched_canonical_id,
                    amendment.rationale,
                    amendment.amended_by,
                    amendment.created_at,
                ),
            )
            amendment.amendment_id = cursor.lastrowid
        return amendment

    def list_amendments(self, batch_date: str, candidate_id: str) -> list[ResolutionAmendment]:
        """Get amendments of a record, oldest first."""
        with self.connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM resolution_amendments
                WHERE batch_date = ? AND candidate_id = ?
                ORDER BY amendment_id ASC
                """,
                (batch_date, candidate_id),
            ).fetchall()

        return [
            ResolutionAmendment(
                amendment_id=row["amendment_id"],
                candidate_id=row["candidate_id"],
                decision=Decision(row["decision"]),
                matched_canonical_id=row["matched_canonical_id"],
                rationale=row["rationale"],
                amended_by=row["amended_by"],
                created_at=row["created_at"],
            )
            for row in rows
        ]

    @staticmethod
    def _row_to_resolution(row: sqlite3.Row) -> ResolutionRecord:
        return ResolutionRecord(
            candidate_id=row["candidate_id"],
            batch_date=row["batch_date"],
            decision=Decision(row["decision"]),
            decision_source=DecisionSource(row["decision_source"]),
            lexical_score=row["lexical_score"],
            matched_canonical_id=row["matched_canonical_id"],
            rationale=row["rationale"],
            similarity_tier=SimilarityTier(row["similarity_tier"]) if row["similarity_tier"] else None,
            nearest_canonical_id=row["nearest_canonical_id"],
            confidence=Confidence(row["confidence"]) if row["confidence"] else None,
            update_summary=row["update_summary"],
            update_content=row["update_content"],
            severity_change=SeverityChange(row["severity_change"]) if row["severity_change"] else None,
            recorded_at=row["recorded_at"],
        )

    # =========================================================================
    # Publications
    # =========================================================================

    def save_publication(self, publication: Publication) -> Publication:
        """
        Persist a publication and replace its membership.

        The slug of an existing publication is kept as stored; only headline,
        summary and membership change.
        """
        with self.transaction() as conn:
            existing = conn.execute(
                "SELECT slug, created_at FROM publications WHERE pub_date = ?",
                (publication.pub_date,),
            ).fetchone()

            publication.updated_at = now_iso()
            if existing is None:
                conn.execute(
                    """
                    INSERT INTO publications
                    (pub_date, pub_type, slug, headline, summary, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        publication.pub_date,
                        publication.pub_type,
                        publication.slug,
                        publication.headline,
                        publication.summary,
                        publication.created_at,
                        publication.updated_at,
                    ),
                )
            else:
                publication.slug = existing["slug"]
                publication.created_at = existing["created_at"]
                conn.execute(
                    """
                    UPDATE publications
                    SET headline = ?, summary = ?, updated_at = ?
                    WHERE pub_date = ?
                    """,
                    (
                        publication.headline,
                        publication.summary,
                        publication.updated_at,
                        publication.pub_date,
                    ),
                )

            conn.execute(
                "DELETE FROM publication_members WHERE pub_date = ?",
                (publication.pub_date,),
            )
            conn.executemany(
                """
                INSERT INTO publication_members (pub_date, canonical_id, position, role)
                VALUES (?, ?, ?, ?)
                """,
                [
                    (publication.pub_date, m.canonical_id, m.position, m.role.value)
                    for m in publication.members
                ],
            )
        return publication

    def get_publication(self, pub_date: str) -> Optional[Publication]:
        with self.connection() as conn:
            row = conn.execute(
                "SELECT * FROM publications WHERE pub_date = ?",
                (pub_date,),
            ).fetchone()
            if row is None:
                return None
            member_rows = conn.execute(
                """
                SELECT canonical_id, position, role FROM publication_members
                WHERE pub_date = ?
                ORDER BY position ASC
                """,
                (pub_date,),
            ).fetchall()

        return Publication(
            pub_date=row["pub_date"],
            pub_type=row["pub_type"],
            slug=row["slug"],
            headline=row["headline"],
            summary=row["summary"],
            members=[
                PublicationMember(
                    canonical_id=m["canonical_id"],
                    position=m["position"],
                    role=MemberRole(m["role"]),
                )
                for m in member_rows
            ],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
