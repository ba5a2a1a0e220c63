"""
Identity Resolver - turns ledger decisions into canonical article mutations.

- NEW: allocate canonical_id and slug, insert the canonical row and its
  index document in one transaction
- UPDATE: append an UpdateEntry to the matched article, bump update_count,
  augment its searchable text; identity fields are never touched
- SKIP: no mutation

Every path also removes the candidate from staging in the same transaction,
so a candidate is either fully resolved or still staged.

canonical_id is uuid5 of (batch_date, candidate_id): applying the same
ledger record twice yields the same article, which makes re-runs after a
crash between ledger commit and apply safe.

Slug collision policy:
    1. slugify(headline)
    2. <slug>-<batch_date>
    3. <slug>-<batch_date>-2, -3, ...
"""

import logging
import re
import sqlite3
import uuid
from typing import Optional

from ..dedup.lexical_index import LexicalIndex
from .entities import (
    CandidateArticle,
    CanonicalArticle,
    Decision,
    ResolutionRecord,
    SeverityChange,
    UpdateEntry,
)
from .errors import IdentityIntegrityError
from .locks import KeyedLock
from .persistence import ResolutionStore

logger = logging.getLogger(__name__)

CANONICAL_NAMESPACE = uuid.UUID("6f1c1e0a-5b7e-4c36-9d8e-2f3a4b5c6d7e")
MAX_SLUG_LENGTH = 80
FALLBACK_SLUG = "article"

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify(text: str, max_length: int = MAX_SLUG_LENGTH) -> str:
    """
    Convert a headline to a URL-safe slug.

    Examples:
        >>> slugify("Critical Flaw in Acme VPN (CVE-2025-1234)")
        'critical-flaw-in-acme-vpn-cve-2025-1234'
    """
    slug = _NON_ALNUM.sub("-", text.strip().lower()).strip("-")
    slug = slug[:max_length].rstrip("-")
    return slug or FALLBACK_SLUG


def allocate_canonical_id(batch_date: str, candidate_id: str) -> str:
    return str(uuid.uuid5(CANONICAL_NAMESPACE, f"{batch_date}:{candidate_id}"))


class IdentityResolver:
    """Applies resolution records to the canonical article store."""

    def __init__(
        self,
        store: ResolutionStore,
        index: LexicalIndex,
        locks: Optional[KeyedLock] = None,
    ):
        self.store = store
        self.index = index
        self.locks = locks or KeyedLock()

    def apply(
        self,
        record: ResolutionRecord,
        candidate: CandidateArticle,
    ) -> Optional[CanonicalArticle]:
        """
        Apply a committed ledger record.

        Returns:
            The created (NEW) or updated (UPDATE) canonical article, None for SKIP

        Raises:
            IdentityIntegrityError: If an UPDATE targets an unknown canonical article
        """
        if record.decision == Decision.NEW:
            return self._apply_new(record, candidate)
        if record.decision == Decision.UPDATE:
            return self._apply_update(record, candidate)

        with self.store.transaction() as conn:
            self.store.delete_candidate(candidate.batch_date, candidate.candidate_id, conn)
        logger.debug(f"[Identity] SKIP {candidate.candidate_id}: no mutation")
        return None

    # =========================================================================
    # NEW
    # =========================================================================

    def allocate_slug(self, headline: str, batch_date: str, conn: sqlite3.Connection) -> str:
        base = slugify(headline)
        if not self.store.slug_exists(base, conn):
            return base

        dated = f"{base}-{batch_date}"
        if not self.store.slug_exists(dated, conn):
            return dated

        suffix = 2
        while self.store.slug_exists(f"{dated}-{suffix}", conn):
            suffix += 1
        return f"{dated}-{suffix}"

    def _apply_new(self, record: ResolutionRecord, candidate: CandidateArticle) -> CanonicalArticle:
        canonical_id = allocate_canonical_id(candidate.batch_date, candidate.candidate_id)

        with self.store.transaction() as conn:
            existing = self.store.get_canonical(canonical_id, conn)
            if existing is not None:
                self.store.delete_candidate(candidate.batch_date, candidate.candidate_id, conn)
                logger.info(f"[Identity] NEW {candidate.candidate_id} already applied: {existing.slug}")
                return existing

            article = CanonicalArticle(
                canonical_id=canonical_id,
                slug=self.allocate_slug(candidate.headline, candidate.batch_date, conn),
                headline=candidate.headline,
                summary=candidate.summary,
                body=candidate.body,
                first_published_date=candidate.batch_date,
                source_candidate_id=candidate.candidate_id,
            )
            self.store.insert_canonical(article, conn)
            self.index.insert(
                article.canonical_id,
                article.headline,
                article.summary,
                article.body,
                conn=conn,
            )
            self.store.delete_candidate(candidate.batch_date, candidate.candidate_id, conn)

        logger.info(f"[Identity] NEW {candidate.candidate_id} -> {article.canonical_id} ({article.slug})")
        return article

    # =========================================================================
    # UPDATE
    # =========================================================================

    def _apply_update(self, record: ResolutionRecord, candidate: CandidateArticle) -> CanonicalArticle:
        target_id = record.matched_canonical_id

        with self.locks.hold(target_id):
            with self.store.transaction() as conn:
                target = self.store.get_canonical(target_id, conn)
                if target is None:
                    logger.critical(
                        f"[Identity] INTEGRITY: {candidate.candidate_id} resolved as UPDATE "
                        f"of unknown canonical article {target_id}"
                    )
                    raise IdentityIntegrityError(candidate.candidate_id, target_id)

                summary = record.update_summary or candidate.summary
                inserted = self.store.insert_update(
                    UpdateEntry(
                        canonical_id=target_id,
                        update_date=candidate.batch_date,
                        update_summary=summary,
                        source_candidate_id=candidate.candidate_id,
                        update_content=record.update_content or candidate.body,
                        severity_change=record.severity_change or SeverityChange.UNCHANGED,
                    ),
                    conn,
                )
                if inserted:
                    self.store.record_update_applied(target_id, candidate.batch_date, conn)
                    self.index.augment(
                        target_id,
                        f"{candidate.headline} {summary}",
                        conn=conn,
                    )
                self.store.delete_candidate(candidate.batch_date, candidate.candidate_id, conn)
                updated = self.store.get_canonical(target_id, conn)

        if inserted:
            logger.info(
                f"[Identity] UPDATE {candidate.candidate_id} -> {target_id} "
                f"(update_count={updated.update_count})"
            )
        else:
            logger.info(f"[Identity] UPDATE {candidate.candidate_id} already applied to {target_id}")
        return updated
