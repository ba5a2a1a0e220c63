"""
Publication Assembler - builds the daily publication from resolved candidates.

The publication slug is a pure function of (pub_type, pub_date) and is
written once. Headline and summary are produced by a PublicationSummarizer
and regenerated from the surviving members whenever membership changes or
a candidate of the batch was skipped since the last assembly.
"""

import logging
from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Optional

import anthropic

from ..infra.settings import OracleConfig
from ..oracle.claude_oracle import complete, create_client
from ..oracle.prompts import PUBLICATION_SYSTEM_PROMPT, build_publication_prompt
from ..oracle.response import parse_publication_reply
from .entities import (
    CandidateArticle,
    Decision,
    MemberRole,
    Publication,
    PublicationMember,
)
from .errors import PublicationNotFoundError, TransientOracleFailure
from .identity import allocate_canonical_id
from .ledger import ResolutionLedger
from .persistence import ResolutionStore

logger = logging.getLogger(__name__)

MAX_HEADLINE_LENGTH = 120


def compute_publication_slug(pub_type: str, pub_date: str) -> str:
    """
    Deterministic publication slug.

    Examples:
        >>> compute_publication_slug("daily", "2025-10-14")
        'daily-threat-report-2025-10-14'
        >>> compute_publication_slug("weekly", "2025-10-14")
        'weekly-threat-report-2025-w42'
    """
    kind = pub_type.lower()
    if kind == "daily":
        return f"daily-threat-report-{pub_date}"
    if kind == "weekly":
        iso_year, iso_week, _ = date.fromisoformat(pub_date).isocalendar()
        return f"weekly-threat-report-{iso_year}-w{iso_week:02d}"
    if kind == "monthly":
        return f"monthly-threat-report-{pub_date[:7]}"
    if kind == "special":
        return f"special-report-{pub_date}"
    return f"threat-report-{pub_date}"


# =============================================================================
# Summarizers
# =============================================================================

class PublicationSummarizer(ABC):
    """Produces the publication-level headline and summary."""

    @abstractmethod
    def summarize(self, pub_date: str, articles: list[tuple[str, str]]) -> tuple[str, str]:
        """
        Args:
            pub_date: Publication date
            articles: (headline, summary) pairs in publication order

        Returns:
            (headline, summary)
        """
        pass


class HeadlineDigestSummarizer(PublicationSummarizer):
    """Deterministic digest built from member headlines."""

    def summarize(self, pub_date: str, articles: list[tuple[str, str]]) -> tuple[str, str]:
        if not articles:
            return (
                f"Threat Report {pub_date}: No New Stories",
                "No new or updated stories were published for this date.",
            )

        lead = articles[0][0]
        if len(articles) == 1:
            headline = lead
        else:
            headline = f"{lead} and {len(articles) - 1} more"
        if len(headline) > MAX_HEADLINE_LENGTH:
            headline = headline[:MAX_HEADLINE_LENGTH - 3].rstrip() + "..."

        summary = " ".join(s for _, s in articles[:3])
        return headline, summary


class ClaudePublicationSummarizer(PublicationSummarizer):
    """LLM-written headline and summary; falls back to a digest on any failure."""

    def __init__(
        self,
        config: Optional[OracleConfig] = None,
        client: Optional[anthropic.Anthropic] = None,
        fallback: Optional[PublicationSummarizer] = None,
    ):
        self.config = config or OracleConfig()
        self.client = client or create_client(self.config)
        self.fallback = fallback or HeadlineDigestSummarizer()

    def summarize(self, pub_date: str, articles: list[tuple[str, str]]) -> tuple[str, str]:
        if not articles:
            return self.fallback.summarize(pub_date, articles)

        try:
            raw = complete(
                self.client,
                self.config,
                PUBLICATION_SYSTEM_PROMPT,
                build_publication_prompt(pub_date, articles),
            )
            reply = parse_publication_reply(raw)
        except (TransientOracleFailure, ValueError) as e:
            logger.warning(f"[Assembler] Summary generation failed, using digest: {e}")
            return self.fallback.summarize(pub_date, articles)

        return reply.headline.strip()[:MAX_HEADLINE_LENGTH], reply.summary.strip()


# =============================================================================
# Assembler
# =============================================================================

class PublicationAssembler:
    """Builds and persists the publication of a batch."""

    def __init__(
        self,
        store: ResolutionStore,
        ledger: ResolutionLedger,
        summarizer: Optional[PublicationSummarizer] = None,
        regenerate_on_skip: bool = True,
    ):
        self.store = store
        self.ledger = ledger
        self.summarizer = summarizer or HeadlineDigestSummarizer()
        self.regenerate_on_skip = regenerate_on_skip

    def draft(
        self,
        batch_date: str,
        candidates: list[CandidateArticle],
        pub_type: str = "daily",
    ) -> Publication:
        """
        Create the publication with a headline drafted from all candidates.

        Existing publications are returned unchanged.
        """
        existing = self.store.get_publication(batch_date)
        if existing is not None:
            return existing

        ordered = sorted(candidates, key=lambda c: c.candidate_id)
        headline, summary = self.summarizer.summarize(
            batch_date, [(c.headline, c.summary) for c in ordered]
        )
        publication = Publication(
            pub_date=batch_date,
            pub_type=pub_type,
            slug=compute_publication_slug(pub_type, batch_date),
            headline=headline,
            summary=summary,
        )
        self.store.save_publication(publication)
        logger.info(f"[Assembler] Drafted {publication.slug} from {len(ordered)} candidate(s)")
        return publication

    def collect_members(self, batch_date: str) -> list[PublicationMember]:
        """
        Members of a batch: NEW articles (primary), then UPDATE targets (update).

        Each list is ordered by candidate id; a canonical article appears once,
        primary role winning. Articles whose identity mutation is missing are
        left out.
        """
        records = self.ledger.list_for_batch(batch_date)
        ordered: list[tuple[str, MemberRole]] = []
        seen: set[str] = set()

        for record in records:
            if record.decision == Decision.NEW:
                canonical_id = allocate_canonical_id(batch_date, record.candidate_id)
                if canonical_id not in seen:
                    seen.add(canonical_id)
                    ordered.append((canonical_id, MemberRole.PRIMARY))

        for record in records:
            if record.decision == Decision.UPDATE and record.matched_canonical_id not in seen:
                seen.add(record.matched_canonical_id)
                ordered.append((record.matched_canonical_id, MemberRole.UPDATE))

        members = []
        for canonical_id, role in ordered:
            if self.store.get_canonical(canonical_id) is None:
                logger.warning(f"[Assembler] Canonical article {canonical_id} not applied yet, left out")
                continue
            members.append(PublicationMember(canonical_id=canonical_id, position=len(members), role=role))
        return members

    def assemble(self, batch_date: str, pub_type: str = "daily") -> Publication:
        """Build, persist and return the publication of a batch."""
        members = self.collect_members(batch_date)
        existing = self.store.get_publication(batch_date)

        regenerate = (
            existing is None
            or existing.canonical_ids != [m.canonical_id for m in members]
            or (self.regenerate_on_skip and self._skipped_since(batch_date, existing.updated_at))
        )

        if regenerate:
            articles = []
            for member in members:
                article = self.store.get_canonical(member.canonical_id)
                articles.append((article.headline, article.summary))
            headline, summary = self.summarizer.summarize(batch_date, articles)
            logger.info(f"[Assembler] Headline/summary generated from {len(articles)} member(s)")
        else:
            headline, summary = existing.headline, existing.summary

        publication = Publication(
            pub_date=batch_date,
            pub_type=existing.pub_type if existing else pub_type,
            slug=existing.slug if existing else compute_publication_slug(pub_type, batch_date),
            headline=headline,
            summary=summary,
            members=members,
        )
        self.store.save_publication(publication)
        logger.info(f"[Assembler] {publication.slug}: {len(members)} member(s)")
        return publication

    def _skipped_since(self, batch_date: str, timestamp: str) -> bool:
        return any(
            r.decision == Decision.SKIP and r.recorded_at > timestamp
            for r in self.ledger.list_for_batch(batch_date)
        )

    def export_publication(self, pub_date: str) -> dict[str, Any]:
        """
        Ordered canonical records of a publication with their update history.

        Raises:
            PublicationNotFoundError: If no publication exists for pub_date
        """
        publication = self.store.get_publication(pub_date)
        if publication is None:
            raise PublicationNotFoundError(pub_date)

        articles = []
        for member in sorted(publication.members, key=lambda m: m.position):
            article = self.store.get_canonical(member.canonical_id)
            entry = article.to_dict()
            entry["role"] = member.role.value
            entry["position"] = member.position
            entry["updates"] = [u.to_dict() for u in self.store.list_updates(article.canonical_id)]
            articles.append(entry)

        data = publication.to_dict()
        data["articles"] = articles
        return data
