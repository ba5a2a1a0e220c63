"""
Tests for publication assembly.
"""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from src.infra.settings import OracleConfig
from src.resolution.assembler import (
    ClaudePublicationSummarizer,
    HeadlineDigestSummarizer,
    PublicationAssembler,
    PublicationSummarizer,
    compute_publication_slug,
)
from src.resolution.entities import Decision, DecisionSource, MemberRole, ResolutionRecord
from src.resolution.errors import PublicationNotFoundError, TransientOracleFailure
from src.resolution.identity import IdentityResolver, allocate_canonical_id
from src.resolution.ledger import ResolutionLedger

BATCH = "2025-10-14"


class CountingSummarizer(PublicationSummarizer):
    """Digest summarizer recording every call."""

    def __init__(self):
        self.calls = []
        self._digest = HeadlineDigestSummarizer()

    def summarize(self, pub_date, articles):
        self.calls.append(list(articles))
        return self._digest.summarize(pub_date, articles)


@pytest.fixture
def ledger(store):
    return ResolutionLedger(store)


@pytest.fixture
def summarizer():
    return CountingSummarizer()


@pytest.fixture
def assembler(store, ledger, summarizer):
    return PublicationAssembler(store, ledger, summarizer=summarizer)


@pytest.fixture
def resolve(store, index, ledger):
    """Record a decision and apply it, like the pipeline does."""
    identity = IdentityResolver(store, index)

    def _resolve(candidate, decision, matched=None, source=DecisionSource.THRESHOLD, rationale=None):
        record = ResolutionRecord(
            candidate_id=candidate.candidate_id,
            batch_date=candidate.batch_date,
            decision=decision,
            decision_source=source,
            matched_canonical_id=matched,
            rationale=rationale,
        )
        ledger.record(record)
        identity.apply(record, candidate)
        return record

    return _resolve


class TestPublicationSlug:

    @pytest.mark.parametrize("pub_type,expected", [
        ("daily", "daily-threat-report-2025-10-14"),
        ("weekly", "weekly-threat-report-2025-w42"),
        ("monthly", "monthly-threat-report-2025-10"),
        ("special", "special-report-2025-10-14"),
        ("other", "threat-report-2025-10-14"),
    ])
    def test_slug_by_type(self, pub_type, expected):
        assert compute_publication_slug(pub_type, "2025-10-14") == expected

    def test_weekly_uses_iso_year(self):
        """ISO week 1 of 2026 starts in December 2025."""
        assert compute_publication_slug("weekly", "2025-12-29") == "weekly-threat-report-2026-w01"


class TestHeadlineDigestSummarizer:

    def test_empty(self):
        headline, summary = HeadlineDigestSummarizer().summarize(BATCH, [])
        assert headline == f"Threat Report {BATCH}: No New Stories"
        assert summary

    def test_single(self):
        headline, summary = HeadlineDigestSummarizer().summarize(BATCH, [("Lead story", "Lead summary.")])
        assert headline == "Lead story"
        assert summary == "Lead summary."

    def test_several(self):
        articles = [(f"Story {i}", f"Summary {i}.") for i in range(5)]
        headline, summary = HeadlineDigestSummarizer().summarize(BATCH, articles)

        assert headline == "Story 0 and 4 more"
        assert summary == "Summary 0. Summary 1. Summary 2."

    def test_long_headline_truncated(self):
        headline, _ = HeadlineDigestSummarizer().summarize(BATCH, [("x" * 300, "s")])
        assert len(headline) <= 120
        assert headline.endswith("...")


class TestClaudePublicationSummarizer:

    def test_uses_model_reply(self):
        client = MagicMock()
        client.messages.create.return_value = SimpleNamespace(
            content=[SimpleNamespace(text='{"headline": "VPN flaws lead the day", "summary": "Two stories."}')],
            usage=None,
        )
        summarizer = ClaudePublicationSummarizer(OracleConfig(), client=client)

        assert summarizer.summarize(BATCH, [("A", "a"), ("B", "b")]) == ("VPN flaws lead the day", "Two stories.")

    def test_falls_back_on_transient_failure(self):
        client = MagicMock()
        client.messages.create.side_effect = TransientOracleFailure("timeout")
        summarizer = ClaudePublicationSummarizer(OracleConfig(), client=client)

        assert summarizer.summarize(BATCH, [("A", "a"), ("B", "b")]) == ("A and 1 more", "a b")

    def test_falls_back_on_malformed_reply(self):
        client = MagicMock()
        client.messages.create.return_value = SimpleNamespace(
            content=[SimpleNamespace(text="Here is a headline")], usage=None,
        )
        summarizer = ClaudePublicationSummarizer(OracleConfig(), client=client)

        assert summarizer.summarize(BATCH, [("A", "a")]) == ("A", "a")

    def test_empty_publication_skips_model(self):
        client = MagicMock()
        summarizer = ClaudePublicationSummarizer(OracleConfig(), client=client)

        headline, _ = summarizer.summarize(BATCH, [])

        assert "No New Stories" in headline
        client.messages.create.assert_not_called()


class TestCollectMembers:

    def test_primary_then_update(self, assembler, resolve, seed_canonical, make_candidate):
        seed_canonical("c-old", "Acme VPN zero-day")
        resolve(make_candidate("c2", "Second new story"), Decision.NEW)
        resolve(make_candidate("c1", "Acme patches VPN"), Decision.UPDATE, matched="c-old")
        resolve(make_candidate("c0", "First new story"), Decision.NEW)
        resolve(make_candidate("c3", "Rewrite of a story"), Decision.SKIP)

        members = assembler.collect_members(BATCH)

        assert [(m.canonical_id, m.role, m.position) for m in members] == [
            (allocate_canonical_id(BATCH, "c0"), MemberRole.PRIMARY, 0),
            (allocate_canonical_id(BATCH, "c2"), MemberRole.PRIMARY, 1),
            ("c-old", MemberRole.UPDATE, 2),
        ]

    def test_unapplied_article_left_out(self, assembler, ledger):
        """A ledger NEW without its canonical row is not published."""
        ledger.record(ResolutionRecord(
            candidate_id="c1",
            batch_date=BATCH,
            decision=Decision.NEW,
            decision_source=DecisionSource.THRESHOLD,
        ))

        assert assembler.collect_members(BATCH) == []

    def test_update_target_listed_once(self, assembler, resolve, seed_canonical, make_candidate):
        seed_canonical("c-old", "Acme VPN zero-day")
        resolve(make_candidate("c1", "Follow-up one"), Decision.UPDATE, matched="c-old")
        resolve(make_candidate("c2", "Follow-up two"), Decision.UPDATE, matched="c-old")

        assert [m.canonical_id for m in assembler.collect_members(BATCH)] == ["c-old"]


class TestAssemble:

    def test_creates_publication(self, store, assembler, resolve, make_candidate):
        resolve(make_candidate("c1", "Acme VPN zero-day"), Decision.NEW)

        publication = assembler.assemble(BATCH)

        assert publication.slug == "daily-threat-report-2025-10-14"
        assert publication.headline == "Acme VPN zero-day"
        assert store.get_publication(BATCH).canonical_ids == [allocate_canonical_id(BATCH, "c1")]

    def test_empty_batch_still_published(self, assembler):
        publication = assembler.assemble(BATCH)

        assert publication.members == []
        assert "No New Stories" in publication.headline

    def test_unchanged_membership_keeps_headline(self, assembler, summarizer, resolve, make_candidate):
        resolve(make_candidate("c1", "Acme VPN zero-day"), Decision.NEW)

        first = assembler.assemble(BATCH)
        second = assembler.assemble(BATCH)

        assert len(summarizer.calls) == 1
        assert second.headline == first.headline

    def test_membership_change_regenerates(self, assembler, summarizer, resolve, make_candidate):
        resolve(make_candidate("c1", "Acme VPN zero-day"), Decision.NEW)
        first = assembler.assemble(BATCH)

        resolve(make_candidate("c2", "Chrome emergency patch"), Decision.NEW)
        second = assembler.assemble(BATCH)

        assert len(summarizer.calls) == 2
        assert second.headline == "Acme VPN zero-day and 1 more"
        assert second.slug == first.slug

    def test_skip_regenerates_from_remaining_members(self, assembler, summarizer, resolve, make_candidate):
        resolve(make_candidate("c1", "Acme VPN zero-day"), Decision.NEW)
        assembler.assemble(BATCH)

        resolve(
            make_candidate("c2", "Acme VPN zero-day rewritten"),
            Decision.SKIP,
            source=DecisionSource.ARBITER,
            rationale="no new facts",
        )
        publication = assembler.assemble(BATCH)

        assert len(summarizer.calls) == 2
        assert summarizer.calls[-1] == [("Acme VPN zero-day", "Summary of Acme VPN zero-day")]
        assert publication.slug == "daily-threat-report-2025-10-14"

    def test_skip_regeneration_can_be_disabled(self, store, ledger, summarizer, resolve, make_candidate):
        assembler = PublicationAssembler(store, ledger, summarizer=summarizer, regenerate_on_skip=False)
        resolve(make_candidate("c1", "Acme VPN zero-day"), Decision.NEW)
        assembler.assemble(BATCH)

        resolve(make_candidate("c2", "Rewrite"), Decision.SKIP)
        assembler.assemble(BATCH)

        assert len(summarizer.calls) == 1

    def test_slug_never_changes(self, assembler, resolve, make_candidate):
        """A stored slug survives reassembly with another publication type."""
        resolve(make_candidate("c1", "Acme VPN zero-day"), Decision.NEW)
        assembler.assemble(BATCH, pub_type="daily")

        publication = assembler.assemble(BATCH, pub_type="weekly")

        assert publication.slug == "daily-threat-report-2025-10-14"


class TestDraft:

    def test_draft_uses_all_candidates(self, store, assembler, make_candidate):
        publication = assembler.draft(BATCH, [make_candidate("c2", "Second"), make_candidate("c1", "First")])

        assert publication.headline == "First and 1 more"
        assert store.get_publication(BATCH).members == []

    def test_draft_keeps_existing(self, assembler, summarizer, make_candidate):
        assembler.draft(BATCH, [make_candidate("c1", "First")])
        again = assembler.draft(BATCH, [make_candidate("c9", "Other")])

        assert again.headline == "First"
        assert len(summarizer.calls) == 1


class TestExport:

    def test_export_includes_updates(self, assembler, resolve, seed_canonical, make_candidate):
        seed_canonical("c-old", "Acme VPN zero-day")
        resolve(make_candidate("c1", "Chrome emergency patch"), Decision.NEW)
        resolve(make_candidate("c2", "Acme patches VPN"), Decision.UPDATE, matched="c-old")
        assembler.assemble(BATCH)

        data = assembler.export_publication(BATCH)

        assert data["slug"] == "daily-threat-report-2025-10-14"
        assert [a["role"] for a in data["articles"]] == ["primary", "update"]
        assert [a["position"] for a in data["articles"]] == [0, 1]
        assert data["articles"][1]["canonical_id"] == "c-old"
        assert data["articles"][1]["update_count"] == 1
        assert [u["source_candidate_id"] for u in data["articles"][1]["updates"]] == ["c2"]

    def test_export_missing(self, assembler):
        with pytest.raises(PublicationNotFoundError):
            assembler.export_publication(BATCH)
