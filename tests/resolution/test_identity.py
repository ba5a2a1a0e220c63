"""
Tests for identity resolution: canonical ids, slugs and update history.
"""

import threading

import pytest

from src.resolution.entities import Decision, DecisionSource, ResolutionRecord
from src.resolution.errors import IdentityIntegrityError
from src.resolution.identity import (
    CANONICAL_NAMESPACE,
    IdentityResolver,
    allocate_canonical_id,
    slugify,
)
from src.resolution.locks import KeyedLock

BATCH = "2025-10-14"


@pytest.fixture
def identity(store, index):
    return IdentityResolver(store, index)


def _record(candidate, decision, matched=None, update_summary=None):
    return ResolutionRecord(
        candidate_id=candidate.candidate_id,
        batch_date=candidate.batch_date,
        decision=decision,
        decision_source=DecisionSource.THRESHOLD,
        matched_canonical_id=matched,
        update_summary=update_summary,
    )


class TestSlugify:

    def test_basic(self):
        assert slugify("Critical Flaw in Acme VPN (CVE-2025-1234)") == "critical-flaw-in-acme-vpn-cve-2025-1234"

    def test_collapses_separators(self):
        assert slugify("  Hello --- World!!  ") == "hello-world"

    def test_empty_falls_back(self):
        assert slugify("???") == "article"

    def test_truncates_without_trailing_dash(self):
        slug = slugify("word " * 40, max_length=12)
        assert len(slug) <= 12
        assert not slug.endswith("-")


class TestCanonicalId:

    def test_deterministic(self):
        assert allocate_canonical_id(BATCH, "c1") == allocate_canonical_id(BATCH, "c1")

    def test_batch_scoped(self):
        assert allocate_canonical_id(BATCH, "c1") != allocate_canonical_id("2025-10-15", "c1")

    def test_namespace(self):
        import uuid
        assert allocate_canonical_id(BATCH, "c1") == str(uuid.uuid5(CANONICAL_NAMESPACE, f"{BATCH}:c1"))


class TestApplyNew:
    """Tests for NEW resolutions."""

    def test_creates_canonical_article(self, store, index, identity, make_candidate):
        candidate = make_candidate("c1", "Acme VPN zero-day exploited")
        store.stage_candidates([candidate])

        article = identity.apply(_record(candidate, Decision.NEW), candidate)

        assert article.canonical_id == allocate_canonical_id(BATCH, "c1")
        assert article.slug == "acme-vpn-zero-day-exploited"
        assert article.first_published_date == BATCH
        assert article.update_count == 0
        assert store.get_canonical(article.canonical_id) is not None
        assert index.contains(article.canonical_id)
        assert store.get_staged_candidate(BATCH, "c1") is None

    def test_reapply_returns_same_article(self, store, identity, make_candidate):
        """Applying the same record twice creates one article."""
        candidate = make_candidate("c1", "Acme VPN zero-day exploited")
        record = _record(candidate, Decision.NEW)

        first = identity.apply(record, candidate)
        second = identity.apply(record, candidate)

        assert first.canonical_id == second.canonical_id
        assert first.slug == second.slug
        assert store.count_canonical() == 1

    def test_slug_collisions(self, identity, seed_canonical, make_candidate):
        """Collisions get the batch date, then a numeric suffix."""
        seed_canonical("c-old", "Acme VPN zero-day")
        c1 = make_candidate("c1", "Acme VPN zero-day")
        c2 = make_candidate("c2", "Acme VPN zero-day")
        c3 = make_candidate("c3", "Acme VPN zero-day")

        slugs = [identity.apply(_record(c, Decision.NEW), c).slug for c in (c1, c2, c3)]

        assert slugs == [
            "acme-vpn-zero-day-2025-10-14",
            "acme-vpn-zero-day-2025-10-14-2",
            "acme-vpn-zero-day-2025-10-14-3",
        ]


class TestApplyUpdate:
    """Tests for UPDATE resolutions."""

    def test_appends_update(self, store, index, identity, seed_canonical, make_candidate):
        target = seed_canonical("c-target", "Acme VPN zero-day", index=index)
        candidate = make_candidate("c1", "Acme patches VPN flaw", summary="Vendor ships fixed firmware.")
        store.stage_candidates([candidate])

        updated = identity.apply(
            _record(candidate, Decision.UPDATE, matched="c-target", update_summary="Patch is out"),
            candidate,
        )

        assert updated.canonical_id == "c-target"
        assert updated.update_count == 1
        assert updated.last_updated_date == BATCH
        assert updated.slug == target.slug
        assert updated.headline == target.headline
        assert updated.first_published_date == target.first_published_date

        updates = store.list_updates("c-target")
        assert [(u.update_summary, u.source_candidate_id) for u in updates] == [("Patch is out", "c1")]
        assert store.get_staged_candidate(BATCH, "c1") is None

    def test_update_summary_falls_back_to_candidate(self, store, identity, seed_canonical, make_candidate):
        seed_canonical("c-target", "Acme VPN zero-day")
        candidate = make_candidate("c1", "Acme patches VPN flaw", summary="Vendor ships fixed firmware.")

        identity.apply(_record(candidate, Decision.UPDATE, matched="c-target"), candidate)

        assert store.list_updates("c-target")[0].update_summary == "Vendor ships fixed firmware."

    def test_augments_searchable_text(self, index, identity, seed_canonical, make_candidate):
        seed_canonical("c-target", "Acme VPN zero-day", index=index)
        for i, word in enumerate(["alpha", "bravo", "charlie"]):
            seed_canonical(f"c-filler-{i}", f"Unrelated {word} story", index=index)
        candidate = make_candidate("c1", "Acme confirms Kerberoasting follow-on activity")

        identity.apply(_record(candidate, Decision.UPDATE, matched="c-target"), candidate)

        matches = index.query("kerberoasting")
        assert [m.canonical_id for m in matches] == ["c-target"]

    def test_reapply_is_idempotent(self, store, identity, seed_canonical, make_candidate):
        seed_canonical("c-target", "Acme VPN zero-day")
        candidate = make_candidate("c1", "Acme patches VPN flaw")
        record = _record(candidate, Decision.UPDATE, matched="c-target")

        identity.apply(record, candidate)
        again = identity.apply(record, candidate)

        assert again.update_count == 1
        assert len(store.list_updates("c-target")) == 1

    def test_unknown_target_is_integrity_error(self, store, identity, make_candidate):
        """An UPDATE of a missing article is fatal and leaves the candidate staged."""
        candidate = make_candidate("c1")
        store.stage_candidates([candidate])

        with pytest.raises(IdentityIntegrityError) as exc_info:
            identity.apply(_record(candidate, Decision.UPDATE, matched="c-missing"), candidate)

        assert exc_info.value.canonical_id == "c-missing"
        assert store.get_staged_candidate(BATCH, "c1") is not None
        assert store.count_canonical() == 0

    def test_concurrent_updates_of_one_article(self, store, index, seed_canonical, make_candidate):
        """Updates of one article are serialized and none is lost."""
        seed_canonical("c-target", "Acme VPN zero-day", index=index)
        identity = IdentityResolver(store, index, KeyedLock())
        candidates = [make_candidate(f"c{i}", f"Follow-up number {i}") for i in range(4)]
        errors = []

        def apply(candidate):
            try:
                identity.apply(_record(candidate, Decision.UPDATE, matched="c-target"), candidate)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=apply, args=(c,)) for c in candidates]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert store.get_canonical("c-target").update_count == 4
        assert len(store.list_updates("c-target")) == 4
        assert identity.locks.active_keys() == []


class TestApplySkip:

    def test_no_mutation(self, store, identity, make_candidate):
        candidate = make_candidate("c1")
        store.stage_candidates([candidate])

        assert identity.apply(_record(candidate, Decision.SKIP), candidate) is None
        assert store.count_canonical() == 0
        assert store.get_staged_candidate(BATCH, "c1") is None


class TestKeyedLock:

    def test_idle_keys_dropped(self):
        locks = KeyedLock()
        with locks.hold("a"):
            assert locks.active_keys() == ["a"]
        assert locks.active_keys() == []
