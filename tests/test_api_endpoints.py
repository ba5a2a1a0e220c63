"""
Tests for FastAPI endpoints.

Router tests using TestClient with a resolver wired to a scripted index and
oracle.
"""

import pytest
from fastapi.testclient import TestClient

from src.resolution.errors import TransientOracleFailure

BATCH = "2025-10-14"


@pytest.fixture
def client(resolver, monkeypatch):
    """TestClient whose routers use the test resolver."""
    import src.api._resolver_state as state
    from src.api.main import app

    monkeypatch.setattr(state, "_resolver", resolver)
    return TestClient(app)


def _candidates(*pairs):
    return {
        "candidates": [
            {"candidate_id": cid, "headline": headline, "summary": f"Summary of {headline}", "body": f"Body of {headline}"}
            for cid, headline in pairs
        ]
    }


@pytest.fixture
def resolved_batch(client):
    """A batch with two NEW candidates, resolved through the API."""
    client.post(
        f"/batches/{BATCH}/candidates",
        json=_candidates(("c1", "Chrome emergency patch"), ("c2", "Botnet hijacks routers")),
    )
    client.post(f"/batches/{BATCH}/resolve")
    return client


class TestHealthEndpoint:

    def test_health_check(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert "version" in response.json()


class TestBatchEndpoints:
    """Tests for /batches."""

    def test_stage_candidates(self, client):
        response = client.post(f"/batches/{BATCH}/candidates", json=_candidates(("c1", "Chrome emergency patch")))

        assert response.status_code == 200
        assert response.json() == {"batch_date": BATCH, "staged": 1, "pending": 1}

    def test_stage_twice(self, client):
        payload = _candidates(("c1", "Chrome emergency patch"))
        client.post(f"/batches/{BATCH}/candidates", json=payload)

        response = client.post(f"/batches/{BATCH}/candidates", json=payload)

        assert response.json()["staged"] == 0
        assert response.json()["pending"] == 1

    def test_stage_rejects_empty_fields(self, client):
        response = client.post(
            f"/batches/{BATCH}/candidates",
            json={"candidates": [{"candidate_id": "c1", "headline": "", "summary": "s", "body": "b"}]},
        )
        assert response.status_code == 422

    def test_invalid_date(self, client):
        response = client.post("/batches/14-10-2025/resolve")
        assert response.status_code == 422

    def test_resolve(self, client):
        client.post(f"/batches/{BATCH}/candidates", json=_candidates(("c1", "Chrome emergency patch")))

        response = client.post(f"/batches/{BATCH}/resolve")

        assert response.status_code == 200
        data = response.json()
        assert data["new"] == 1
        assert data["decisions"] == {"c1": "NEW"}
        assert data["publication_slug"] == "daily-threat-report-2025-10-14"

    def test_resolve_dry_run(self, client):
        client.post(f"/batches/{BATCH}/candidates", json=_candidates(("c1", "Chrome emergency patch")))

        response = client.post(f"/batches/{BATCH}/resolve", json={"dry_run": True})

        assert response.json()["dry_run"] is True
        assert client.get(f"/batches/{BATCH}/unresolved").json()["count"] == 1

    def test_unresolved(self, client, scripted_index, oracle, seed_canonical):
        seed_canonical("c-old", "Acme VPN zero-day", index=scripted_index)
        scripted_index.script("rewritten", "c-old", 110.0)
        oracle.on("rewritten", TransientOracleFailure("timeout"))
        client.post(f"/batches/{BATCH}/candidates", json=_candidates(("c1", "Acme VPN story rewritten")))

        report = client.post(f"/batches/{BATCH}/resolve").json()
        response = client.get(f"/batches/{BATCH}/unresolved")

        assert report["unresolved_ids"] == ["c1"]
        assert response.status_code == 200
        assert response.json()["count"] == 1
        assert response.json()["candidates"][0]["candidate_id"] == "c1"


class TestLedgerEndpoints:
    """Tests for /ledger."""

    def test_get_record(self, resolved_batch):
        response = resolved_batch.get(f"/ledger/{BATCH}/c1")

        assert response.status_code == 200
        data = response.json()
        assert data["decision"] == "NEW"
        assert data["decision_source"] == "threshold"
        assert data["effective_decision"] == "NEW"
        assert data["amendments"] == []

    def test_get_unknown(self, client):
        assert client.get(f"/ledger/{BATCH}/missing").status_code == 404

    def test_amend(self, resolved_batch):
        response = resolved_batch.post(
            f"/ledger/{BATCH}/c1/amendments",
            json={"decision": "SKIP", "rationale": "Duplicate of wire copy", "amended_by": "analyst"},
        )

        assert response.status_code == 200
        assert response.json()["decision"] == "SKIP"

        record = resolved_batch.get(f"/ledger/{BATCH}/c1").json()
        assert record["decision"] == "NEW"
        assert record["effective_decision"] == "SKIP"
        assert len(record["amendments"]) == 1

    def test_amend_leaves_publication_unchanged(self, resolved_batch):
        before = resolved_batch.get(f"/publications/{BATCH}").json()

        resolved_batch.post(
            f"/ledger/{BATCH}/c1/amendments",
            json={"decision": "SKIP", "rationale": "Duplicate", "amended_by": "analyst"},
        )

        after = resolved_batch.get(f"/publications/{BATCH}").json()
        assert [a["canonical_id"] for a in after["articles"]] == [a["canonical_id"] for a in before["articles"]]

    def test_amend_unknown(self, client):
        response = client.post(
            f"/ledger/{BATCH}/missing/amendments",
            json={"decision": "SKIP", "rationale": "Duplicate", "amended_by": "analyst"},
        )
        assert response.status_code == 404

    def test_amend_update_without_target(self, resolved_batch):
        response = resolved_batch.post(
            f"/ledger/{BATCH}/c1/amendments",
            json={"decision": "UPDATE", "rationale": "Follow-up", "amended_by": "analyst"},
        )
        assert response.status_code == 422

    def test_amend_rejects_unknown_decision(self, resolved_batch):
        response = resolved_batch.post(
            f"/ledger/{BATCH}/c1/amendments",
            json={"decision": "MERGE", "rationale": "Follow-up", "amended_by": "analyst"},
        )
        assert response.status_code == 422


class TestTriageEndpoint:
    """Tests for POST /ledger/{batch_date}/{candidate_id}/triage."""

    @pytest.fixture
    def stuck(self, client, scripted_index, oracle, seed_canonical):
        seed_canonical("c-old", "Acme VPN zero-day", index=scripted_index)
        scripted_index.script("rewritten", "c-old", 110.0)
        oracle.on("rewritten", TransientOracleFailure("timeout"))
        client.post(f"/batches/{BATCH}/candidates", json=_candidates(("c1", "Acme VPN story rewritten")))
        client.post(f"/batches/{BATCH}/resolve")
        return client

    def test_triage(self, stuck):
        response = stuck.post(
            f"/ledger/{BATCH}/c1/triage",
            json={"decision": "UPDATE", "rationale": "Adds IOCs", "matched_canonical_id": "c-old"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["decision"] == "UPDATE"
        assert data["decision_source"] == "manual"
        assert stuck.get(f"/batches/{BATCH}/unresolved").json()["count"] == 0

    def test_triage_unknown_candidate(self, client):
        response = client.post(
            f"/ledger/{BATCH}/missing/triage",
            json={"decision": "NEW", "rationale": "Reviewed"},
        )
        assert response.status_code == 404

    def test_triage_unknown_target(self, stuck):
        response = stuck.post(
            f"/ledger/{BATCH}/c1/triage",
            json={"decision": "UPDATE", "rationale": "Adds IOCs", "matched_canonical_id": "c-missing"},
        )
        assert response.status_code == 422

    def test_triage_twice(self, stuck):
        payload = {"decision": "SKIP", "rationale": "Same story"}
        stuck.post(f"/ledger/{BATCH}/c1/triage", json=payload)

        response = stuck.post(f"/ledger/{BATCH}/c1/triage", json=payload)

        assert response.status_code == 404

    def test_triage_second_update_of_article_conflicts(self, stuck, scripted_index):
        scripted_index.script("Follow-up", "c-old", 160.0)
        stuck.post(f"/batches/{BATCH}/candidates", json=_candidates(("c2", "Follow-up on Acme VPN")))
        stuck.post(f"/batches/{BATCH}/resolve")

        response = stuck.post(
            f"/ledger/{BATCH}/c1/triage",
            json={"decision": "UPDATE", "rationale": "Adds IOCs", "matched_canonical_id": "c-old"},
        )

        assert response.status_code == 409
        assert "c2" in response.json()["detail"]
        assert stuck.get(f"/ledger/{BATCH}/c1").status_code == 404

    def test_triage_index_outage(self, stuck, scripted_index):
        scripted_index.writes_unavailable = True

        response = stuck.post(
            f"/ledger/{BATCH}/c1/triage",
            json={"decision": "NEW", "rationale": "Different campaign"},
        )

        assert response.status_code == 503


class TestPublicationEndpoint:
    """Tests for GET /publications/{pub_date}."""

    def test_get_publication(self, resolved_batch):
        response = resolved_batch.get(f"/publications/{BATCH}")

        assert response.status_code == 200
        data = response.json()
        assert data["slug"] == "daily-threat-report-2025-10-14"
        assert [a["headline"] for a in data["articles"]] == ["Chrome emergency patch", "Botnet hijacks routers"]
        assert [a["role"] for a in data["articles"]] == ["primary", "primary"]

    def test_missing_publication(self, client):
        assert client.get(f"/publications/{BATCH}").status_code == 404


class TestResolverState:
    """Tests for the resolver singleton."""

    def test_lifecycle(self, tmp_path, oracle):
        from src.api import _resolver_state as state

        state.shutdown_resolver()
        with pytest.raises(RuntimeError):
            state.get_resolver()

        try:
            first = state.init_resolver(tmp_path / "api.db", oracle=oracle)
            second = state.init_resolver(tmp_path / "other.db", oracle=oracle)

            assert first is second
            assert state.get_resolver() is first
        finally:
            state.shutdown_resolver()
