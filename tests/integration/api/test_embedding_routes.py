"""Integration tests for the embedding management endpoints."""

import pytest
from fastapi.testclient import TestClient

from prizm.main import create_app
from prizm.ml.similarity import BENCHMARK_PAIRS
from prizm.services.embedding_service import EmbeddingService


def wait_for_state(client: TestClient, *states: str, attempts: int = 50) -> dict:
    """Poll the status endpoint until the model reaches one of ``states``."""
    data: dict = {}
    for _ in range(attempts):
        data = client.get("/api/embedding/status").json()["data"]
        if data["state"] in states:
            return data
    raise AssertionError(f"state never reached {states}: {data.get('state')}")


@pytest.fixture
def client(service):
    """Test client whose model finished loading."""
    with TestClient(create_app(service)) as client:
        wait_for_state(client, "ready")
        yield client


@pytest.fixture
def failed_client(service, fake_backend):
    """Test client whose model failed to load."""
    fake_backend.load_error = RuntimeError("weights corrupted")
    with TestClient(create_app(service)) as client:
        wait_for_state(client, "error")
        yield client


class TestEmbeddingStatus:
    """Tests for GET /api/embedding/status."""

    def test_returns_ready_status(self, client):
        response = client.get("/api/embedding/status")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        data = body["data"]
        assert data["state"] == "ready"
        assert data["model_name"] == "TaylorAI/bge-micro-v2"
        assert data["dimension"] == 384
        assert data["enabled"] is True
        assert data["precision"] == "q8"
        assert data["source"] == "cache"
        assert data["stats"]["total_calls"] == 0
        assert data["up_since_ms"] is not None

    def test_reports_last_error(self, failed_client):
        data = failed_client.get("/api/embedding/status").json()["data"]

        assert data["state"] == "error"
        assert data["stats"]["last_error"]["message"] == "weights corrupted"

    def test_disabled(self, make_settings, fake_backend):
        service = EmbeddingService(make_settings(EMBEDDING_ENABLED=False), backend=fake_backend)

        with TestClient(create_app(service)) as client:
            data = client.get("/api/embedding/status").json()["data"]

        assert data["enabled"] is False
        assert data["state"] == "idle"


class TestEmbeddingTest:
    """Tests for POST /api/embedding/test."""

    def test_embeds_short_text(self, client):
        response = client.post("/api/embedding/test", json={"text": "hello world"})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["text_length"] == 11
        assert data["dimension"] == 384
        assert len(data["vector_preview"]) == 10
        assert len(data["vector_full"]) == 384
        assert data["vector_stats"]["norm"] == pytest.approx(1.0, abs=1e-3)
        assert data["similarity"] is None

    def test_preview_is_rounded(self, client, vector_for):
        data = client.post("/api/embedding/test", json={"text": "hello"}).json()["data"]

        assert data["vector_preview"] == [round(v, 4) for v in vector_for("hello")[:10]]

    def test_long_text_has_no_full_vector(self, client):
        data = client.post("/api/embedding/test", json={"text": "x" * 101}).json()["data"]

        assert data["vector_full"] is None

    def test_compare_with(self, client):
        """Test that a comparison block is added for a second text."""
        response = client.post(
            "/api/embedding/test",
            json={"text": "今天天气很好", "compare_with": "今天天气很好"},
        )

        data = response.json()["data"]
        assert data["compare_with"] == "今天天气很好"
        assert data["similarity"] == pytest.approx(1.0)
        assert data["calibrated_similarity"] == pytest.approx(1.0)
        assert data["similarity_level"] == "very_high"
        assert data["similarity_label"] == "极高"
        assert len(data["compare_vector_preview"]) == 10

    def test_counts_calls(self, client):
        client.post("/api/embedding/test", json={"text": "a", "compare_with": "b"})

        stats = client.get("/api/embedding/status").json()["data"]["stats"]
        assert stats["total_calls"] == 2
        assert stats["total_chars_processed"] == 2

    def test_missing_text_rejected(self, client):
        response = client.post("/api/embedding/test", json={})

        assert response.status_code == 422

    def test_empty_text_rejected(self, client):
        response = client.post("/api/embedding/test", json={"text": ""})

        assert response.status_code == 422

    def test_too_long_text_rejected(self, client):
        response = client.post("/api/embedding/test", json={"text": "x" * 10_001})

        assert response.status_code == 422

    def test_not_ready_returns_503(self, failed_client):
        response = failed_client.post("/api/embedding/test", json={"text": "hello"})

        assert response.status_code == 503
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "MODEL_NOT_READY"
        assert body["error"]["details"]["state"] == "error"


class TestEmbeddingBenchmark:
    """Tests for POST /api/embedding/benchmark."""

    def test_runs_all_pairs(self, client):
        response = client.post("/api/embedding/benchmark")

        assert response.status_code == 200
        data = response.json()["data"]
        assert len(data["pairs"]) == len(BENCHMARK_PAIRS)

        summary = data["summary"]
        assert summary["total_pairs"] == len(BENCHMARK_PAIRS)
        assert summary["scorable_pairs"] == 6
        assert summary["cross_lang_pairs"] == 2
        assert summary["antonym_pairs"] == 2
        assert summary["pass_count"] + summary["fail_count"] == 6
        assert summary["threshold"] == 0.6
        assert summary["dimension"] == 384
        assert summary["discrimination"] == pytest.approx(
            summary["avg_high_calibrated_similarity"] - summary["avg_low_calibrated_similarity"],
            abs=1e-4,
        )

    def test_unscored_pairs_have_no_verdict(self, client):
        pairs = client.post("/api/embedding/benchmark").json()["data"]["pairs"]

        for pair in pairs:
            if pair["expected"] in ("cross_lang", "antonym"):
                assert pair["passed"] is None
            else:
                assert isinstance(pair["passed"], bool)

    def test_not_ready_returns_503(self, failed_client):
        response = failed_client.post("/api/embedding/benchmark")

        assert response.status_code == 503


class TestEmbeddingReload:
    """Tests for POST /api/embedding/reload."""

    def test_reload_reloads_model(self, client, fake_backend):
        response = client.post("/api/embedding/reload", json={})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["previous_state"] == "ready"
        assert data["current_state"] == "ready"
        assert data["dimension"] == 384
        assert fake_backend.load_count == 2

    def test_reload_without_body(self, client, fake_backend):
        response = client.post("/api/embedding/reload")

        assert response.status_code == 200
        assert fake_backend.load_count == 2

    def test_reload_with_precision(self, client, fake_backend):
        response = client.post("/api/embedding/reload", json={"precision": "fp32"})

        assert response.json()["data"]["precision"] == "fp32"
        assert fake_backend.load_calls[-1][1].precision == "fp32"

    def test_reload_rejects_invalid_precision(self, client, fake_backend):
        response = client.post("/api/embedding/reload", json={"precision": "int3"})

        assert response.status_code == 422
        assert fake_backend.load_count == 1

    def test_reload_recovers_from_error(self, failed_client, fake_backend):
        fake_backend.load_error = None

        data = failed_client.post("/api/embedding/reload").json()["data"]

        assert data["previous_state"] == "error"
        assert data["current_state"] == "ready"

    def test_reload_reports_failure_in_state(self, client, fake_backend):
        """Test that a failed reload is reported, not raised."""
        fake_backend.load_error = RuntimeError("boom")

        response = client.post("/api/embedding/reload")

        assert response.status_code == 200
        assert response.json()["data"]["current_state"] == "error"
