"""
Tests for the FastAPI endpoints, with the router dependency replaced by one
wired to in-memory backends.
"""

import pytest
from fastapi.testclient import TestClient

from agent_orchestrator.main import app
from agent_orchestrator.router import get_router


DOCKERFILE_QUERY = "Write a Dockerfile for Node.js 20 with pnpm and multi-stage builds."


@pytest.fixture
def router(make_router):
    return make_router()


@pytest.fixture
def client(router):
    app.dependency_overrides[get_router] = lambda: router
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


class TestSessionEndpoints:

    def test_start_session(self, client):
        response = client.post("/orchestrator/session/start", json={"message": DOCKERFILE_QUERY})

        assert response.status_code == 200
        body = response.json()
        assert body["handling_agent_id"] == "technical-specialist"
        assert body["context_maintained"] is True
        assert body["routing_path"] == ["new", "local_fallback", "threshold_met", "dispatched", "context_updated"]
        assert body["routing_analysis"]["source"] == "local"
        assert body["session_id"]

    def test_query_then_stats_then_clear(self, client):
        session_id = "api-session-001"

        first = client.post("/orchestrator/query", json={"message": DOCKERFILE_QUERY, "session_id": session_id})
        assert first.status_code == 200

        stats = client.get(f"/orchestrator/session/{session_id}/stats")
        assert stats.status_code == 200
        assert stats.json()["message_count"] == 1
        assert stats.json()["current_agent"] == "technical-specialist"

        cleared = client.delete(f"/orchestrator/session/{session_id}")
        assert cleared.json() == {"session_id": session_id, "cleared": True}

        missing = client.get(f"/orchestrator/session/{session_id}/stats")
        assert missing.status_code == 404
        assert missing.json()["error"] == "HTTP_ERROR"

    def test_clear_unknown_session(self, client):
        response = client.delete("/orchestrator/session/unknown-session")

        assert response.status_code == 200
        assert response.json()["cleared"] is False

    @pytest.mark.parametrize("payload", [
        {"message": "", "session_id": "api-session-002"},
        {"message": "   ", "session_id": "api-session-002"},
        {"message": "hello", "session_id": "bad id!"},
        {"message": "hello"},
    ])
    def test_invalid_query_rejected(self, client, router, payload):
        response = client.post("/orchestrator/query", json=payload)

        assert response.status_code == 422
        assert router.store.session_count() == 0

    def test_router_validation_error_maps_to_422(self, make_router):
        strict_router = make_router(max_query_length=5)
        app.dependency_overrides[get_router] = lambda: strict_router
        try:
            with TestClient(app) as test_client:
                response = test_client.post(
                    "/orchestrator/query",
                    json={"message": "far too long", "session_id": "api-session-003"}
                )
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 422
        assert response.json()["error"] == "VALIDATION_ERROR"


class TestStatusEndpoints:

    def test_status(self, client, registry):
        response = client.get("/orchestrator/status")

        assert response.status_code == 200
        body = response.json()
        assert [specialist["id"] for specialist in body["specialists"]] == registry.ids()
        assert body["fallback_agent_id"] == "general-assistant"
        assert body["classifier_enabled"] is False

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["components"]["specialists"] == 6
        assert "active_sessions" in body["components"]["session_store"]

    def test_root_lists_endpoints(self, client):
        body = client.get("/").json()
        assert "/orchestrator/query" in body["endpoints"]

    def test_preview(self, client):
        response = client.get("/orchestrator/preview/data-scientist", params={"query": "plot my dataset"})

        assert response.status_code == 200
        body = response.json()
        assert body["agent_id"] == "data-scientist"
        assert "You are a Data Scientist" in body["prompt"]

    def test_preview_unknown_agent(self, client):
        response = client.get("/orchestrator/preview/ghost-agent", params={"query": "hello"})

        assert response.status_code == 404
