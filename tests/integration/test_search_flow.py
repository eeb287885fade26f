"""
Integration tests for the end-to-end search flow.
"""

import pytest
from fastapi.testclient import TestClient

from service_search.app.main import create_app
from service_search.app.ratelimit.token_bucket import TenantRateLimiter
from shared.test_helpers import FakeSearchEngine, TokenFactory, mock_config


class TestSearchFlow:
    """Token issuance, indexing, search and rate limiting through HTTP."""

    @pytest.fixture
    def engine(self):
        return FakeSearchEngine()

    @pytest.fixture
    def app(self, engine):
        return create_app(mock_config(), transport=engine.transport())

    @pytest.fixture
    def client(self, app):
        with TestClient(app) as client:
            yield client

    def _login(self, client, tenant_id):
        response = client.post("/api/auth/token", json={"tenantId": tenant_id})
        assert response.status_code == 200
        return {"Authorization": f"Bearer {response.json()['token']}"}

    def test_index_and_search_hello_world(self, client, engine):
        headers = self._login(client, "acme")

        indexed = client.post("/documents", json={"content": "hello world"}, headers=headers)
        assert indexed.status_code == 201
        doc_id = indexed.json()["docId"]

        response = client.post("/search", json={"query": "hello", "topK": 10}, headers=headers)

        data = response.json()
        assert response.status_code == 200
        assert len(data["results"]) == 1
        assert data["results"][0]["docId"] == doc_id
        assert data["results"][0]["score"] > 0
        assert data["results"][0]["snippet"] == "hello world"
        assert list(engine.indices) == ["search-docs-acme"]

    def test_tenants_are_isolated(self, client):
        acme = self._login(client, "acme")
        globex = self._login(client, "globex")
        client.post("/documents", json={"content": "quarterly report", "docId": "r1"}, headers=acme)

        assert client.get("/search", params={"q": "quarterly"}, headers=globex).json()["results"] == []
        assert client.get("/documents/r1", headers=globex).status_code == 404
        assert client.get("/documents/r1", headers=acme).status_code == 200

    def test_unauthenticated_search_never_reaches_engine(self, client, engine):
        before = client.get("/api/metrics").json()["metrics"]
        engine_calls = engine.call_count("search")

        response = client.post("/search", json={"query": "hello"})

        after = client.get("/api/metrics").json()["metrics"]
        assert response.status_code == 401
        assert engine.call_count("search") == engine_calls
        assert after["totalQueries"] == before["totalQueries"]

    def test_expired_token_rejected(self, client):
        expired = TokenFactory().expired_token("acme")

        response = client.get("/search", params={"q": "x"}, headers={"Authorization": f"Bearer {expired}"})

        assert response.status_code == 401

    def test_request_beyond_rate_is_limited(self, app, client):
        service = app.state.gateway_service
        frozen = TenantRateLimiter(5, clock=lambda: 0.0)
        service.rate_limiter = frozen
        service.auth_middleware.rate_limiter = frozen
        headers = self._login(client, "acme")

        statuses = [client.get("/api/stats", headers=headers).status_code for _ in range(6)]

        assert statuses == [200] * 5 + [429]
        limited = client.get("/api/stats", headers=headers)
        assert limited.json()["tenantId"] == "acme"
        assert client.get("/api/stats", headers=self._login(client, "globex")).status_code == 200

    def test_document_lifecycle(self, client):
        headers = self._login(client, "acme")
        client.post("/documents", json={"content": "short lived", "docId": "tmp"}, headers=headers)

        assert client.get("/documents/tmp", headers=headers).status_code == 200
        assert client.delete("/documents/tmp", headers=headers).status_code == 200
        assert client.get("/documents/tmp", headers=headers).status_code == 404
        assert client.get("/search", params={"q": "short"}, headers=headers).json()["results"] == []
