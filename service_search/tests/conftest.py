"""
Shared fixtures for Search Gateway tests.
"""

import pytest
from fastapi.testclient import TestClient

from service_search.app.adapters.search_engine_client import SearchEngineClient
from service_search.app.auth.tokens import TokenService
from service_search.app.domain.orchestrator import OrchestratorCounters, SearchOrchestrator
from shared.metrics import MetricsCollector
from shared.test_helpers import TEST_ENGINE_URL, TEST_JWT_SECRET, FakeSearchEngine, mock_config


class FakeClock:
    """Manually advanced clock for token buckets and token expiry."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_engine():
    return FakeSearchEngine()


@pytest.fixture
def engine_client(fake_engine):
    """SearchEngineClient wired to the in-memory engine."""
    return SearchEngineClient(
        TEST_ENGINE_URL,
        max_attempts=1,
        retry_base_delay=0.0,
        transport=fake_engine.transport(),
    )


@pytest.fixture
def metrics():
    return MetricsCollector("search_gateway_test")


@pytest.fixture
def orchestrator(engine_client, metrics):
    return SearchOrchestrator(engine_client, counters=OrchestratorCounters(), metrics=metrics)


@pytest.fixture
def token_service():
    return TokenService(TEST_JWT_SECRET)


@pytest.fixture
def gateway_client(fake_engine):
    """TestClient for the full gateway backed by the in-memory engine."""
    from service_search.app.main import create_app

    app = create_app(mock_config(), transport=fake_engine.transport())
    with TestClient(app) as client:
        yield client


@pytest.fixture
def auth_headers(gateway_client):
    """Issue a token for tenant ``acme`` through the API."""
    response = gateway_client.post("/api/auth/token", json={"tenantId": "acme"})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['token']}"}
