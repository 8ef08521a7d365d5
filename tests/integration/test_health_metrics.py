"""Integration tests for /health, /healthz and /metrics endpoints."""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from backend.app.api.routes.health import check_db, check_providers
from backend.app.config import Settings
from backend.app.main import app


@pytest.fixture
def client() -> TestClient:
    """Create test client."""
    return TestClient(app)


class TestHealthEndpoint:
    """Test /health and /healthz endpoints."""

    def test_health_is_always_ok(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    @patch("backend.app.api.routes.health.check_db", new_callable=AsyncMock)
    def test_healthz_returns_200_when_db_ok(
        self, mock_check_db: AsyncMock, client: TestClient
    ) -> None:
        """Test /healthz returns 200 and provider status when the DB is reachable."""
        mock_check_db.return_value = (True, "ok")

        response = client.get("/healthz")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["components"]["db"] == "ok"
        assert set(data["components"]) == {"db", "routes", "extraction", "weather"}

    @patch("backend.app.api.routes.health.check_db", new_callable=AsyncMock)
    def test_healthz_returns_503_when_db_fails(
        self, mock_check_db: AsyncMock, client: TestClient
    ) -> None:
        """Test /healthz returns 503 when DB check fails."""
        mock_check_db.return_value = (False, "error: OperationalError")

        response = client.get("/healthz")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "degraded"
        assert data["components"]["db"] == "error: OperationalError"


@pytest.mark.asyncio
async def test_check_db_against_sqlite() -> None:
    settings = Settings(database_url="sqlite+aiosqlite:///:memory:")

    assert await check_db(settings) == (True, "ok")


def test_check_providers_reports_keys() -> None:
    status = check_providers(Settings(google_maps_api_key="k", ai_gateway_api_key=""))

    assert status["routes"] == "configured"
    assert status["extraction"] == "stub"


class TestMetricsEndpoint:
    """Test /metrics endpoint."""

    def test_metrics_returns_prometheus_format(self, client: TestClient) -> None:
        response = client.get("/metrics")

        assert response.status_code == 200
        assert "text/plain" in response.headers["content-type"]
        body = response.text
        assert "provider_latency_ms" in body
        assert "transfers_created_total" in body
