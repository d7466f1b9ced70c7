"""
Tests for API endpoints in slotwatch/api/health.py.
"""

import pytest
from fastapi.testclient import TestClient


@pytest.fixture
def test_client() -> TestClient:
    """Create a TestClient for the FastAPI app."""
    from slotwatch.main import app

    return TestClient(app)


class TestHealthEndpoints:
    """Tests for health check endpoints."""

    def test_health_check(self, test_client: TestClient) -> None:
        """Test the /health endpoint."""
        response = test_client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "slotwatch"

    def test_root_endpoint(self, test_client: TestClient) -> None:
        """Test the root / endpoint."""
        response = test_client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["version"] == "0.1.0"
        assert data["endpoints"]["health"] == "/health"
        assert data["endpoints"]["run_scan"] == "/jobs/run-scan"
