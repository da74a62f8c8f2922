"""Integration tests for health check endpoints."""

from unittest.mock import MagicMock

from fastapi.testclient import TestClient


class TestHealthEndpoint:
    """Tests for /health endpoint."""

    def test_health_returns_healthy_status(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["version"] == "0.1.0"
        assert data["timestamp"] is not None


class TestReadinessEndpoint:
    """Tests for /health/ready endpoint."""

    def test_readiness_when_database_reachable(
        self, client: TestClient, mock_supabase_client: MagicMock
    ) -> None:
        response = client.get("/health/ready")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert [c["name"] for c in data["checks"]] == ["database"]
        mock_supabase_client.table.assert_called_with("order_requests")

    def test_readiness_returns_503_when_database_down(
        self, client: TestClient, mock_supabase_client: MagicMock
    ) -> None:
        mock_supabase_client.table.return_value.select.return_value.limit.return_value.execute.side_effect = (
            Exception("Connection refused")
        )

        response = client.get("/health/ready")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "unhealthy"
        assert data["checks"][0]["healthy"] is False
        assert "Connection refused" in data["checks"][0]["error"]
