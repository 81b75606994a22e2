"""Integration tests for health check endpoints and request middleware."""

from unittest.mock import MagicMock

from fastapi.testclient import TestClient

from src.api.middleware.latency_logging import LatencyStats, normalize_path
from tests.conftest import admin_headers, auth_headers


class TestHealthEndpoint:
    """Tests for /health endpoint."""

    def test_health_returns_healthy(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["version"] == "0.1.0"
        assert data["timestamp"] is not None


class TestReadinessEndpoint:
    """Tests for /health/ready endpoint."""

    def test_ready_when_database_reachable(self, client: TestClient) -> None:
        response = client.get("/health/ready")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["checks"][0]["name"] == "database"
        assert data["checks"][0]["healthy"] is True

    def test_unavailable_when_database_fails(self, client: TestClient, mock_supabase_client: MagicMock) -> None:
        mock_supabase_client.table.return_value.select.return_value.limit.return_value.execute.side_effect = (
            Exception("connection refused")
        )

        response = client.get("/health/ready")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "unhealthy"
        assert data["checks"][0]["error"] == "connection refused"


class TestStatsEndpoint:
    """Tests for /health/stats endpoint."""

    def test_admin_sees_stats(self, client: TestClient) -> None:
        client.get("/api/v1/orders/refund-requests", headers=auth_headers())

        response = client.get("/health/stats", headers=admin_headers())

        assert response.status_code == 200
        data = response.json()
        assert "/api/v1/orders/refund-requests" in data["latency"]
        assert data["active_order_locks"] == 0

    def test_customer_forbidden(self, client: TestClient) -> None:
        response = client.get("/health/stats", headers=auth_headers())

        assert response.status_code == 403


class TestRequestSizeLimit:
    """Tests for the request body size middleware."""

    def test_oversized_api_body_rejected(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/orders/items/item-1/cancel",
            content=b"x" * (1024 * 1024 + 1),
            headers=auth_headers(),
        )

        assert response.status_code == 413
        assert response.json()["error"] == "request_too_large"

    def test_webhooks_get_larger_limit(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/webhooks/carrier",
            content=b"x" * (2 * 1024 * 1024),
            headers={"x-api-key": "wrong"},
        )

        assert response.status_code == 401


class TestLatencyStats:
    """Tests for latency sample aggregation."""

    def test_normalize_path(self) -> None:
        assert (
            normalize_path("/api/v1/admin/orders/660e8400-e29b-41d4-a716-446655440000/tracking")
            == "/api/v1/admin/orders/{id}/tracking"
        )
        assert normalize_path("/api/v1/admin/orders/returns/RET-AB12CD") == "/api/v1/admin/orders/returns/{id}"

    def test_stats_by_path(self) -> None:
        stats = LatencyStats(max_samples=3)
        for latency in (10.0, 20.0, 30.0, 40.0):
            stats.record("/api/v1/orders/refund-requests", latency)

        summary = stats.get_stats_by_path()["/api/v1/orders/refund-requests"]

        assert summary["count"] == 3
        assert summary["avg_ms"] == 30.0
        assert summary["p95_ms"] == 40.0
