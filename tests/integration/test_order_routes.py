"""Integration tests for customer order item endpoints."""

from datetime import timedelta

from fastapi.testclient import TestClient

from src.services.status_history import utc_now
from tests.conftest import (
    ORDER_UUID,
    OTHER_USER_ID,
    FakeOrderRepository,
    auth_headers,
    make_item,
    make_order,
)


def delivered_days_ago(days: int) -> dict:
    now = utc_now()
    return make_item(
        status="Delivered",
        history=[
            ("Ordered", (now - timedelta(days=days + 3)).isoformat()),
            ("Delivered", (now - timedelta(days=days)).isoformat()),
        ],
    )


class TestAuthentication:
    """Tests for bearer token enforcement."""

    def test_missing_token(self, client: TestClient) -> None:
        response = client.get("/api/v1/orders/items/item-1/available-transitions")

        assert response.status_code == 401

    def test_invalid_token(self, client: TestClient) -> None:
        response = client.get(
            "/api/v1/orders/items/item-1/available-transitions",
            headers={"Authorization": "Bearer not-a-token"},
        )

        assert response.status_code == 401


class TestAvailableTransitions:
    """Tests for GET /api/v1/orders/items/{item_id}/available-transitions."""

    def test_own_item(self, client: TestClient, repository: FakeOrderRepository) -> None:
        repository.add(make_order())

        response = client.get("/api/v1/orders/items/item-1/available-transitions", headers=auth_headers())

        assert response.status_code == 200
        data = response.json()
        assert data["current_status"] == "Ordered"
        assert [t["status"] for t in data["available_transitions"]] == ["Shipped", "Cancelled"]

    def test_someone_elses_item(self, client: TestClient, repository: FakeOrderRepository) -> None:
        repository.add(make_order())

        response = client.get(
            "/api/v1/orders/items/item-1/available-transitions",
            headers=auth_headers(sub=OTHER_USER_ID),
        )

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"


class TestCancelItem:
    """Tests for POST /api/v1/orders/items/{item_id}/cancel."""

    def test_partial_cancel(self, client: TestClient, repository: FakeOrderRepository) -> None:
        repository.add(make_order(items=[make_item(quantity=3)]))

        response = client.post(
            "/api/v1/orders/items/item-1/cancel",
            json={"quantity": 1, "note": "Ordered too many"},
            headers=auth_headers(),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Item cancelled successfully"
        assert data["split_from_item_id"] == "item-1"
        assert data["from_status"] == "Ordered"
        assert data["to_status"] == "Cancelled"
        assert data["quantity"] == 1
        assert data["item"]["cancel_id"].startswith("CAN-")
        assert [(i["status"], i["quantity"]) for i in repository.row()["items"]] == [
            ("Ordered", 2),
            ("Cancelled", 1),
        ]

    def test_cancel_shipped_item_conflict(self, client: TestClient, repository: FakeOrderRepository) -> None:
        repository.add(make_order(items=[make_item(status="Shipped")]))

        response = client.post("/api/v1/orders/items/item-1/cancel", json={}, headers=auth_headers())

        assert response.status_code == 409
        data = response.json()
        assert data["error"] == "invalid_transition"
        assert data["details"] == [{"loc": ["status"], "msg": "Delivered", "type": "allowed_transition"}]

    def test_quantity_too_large(self, client: TestClient, repository: FakeOrderRepository) -> None:
        repository.add(make_order(items=[make_item(quantity=1)]))

        response = client.post("/api/v1/orders/items/item-1/cancel", json={"quantity": 4}, headers=auth_headers())

        assert response.status_code == 422
        assert response.json()["error"] == "quantity_exceeded"

    def test_zero_quantity_fails_validation(self, client: TestClient) -> None:
        response = client.post("/api/v1/orders/items/item-1/cancel", json={"quantity": 0}, headers=auth_headers())

        assert response.status_code == 422


class TestReturns:
    """Tests for return requests."""

    def test_return_within_window(self, client: TestClient, repository: FakeOrderRepository) -> None:
        repository.add(make_order(items=[delivered_days_ago(3)]))

        response = client.post(
            "/api/v1/orders/items/item-1/return",
            json={"note": "Wrong size"},
            headers=auth_headers(),
        )

        assert response.status_code == 200
        assert response.json()["item"]["return_id"].startswith("RET-")
        assert response.json()["item"]["return_request_note"] == "Wrong size"

    def test_return_window_expired(self, client: TestClient, repository: FakeOrderRepository) -> None:
        repository.add(make_order(items=[delivered_days_ago(10)]))

        response = client.post(
            "/api/v1/orders/items/item-1/return",
            json={"note": "Wrong size"},
            headers=auth_headers(),
        )

        assert response.status_code == 422
        assert response.json()["error"] == "return_window_expired"
        assert repository.row()["items"][0]["status"] == "Delivered"

    def test_return_requires_note(self, client: TestClient) -> None:
        response = client.post("/api/v1/orders/items/item-1/return", json={}, headers=auth_headers())

        assert response.status_code == 422

    def test_cancel_return(self, client: TestClient, repository: FakeOrderRepository) -> None:
        repository.add(make_order(items=[make_item(status="Return Requested", return_id="RET-1")]))

        response = client.post("/api/v1/orders/items/item-1/return-cancel", json={}, headers=auth_headers())

        assert response.status_code == 200
        assert response.json()["to_status"] == "Return Cancelled"
        assert response.json()["item"]["return_id"] is None


class TestRefundRequests:
    """Tests for customer refund requests."""

    def test_request_and_list(self, client: TestClient, repository: FakeOrderRepository) -> None:
        repository.add(make_order(items=[make_item(status="Cancelled", amount=250.0, quantity=2)]))

        response = client.post(
            f"/api/v1/orders/{ORDER_UUID}/items/item-1/refund-request",
            json={"account_details": {"account_type": "UPI", "upi_id": "asha@upi"}},
            headers=auth_headers(),
        )

        assert response.status_code == 201
        data = response.json()
        assert data["message"] == "Refund request submitted and awaiting approval"
        assert data["refund"]["status"] == "PENDING"
        assert data["refund"]["amount"] == 500.0

        listed = client.get("/api/v1/orders/refund-requests", headers=auth_headers())
        assert listed.status_code == 200
        assert listed.json()["total"] == 1
        assert listed.json()["items"][0]["item_id"] == "item-1"

    def test_duplicate_request_conflicts(self, client: TestClient, repository: FakeOrderRepository) -> None:
        repository.add(make_order(items=[make_item(status="Returned", refund={"status": "PENDING"})]))

        response = client.post(
            f"/api/v1/orders/{ORDER_UUID}/items/item-1/refund-request",
            json={"account_details": {"account_type": "UPI", "upi_id": "asha@upi"}},
            headers=auth_headers(),
        )

        assert response.status_code == 409
        assert response.json()["error"] == "already_processed"

    def test_incomplete_bank_details(self, client: TestClient, repository: FakeOrderRepository) -> None:
        repository.add(make_order(items=[make_item(status="Cancelled")]))

        response = client.post(
            f"/api/v1/orders/{ORDER_UUID}/items/item-1/refund-request",
            json={"account_details": {"account_type": "BANK", "account_number": "123"}},
            headers=auth_headers(),
        )

        assert response.status_code == 422
        assert response.json()["error"] == "invalid_request"
