"""Integration tests for carrier webhook endpoints."""

import json

from fastapi.testclient import TestClient

from src.services.carrier_webhook_service import compute_signature
from tests.conftest import CARRIER_SECRET, FakeOrderRepository, make_item, make_order


def seed_shipped(repository: FakeOrderRepository) -> None:
    repository.add(
        make_order(
            items=[
                make_item("item-1", status="Shipped", carrier={"order_id": "SR123"}),
                make_item("item-2", status="Ordered"),
            ]
        )
    )


class TestCarrierOrderWebhook:
    """Tests for POST /api/v1/webhooks/carrier."""

    def test_delivered_event(self, client: TestClient, repository: FakeOrderRepository) -> None:
        seed_shipped(repository)
        body = json.dumps({"order_id": "SR123", "current_status": "DELIVERED", "awb": "AWB1"})

        response = client.post(
            "/api/v1/webhooks/carrier",
            content=body,
            headers={"x-api-key": CARRIER_SECRET, "Content-Type": "application/json"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["order_id"] == "ORD-1001"
        assert data["carrier_order_id"] == "SR123"
        assert data["items_transitioned"] == ["item-1"]
        items = repository.row()["items"]
        assert items[0]["status"] == "Delivered"
        assert items[0]["carrier"]["awb_code"] == "AWB1"
        assert items[1]["status"] == "Ordered"

    def test_rto_delivered_marks_returned(self, client: TestClient, repository: FakeOrderRepository) -> None:
        seed_shipped(repository)
        body = json.dumps({"order_id": "SR123", "status": "RTO_DELIVERED"})

        response = client.post("/api/v1/webhooks/carrier", content=body, headers={"x-api-key": CARRIER_SECRET})

        assert response.status_code == 200
        item = repository.row()["items"][0]
        assert item["status"] == "Returned"
        assert item["returned_at"]

    def test_wrong_api_key(self, client: TestClient, repository: FakeOrderRepository) -> None:
        seed_shipped(repository)

        response = client.post(
            "/api/v1/webhooks/carrier",
            content=json.dumps({"order_id": "SR123", "status": "DELIVERED"}),
            headers={"x-api-key": "wrong"},
        )

        assert response.status_code == 401
        assert response.json()["error"] == "authentication_failed"
        assert repository.saves == []

    def test_missing_fields(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/webhooks/carrier",
            content=json.dumps({"status": "DELIVERED"}),
            headers={"x-api-key": CARRIER_SECRET},
        )

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "malformed_payload"
        assert data["details"][0]["loc"] == ["order_id"]

    def test_invalid_json(self, client: TestClient) -> None:
        response = client.post("/api/v1/webhooks/carrier", content=b"not-json", headers={"x-api-key": CARRIER_SECRET})

        assert response.status_code == 400

    def test_unknown_carrier_order(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/webhooks/carrier",
            content=json.dumps({"order_id": "SR404", "status": "DELIVERED"}),
            headers={"x-api-key": CARRIER_SECRET},
        )

        assert response.status_code == 404

    def test_illegal_transition_is_conflict(self, client: TestClient, repository: FakeOrderRepository) -> None:
        repository.add(make_order(items=[make_item(status="Cancelled", carrier={"order_id": "SR123"})]))

        response = client.post(
            "/api/v1/webhooks/carrier",
            content=json.dumps({"order_id": "SR123", "status": "DELIVERED"}),
            headers={"x-api-key": CARRIER_SECRET},
        )

        assert response.status_code == 409
        assert response.json()["error"] == "invalid_transition"


class TestSignedWebhooks:
    """Tests for the signed return and tracking endpoints."""

    def test_return_event(self, client: TestClient, repository: FakeOrderRepository) -> None:
        repository.add(
            make_order(items=[make_item(status="Departed For Returning", carrier={"order_id": "SR123"})])
        )
        body = json.dumps({"original_order_id": "SR123", "return_order_id": "RT1", "status": "RETURNED"}).encode()

        response = client.post(
            "/api/v1/webhooks/carrier/return",
            content=body,
            headers={"x-carrier-hmac-sha256": compute_signature(CARRIER_SECRET, body)},
        )

        assert response.status_code == 200
        assert response.json()["family"] == "return"
        item = repository.row()["items"][0]
        assert item["status"] == "Returned"
        assert item["status_history"][-1]["note"].startswith("Return ")

    def test_bad_signature(self, client: TestClient, repository: FakeOrderRepository) -> None:
        seed_shipped(repository)
        body = json.dumps({"order_id": "SR123", "shipment_id": "SH1"}).encode()

        response = client.post(
            "/api/v1/webhooks/carrier/tracking",
            content=body,
            headers={"x-carrier-hmac-sha256": compute_signature("other-secret", body)},
        )

        assert response.status_code == 401

    def test_tracking_event_updates_metadata_only(
        self, client: TestClient, repository: FakeOrderRepository
    ) -> None:
        seed_shipped(repository)
        body = json.dumps(
            {"order_id": "SR123", "shipment_id": "SH1", "current_status": "DELIVERED", "courier_name": "Delhivery"}
        ).encode()

        response = client.post(
            "/api/v1/webhooks/carrier/tracking",
            content=body,
            headers={"x-carrier-hmac-sha256": compute_signature(CARRIER_SECRET, body)},
        )

        assert response.status_code == 200
        assert response.json()["items_transitioned"] == []
        assert response.json()["items_unchanged"] == ["item-1"]
        item = repository.row()["items"][0]
        assert item["status"] == "Shipped"
        assert item["carrier"]["shipment_id"] == "SH1"
        assert item["carrier"]["courier_name"] == "Delhivery"
