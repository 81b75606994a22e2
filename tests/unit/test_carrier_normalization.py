"""Unit tests for carrier status mapping and payload normalization."""

from datetime import datetime, timezone

import pytest

from src.services.carrier_status_mapper import (
    carrier_status_note,
    is_known_carrier_status,
    map_carrier_status,
    normalize_carrier_status,
)
from src.services.lifecycle_errors import MalformedPayloadError
from src.services.status_graph import OrderStatus
from src.services.webhook_normalizer import EventFamily, normalize_carrier_payload

RECEIVED_AT = datetime(2026, 3, 20, 9, 0, tzinfo=timezone.utc)


class TestCarrierStatusMapper:
    """Tests for the carrier status vocabulary."""

    @pytest.mark.parametrize(
        ("external", "expected"),
        [
            ("NEW", OrderStatus.ORDERED),
            ("READY_TO_SHIP", OrderStatus.ORDERED),
            ("SHIPPED", OrderStatus.SHIPPED),
            ("DELIVERED", OrderStatus.DELIVERED),
            ("LOST", OrderStatus.CANCELLED),
            ("RTO_DELIVERED", OrderStatus.RETURNED),
            ("DAMAGED", OrderStatus.RETURNED),
            ("RTO_CANCELLED", OrderStatus.RETURN_CANCELLED),
            ("REFUNDED", OrderStatus.REFUNDED),
        ],
    )
    def test_known_statuses(self, external: str, expected: OrderStatus) -> None:
        assert map_carrier_status(external) is expected

    def test_lookup_tolerates_case_and_separators(self) -> None:
        assert normalize_carrier_status("  rto delivered ") == "RTO_DELIVERED"
        assert normalize_carrier_status("Ready-To-Ship") == "READY_TO_SHIP"
        assert map_carrier_status("delivered") is OrderStatus.DELIVERED

    def test_unknown_status_falls_back_to_ordered(self) -> None:
        assert is_known_carrier_status("OUT_FOR_PICKUP") is False
        assert map_carrier_status("OUT_FOR_PICKUP") is OrderStatus.ORDERED
        assert map_carrier_status(None) is OrderStatus.ORDERED

    def test_notes(self) -> None:
        assert carrier_status_note("SHIPPED", "Delhivery") == "Order shipped via Delhivery"
        assert carrier_status_note("SHIPPED") == "Order shipped via courier"
        assert carrier_status_note("RTO_DELIVERED") == "Return order delivered"
        assert carrier_status_note("SOMETHING") == "Status updated"


class TestNormalizeCarrierPayload:
    """Tests for normalize_carrier_payload."""

    def test_order_payload(self) -> None:
        event = normalize_carrier_payload(
            {
                "order_id": "SR123",
                "current_status": "SHIPPED",
                "shipment_id": 77,
                "awb": "AWB999",
                "courier_name": "Delhivery",
                "current_timestamp": "2026-03-19T10:00:00Z",
            },
            EventFamily.ORDER,
            RECEIVED_AT,
        )

        assert event.order_id == "SR123"
        assert event.status == "SHIPPED"
        assert event.shipment_id == "77"
        assert event.tracking_number == "AWB999"
        assert event.awb_code == "AWB999"
        assert event.courier_name == "Delhivery"
        assert event.timestamp == datetime(2026, 3, 19, 10, 0, tzinfo=timezone.utc)

    def test_first_present_field_wins(self) -> None:
        event = normalize_carrier_payload(
            {"order_id": "", "external_order_id": "EXT-1", "status": "", "shipment_status": "DELIVERED"},
            EventFamily.ORDER,
            RECEIVED_AT,
        )

        assert event.order_id == "EXT-1"
        assert event.status == "DELIVERED"

    def test_unreadable_timestamp_uses_received_at(self) -> None:
        event = normalize_carrier_payload(
            {"order_id": "SR1", "status": "SHIPPED", "updated_at": "19th March"},
            EventFamily.ORDER,
            RECEIVED_AT,
        )

        assert event.timestamp == RECEIVED_AT
        assert event.raw_timestamp == "19th March"

    def test_return_payload_prefers_original_order_id(self) -> None:
        event = normalize_carrier_payload(
            {
                "original_order_id": "SR123",
                "order_id": "RT555",
                "return_order_id": "RT555",
                "status": "RETURNED",
                "return_reason": "Size issue",
                "refund_amount": "499.50",
            },
            EventFamily.RETURN,
            RECEIVED_AT,
        )

        assert event.order_id == "SR123"
        assert event.return_order_id == "RT555"
        assert event.reason == "Size issue"
        assert event.refund_amount == 499.5

    def test_tracking_scans_become_tracking_data(self) -> None:
        event = normalize_carrier_payload(
            {
                "order_id": "SR123",
                "shipment_id": "SH1",
                "current_status": "IN TRANSIT",
                "tracking_url": "https://track.example/SH1",
                "scans": [{"date": "2026-03-19", "activity": "Picked", "location": "BLR", "extra": 1}],
            },
            EventFamily.TRACKING,
            RECEIVED_AT,
        )

        assert event.raw_tracking_data == {
            "shipment_track_activities": [{"date": "2026-03-19", "activity": "Picked", "location": "BLR"}],
            "track_url": "https://track.example/SH1",
            "shipment_track": [{"current_status": "IN TRANSIT"}],
        }

    def test_missing_required_fields(self) -> None:
        with pytest.raises(MalformedPayloadError) as exc_info:
            normalize_carrier_payload({"courier": "X"}, EventFamily.ORDER, RECEIVED_AT)

        assert [d["loc"] for d in exc_info.value.details] == [["order_id"], ["status"]]

    def test_tracking_requires_shipment_id(self) -> None:
        with pytest.raises(MalformedPayloadError):
            normalize_carrier_payload({"order_id": "SR1", "status": "SHIPPED"}, EventFamily.TRACKING, RECEIVED_AT)

    @pytest.mark.parametrize("raw", [[], "text", None])
    def test_non_object_body(self, raw: object) -> None:
        with pytest.raises(MalformedPayloadError):
            normalize_carrier_payload(raw, EventFamily.ORDER, RECEIVED_AT)

    def test_invalid_refund_amount(self) -> None:
        with pytest.raises(MalformedPayloadError):
            normalize_carrier_payload(
                {"order_id": "SR1", "status": "RETURNED", "refund_amount": "lots"},
                EventFamily.RETURN,
                RECEIVED_AT,
            )
