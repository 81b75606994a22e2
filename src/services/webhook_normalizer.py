"""Normalize carrier webhook payloads into one canonical event shape.

Carrier payloads name the same field differently across event types and API
versions. Normalization is a pure mapping: the first present field of each
fallback chain wins.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from src.services.lifecycle_errors import MalformedPayloadError
from src.services.status_history import parse_timestamp


class EventFamily(str, Enum):
    """Carrier webhook endpoints."""

    ORDER = "order"
    RETURN = "return"
    TRACKING = "tracking"


ORDER_ID_FIELDS = ("order_id", "external_order_id", "channel_order_id", "id", "orderid")
RETURN_ORDER_ID_FIELDS = ("original_order_id",) + ORDER_ID_FIELDS
STATUS_FIELDS = (
    "status",
    "current_status",
    "shipment_status",
    "current_status_id",
    "shipment_status_id",
)
SHIPMENT_ID_FIELDS = ("shipment_id", "shipmentid")
TRACKING_NUMBER_FIELDS = ("tracking_number", "tracking_id", "awb", "awb_code")
AWB_FIELDS = ("awb_code", "awb")
COURIER_FIELDS = ("courier_name", "courier")
TIMESTAMP_FIELDS = ("updated_at", "current_timestamp", "timestamp", "etd")
REASON_FIELDS = ("reason", "remark", "comment", "return_reason")
REFUND_AMOUNT_FIELDS = ("refund_amount", "return_amount")

REQUIRED_FIELDS: dict[EventFamily, tuple[str, ...]] = {
    EventFamily.ORDER: ("order_id", "status"),
    EventFamily.RETURN: ("order_id", "status"),
    EventFamily.TRACKING: ("order_id", "shipment_id"),
}


@dataclass(frozen=True)
class CarrierEvent:
    """Canonical carrier event."""

    family: EventFamily
    order_id: str
    status: str | None
    shipment_id: str | None = None
    tracking_number: str | None = None
    awb_code: str | None = None
    courier_name: str | None = None
    timestamp: datetime | None = None
    raw_timestamp: str | None = None
    reason: str | None = None
    raw_tracking_data: dict[str, Any] | None = None
    return_order_id: str | None = None
    refund_amount: float | None = None


def _first(raw: dict[str, Any], fields: tuple[str, ...]) -> Any:
    for name in fields:
        value = raw.get(name)
        if value is None or value == "":
            continue
        return value
    return None


def _first_text(raw: dict[str, Any], fields: tuple[str, ...]) -> str | None:
    value = _first(raw, fields)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _tracking_data(raw: dict[str, Any], status: str | None) -> dict[str, Any] | None:
    tracking_data = raw.get("tracking_data")
    if isinstance(tracking_data, dict):
        return tracking_data

    scans = raw.get("scans")
    if not isinstance(scans, list):
        return None
    return {
        "shipment_track_activities": [
            {
                "date": scan.get("date"),
                "activity": scan.get("activity"),
                "location": scan.get("location"),
            }
            for scan in scans
            if isinstance(scan, dict)
        ],
        "track_url": raw.get("tracking_url"),
        "shipment_track": [{"current_status": status}],
    }


def _refund_amount(raw: dict[str, Any]) -> float | None:
    value = _first(raw, REFUND_AMOUNT_FIELDS)
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise MalformedPayloadError(f"Invalid refund amount: {value!r}")


def normalize_carrier_payload(
    raw: Any,
    family: EventFamily,
    received_at: datetime,
) -> CarrierEvent:
    """Build a CarrierEvent from a raw webhook body.

    Args:
        raw: Decoded JSON body.
        family: Endpoint the payload arrived on.
        received_at: Ingestion time, used when the payload carries no
            readable timestamp.

    Returns:
        CarrierEvent: Canonical event.

    Raises:
        MalformedPayloadError: If the body is not an object or lacks the
            fields the family requires.
    """
    if not isinstance(raw, dict):
        raise MalformedPayloadError("Webhook payload must be a JSON object")

    order_id_fields = RETURN_ORDER_ID_FIELDS if family == EventFamily.RETURN else ORDER_ID_FIELDS
    status = _first_text(raw, STATUS_FIELDS)
    values = {
        "order_id": _first_text(raw, order_id_fields),
        "status": status,
        "shipment_id": _first_text(raw, SHIPMENT_ID_FIELDS),
    }

    missing = [name for name in REQUIRED_FIELDS[family] if not values[name]]
    if missing:
        raise MalformedPayloadError(
            f"Missing required webhook fields: {', '.join(missing)}",
            details=[{"loc": [name], "msg": "field required", "type": "missing"} for name in missing],
        )

    raw_timestamp = _first_text(raw, TIMESTAMP_FIELDS)
    timestamp = parse_timestamp(raw_timestamp) or received_at

    return CarrierEvent(
        family=family,
        order_id=values["order_id"],
        status=status,
        shipment_id=values["shipment_id"],
        tracking_number=_first_text(raw, TRACKING_NUMBER_FIELDS),
        awb_code=_first_text(raw, AWB_FIELDS),
        courier_name=_first_text(raw, COURIER_FIELDS),
        timestamp=timestamp,
        raw_timestamp=raw_timestamp,
        reason=_first_text(raw, REASON_FIELDS),
        raw_tracking_data=_tracking_data(raw, status),
        return_order_id=_first_text(raw, ("return_order_id",)),
        refund_amount=_refund_amount(raw),
    )
