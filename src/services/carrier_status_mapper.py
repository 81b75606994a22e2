"""Translate carrier status vocabulary into item statuses."""

import re
from types import MappingProxyType
from typing import Mapping

from src.services.status_graph import OrderStatus

CARRIER_STATUS_MAP: Mapping[str, OrderStatus] = MappingProxyType(
    {
        "NEW": OrderStatus.ORDERED,
        "PROCESSING": OrderStatus.ORDERED,
        "READY_TO_SHIP": OrderStatus.ORDERED,
        "SHIPPED": OrderStatus.SHIPPED,
        "DELIVERED": OrderStatus.DELIVERED,
        "CANCELLED": OrderStatus.CANCELLED,
        "LOST": OrderStatus.CANCELLED,
        "RTO": OrderStatus.RETURNED,
        "RTO_DELIVERED": OrderStatus.RETURNED,
        "DAMAGED": OrderStatus.RETURNED,
        "RETURNED": OrderStatus.RETURNED,
        "RTO_CANCELLED": OrderStatus.RETURN_CANCELLED,
        "REFUNDED": OrderStatus.REFUNDED,
    }
)

# "{courier}" is filled with the courier name when the carrier sent one.
CARRIER_STATUS_NOTES: Mapping[str, str] = MappingProxyType(
    {
        "NEW": "Order received by carrier",
        "PROCESSING": "Order is being processed",
        "READY_TO_SHIP": "Order is ready for shipment",
        "SHIPPED": "Order shipped via {courier}",
        "DELIVERED": "Order delivered successfully",
        "CANCELLED": "Order cancelled",
        "LOST": "Order lost in transit",
        "RTO": "Order returned to origin",
        "RTO_DELIVERED": "Return order delivered",
        "DAMAGED": "Order damaged in transit",
        "RETURNED": "Order returned",
        "RTO_CANCELLED": "Return order cancelled",
        "REFUNDED": "Order refunded",
    }
)

DEFAULT_NOTE = "Status updated"

_SEPARATORS = re.compile(r"[\s\-]+")


def normalize_carrier_status(external_status: object) -> str:
    """Canonical lookup key: trimmed, upper-case, words joined by underscores."""
    if external_status is None:
        return ""
    return _SEPARATORS.sub("_", str(external_status).strip()).upper()


def is_known_carrier_status(external_status: object) -> bool:
    return normalize_carrier_status(external_status) in CARRIER_STATUS_MAP


def map_carrier_status(external_status: object) -> OrderStatus:
    """Map a carrier status to an item status.

    Unrecognized statuses map to Ordered. Callers that must not move an item
    backwards should check is_known_carrier_status first.
    """
    return CARRIER_STATUS_MAP.get(
        normalize_carrier_status(external_status), OrderStatus.ORDERED
    )


def carrier_status_note(external_status: object, courier_name: str | None = None) -> str:
    """Human-readable ledger note for a carrier status.

    Args:
        external_status: Status string as sent by the carrier.
        courier_name: Courier handling the shipment, if known.

    Returns:
        str: Note text, or "Status updated" for unknown statuses.
    """
    template = CARRIER_STATUS_NOTES.get(normalize_carrier_status(external_status))
    if template is None:
        return DEFAULT_NOTE
    return template.format(courier=courier_name or "courier")
