"""Carrier webhook ingestion: authenticate, normalize and apply events."""

import base64
import hashlib
import hmac
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping

from src.core.config import get_settings
from src.models.order import OrderItem
from src.services.carrier_status_mapper import (
    carrier_status_note,
    is_known_carrier_status,
    map_carrier_status,
)
from src.services.lifecycle_errors import (
    AuthenticationFailedError,
    InvalidTransitionError,
    MalformedPayloadError,
    OrderLifecycleError,
    OrderNotFoundError,
)
from src.services.order_repository import OrderRepository
from src.services.order_session import OrderTransactionRunner
from src.services.status_graph import is_reachable, next_statuses, parse_status
from src.services.status_history import format_timestamp, utc_now
from src.services.transition_executor import TransitionResult, apply_transition
from src.services.webhook_normalizer import CarrierEvent, EventFamily, normalize_carrier_payload

logger = logging.getLogger(__name__)

API_KEY_HEADER = "x-api-key"
SIGNATURE_HEADER = "x-carrier-hmac-sha256"


@dataclass
class WebhookOutcome:
    """Result of one processed carrier event."""

    event: CarrierEvent
    order: dict[str, Any]
    matched_item_ids: list[str] = field(default_factory=list)
    transitions: list[TransitionResult] = field(default_factory=list)
    unchanged_item_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "order_id": self.order.get("order_id"),
            "carrier_order_id": self.event.order_id,
            "family": self.event.family.value,
            "items_matched": len(self.matched_item_ids),
            "items_transitioned": [result.item_id for result in self.transitions],
            "items_unchanged": self.unchanged_item_ids,
        }


def compute_signature(secret: str, body: bytes) -> str:
    """Base64-encoded HMAC-SHA256 of the raw body."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def _header(headers: Mapping[str, str], name: str) -> str | None:
    value = headers.get(name)
    if value is None:
        value = headers.get(name.lower())
    return value


def verify_webhook(
    body: bytes,
    headers: Mapping[str, str],
    family: EventFamily,
    secret: str,
) -> None:
    """Check a webhook call's authenticity.

    Order-status calls carry the shared secret in ``x-api-key``; return and
    tracking calls carry a base64 HMAC-SHA256 of the body in
    ``x-carrier-hmac-sha256``. With no secret configured every call fails.

    Raises:
        AuthenticationFailedError: If the header is missing or wrong.
    """
    if not secret:
        raise AuthenticationFailedError("Carrier webhook secret is not configured")

    if family == EventFamily.ORDER:
        provided = _header(headers, API_KEY_HEADER)
        expected = secret
    else:
        provided = _header(headers, SIGNATURE_HEADER)
        expected = compute_signature(secret, body)

    if not provided or not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
        raise AuthenticationFailedError("Invalid webhook signature")


def _refresh_carrier_metadata(item: OrderItem, event: CarrierEvent, stamp: str) -> None:
    carrier = dict(item.get("carrier") or {})

    if event.family == EventFamily.RETURN:
        carrier["return_order_id"] = event.return_order_id or carrier.get("return_order_id")
        carrier["return_shipment_id"] = event.shipment_id or carrier.get("return_shipment_id")
        carrier["return_tracking_number"] = (
            event.tracking_number or carrier.get("return_tracking_number")
        )
        carrier["return_courier_name"] = event.courier_name or carrier.get("return_courier_name")
        carrier["return_awb_code"] = event.awb_code or carrier.get("return_awb_code")
        carrier["return_status"] = event.status
        carrier["return_reason"] = event.reason or carrier.get("return_reason")
        carrier["return_last_updated"] = stamp
    else:
        carrier["shipment_id"] = event.shipment_id or carrier.get("shipment_id")
        carrier["tracking_number"] = event.tracking_number or carrier.get("tracking_number")
        carrier["courier_name"] = event.courier_name or carrier.get("courier_name")
        carrier["status"] = event.status or carrier.get("status")
        carrier["tracking_data"] = event.raw_tracking_data or carrier.get("tracking_data")
        carrier["last_updated"] = stamp
        if event.family == EventFamily.ORDER:
            carrier["awb_code"] = event.awb_code or carrier.get("awb_code")
            carrier["reason"] = event.reason or carrier.get("reason")

    item["carrier"] = carrier


def _matches(item: OrderItem, carrier_order_id: str) -> bool:
    carrier = item.get("carrier") or {}
    return carrier_order_id in (
        str(carrier.get("order_id") or ""),
        str(carrier.get("return_order_id") or ""),
    )


def apply_carrier_event(
    order: dict[str, Any],
    event: CarrierEvent,
    received_at: datetime,
) -> WebhookOutcome:
    """Apply a normalized event to every item of the carrier order.

    Items already at the mapped status, or already past it, only get their
    carrier metadata refreshed. Tracking events and unknown carrier statuses
    never change an item's status.

    Args:
        order: Working copy of the order, mutated in place.
        event: Normalized carrier event.
        received_at: Ingestion time.

    Returns:
        WebhookOutcome: Items matched and transitioned.

    Raises:
        OrderNotFoundError: If no item references the carrier order.
        InvalidTransitionError: If an item can't reach the mapped status.
    """
    outcome = WebhookOutcome(event=event, order=order)
    items = [item for item in order.get("items") or [] if _matches(item, event.order_id)]
    if not items:
        raise OrderNotFoundError(f"No items found for carrier order {event.order_id}")

    applies_status = event.family != EventFamily.TRACKING and event.status is not None
    if applies_status and not is_known_carrier_status(event.status):
        logger.warning(
            "Unknown carrier status %r for carrier order %s, updating metadata only",
            event.status,
            event.order_id,
        )
        applies_status = False

    target = map_carrier_status(event.status) if applies_status else None
    note = None
    if target is not None:
        note = carrier_status_note(event.status, event.courier_name)
        if event.family == EventFamily.RETURN:
            note = f"Return {note}"

    stamp = format_timestamp(event.timestamp or received_at)
    for item in items:
        item_id = str(item["id"])
        outcome.matched_item_ids.append(item_id)
        current = parse_status(item.get("status"))

        if target is None or current == target:
            outcome.unchanged_item_ids.append(item_id)
        elif is_reachable(current, target):
            outcome.transitions.append(
                apply_transition(
                    order,
                    item_id,
                    target,
                    note=note,
                    now=event.timestamp or received_at,
                    refund_amount=event.refund_amount,
                    allow_skip=True,
                )
            )
        elif current is not None and is_reachable(target, current):
            logger.info(
                "Stale carrier status %s for item %s already at %s",
                event.status,
                item_id,
                current.value,
            )
            outcome.unchanged_item_ids.append(item_id)
        else:
            raise InvalidTransitionError(
                str(item.get("status")),
                target.value,
                [status.value for status in next_statuses(current)],
            )

        _refresh_carrier_metadata(item, event, stamp)

    return outcome


class CarrierWebhookService:
    """Ingests carrier webhook calls for the three event families."""

    def __init__(self, repository: OrderRepository | None = None) -> None:
        """Initialize webhook service.

        Args:
            repository: Order data access, defaults to the Supabase repository.
        """
        self.settings = get_settings()
        self.repository = repository or OrderRepository()
        self.runner = OrderTransactionRunner(repository=self.repository)

    async def ingest_carrier_event(
        self,
        body: bytes,
        headers: Mapping[str, str],
        family: EventFamily,
    ) -> WebhookOutcome:
        """Authenticate, normalize and apply one carrier webhook call.

        The whole call commits as one order save or not at all.

        Args:
            body: Raw request body.
            headers: Request headers.
            family: Endpoint the call arrived on.

        Returns:
            WebhookOutcome: What was applied.

        Raises:
            AuthenticationFailedError: Bad or missing credentials.
            MalformedPayloadError: Body is not usable.
            OrderNotFoundError: Unknown carrier order id.
            OrderLifecycleError: Any transition failure.
        """
        verify_webhook(body, headers, family, self.settings.carrier_webhook_secret)

        try:
            raw = json.loads(body)
        except ValueError:
            raise MalformedPayloadError("Webhook body is not valid JSON")

        received_at = utc_now()
        event = normalize_carrier_payload(raw, family, received_at)
        logger.info(
            "Carrier %s webhook for carrier order %s with status %s",
            family.value,
            event.order_id,
            event.status,
        )

        try:
            _, outcome = await self.runner.run(
                lambda: self.repository.find_by_carrier_order_id(event.order_id),
                lambda order: apply_carrier_event(order, event, received_at),
                not_found_message=f"Order not found for carrier order {event.order_id}",
            )
        except OrderLifecycleError as e:
            logger.warning(
                "Carrier %s webhook for %s failed: %s (%s)",
                family.value,
                event.order_id,
                e.message,
                e.code.value,
            )
            raise

        logger.info(
            "Carrier order %s: %d items matched, %d transitioned",
            event.order_id,
            len(outcome.matched_item_ids),
            len(outcome.transitions),
        )
        return outcome
