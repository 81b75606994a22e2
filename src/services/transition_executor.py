"""Transition executor: the single authority over item status changes.

Every driver (user request, admin override, carrier webhook, shipment
hand-off) funnels through apply_transition. It mutates the in-memory order
document only; persistence happens in the transaction runner that owns the
document copy, so a raised error leaves nothing written.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable
from uuid import uuid4

from src.models.order import OrderItem, StatusHistoryEntry
from src.services.item_splitter import split_item
from src.services.lifecycle_errors import (
    InvalidRequestError,
    InvalidTransitionError,
    ItemNotFoundError,
    MissingDeliveryRecordError,
    QuantityExceededError,
    ReturnWindowExpiredError,
)
from src.services.status_graph import (
    OrderStatus,
    can_transition,
    is_reachable,
    next_statuses,
    parse_status,
)
from src.services.status_history import (
    append_entry,
    latest_entry_for,
    parse_timestamp,
    utc_now,
)

logger = logging.getLogger(__name__)

DEFAULT_RETURN_WINDOW_DAYS = 7

IdFactory = Callable[[str], str]


def new_identifier(prefix: str = "") -> str:
    """Generate an identifier.

    Item ids are UUIDs; cancel and return references are short prefixed
    tokens such as ``RET-3F9A0C21B4D7``.
    """
    if not prefix:
        return str(uuid4())
    return f"{prefix}-{secrets.token_hex(6).upper()}"


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of one applied transition."""

    item_id: str
    sibling_id: str | None
    from_status: OrderStatus
    to_status: OrderStatus
    quantity: int
    entry: StatusHistoryEntry

    @property
    def transitioned_item_id(self) -> str:
        """Id of the record now carrying the target status."""
        return self.sibling_id or self.item_id

    @property
    def is_partial(self) -> bool:
        return self.sibling_id is not None


def find_item(order: dict[str, Any], item_id: str) -> OrderItem:
    """Return the item with `item_id` or raise ItemNotFoundError."""
    for item in order.get("items") or []:
        if str(item.get("id")) == str(item_id):
            return item
    raise ItemNotFoundError(f"Item {item_id} not found in order {order.get('order_id')}")


def check_return_window(
    item: OrderItem,
    now: datetime,
    window_days: int = DEFAULT_RETURN_WINDOW_DAYS,
) -> None:
    """Ensure a return may still be requested for a delivered item.

    Days are counted on calendar dates (UTC), so a return exactly
    `window_days` after delivery is accepted and one day later is not.

    Raises:
        MissingDeliveryRecordError: If the ledger holds no Delivered entry.
        ReturnWindowExpiredError: If the window has passed.
    """
    delivered = latest_entry_for(item, OrderStatus.DELIVERED.value)
    delivered_at = parse_timestamp(delivered.get("changed_at")) if delivered else None
    if delivered_at is None:
        raise MissingDeliveryRecordError("Delivery record not found for this item")

    days_passed = (parse_timestamp(now).date() - delivered_at.date()).days
    if days_passed > window_days:
        raise ReturnWindowExpiredError(
            f"Return window expired: delivered {days_passed} days ago, "
            f"returns are accepted for {window_days} days"
        )


def _apply_side_effects(
    item: OrderItem,
    target: OrderStatus,
    note: str | None,
    stamp: str,
    refund_amount: float | None,
    id_factory: IdFactory,
) -> None:
    if target == OrderStatus.SHIPPED:
        item["shipped_at"] = stamp
    elif target == OrderStatus.DELIVERED:
        item["delivered_at"] = stamp
    elif target == OrderStatus.CANCELLED:
        item["cancelled_at"] = stamp
        item["cancel_id"] = id_factory("CAN")
    elif target == OrderStatus.RETURN_REQUESTED:
        item["return_requested_at"] = stamp
        item["return_request_note"] = note
        item["return_id"] = id_factory("RET")
    elif target == OrderStatus.DEPARTED_FOR_RETURNING:
        item["return_departed_at"] = stamp
    elif target == OrderStatus.RETURNED:
        item["returned_at"] = stamp
    elif target == OrderStatus.RETURN_CANCELLED:
        item["return_cancelled_at"] = stamp
        item["return_id"] = None
        item["return_requested_at"] = None
        item["return_request_note"] = None
    elif target == OrderStatus.REFUNDED:
        refund = dict(item.get("refund") or {})
        refund["processed_at"] = stamp
        if refund_amount is not None:
            refund["amount"] = refund_amount
        item["refund"] = refund


def apply_transition(
    order: dict[str, Any],
    item_id: str,
    target_status: str | OrderStatus,
    quantity: int | None = None,
    note: str | None = None,
    *,
    now: datetime | None = None,
    refund_amount: float | None = None,
    id_factory: IdFactory = new_identifier,
    return_window_days: int = DEFAULT_RETURN_WINDOW_DAYS,
    allow_skip: bool = False,
) -> TransitionResult:
    """Apply one status change to one item of an in-memory order.

    A quantity below the item's quantity splits the batch: the original keeps
    its status with the remainder and a sibling carrying the transitioned
    units is appended to the order.

    Args:
        order: Order document, mutated in place.
        item_id: Id of the item to transition.
        target_status: Requested status.
        quantity: Units to transition; None means the whole batch.
        note: Optional ledger note (also the return note for return requests).
        now: Transition time, defaults to the current UTC time.
        refund_amount: Amount recorded when moving to Refunded.
        id_factory: Generator for item, cancel and return identifiers.
        return_window_days: Days after delivery during which returns are allowed.
        allow_skip: Accept any status ahead of the current one instead of a
            direct successor. Used for carrier events, which may skip steps.

    Returns:
        TransitionResult: What changed.

    Raises:
        ItemNotFoundError: If the item is not in the order.
        InvalidTransitionError: If the graph forbids the move.
        InvalidRequestError: If quantity is not a positive integer.
        QuantityExceededError: If quantity exceeds the item's quantity.
        MissingDeliveryRecordError: Return requested without a delivery record.
        ReturnWindowExpiredError: Return requested after the window.
    """
    now = now or utc_now()
    item = find_item(order, item_id)
    current = parse_status(item.get("status"))
    target = parse_status(target_status)

    allowed = [status.value for status in next_statuses(current)]
    if current is None or target is None:
        raise InvalidTransitionError(str(item.get("status")), str(target_status), allowed)
    legal = is_reachable(current, target) if allow_skip else can_transition(current, target)
    if not legal:
        raise InvalidTransitionError(current.value, target.value, allowed)

    available = item.get("quantity", 0)
    if quantity is not None:
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidRequestError("Quantity must be a positive integer")
        if quantity > available:
            raise QuantityExceededError(
                f"Requested quantity {quantity} exceeds available quantity {available}"
            )

    if target == OrderStatus.RETURN_REQUESTED:
        check_return_window(item, now, return_window_days)

    sibling_id = None
    subject = item
    if quantity is not None and quantity < available:
        subject = split_item(order, item, quantity, new_id=id_factory(""))
        sibling_id = subject["id"]

    subject["status"] = target.value
    entry = append_entry(subject, target.value, note, now)
    _apply_side_effects(
        subject,
        target,
        note,
        entry["changed_at"],
        refund_amount,
        id_factory,
    )

    logger.info(
        "Item %s of order %s moved %s -> %s (qty %s%s)",
        item_id,
        order.get("order_id"),
        current.value,
        target.value,
        subject.get("quantity"),
        f", split into {sibling_id}" if sibling_id else "",
    )

    return TransitionResult(
        item_id=str(item["id"]),
        sibling_id=sibling_id,
        from_status=current,
        to_status=target,
        quantity=subject.get("quantity", 0),
        entry=entry,
    )
