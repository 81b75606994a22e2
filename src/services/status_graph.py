"""Order item status graph.

The graph is forward-only: once an item has moved on, it can never return to a
status it held earlier. Every mutation path (user actions, admin overrides and
carrier webhooks) consults this module before touching an item's status.
"""

from collections import deque
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping


class OrderStatus(str, Enum):
    """Status of a single order item batch."""

    ORDERED = "Ordered"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"
    RETURN_REQUESTED = "Return Requested"
    DEPARTED_FOR_RETURNING = "Departed For Returning"
    RETURNED = "Returned"
    RETURN_CANCELLED = "Return Cancelled"
    REFUNDED = "Refunded"


# Targets are listed in display order; the frozensets back membership checks.
_NEXT_STATUSES: Mapping[OrderStatus, tuple[OrderStatus, ...]] = MappingProxyType(
    {
        OrderStatus.ORDERED: (OrderStatus.SHIPPED, OrderStatus.CANCELLED),
        OrderStatus.SHIPPED: (OrderStatus.DELIVERED,),
        OrderStatus.DELIVERED: (OrderStatus.RETURN_REQUESTED,),
        OrderStatus.CANCELLED: (OrderStatus.REFUNDED,),
        OrderStatus.RETURN_REQUESTED: (
            OrderStatus.DEPARTED_FOR_RETURNING,
            OrderStatus.RETURN_CANCELLED,
        ),
        OrderStatus.DEPARTED_FOR_RETURNING: (
            OrderStatus.RETURNED,
            OrderStatus.RETURN_CANCELLED,
        ),
        OrderStatus.RETURNED: (OrderStatus.REFUNDED,),
        OrderStatus.RETURN_CANCELLED: (),
        OrderStatus.REFUNDED: (),
    }
)

STATUS_TRANSITIONS: Mapping[OrderStatus, frozenset[OrderStatus]] = MappingProxyType(
    {status: frozenset(targets) for status, targets in _NEXT_STATUSES.items()}
)

STATUS_DESCRIPTIONS: Mapping[OrderStatus, str] = MappingProxyType(
    {
        OrderStatus.ORDERED: "Order placed and awaiting shipment",
        OrderStatus.SHIPPED: "Handed over to the courier",
        OrderStatus.DELIVERED: "Delivered to the customer",
        OrderStatus.CANCELLED: "Cancelled before shipment",
        OrderStatus.RETURN_REQUESTED: "Customer asked to return the item",
        OrderStatus.DEPARTED_FOR_RETURNING: "Return pickup is on its way back",
        OrderStatus.RETURNED: "Returned item received",
        OrderStatus.RETURN_CANCELLED: "Return request withdrawn",
        OrderStatus.REFUNDED: "Amount refunded to the customer",
    }
)

TERMINAL_STATUSES: frozenset[OrderStatus] = frozenset(
    status for status, targets in STATUS_TRANSITIONS.items() if not targets
)

REFUND_ELIGIBLE_STATUSES: frozenset[OrderStatus] = frozenset(
    {OrderStatus.CANCELLED, OrderStatus.RETURNED}
)

RETURN_STATUSES: frozenset[OrderStatus] = frozenset(
    {
        OrderStatus.RETURN_REQUESTED,
        OrderStatus.DEPARTED_FOR_RETURNING,
        OrderStatus.RETURNED,
        OrderStatus.RETURN_CANCELLED,
        OrderStatus.REFUNDED,
    }
)


def parse_status(value: Any) -> OrderStatus | None:
    """Return the OrderStatus for a value, or None if it is not a known status."""
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(value)
    except ValueError:
        return None


def can_transition(current: Any, target: Any) -> bool:
    """Check whether `target` is a direct successor of `current`.

    Unknown statuses on either side yield False rather than raising.
    """
    current_status = parse_status(current)
    target_status = parse_status(target)
    if current_status is None or target_status is None:
        return False
    return target_status in STATUS_TRANSITIONS[current_status]


def next_statuses(current: Any) -> list[OrderStatus]:
    """Legal next statuses of `current` in display order (empty when unknown)."""
    current_status = parse_status(current)
    if current_status is None:
        return []
    return list(_NEXT_STATUSES[current_status])


def available_transitions(current: Any) -> list[dict[str, str]]:
    """Describe the legal next statuses of `current` for UI rendering.

    Returns:
        list[dict]: One ``{"status", "description"}`` entry per legal target.
    """
    return [
        {"status": status.value, "description": STATUS_DESCRIPTIONS[status]}
        for status in next_statuses(current)
    ]


def is_reachable(current: Any, target: Any) -> bool:
    """Check whether `target` lies strictly ahead of `current` in the graph."""
    current_status = parse_status(current)
    target_status = parse_status(target)
    if current_status is None or target_status is None:
        return False

    seen: set[OrderStatus] = set()
    queue = deque(STATUS_TRANSITIONS[current_status])
    while queue:
        status = queue.popleft()
        if status == target_status:
            return True
        if status in seen:
            continue
        seen.add(status)
        queue.extend(STATUS_TRANSITIONS[status])
    return False


def is_terminal(status: Any) -> bool:
    """Check whether no transition leaves `status`."""
    return parse_status(status) in TERMINAL_STATUSES
