"""User and admin driven item transitions: cancel, return and refund processing."""

import logging
from typing import Any

from src.core.config import get_settings
from src.models.order import OrderItem
from src.services.lifecycle_errors import (
    InvalidRequestError,
    InvalidTransitionError,
    ItemNotFoundError,
    OrderNotFoundError,
)
from src.services.order_repository import OrderRepository
from src.services.order_session import OrderTransactionRunner
from src.services.shipment_service import ShipmentService
from src.services.status_graph import (
    RETURN_STATUSES,
    OrderStatus,
    available_transitions,
    can_transition,
    next_statuses,
    parse_status,
)
from src.services.status_history import utc_now
from src.services.transition_executor import TransitionResult, apply_transition, find_item

logger = logging.getLogger(__name__)

# Statuses an admin may set through a return request reference.
RETURN_UPDATE_STATUSES = frozenset(
    {
        OrderStatus.DEPARTED_FOR_RETURNING,
        OrderStatus.RETURNED,
        OrderStatus.RETURN_CANCELLED,
        OrderStatus.REFUNDED,
    }
)

# Statuses listed as return requests by default.
RETURN_LISTING_STATUSES = (
    OrderStatus.RETURN_REQUESTED,
    OrderStatus.DEPARTED_FOR_RETURNING,
    OrderStatus.RETURNED,
    OrderStatus.RETURN_CANCELLED,
    OrderStatus.REFUNDED,
)

TransitionOutcome = tuple[dict[str, Any], TransitionResult]


def _require_text(value: str | None, message: str) -> str:
    if value is None or not value.strip():
        raise InvalidRequestError(message)
    return value.strip()


def _is_return_item(item: OrderItem) -> bool:
    # Refunded items only count as returns when they came back from the customer.
    if item.get("status") == OrderStatus.REFUNDED.value:
        return bool(item.get("returned_at"))
    return True


def return_item_summary(order: dict[str, Any], item: OrderItem) -> dict[str, Any]:
    """Flatten a return item with the order fields admins need."""
    refund = item.get("refund") or {}
    return {
        "return_id": item.get("return_id"),
        "order_id": order.get("order_id"),
        "order_uuid": str(order.get("id")),
        "item_id": str(item.get("id")),
        "status": item.get("status"),
        "product": item.get("product"),
        "color": item.get("color"),
        "size": item.get("size"),
        "quantity": item.get("quantity"),
        "amount": item.get("amount"),
        "customer_name": order.get("customer_name"),
        "customer_email": order.get("customer_email"),
        "return_requested_at": item.get("return_requested_at"),
        "return_request_note": item.get("return_request_note"),
        "return_departed_at": item.get("return_departed_at"),
        "returned_at": item.get("returned_at"),
        "return_cancelled_at": item.get("return_cancelled_at"),
        "refund_amount": refund.get("amount"),
        "refund_status": refund.get("status"),
        "refund_processed_at": refund.get("processed_at"),
        "ordered_at": order.get("ordered_at"),
        "payment_method": order.get("payment_method"),
        "payment_status": order.get("payment_status"),
        "shipping_info": order.get("shipping_info"),
        "status_history": item.get("status_history") or [],
    }


class OrderLifecycleService:
    """Service for item status changes requested by users and admins."""

    def __init__(
        self,
        repository: OrderRepository | None = None,
        shipment_service: ShipmentService | None = None,
    ) -> None:
        """Initialize lifecycle service.

        Args:
            repository: Order data access, defaults to the Supabase repository.
            shipment_service: Carrier hand-off service used for return pickups.
        """
        self.settings = get_settings()
        self.repository = repository or OrderRepository()
        self.runner = OrderTransactionRunner(repository=self.repository)
        self.shipment_service = shipment_service or ShipmentService(repository=self.repository)

    async def _transition_item(
        self,
        item_id: str,
        target: OrderStatus | str,
        quantity: int | None,
        note: str | None,
        user_id: str | None = None,
        refund_amount: float | None = None,
    ) -> TransitionOutcome:
        def mutate(order: dict[str, Any]) -> TransitionResult:
            result = apply_transition(
                order,
                item_id,
                target,
                quantity,
                note,
                now=utc_now(),
                refund_amount=refund_amount,
                return_window_days=self.settings.return_window_days,
            )
            if result.to_status == OrderStatus.REFUNDED:
                refunded = find_item(order, result.transitioned_item_id)
                refunded["refund"] = {**(refunded.get("refund") or {}), "status": "REFUNDED"}
            return result

        return await self.runner.run(
            lambda: self.repository.find_by_item_id(item_id, user_id),
            mutate,
            not_found_message=f"Item {item_id} not found",
        )

    async def get_available_transitions(
        self,
        item_id: str,
        user_id: str | None = None,
    ) -> dict[str, Any]:
        """Current status of an item and the statuses it may move to next.

        Args:
            item_id: Item id.
            user_id: Restrict to the caller's own orders when given.

        Returns:
            dict: item_id, current_status, quantity and available_transitions.

        Raises:
            ItemNotFoundError: If the item doesn't exist (or isn't the user's).
        """
        order = await self.repository.find_by_item_id(item_id, user_id)
        if order is None:
            raise ItemNotFoundError(f"Item {item_id} not found")
        item = find_item(order, item_id)
        return {
            "item_id": str(item["id"]),
            "order_id": order.get("order_id"),
            "current_status": item.get("status"),
            "quantity": item.get("quantity"),
            "available_transitions": available_transitions(item.get("status")),
        }

    async def request_transition(
        self,
        item_id: str,
        target_status: str,
        quantity: int | None = None,
        note: str | None = None,
    ) -> TransitionOutcome:
        """Admin override: move an item (or part of it) to any legal next status.

        Returns:
            tuple: Committed order row and the transition result.

        Raises:
            InvalidTransitionError: If the status is unknown or not a legal next step.
        """
        return await self._transition_item(
            item_id, target_status, quantity, note or f"Status changed to {target_status} by admin"
        )

    async def cancel_item(
        self,
        item_id: str,
        quantity: int | None = None,
        note: str | None = None,
        user_id: str | None = None,
    ) -> TransitionOutcome:
        """Cancel an item that has not shipped yet.

        Args:
            item_id: Item id.
            quantity: Units to cancel, whole batch when None.
            note: Optional ledger note.
            user_id: Owner scope for user requests, None for admins.
        """
        default_note = "Cancelled by user" if user_id else "Cancelled by admin"
        return await self._transition_item(
            item_id, OrderStatus.CANCELLED, quantity, note or default_note, user_id
        )

    async def request_return(
        self,
        item_id: str,
        note: str | None,
        user_id: str,
        quantity: int | None = None,
    ) -> TransitionOutcome:
        """Ask to return a delivered item within the return window.

        Raises:
            InvalidRequestError: If no reason is given.
            MissingDeliveryRecordError: If the item has no delivery record.
            ReturnWindowExpiredError: If the return window has passed.
        """
        reason = _require_text(note, "A reason is required to request a return")
        return await self._transition_item(
            item_id, OrderStatus.RETURN_REQUESTED, quantity, reason, user_id
        )

    async def cancel_return(
        self,
        item_id: str,
        quantity: int | None = None,
        user_id: str | None = None,
    ) -> TransitionOutcome:
        """Withdraw a return request that has not been received yet."""
        note = "Return cancelled by user" if user_id else "Return request cancelled by admin"
        return await self._transition_item(
            item_id, OrderStatus.RETURN_CANCELLED, quantity, note, user_id
        )

    async def process_refund(
        self,
        item_id: str,
        refund_amount: float,
        quantity: int | None = None,
    ) -> TransitionOutcome:
        """Admin: mark a cancelled or returned item as refunded.

        Raises:
            InvalidRequestError: If the amount is not positive.
        """
        if refund_amount is None or refund_amount <= 0:
            raise InvalidRequestError("Refund amount must be greater than zero")
        return await self._transition_item(
            item_id,
            OrderStatus.REFUNDED,
            quantity,
            "Refund processed by admin",
            refund_amount=refund_amount,
        )

    async def mark_departed_for_return(
        self,
        order_id: str,
        items: list[dict[str, Any]],
        note: str | None = None,
        package: dict[str, Any] | None = None,
        carrier_token: str | None = None,
    ) -> tuple[dict[str, Any], list[TransitionResult]]:
        """Admin: record that returned items have left the customer.

        Every listed item must currently be Return Requested. When a carrier
        token and package are supplied a carrier return pickup is booked; a
        failed booking is logged and does not stop the transition.

        Args:
            order_id: Order uuid.
            items: Entries with item_id and optional quantity.
            note: Ledger note.
            package: Package dimensions for the carrier return order.
            carrier_token: Carrier API token.

        Returns:
            tuple: Committed order row and one result per item.

        Raises:
            InvalidRequestError: If no items are given or an item repeats.
            InvalidTransitionError: If an item is not Return Requested.
        """
        if not items:
            raise InvalidRequestError("Select at least one item to mark as departed")
        item_ids = [str(entry["item_id"]) for entry in items]
        if len(set(item_ids)) != len(item_ids):
            raise InvalidRequestError("Each item may be listed only once")
        book_carrier = bool(carrier_token and package)

        async def mutate(order: dict[str, Any]) -> list[TransitionResult]:
            for item_id in item_ids:
                item = find_item(order, item_id)
                if item.get("status") != OrderStatus.RETURN_REQUESTED.value:
                    raise InvalidTransitionError(
                        str(item.get("status")),
                        OrderStatus.DEPARTED_FOR_RETURNING.value,
                        [status.value for status in next_statuses(item.get("status"))],
                    )

            now = utc_now()
            results = [
                apply_transition(
                    order,
                    str(entry["item_id"]),
                    OrderStatus.DEPARTED_FOR_RETURNING,
                    entry.get("quantity"),
                    note or "Item departed for return",
                    now=now,
                )
                for entry in items
            ]

            if book_carrier:
                departed = [find_item(order, result.transitioned_item_id) for result in results]
                carrier_return = await self.shipment_service.create_return_shipment(
                    order, departed, package, carrier_token
                )
                if carrier_return:
                    for item in departed:
                        item["carrier"] = {**(item.get("carrier") or {}), **carrier_return}
            return results

        return await self.runner.run(
            lambda: self.repository.get(order_id),
            mutate,
            retry_on_conflict=not book_carrier,
        )

    async def update_return_status(
        self,
        return_id: str,
        status: str,
        note: str | None = None,
    ) -> TransitionOutcome:
        """Admin: move the item behind a return request to its next status.

        When an earlier partial transition left several items sharing the
        return id, the first one that can take the requested status is used.

        Raises:
            OrderNotFoundError: If no item carries the return id.
            InvalidRequestError: If the status is not a return-stage status.
            InvalidTransitionError: If no such item can take the status.
        """
        target = parse_status(status)
        if target not in RETURN_UPDATE_STATUSES:
            allowed = ", ".join(sorted(s.value for s in RETURN_UPDATE_STATUSES))
            raise InvalidRequestError(f"Status must be one of: {allowed}")

        def mutate(order: dict[str, Any]) -> TransitionResult:
            candidates = [
                item for item in order.get("items") or [] if item.get("return_id") == return_id
            ]
            if not candidates:
                raise OrderNotFoundError("Return request not found")
            item = next(
                (c for c in candidates if can_transition(c.get("status"), target)),
                candidates[0],
            )
            return apply_transition(
                order,
                str(item["id"]),
                target,
                note=note or f"Return status updated to {target.value}",
                now=utc_now(),
            )

        return await self.runner.run(
            lambda: self.repository.find_by_return_id(return_id),
            mutate,
            not_found_message="Return request not found",
        )

    async def list_return_requests(
        self,
        status: str | None = None,
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        """Admin: items in return-related statuses, newest orders first.

        Args:
            status: Single status filter; None or "all" lists every return status.
            limit: Maximum orders scanned per status.

        Raises:
            InvalidRequestError: If the status filter is not a return status.
        """
        if status is None or status == "all":
            statuses = RETURN_LISTING_STATUSES
        else:
            parsed = parse_status(status)
            if parsed not in RETURN_STATUSES:
                raise InvalidRequestError(f"'{status}' is not a return status")
            statuses = (parsed,)

        wanted = {s.value for s in statuses}
        seen: set[str] = set()
        results = []
        for listed in statuses:
            for order in await self.repository.list_containing({"status": listed.value}, limit=limit):
                if str(order["id"]) in seen:
                    continue
                seen.add(str(order["id"]))
                results.extend(
                    return_item_summary(order, item)
                    for item in order.get("items") or []
                    if item.get("status") in wanted and _is_return_item(item)
                )

        results.sort(key=lambda entry: entry.get("ordered_at") or "", reverse=True)
        return results

    async def get_return_request(self, return_id: str) -> dict[str, Any]:
        """Admin: details of one return request.

        Raises:
            OrderNotFoundError: If no item carries the return id.
        """
        order = await self.repository.find_by_return_id(return_id)
        item = None
        if order is not None:
            item = next(
                (i for i in order.get("items") or [] if i.get("return_id") == return_id),
                None,
            )
        if item is None:
            raise OrderNotFoundError("Return request not found")
        return return_item_summary(order, item)
