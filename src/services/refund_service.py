"""Refund requests: raised by customers, approved or rejected by admins.

A refund request is a sub-state of the item (PENDING, REFUNDED, REJECTED)
recorded in the item's refund sub-record; it never changes the item status,
only appends ledger notes.
"""

import logging
from typing import Any

from src.models.order import OrderItem
from src.services.lifecycle_errors import (
    AlreadyProcessedError,
    InvalidRequestError,
    QuantityExceededError,
)
from src.services.order_repository import OrderRepository
from src.services.order_session import OrderTransactionRunner
from src.services.status_graph import REFUND_ELIGIBLE_STATUSES, OrderStatus
from src.services.status_history import append_entry, format_timestamp, utc_now
from src.services.transition_executor import find_item

logger = logging.getLogger(__name__)

REFUND_PENDING = "PENDING"
REFUND_REFUNDED = "REFUNDED"
REFUND_REJECTED = "REJECTED"
REFUND_STATUSES = (REFUND_PENDING, REFUND_REFUNDED, REFUND_REJECTED)

REQUEST_NOTE = "Refund requested - awaiting admin approval"


def validate_account_details(details: dict[str, Any] | None) -> dict[str, Any]:
    """Check payout details: BANK needs account number, IFSC and holder; UPI needs an id.

    Raises:
        InvalidRequestError: If required payout fields are missing.
    """
    if not details:
        raise InvalidRequestError("Refund account details are required")

    account_type = str(details.get("account_type") or "").upper()
    if account_type == "BANK":
        required = ("account_number", "ifsc_code", "account_holder_name")
    elif account_type == "UPI":
        required = ("upi_id",)
    else:
        raise InvalidRequestError("Account type must be BANK or UPI")

    missing = [name for name in required if not str(details.get(name) or "").strip()]
    if missing:
        raise InvalidRequestError(
            f"Missing {account_type} account details: {', '.join(missing)}"
        )
    return {**details, "account_type": account_type}


def _format_amount(amount: float) -> str:
    return f"{amount:.2f}".rstrip("0").rstrip(".")


def refund_request_summary(order: dict[str, Any], item: OrderItem) -> dict[str, Any]:
    """Flatten a refund request with its order context."""
    refund = item.get("refund") or {}
    return {
        "order_id": order.get("order_id"),
        "order_uuid": str(order.get("id")),
        "item_id": str(item.get("id")),
        "status": item.get("status"),
        "product": item.get("product"),
        "color": item.get("color"),
        "size": item.get("size"),
        "quantity": item.get("quantity"),
        "customer_name": order.get("customer_name"),
        "customer_email": order.get("customer_email"),
        "payment_method": order.get("payment_method"),
        "ordered_at": order.get("ordered_at"),
        "refund_amount": refund.get("amount"),
        "refund_status": refund.get("status"),
        "requested_at": refund.get("requested_at"),
        "request_note": refund.get("request_note"),
        "account_details": refund.get("account_details"),
        "approved_at": refund.get("approved_at"),
        "rejected_at": refund.get("rejected_at"),
        "rejection_reason": refund.get("rejection_reason"),
    }


class RefundService:
    """Service for the refund request sub-flow."""

    def __init__(self, repository: OrderRepository | None = None) -> None:
        """Initialize refund service.

        Args:
            repository: Order data access, defaults to the Supabase repository.
        """
        self.repository = repository or OrderRepository()
        self.runner = OrderTransactionRunner(repository=self.repository)

    async def _owned_order(self, order_id: str, user_id: str) -> dict[str, Any] | None:
        order = await self.repository.get(order_id)
        if order is None or str(order.get("user_id")) != str(user_id):
            return None
        return order

    async def request_refund(
        self,
        order_id: str,
        item_id: str,
        user_id: str,
        account_details: dict[str, Any],
        quantity: int | None = None,
        note: str | None = None,
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        """Customer: ask for a refund of a cancelled or returned item.

        Args:
            order_id: Order uuid.
            item_id: Item id.
            user_id: Requesting customer; must own the order.
            account_details: BANK or UPI payout details.
            quantity: Units to refund, whole batch when None.
            note: Optional note for the admin.

        Returns:
            tuple: Committed order row and the new refund sub-record.

        Raises:
            OrderNotFoundError: Order missing or not the caller's.
            InvalidRequestError: Item not eligible or payout details incomplete.
            AlreadyProcessedError: A request is open or the item was refunded.
            QuantityExceededError: Quantity larger than the item's.
        """
        details = validate_account_details(account_details)

        def mutate(order: dict[str, Any]) -> dict[str, Any]:
            item = find_item(order, item_id)
            refund = item.get("refund") or {}

            if item.get("status") == OrderStatus.REFUNDED.value or refund.get("status") == REFUND_REFUNDED:
                raise AlreadyProcessedError("Refund already processed for this item")
            if refund.get("status") == REFUND_PENDING:
                raise AlreadyProcessedError("A refund request is already pending for this item")
            if item.get("status") not in {s.value for s in REFUND_ELIGIBLE_STATUSES}:
                raise InvalidRequestError(
                    "Refunds can only be requested for cancelled or returned items"
                )
            if order.get("payment_method") != "ONLINE":
                raise InvalidRequestError("Refunds can only be requested for online payments")

            available = item.get("quantity", 0)
            units = available if quantity is None else quantity
            if isinstance(units, bool) or not isinstance(units, int) or units <= 0:
                raise InvalidRequestError("Quantity must be a positive integer")
            if units > available:
                raise QuantityExceededError(
                    f"Requested refund quantity {units} exceeds item quantity {available}"
                )

            now = utc_now()
            new_refund = {
                **refund,
                "amount": round(float(item.get("amount", 0)) * units, 2),
                "status": REFUND_PENDING,
                "requested_at": format_timestamp(now),
                "request_note": note or "Customer requested a refund",
                "account_details": details,
                "approved_at": None,
                "approved_by": None,
                "rejected_at": None,
                "rejected_by": None,
                "rejection_reason": None,
            }
            item["refund"] = new_refund
            append_entry(item, item["status"], REQUEST_NOTE, now)
            return new_refund

        order, refund = await self.runner.run(
            lambda: self._owned_order(order_id, user_id),
            mutate,
        )
        logger.info("Refund requested for item %s of order %s", item_id, order.get("order_id"))
        return order, refund

    async def approve_refund(
        self,
        order_id: str,
        item_id: str,
        admin_id: str,
        amount: float,
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        """Admin: approve a pending refund request with the amount paid out.

        Raises:
            InvalidRequestError: Amount not positive.
            AlreadyProcessedError: Request not pending.
        """
        if amount is None or amount <= 0:
            raise InvalidRequestError("Refund amount must be greater than zero")

        def mutate(order: dict[str, Any]) -> dict[str, Any]:
            item = find_item(order, item_id)
            refund = item.get("refund") or {}
            if refund.get("status") != REFUND_PENDING:
                raise AlreadyProcessedError("Refund request not found or already processed")

            now = utc_now()
            refund = {
                **refund,
                "status": REFUND_REFUNDED,
                "amount": amount,
                "approved_at": format_timestamp(now),
                "approved_by": str(admin_id),
            }
            item["refund"] = refund
            append_entry(
                item,
                item["status"],
                f"Refund approved by admin - Amount: ₹{_format_amount(amount)}",
                now,
            )
            return refund

        order, refund = await self.runner.run(lambda: self.repository.get(order_id), mutate)
        logger.info("Refund approved for item %s of order %s", item_id, order.get("order_id"))
        return order, refund

    async def reject_refund(
        self,
        order_id: str,
        item_id: str,
        admin_id: str,
        reason: str,
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        """Admin: reject a pending refund request.

        Raises:
            InvalidRequestError: No reason given.
            AlreadyProcessedError: Request not pending.
        """
        if reason is None or not reason.strip():
            raise InvalidRequestError("Rejection reason is required")
        reason = reason.strip()

        def mutate(order: dict[str, Any]) -> dict[str, Any]:
            item = find_item(order, item_id)
            refund = item.get("refund") or {}
            if refund.get("status") != REFUND_PENDING:
                raise AlreadyProcessedError("Refund request not found or already processed")

            now = utc_now()
            refund = {
                **refund,
                "status": REFUND_REJECTED,
                "rejected_at": format_timestamp(now),
                "rejected_by": str(admin_id),
                "rejection_reason": reason,
            }
            item["refund"] = refund
            append_entry(item, item["status"], f"Refund rejected by admin - Reason: {reason}", now)
            return refund

        order, refund = await self.runner.run(lambda: self.repository.get(order_id), mutate)
        logger.info("Refund rejected for item %s of order %s", item_id, order.get("order_id"))
        return order, refund

    async def _collect(
        self,
        statuses: tuple[str, ...],
        user_id: str | None = None,
    ) -> list[dict[str, Any]]:
        seen: set[str] = set()
        requests = []
        for status in statuses:
            orders = await self.repository.list_containing({"refund": {"status": status}}, user_id=user_id)
            for order in orders:
                if str(order["id"]) in seen:
                    continue
                seen.add(str(order["id"]))
                requests.extend(
                    refund_request_summary(order, item)
                    for item in order.get("items") or []
                    if (item.get("refund") or {}).get("requested_at")
                    and (item.get("refund") or {}).get("status") in statuses
                )
        requests.sort(key=lambda entry: entry.get("requested_at") or "", reverse=True)
        return requests

    async def list_user_refund_requests(self, user_id: str) -> list[dict[str, Any]]:
        """Customer: own refund requests, newest first."""
        return await self._collect(REFUND_STATUSES, user_id=user_id)

    async def list_refund_requests(self, status: str | None = None) -> list[dict[str, Any]]:
        """Admin: refund requests, optionally filtered by refund status.

        Raises:
            InvalidRequestError: Unknown refund status filter.
        """
        if status is None or status == "all":
            return await self._collect(REFUND_STATUSES)
        status = status.upper()
        if status not in REFUND_STATUSES:
            raise InvalidRequestError(f"Refund status must be one of: {', '.join(REFUND_STATUSES)}")
        return await self._collect((status,))
