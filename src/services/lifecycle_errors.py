"""Errors raised by the order item lifecycle engine.

Each error carries an OrderErrorCode so the API layer can map it to an HTTP
status without inspecting messages.
"""

from enum import Enum
from typing import Any, Iterable


class OrderErrorCode(str, Enum):
    """Failure kinds of lifecycle operations."""

    NOT_FOUND = "not_found"
    INVALID_TRANSITION = "invalid_transition"
    QUANTITY_EXCEEDED = "quantity_exceeded"
    INVALID_REQUEST = "invalid_request"
    RETURN_WINDOW_EXPIRED = "return_window_expired"
    MISSING_DELIVERY_RECORD = "missing_delivery_record"
    AUTHENTICATION_FAILED = "authentication_failed"
    MALFORMED_PAYLOAD = "malformed_payload"
    ALREADY_PROCESSED = "already_processed"
    CONCURRENT_UPDATE = "concurrent_update"
    UPSTREAM_CARRIER_FAILURE = "upstream_carrier_failure"


class OrderLifecycleError(Exception):
    """Base error for lifecycle operations.

    Raising one of these inside a transaction aborts it before anything is
    written.
    """

    code: OrderErrorCode = OrderErrorCode.INVALID_REQUEST

    def __init__(self, message: str, details: list[dict[str, Any]] | None = None) -> None:
        """Initialize lifecycle error.

        Args:
            message: Human-readable error description.
            details: Optional structured details for the client.
        """
        self.message = message
        self.details = details
        super().__init__(message)


class OrderNotFoundError(OrderLifecycleError):
    code = OrderErrorCode.NOT_FOUND


class ItemNotFoundError(OrderLifecycleError):
    code = OrderErrorCode.NOT_FOUND


class InvalidTransitionError(OrderLifecycleError):
    """Requested status is not a legal next status of the item."""

    code = OrderErrorCode.INVALID_TRANSITION

    def __init__(self, current: str, target: str, allowed: Iterable[str]) -> None:
        self.current = current
        self.target = target
        self.allowed = list(allowed)
        allowed_text = ", ".join(self.allowed) if self.allowed else "none (final status)"
        super().__init__(
            f"Cannot move item from '{current}' to '{target}'. Allowed: {allowed_text}",
            details=[
                {"loc": ["status"], "msg": status, "type": "allowed_transition"}
                for status in self.allowed
            ],
        )


class QuantityExceededError(OrderLifecycleError):
    code = OrderErrorCode.QUANTITY_EXCEEDED


class InvalidRequestError(OrderLifecycleError):
    code = OrderErrorCode.INVALID_REQUEST


class ReturnWindowExpiredError(OrderLifecycleError):
    code = OrderErrorCode.RETURN_WINDOW_EXPIRED


class MissingDeliveryRecordError(OrderLifecycleError):
    code = OrderErrorCode.MISSING_DELIVERY_RECORD


class AuthenticationFailedError(OrderLifecycleError):
    code = OrderErrorCode.AUTHENTICATION_FAILED


class MalformedPayloadError(OrderLifecycleError):
    code = OrderErrorCode.MALFORMED_PAYLOAD


class AlreadyProcessedError(OrderLifecycleError):
    code = OrderErrorCode.ALREADY_PROCESSED


class ConcurrentUpdateError(OrderLifecycleError):
    code = OrderErrorCode.CONCURRENT_UPDATE


class UpstreamCarrierError(OrderLifecycleError):
    code = OrderErrorCode.UPSTREAM_CARRIER_FAILURE


class StepOutOfOrderError(OrderLifecycleError):
    """Shipment hand-off step invoked before its prerequisite step."""

    code = OrderErrorCode.INVALID_TRANSITION
