"""Database model type definitions."""

from src.models.order import (
    CarrierFlags,
    CarrierRecord,
    Order,
    OrderItem,
    RefundAccountDetails,
    RefundRecord,
    StatusHistoryEntry,
)

__all__ = [
    "Order",
    "OrderItem",
    "StatusHistoryEntry",
    "RefundRecord",
    "RefundAccountDetails",
    "CarrierRecord",
    "CarrierFlags",
]
