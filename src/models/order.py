"""Order model type definitions for database operations."""

from typing import Literal, TypedDict


PaymentMethod = Literal["COD", "ONLINE"]
PaymentStatus = Literal["PENDING", "PAID", "FAILED", "REFUNDED"]
RefundStatus = Literal["PENDING", "REFUNDED", "REJECTED"]
AccountType = Literal["BANK", "UPI"]


class StatusHistoryEntry(TypedDict):
    """One entry of an item's append-only status ledger."""

    status: str
    note: str | None
    changed_at: str


class ProductSnapshot(TypedDict):
    """Product details captured when the order was placed."""

    product_id: str
    name: str
    image: str | None


class ItemColor(TypedDict):
    name: str
    hex_code: str | None


class RefundAccountDetails(TypedDict, total=False):
    """Payout destination supplied with a refund request."""

    account_type: AccountType
    bank_name: str | None
    account_number: str | None
    ifsc_code: str | None
    account_holder_name: str | None
    upi_id: str | None
    phone_number: str | None


class RefundRecord(TypedDict, total=False):
    """Refund sub-record embedded in an order item."""

    amount: float | None
    status: RefundStatus | None
    requested_at: str | None
    request_note: str | None
    account_details: RefundAccountDetails | None
    approved_at: str | None
    approved_by: str | None
    rejected_at: str | None
    rejected_by: str | None
    rejection_reason: str | None
    processed_at: str | None


class CarrierFlags(TypedDict):
    """Progress of the three-step outbound shipment hand-off."""

    adhoc_order_created: bool
    awb_assigned: bool
    pickup_generated: bool


class CarrierRecord(TypedDict, total=False):
    """Carrier shipment sub-record embedded in an order item.

    Absent until the item is handed to the carrier.
    """

    order_id: str | None
    shipment_id: str | None
    tracking_number: str | None
    courier_name: str | None
    awb_code: str | None
    courier_id: str | None
    tracking_url: str | None
    status: str | None
    reason: str | None
    tracking_data: dict | None
    last_updated: str | None
    return_order_id: str | None
    return_shipment_id: str | None
    return_tracking_number: str | None
    return_awb_code: str | None
    return_courier_name: str | None
    return_status: str | None
    return_reason: str | None
    return_last_updated: str | None
    flags: CarrierFlags


class OrderItem(TypedDict, total=False):
    """One product/color/size batch moving through the lifecycle as a unit.

    Stored as part of the items JSONB array.
    """

    id: str
    product: ProductSnapshot
    color: ItemColor | None
    size: str | None
    quantity: int
    amount: float
    status: str
    status_history: list[StatusHistoryEntry]
    cancel_id: str | None
    cancelled_at: str | None
    shipped_at: str | None
    delivered_at: str | None
    return_id: str | None
    return_requested_at: str | None
    return_request_note: str | None
    return_departed_at: str | None
    returned_at: str | None
    return_cancelled_at: str | None
    refund: RefundRecord | None
    carrier: CarrierRecord | None


class ShippingInfo(TypedDict, total=False):
    address: str
    city: str
    state: str
    country: str
    postal_code: str
    phone: str


class OrderAmount(TypedDict):
    shipping_charges: float
    total_amount: float


class Order(TypedDict):
    """Order table row representation.

    Represents an order stored in the orders table.
    Maps directly to the database schema.
    """

    id: str
    order_id: str
    user_id: str
    items: list[OrderItem]
    shipping_info: ShippingInfo
    customer_name: str | None
    customer_email: str | None
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    amount: OrderAmount
    ordered_at: str
    version: int
    created_at: str
    updated_at: str


class OrderUpdate(TypedDict, total=False):
    """Data written back when an order mutation commits.

    The version is bumped on every write.
    """

    items: list[OrderItem]
    payment_status: PaymentStatus
    version: int
    updated_at: str
