"""Order item lifecycle Pydantic schemas for API request/response models."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class StatusHistoryEntrySchema(BaseModel):
    """One entry of an item's status ledger."""

    model_config = ConfigDict(from_attributes=True)

    status: str = Field(description="Status the item entered")
    note: str | None = Field(default=None, description="Reason or context for the change")
    changed_at: str = Field(description="UTC ISO-8601 timestamp of the change")


class OrderItemResponse(BaseModel):
    """Schema for one order item batch in API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(description="Item id")
    product: dict[str, Any] | None = Field(default=None, description="Product snapshot")
    color: dict[str, Any] | None = Field(default=None, description="Selected color")
    size: str | None = Field(default=None, description="Selected size")
    quantity: int = Field(description="Units in this batch")
    amount: float | None = Field(default=None, description="Unit price")
    status: str = Field(description="Current lifecycle status")
    status_history: list[StatusHistoryEntrySchema] = Field(default_factory=list, description="Status ledger")
    cancel_id: str | None = Field(default=None, description="Cancellation reference")
    cancelled_at: str | None = Field(default=None)
    shipped_at: str | None = Field(default=None)
    delivered_at: str | None = Field(default=None)
    return_id: str | None = Field(default=None, description="Return request reference")
    return_requested_at: str | None = Field(default=None)
    return_request_note: str | None = Field(default=None)
    return_departed_at: str | None = Field(default=None)
    returned_at: str | None = Field(default=None)
    return_cancelled_at: str | None = Field(default=None)
    refund: dict[str, Any] | None = Field(default=None, description="Refund sub-record")
    carrier: dict[str, Any] | None = Field(default=None, description="Carrier shipment sub-record")


# Request schemas


class TransitionRequest(BaseModel):
    """Schema for an admin status change via PUT /admin/orders/items/{item_id}/status."""

    model_config = ConfigDict(from_attributes=True)

    status: str = Field(..., min_length=1, description="Target status")
    quantity: int | None = Field(default=None, ge=1, description="Units to move, whole batch when omitted")
    note: str | None = Field(default=None, max_length=500, description="Ledger note")


class CancelRequest(BaseModel):
    """Schema for cancelling an item or part of it."""

    model_config = ConfigDict(from_attributes=True)

    quantity: int | None = Field(default=None, ge=1, description="Units to cancel")
    note: str | None = Field(default=None, max_length=500, description="Cancellation reason")


class ReturnRequest(BaseModel):
    """Schema for requesting the return of a delivered item."""

    model_config = ConfigDict(from_attributes=True)

    note: str = Field(..., min_length=1, max_length=500, description="Reason for the return")
    quantity: int | None = Field(default=None, ge=1, description="Units to return")


class ReturnCancelRequest(BaseModel):
    """Schema for withdrawing a return request."""

    model_config = ConfigDict(from_attributes=True)

    quantity: int | None = Field(default=None, ge=1, description="Units to withdraw")


class ProcessRefundRequest(BaseModel):
    """Schema for an admin marking an item refunded."""

    model_config = ConfigDict(from_attributes=True)

    refund_amount: float = Field(..., gt=0, description="Amount refunded")
    quantity: int | None = Field(default=None, ge=1, description="Units refunded")


class ReturnStatusUpdate(BaseModel):
    """Schema for moving a return request to its next stage."""

    model_config = ConfigDict(from_attributes=True)

    status: str = Field(..., min_length=1, description="Target return-stage status")
    note: str | None = Field(default=None, max_length=500, description="Ledger note")


class ShipmentPackage(BaseModel):
    """Package dimensions sent to the carrier (cm and kg)."""

    model_config = ConfigDict(from_attributes=True)

    length: float = Field(..., gt=0, description="Length in cm")
    breadth: float = Field(..., gt=0, description="Breadth in cm")
    height: float = Field(..., gt=0, description="Height in cm")
    weight: float = Field(..., gt=0, description="Weight in kg")
    pickup_location: str | None = Field(default=None, description="Carrier pickup location name override")


class DepartedItem(BaseModel):
    """One item leaving the customer on its way back."""

    model_config = ConfigDict(from_attributes=True)

    item_id: str = Field(..., min_length=1, description="Item id")
    quantity: int | None = Field(default=None, ge=1, description="Units departing")


class DepartedForReturnRequest(BaseModel):
    """Schema for marking returned items as departed."""

    model_config = ConfigDict(from_attributes=True)

    items: list[DepartedItem] = Field(..., min_length=1, description="Items departing")
    note: str | None = Field(default=None, max_length=500, description="Ledger note")
    package: ShipmentPackage | None = Field(
        default=None,
        description="Package for a carrier return pickup; needs the X-Carrier-Token header",
    )


# Response schemas


class AvailableTransition(BaseModel):
    """A status the item may move to next."""

    status: str = Field(description="Target status")
    description: str = Field(description="What the status means")


class AvailableTransitionsResponse(BaseModel):
    """Schema for GET .../items/{item_id}/available-transitions."""

    model_config = ConfigDict(from_attributes=True)

    item_id: str = Field(description="Item id")
    order_id: str | None = Field(default=None, description="Human-readable order id")
    current_status: str = Field(description="Current status")
    quantity: int = Field(description="Units in the batch")
    available_transitions: list[AvailableTransition] = Field(description="Legal next statuses")


class TransitionResponse(BaseModel):
    """Schema for the result of a committed item transition."""

    model_config = ConfigDict(from_attributes=True)

    message: str = Field(description="Status message")
    order_id: str | None = Field(default=None, description="Human-readable order id")
    item_id: str = Field(description="Item that changed status")
    split_from_item_id: str | None = Field(
        default=None, description="Original item when only part of it moved"
    )
    from_status: str = Field(description="Status before the change")
    to_status: str = Field(description="Status after the change")
    quantity: int = Field(description="Units moved")
    item: OrderItemResponse = Field(description="The item after the change")


class DepartedForReturnResponse(BaseModel):
    """Schema for the departed-for-return result."""

    model_config = ConfigDict(from_attributes=True)

    message: str = Field(description="Status message")
    order_id: str | None = Field(default=None, description="Human-readable order id")
    transitions: list[TransitionResponse] = Field(description="One entry per departed item")


class ReturnRequestSummary(BaseModel):
    """Schema for one return request in admin listings."""

    model_config = ConfigDict(from_attributes=True, extra="allow")

    return_id: str | None = Field(default=None, description="Return request reference")
    order_id: str | None = Field(default=None, description="Human-readable order id")
    order_uuid: str = Field(description="Order uuid")
    item_id: str = Field(description="Item id")
    status: str = Field(description="Current status")
    quantity: int = Field(description="Units in the batch")


class ReturnRequestListResponse(BaseModel):
    """Schema for the admin return request listing."""

    items: list[ReturnRequestSummary] = Field(description="Return requests")
    total: int = Field(description="Number of return requests")


class ShipmentStepResponse(BaseModel):
    """Schema for one step of the outbound carrier hand-off."""

    model_config = ConfigDict(extra="allow")

    message: str = Field(description="Status message")
    item_ids: list[str] = Field(default_factory=list, description="Items covered by the step")


class TrackingResponse(BaseModel):
    """Schema for an order's tracking summary."""

    order_id: str | None = Field(default=None, description="Human-readable order id")
    items: list[dict[str, Any]] = Field(description="Status and carrier data per item")


class WebhookAckResponse(BaseModel):
    """Schema acknowledging a processed carrier webhook."""

    model_config = ConfigDict(from_attributes=True)

    status: str = Field(default="ok", description="Processing status")
    order_id: str | None = Field(default=None, description="Human-readable order id")
    carrier_order_id: str = Field(description="Carrier order id from the event")
    family: str = Field(description="Webhook family")
    items_matched: int = Field(description="Items the event applied to")
    items_transitioned: list[str] = Field(default_factory=list, description="Items that changed status")
    items_unchanged: list[str] = Field(default_factory=list, description="Items only refreshed")

