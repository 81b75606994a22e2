"""Refund request Pydantic schemas."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class RefundAccountDetailsSchema(BaseModel):
    """Payout destination for a refund.

    BANK needs account_number, ifsc_code and account_holder_name; UPI needs
    upi_id. Completeness is checked by the refund service.
    """

    model_config = ConfigDict(from_attributes=True)

    account_type: Literal["BANK", "UPI"] = Field(description="Payout method")
    bank_name: str | None = Field(default=None, max_length=120)
    account_number: str | None = Field(default=None, max_length=34)
    ifsc_code: str | None = Field(default=None, max_length=11)
    account_holder_name: str | None = Field(default=None, max_length=120)
    upi_id: str | None = Field(default=None, max_length=100)
    phone_number: str | None = Field(default=None, max_length=20)


class RefundRequestCreate(BaseModel):
    """Schema for POST /orders/{order_id}/items/{item_id}/refund-request."""

    model_config = ConfigDict(from_attributes=True)

    account_details: RefundAccountDetailsSchema = Field(..., description="Where to send the refund")
    quantity: int | None = Field(default=None, ge=1, description="Units to refund, whole batch when omitted")
    note: str | None = Field(default=None, max_length=500, description="Note for the reviewer")


class RefundApprove(BaseModel):
    """Schema for approving a pending refund request."""

    model_config = ConfigDict(from_attributes=True)

    amount: float = Field(..., gt=0, description="Amount paid out")


class RefundReject(BaseModel):
    """Schema for rejecting a pending refund request."""

    model_config = ConfigDict(from_attributes=True)

    reason: str = Field(..., min_length=1, max_length=500, description="Why the refund was rejected")


class RefundRecordResponse(BaseModel):
    """Schema for an item's refund sub-record."""

    model_config = ConfigDict(from_attributes=True)

    amount: float | None = Field(default=None, description="Refund amount")
    status: str | None = Field(default=None, description="PENDING, REFUNDED or REJECTED")
    requested_at: str | None = Field(default=None)
    request_note: str | None = Field(default=None)
    approved_at: str | None = Field(default=None)
    rejected_at: str | None = Field(default=None)
    rejection_reason: str | None = Field(default=None)


class RefundActionResponse(BaseModel):
    """Schema for the result of a refund request, approval or rejection."""

    model_config = ConfigDict(from_attributes=True)

    message: str = Field(description="Status message")
    order_id: str | None = Field(default=None, description="Human-readable order id")
    item_id: str = Field(description="Item id")
    refund: RefundRecordResponse = Field(description="Refund sub-record after the change")


class RefundRequestListResponse(BaseModel):
    """Schema for refund request listings."""

    items: list[dict[str, Any]] = Field(description="Refund requests, newest first")
    total: int = Field(description="Number of refund requests")
