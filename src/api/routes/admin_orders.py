"""Admin order item API routes: status overrides, returns, refunds and shipments."""

import logging

from fastapi import APIRouter, BackgroundTasks, Query, status

from src.api.deps import (
    AdminUser,
    CarrierToken,
    EmailServiceDep,
    LifecycleServiceDep,
    OptionalCarrierToken,
    RefundServiceDep,
    ShipmentServiceDep,
)
from src.api.middleware.error_handler import APIError
from src.api.routes.orders import ERROR_RESPONSES, transition_response
from src.schemas.common import ErrorResponse
from src.schemas.orders import (
    AvailableTransitionsResponse,
    CancelRequest,
    DepartedForReturnRequest,
    DepartedForReturnResponse,
    ProcessRefundRequest,
    ReturnCancelRequest,
    ReturnRequestListResponse,
    ReturnRequestSummary,
    ReturnStatusUpdate,
    ShipmentPackage,
    ShipmentStepResponse,
    TrackingResponse,
    TransitionRequest,
    TransitionResponse,
)
from src.schemas.refunds import (
    RefundActionResponse,
    RefundApprove,
    RefundRecordResponse,
    RefundReject,
    RefundRequestListResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/orders", tags=["admin-orders"])

CARRIER_ERROR_RESPONSES = {
    **ERROR_RESPONSES,
    502: {"model": ErrorResponse, "description": "Carrier API call failed"},
}


@router.get(
    "/items/{item_id}/available-transitions",
    response_model=AvailableTransitionsResponse,
    responses={404: ERROR_RESPONSES[404]},
    summary="List next statuses for any item",
)
async def get_available_transitions(
    item_id: str,
    admin: AdminUser,
    service: LifecycleServiceDep,
) -> AvailableTransitionsResponse:
    data = await service.get_available_transitions(item_id)
    return AvailableTransitionsResponse(**data)


@router.put(
    "/items/{item_id}/status",
    response_model=TransitionResponse,
    responses=ERROR_RESPONSES,
    summary="Change an item's status",
    description="Move an item, or some of its units, to a legal next status.",
)
async def update_item_status(
    item_id: str,
    body: TransitionRequest,
    admin: AdminUser,
    service: LifecycleServiceDep,
    email_service: EmailServiceDep,
    background_tasks: BackgroundTasks,
) -> TransitionResponse:
    """Apply an admin status change."""
    order, result = await service.request_transition(
        item_id,
        body.status,
        quantity=body.quantity,
        note=body.note,
    )
    background_tasks.add_task(email_service.notify_transitions, order, [result])
    logger.info(
        "Admin %s moved item %s from %s to %s",
        admin.user_id,
        result.transitioned_item_id,
        result.from_status.value,
        result.to_status.value,
    )
    return transition_response(order, result, f"Item status updated to {result.to_status.value}")


@router.post(
    "/items/{item_id}/cancel",
    response_model=TransitionResponse,
    responses=ERROR_RESPONSES,
    summary="Cancel any item",
)
async def cancel_item(
    item_id: str,
    body: CancelRequest,
    admin: AdminUser,
    service: LifecycleServiceDep,
    email_service: EmailServiceDep,
    background_tasks: BackgroundTasks,
) -> TransitionResponse:
    order, result = await service.cancel_item(item_id, quantity=body.quantity, note=body.note)
    background_tasks.add_task(email_service.notify_transitions, order, [result])
    return transition_response(order, result, "Item cancelled successfully")


@router.put(
    "/items/{item_id}/refund",
    response_model=TransitionResponse,
    responses=ERROR_RESPONSES,
    summary="Process a refund",
    description="Mark a cancelled or returned item as refunded with the amount paid out.",
)
async def process_refund(
    item_id: str,
    body: ProcessRefundRequest,
    admin: AdminUser,
    service: LifecycleServiceDep,
    email_service: EmailServiceDep,
    background_tasks: BackgroundTasks,
) -> TransitionResponse:
    order, result = await service.process_refund(
        item_id,
        refund_amount=body.refund_amount,
        quantity=body.quantity,
    )
    background_tasks.add_task(email_service.notify_transitions, order, [result])
    return transition_response(order, result, "Refund processed successfully")


@router.put(
    "/items/{item_id}/return-cancel",
    response_model=TransitionResponse,
    responses=ERROR_RESPONSES,
    summary="Cancel a return request",
)
async def cancel_return(
    item_id: str,
    body: ReturnCancelRequest,
    admin: AdminUser,
    service: LifecycleServiceDep,
    email_service: EmailServiceDep,
    background_tasks: BackgroundTasks,
) -> TransitionResponse:
    order, result = await service.cancel_return(item_id, quantity=body.quantity)
    background_tasks.add_task(email_service.notify_transitions, order, [result])
    return transition_response(order, result, "Return request cancelled")


@router.get(
    "/returns",
    response_model=ReturnRequestListResponse,
    responses={422: ERROR_RESPONSES[422]},
    summary="List return requests",
)
async def list_return_requests(
    admin: AdminUser,
    service: LifecycleServiceDep,
    status_filter: str | None = Query(default=None, alias="status", description="Return status or 'all'"),
    limit: int = Query(default=100, ge=1, le=500, description="Maximum orders scanned per status"),
) -> ReturnRequestListResponse:
    requests = await service.list_return_requests(status=status_filter, limit=limit)
    return ReturnRequestListResponse(
        items=[ReturnRequestSummary.model_validate(entry) for entry in requests],
        total=len(requests),
    )


@router.get(
    "/returns/{return_id}",
    response_model=ReturnRequestSummary,
    responses={404: ERROR_RESPONSES[404]},
    summary="Get a return request",
)
async def get_return_request(
    return_id: str,
    admin: AdminUser,
    service: LifecycleServiceDep,
) -> ReturnRequestSummary:
    return ReturnRequestSummary.model_validate(await service.get_return_request(return_id))


@router.put(
    "/returns/{return_id}/status",
    response_model=TransitionResponse,
    responses=ERROR_RESPONSES,
    summary="Update a return request's status",
)
async def update_return_status(
    return_id: str,
    body: ReturnStatusUpdate,
    admin: AdminUser,
    service: LifecycleServiceDep,
    email_service: EmailServiceDep,
    background_tasks: BackgroundTasks,
) -> TransitionResponse:
    order, result = await service.update_return_status(return_id, body.status, note=body.note)
    background_tasks.add_task(email_service.notify_transitions, order, [result])
    return transition_response(order, result, f"Return status updated to {result.to_status.value}")


@router.post(
    "/{order_id}/departed-for-return",
    response_model=DepartedForReturnResponse,
    responses=ERROR_RESPONSES,
    summary="Mark returned items as departed",
    description=(
        "Move Return Requested items to Departed For Returning. With a package "
        "and the X-Carrier-Token header a carrier return pickup is also booked."
    ),
)
async def mark_departed_for_return(
    order_id: str,
    body: DepartedForReturnRequest,
    admin: AdminUser,
    service: LifecycleServiceDep,
    email_service: EmailServiceDep,
    background_tasks: BackgroundTasks,
    carrier_token: OptionalCarrierToken,
) -> DepartedForReturnResponse:
    if body.package is not None and carrier_token is None:
        raise APIError(
            "X-Carrier-Token header required to book a carrier return pickup",
            status_code=status.HTTP_400_BAD_REQUEST,
            error_type="missing_carrier_token",
        )
    order, results = await service.mark_departed_for_return(
        order_id,
        [entry.model_dump() for entry in body.items],
        note=body.note,
        package=body.package.model_dump(exclude_none=True) if body.package else None,
        carrier_token=carrier_token,
    )
    background_tasks.add_task(email_service.notify_transitions, order, results)
    return DepartedForReturnResponse(
        message=f"{len(results)} item(s) marked as departed for return",
        order_id=order.get("order_id"),
        transitions=[
            transition_response(order, result, "Item departed for return") for result in results
        ],
    )


@router.get(
    "/refunds",
    response_model=RefundRequestListResponse,
    responses={422: ERROR_RESPONSES[422]},
    summary="List refund requests",
)
async def list_refund_requests(
    admin: AdminUser,
    service: RefundServiceDep,
    status_filter: str | None = Query(default=None, alias="status", description="PENDING, REFUNDED, REJECTED or 'all'"),
) -> RefundRequestListResponse:
    requests = await service.list_refund_requests(status_filter)
    return RefundRequestListResponse(items=requests, total=len(requests))


@router.put(
    "/{order_id}/items/{item_id}/refund/approve",
    response_model=RefundActionResponse,
    responses=ERROR_RESPONSES,
    summary="Approve a refund request",
)
async def approve_refund(
    order_id: str,
    item_id: str,
    body: RefundApprove,
    admin: AdminUser,
    service: RefundServiceDep,
) -> RefundActionResponse:
    order, refund = await service.approve_refund(order_id, item_id, str(admin.user_id), body.amount)
    return RefundActionResponse(
        message="Refund approved",
        order_id=order.get("order_id"),
        item_id=item_id,
        refund=RefundRecordResponse.model_validate(refund),
    )


@router.put(
    "/{order_id}/items/{item_id}/refund/reject",
    response_model=RefundActionResponse,
    responses=ERROR_RESPONSES,
    summary="Reject a refund request",
)
async def reject_refund(
    order_id: str,
    item_id: str,
    body: RefundReject,
    admin: AdminUser,
    service: RefundServiceDep,
) -> RefundActionResponse:
    order, refund = await service.reject_refund(order_id, item_id, str(admin.user_id), body.reason)
    return RefundActionResponse(
        message="Refund rejected",
        order_id=order.get("order_id"),
        item_id=item_id,
        refund=RefundRecordResponse.model_validate(refund),
    )


@router.post(
    "/{order_id}/shipment/adhoc-order",
    response_model=ShipmentStepResponse,
    responses=CARRIER_ERROR_RESPONSES,
    summary="Create the carrier order",
    description="Step 1 of the carrier hand-off: create the carrier order for every Ordered item.",
)
async def create_adhoc_order(
    order_id: str,
    body: ShipmentPackage,
    admin: AdminUser,
    token: CarrierToken,
    service: ShipmentServiceDep,
) -> ShipmentStepResponse:
    result = await service.create_adhoc_order(order_id, body.model_dump(exclude_none=True), token)
    return ShipmentStepResponse(message="Carrier order created", **result)


@router.post(
    "/{order_id}/shipment/awb",
    response_model=ShipmentStepResponse,
    responses=CARRIER_ERROR_RESPONSES,
    summary="Assign an AWB",
    description="Step 2 of the carrier hand-off: assign an airway bill to the shipment.",
)
async def assign_awb(
    order_id: str,
    admin: AdminUser,
    token: CarrierToken,
    service: ShipmentServiceDep,
) -> ShipmentStepResponse:
    result = await service.assign_awb(order_id, token)
    return ShipmentStepResponse(message="AWB assigned", **result)


@router.post(
    "/{order_id}/shipment/pickup",
    response_model=ShipmentStepResponse,
    responses=CARRIER_ERROR_RESPONSES,
    summary="Generate the courier pickup",
    description="Step 3 of the carrier hand-off: request the pickup and mark the items Shipped.",
)
async def generate_pickup(
    order_id: str,
    admin: AdminUser,
    token: CarrierToken,
    service: ShipmentServiceDep,
    email_service: EmailServiceDep,
    background_tasks: BackgroundTasks,
) -> ShipmentStepResponse:
    order, result = await service.generate_pickup(order_id, token)
    background_tasks.add_task(email_service.notify_transitions, order, result["transitions"])
    return ShipmentStepResponse(
        message="Pickup generated and items shipped",
        item_ids=result["shipped_item_ids"],
        shipment_id=result["shipment_id"],
    )


@router.get(
    "/{order_id}/tracking",
    response_model=TrackingResponse,
    responses={404: ERROR_RESPONSES[404]},
    summary="Get order tracking",
)
async def get_order_tracking(
    order_id: str,
    admin: AdminUser,
    service: ShipmentServiceDep,
) -> TrackingResponse:
    return TrackingResponse(**await service.get_order_tracking(order_id))
