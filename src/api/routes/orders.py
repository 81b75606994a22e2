"""Customer order item API routes: cancel, return and refund requests."""

import logging
from typing import Any

from fastapi import APIRouter, BackgroundTasks, status

from src.api.deps import CurrentUser, EmailServiceDep, LifecycleServiceDep, RefundServiceDep
from src.schemas.common import ErrorResponse
from src.schemas.orders import (
    AvailableTransitionsResponse,
    CancelRequest,
    OrderItemResponse,
    ReturnCancelRequest,
    ReturnRequest,
    TransitionResponse,
)
from src.schemas.refunds import (
    RefundActionResponse,
    RefundRecordResponse,
    RefundRequestCreate,
    RefundRequestListResponse,
)
from src.services.transition_executor import TransitionResult, find_item

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])

ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    404: {"model": ErrorResponse, "description": "Item not found"},
    409: {"model": ErrorResponse, "description": "Transition not allowed from the current status"},
    422: {"model": ErrorResponse, "description": "Invalid quantity or request"},
}


def transition_response(
    order: dict[str, Any],
    result: TransitionResult,
    message: str,
) -> TransitionResponse:
    """Build the API response for a committed transition."""
    item = find_item(order, result.transitioned_item_id)
    return TransitionResponse(
        message=message,
        order_id=order.get("order_id"),
        item_id=result.transitioned_item_id,
        split_from_item_id=result.item_id if result.is_partial else None,
        from_status=result.from_status.value,
        to_status=result.to_status.value,
        quantity=result.quantity,
        item=OrderItemResponse.model_validate(item),
    )


@router.get(
    "/items/{item_id}/available-transitions",
    response_model=AvailableTransitionsResponse,
    responses={404: ERROR_RESPONSES[404]},
    summary="List next statuses for an item",
)
async def get_available_transitions(
    item_id: str,
    user: CurrentUser,
    service: LifecycleServiceDep,
) -> AvailableTransitionsResponse:
    """Return the item's current status and the statuses it may move to."""
    data = await service.get_available_transitions(item_id, user_id=str(user.user_id))
    return AvailableTransitionsResponse(**data)


@router.post(
    "/items/{item_id}/cancel",
    response_model=TransitionResponse,
    responses=ERROR_RESPONSES,
    summary="Cancel an item",
    description="Cancel all or part of an item that has not shipped yet.",
)
async def cancel_item(
    item_id: str,
    body: CancelRequest,
    user: CurrentUser,
    service: LifecycleServiceDep,
    email_service: EmailServiceDep,
    background_tasks: BackgroundTasks,
) -> TransitionResponse:
    """Cancel an item (or some of its units) owned by the caller."""
    order, result = await service.cancel_item(
        item_id,
        quantity=body.quantity,
        note=body.note,
        user_id=str(user.user_id),
    )
    background_tasks.add_task(email_service.notify_transitions, order, [result])
    response = transition_response(order, result, "Item cancelled successfully")
    logger.info("User %s cancelled item %s", user.user_id, response.item_id)
    return response


@router.post(
    "/items/{item_id}/return",
    response_model=TransitionResponse,
    responses=ERROR_RESPONSES,
    summary="Request a return",
    description="Request the return of a delivered item within the return window.",
)
async def request_return(
    item_id: str,
    body: ReturnRequest,
    user: CurrentUser,
    service: LifecycleServiceDep,
    email_service: EmailServiceDep,
    background_tasks: BackgroundTasks,
) -> TransitionResponse:
    """Ask to return a delivered item owned by the caller."""
    order, result = await service.request_return(
        item_id,
        note=body.note,
        user_id=str(user.user_id),
        quantity=body.quantity,
    )
    background_tasks.add_task(email_service.notify_transitions, order, [result])
    return transition_response(order, result, "Return requested successfully")


@router.post(
    "/items/{item_id}/return-cancel",
    response_model=TransitionResponse,
    responses=ERROR_RESPONSES,
    summary="Cancel a return request",
)
async def cancel_return(
    item_id: str,
    body: ReturnCancelRequest,
    user: CurrentUser,
    service: LifecycleServiceDep,
    email_service: EmailServiceDep,
    background_tasks: BackgroundTasks,
) -> TransitionResponse:
    """Withdraw a return request before the item leaves the customer."""
    order, result = await service.cancel_return(
        item_id,
        quantity=body.quantity,
        user_id=str(user.user_id),
    )
    background_tasks.add_task(email_service.notify_transitions, order, [result])
    return transition_response(order, result, "Return request cancelled")


@router.post(
    "/{order_id}/items/{item_id}/refund-request",
    response_model=RefundActionResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
    summary="Request a refund",
    description="Request a refund for a cancelled or returned item of an online-paid order.",
)
async def request_refund(
    order_id: str,
    item_id: str,
    body: RefundRequestCreate,
    user: CurrentUser,
    service: RefundServiceDep,
) -> RefundActionResponse:
    """Raise a refund request for review by an admin."""
    order, refund = await service.request_refund(
        order_id,
        item_id,
        user_id=str(user.user_id),
        account_details=body.account_details.model_dump(exclude_none=True),
        quantity=body.quantity,
        note=body.note,
    )
    return RefundActionResponse(
        message="Refund request submitted and awaiting approval",
        order_id=order.get("order_id"),
        item_id=item_id,
        refund=RefundRecordResponse.model_validate(refund),
    )


@router.get(
    "/refund-requests",
    response_model=RefundRequestListResponse,
    summary="List my refund requests",
)
async def list_my_refund_requests(
    user: CurrentUser,
    service: RefundServiceDep,
) -> RefundRequestListResponse:
    """Return the caller's refund requests, newest first."""
    requests = await service.list_user_refund_requests(str(user.user_id))
    return RefundRequestListResponse(items=requests, total=len(requests))
