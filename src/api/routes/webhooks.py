"""Carrier webhook API routes.

Unauthenticated by JWT; each call is checked against the shared carrier
secret before anything is parsed.
"""

import logging

from fastapi import APIRouter, BackgroundTasks, Request, status

from src.api.deps import EmailServiceDep, WebhookServiceDep
from src.api.routes.orders import ERROR_RESPONSES
from src.schemas.common import ErrorResponse
from src.schemas.orders import WebhookAckResponse
from src.services.carrier_webhook_service import CarrierWebhookService
from src.services.email_service import EmailService
from src.services.webhook_normalizer import EventFamily

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

WEBHOOK_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Malformed webhook payload"},
    401: {"model": ErrorResponse, "description": "Webhook authentication failed"},
    **ERROR_RESPONSES,
}


async def _ingest(
    request: Request,
    family: EventFamily,
    service: CarrierWebhookService,
    email_service: EmailService,
    background_tasks: BackgroundTasks,
) -> WebhookAckResponse:
    # Raw body: the signature covers the exact bytes sent
    body = await request.body()
    logger.debug("Carrier %s webhook payload size: %d bytes", family.value, len(body))

    outcome = await service.ingest_carrier_event(body, request.headers, family)
    if outcome.transitions:
        background_tasks.add_task(email_service.notify_transitions, outcome.order, outcome.transitions)
    return WebhookAckResponse(**outcome.to_dict())


@router.post(
    "/carrier",
    response_model=WebhookAckResponse,
    status_code=status.HTTP_200_OK,
    responses=WEBHOOK_RESPONSES,
    summary="Carrier order status webhook",
    description="Outbound shipment status updates. Authenticated with the x-api-key header.",
)
async def carrier_order_webhook(
    request: Request,
    service: WebhookServiceDep,
    email_service: EmailServiceDep,
    background_tasks: BackgroundTasks,
) -> WebhookAckResponse:
    return await _ingest(request, EventFamily.ORDER, service, email_service, background_tasks)


@router.post(
    "/carrier/return",
    response_model=WebhookAckResponse,
    status_code=status.HTTP_200_OK,
    responses=WEBHOOK_RESPONSES,
    summary="Carrier return status webhook",
    description="Return leg status updates. Authenticated with the x-carrier-hmac-sha256 signature.",
)
async def carrier_return_webhook(
    request: Request,
    service: WebhookServiceDep,
    email_service: EmailServiceDep,
    background_tasks: BackgroundTasks,
) -> WebhookAckResponse:
    return await _ingest(request, EventFamily.RETURN, service, email_service, background_tasks)


@router.post(
    "/carrier/tracking",
    response_model=WebhookAckResponse,
    status_code=status.HTTP_200_OK,
    responses=WEBHOOK_RESPONSES,
    summary="Carrier tracking webhook",
    description="Tracking scans; refreshes carrier metadata without changing item status.",
)
async def carrier_tracking_webhook(
    request: Request,
    service: WebhookServiceDep,
    email_service: EmailServiceDep,
    background_tasks: BackgroundTasks,
) -> WebhookAckResponse:
    return await _ingest(request, EventFamily.TRACKING, service, email_service, background_tasks)
