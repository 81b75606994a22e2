"""FastAPI dependency injection functions."""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from src.api.middleware.auth import AuthError, AuthErrorCode, decode_jwt
from src.api.middleware.error_handler import AuthorizationError
from src.core.config import get_settings
from src.schemas.auth import UserContext
from src.services.carrier_webhook_service import CarrierWebhookService
from src.services.email_service import EmailService
from src.services.order_lifecycle_service import OrderLifecycleService
from src.services.refund_service import RefundService
from src.services.shipment_service import ShipmentService


async def get_current_user(
    authorization: Annotated[str, Header(description="Bearer token")] = "",
) -> UserContext:
    """Extract and validate the current user from the Authorization header.

    Args:
        authorization: The Authorization header value (Bearer token).

    Returns:
        UserContext: The authenticated user's context.

    Raises:
        HTTPException: 401 if token is missing, invalid, or expired.
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format. Expected: Bearer <token>",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return decode_jwt(parts[1]).to_user_context()
    except AuthError as e:
        detail = "Token has expired" if e.code == AuthErrorCode.TOKEN_EXPIRED else e.message
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


async def get_admin_user(
    user: Annotated[UserContext, Depends(get_current_user)],
) -> UserContext:
    """Require the authenticated user to hold the admin role.

    Raises:
        AuthorizationError: 403 if the user is not an admin.
    """
    if not user.has_role(get_settings().admin_role):
        raise AuthorizationError("Admin access required")
    return user


async def get_carrier_token(
    x_carrier_token: Annotated[str, Header(description="Carrier API token")] = "",
) -> str:
    """Carrier API token supplied by the admin for outbound carrier calls.

    Raises:
        HTTPException: 400 if the header is missing.
    """
    if not x_carrier_token.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Carrier-Token header required",
        )
    return x_carrier_token.strip()


async def get_optional_carrier_token(
    x_carrier_token: Annotated[str | None, Header(description="Carrier API token")] = None,
) -> str | None:
    return x_carrier_token.strip() if x_carrier_token and x_carrier_token.strip() else None


def get_lifecycle_service() -> OrderLifecycleService:
    return OrderLifecycleService()


def get_refund_service() -> RefundService:
    return RefundService()


def get_shipment_service() -> ShipmentService:
    return ShipmentService()


def get_webhook_service() -> CarrierWebhookService:
    return CarrierWebhookService()


def get_email_service() -> EmailService:
    return EmailService()


# Type aliases for cleaner dependency injection
CurrentUser = Annotated[UserContext, Depends(get_current_user)]
AdminUser = Annotated[UserContext, Depends(get_admin_user)]
CarrierToken = Annotated[str, Depends(get_carrier_token)]
OptionalCarrierToken = Annotated[str | None, Depends(get_optional_carrier_token)]
LifecycleServiceDep = Annotated[OrderLifecycleService, Depends(get_lifecycle_service)]
RefundServiceDep = Annotated[RefundService, Depends(get_refund_service)]
ShipmentServiceDep = Annotated[ShipmentService, Depends(get_shipment_service)]
WebhookServiceDep = Annotated[CarrierWebhookService, Depends(get_webhook_service)]
EmailServiceDep = Annotated[EmailService, Depends(get_email_service)]
