"""Global error handling middleware for consistent error responses."""

import logging
import traceback
from typing import Any, Callable

from fastapi import HTTPException, Request, Response, status
from fastapi.responses import JSONResponse

from src.schemas.common import ErrorResponse
from src.services.lifecycle_errors import OrderErrorCode, OrderLifecycleError

logger = logging.getLogger(__name__)

# HTTP status for each order lifecycle error code.
LIFECYCLE_STATUS_CODES: dict[OrderErrorCode, int] = {
    OrderErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    OrderErrorCode.INVALID_TRANSITION: status.HTTP_409_CONFLICT,
    OrderErrorCode.QUANTITY_EXCEEDED: status.HTTP_422_UNPROCESSABLE_ENTITY,
    OrderErrorCode.INVALID_REQUEST: status.HTTP_422_UNPROCESSABLE_ENTITY,
    OrderErrorCode.RETURN_WINDOW_EXPIRED: status.HTTP_422_UNPROCESSABLE_ENTITY,
    OrderErrorCode.MISSING_DELIVERY_RECORD: status.HTTP_422_UNPROCESSABLE_ENTITY,
    OrderErrorCode.AUTHENTICATION_FAILED: status.HTTP_401_UNAUTHORIZED,
    OrderErrorCode.MALFORMED_PAYLOAD: status.HTTP_400_BAD_REQUEST,
    OrderErrorCode.ALREADY_PROCESSED: status.HTTP_409_CONFLICT,
    OrderErrorCode.CONCURRENT_UPDATE: status.HTTP_409_CONFLICT,
    OrderErrorCode.UPSTREAM_CARRIER_FAILURE: status.HTTP_502_BAD_GATEWAY,
}


class APIError(Exception):
    """Base exception for API errors.

    Use this class to raise application-specific errors that should
    be returned to the client with a specific status code and message.
    """

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_type: str = "api_error",
        details: list[dict[str, Any]] | None = None,
    ) -> None:
        """Initialize API error.

        Args:
            message: Human-readable error message.
            status_code: HTTP status code to return.
            error_type: Error category/type for client handling.
            details: Optional additional error details.
        """
        self.message = message
        self.status_code = status_code
        self.error_type = error_type
        self.details = details
        super().__init__(message)


class AuthorizationError(APIError):
    """Authorization failure error."""

    def __init__(self, message: str = "Access denied", details: list[dict[str, Any]] | None = None) -> None:
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            error_type="authorization_error",
            details=details,
        )


def create_error_response(
    error_type: str,
    message: str,
    status_code: int,
    details: list[dict[str, Any]] | None = None,
    request_id: str | None = None,
) -> JSONResponse:
    """Create a standardized JSON error response.

    Args:
        error_type: Error category for client handling.
        message: Human-readable error description.
        status_code: HTTP status code.
        details: Optional error details.
        request_id: Optional request ID for tracing.

    Returns:
        JSONResponse: Formatted error response.
    """
    error_response = ErrorResponse.from_exception(
        error_type=error_type,
        message=message,
        details=details,
        request_id=request_id,
    )
    return JSONResponse(
        status_code=status_code,
        content=error_response.model_dump(mode="json", exclude_none=True),
    )


def lifecycle_error_response(error: OrderLifecycleError, request_id: str | None = None) -> JSONResponse:
    """Render an order lifecycle error with its mapped HTTP status."""
    return create_error_response(
        error_type=error.code.value,
        message=error.message,
        status_code=LIFECYCLE_STATUS_CODES.get(error.code, status.HTTP_400_BAD_REQUEST),
        details=error.details,
        request_id=request_id,
    )


async def error_handler_middleware(request: Request, call_next: Callable[[Request], Any]) -> Response:
    """Middleware to catch and format all exceptions.

    Ensures consistent error response format across the application.
    Logs full stack traces for debugging while returning safe messages to clients.

    Args:
        request: The incoming request.
        call_next: Next middleware or route handler.

    Returns:
        Response: Either the successful response or formatted error response.
    """
    # Can be set by an upstream proxy or load balancer
    request_id = request.headers.get("X-Request-ID")

    try:
        response = await call_next(request)
        return response

    except OrderLifecycleError as e:
        logger.warning(
            "Order lifecycle error on %s %s: %s - %s",
            request.method,
            request.url.path,
            e.code.value,
            e.message,
            extra={"request_id": request_id},
        )
        return lifecycle_error_response(e, request_id)

    except APIError as e:
        logger.warning(
            "API error: %s - %s",
            e.error_type,
            e.message,
            extra={"request_id": request_id, "status_code": e.status_code},
        )
        return create_error_response(
            error_type=e.error_type,
            message=e.message,
            status_code=e.status_code,
            details=e.details,
            request_id=request_id,
        )

    except HTTPException as e:
        logger.warning(
            "HTTP exception: %s - %s",
            e.status_code,
            e.detail,
            extra={"request_id": request_id},
        )
        return create_error_response(
            error_type="http_error",
            message=str(e.detail),
            status_code=e.status_code,
            request_id=request_id,
        )

    except Exception as e:
        logger.error(
            "Unhandled exception: %s\n%s",
            str(e),
            traceback.format_exc(),
            extra={"request_id": request_id},
        )
        return create_error_response(
            error_type="internal_error",
            message="An unexpected error occurred",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            request_id=request_id,
        )


async def order_lifecycle_exception_handler(request: Request, exc: OrderLifecycleError) -> JSONResponse:
    """Exception handler registered on the app for lifecycle errors raised in routes."""
    logger.warning(
        "Order lifecycle error on %s %s: %s - %s",
        request.method,
        request.url.path,
        exc.code.value,
        exc.message,
    )
    return lifecycle_error_response(exc, request.headers.get("X-Request-ID"))


async def api_error_exception_handler(request: Request, exc: APIError) -> JSONResponse:
    """Exception handler registered on the app for APIError raised in dependencies or routes."""
    return create_error_response(
        error_type=exc.error_type,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
        request_id=request.headers.get("X-Request-ID"),
    )
