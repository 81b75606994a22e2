"""Request body size limiting middleware."""

import logging
from typing import Callable

from fastapi import Request, Response, status

from src.api.middleware.error_handler import create_error_response
from src.core.config import get_settings

logger = logging.getLogger(__name__)

WEBHOOK_PATH_PREFIX = "/api/v1/webhooks/"


def body_size_limit(path: str) -> int:
    """Maximum body size for a request path; carrier webhooks get the larger limit."""
    settings = get_settings()
    if path.startswith(WEBHOOK_PATH_PREFIX):
        return settings.max_webhook_body_size
    return settings.max_request_body_size


async def request_size_limit_middleware(
    request: Request,
    call_next: Callable[[Request], Response],
) -> Response:
    """Reject requests whose declared body is larger than the path's limit.

    Args:
        request: The incoming request.
        call_next: Next middleware or route handler.

    Returns:
        Response: Either the successful response or 413 error.
    """
    max_size = body_size_limit(request.url.path)

    content_length = request.headers.get("content-length")
    if content_length:
        try:
            length = int(content_length)
        except ValueError:
            length = None
        if length is not None and length > max_size:
            logger.warning(
                "Request body too large on %s: %d bytes (max: %d)",
                request.url.path,
                length,
                max_size,
            )
            return create_error_response(
                error_type="request_too_large",
                message=f"Request body exceeds maximum size of {max_size} bytes",
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            )

    return await call_next(request)
