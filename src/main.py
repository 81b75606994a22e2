"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from src.api.middleware.error_handler import (
    APIError,
    api_error_exception_handler,
    error_handler_middleware,
    order_lifecycle_exception_handler,
)
from src.api.middleware.latency_logging import latency_logging_with_stats_middleware
from src.api.middleware.request_size import request_size_limit_middleware
from src.api.routes import admin_orders, health, orders, webhooks
from src.core.config import get_settings
from src.core.order_locks import get_order_locks
from src.services.lifecycle_errors import OrderLifecycleError

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Args:
        app: FastAPI application instance.

    Yields:
        None: Control back to the application.
    """
    settings = get_settings()
    logger.info("Starting %s in %s mode", settings.app_name, settings.app_env)
    if not settings.carrier_webhook_secret:
        logger.warning("CARRIER_WEBHOOK_SECRET is not set; all carrier webhooks will be rejected")
    if not settings.email_enabled:
        logger.info("Resend API key not set; status emails are disabled")

    yield

    locks = get_order_locks()
    if locks.active_count:
        logger.warning("Shutting down with %d order locks still held", locks.active_count)
    logger.info("Shutting down %s", settings.app_name)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Order Lifecycle API",
        description="Order item status lifecycle, carrier webhooks, returns and refunds",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Catches anything the exception handlers registered below do not
    app.add_middleware(BaseHTTPMiddleware, dispatch=error_handler_middleware)
    app.add_middleware(BaseHTTPMiddleware, dispatch=latency_logging_with_stats_middleware)
    app.add_middleware(BaseHTTPMiddleware, dispatch=request_size_limit_middleware)

    app.add_exception_handler(OrderLifecycleError, order_lifecycle_exception_handler)
    app.add_exception_handler(APIError, api_error_exception_handler)

    # Health routes at root level (no prefix)
    app.include_router(health.router)

    api_v1_router = APIRouter(prefix="/api/v1")
    api_v1_router.include_router(orders.router)
    api_v1_router.include_router(admin_orders.router)
    api_v1_router.include_router(webhooks.router)
    app.include_router(api_v1_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "src.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
