"""Shipping carrier REST client with timeouts, retry and latency logging."""

import logging
import time
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.core.config import get_settings

logger = logging.getLogger(__name__)

# Retry configuration (idempotent reads only)
MAX_RETRIES = 3
MIN_WAIT_SECONDS = 1
MAX_WAIT_SECONDS = 5

SLOW_CALL_THRESHOLD_MS = 3000

ADHOC_ORDER_PATH = "/orders/create/adhoc"
ASSIGN_AWB_PATH = "/courier/assign/awb"
GENERATE_PICKUP_PATH = "/courier/generate/pickup"
PICKUP_ADDRESS_PATH = "/settings/company/pickup"
RETURN_ORDER_PATH = "/orders/create/return"


class CarrierAPIError(Exception):
    """Carrier call failed, timed out or returned an unsuccessful response."""

    def __init__(self, message: str, operation: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.status_code = status_code


class CarrierClient:
    """Thin async client for the carrier API, authenticated per admin token.

    Every call is bounded by the configured timeout. Only the pickup address
    lookup is retried; order, AWB and pickup creation are not idempotent on
    the carrier side.
    """

    def __init__(
        self,
        token: str,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize carrier client.

        Args:
            token: Carrier API bearer token.
            base_url: API base URL, defaults to settings.
            timeout: Per-call timeout in seconds, defaults to settings.
            transport: Optional httpx transport (used by tests).
        """
        settings = get_settings()
        self.token = token
        self.base_url = (base_url or settings.carrier_api_base_url).rstrip("/")
        self.timeout = timeout or settings.carrier_api_timeout_seconds
        self.transport = transport

    async def _send(self, method: str, path: str, payload: dict[str, Any] | None = None) -> Any:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.token}",
        }
        start = time.perf_counter()
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self.transport,
            ) as client:
                response = await client.request(method, path, json=payload, headers=headers)
                response.raise_for_status()
                return response.json()
        finally:
            latency_ms = (time.perf_counter() - start) * 1000
            if latency_ms > SLOW_CALL_THRESHOLD_MS:
                logger.warning("Slow carrier call %s %s: %.0fms", method, path, latency_ms)
            else:
                logger.debug("Carrier call %s %s: %.0fms", method, path, latency_ms)

    async def _call(
        self,
        operation: str,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
    ) -> Any:
        try:
            return await self._send(method, path, payload)
        except httpx.TimeoutException:
            logger.error("Carrier %s timed out after %ss", operation, self.timeout)
            raise CarrierAPIError(f"Carrier {operation} timed out", operation)
        except httpx.HTTPStatusError as e:
            logger.error(
                "Carrier %s failed with HTTP %s: %s",
                operation,
                e.response.status_code,
                e.response.text[:500],
            )
            raise CarrierAPIError(
                f"Carrier {operation} failed with HTTP {e.response.status_code}",
                operation,
                status_code=e.response.status_code,
            )
        except httpx.HTTPError as e:
            logger.error("Carrier %s transport error: %s", operation, str(e))
            raise CarrierAPIError(f"Carrier {operation} failed: {e}", operation)
        except ValueError:
            raise CarrierAPIError(f"Carrier {operation} returned a non-JSON response", operation)

    async def create_adhoc_order(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Create a carrier order for the items being shipped.

        Returns:
            dict: Carrier response holding order_id and shipment_id.

        Raises:
            CarrierAPIError: If the call fails or no order id comes back.
        """
        data = await self._call("create_adhoc_order", "POST", ADHOC_ORDER_PATH, payload)
        if not isinstance(data, dict) or not data.get("order_id"):
            raise CarrierAPIError("Carrier did not create the order", "create_adhoc_order")
        return data

    async def assign_awb(self, shipment_id: str) -> dict[str, Any]:
        """Assign an air waybill to a shipment.

        Returns:
            dict: AWB details (awb_code, courier_company_id, courier_name).

        Raises:
            CarrierAPIError: If the carrier did not assign an AWB.
        """
        data = await self._call(
            "assign_awb", "POST", ASSIGN_AWB_PATH, {"shipment_id": shipment_id}
        )
        if not isinstance(data, dict) or data.get("awb_assign_status") != 1:
            raise CarrierAPIError("Carrier did not assign an AWB", "assign_awb")
        return ((data.get("response") or {}).get("data")) or {}

    async def generate_pickup(self, shipment_id: str) -> dict[str, Any]:
        data = await self._call(
            "generate_pickup", "POST", GENERATE_PICKUP_PATH, {"shipment_id": [shipment_id]}
        )
        return data if isinstance(data, dict) else {}

    async def create_return_order(self, payload: dict[str, Any]) -> dict[str, Any]:
        data = await self._call("create_return_order", "POST", RETURN_ORDER_PATH, payload)
        if not isinstance(data, dict) or not data.get("order_id"):
            raise CarrierAPIError("Carrier did not create the return order", "create_return_order")
        return data

    @retry(
        retry=retry_if_exception_type((httpx.TimeoutException, httpx.TransportError)),
        stop=stop_after_attempt(MAX_RETRIES),
        wait=wait_exponential(multiplier=1, min=MIN_WAIT_SECONDS, max=MAX_WAIT_SECONDS),
        reraise=True,
    )
    async def _get_pickup_address_with_retry(self) -> Any:
        return await self._send("GET", PICKUP_ADDRESS_PATH)

    async def get_pickup_address(self) -> dict[str, Any]:
        """Fetch the first configured pickup address of the merchant account.

        Retried with exponential backoff on timeouts and transport errors.

        Returns:
            dict: Pickup address (pickup_location, name, address, city, ...).

        Raises:
            CarrierAPIError: If no address could be fetched.
        """
        try:
            data = await self._get_pickup_address_with_retry()
        except httpx.HTTPError as e:
            logger.error("Carrier pickup address lookup failed: %s", str(e))
            raise CarrierAPIError("Could not fetch carrier pickup address", "get_pickup_address")
        except ValueError:
            raise CarrierAPIError("Carrier returned a non-JSON response", "get_pickup_address")

        addresses = ((data or {}).get("data") or {}).get("shipping_address") or []
        if not addresses:
            raise CarrierAPIError("No pickup address configured with the carrier", "get_pickup_address")
        return addresses[0]
