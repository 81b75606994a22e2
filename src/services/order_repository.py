"""Supabase data access for order documents."""

import json
import logging
from typing import Any

from src.core.supabase import get_supabase_client
from src.services.status_history import format_timestamp, utc_now

logger = logging.getLogger(__name__)

ORDERS_TABLE = "orders"


class OrderRepository:
    """Reads and versioned writes of rows in the orders table.

    Items live in the ``items`` JSONB column, so item, carrier and return
    lookups use JSONB containment filters on that column.
    """

    def __init__(self) -> None:
        """Initialize repository with Supabase client."""
        self.client = get_supabase_client()

    def _select(self) -> Any:
        return self.client.table(ORDERS_TABLE).select("*")

    async def get(self, order_id: str) -> dict[str, Any] | None:
        """Get an order row by its id.

        Args:
            order_id: The order's uuid.

        Returns:
            dict | None: Order row or None if not found.
        """
        response = self._select().eq("id", str(order_id)).limit(1).execute()
        return response.data[0] if response.data else None

    async def _find_one_containing(
        self,
        element: dict[str, Any],
        user_id: str | None = None,
    ) -> dict[str, Any] | None:
        query = self._select().contains("items", json.dumps([element]))
        if user_id is not None:
            query = query.eq("user_id", str(user_id))
        response = query.limit(1).execute()
        return response.data[0] if response.data else None

    async def find_by_item_id(
        self,
        item_id: str,
        user_id: str | None = None,
    ) -> dict[str, Any] | None:
        """Find the order holding an item, optionally scoped to its owner."""
        return await self._find_one_containing({"id": str(item_id)}, user_id)

    async def find_by_carrier_order_id(self, carrier_order_id: str) -> dict[str, Any] | None:
        """Find the order whose items reference a carrier order id.

        Falls back to the carrier return order id for return-leg events.
        """
        order = await self._find_one_containing({"carrier": {"order_id": str(carrier_order_id)}})
        if order is None:
            order = await self._find_one_containing(
                {"carrier": {"return_order_id": str(carrier_order_id)}}
            )
        return order

    async def find_by_return_id(self, return_id: str) -> dict[str, Any] | None:
        return await self._find_one_containing({"return_id": str(return_id)})

    async def list_containing(
        self,
        element: dict[str, Any] | None = None,
        user_id: str | None = None,
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        """List orders, newest first, optionally filtered by an item shape.

        Args:
            element: Partial item every returned order must contain.
            user_id: Restrict to orders owned by this user.
            limit: Maximum rows returned.

        Returns:
            list[dict]: Order rows.
        """
        query = self._select()
        if element is not None:
            query = query.contains("items", json.dumps([element]))
        if user_id is not None:
            query = query.eq("user_id", str(user_id))
        response = query.order("created_at", desc=True).limit(limit).execute()
        return response.data or []

    async def save(
        self,
        order: dict[str, Any],
        expected_version: int,
    ) -> dict[str, Any] | None:
        """Write the mutable parts of an order if nobody else committed first.

        Args:
            order: Mutated order document.
            expected_version: Version the mutation was based on.

        Returns:
            dict | None: The stored row, or None when the version moved on.
        """
        update_data = {
            "items": order.get("items", []),
            "version": expected_version + 1,
            "updated_at": format_timestamp(utc_now()),
        }
        if order.get("payment_status"):
            update_data["payment_status"] = order["payment_status"]
        response = (
            self.client.table(ORDERS_TABLE)
            .update(update_data)
            .eq("id", str(order["id"]))
            .eq("version", expected_version)
            .execute()
        )
        if not response.data:
            logger.info(
                "Version conflict saving order %s at version %s",
                order.get("order_id"),
                expected_version,
            )
            return None
        return response.data[0]
