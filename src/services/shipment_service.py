"""Outbound shipment hand-off to the carrier.

Three admin steps, each gated by flags on the carrier sub-record of the
order's Ordered items: create the carrier order, assign an AWB, generate the
pickup. The carrier call and the resulting mutation share one lock and one
version-checked save; a failed call leaves the order untouched.
"""

import logging
from typing import Any, Callable

from src.core.carrier import CarrierAPIError, CarrierClient
from src.core.config import get_settings
from src.models.order import OrderItem
from src.services.lifecycle_errors import (
    AlreadyProcessedError,
    OrderNotFoundError,
    StepOutOfOrderError,
    UpstreamCarrierError,
)
from src.services.order_repository import OrderRepository
from src.services.order_session import OrderTransactionRunner
from src.services.status_graph import OrderStatus
from src.services.status_history import format_timestamp, utc_now
from src.services.transition_executor import apply_transition, new_identifier

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], CarrierClient]

ADHOC_ORDER_CREATED = "adhoc_order_created"
AWB_ASSIGNED = "awb_assigned"
PICKUP_GENERATED = "pickup_generated"


def _flags(item: OrderItem) -> dict[str, bool]:
    return dict((item.get("carrier") or {}).get("flags") or {})


def _set_flag(item: OrderItem, flag: str) -> None:
    carrier = dict(item.get("carrier") or {})
    flags = {
        ADHOC_ORDER_CREATED: False,
        AWB_ASSIGNED: False,
        PICKUP_GENERATED: False,
        **(carrier.get("flags") or {}),
    }
    flags[flag] = True
    carrier["flags"] = flags
    item["carrier"] = carrier


def _ordered_items(order: dict[str, Any]) -> list[OrderItem]:
    return [
        item
        for item in order.get("items") or []
        if item.get("status") == OrderStatus.ORDERED.value
    ]


def _flagged_items(order: dict[str, Any], flag: str) -> list[OrderItem]:
    # Any status: items leave Ordered once the pickup ships them.
    return [item for item in order.get("items") or [] if _flags(item).get(flag)]


def _sku(item: OrderItem) -> str:
    color = (item.get("color") or {}).get("name") or ""
    parts = [(item.get("product") or {}).get("name") or "item", item.get("size") or "", color]
    return "-".join(part for part in parts if part)


def _order_line(item: OrderItem) -> dict[str, Any]:
    return {
        "name": (item.get("product") or {}).get("name"),
        "sku": _sku(item),
        "units": item.get("quantity"),
        "selling_price": item.get("amount"),
        "discount": "",
        "tax": "",
        "hsn": "",
    }


def build_adhoc_order_payload(
    order: dict[str, Any],
    items: list[OrderItem],
    package: dict[str, Any],
    pickup_address: dict[str, Any],
) -> dict[str, Any]:
    """Carrier order payload for the items about to ship.

    Billing is the merchant pickup address; shipping is the order's
    destination snapshot.

    Args:
        order: Order row.
        items: Items included in the shipment.
        package: Package dimensions (length, breadth, height in cm; weight in kg).
        pickup_address: Merchant pickup address from the carrier account.

    Returns:
        dict: Request body for the ad-hoc order endpoint.
    """
    shipping = order.get("shipping_info") or {}
    amount = order.get("amount") or {}
    sub_total = sum(item.get("amount", 0) * item.get("quantity", 0) for item in items)
    return {
        "order_id": order.get("order_id"),
        "order_date": order.get("ordered_at") or order.get("created_at"),
        "pickup_location": package.get("pickup_location") or pickup_address.get("pickup_location"),
        "billing_customer_name": pickup_address.get("name"),
        "billing_last_name": "",
        "billing_address": pickup_address.get("address"),
        "billing_address_2": pickup_address.get("address_2") or "",
        "billing_city": pickup_address.get("city"),
        "billing_pincode": pickup_address.get("pin_code"),
        "billing_state": pickup_address.get("state"),
        "billing_country": pickup_address.get("country"),
        "billing_email": pickup_address.get("email"),
        "billing_phone": pickup_address.get("phone"),
        "shipping_is_billing": False,
        "shipping_customer_name": order.get("customer_name") or "",
        "shipping_last_name": "",
        "shipping_address": shipping.get("address"),
        "shipping_address_2": "",
        "shipping_city": shipping.get("city"),
        "shipping_pincode": shipping.get("postal_code"),
        "shipping_country": shipping.get("country"),
        "shipping_state": shipping.get("state"),
        "shipping_email": order.get("customer_email") or "",
        "shipping_phone": shipping.get("phone"),
        "order_items": [_order_line(item) for item in items],
        "payment_method": "COD" if order.get("payment_method") == "COD" else "Prepaid",
        "shipping_charges": amount.get("shipping_charges", 0),
        "giftwrap_charges": 0,
        "transaction_charges": 0,
        "total_discount": 0,
        "sub_total": sub_total,
        "length": package.get("length"),
        "breadth": package.get("breadth"),
        "height": package.get("height"),
        "weight": package.get("weight"),
    }


def build_return_order_payload(
    order: dict[str, Any],
    items: list[OrderItem],
    package: dict[str, Any],
    return_reference: str,
) -> dict[str, Any]:
    """Carrier return order payload: pick up at the customer, deliver to the merchant."""
    shipping = order.get("shipping_info") or {}
    return {
        "order_id": return_reference,
        "order_date": format_timestamp(utc_now()),
        "pickup_customer_name": order.get("customer_name") or "",
        "pickup_address": shipping.get("address"),
        "pickup_city": shipping.get("city"),
        "pickup_state": shipping.get("state"),
        "pickup_country": shipping.get("country"),
        "pickup_pincode": shipping.get("postal_code"),
        "pickup_email": order.get("customer_email") or "",
        "pickup_phone": shipping.get("phone"),
        "shipping_customer_name": package.get("warehouse_name") or "",
        "order_items": [_order_line(item) for item in items],
        "payment_method": "Prepaid",
        "sub_total": sum(item.get("amount", 0) * item.get("quantity", 0) for item in items),
        "length": package.get("length"),
        "breadth": package.get("breadth"),
        "height": package.get("height"),
        "weight": package.get("weight"),
    }


class ShipmentService:
    """Drives the three-step carrier hand-off for one order."""

    def __init__(
        self,
        repository: OrderRepository | None = None,
        client_factory: ClientFactory | None = None,
    ) -> None:
        """Initialize shipment service.

        Args:
            repository: Order data access, defaults to the Supabase repository.
            client_factory: Builds a carrier client from an admin's carrier token.
        """
        self.settings = get_settings()
        self.repository = repository or OrderRepository()
        self.runner = OrderTransactionRunner(repository=self.repository)
        self.client_factory = client_factory or CarrierClient

    async def _run_step(
        self,
        order_id: str,
        step: Callable[[dict[str, Any]], Any],
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        return await self.runner.run(
            lambda: self.repository.get(order_id),
            step,
            retry_on_conflict=False,
        )

    async def create_adhoc_order(
        self,
        order_id: str,
        package: dict[str, Any],
        token: str,
    ) -> dict[str, Any]:
        """Step 1: create the carrier order for every Ordered item.

        Args:
            order_id: Order uuid.
            package: Package dimensions and optional pickup_location override.
            token: Carrier API token.

        Returns:
            dict: carrier_order_id, shipment_id and the item ids included.

        Raises:
            OrderNotFoundError: Unknown order.
            StepOutOfOrderError: Nothing left to ship.
            AlreadyProcessedError: Carrier order already created.
            UpstreamCarrierError: Carrier call failed.
        """
        client = self.client_factory(token)

        async def step(order: dict[str, Any]) -> dict[str, Any]:
            if _flagged_items(order, ADHOC_ORDER_CREATED):
                raise AlreadyProcessedError("Carrier order already created for this order")
            items = _ordered_items(order)
            if not items:
                raise StepOutOfOrderError("No items available for shipping in this order")

            try:
                pickup_address = await client.get_pickup_address()
                data = await client.create_adhoc_order(
                    build_adhoc_order_payload(order, items, package, pickup_address)
                )
            except CarrierAPIError as e:
                raise UpstreamCarrierError(e.message)

            carrier_order_id = str(data["order_id"])
            shipment_id = str(data["shipment_id"]) if data.get("shipment_id") else None
            for item in items:
                carrier = dict(item.get("carrier") or {})
                carrier.update(
                    {
                        "order_id": carrier_order_id,
                        "shipment_id": shipment_id,
                        "courier_name": data.get("courier_name"),
                    }
                )
                item["carrier"] = carrier
                _set_flag(item, ADHOC_ORDER_CREATED)

            logger.info(
                "Carrier order %s created for order %s (%d items)",
                carrier_order_id,
                order.get("order_id"),
                len(items),
            )
            return {
                "carrier_order_id": carrier_order_id,
                "shipment_id": shipment_id,
                "item_ids": [str(item["id"]) for item in items],
            }

        _, result = await self._run_step(order_id, step)
        return result

    async def assign_awb(self, order_id: str, token: str) -> dict[str, Any]:
        """Step 2: assign an AWB to the carrier shipment.

        Raises:
            StepOutOfOrderError: Carrier order not created yet.
            AlreadyProcessedError: AWB already assigned.
            UpstreamCarrierError: Carrier call failed.
        """
        client = self.client_factory(token)

        async def step(order: dict[str, Any]) -> dict[str, Any]:
            if _flagged_items(order, AWB_ASSIGNED):
                raise AlreadyProcessedError("AWB already assigned for this order")
            created = _flagged_items(order, ADHOC_ORDER_CREATED)
            if not created:
                raise StepOutOfOrderError("Create the carrier order before assigning an AWB")
            items = [item for item in created if item.get("status") == OrderStatus.ORDERED.value]
            if not items:
                raise StepOutOfOrderError("No items on the carrier order are left to ship")

            shipment_id = items[0]["carrier"].get("shipment_id")
            try:
                awb = await client.assign_awb(shipment_id)
            except CarrierAPIError as e:
                raise UpstreamCarrierError(e.message)

            awb_code = str(awb.get("awb_code") or "") or None
            tracking_url = (
                self.settings.carrier_tracking_url_template.format(awb_code=awb_code)
                if awb_code
                else None
            )
            courier_id = awb.get("courier_company_id") or awb.get("courier_id")
            for item in items:
                carrier = dict(item["carrier"])
                carrier.update(
                    {
                        "awb_code": awb_code,
                        "tracking_number": awb_code,
                        "courier_name": awb.get("courier_name") or carrier.get("courier_name"),
                        "courier_id": str(courier_id) if courier_id else None,
                        "tracking_url": tracking_url,
                    }
                )
                item["carrier"] = carrier
                _set_flag(item, AWB_ASSIGNED)

            logger.info("AWB %s assigned for order %s", awb_code, order.get("order_id"))
            return {
                "awb_code": awb_code,
                "courier_name": items[0]["carrier"].get("courier_name"),
                "tracking_url": tracking_url,
                "item_ids": [str(item["id"]) for item in items],
            }

        _, result = await self._run_step(order_id, step)
        return result

    async def generate_pickup(
        self,
        order_id: str,
        token: str,
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        """Step 3: request the courier pickup and mark the shipment Shipped.

        Every Ordered item on the carrier shipment moves to Shipped in the
        same save that records the pickup flag.

        Returns:
            tuple: Committed order row and shipment_id, shipped_item_ids, transitions.

        Raises:
            StepOutOfOrderError: AWB not assigned yet.
            AlreadyProcessedError: Pickup already generated.
            UpstreamCarrierError: Carrier call failed.
        """
        client = self.client_factory(token)

        async def step(order: dict[str, Any]) -> dict[str, Any]:
            if _flagged_items(order, PICKUP_GENERATED):
                raise AlreadyProcessedError("Pickup already generated for this order")
            assigned = _flagged_items(order, AWB_ASSIGNED)
            if not assigned:
                raise StepOutOfOrderError("Assign an AWB before generating the pickup")
            items = [item for item in assigned if item.get("status") == OrderStatus.ORDERED.value]
            if not items:
                raise StepOutOfOrderError("No items on the carrier order are left to ship")

            shipment_id = items[0]["carrier"].get("shipment_id")
            try:
                await client.generate_pickup(shipment_id)
            except CarrierAPIError as e:
                raise UpstreamCarrierError(e.message)

            courier_name = items[0]["carrier"].get("courier_name") or "courier"
            now = utc_now()
            transitions = []
            for item in items:
                if (item.get("carrier") or {}).get("shipment_id") != shipment_id:
                    continue
                _set_flag(item, PICKUP_GENERATED)
                transitions.append(
                    apply_transition(
                        order,
                        str(item["id"]),
                        OrderStatus.SHIPPED,
                        note=f"Order shipped via {courier_name}",
                        now=now,
                    )
                )

            logger.info(
                "Pickup generated for order %s, %d items shipped",
                order.get("order_id"),
                len(transitions),
            )
            return {
                "shipment_id": shipment_id,
                "shipped_item_ids": [result.item_id for result in transitions],
                "transitions": transitions,
            }

        return await self._run_step(order_id, step)

    async def create_return_shipment(
        self,
        order: dict[str, Any],
        items: list[OrderItem],
        package: dict[str, Any],
        token: str,
    ) -> dict[str, Any] | None:
        """Book a carrier return pickup for items leaving the customer.

        Failures are logged and reported as None; the return itself goes on.

        Returns:
            dict | None: Carrier return order fields, or None on failure.
        """
        reference = f"{order.get('order_id')}-{new_identifier('R')}"
        try:
            data = await self.client_factory(token).create_return_order(
                build_return_order_payload(order, items, package, reference)
            )
        except CarrierAPIError as e:
            logger.error(
                "Carrier return order for order %s failed: %s",
                order.get("order_id"),
                e.message,
            )
            return None

        return {
            "return_order_id": str(data.get("order_id") or data.get("return_order_id")),
            "return_shipment_id": str(data.get("shipment_id") or data.get("return_shipment_id") or "") or None,
            "return_tracking_number": data.get("tracking_number") or data.get("return_tracking_number"),
            "return_awb_code": data.get("awb_code"),
            "return_courier_name": data.get("courier_name"),
        }

    async def get_order_tracking(self, order_id: str) -> dict[str, Any]:
        """Tracking summary of an order: status and carrier data per item.

        Raises:
            OrderNotFoundError: Unknown order.
        """
        order = await self.repository.get(order_id)
        if order is None:
            raise OrderNotFoundError("Order not found")

        items = []
        for item in order.get("items") or []:
            carrier = item.get("carrier") or {}
            history = item.get("status_history") or []
            items.append(
                {
                    "item_id": str(item["id"]),
                    "status": item.get("status"),
                    "quantity": item.get("quantity"),
                    "carrier_order_id": carrier.get("order_id"),
                    "shipment_id": carrier.get("shipment_id"),
                    "awb_code": carrier.get("awb_code"),
                    "courier_name": carrier.get("courier_name"),
                    "carrier_status": carrier.get("status"),
                    "tracking_url": carrier.get("tracking_url"),
                    "last_updated": carrier.get("last_updated"),
                    "flags": carrier.get("flags") or {},
                    "last_event": history[-1] if history else None,
                }
            )
        return {"order_id": order.get("order_id"), "items": items}
