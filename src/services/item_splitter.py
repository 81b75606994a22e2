"""Split an order item batch into two independently owned records."""

from copy import deepcopy
from typing import Any

from src.models.order import OrderItem
from src.services.lifecycle_errors import InvalidRequestError, QuantityExceededError


def split_item(
    order: dict[str, Any],
    item: OrderItem,
    quantity: int,
    *,
    new_id: str,
) -> OrderItem:
    """Carve `quantity` units out of `item` into a new sibling item.

    The sibling is a deep copy of the item as it stood before the split, so
    history, carrier and refund sub-records are owned by value. The original
    keeps its status with a reduced quantity; the sibling is appended to the
    order's items.

    Args:
        order: Order document holding the item.
        item: Item being split; must belong to `order`.
        quantity: Units moved to the sibling, strictly less than the item's.
        new_id: Identifier for the sibling.

    Returns:
        OrderItem: The sibling item.

    Raises:
        InvalidRequestError: If quantity is not a positive integer.
        QuantityExceededError: If quantity does not leave the original non-empty.
    """
    available = item.get("quantity", 0)
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidRequestError("Quantity must be a positive integer")
    if quantity >= available:
        raise QuantityExceededError(
            f"Cannot split {quantity} from an item of quantity {available}"
        )

    sibling: OrderItem = deepcopy(item)
    sibling["id"] = new_id
    sibling["quantity"] = quantity
    item["quantity"] = available - quantity
    order.setdefault("items", []).append(sibling)
    return sibling


def total_quantity(items: list[OrderItem]) -> int:
    """Sum of quantities across items."""
    return sum(item.get("quantity", 0) for item in items)
