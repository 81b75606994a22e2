"""Transaction boundary for order mutations.

One logical operation runs as: locate the order, take its lock, reload the
committed row, mutate a private copy, then save guarded by the row version.
If another process committed in between, the cycle is replayed against the
new state so the mutation re-validates instead of overwriting.
"""

import inspect
import logging
from copy import deepcopy
from typing import Any, Awaitable, Callable, TypeVar

from src.core.config import get_settings
from src.core.order_locks import OrderLockRegistry, get_order_locks
from src.services.lifecycle_errors import ConcurrentUpdateError, OrderNotFoundError
from src.services.order_repository import OrderRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")

Locator = Callable[[], Awaitable[dict[str, Any] | None]]
Mutator = Callable[[dict[str, Any]], T | Awaitable[T]]


class OrderTransactionRunner:
    """Runs order mutations atomically with respect to other writers."""

    def __init__(
        self,
        repository: OrderRepository | None = None,
        locks: OrderLockRegistry | None = None,
        max_attempts: int | None = None,
    ) -> None:
        """Initialize runner.

        Args:
            repository: Order data access, defaults to the Supabase repository.
            locks: Lock registry, defaults to the process-wide one.
            max_attempts: Commit attempts before giving up, defaults to settings.
        """
        self.repository = repository or OrderRepository()
        self.locks = locks or get_order_locks()
        self.max_attempts = max_attempts or get_settings().order_write_max_attempts

    async def run(
        self,
        locate: Locator,
        mutate: Mutator,
        *,
        retry_on_conflict: bool = True,
        not_found_message: str = "Order not found",
    ) -> tuple[dict[str, Any], T]:
        """Apply `mutate` to one order and commit it.

        `mutate` receives a deep copy of the committed order and may raise
        any OrderLifecycleError to abort; nothing is written in that case. It
        may be a coroutine function when the mutation needs I/O (carrier
        calls); such mutations are run with `retry_on_conflict=False` so an
        external call is never repeated.

        Args:
            locate: Coroutine returning the target order row or None.
            mutate: Function mutating the working copy, returning a result.
            retry_on_conflict: Replay the cycle on a version conflict.
            not_found_message: Message for the OrderNotFoundError.

        Returns:
            tuple: The committed order row and the mutation's result.

        Raises:
            OrderNotFoundError: If the order can't be located.
            ConcurrentUpdateError: If the version kept moving under us.
        """
        located = await locate()
        if located is None:
            raise OrderNotFoundError(not_found_message)
        order_key = str(located["id"])
        attempts = self.max_attempts if retry_on_conflict else 1

        async with self.locks.hold(order_key):
            for attempt in range(1, attempts + 1):
                committed = await self.repository.get(order_key)
                if committed is None:
                    raise OrderNotFoundError(not_found_message)

                working = deepcopy(committed)
                outcome = mutate(working)
                if inspect.isawaitable(outcome):
                    outcome = await outcome

                if working == committed:
                    return committed, outcome

                saved = await self.repository.save(working, committed.get("version", 0))
                if saved is not None:
                    return saved, outcome

                logger.warning(
                    "Order %s changed concurrently (attempt %d/%d)",
                    committed.get("order_id"),
                    attempt,
                    attempts,
                )

        raise ConcurrentUpdateError(
            "The order was modified by another request. Please retry."
        )
