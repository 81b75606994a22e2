"""Per-order async locks linearizing writers inside this process."""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from functools import lru_cache
from typing import AsyncIterator

logger = logging.getLogger(__name__)


@dataclass
class _LockEntry:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0


class OrderLockRegistry:
    """Hands out one asyncio.Lock per order id.

    Entries are dropped once no coroutine holds or waits for them, so the
    registry only grows with the number of orders being written concurrently.
    Orders never share a lock.
    """

    def __init__(self) -> None:
        self._entries: dict[str, _LockEntry] = {}

    @asynccontextmanager
    async def hold(self, order_key: str) -> AsyncIterator[None]:
        """Hold the lock of one order for the duration of the block."""
        entry = self._entries.get(order_key)
        if entry is None:
            entry = _LockEntry()
            self._entries[order_key] = entry
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0:
                self._entries.pop(order_key, None)

    def is_locked(self, order_key: str) -> bool:
        entry = self._entries.get(order_key)
        return entry is not None and entry.lock.locked()

    @property
    def active_count(self) -> int:
        """Number of orders currently held or awaited."""
        return len(self._entries)


@lru_cache
def get_order_locks() -> OrderLockRegistry:
    """Get the process-wide lock registry."""
    return OrderLockRegistry()
