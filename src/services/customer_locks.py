"""Per-customer asyncio locks.

Serializes ingest for one tenant+customer inside a process so two messages
from the same customer never interleave their read-modify-write. Different
customers never contend. Cross-process safety comes from the
compare-and-swap writes in the order and conversation stores.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class KeyedLockRegistry:
    """Lazily created asyncio.Lock per key, dropped when no longer held."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @staticmethod
    def key_for(tenant_id: str, customer_key: str) -> str:
        return f"{tenant_id}:{customer_key}"

    @asynccontextmanager
    async def hold(self, tenant_id: str, customer_key: str) -> AsyncIterator[None]:
        """Hold the customer's lock for the body of the with-block."""
        key = self.key_for(tenant_id, customer_key)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                self._waiters.pop(key, None)
                self._locks.pop(key, None)

    def __len__(self) -> int:
        return len(self._locks)
