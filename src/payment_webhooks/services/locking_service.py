"""Per-order locking for webhook reconciliation.

Gateways retry webhooks and may deliver several events for one order at the
same time. Every read-modify-write of an order's payment state runs through
OrderLockManager.run, which:

1. Takes a process-local mutex keyed by order id (FIFO, first acquirer wins)
2. Opens one transaction on a fresh session at the configured isolation level
3. Stamps the order's gateway_lock column and re-reads the row FOR UPDATE,
   which serializes deliveries handled by other worker processes
4. Runs the operation, commits, and releases on every path

An exception from the operation rolls the transaction back and is re-raised
unchanged.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import datetime
from typing import TypeVar
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payment_webhooks.models import Order
from payment_webhooks.models.base import utcnow

T = TypeVar("T")


class KeyedLock:
    """Registry of asyncio locks keyed by string.

    Entries are dropped once nobody holds or waits for them, so the registry
    only grows with the number of orders being handled right now.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """Hold the lock for key for the duration of the block."""
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
            self._users[key] = 0
        self._users[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)


class OrderLockManager:
    """Serializes reconciliation work per order inside one unit of work."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        locks: KeyedLock | None = None,
        *,
        isolation_level: str | None = "READ COMMITTED",
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.locks = locks if locks is not None else KeyedLock()
        self.isolation_level = isolation_level
        self._clock = clock

    async def run(
        self,
        order_id: UUID,
        operation: Callable[[AsyncSession], Awaitable[T]],
    ) -> T:
        """Run operation(session) while holding the lock for order_id.

        The operation's reads and writes share the session's transaction with
        the lock stamp; it commits only if the operation returns normally.
        """
        async with self.locks.hold(str(order_id)):
            async with self.session_factory() as session:
                try:
                    if self.isolation_level:
                        await session.connection(
                            execution_options={"isolation_level": self.isolation_level}
                        )
                    await self._stamp(session, order_id)
                    result = await operation(session)
                    await session.commit()
                    return result
                except Exception:
                    await session.rollback()
                    raise

    async def _stamp(self, session: AsyncSession, order_id: UUID) -> datetime | None:
        """Write the lock stamp and lock the order row until commit."""
        await session.execute(
            update(Order)
            .where(Order.id == order_id)
            .values(gateway_lock=self._clock())
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(
            select(Order.gateway_lock).where(Order.id == order_id).with_for_update()
        )
        return result.scalar_one_or_none()
