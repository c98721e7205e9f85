"""Process-wide FIFO admission control for toolchain invocations."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import deque
from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)


class ConcurrencyLimiter:
    """Admit at most ``limit`` holders at once; queue the rest in FIFO order.

    A released slot is handed directly to the oldest waiter, so a late
    arrival can never overtake the queue.

    Parameters
    ----------
    limit:
        Maximum number of concurrent holders (>= 1).
    """

    def __init__(self, limit: int) -> None:
        if limit < 1:
            raise ValueError(f"Concurrency limit must be >= 1, got {limit}")
        self._limit = limit
        self._active = 0
        self._waiters: deque[asyncio.Future[None]] = deque()
        self.peak_active = 0
        self.total_admitted = 0

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def active(self) -> int:
        return self._active

    @property
    def waiting(self) -> int:
        return sum(1 for w in self._waiters if not w.done())

    # ------------------------------------------------------------------
    # Acquire / release
    # ------------------------------------------------------------------

    async def acquire(self) -> None:
        if self._active < self._limit and not self._waiters:
            self._admit()
            return

        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        logger.debug("limiter:queued waiting=%d active=%d", self.waiting, self._active)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # The slot was handed over just before cancellation; pass it on.
                self.release()
            elif waiter in self._waiters:
                self._waiters.remove(waiter)
            raise

    def release(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                # Slot ownership transfers; the active count is unchanged.
                self.total_admitted += 1
                waiter.set_result(None)
                return
        self._active -= 1

    def _admit(self) -> None:
        self._active += 1
        self.total_admitted += 1
        self.peak_active = max(self.peak_active, self._active)

    @contextlib.asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        """Hold one slot for the duration of the ``async with`` block."""
        await self.acquire()
        try:
            yield
        finally:
            self.release()
