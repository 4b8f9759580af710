"""
Single-flight coordination for coroutines.

A SingleFlight is either idle or pending. The first caller of do() moves it to
pending and starts the work in its own task; callers arriving while it is
pending await the same shared future instead of starting new work. When the
work settles the state goes back to idle and every waiter is released with the
same result or exception.

Waiters await the shared future through asyncio.shield(), so cancelling one
caller releases only that caller; the work itself runs to completion unless
the flight is cancelled as a whole with cancel().
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _consume_exception(future: asyncio.Future) -> None:
    # keeps asyncio quiet when a failed flight had no waiters left
    if not future.cancelled():
        future.exception()


class SingleFlight(Generic[T]):
    def __init__(self) -> None:
        self._future: Optional[asyncio.Future] = None
        self._task: Optional[asyncio.Task] = None
        self.flights = 0

    @property
    def pending(self) -> bool:
        return self._future is not None

    async def do(self, fn: Callable[[], Awaitable[T]]) -> T:
        future = self._future
        if future is None:
            loop = asyncio.get_running_loop()
            future = loop.create_future()
            future.add_done_callback(_consume_exception)
            self._future = future
            self.flights += 1
            self._task = loop.create_task(self._run(fn, future))
        else:
            logger.debug("Joining in-flight call")
        return await asyncio.shield(future)

    async def cancel(self) -> None:
        """Stop the work in flight, if any; its waiters see CancelledError."""
        task, future = self._task, self._future
        if task is None:
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        # a task cancelled before its first step never reaches _run's cleanup
        if self._future is future:
            self._future = None
            self._task = None
        if future is not None and not future.done():
            future.cancel()

    async def _run(self, fn: Callable[[], Awaitable[T]], future: asyncio.Future) -> None:
        try:
            try:
                outcome = await fn()
            finally:
                # back to idle before anyone is released, so a caller woken by
                # this flight that needs another one starts a fresh flight
                self._future = None
                self._task = None
        except Exception as exc:
            future.set_exception(exc)
        except BaseException:
            future.cancel()
            raise
        else:
            future.set_result(outcome)
