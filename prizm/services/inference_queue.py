"""
Admission queue for embedding inference.

Bounds how many inference calls run at once and admits waiting callers
in FIFO order.

Implementation notes:
- Runs on a single event loop; no await happens inside a bookkeeping step
- release() hands the freed slot directly to the oldest waiter
- reject_all() fails every queued waiter and starts a new generation, so
  slots admitted before the reset cannot release twice
"""

import asyncio
from collections import deque
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Callable

from prizm.core.logging import get_logger

logger = get_logger(__name__)


class InferenceSlotQueue:
    """
    Bounded semaphore with FIFO fairness and bulk rejection.

    Usage:
        queue = InferenceSlotQueue(max_concurrent=1)

        async with queue.slot():
            vector = await model(text)

    Attributes:
        active_count: Callers currently holding a slot
        pending_count: Callers waiting for a slot
    """

    def __init__(self, max_concurrent: int = 1) -> None:
        """
        Initialize the queue.

        Args:
            max_concurrent: Maximum number of concurrent inference calls
        """
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self._max_concurrent = max_concurrent
        self._active = 0
        self._waiters: deque[asyncio.Future[None]] = deque()
        self._generation = 0

    async def acquire(self) -> int:
        """
        Wait for a free slot.

        Returns:
            Generation token to pass back to release().

        Raises:
            The error built by reject_all() if the queue is reset while waiting.
        """
        if self._active < self._max_concurrent and not self._waiters:
            self._active += 1
            return self._generation

        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        logger.debug(
            "inference_slot_queued",
            active=self._active,
            pending=len(self._waiters),
        )
        generation = self._generation

        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled() and waiter.exception() is None:
                # Admitted and cancelled in the same tick: give the slot back
                self.release(generation)
            else:
                try:
                    self._waiters.remove(waiter)
                except ValueError:
                    pass
            raise

        return generation

    def release(self, generation: int) -> None:
        """
        Release a slot and admit the next waiter, if any.

        Stale tokens from before the last reject_all() are ignored.
        """
        if generation != self._generation:
            return
        if self._active > 0:
            self._active -= 1

        while self._waiters:
            waiter = self._waiters.popleft()
            if waiter.done():
                continue
            self._active += 1
            waiter.set_result(None)
            break

    def reject_all(self, make_error: Callable[[], BaseException]) -> int:
        """
        Fail every queued caller and reset the slot count.

        Callers already holding a slot are unaffected; their later
        release() calls become no-ops.

        Returns:
            Number of waiters rejected.
        """
        rejected = 0
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_exception(make_error())
                rejected += 1
        self._active = 0
        self._generation += 1
        if rejected:
            logger.info("inference_waiters_rejected", count=rejected)
        return rejected

    @asynccontextmanager
    async def slot(self) -> AsyncGenerator[None, None]:
        """
        Hold a slot for the duration of the block.

        Usage:
            async with queue.slot():
                result = await model(text)
        """
        generation = await self.acquire()
        try:
            yield
        finally:
            self.release(generation)

    @property
    def active_count(self) -> int:
        """Number of callers currently holding a slot."""
        return self._active

    @property
    def pending_count(self) -> int:
        """Number of callers waiting for a slot."""
        return sum(1 for waiter in self._waiters if not waiter.done())

    @property
    def is_available(self) -> bool:
        """Whether a new caller would be admitted without waiting."""
        return self._active < self._max_concurrent and not self._waiters

    @property
    def max_concurrent(self) -> int:
        """Maximum number of concurrent inference calls."""
        return self._max_concurrent

    @max_concurrent.setter
    def max_concurrent(self, value: int) -> None:
        if value < 1:
            raise ValueError("max_concurrent must be at least 1")
        self._max_concurrent = value
        # A larger limit may free room for waiters
        while self._active < self._max_concurrent and self._waiters:
            waiter = self._waiters.popleft()
            if waiter.done():
                continue
            self._active += 1
            waiter.set_result(None)
