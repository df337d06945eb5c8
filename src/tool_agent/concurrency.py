"""
Concurrency helpers shared by the agent components.

- KeyedQueue: serializes work per key (conversation id, owner id) while
  unrelated keys proceed in parallel.
- run_bounded: runs one suspension point under a timeout and an optional
  caller cancellation event, abandoning the step when either fires.
"""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Hashable
from contextlib import asynccontextmanager
from typing import TypeVar

import structlog

from .exceptions import StepCancelledError, StepTimeoutError

logger = structlog.get_logger()

T = TypeVar("T")


class KeyedQueue:
    """Per-key FIFO serialization.

    Waiters on the same key are admitted in arrival order (asyncio.Lock
    wakes waiters first-in first-out). A key's lock is dropped once nobody
    holds or waits for it, so the table only grows with active keys.
    """

    def __init__(self, name: str = "queue"):
        self.name = name
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._users: dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        """Hold the slot for ``key`` for the duration of the block."""
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._users[key] = self._users.get(key, 0) + 1

        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def pending(self, key: Hashable) -> int:
        """Number of holders plus waiters for a key."""
        return self._users.get(key, 0)

    def is_busy(self, key: Hashable) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @property
    def active_keys(self) -> int:
        return len(self._locks)


def _consume_outcome(task: asyncio.Future) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.debug("Abandoned step failed", error=str(task.exception()))


def _abandon(task: asyncio.Future) -> None:
    task.cancel()
    task.add_done_callback(_consume_outcome)


async def run_bounded(
    step: Awaitable[T],
    timeout: float,
    cancel_event: asyncio.Event | None = None,
) -> T:
    """Await ``step`` for at most ``timeout`` seconds.

    Raises StepTimeoutError on timeout and StepCancelledError when
    ``cancel_event`` is set first. In both cases the step is cancelled and
    not awaited any further.
    """
    task = asyncio.ensure_future(step)
    waiters: set[asyncio.Future] = {task}
    cancel_waiter: asyncio.Future | None = None
    if cancel_event is not None:
        cancel_waiter = asyncio.ensure_future(cancel_event.wait())
        waiters.add(cancel_waiter)

    try:
        done, _ = await asyncio.wait(
            waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        _abandon(task)
        raise
    finally:
        if cancel_waiter is not None and not cancel_waiter.done():
            cancel_waiter.cancel()

    if task in done:
        return task.result()

    _abandon(task)
    if cancel_waiter is not None and cancel_waiter in done:
        raise StepCancelledError()
    raise StepTimeoutError(timeout)
