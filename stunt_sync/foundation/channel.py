"""StateChannel — the push-notification contract for stateful components.

Every stateful component (scheduler phase, safety state, sync state, actuator
output) owns one or more channels and publishes full snapshots into them.

Contract:
    - subscribe() yields the current value first, then every later update.
    - Each subscriber has its own FIFO queue, so one consumer sees updates
      strictly in publish order and never two at once.
    - A slow subscriber loses its *oldest* pending snapshots, never the
      newest.  Snapshots are full replacements, so nothing is lost but
      intermediate states.
    - Leaving the ``with`` block unsubscribes.

Synchronous listeners are also supported for in-process wiring (the
controller reacting to a safety cutoff, for example).
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from typing import Callable, Generic, Iterator, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Subscription(Generic[T]):
    """An async iterator over channel snapshots, owned by one consumer."""

    def __init__(self, queue: asyncio.Queue) -> None:
        self._queue = queue

    def __aiter__(self) -> Subscription[T]:
        return self

    async def __anext__(self) -> T:
        return await self._queue.get()

    async def get(self) -> T:
        return await self._queue.get()

    def get_nowait(self) -> T:
        """Pop the next pending snapshot; raises asyncio.QueueEmpty if none."""
        return self._queue.get_nowait()

    @property
    def pending(self) -> int:
        return self._queue.qsize()


class StateChannel(Generic[T]):
    """Holds the latest value of some state and fans it out to subscribers."""

    def __init__(self, initial: T, maxsize: int = 32) -> None:
        self._value = initial
        self._maxsize = maxsize
        self._queues: list[asyncio.Queue] = []
        self._listeners: list[Callable[[T], None]] = []

    @property
    def value(self) -> T:
        return self._value

    @property
    def subscriber_count(self) -> int:
        return len(self._queues) + len(self._listeners)

    def publish(self, value: T) -> None:
        """Replace the current value and notify every subscriber."""
        self._value = value
        for queue in list(self._queues):
            self._offer(queue, value)
        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception as exc:
                logger.error("Channel listener failed: %s", exc, exc_info=True)

    @contextmanager
    def subscribe(self) -> Iterator[Subscription[T]]:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._maxsize)
        queue.put_nowait(self._value)
        self._queues.append(queue)
        try:
            yield Subscription(queue)
        finally:
            self._queues.remove(queue)

    def add_listener(self, listener: Callable[[T], None]) -> Callable[[], None]:
        """Register a synchronous listener.  Returns a function that removes it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    # ── Internals ────────────────────────────────────────────────────────

    @staticmethod
    def _offer(queue: asyncio.Queue, value: T) -> None:
        if queue.full():
            queue.get_nowait()
        queue.put_nowait(value)
