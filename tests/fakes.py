"""Test doubles for time: a controllable millisecond clock and sleeps driven by it."""

from __future__ import annotations

import asyncio
from typing import Callable


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, now: int = 0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class SteppingSleep:
    """Replaces asyncio.sleep: advances a FakeClock instead of waiting.

    ``jitter`` adds extra milliseconds to successive sleeps to simulate a
    loop that wakes up late.
    """

    def __init__(self, clock: FakeClock, jitter: list[int] | None = None) -> None:
        self.clock = clock
        self.jitter = list(jitter or [])
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        extra = self.jitter.pop(0) if self.jitter else 0
        self.clock.advance(round(seconds * 1000) + extra)
        await asyncio.sleep(0)


class ParkedSleep:
    """Replaces asyncio.sleep: parks until the test releases it.

    Each release() wakes exactly one parked sleep.
    """

    def __init__(self) -> None:
        self.calls: list[float] = []
        self._release = asyncio.Event()

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        await self._release.wait()
        self._release.clear()

    def release(self) -> None:
        self._release.set()


async def drain(predicate: Callable[[], bool], limit: int = 1000) -> None:
    """Yield to the event loop until *predicate()* holds."""
    for _ in range(limit):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")
