"""PhaseScheduler — the cancellable, phase-locked flash loop.

Timing model (frequency f, duty cycle d):
    period       = 1000 // f                      ms
    on_duration  = round(period * d)
    off_duration = period - on_duration
    full cycle   = 2 * period

Anchoring:
    The starting phase comes from ``(now - reference_timestamp) mod
    full_cycle``: EVEN_ON_ODD_OFF in the first period, EVEN_OFF_ODD_ON in
    the second.  Devices that join at different times therefore start on
    the same global cycle.

Loop:
    Publish the phase, switch the output on if the phase lights this seat,
    hold it for ``on_duration`` (lit) or ``off_duration`` (unlit), then flip
    to the other phase.  A zero ``on_duration`` skips the lit step.

Cancellation:
    stop() bumps a generation token and cancels the task.  The token is
    checked immediately before every callback, so no actuation happens
    after stop() returns, even when stop() is called from inside the
    callback or from another task.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from stunt_sync.core.pattern_calculator import phase_lights_seat
from stunt_sync.domain.enums import Phase
from stunt_sync.domain.pattern import FlashTiming
from stunt_sync.foundation.channel import StateChannel
from stunt_sync.foundation.clock import monotonic_ms

logger = logging.getLogger(__name__)

FlashCallback = Callable[[bool], None]
Sleep = Callable[[float], Awaitable[None]]


def phase_at(elapsed_ms: int, period_ms: int) -> Phase:
    """Phase of the global cycle *elapsed_ms* after the reference instant."""
    cycle_pos = elapsed_ms % (2 * period_ms)
    return Phase.EVEN_ON_ODD_OFF if cycle_pos < period_ms else Phase.EVEN_OFF_ODD_ON


class PhaseScheduler:
    """Drives one on/off callback in lockstep with a shared reference clock.

    Args:
        clock: Millisecond clock the reference timestamp is expressed in.
        sleep: Coroutine used to suspend between transitions (seconds).
    """

    def __init__(
        self,
        clock: Callable[[], int] = monotonic_ms,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._clock = clock
        self._sleep = sleep
        self._task: asyncio.Task | None = None
        self._generation = 0
        self._reference: int | None = None
        self._timing: FlashTiming | None = None
        self.phase: StateChannel[Phase] = StateChannel(Phase.STOPPED)

    # ── Public API ───────────────────────────────────────────────────────

    def start(
        self,
        timing: FlashTiming,
        seat_is_even: bool,
        on_flash_change: FlashCallback,
    ) -> None:
        """Stop any running loop, then start a new one for *timing*.

        Must be called from inside a running event loop.
        """
        if timing.period_ms <= 0:
            raise ValueError(f"frequency {timing.frequency} Hz is too high to schedule")

        self.stop()
        self._generation += 1
        self._timing = timing
        self._task = asyncio.get_running_loop().create_task(
            self._run(self._generation, timing, seat_is_even, on_flash_change),
            name="phase-scheduler",
        )
        logger.info(
            "Flash timing started for %s seat at %dHz (ref=%d)",
            "even" if seat_is_even else "odd",
            timing.frequency,
            timing.reference_timestamp,
        )

    def stop(self) -> None:
        """Stop the loop.  Idempotent and safe to call from any task or callback.

        The caller is responsible for forcing its output off afterwards.
        """
        self._generation += 1
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
        if self.phase.value is not Phase.STOPPED:
            self.phase.publish(Phase.STOPPED)
        if task is not None:
            logger.info("Flash timing stopped")

    def synchronize(self, timestamp: int) -> None:
        """Store the reference used by the *next* start.  A running loop is untouched."""
        self._reference = timestamp
        logger.debug("Synchronized with timestamp: %d", timestamp)

    @property
    def reference_timestamp(self) -> int:
        """The stored reference, or "now" if never synchronized."""
        return self._reference if self._reference is not None else self._clock()

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def timing(self) -> FlashTiming | None:
        """Timing of the current (or most recent) run."""
        return self._timing

    def calculate_phase_offset(self, seat_is_even: bool, timestamp: int) -> int:
        """Position (ms) within a 1Hz, 2000ms cycle; odd seats are shifted half a cycle."""
        elapsed = self._clock() - timestamp
        if seat_is_even:
            return elapsed % 2000
        return (elapsed + 1000) % 2000

    # ── Loop ─────────────────────────────────────────────────────────────

    async def _run(
        self,
        token: int,
        timing: FlashTiming,
        seat_is_even: bool,
        on_flash_change: FlashCallback,
    ) -> None:
        on_duration = timing.on_duration_ms
        off_duration = timing.off_duration_ms
        phase = phase_at(self._clock() - timing.reference_timestamp, timing.period_ms)

        while token == self._generation:
            self.phase.publish(phase)

            lit = phase_lights_seat(phase, seat_is_even)
            should_flash = lit and on_duration > 0

            # A phase listener may have stopped us.
            if token != self._generation:
                break

            try:
                on_flash_change(should_flash)
            except Exception as exc:
                logger.error("Flash callback failed: %s", exc, exc_info=True)

            await self._sleep((on_duration if lit else off_duration) / 1000)
            phase = _flip(phase)


def _flip(phase: Phase) -> Phase:
    if phase is Phase.EVEN_ON_ODD_OFF:
        return Phase.EVEN_OFF_ODD_ON
    return Phase.EVEN_ON_ODD_OFF
