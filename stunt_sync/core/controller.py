"""ShowController — wires seat, pattern, safety, shared clock and output.

One controller per device, constructed explicitly and passed to whoever
needs it (the API layer, tests).  It owns the single-timeline rule: at most
one scheduler loop runs at a time, and every stop path ends with the
outputs forced off.

Clock selection:
    - An active shared record → the monotonic scheduler anchored to the
      record's reference timestamp.
    - No record, or an inactive one → the wall-clock scheduler anchored to
      the Unix epoch.  Devices with synchronized wall clocks still line up;
      this is the degraded local-only mode.

Re-anchoring:
    A running loop is never adjusted in place.  When the shared record's
    reference (or its availability) changes, the loop is stopped and
    restarted on the new anchor.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, time
from typing import Any, Callable

from pydantic import BaseModel

from stunt_sync.core.pattern_calculator import PatternCalculator
from stunt_sync.core.safety_gate import SafetyGate
from stunt_sync.core.scheduler import PhaseScheduler
from stunt_sync.domain.enums import OutputMode, Phase
from stunt_sync.domain.errors import (
    InputError,
    InvalidFrequencyError,
    ShowNotReadyError,
    UnsafeFrequencyError,
)
from stunt_sync.domain.pattern import FlashPattern, FlashTiming
from stunt_sync.domain.safety import SafetyState
from stunt_sync.domain.seat import EventDetails, Seat, parse_event_details, parse_seat
from stunt_sync.domain.sync import SyncRecord, SyncState, seat_color_path
from stunt_sync.foundation.channel import StateChannel
from stunt_sync.foundation.clock import local_now, wall_ms
from stunt_sync.hardware.actuator import Actuator, ColorActuator
from stunt_sync.services.clock_sync import ClockSync
from stunt_sync.services.record_store import RecordStore, RecordStoreError
from stunt_sync.services.remote_config import RemoteConfig

logger = logging.getLogger(__name__)

FLASH_DISABLED_REASON = "Flash mode is disabled for this event"
FLASH_UNAVAILABLE_REASON = "No flash available on this device"
EMERGENCY_STOP_REASON = "Flash sequence stopped"


class ShowStatus(BaseModel):
    """Everything a display needs to render the device's current state."""

    seat: Seat | None = None
    event: EventDetails | None = None
    pattern: FlashPattern | None = None
    description: str | None = None
    frequency: int
    color: str | None = None
    mode: OutputMode
    running: bool
    waiting_for_start: bool = False
    seconds_until_start: float = 0.0
    phase: Phase
    local_clock_fallback: bool = False
    flash_available: bool
    output_on: bool
    safety: SafetyState
    sync: SyncState
    participant_count: int = 0
    block_reason: str | None = None

    model_config = {"frozen": True}


def parse_start_time(value: str | None) -> time | None:
    """Parse an "HH:MM:SS" wall-clock start time."""
    if not value:
        return None
    try:
        return datetime.strptime(value, "%H:%M:%S").time()
    except ValueError as exc:
        raise InputError(f"Invalid start time {value!r}, expected HH:MM:SS") from exc


class ShowController:
    """Device-side orchestration of one card-stunt show.

    Args:
        safety: The flash safety interlock.
        clock_sync: Shared reference clock client.
        torch: Flash output.
        screen: Screen color output.
        store: Shared record store (seat color overrides).
        config: Remote config values.
        scheduler: Scheduler on the shared (monotonic) clock.
        local_scheduler: Scheduler on the wall clock, for the fallback.
        start_time: Optional "HH:MM:SS" before which the show only counts down.
        now: Local wall time source for the start-time countdown.
        sleep: Coroutine used to wait for the start time.
    """

    def __init__(
        self,
        *,
        safety: SafetyGate,
        clock_sync: ClockSync,
        torch: Actuator,
        screen: ColorActuator,
        store: RecordStore,
        config: RemoteConfig,
        scheduler: PhaseScheduler | None = None,
        local_scheduler: PhaseScheduler | None = None,
        start_time: str | None = None,
        now: Callable[[], datetime] = local_now,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ) -> None:
        self._safety = safety
        self._clock_sync = clock_sync
        self._torch = torch
        self._screen = screen
        self._store = store
        self._config = config
        self._scheduler = scheduler or PhaseScheduler()
        self._local_scheduler = local_scheduler or PhaseScheduler(clock=wall_ms)
        self._start_time = parse_start_time(start_time)
        self._now = now
        self._sleep = sleep

        self._seat: Seat | None = None
        self._event: EventDetails | None = None
        self._pattern: FlashPattern | None = None
        self._frequency = config.values.default_flash_frequency
        self._mode = OutputMode.FLASH
        self._running = False
        self._active: PhaseScheduler | None = None
        self._pending_start: asyncio.Task | None = None
        self._block_reason: str | None = None

        initial = self.status()
        self.status_updates: StateChannel[ShowStatus] = StateChannel(initial)

        safety.add_cutoff_listener(self._on_safety_cutoff)
        safety.state.add_listener(self._on_safety_state)
        clock_sync.record.add_listener(self._on_sync_record)
        for channel in (
            self._scheduler.phase,
            self._local_scheduler.phase,
            safety.state,
            clock_sync.sync_state,
            torch.output,
            screen.output,
        ):
            channel.add_listener(self._republish)

    # ── Seating ──────────────────────────────────────────────────────────

    async def process_seating(self, event_text: str, seat_text: str) -> ShowStatus:
        """Parse event and seat text, derive the pattern and the seat color.

        Raises:
            InvalidSeatError: If the seat text cannot be parsed.
        """
        seat = parse_seat(seat_text)
        calculator = self._calculator()
        frequency = self._frequency
        max_frequency = self._config.values.max_flash_frequency
        if frequency > max_frequency:
            logger.warning(
                "Frequency %dHz is above the event maximum of %dHz, using %dHz",
                frequency,
                max_frequency,
                max_frequency,
            )
            frequency = max_frequency
        pattern = calculator.calculate_for_seat(seat, frequency)

        override = await self._seat_color_override(seat)
        self._seat = seat
        self._event = parse_event_details(event_text)
        self._pattern = pattern
        self._frequency = frequency
        self._screen.color = calculator.resolve_color(seat.is_even, override)
        logger.info("Seat %s assigned: %s", seat.key, calculator.describe(pattern))

        if self._running:
            self._launch()
        return self._republish()

    def update_frequency(self, frequency: int) -> ShowStatus:
        """Change the flash frequency; a running show restarts on the new timing.

        Raises:
            InvalidFrequencyError: Outside 1–10 Hz or above the configured max.
            UnsafeFrequencyError: Above the active safety profile's limit.
        """
        calculator = self._calculator()
        calculator.validate_frequency(frequency)
        max_frequency = self._config.values.max_flash_frequency
        if frequency > max_frequency:
            raise InvalidFrequencyError(
                f"Invalid frequency {frequency}. Event maximum is {max_frequency} Hz"
            )
        self._check_frequency_safe(frequency)

        self._frequency = frequency
        if self._seat is not None:
            self._pattern = calculator.calculate_for_seat(self._seat, frequency)
        if self._running:
            self._launch()
        return self._republish()

    async def update_seat_color(self, color: str) -> ShowStatus:
        """Override this seat's color and publish it to the shared store.

        Raises:
            InvalidColorError: If *color* is not a hex color.
            ShowNotReadyError: If no seat is assigned.
        """
        color = self._calculator().validate_color(color)
        if self._seat is None:
            raise ShowNotReadyError("Assign a seat before changing its color")
        try:
            await self._store.set(seat_color_path(self._seat.key), color)
        except RecordStoreError as exc:
            logger.warning("Failed to publish seat color for %s: %s", self._seat.key, exc)
        self._screen.color = color
        return self._republish()

    def set_mode(self, mode: OutputMode) -> ShowStatus:
        """Switch between torch flashing and screen color."""
        if mode is self._mode:
            return self.status()
        if self._running:
            self.stop_show()
        self._mode = mode
        logger.info("Output mode set to %s", mode.value)
        return self._republish()

    # ── Start / stop ─────────────────────────────────────────────────────

    async def start_show(self, event_id: str | None = None) -> bool:
        """Start (or schedule) the show.  Returns False with a block reason if refused.

        Raises:
            ShowNotReadyError: If no seat has been assigned.
        """
        if self._pattern is None:
            raise ShowNotReadyError("Assign a seat before starting the show")

        self._block_reason = None
        reason = self._start_blocked_by()
        if reason is not None:
            return self._refuse(reason)

        if event_id:
            await self._clock_sync.join(event_id)

        delay = self.seconds_until_start()
        if delay > 0:
            self._cancel_pending_start()
            self._pending_start = asyncio.get_running_loop().create_task(
                self._start_after(delay), name="show-countdown"
            )
            logger.info("Show scheduled to start in %.1fs", delay)
            self._republish()
            return True

        return self._begin()

    def stop_show(self, reason: str | None = None) -> None:
        """Stop everything and force the outputs off.  Idempotent.

        Safe to call from the safety ticker, a scheduler callback, or an
        API handler; concurrent requests coalesce.
        """
        was_running, self._running = self._running, False
        self._cancel_pending_start()
        self._scheduler.stop()
        self._local_scheduler.stop()
        self._torch.turn_off()
        self._screen.turn_off()
        self._safety.stop_session()
        if was_running:
            logger.info("Show stopped%s", f": {reason}" if reason else "")
        self._active = None
        self._block_reason = reason
        self._republish()

    def emergency_stop(self) -> None:
        self.stop_show(EMERGENCY_STOP_REASON)

    async def leave_event(self) -> None:
        self.stop_show()
        await self._clock_sync.leave()

    async def close(self) -> None:
        self.stop_show()

    def seconds_until_start(self) -> float:
        """Seconds until the configured start time today; 0 once it has passed."""
        if self._start_time is None:
            return 0.0
        now = self._now()
        start = datetime.combine(now.date(), self._start_time)
        return max(0.0, (start - now).total_seconds())

    # ── Status ───────────────────────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def seat(self) -> Seat | None:
        return self._seat

    @property
    def pattern(self) -> FlashPattern | None:
        return self._pattern

    def status(self) -> ShowStatus:
        active = self._active
        output = self._torch if self._mode is OutputMode.FLASH else self._screen
        pending = self._pending_start is not None and not self._pending_start.done()
        return ShowStatus(
            seat=self._seat,
            event=self._event,
            pattern=self._pattern,
            description=PatternCalculator.describe(self._pattern) if self._pattern else None,
            frequency=self._frequency,
            color=self._screen.color if self._seat is not None else None,
            mode=self._mode,
            running=self._running,
            waiting_for_start=pending,
            seconds_until_start=self.seconds_until_start() if pending else 0.0,
            phase=active.phase.value if active is not None else Phase.STOPPED,
            local_clock_fallback=active is self._local_scheduler and active is not None,
            flash_available=self._torch.is_available,
            output_on=output.is_on,
            safety=self._safety.state.value,
            sync=self._clock_sync.sync_state.value,
            participant_count=self._clock_sync.participant_count,
            block_reason=self._block_reason,
        )

    # ── Internals ────────────────────────────────────────────────────────

    def _calculator(self) -> PatternCalculator:
        values = self._config.values
        return PatternCalculator(
            duty_cycle=values.flash_duty_cycle,
            even_color=values.default_blue_color,
            odd_color=values.default_red_color,
        )

    def _check_frequency_safe(self, frequency: int) -> None:
        if not self._config.values.flash_safety_enabled:
            return
        if not self._safety.is_frequency_safe(frequency):
            limit = self._safety.state.value.max_frequency_hz
            raise UnsafeFrequencyError(
                f"Frequency {frequency}Hz exceeds the safe limit of {limit}Hz"
            )

    def _start_blocked_by(self) -> str | None:
        """Reason the assigned pattern may not start in the current mode, if any."""
        if self._mode is not OutputMode.FLASH or self._pattern is None:
            return None
        if not self._config.values.flash_enabled:
            return FLASH_DISABLED_REASON
        if not self._torch.is_available:
            return FLASH_UNAVAILABLE_REASON
        try:
            self._check_frequency_safe(self._pattern.frequency)
        except UnsafeFrequencyError as exc:
            return str(exc)
        return None

    def _refuse(self, reason: str) -> bool:
        logger.warning("Show start refused: %s", reason)
        self._block_reason = reason
        self._republish()
        return False

    def _begin(self) -> bool:
        if self._mode is OutputMode.FLASH and not self._safety.start_session():
            return self._refuse(self._safety.state.value.block_reason or "Flash blocked by safety limits")
        self._launch()
        return True

    async def _start_after(self, delay: float) -> None:
        await self._sleep(delay)
        self._pending_start = None
        # Config, mode or safety profile may have changed during the countdown.
        reason = self._start_blocked_by()
        if reason is not None:
            self._refuse(reason)
            return
        self._begin()

    def _cancel_pending_start(self) -> None:
        pending, self._pending_start = self._pending_start, None
        if pending is not None and not pending.done() and pending is not asyncio.current_task():
            pending.cancel()

    def _launch(self) -> None:
        """(Re)start the single scheduler loop on the best available anchor."""
        if self._pattern is None:
            raise ShowNotReadyError("Assign a seat before starting the show")
        self._scheduler.stop()
        self._local_scheduler.stop()

        record = self._clock_sync.current_record
        if record is not None and record.active:
            scheduler = self._scheduler
            scheduler.synchronize(record.reference_timestamp)
        else:
            scheduler = self._local_scheduler
            scheduler.synchronize(0)
            logger.warning("Shared clock unavailable, blinking on the local clock")

        timing = FlashTiming(
            frequency=self._pattern.frequency,
            duty_cycle=self._pattern.duty_cycle,
            reference_timestamp=scheduler.reference_timestamp,
        )
        output = self._torch if self._mode is OutputMode.FLASH else self._screen
        self._active = scheduler
        self._running = True
        scheduler.start(timing, self._pattern.is_even_seat, output.apply)
        self._republish()

    def _on_safety_cutoff(self, reason: str) -> None:
        self.stop_show(reason)

    def _on_safety_state(self, state: SafetyState) -> None:
        if not self._running or self._mode is not OutputMode.FLASH or self._pattern is None:
            return
        try:
            self._check_frequency_safe(self._pattern.frequency)
        except UnsafeFrequencyError as exc:
            logger.warning("Safety limits tightened during the show: %s", exc)
            self.stop_show(str(exc))

    def _on_sync_record(self, record: SyncRecord | None) -> None:
        if not self._running or self._active is None:
            return
        use_shared = record is not None and record.active
        on_shared = self._active is self._scheduler
        if use_shared != on_shared:
            logger.info("Shared clock %s, re-anchoring", "available" if use_shared else "lost")
            self._launch()
            return
        timing = self._scheduler.timing
        if use_shared and timing is not None and timing.reference_timestamp != record.reference_timestamp:
            logger.info("Reference timestamp moved to %d, re-anchoring", record.reference_timestamp)
            self._launch()

    async def _seat_color_override(self, seat: Seat) -> str | None:
        try:
            value = await self._store.get(seat_color_path(seat.key))
        except RecordStoreError as exc:
            logger.warning("Seat color lookup failed for %s: %s", seat.key, exc)
            return None
        return value if isinstance(value, str) else None

    def _republish(self, *_: Any) -> ShowStatus:
        status = self.status()
        self.status_updates.publish(status)
        return status
