"""SafetyGate — the flash exposure interlock.

Two independent timers:
    - continuous: how long the current session has been lit.  A background
      tick force-stops the session once it exceeds the profile's limit.
      This is a hard cutoff, not advice.
    - cumulative: total lit time today, persisted across restarts and reset
      once more than 24h have passed since the last reset.

Profiles:
    photosensitive  max 3 Hz,  max 30 s continuous
    standard        max 10 Hz, max 300 s continuous

The profile's continuous limit doubles as the daily budget:
``can_flash = cumulative_today_ms < max_continuous_duration_ms``.

Failure policy:
    Storage errors are logged and swallowed.  The gate only ever denies
    through its duration and frequency checks; it never raises to callers.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from stunt_sync.domain.safety import (
    DAILY_LIMIT_REASON,
    PHOTOSENSITIVE_PROFILE,
    STANDARD_PROFILE,
    SafetyProfile,
    SafetyState,
)
from stunt_sync.foundation.channel import StateChannel
from stunt_sync.foundation.clock import wall_ms
from stunt_sync.services.local_store import KeyValueStore, LocalStoreError

logger = logging.getLogger(__name__)

PHOTOSENSITIVE_MODE_KEY = "photosensitive_mode"
SAFETY_WARNING_SHOWN_KEY = "safety_warning_shown"
TOTAL_FLASH_TIME_KEY = "total_flash_time"
LAST_RESET_TIME_KEY = "last_reset_time"

DAY_MS = 24 * 60 * 60 * 1000

CutoffListener = Callable[[str], None]


class SafetyGate:
    """Authorizes flash sessions and enforces exposure limits.

    Args:
        storage: Durable store for usage counters and mode flags.
        clock: Wall-clock milliseconds; persisted timestamps must survive restarts.
        check_interval: Seconds between background ticks.
        sleep: Coroutine used by the ticker to wait between checks.
    """

    def __init__(
        self,
        storage: KeyValueStore,
        clock: Callable[[], int] = wall_ms,
        check_interval: float = 1.0,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ) -> None:
        self._storage = storage
        self._clock = clock
        self._check_interval = check_interval
        self._sleep = sleep

        self._photosensitive = False
        self._warning_shown = False
        self._cumulative_ms = 0
        self._session_start: int | None = None
        self._last_cutoff_reason: str | None = None
        self._cutoff_listeners: list[CutoffListener] = []
        self._ticker: asyncio.Task | None = None

        self.state: StateChannel[SafetyState] = StateChannel(SafetyState())
        self.session_duration: StateChannel[int] = StateChannel(0)

        self._load()

    # ── Sessions ─────────────────────────────────────────────────────────

    def start_session(self) -> bool:
        """Begin a flash session.  Returns False, changing nothing, if blocked."""
        current = self.state.value
        if not current.can_flash:
            logger.warning("Flash session blocked: %s", current.block_reason)
            return False
        if self._session_start is not None:
            return True

        self._session_start = self._clock()
        self._last_cutoff_reason = None
        self._publish()
        logger.debug("Flash session started")
        return True

    def stop_session(self) -> None:
        """End the active session and bank its duration.  No-op if inactive."""
        if self._session_start is None:
            return

        session_ms = max(0, self._clock() - self._session_start)
        self._session_start = None
        self._cumulative_ms += session_ms
        self._persist({TOTAL_FLASH_TIME_KEY: self._cumulative_ms})
        self.session_duration.publish(0)
        self._publish()
        logger.info(
            "Flash session stopped. Session duration: %dms, Total today: %dms",
            session_ms,
            self._cumulative_ms,
        )

    @property
    def session_active(self) -> bool:
        return self._session_start is not None

    # ── Periodic check ───────────────────────────────────────────────────

    def check(self) -> bool:
        """Run one safety tick.  Returns True if the session was force-stopped."""
        if self._session_start is None:
            return False

        elapsed = self._clock() - self._session_start
        limit = self._profile.max_continuous_duration_ms
        if elapsed <= limit:
            self.session_duration.publish(elapsed)
            return False

        reason = f"Continuous flash limit of {limit // 1000}s reached"
        logger.warning("Continuous flash duration exceeded safe limit (%dms > %dms)", elapsed, limit)
        self.stop_session()
        self._last_cutoff_reason = reason
        for listener in list(self._cutoff_listeners):
            try:
                listener(reason)
            except Exception as exc:
                logger.error("Safety cutoff listener failed: %s", exc, exc_info=True)
        return True

    def add_cutoff_listener(self, listener: CutoffListener) -> Callable[[], None]:
        """Call *listener(reason)* whenever the tick force-stops a session."""
        self._cutoff_listeners.append(listener)

        def remove() -> None:
            if listener in self._cutoff_listeners:
                self._cutoff_listeners.remove(listener)

        return remove

    @property
    def last_cutoff_reason(self) -> str | None:
        return self._last_cutoff_reason

    def start(self) -> None:
        """Start the background ticker on the running event loop."""
        if self._ticker is not None and not self._ticker.done():
            return
        self._ticker = asyncio.get_running_loop().create_task(self._tick_forever(), name="safety-gate")

    async def close(self) -> None:
        """Stop the ticker and bank any active session."""
        ticker, self._ticker = self._ticker, None
        if ticker is not None:
            ticker.cancel()
            try:
                await ticker
            except asyncio.CancelledError:
                pass
        self.stop_session()

    async def _tick_forever(self) -> None:
        while True:
            await self._sleep(self._check_interval)
            self.check()

    # ── Modes & limits ───────────────────────────────────────────────────

    def set_photosensitive_mode(self, enabled: bool) -> None:
        self._photosensitive = enabled
        self._persist({PHOTOSENSITIVE_MODE_KEY: enabled})
        self._publish()
        logger.info("Photosensitive mode %s", "enabled" if enabled else "disabled")

    def mark_safety_warning_shown(self) -> None:
        self._warning_shown = True
        self._persist({SAFETY_WARNING_SHOWN_KEY: True})
        self._publish()

    def is_frequency_safe(self, frequency: int) -> bool:
        return frequency <= self.state.value.max_frequency_hz

    def remaining_ms(self) -> int:
        return max(0, self.state.value.max_daily_duration_ms - self._cumulative_ms)

    @property
    def cumulative_today_ms(self) -> int:
        return self._cumulative_ms

    def reset_daily_limit(self) -> None:
        self._cumulative_ms = 0
        self._persist({TOTAL_FLASH_TIME_KEY: 0, LAST_RESET_TIME_KEY: self._clock()})
        self._publish()
        logger.info("Daily flash limit reset")

    # ── Internals ────────────────────────────────────────────────────────

    @property
    def _profile(self) -> SafetyProfile:
        return PHOTOSENSITIVE_PROFILE if self._photosensitive else STANDARD_PROFILE

    def _load(self) -> None:
        try:
            stored = self._storage.load()
        except LocalStoreError as exc:
            logger.error("Failed to load safety settings, using defaults: %s", exc)
            stored = {}

        now = self._clock()
        self._photosensitive = bool(stored.get(PHOTOSENSITIVE_MODE_KEY, False))
        self._warning_shown = bool(stored.get(SAFETY_WARNING_SHOWN_KEY, False))
        last_reset = _as_int(stored.get(LAST_RESET_TIME_KEY), default=None)

        if last_reset is None:
            self._cumulative_ms = _as_int(stored.get(TOTAL_FLASH_TIME_KEY), default=0)
            self._persist({LAST_RESET_TIME_KEY: now})
        elif now - last_reset > DAY_MS:
            self._cumulative_ms = 0
            self._persist({TOTAL_FLASH_TIME_KEY: 0, LAST_RESET_TIME_KEY: now})
            logger.info("Daily flash time reset (last reset %dms ago)", now - last_reset)
        else:
            self._cumulative_ms = _as_int(stored.get(TOTAL_FLASH_TIME_KEY), default=0)

        self._publish()

    def _publish(self) -> None:
        profile = self._profile
        can_flash = self._cumulative_ms < profile.max_continuous_duration_ms
        self.state.publish(SafetyState(
            photosensitive_mode_enabled=self._photosensitive,
            max_continuous_duration_ms=profile.max_continuous_duration_ms,
            max_daily_duration_ms=profile.max_continuous_duration_ms,
            max_frequency_hz=profile.max_frequency_hz,
            cumulative_today_ms=self._cumulative_ms,
            safety_warning_shown=self._warning_shown,
            session_active=self._session_start is not None,
            can_flash=can_flash,
            block_reason=None if can_flash else DAILY_LIMIT_REASON,
        ))

    def _persist(self, values: dict[str, Any]) -> None:
        try:
            self._storage.save(values)
        except LocalStoreError as exc:
            logger.error("Failed to persist safety state: %s", exc)


def _as_int(value: Any, default: int | None) -> int | None:
    if value is None:
        return default
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return default
