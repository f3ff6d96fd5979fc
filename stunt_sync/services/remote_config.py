"""Remote config — pulled, cached flash parameters.

Values start from local defaults (Settings) and are replaced by whatever a
ConfigSource returns.  Fetches are rate-limited to one per
``min_fetch_interval`` seconds; a failed fetch keeps the cached values.
Unknown keys are ignored and invalid values are rejected per key, so one bad
entry never discards the rest of a fetch.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable

from pydantic import BaseModel, Field, ValidationError

from stunt_sync.config import Settings
from stunt_sync.foundation.clock import monotonic_ms
from stunt_sync.services.record_store import RecordStore, RecordStoreError

logger = logging.getLogger(__name__)

CONFIG_PATH = "config"


class FlashConfig(BaseModel):
    """Remote-tunable flash parameters."""

    flash_enabled: bool = True
    default_flash_frequency: int = Field(2, ge=1, le=10)
    max_flash_frequency: int = Field(10, ge=1, le=10)
    flash_duty_cycle: float = Field(0.5, ge=0.1, le=0.9)
    flash_safety_enabled: bool = True
    default_blue_color: str = Field("#0000FF", pattern=r"^#(?:[0-9A-Fa-f]{6}|[0-9A-Fa-f]{8})$")
    default_red_color: str = Field("#FF0000", pattern=r"^#(?:[0-9A-Fa-f]{6}|[0-9A-Fa-f]{8})$")

    model_config = {"frozen": True}

    @classmethod
    def from_settings(cls, settings: Settings) -> FlashConfig:
        return cls(
            flash_enabled=settings.flash_enabled,
            default_flash_frequency=settings.default_flash_frequency,
            max_flash_frequency=settings.max_flash_frequency,
            flash_duty_cycle=settings.flash_duty_cycle,
            flash_safety_enabled=settings.flash_safety_enabled,
            default_blue_color=settings.default_blue_color,
            default_red_color=settings.default_red_color,
        )


class ConfigFetchError(Exception):
    """Raised by a ConfigSource that cannot produce values."""


class ConfigSource(ABC):
    @abstractmethod
    async def fetch(self) -> dict[str, Any]:
        """Return the raw key/value mapping.  Raises ConfigFetchError."""
        ...


class StaticConfigSource(ConfigSource):
    """Fixed values, for offline operation and tests."""

    def __init__(self, values: dict[str, Any] | None = None) -> None:
        self.values = dict(values or {})

    async def fetch(self) -> dict[str, Any]:
        return dict(self.values)


class RecordStoreConfigSource(ConfigSource):
    """Reads the ``config`` node of the shared record store."""

    def __init__(self, store: RecordStore, path: str = CONFIG_PATH) -> None:
        self._store = store
        self._path = path

    async def fetch(self) -> dict[str, Any]:
        try:
            return await self._store.children(self._path)
        except RecordStoreError as exc:
            raise ConfigFetchError(str(exc)) from exc


class RemoteConfig:
    """Cached view over a ConfigSource.

    Args:
        source: Where values come from.
        defaults: Values used until the first successful fetch.
        min_fetch_interval: Seconds between real fetches.
        clock: Monotonic milliseconds, used for rate limiting.
    """

    def __init__(
        self,
        source: ConfigSource,
        defaults: FlashConfig | None = None,
        min_fetch_interval: float = 3600,
        clock: Callable[[], int] = monotonic_ms,
    ) -> None:
        self._source = source
        self._values = defaults or FlashConfig()
        self._min_interval_ms = int(min_fetch_interval * 1000)
        self._clock = clock
        self._last_fetch: int | None = None
        self._refresher: asyncio.Task | None = None

    @property
    def values(self) -> FlashConfig:
        return self._values

    def start(self) -> None:
        """Refresh now, then once per fetch interval, on the running loop."""
        if self._refresher is not None and not self._refresher.done():
            return
        self._refresher = asyncio.get_running_loop().create_task(self._refresh_forever(), name="remote-config")

    async def close(self) -> None:
        refresher, self._refresher = self._refresher, None
        if refresher is not None:
            refresher.cancel()
            try:
                await refresher
            except asyncio.CancelledError:
                pass

    async def _refresh_forever(self) -> None:
        while True:
            await self.refresh()
            await asyncio.sleep(max(self._min_interval_ms / 1000, 1.0))

    async def refresh(self, force: bool = False) -> bool:
        """Fetch and activate new values.

        Returns True if new values were activated, False if the fetch was
        skipped (rate limit) or failed.
        """
        now = self._clock()
        if not force and self._last_fetch is not None and now - self._last_fetch < self._min_interval_ms:
            return False
        self._last_fetch = now

        try:
            raw = await self._source.fetch()
        except ConfigFetchError as exc:
            logger.warning("Remote config fetch failed, keeping cached values: %s", exc)
            return False

        self._values = self._merge(raw)
        logger.info("Remote config activated: %s", self._values.model_dump())
        return True

    # ── Internals ────────────────────────────────────────────────────────

    def _merge(self, raw: dict[str, Any]) -> FlashConfig:
        merged = self._values
        for key, value in raw.items():
            if key not in FlashConfig.model_fields:
                continue
            try:
                merged = FlashConfig.model_validate({**merged.model_dump(), key: value})
            except ValidationError:
                logger.warning("Ignoring invalid remote config value %s=%r", key, value)
        return merged
