"""Device identity — a stable per-install identifier.

The identifier keys this device's participant entry in the shared store.
If no provider can supply one, a demo identifier is synthesized so the show
still runs offline.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path

from stunt_sync.foundation.identifiers import demo_device_id, new_device_id

logger = logging.getLogger(__name__)


class IdentityUnavailableError(Exception):
    """Raised when a provider cannot produce an identifier."""


class DeviceIdentityProvider(ABC):
    @abstractmethod
    def device_id(self) -> str:
        """Return the stable identifier.  Raises IdentityUnavailableError."""
        ...


class StaticIdentity(DeviceIdentityProvider):
    def __init__(self, device_id: str) -> None:
        self._device_id = device_id

    def device_id(self) -> str:
        if not self._device_id:
            raise IdentityUnavailableError("empty device id")
        return self._device_id


class FileIdentity(DeviceIdentityProvider):
    """Generates an identifier on first use and keeps it in a file."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def device_id(self) -> str:
        try:
            if self._path.exists():
                stored = self._path.read_text(encoding="utf-8").strip()
                if stored:
                    return stored
            device_id = new_device_id()
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(device_id, encoding="utf-8")
            return device_id
        except OSError as exc:
            raise IdentityUnavailableError(f"cannot use {self._path}: {exc}") from exc


def resolve_device_id(provider: DeviceIdentityProvider) -> str:
    """Return the provider's identifier, or a demo identifier if it fails."""
    try:
        return provider.device_id()
    except IdentityUnavailableError as exc:
        device_id = demo_device_id()
        logger.warning("Device identity unavailable (%s). Using demo mode: %s", exc, device_id)
        return device_id
