"""Durable local key-value storage for per-device settings.

The SafetyGate persists its usage counters here so daily limits survive
restarts.  Callers treat every failure as non-fatal: LocalStoreError is
raised here and logged-and-swallowed by the consumer.
"""

from __future__ import annotations

import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class LocalStoreError(Exception):
    """Raised when the backing storage cannot be read or written."""


class KeyValueStore(ABC):
    """Minimal durable key-value contract."""

    @abstractmethod
    def load(self) -> dict[str, Any]:
        """Return every stored key.  Raises LocalStoreError."""
        ...

    @abstractmethod
    def save(self, values: dict[str, Any]) -> None:
        """Merge *values* into storage.  Raises LocalStoreError."""
        ...


class InMemoryKeyValueStore(KeyValueStore):
    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = dict(initial or {})

    def load(self) -> dict[str, Any]:
        return dict(self._data)

    def save(self, values: dict[str, Any]) -> None:
        self._data.update(values)


class JsonFileStore(KeyValueStore):
    """Stores a flat JSON object in one file, rewritten atomically on save."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise LocalStoreError(f"cannot read {self._path}: {exc}") from exc
        if not isinstance(data, dict):
            raise LocalStoreError(f"{self._path} does not contain a JSON object")
        return data

    def save(self, values: dict[str, Any]) -> None:
        try:
            current = self.load()
        except LocalStoreError as exc:
            logger.warning("Discarding unreadable store contents: %s", exc)
            current = {}
        current.update(values)

        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(current, indent=2, sort_keys=True), encoding="utf-8")
            os.replace(tmp, self._path)
        except OSError as exc:
            raise LocalStoreError(f"cannot write {self._path}: {exc}") from exc
