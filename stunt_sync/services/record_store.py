"""Shared record store — client contract and in-memory implementation.

The store is a tree of JSON values addressed by slash-separated paths
(``flashSync``, ``participants/abc123``, ``seatColors/A_5_12``).

Architectural rules:
    1. Listeners always receive the FULL value at their path, never a delta.
    2. A write anywhere at or beneath a listened path notifies that listener;
       so does a write to one of its ancestors.
    3. A new listener immediately receives the current value (None if absent).
    4. Implementations raise RecordStoreError for transport failures.  They
       never decide what a failure means; consumers do.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable

logger = logging.getLogger(__name__)

SnapshotListener = Callable[[Any], None]


class RecordStoreError(Exception):
    """Raised when the store is unreachable or rejects an operation."""


def split_path(path: str) -> list[str]:
    parts = [p for p in path.strip("/").split("/") if p]
    if not parts:
        raise ValueError(f"invalid record path: {path!r}")
    return parts


class RecordStore(ABC):
    """Remote key-value tree with push notification on change."""

    @abstractmethod
    async def get(self, path: str) -> Any:
        """Return the value at *path*, or None if absent."""
        ...

    @abstractmethod
    async def set(self, path: str, value: Any) -> None:
        """Replace the value at *path* (creating parents as needed)."""
        ...

    @abstractmethod
    async def remove(self, path: str) -> None:
        """Delete *path*.  Removing an absent path is a no-op."""
        ...

    @abstractmethod
    async def children(self, path: str) -> dict[str, Any]:
        """Return the child mapping under *path* (empty if absent or a leaf)."""
        ...

    @abstractmethod
    async def listen(self, path: str, listener: SnapshotListener) -> None:
        """Register *listener* for full snapshots of *path*."""
        ...

    @abstractmethod
    async def unlisten(self, path: str, listener: SnapshotListener) -> None:
        """Unregister *listener*.  Unknown listeners are ignored."""
        ...


class InMemoryRecordStore(RecordStore):
    """Process-local store.  Backs tests, offline mode, and the store hub."""

    def __init__(self) -> None:
        self._root: dict[str, Any] = {}
        self._listeners: dict[tuple[str, ...], list[SnapshotListener]] = {}
        self._lock = asyncio.Lock()

    # ── RecordStore API ──────────────────────────────────────────────────

    async def get(self, path: str) -> Any:
        return copy.deepcopy(self._lookup(split_path(path)))

    async def set(self, path: str, value: Any) -> None:
        parts = split_path(path)
        async with self._lock:
            node = self._root
            for part in parts[:-1]:
                child = node.get(part)
                if not isinstance(child, dict):
                    child = {}
                    node[part] = child
                node = child
            if value is None:
                node.pop(parts[-1], None)
            else:
                node[parts[-1]] = copy.deepcopy(value)
        self._notify(tuple(parts))

    async def remove(self, path: str) -> None:
        await self.set(path, None)

    async def children(self, path: str) -> dict[str, Any]:
        value = self._lookup(split_path(path))
        if not isinstance(value, dict):
            return {}
        return copy.deepcopy(value)

    async def listen(self, path: str, listener: SnapshotListener) -> None:
        key = tuple(split_path(path))
        self._listeners.setdefault(key, []).append(listener)
        self._deliver(listener, self._lookup(list(key)))

    async def unlisten(self, path: str, listener: SnapshotListener) -> None:
        key = tuple(split_path(path))
        listeners = self._listeners.get(key, [])
        if listener in listeners:
            listeners.remove(listener)
        if not listeners:
            self._listeners.pop(key, None)

    # ── Introspection ────────────────────────────────────────────────────

    @property
    def listener_count(self) -> int:
        return sum(len(v) for v in self._listeners.values())

    # ── Internals ────────────────────────────────────────────────────────

    def _lookup(self, parts: list[str]) -> Any:
        node: Any = self._root
        for part in parts:
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return node

    def _notify(self, changed: tuple[str, ...]) -> None:
        for key, listeners in list(self._listeners.items()):
            related = key[: len(changed)] == changed or changed[: len(key)] == key
            if not related:
                continue
            value = self._lookup(list(key))
            for listener in list(listeners):
                self._deliver(listener, value)

    @staticmethod
    def _deliver(listener: SnapshotListener, value: Any) -> None:
        try:
            listener(copy.deepcopy(value))
        except Exception as exc:
            logger.error("Record listener failed: %s", exc, exc_info=True)
