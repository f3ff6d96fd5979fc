"""WebSocket client for a remote record store hub.

Talks to the ``/ws/store`` endpoint served by another stunt-sync process.

Protocol (JSON text frames):
    request   {"id": 7, "op": "get" | "set" | "remove" | "children"
                              | "listen" | "unlisten",
               "path": "flashSync", "value": ...}
    response  {"id": 7, "ok": true, "value": ...}
              {"id": 7, "ok": false, "error": "reason"}
    push      {"op": "snapshot", "path": "flashSync", "value": ...}

Every request is bounded by ``timeout``.  Timeouts, closed connections and
hub-side errors all surface as RecordStoreError.  When the connection drops,
every listener receives a final ``None`` snapshot so consumers fall back to
their disconnected state.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from typing import Any, Awaitable, Callable

import websockets
from websockets.exceptions import ConnectionClosed

from stunt_sync.services.record_store import (
    RecordStore,
    RecordStoreError,
    SnapshotListener,
    split_path,
)

logger = logging.getLogger(__name__)


class WebSocketRecordStore(RecordStore):
    """RecordStore backed by a hub connection.

    Usage:
        store = WebSocketRecordStore("ws://hub:8000/ws/store")
        await store.connect()
        await store.listen("flashSync", on_snapshot)
        ...
        await store.close()
    """

    def __init__(
        self,
        url: str,
        timeout: float = 5.0,
        connector: Callable[..., Awaitable[Any]] = websockets.connect,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._connector = connector
        self._ws: Any = None
        self._reader: asyncio.Task | None = None
        self._ids = itertools.count(1)
        self._pending: dict[int, asyncio.Future] = {}
        self._listeners: dict[str, list[SnapshotListener]] = {}

    # ── Connection ───────────────────────────────────────────────────────

    async def connect(self) -> None:
        try:
            self._ws = await self._connector(self._url, open_timeout=self._timeout)
        except (OSError, asyncio.TimeoutError, websockets.WebSocketException) as exc:
            raise RecordStoreError(f"cannot connect to {self._url}: {exc}") from exc
        self._reader = asyncio.get_running_loop().create_task(self._read_loop(), name="record-store-reader")
        logger.info("Connected to record store hub %s", self._url)

    async def close(self) -> None:
        reader, self._reader = self._reader, None
        ws, self._ws = self._ws, None
        if ws is not None:
            await ws.close()
        if reader is not None:
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass

    @property
    def connected(self) -> bool:
        return self._ws is not None

    # ── RecordStore API ──────────────────────────────────────────────────

    async def get(self, path: str) -> Any:
        return await self._request("get", path)

    async def set(self, path: str, value: Any) -> None:
        await self._request("set", path, value)

    async def remove(self, path: str) -> None:
        await self._request("remove", path)

    async def children(self, path: str) -> dict[str, Any]:
        value = await self._request("children", path)
        return value if isinstance(value, dict) else {}

    async def listen(self, path: str, listener: SnapshotListener) -> None:
        key = "/".join(split_path(path))
        listeners = self._listeners.setdefault(key, [])
        first = not listeners
        listeners.append(listener)
        try:
            if first:
                await self._request("listen", key)
            else:
                # The hub only pushes on change; give late joiners the current value.
                self._deliver(listener, await self._request("get", key))
        except RecordStoreError:
            listeners.remove(listener)
            if not listeners:
                self._listeners.pop(key, None)
            raise

    async def unlisten(self, path: str, listener: SnapshotListener) -> None:
        key = "/".join(split_path(path))
        listeners = self._listeners.get(key, [])
        if listener in listeners:
            listeners.remove(listener)
        if not listeners and key in self._listeners:
            del self._listeners[key]
            if self._ws is not None:
                await self._request("unlisten", key)

    # ── Internals ────────────────────────────────────────────────────────

    async def _request(self, op: str, path: str, value: Any = None) -> Any:
        if self._ws is None:
            raise RecordStoreError("record store is not connected")

        request_id = next(self._ids)
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        message = {"id": request_id, "op": op, "path": path}
        if value is not None:
            message["value"] = value

        try:
            await asyncio.wait_for(self._ws.send(json.dumps(message)), self._timeout)
            return await asyncio.wait_for(future, self._timeout)
        except asyncio.TimeoutError as exc:
            raise RecordStoreError(f"{op} {path} timed out after {self._timeout}s") from exc
        except ConnectionClosed as exc:
            raise RecordStoreError(f"connection closed during {op} {path}") from exc
        finally:
            self._pending.pop(request_id, None)

    async def _read_loop(self) -> None:
        try:
            async for raw in self._ws:
                try:
                    message = json.loads(raw)
                except ValueError:
                    logger.warning("Ignoring malformed hub frame: %.80s", raw)
                    continue
                self._dispatch(message)
        except ConnectionClosed as exc:
            logger.warning("Record store connection closed: %s", exc)
        finally:
            self._ws = None
            self._fail_pending(RecordStoreError("record store connection lost"))
            for listeners in list(self._listeners.values()):
                for listener in list(listeners):
                    self._deliver(listener, None)

    def _dispatch(self, message: dict[str, Any]) -> None:
        if message.get("op") == "snapshot":
            path = message.get("path", "")
            for listener in list(self._listeners.get(path, [])):
                self._deliver(listener, message.get("value"))
            return

        future = self._pending.get(message.get("id"))
        if future is None or future.done():
            return
        if message.get("ok"):
            future.set_result(message.get("value"))
        else:
            future.set_exception(RecordStoreError(message.get("error", "request failed")))

    def _fail_pending(self, exc: RecordStoreError) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(exc)
        self._pending.clear()

    @staticmethod
    def _deliver(listener: SnapshotListener, value: Any) -> None:
        try:
            listener(value)
        except Exception as exc:
            logger.error("Record listener failed: %s", exc, exc_info=True)
