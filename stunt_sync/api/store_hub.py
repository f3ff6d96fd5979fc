"""WebSocket endpoint: serves a RecordStore to other devices.

Path: /ws/store

Any stunt-sync process can act as the shared store for an event.  Clients
(see ``services.ws_record_store``) send JSON requests and receive replies
plus ``snapshot`` pushes for the paths they listen to.

All frames for one connection leave through a single outbox queue, so a
reply and a snapshot push are never interleaved mid-send.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Literal

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ValidationError

from stunt_sync.services.record_store import RecordStore, RecordStoreError

logger = logging.getLogger(__name__)


class StoreRequest(BaseModel):
    id: int
    op: Literal["get", "set", "remove", "children", "listen", "unlisten"]
    path: str
    value: Any = None


def create_store_router(store: RecordStore) -> APIRouter:
    """Factory that wires the hub endpoint to a concrete RecordStore."""
    router = APIRouter()

    @router.websocket("/ws/store")
    async def store_hub(websocket: WebSocket) -> None:
        await websocket.accept()
        logger.info("Store client connected")

        outbox: asyncio.Queue = asyncio.Queue()
        listeners: dict[str, Callable[[Any], None]] = {}
        sender = asyncio.create_task(_pump(websocket, outbox))

        try:
            while True:
                raw = await websocket.receive_text()
                outbox.put_nowait(await _handle(store, raw, listeners, outbox))
        except WebSocketDisconnect:
            logger.info("Store client disconnected")
        finally:
            for path, listener in listeners.items():
                await store.unlisten(path, listener)
            sender.cancel()

    return router


async def _handle(
    store: RecordStore,
    raw: str,
    listeners: dict[str, Callable[[Any], None]],
    outbox: asyncio.Queue,
) -> dict[str, Any]:
    try:
        payload = json.loads(raw)
    except ValueError as exc:
        return {"id": None, "ok": False, "error": f"malformed request: {exc}"}
    try:
        request = StoreRequest.model_validate(payload)
    except ValidationError as exc:
        request_id = payload.get("id") if isinstance(payload, dict) else None
        return {"id": request_id, "ok": False, "error": f"malformed request: {exc.error_count()} invalid field(s)"}

    try:
        value = await _apply(store, request, listeners, outbox)
    except (RecordStoreError, ValueError) as exc:
        logger.warning("Store %s %s failed: %s", request.op, request.path, exc)
        return {"id": request.id, "ok": False, "error": str(exc)}
    return {"id": request.id, "ok": True, "value": value}


async def _apply(
    store: RecordStore,
    request: StoreRequest,
    listeners: dict[str, Callable[[Any], None]],
    outbox: asyncio.Queue,
) -> Any:
    op, path = request.op, request.path
    if op == "get":
        return await store.get(path)
    if op == "set":
        await store.set(path, request.value)
    elif op == "remove":
        await store.remove(path)
    elif op == "children":
        return await store.children(path)
    elif op == "listen":
        if path not in listeners:
            def push(value: Any, path: str = path) -> None:
                outbox.put_nowait({"op": "snapshot", "path": path, "value": value})

            listeners[path] = push
            await store.listen(path, push)
    elif op == "unlisten":
        listener = listeners.pop(path, None)
        if listener is not None:
            await store.unlisten(path, listener)
    return None


async def _pump(websocket: WebSocket, outbox: asyncio.Queue) -> None:
    while True:
        message = await outbox.get()
        try:
            await websocket.send_json(message)
        except (WebSocketDisconnect, RuntimeError):
            return
