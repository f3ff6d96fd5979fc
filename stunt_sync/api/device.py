"""Device control endpoints and the live status stream.

HTTP:
    GET  /status                    current ShowStatus
    POST /seat                      assign event + seat text
    POST /frequency                 change flash frequency
    POST /color                     override the seat color
    POST /mode                      flash | color
    POST /show/start                start (or schedule) the show
    POST /show/stop                 stop and force outputs off
    POST /show/emergency-stop       stop with a user-visible reason
    POST /safety/photosensitive     toggle the strict safety profile
    POST /safety/warning-shown      record that the warning was acknowledged
    POST /sync/start                become the event's clock source
    POST /sync/stop                 deactivate the shared record
    POST /sync/update-timestamp     re-anchor every device to now

WebSocket:
    /ws/device                      pushes ShowStatus on every change,
                                    starting with the current one

Input errors map to 422 with the rejection reason as ``detail``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field

from stunt_sync.core.controller import ShowController
from stunt_sync.core.safety_gate import SafetyGate
from stunt_sync.domain.enums import OutputMode
from stunt_sync.domain.errors import InputError, ShowNotReadyError
from stunt_sync.services.clock_sync import DEFAULT_SYNC_FREQUENCY, ClockSync

logger = logging.getLogger(__name__)


# ── Request bodies ───────────────────────────────────────────────────────────

class SeatingRequest(BaseModel):
    event: str = Field("", max_length=256)
    seat: str = Field(..., max_length=128)


class FrequencyRequest(BaseModel):
    frequency: int


class ColorRequest(BaseModel):
    color: str


class ModeRequest(BaseModel):
    mode: OutputMode


class StartShowRequest(BaseModel):
    event_id: str | None = None


class PhotosensitiveRequest(BaseModel):
    enabled: bool


class StartSyncRequest(BaseModel):
    event_id: str = Field(..., min_length=1)
    frequency: int = Field(DEFAULT_SYNC_FREQUENCY, ge=1, le=10)


# ── Router ───────────────────────────────────────────────────────────────────

def create_device_router(
    controller: ShowController,
    safety: SafetyGate,
    clock_sync: ClockSync,
) -> APIRouter:
    """Factory that wires the device endpoints to concrete components."""
    router = APIRouter()

    def _status() -> dict[str, Any]:
        return controller.status().model_dump(mode="json")

    @router.get("/status")
    async def get_status() -> dict:
        return _status()

    @router.post("/seat")
    async def assign_seat(body: SeatingRequest) -> dict:
        try:
            status = await controller.process_seating(body.event, body.seat)
        except InputError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        return status.model_dump(mode="json")

    @router.post("/frequency")
    async def set_frequency(body: FrequencyRequest) -> dict:
        try:
            status = controller.update_frequency(body.frequency)
        except InputError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        return status.model_dump(mode="json")

    @router.post("/color")
    async def set_color(body: ColorRequest) -> dict:
        try:
            status = await controller.update_seat_color(body.color)
        except InputError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        except ShowNotReadyError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return status.model_dump(mode="json")

    @router.post("/mode")
    async def set_mode(body: ModeRequest) -> dict:
        return controller.set_mode(body.mode).model_dump(mode="json")

    @router.post("/show/start")
    async def start_show(body: StartShowRequest) -> dict:
        try:
            started = await controller.start_show(body.event_id)
        except ShowNotReadyError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return {"started": started, "status": _status()}

    @router.post("/show/stop")
    async def stop_show() -> dict:
        controller.stop_show()
        return _status()

    @router.post("/show/emergency-stop")
    async def emergency_stop() -> dict:
        controller.emergency_stop()
        return _status()

    @router.post("/safety/photosensitive")
    async def set_photosensitive(body: PhotosensitiveRequest) -> dict:
        safety.set_photosensitive_mode(body.enabled)
        return safety.state.value.model_dump()

    @router.post("/safety/warning-shown")
    async def warning_shown() -> dict:
        safety.mark_safety_warning_shown()
        return safety.state.value.model_dump()

    @router.post("/sync/start")
    async def start_sync(body: StartSyncRequest) -> dict:
        await clock_sync.start_sync(body.event_id, body.frequency)
        return clock_sync.sync_state.value.model_dump()

    @router.post("/sync/stop")
    async def stop_sync() -> dict:
        await clock_sync.stop_sync()
        return clock_sync.sync_state.value.model_dump()

    @router.post("/sync/update-timestamp")
    async def update_timestamp() -> dict:
        await clock_sync.update_timestamp()
        return clock_sync.sync_state.value.model_dump()

    @router.websocket("/ws/device")
    async def stream_status(websocket: WebSocket) -> None:
        await websocket.accept()
        logger.info("Status client connected")

        receiver = asyncio.create_task(_drain(websocket))
        with controller.status_updates.subscribe() as updates:
            try:
                while not receiver.done():
                    getter = asyncio.ensure_future(updates.get())
                    done, _ = await asyncio.wait(
                        {getter, receiver}, return_when=asyncio.FIRST_COMPLETED
                    )
                    if getter not in done:
                        getter.cancel()
                        break
                    await websocket.send_json(getter.result().model_dump(mode="json"))
            except (WebSocketDisconnect, RuntimeError):
                pass
            finally:
                receiver.cancel()
        logger.info("Status client disconnected")

    return router


async def _drain(websocket: WebSocket) -> None:
    """Consume client frames until the client goes away."""
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        return
