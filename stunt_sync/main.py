"""stunt-sync — synchronized card-stunt flash show for stadium devices.

This is the application entry point.  It wires the record store, ClockSync,
SafetyGate, RemoteConfig, actuators, ShowController and the HTTP/WebSocket
endpoints together.

Without ``STUNT_STORE_URL`` the process hosts the shared record store itself
(served at /ws/store); with it, the process joins another host's store.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from stunt_sync.api.device import create_device_router
from stunt_sync.api.store_hub import create_store_router
from stunt_sync.config import Settings, settings
from stunt_sync.core.controller import ShowController
from stunt_sync.core.safety_gate import SafetyGate
from stunt_sync.hardware.actuator import ColorActuator, SimulatedTorchService, TorchActuator
from stunt_sync.services.clock_sync import ClockSync
from stunt_sync.services.identity import FileIdentity, StaticIdentity, resolve_device_id
from stunt_sync.services.local_store import JsonFileStore
from stunt_sync.services.record_store import InMemoryRecordStore, RecordStoreError
from stunt_sync.services.remote_config import FlashConfig, RecordStoreConfigSource, RemoteConfig
from stunt_sync.services.ws_record_store import WebSocketRecordStore

# ── Logging ──────────────────────────────────────────────────────────────────

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


def build_app(config: Settings) -> FastAPI:
    """Construct every component for one device and the app that serves it."""

    # ── Shared record store ──────────────────────────────────────────────

    remote_store = WebSocketRecordStore(config.store_url, config.store_timeout_seconds) if config.store_url else None
    store = remote_store or InMemoryRecordStore()

    # ── Identity & shared clock ──────────────────────────────────────────

    identity = StaticIdentity(config.device_id) if config.device_id else FileIdentity(config.identity_path)
    device_id = resolve_device_id(identity)
    clock_sync = ClockSync(store, device_id)

    # ── Safety & config ──────────────────────────────────────────────────

    safety = SafetyGate(
        JsonFileStore(config.safety_state_path),
        check_interval=config.safety_check_interval_seconds,
    )
    remote_config = RemoteConfig(
        RecordStoreConfigSource(store),
        defaults=FlashConfig.from_settings(config),
        min_fetch_interval=config.remote_config_refresh_seconds,
    )

    # ── Outputs & controller ─────────────────────────────────────────────

    torch = TorchActuator(SimulatedTorchService())
    screen = ColorActuator()
    controller = ShowController(
        safety=safety,
        clock_sync=clock_sync,
        torch=torch,
        screen=screen,
        store=store,
        config=remote_config,
        start_time=config.show_start_time,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if remote_store is not None:
            try:
                await remote_store.connect()
            except RecordStoreError as exc:
                logger.error("Record store unreachable, running on the local clock: %s", exc)
        remote_config.start()
        await clock_sync.start()
        safety.start()
        logger.info("Device %s ready", device_id)
        try:
            yield
        finally:
            await controller.close()
            await safety.close()
            await clock_sync.close()
            await remote_config.close()
            if remote_store is not None:
                await remote_store.close()

    app = FastAPI(
        title=config.app_name,
        description="Synchronized card-stunt flash show",
        version="0.3.0",
        lifespan=lifespan,
    )
    app.state.controller = controller

    # ── Routes ───────────────────────────────────────────────────────────

    app.include_router(create_device_router(controller, safety, clock_sync))
    if remote_store is None:
        app.include_router(create_store_router(store))

    # ── Health ───────────────────────────────────────────────────────────

    @app.get("/health")
    async def health() -> dict:
        status = controller.status()
        return {
            "status": "ok",
            "device_id": device_id,
            "store": "remote" if remote_store is not None else "hub",
            "store_connected": remote_store.connected if remote_store is not None else True,
            "running": status.running,
            "phase": status.phase.value,
            "flash_available": status.flash_available,
            "sync_connected": status.sync.connected,
            "synced": status.sync.synced,
            "latency_ms": status.sync.latency_ms,
            "can_flash": status.safety.can_flash,
            "participants": status.participant_count,
        }

    return app


app = build_app(settings)
