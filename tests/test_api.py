"""Tests for the HTTP and WebSocket endpoints, driven through FastAPI's TestClient."""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from pathlib import Path
from types import SimpleNamespace
from typing import AsyncIterator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from stunt_sync.api.device import create_device_router
from stunt_sync.api.store_hub import create_store_router
from stunt_sync.core.controller import ShowController
from stunt_sync.core.safety_gate import SafetyGate
from stunt_sync.domain.seat import SEAT_FORMAT_HINT
from stunt_sync.hardware.actuator import ColorActuator, SimulatedTorchService, TorchActuator
from stunt_sync.services.clock_sync import ClockSync
from stunt_sync.services.local_store import JsonFileStore
from stunt_sync.services.record_store import InMemoryRecordStore
from stunt_sync.services.remote_config import RemoteConfig, StaticConfigSource


def _build(tmp_path: Path) -> SimpleNamespace:
    store = InMemoryRecordStore()
    safety = SafetyGate(JsonFileStore(tmp_path / "safety.json"))
    sync = ClockSync(store, "dev-api")
    controller = ShowController(
        safety=safety,
        clock_sync=sync,
        torch=TorchActuator(SimulatedTorchService()),
        screen=ColorActuator(),
        store=store,
        config=RemoteConfig(StaticConfigSource()),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await sync.start()
        yield
        await controller.close()
        await sync.close()

    app = FastAPI(lifespan=lifespan)
    app.include_router(create_device_router(controller, safety, sync))
    app.include_router(create_store_router(store))
    return SimpleNamespace(app=app, store=store, controller=controller)


@pytest.fixture
def client(tmp_path: Path):
    built = _build(tmp_path)
    with TestClient(built.app) as c:
        yield c


# ── Device endpoints ─────────────────────────────────────────────────────────


class TestDeviceEndpoints:
    def test_status_when_idle(self, client: TestClient) -> None:
        body = client.get("/status").json()
        assert body["phase"] == "stopped"
        assert body["running"] is False
        assert body["seat"] is None
        assert body["safety"]["can_flash"] is True

    def test_assign_seat(self, client: TestClient) -> None:
        resp = client.post("/seat", json={"event": "Final, Arena", "seat": "A-5-12"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["seat"] == {"section": "A", "row": 5, "number": 12}
        assert body["description"] == "Even seat: Flash during first phase at 2Hz"

    def test_bad_seat_is_422(self, client: TestClient) -> None:
        resp = client.post("/seat", json={"seat": "upper deck"})
        assert resp.status_code == 422
        assert resp.json()["detail"] == SEAT_FORMAT_HINT

    def test_bad_frequency_is_422(self, client: TestClient) -> None:
        resp = client.post("/frequency", json={"frequency": 11})
        assert resp.status_code == 422
        assert "Must be between 1-10 Hz" in resp.json()["detail"]

    def test_color_requires_seat(self, client: TestClient) -> None:
        assert client.post("/color", json={"color": "#00FF00"}).status_code == 409

    def test_start_requires_seat(self, client: TestClient) -> None:
        assert client.post("/show/start", json={}).status_code == 409

    def test_start_and_stop(self, client: TestClient) -> None:
        client.post("/seat", json={"event": "Final", "seat": "B-2-3"})
        started = client.post("/show/start", json={"event_id": "final"}).json()
        assert started["started"] is True
        assert started["status"]["running"] is True
        assert started["status"]["local_clock_fallback"] is True

        stopped = client.post("/show/stop").json()
        assert stopped["running"] is False
        assert stopped["output_on"] is False

    def test_emergency_stop_reason(self, client: TestClient) -> None:
        client.post("/seat", json={"seat": "B-2-3"})
        client.post("/show/start", json={})
        body = client.post("/show/emergency-stop").json()
        assert body["block_reason"] == "Flash sequence stopped"

    def test_mode(self, client: TestClient) -> None:
        assert client.post("/mode", json={"mode": "color"}).json()["mode"] == "color"
        assert client.post("/mode", json={"mode": "strobe"}).status_code == 422

    def test_photosensitive(self, client: TestClient) -> None:
        body = client.post("/safety/photosensitive", json={"enabled": True}).json()
        assert body["max_frequency_hz"] == 3
        assert body["max_continuous_duration_ms"] == 30_000
        assert client.post("/frequency", json={"frequency": 5}).status_code == 422

    def test_warning_shown(self, client: TestClient) -> None:
        assert client.post("/safety/warning-shown").json()["safety_warning_shown"] is True

    def test_sync_lifecycle(self, client: TestClient) -> None:
        body = client.post("/sync/start", json={"event_id": "final", "frequency": 3}).json()
        assert body["connected"] is True
        assert body["synced"] is True
        assert client.get("/status").json()["participant_count"] == 1

        assert client.post("/sync/update-timestamp").json()["synced"] is True
        assert client.post("/sync/stop").json()["synced"] is False


class TestDeviceStream:
    def test_initial_status_then_updates(self, client: TestClient) -> None:
        with client.websocket_connect("/ws/device") as ws:
            first = ws.receive_json()
            assert first["phase"] == "stopped"
            assert first["seat"] is None

            client.post("/seat", json={"seat": "C-1-4"})
            update = ws.receive_json()
            assert update["seat"]["section"] == "C"


# ── Store hub ────────────────────────────────────────────────────────────────


class TestStoreHub:
    def test_set_then_get(self, client: TestClient) -> None:
        with client.websocket_connect("/ws/store") as ws:
            ws.send_text(json.dumps({"id": 1, "op": "set", "path": "seatColors/A_5_12", "value": "#00FF00"}))
            assert ws.receive_json() == {"id": 1, "ok": True, "value": None}
            ws.send_text(json.dumps({"id": 2, "op": "get", "path": "seatColors/A_5_12"}))
            assert ws.receive_json() == {"id": 2, "ok": True, "value": "#00FF00"}

    def test_listen_pushes_snapshots(self, client: TestClient) -> None:
        with client.websocket_connect("/ws/store") as ws:
            ws.send_text(json.dumps({"id": 1, "op": "listen", "path": "flashSync"}))
            first = [ws.receive_json(), ws.receive_json()]
            assert {"op": "snapshot", "path": "flashSync", "value": None} in first
            assert {"id": 1, "ok": True, "value": None} in first

            ws.send_text(json.dumps({"id": 2, "op": "set", "path": "flashSync/active", "value": True}))
            second = [ws.receive_json(), ws.receive_json()]
            assert {"op": "snapshot", "path": "flashSync", "value": {"active": True}} in second
            assert {"id": 2, "ok": True, "value": None} in second

    def test_children(self, client: TestClient) -> None:
        with client.websocket_connect("/ws/store") as ws:
            ws.send_text(json.dumps({"id": 1, "op": "set", "path": "participants/d1", "value": {"eventId": "e"}}))
            ws.receive_json()
            ws.send_text(json.dumps({"id": 2, "op": "children", "path": "participants"}))
            assert ws.receive_json()["value"] == {"d1": {"eventId": "e"}}

    def test_malformed_requests(self, client: TestClient) -> None:
        with client.websocket_connect("/ws/store") as ws:
            ws.send_text("not json")
            reply = ws.receive_json()
            assert reply["id"] is None and reply["ok"] is False

            ws.send_text(json.dumps({"id": 7, "op": "explode", "path": "x"}))
            reply = ws.receive_json()
            assert reply["id"] == 7 and reply["ok"] is False

            ws.send_text(json.dumps({"id": 8, "op": "get", "path": "/"}))
            reply = ws.receive_json()
            assert reply["id"] == 8 and reply["ok"] is False
