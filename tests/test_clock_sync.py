"""Tests for ClockSync against the in-memory record store."""

from __future__ import annotations

from typing import Any

import pytest

from stunt_sync.domain.sync import SYNC_PATH, SyncRecord, SyncState, participant_path
from stunt_sync.services.clock_sync import ClockSync
from stunt_sync.services.record_store import InMemoryRecordStore, RecordStore, RecordStoreError

from tests.fakes import FakeClock


class UnreachableStore(RecordStore):
    """A store whose transport is down."""

    async def get(self, path: str) -> Any:
        raise RecordStoreError("offline")

    async def set(self, path: str, value: Any) -> None:
        raise RecordStoreError("offline")

    async def remove(self, path: str) -> None:
        raise RecordStoreError("offline")

    async def children(self, path: str) -> dict[str, Any]:
        raise RecordStoreError("offline")

    async def listen(self, path: str, listener) -> None:
        raise RecordStoreError("offline")

    async def unlisten(self, path: str, listener) -> None:
        raise RecordStoreError("offline")


def _record(ref: int, active: bool = True, **kw: Any) -> dict:
    return SyncRecord(
        reference_timestamp=ref,
        frequency_hz=kw.get("frequency", 2),
        event_id=kw.get("event_id", "final"),
        active=active,
    ).to_wire()


class TestFollowing:
    @pytest.mark.asyncio
    async def test_latency_from_reference(self, clock: FakeClock) -> None:
        store = InMemoryRecordStore()
        sync = ClockSync(store, "dev-1", clock=clock)
        await sync.start()

        clock.now = 10_000
        await store.set(SYNC_PATH, _record(9_950))
        assert sync.sync_state.value == SyncState(connected=True, synced=True, latency_ms=50)
        assert sync.current_record is not None
        assert sync.current_record.reference_timestamp == 9_950

    @pytest.mark.asyncio
    async def test_inactive_record_connected_not_synced(self, clock: FakeClock) -> None:
        store = InMemoryRecordStore()
        sync = ClockSync(store, "dev-1", clock=clock)
        await sync.start()
        await store.set(SYNC_PATH, _record(0, active=False))
        state = sync.sync_state.value
        assert state.connected and not state.synced

    @pytest.mark.asyncio
    async def test_missing_record_disconnected(self, clock: FakeClock) -> None:
        sync = ClockSync(InMemoryRecordStore(), "dev-1", clock=clock)
        await sync.start()
        assert sync.sync_state.value == SyncState(connected=False, synced=False)
        assert sync.current_record is None

    @pytest.mark.asyncio
    async def test_malformed_record_disconnected(self, clock: FakeClock) -> None:
        store = InMemoryRecordStore()
        sync = ClockSync(store, "dev-1", clock=clock)
        await sync.start()
        await store.set(SYNC_PATH, _record(5))
        assert sync.sync_state.value.connected

        await store.set(SYNC_PATH, {"referenceTimestamp": "soon"})
        assert sync.sync_state.value == SyncState(connected=False, synced=False)
        assert sync.current_record is None

    @pytest.mark.asyncio
    async def test_full_replacement_on_field_update(self, clock: FakeClock) -> None:
        store = InMemoryRecordStore()
        sync = ClockSync(store, "dev-1", clock=clock)
        await sync.start()
        await store.set(SYNC_PATH, _record(100, frequency=4))
        await store.set(f"{SYNC_PATH}/referenceTimestamp", 700)
        record = sync.current_record
        assert record is not None
        assert (record.reference_timestamp, record.frequency_hz, record.active) == (700, 4, True)

    @pytest.mark.asyncio
    async def test_unreachable_store(self, clock: FakeClock) -> None:
        sync = ClockSync(UnreachableStore(), "dev-1", clock=clock)
        await sync.start()
        await sync.join("final")
        await sync.start_sync("final")
        await sync.update_timestamp()
        await sync.stop_sync()
        await sync.close()
        assert not sync.sync_state.value.connected
        assert sync.registered_event is None

    @pytest.mark.asyncio
    async def test_close_detaches(self, clock: FakeClock) -> None:
        store = InMemoryRecordStore()
        sync = ClockSync(store, "dev-1", clock=clock)
        await sync.start()
        await sync.start()
        assert store.listener_count == 1
        await sync.close()
        assert store.listener_count == 0


class TestPublishing:
    @pytest.mark.asyncio
    async def test_start_sync_publishes_active_record(self, clock: FakeClock) -> None:
        store = InMemoryRecordStore()
        await store.set(participant_path("other"), {"deviceId": "other", "eventId": "final", "timestamp": 1})
        await store.set(participant_path("elsewhere"), {"deviceId": "elsewhere", "eventId": "derby", "timestamp": 1})
        sync = ClockSync(store, "host", clock=clock)
        await sync.start()

        clock.now = 5_000
        await sync.start_sync("final", frequency=3)

        raw = await store.get(SYNC_PATH)
        assert raw == {
            "referenceTimestamp": 5_000,
            "frequencyHz": 3,
            "eventId": "final",
            "active": True,
            "participantCount": 2,
        }
        assert sync.participant_count == 2
        assert sync.sync_state.value.synced
        assert sync.registered_event == "final"

    @pytest.mark.asyncio
    async def test_stop_sync_deactivates_and_leaves(self, clock: FakeClock) -> None:
        store = InMemoryRecordStore()
        sync = ClockSync(store, "host", clock=clock)
        await sync.start()
        await sync.start_sync("final")
        await sync.stop_sync()

        raw = await store.get(SYNC_PATH)
        assert raw["active"] is False
        assert raw["frequencyHz"] == 0
        assert await store.get(participant_path("host")) is None
        assert sync.registered_event is None
        assert not sync.sync_state.value.synced

    @pytest.mark.asyncio
    async def test_update_timestamp_reanchors(self, clock: FakeClock) -> None:
        store = InMemoryRecordStore()
        sync = ClockSync(store, "host", clock=clock)
        await sync.start()
        await sync.start_sync("final")
        clock.now = 42_000
        await sync.update_timestamp()
        assert sync.current_record is not None
        assert sync.current_record.reference_timestamp == 42_000
        assert sync.current_record.active


class TestParticipation:
    @pytest.mark.asyncio
    async def test_join_registers(self, clock: FakeClock) -> None:
        store = InMemoryRecordStore()
        sync = ClockSync(store, "dev-7", clock=clock)
        clock.now = 123
        await sync.join("final")
        assert await store.get(participant_path("dev-7")) == {
            "deviceId": "dev-7",
            "eventId": "final",
            "timestamp": 123,
        }

    @pytest.mark.asyncio
    async def test_join_twice_is_noop(self, clock: FakeClock) -> None:
        store = InMemoryRecordStore()
        sync = ClockSync(store, "dev-7", clock=clock)
        await sync.join("final")
        clock.now = 999
        await sync.join("final")
        entry = await store.get(participant_path("dev-7"))
        assert entry["timestamp"] == 0

    @pytest.mark.asyncio
    async def test_leave_without_join_is_noop(self, clock: FakeClock) -> None:
        store = InMemoryRecordStore()
        sync = ClockSync(store, "dev-7", clock=clock)
        await sync.leave()
        await sync.join("final")
        await sync.leave()
        await sync.leave()
        assert await store.children("participants") == {}
