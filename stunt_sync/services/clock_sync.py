"""ClockSync — publishes and follows the shared reference clock of an event.

Store layout:
    flashSync               → SyncRecord (one per store, keyed by eventId inside)
    participants/{deviceId} → Participant

Every snapshot of ``flashSync`` is a full replacement of the synced record.
Latency is ``monotonic now - referenceTimestamp`` at the moment the snapshot
is observed.

Failure policy:
    Remote errors are logged and swallowed.  A missing or unreadable record
    publishes SyncState(connected=False, synced=False); the listener never
    raises back into the store.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from pydantic import ValidationError

from stunt_sync.domain.sync import (
    PARTICIPANTS_PATH,
    SYNC_PATH,
    Participant,
    SyncRecord,
    SyncState,
    participant_path,
)
from stunt_sync.foundation.channel import StateChannel
from stunt_sync.foundation.clock import monotonic_ms
from stunt_sync.services.record_store import RecordStore, RecordStoreError

logger = logging.getLogger(__name__)

DEFAULT_SYNC_FREQUENCY = 2


class ClockSync:
    """Keeps this device attached to the shared ``flashSync`` record.

    Args:
        store: Remote record store.
        device_id: Stable per-install identifier used as the participant key.
        clock: Monotonic millisecond clock the reference timestamp uses.
    """

    def __init__(
        self,
        store: RecordStore,
        device_id: str,
        clock: Callable[[], int] = monotonic_ms,
    ) -> None:
        self._store = store
        self._device_id = device_id
        self._clock = clock
        self._registered_event: str | None = None
        self._listening = False
        self.sync_state: StateChannel[SyncState] = StateChannel(SyncState())
        self.record: StateChannel[SyncRecord | None] = StateChannel(None)

    @property
    def device_id(self) -> str:
        return self._device_id

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def start(self) -> None:
        """Attach the remote listener."""
        if self._listening:
            return
        try:
            await self._store.listen(SYNC_PATH, self._on_snapshot)
            self._listening = True
        except RecordStoreError as exc:
            logger.error("Failed to attach sync listener: %s", exc)
            self._publish_disconnected()

    async def close(self) -> None:
        """Detach the listener and leave the current event."""
        if self._listening:
            self._listening = False
            try:
                await self._store.unlisten(SYNC_PATH, self._on_snapshot)
            except RecordStoreError as exc:
                logger.warning("Failed to detach sync listener: %s", exc)
        await self.leave()

    # ── Publishing ───────────────────────────────────────────────────────

    async def start_sync(self, event_id: str, frequency: int = DEFAULT_SYNC_FREQUENCY) -> None:
        """Become the clock source: publish an active record anchored to now."""
        now = self._clock()
        try:
            await self._register(event_id, now)
            count = await self._count_participants(event_id)
            record = SyncRecord(
                reference_timestamp=now,
                frequency_hz=frequency,
                event_id=event_id,
                active=True,
                participant_count=count,
            )
            await self._store.set(SYNC_PATH, record.to_wire())
            logger.info("Sync started for event: %s with frequency: %dHz", event_id, frequency)
        except RecordStoreError as exc:
            logger.error("Error starting sync: %s", exc)

    async def stop_sync(self) -> None:
        """Publish an inactive record and leave the participant list."""
        record = SyncRecord(
            reference_timestamp=self._clock(),
            frequency_hz=0,
            event_id="",
            active=False,
        )
        try:
            await self._store.set(SYNC_PATH, record.to_wire())
            logger.info("Sync stopped")
        except RecordStoreError as exc:
            logger.error("Error stopping sync: %s", exc)
        await self.leave()

    async def update_timestamp(self) -> None:
        """Re-anchor everyone: republish only the reference timestamp."""
        now = self._clock()
        try:
            await self._store.set(f"{SYNC_PATH}/referenceTimestamp", now)
            logger.debug("Timestamp updated: %d", now)
        except RecordStoreError as exc:
            logger.error("Error updating timestamp: %s", exc)

    # ── Participation ────────────────────────────────────────────────────

    async def join(self, event_id: str) -> None:
        """Register as a participant.  Joining the same event twice is a no-op."""
        if self._registered_event == event_id:
            return
        try:
            await self._register(event_id, self._clock())
            logger.info("Joined sync for event: %s", event_id)
        except RecordStoreError as exc:
            logger.error("Error joining sync: %s", exc)

    async def leave(self) -> None:
        """Remove this device from the participant list.  No-op if not registered."""
        if self._registered_event is None:
            return
        try:
            await self._store.remove(participant_path(self._device_id))
            self._registered_event = None
        except RecordStoreError as exc:
            logger.error("Error leaving sync: %s", exc)

    @property
    def registered_event(self) -> str | None:
        return self._registered_event

    # ── Reading ──────────────────────────────────────────────────────────

    @property
    def current_record(self) -> SyncRecord | None:
        return self.record.value

    @property
    def participant_count(self) -> int:
        record = self.record.value
        return record.participant_count if record is not None else 0

    # ── Internals ────────────────────────────────────────────────────────

    async def _register(self, event_id: str, now: int) -> None:
        participant = Participant(device_id=self._device_id, event_id=event_id, timestamp=now)
        await self._store.set(participant_path(self._device_id), participant.to_wire())
        self._registered_event = event_id

    async def _count_participants(self, event_id: str) -> int:
        entries = await self._store.children(PARTICIPANTS_PATH)
        return sum(
            1 for entry in entries.values()
            if isinstance(entry, dict) and entry.get("eventId") == event_id
        )

    def _on_snapshot(self, raw: Any) -> None:
        if raw is None:
            self.record.publish(None)
            self._publish_disconnected()
            return

        try:
            record = SyncRecord.model_validate(raw)
        except ValidationError as exc:
            logger.error("Error processing sync data: %s", exc)
            self.record.publish(None)
            self._publish_disconnected()
            return

        latency = self._clock() - record.reference_timestamp
        self.record.publish(record)
        self.sync_state.publish(SyncState(connected=True, synced=record.active, latency_ms=latency))
        logger.debug(
            "Sync updated: timestamp=%d, frequency=%d, latency=%dms",
            record.reference_timestamp,
            record.frequency_hz,
            latency,
        )

    def _publish_disconnected(self) -> None:
        self.sync_state.publish(SyncState(connected=False, synced=False))
