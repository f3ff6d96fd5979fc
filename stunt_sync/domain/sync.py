"""Shared-clock records as they travel through the remote record store.

Wire names are camelCase (``referenceTimestamp``, ``frequencyHz`` ...) so
every client of the store agrees on one shape.  Python code uses the
snake_case attribute names.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

SYNC_PATH = "flashSync"
PARTICIPANTS_PATH = "participants"
SEAT_COLORS_PATH = "seatColors"


class SyncRecord(BaseModel):
    """The single shared record every device in an event anchors to."""

    reference_timestamp: int = Field(..., alias="referenceTimestamp")
    frequency_hz: int = Field(..., ge=0, alias="frequencyHz")
    event_id: str = Field("", alias="eventId")
    active: bool = False
    participant_count: int = Field(0, ge=0, alias="participantCount")

    model_config = {"frozen": True, "populate_by_name": True}

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


class Participant(BaseModel):
    """One registered device under ``participants/{deviceId}``."""

    device_id: str = Field(..., min_length=1, alias="deviceId")
    event_id: str = Field(..., alias="eventId")
    timestamp: int

    model_config = {"frozen": True, "populate_by_name": True}

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


class SyncState(BaseModel):
    """Connection view derived from the latest shared-record update."""

    connected: bool = False
    synced: bool = False
    latency_ms: int = 0

    model_config = {"frozen": True}


def participant_path(device_id: str) -> str:
    return f"{PARTICIPANTS_PATH}/{device_id}"


def seat_color_path(seat_key: str) -> str:
    return f"{SEAT_COLORS_PATH}/{seat_key}"
