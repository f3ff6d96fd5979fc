"""Seat assignment — free-form seat and event text into structured values.

Accepted seat formats:
    "Section A, Row 5, Seat 12"
    "Section: A, Row: 5, Seat: 12"
    "A-5-12"
    anything with a letter group followed by two numbers ("A 5 12", "B row 3 no 7")

The seat number's parity decides which half-cycle a device lights in.
"""

from __future__ import annotations

import re

from pydantic import BaseModel, Field, ValidationError, field_validator

from stunt_sync.domain.errors import InvalidSeatError

SEAT_FORMAT_HINT = "Invalid seat format. Please use format like 'Section A, Row 5, Seat 12'"

_VERBOSE_RE = re.compile(
    r"Section\s*:?\s*(\w+).*Row\s*:?\s*(\d+).*Seat\s*:?\s*(\d+)",
    re.IGNORECASE,
)
_LETTERS_RE = re.compile(r"[A-Za-z]+")
_NUMBERS_RE = re.compile(r"\d+")


class Seat(BaseModel):
    """A parsed seat.  Immutable once created."""

    section: str = Field(..., min_length=1, max_length=32)
    row: int = Field(..., ge=1)
    number: int = Field(..., ge=1)

    model_config = {"frozen": True}

    @field_validator("section")
    @classmethod
    def section_is_uppercase(cls, v: str) -> str:
        return v.strip().upper()

    @property
    def is_even(self) -> bool:
        return self.number % 2 == 0

    @property
    def key(self) -> str:
        """Stable key used for remote color lookups and overrides."""
        return f"{self.section}_{self.row}_{self.number}"

    def __str__(self) -> str:
        return f"Section {self.section}, Row {self.row}, Seat {self.number}"


class EventDetails(BaseModel):
    """Event name and venue as typed by the attendee."""

    name: str
    venue: str = ""
    additional_info: str | None = None

    model_config = {"frozen": True}


def parse_seat(text: str) -> Seat:
    """Parse seat text into a Seat.

    Raises:
        InvalidSeatError: If no supported format matches, or the numbers
            are not positive.
    """
    if not text or not text.strip():
        raise InvalidSeatError(SEAT_FORMAT_HINT)

    lowered = text.lower()
    if "section" in lowered and "row" in lowered and "seat" in lowered:
        fields = _parse_verbose(text)
    elif "-" in text:
        fields = _parse_compact(text)
    else:
        fields = _parse_flexible(text)

    if fields is None:
        raise InvalidSeatError(SEAT_FORMAT_HINT)

    section, row, number = fields
    try:
        return Seat(section=section, row=row, number=number)
    except ValidationError as exc:
        raise InvalidSeatError(f"{SEAT_FORMAT_HINT} ({exc.error_count()} invalid field(s))") from exc


def parse_event_details(text: str) -> EventDetails:
    """Split "name, venue" text on its first comma."""
    name, _, venue = text.partition(",")
    return EventDetails(name=name.strip() or text, venue=venue.strip())


# ── Format parsers ──────────────────────────────────────────────────────────

def _parse_verbose(text: str) -> tuple[str, int, int] | None:
    match = _VERBOSE_RE.search(text)
    if match is None:
        return None
    return match.group(1), int(match.group(2)), int(match.group(3))


def _parse_compact(text: str) -> tuple[str, int, int] | None:
    parts = [p.strip() for p in text.split("-")]
    if len(parts) != 3 or not parts[0]:
        return None
    if not (parts[1].isdigit() and parts[2].isdigit()):
        return None
    return parts[0], int(parts[1]), int(parts[2])


def _parse_flexible(text: str) -> tuple[str, int, int] | None:
    letters = _LETTERS_RE.findall(text)
    numbers = [int(n) for n in _NUMBERS_RE.findall(text)]
    if not letters or len(numbers) < 2:
        return None
    return letters[0], numbers[0], numbers[1]
