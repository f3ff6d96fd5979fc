"""PatternCalculator — the single source of truth for seat parity mapping.

Design principles:
    1. Pure: no side effects, no I/O, no clock reads.
    2. Flash pattern and screen color come from the same parity rule, so
       the two output modes can never disagree about which half-cycle a
       seat belongs to.
    3. Input errors raise InputError subclasses with a reason; the only
       silent coercion is an invalid override color falling back to the
       parity default.

Phase membership:
    EVEN_ON_ODD_OFF  →  even seats light
    EVEN_OFF_ODD_ON  →  odd seats light
    STOPPED          →  nobody lights
"""

from __future__ import annotations

import logging
import re

from stunt_sync.domain.enums import Phase
from stunt_sync.domain.errors import (
    InvalidColorError,
    InvalidDutyCycleError,
    InvalidFrequencyError,
)
from stunt_sync.domain.pattern import FlashPattern
from stunt_sync.domain.seat import Seat

logger = logging.getLogger(__name__)

MIN_FREQUENCY = 1
MAX_FREQUENCY = 10
MIN_DUTY_CYCLE = 0.1
MAX_DUTY_CYCLE = 0.9

DEFAULT_FREQUENCY = 2
DEFAULT_DUTY_CYCLE = 0.5
DEFAULT_EVEN_COLOR = "#0000FF"
DEFAULT_ODD_COLOR = "#FF0000"

_HEX_COLOR_RE = re.compile(r"^#(?:[0-9A-Fa-f]{6}|[0-9A-Fa-f]{8})$")


class PatternCalculator:
    """Maps seat parity and frequency to a FlashPattern and a color.

    Args:
        duty_cycle: Default duty cycle for patterns built without one.
        even_color: Screen color for even seats.
        odd_color: Screen color for odd seats.
    """

    def __init__(
        self,
        duty_cycle: float = DEFAULT_DUTY_CYCLE,
        even_color: str = DEFAULT_EVEN_COLOR,
        odd_color: str = DEFAULT_ODD_COLOR,
    ) -> None:
        self.validate_duty_cycle(duty_cycle)
        self._duty_cycle = duty_cycle
        self._even_color = even_color if self.is_valid_color(even_color) else DEFAULT_EVEN_COLOR
        self._odd_color = odd_color if self.is_valid_color(odd_color) else DEFAULT_ODD_COLOR

    @property
    def duty_cycle(self) -> float:
        return self._duty_cycle

    # ── Patterns ─────────────────────────────────────────────────────────

    def calculate(
        self,
        seat_is_even: bool,
        frequency: int = DEFAULT_FREQUENCY,
        duty_cycle: float | None = None,
    ) -> FlashPattern:
        """Build the pattern for a seat parity at *frequency* Hz."""
        duty = self._duty_cycle if duty_cycle is None else duty_cycle
        self.validate_frequency(frequency)
        self.validate_duty_cycle(duty)
        return FlashPattern(
            is_even_seat=seat_is_even,
            frequency=frequency,
            duty_cycle=duty,
            should_flash_in_even_phase=seat_is_even,
        )

    def calculate_for_seat(self, seat: Seat, frequency: int = DEFAULT_FREQUENCY) -> FlashPattern:
        return self.calculate(seat.is_even, frequency)

    @staticmethod
    def should_flash_at_phase(pattern: FlashPattern, phase: Phase) -> bool:
        return phase_lights_seat(phase, pattern.is_even_seat)

    @staticmethod
    def describe(pattern: FlashPattern) -> str:
        """Human-readable summary, e.g. "Even seat: Flash during first phase at 2Hz"."""
        seat_type = "Even" if pattern.is_even_seat else "Odd"
        phase = "first phase" if pattern.should_flash_in_even_phase else "second phase"
        return f"{seat_type} seat: Flash during {phase} at {pattern.frequency}Hz"

    # ── Validation ───────────────────────────────────────────────────────

    @staticmethod
    def is_valid_frequency(frequency: int) -> bool:
        return MIN_FREQUENCY <= frequency <= MAX_FREQUENCY

    @staticmethod
    def is_valid_duty_cycle(duty_cycle: float) -> bool:
        return MIN_DUTY_CYCLE <= duty_cycle <= MAX_DUTY_CYCLE

    def validate_frequency(self, frequency: int) -> int:
        if not self.is_valid_frequency(frequency):
            raise InvalidFrequencyError(
                f"Invalid frequency {frequency}. Must be between "
                f"{MIN_FREQUENCY}-{MAX_FREQUENCY} Hz"
            )
        return frequency

    def validate_duty_cycle(self, duty_cycle: float) -> float:
        if not self.is_valid_duty_cycle(duty_cycle):
            raise InvalidDutyCycleError(
                f"Invalid duty cycle {duty_cycle}. Must be between "
                f"{MIN_DUTY_CYCLE} and {MAX_DUTY_CYCLE}"
            )
        return duty_cycle

    # ── Colors ───────────────────────────────────────────────────────────

    def color_for(self, seat_is_even: bool) -> str:
        return self._even_color if seat_is_even else self._odd_color

    @staticmethod
    def is_valid_color(color: str | None) -> bool:
        return bool(color) and _HEX_COLOR_RE.match(color) is not None

    def validate_color(self, color: str) -> str:
        if not self.is_valid_color(color):
            raise InvalidColorError(f"Invalid color format: {color!r}")
        return color.upper()

    def resolve_color(self, seat_is_even: bool, override: str | None = None) -> str:
        """Return *override* if it is a valid color, else the parity default."""
        if override is None:
            return self.color_for(seat_is_even)
        if not self.is_valid_color(override):
            logger.warning("Ignoring invalid seat color override %r", override)
            return self.color_for(seat_is_even)
        return override.upper()


def phase_lights_seat(phase: Phase, seat_is_even: bool) -> bool:
    """True if *phase* is the half-cycle in which a seat of this parity lights."""
    if phase is Phase.EVEN_ON_ODD_OFF:
        return seat_is_even
    if phase is Phase.EVEN_OFF_ODD_ON:
        return not seat_is_even
    return False
