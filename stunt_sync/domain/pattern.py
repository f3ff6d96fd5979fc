"""Flash pattern and timing value types.

A FlashPattern says *which* half-cycle a seat lights in.  A FlashTiming says
*when* the half-cycles fall: one full oscillator cycle is two periods, the
first lighting even seats and the second lighting odd seats.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class FlashPattern(BaseModel):
    """Derived per-seat pattern.  Recomputed whenever seat or frequency changes."""

    is_even_seat: bool
    frequency: int = Field(..., ge=1, le=10, description="Flashes per second")
    duty_cycle: float = Field(..., ge=0.1, le=0.9, description="Fraction of a period spent on")
    should_flash_in_even_phase: bool

    model_config = {"frozen": True}


class FlashTiming(BaseModel):
    """Timing for one scheduler run, anchored to a shared reference instant."""

    frequency: int = Field(..., gt=0)
    duty_cycle: float = Field(0.5, ge=0.1, le=0.9)
    reference_timestamp: int = Field(0, description="Clock value (ms) every device anchors to")

    model_config = {"frozen": True}

    @property
    def period_ms(self) -> int:
        return 1000 // self.frequency

    @property
    def on_duration_ms(self) -> int:
        return round(self.period_ms * self.duty_cycle)

    @property
    def off_duration_ms(self) -> int:
        return self.period_ms - self.on_duration_ms

    @property
    def full_cycle_ms(self) -> int:
        return 2 * self.period_ms
