"""SafetyState — immutable snapshot of the flash safety interlock."""

from __future__ import annotations

from pydantic import BaseModel, Field

DAILY_LIMIT_REASON = "Daily flash limit exceeded. Please wait until tomorrow."


class SafetyProfile(BaseModel):
    """Limits applied by one safety mode."""

    max_frequency_hz: int
    max_continuous_duration_ms: int

    model_config = {"frozen": True}


PHOTOSENSITIVE_PROFILE = SafetyProfile(max_frequency_hz=3, max_continuous_duration_ms=30_000)
STANDARD_PROFILE = SafetyProfile(max_frequency_hz=10, max_continuous_duration_ms=300_000)


class SafetyState(BaseModel):
    """What the SafetyGate currently allows.

    The effective continuous limit doubles as the daily budget, so
    ``max_daily_duration_ms`` always equals ``max_continuous_duration_ms``.
    """

    photosensitive_mode_enabled: bool = False
    max_continuous_duration_ms: int = STANDARD_PROFILE.max_continuous_duration_ms
    max_daily_duration_ms: int = STANDARD_PROFILE.max_continuous_duration_ms
    max_frequency_hz: int = STANDARD_PROFILE.max_frequency_hz
    cumulative_today_ms: int = Field(0, ge=0)
    safety_warning_shown: bool = False
    session_active: bool = False
    can_flash: bool = True
    block_reason: str | None = None

    model_config = {"frozen": True}
