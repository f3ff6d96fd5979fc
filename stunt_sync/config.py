"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "stunt-sync"
    debug: bool = False
    log_level: str = "INFO"

    # Device identity
    device_id: str | None = None
    identity_path: str = ".stunt_sync/device_id"

    # Safety interlock
    safety_state_path: str = ".stunt_sync/flash_safety.json"
    safety_check_interval_seconds: float = 1.0

    # Shared record store.  Unset means this process hosts the store itself.
    store_url: str | None = None
    store_timeout_seconds: float = 5.0

    # Remote config: defaults used until the first successful fetch
    remote_config_refresh_seconds: int = 3600
    flash_enabled: bool = True
    default_flash_frequency: int = 2
    max_flash_frequency: int = 10
    flash_duty_cycle: float = 0.5
    flash_safety_enabled: bool = True
    default_blue_color: str = "#0000FF"
    default_red_color: str = "#FF0000"

    # Wall-clock start time for the show, "HH:MM:SS" (24h).  None starts immediately.
    show_start_time: str | None = None

    model_config = {"env_prefix": "STUNT_"}


settings = Settings()
