"""Identifier generation for devices."""

from __future__ import annotations

from uuid import uuid4

from stunt_sync.foundation.clock import wall_ms


def new_device_id() -> str:
    """Generate a new random per-install device identifier."""
    return uuid4().hex


def demo_device_id() -> str:
    """Synthesize an identifier for offline/demo operation."""
    return f"demo_user_{wall_ms()}"
