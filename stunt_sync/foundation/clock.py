"""Millisecond clock utilities.

Phase math runs on the monotonic clock; persisted safety timestamps and the
local-only blink fallback run on the wall clock.  This module is the single
source of "now" so tests can monkey-patch it trivially.
"""

from __future__ import annotations

import time
from datetime import datetime


def monotonic_ms() -> int:
    """Return the monotonic clock in whole milliseconds."""
    return int(time.monotonic() * 1000)


def wall_ms() -> int:
    """Return the wall clock (Unix epoch) in whole milliseconds."""
    return int(time.time() * 1000)


def local_now() -> datetime:
    """Return the current local time as a naive datetime."""
    return datetime.now()
