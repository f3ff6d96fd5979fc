"""Controlled enumerations for the stunt-sync domain."""

from __future__ import annotations

from enum import Enum


class Phase(str, Enum):
    """Which half of the alternating cycle is lit.

    STOPPED is the idle state; the other two alternate while a show runs.
    """

    EVEN_ON_ODD_OFF = "even_on_odd_off"
    EVEN_OFF_ODD_ON = "even_off_odd_on"
    STOPPED = "stopped"


class OutputMode(str, Enum):
    """How a device renders its phase: camera torch or screen color."""

    FLASH = "flash"
    COLOR = "color"
