"""Actuators — the physical (or on-screen) output a scheduler drives.

Architectural rules:
    1. turn_on() / turn_off() are idempotent and never raise.
    2. Hardware access errors are caught here, logged, and flip the
       actuator to unavailable.  The scheduler keeps running; its
       transitions simply stop having an effect.
    3. Availability of a torch is probed exactly once, at construction.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from stunt_sync.foundation.channel import StateChannel

logger = logging.getLogger(__name__)

BLACK = "#000000"


class HardwareAccessError(Exception):
    """Raised by a TorchService when the hardware cannot be accessed."""


class TorchService(ABC):
    """Platform surface over the device's camera/torch units."""

    @abstractmethod
    def enumerate_units(self) -> list[str]:
        ...

    @abstractmethod
    def has_flash(self, unit: str) -> bool:
        ...

    @abstractmethod
    def set_torch(self, unit: str, on: bool) -> None:
        ...


class Actuator(ABC):
    """Capability set: turn_on, turn_off, is_available.

    Implementations publish what they currently output on ``output``.
    """

    output: StateChannel

    @abstractmethod
    def turn_on(self) -> None:
        ...

    @abstractmethod
    def turn_off(self) -> None:
        ...

    @property
    @abstractmethod
    def is_available(self) -> bool:
        ...

    @property
    @abstractmethod
    def is_on(self) -> bool:
        ...

    def apply(self, on: bool) -> None:
        """Scheduler callback: drive the output to *on*."""
        if on:
            self.turn_on()
        else:
            self.turn_off()


class TorchActuator(Actuator):
    """Camera torch on the first unit that advertises a flash."""

    def __init__(self, service: TorchService) -> None:
        self._service = service
        self._unit: str | None = None
        self._on = False
        self.output: StateChannel[bool] = StateChannel(False)
        self._probe()

    @property
    def unit(self) -> str | None:
        return self._unit

    @property
    def is_available(self) -> bool:
        return self._unit is not None

    @property
    def is_on(self) -> bool:
        return self._on

    def turn_on(self) -> None:
        if self._unit is None or self._on:
            return
        if self._set(True):
            logger.debug("Flash turned ON")

    def turn_off(self) -> None:
        if self._unit is None or not self._on:
            return
        if self._set(False):
            logger.debug("Flash turned OFF")

    def _set(self, on: bool) -> bool:
        try:
            self._service.set_torch(self._unit, on)
        except HardwareAccessError as exc:
            logger.error("Torch access error on unit %s, disabling flash: %s", self._unit, exc)
            self._unit = None
            self._on = False
            self.output.publish(False)
            return False
        self._on = on
        self.output.publish(on)
        return True

    def _probe(self) -> None:
        try:
            for unit in self._service.enumerate_units():
                if self._service.has_flash(unit):
                    self._unit = unit
                    logger.info("Flash available on unit %s", unit)
                    return
        except HardwareAccessError as exc:
            logger.error("Torch access error during probe: %s", exc)
            return
        logger.warning("No flash available on device")


class ColorActuator(Actuator):
    """Screen output: shows the seat color when on and black when off."""

    def __init__(self, color: str = "#FFFFFF") -> None:
        self._color = color
        self._on = False
        self.output: StateChannel[str] = StateChannel(BLACK)

    @property
    def color(self) -> str:
        return self._color

    @color.setter
    def color(self, value: str) -> None:
        self._color = value
        if self._on:
            self.output.publish(value)

    @property
    def is_available(self) -> bool:
        return True

    @property
    def is_on(self) -> bool:
        return self._on

    @property
    def displayed(self) -> str:
        return self.output.value

    def turn_on(self) -> None:
        if self._on:
            return
        self._on = True
        self.output.publish(self._color)

    def turn_off(self) -> None:
        if not self._on:
            return
        self._on = False
        self.output.publish(BLACK)


class SimulatedTorchService(TorchService):
    """In-process torch for demo runs and tests.

    Args:
        units: Mapping of unit id → whether it has a flash.
    """

    def __init__(self, units: dict[str, bool] | None = None) -> None:
        self.units = dict(units if units is not None else {"0": True})
        self.states: dict[str, bool] = {u: False for u in self.units}
        self.calls: list[tuple[str, bool]] = []
        self.fail = False

    def enumerate_units(self) -> list[str]:
        if self.fail:
            raise HardwareAccessError("camera service unavailable")
        return list(self.units)

    def has_flash(self, unit: str) -> bool:
        return self.units.get(unit, False)

    def set_torch(self, unit: str, on: bool) -> None:
        if self.fail:
            raise HardwareAccessError(f"unit {unit} is in use")
        self.calls.append((unit, on))
        self.states[unit] = on
