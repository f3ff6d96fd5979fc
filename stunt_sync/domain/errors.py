"""Input errors raised synchronously to the immediate caller.

Remote, hardware and safety failures are NOT represented here: those are
logged and absorbed by the component that meets them.
"""

from __future__ import annotations


class InputError(ValueError):
    """Base class for rejected caller input.  ``str(exc)`` is the reason."""


class InvalidSeatError(InputError):
    """Seat text could not be parsed into section, row and seat number."""


class InvalidFrequencyError(InputError):
    """Frequency outside the supported 1–10 Hz range."""


class InvalidDutyCycleError(InputError):
    """Duty cycle outside the supported 0.1–0.9 range."""


class InvalidColorError(InputError):
    """Color string is not a #RRGGBB or #AARRGGBB hex value."""


class UnsafeFrequencyError(InputError):
    """Frequency is valid but above the active safety profile's limit."""


class ShowNotReadyError(RuntimeError):
    """A show was started before a seat was assigned."""
