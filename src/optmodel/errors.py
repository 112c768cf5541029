"""Exception hierarchy.

Every error raised by the package derives from :class:`OptionModelError`.
The value errors also subclass :class:`ValueError` so callers that only
guard against bad input keep working.
"""

from __future__ import annotations

__all__ = [
    "OptionModelError",
    "InvalidInput",
    "InvalidParameters",
    "OutOfRange",
    "DeltaOutOfRange",
    "PriceOutOfRange",
    "NonConvergence",
]


class OptionModelError(Exception):
    """Base class for pricing and calibration failures."""


class InvalidInput(OptionModelError, ValueError):
    """A calculator function received a value it cannot work with (NaN)."""


class InvalidParameters(OptionModelError, ValueError):
    """The option's parameter set violates the pricing invariant."""


class OutOfRange(OptionModelError, ValueError):
    """A calibration target lies outside its admissible range."""


class DeltaOutOfRange(OutOfRange):
    pass


class PriceOutOfRange(OutOfRange):
    pass


class NonConvergence(OptionModelError, ArithmeticError):
    """A calibration search could not reach its target.

    Parameters
    ----------
    message : str
        Human readable description.
    target : float
        The delta or price that could not be reproduced.
    """

    def __init__(self, message: str, target: float):
        super().__init__(message)
        self.target = target
