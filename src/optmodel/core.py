from __future__ import annotations
from dataclasses import dataclass, astuple
from enum import Enum

from .errors import InvalidParameters

DAYS_PER_YEAR = 365.0


class OptionType(str, Enum):
    """Which payoff the option carries; selects the call or put formulas."""
    CALL = "call"
    PUT = "put"

    @classmethod
    def parse(cls, value) -> "OptionType":
        """Accept a member, ``"call"``/``"c"`` or ``"put"``/``"p"``."""
        if isinstance(value, cls):
            return value
        s = str(value).strip().lower()
        if s in {"call", "c"}:
            return cls.CALL
        if s in {"put", "p"}:
            return cls.PUT
        raise ValueError(f"option type must be 'call' or 'put', got {value!r}")


CALL = OptionType.CALL
PUT = OptionType.PUT


# ---------------------------------------------------------------------------
# Parameter set handed to every calculator function
# ---------------------------------------------------------------------------
@dataclass
class OptionParameters:
    """Scalar inputs of a single European option.

    Parameters
    ----------
    underlying : float
        Spot price of the underlying.
    strike : float
        Strike price.
    time_to_expiry : float
        Time to expiry in years.
    interest_rate : float
        Continuously-compounded risk-free rate.
    volatility : float
        Annualised volatility (sigma).
    dividend_yield : float
        Continuous dividend yield.
    """
    underlying: float
    strike: float
    time_to_expiry: float
    interest_rate: float = 0.0
    volatility: float = 0.0
    dividend_yield: float = 0.0

    def is_valid(self, strict: bool = False) -> bool:
        return self.problem(strict) is None

    def problem(self, strict: bool = False) -> str | None:
        """Describe the first violated constraint, or ``None``."""
        if not self.underlying > 0:
            return f"underlying must be positive, got {self.underlying}"
        if not self.strike > 0:
            return f"strike must be positive, got {self.strike}"
        if strict and not self.volatility > 0:
            return f"volatility must be positive, got {self.volatility}"
        if not self.volatility >= 0:
            return f"volatility must be non-negative, got {self.volatility}"
        if not self.time_to_expiry >= 0:
            return f"time_to_expiry must be non-negative, got {self.time_to_expiry}"
        return None

    def validate(self, strict: bool = False) -> None:
        msg = self.problem(strict)
        if msg is not None:
            raise InvalidParameters(msg)

    def as_args(self) -> tuple[float, float, float, float, float, float]:
        """Calculator argument order: underlying, strike, time, interest, sigma, dividend."""
        return astuple(self)
