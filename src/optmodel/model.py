"""Stateful option model.

An :class:`OptionModel` owns one :class:`~optmodel.core.OptionParameters`
set plus its option type.  Queries validate the set and forward to the
pure functions in :mod:`optmodel.calculator`; the two calibrations
(:meth:`OptionModel.set_strike_by_delta` and
:meth:`OptionModel.set_sigma_by_price`) solve for the strike or the
volatility and store the result in place.
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import replace
from enum import Enum
from typing import Any, Mapping

from scipy.optimize import brentq

from . import calculator
from .core import DAYS_PER_YEAR, CALL, PUT, OptionParameters, OptionType
from .errors import (
    DeltaOutOfRange,
    InvalidParameters,
    NonConvergence,
    PriceOutOfRange,
)

__all__ = [
    "ConvergencePolicy",
    "OptionKind", "CallKind", "PutKind",
    "OptionModel", "CallModel", "PutModel",
]

logger = logging.getLogger(__name__)

# strike-by-delta search
PERCENT_STEP_STRIKE = 2.0 / 100
SET_STRIKE_ACCURACY = 0.1 / 100
LAST_TRY_ACCURACY = 0.033
MAX_CYCLES = 2000

# sigma-by-price search
MIN_SIGMA, MAX_SIGMA = 1e-6, 10.0


class ConvergencePolicy(str, Enum):
    """What :meth:`OptionModel.set_sigma_by_price` does with an unreachable price."""
    BEST_EFFORT = "best_effort"
    RAISE = "raise"


# ---------------------------------------------------------------------------
# Call / put capabilities
# ---------------------------------------------------------------------------
class OptionKind(ABC):
    """The type-dependent half of the calculator, bound to one option type."""

    option_type: OptionType
    #: +1 if a higher strike lowers ``|delta|``, -1 if it raises it.
    strike_direction: int

    @abstractmethod
    def price(self, params: OptionParameters) -> float: ...

    @abstractmethod
    def delta(self, params: OptionParameters) -> float: ...

    @abstractmethod
    def theta(self, params: OptionParameters) -> float: ...

    @abstractmethod
    def implied_volatility(self, params: OptionParameters, target_price: float) -> float: ...


class CallKind(OptionKind):
    option_type = CALL
    strike_direction = 1

    def price(self, params):
        return calculator.price_call(*params.as_args())

    def delta(self, params):
        return calculator.delta_call(*params.as_args())

    def theta(self, params):
        return calculator.theta_call(*params.as_args())

    def implied_volatility(self, params, target_price):
        S, K, T, r, _, q = params.as_args()
        return calculator.implied_vol_call(S, K, T, r, target_price, q)


class PutKind(OptionKind):
    option_type = PUT
    strike_direction = -1

    def price(self, params):
        return calculator.price_put(*params.as_args())

    def delta(self, params):
        return calculator.delta_put(*params.as_args())

    def theta(self, params):
        return calculator.theta_put(*params.as_args())

    def implied_volatility(self, params, target_price):
        S, K, T, r, _, q = params.as_args()
        return calculator.implied_vol_put(S, K, T, r, target_price, q)


_KINDS: dict[OptionType, OptionKind] = {CALL: CallKind(), PUT: PutKind()}

_CONFIG_ALIASES = {
    "price": "underlying",
    "dte": "days_to_expiry",
    "time": "time_to_expiry",
    "interest": "interest_rate",
    "sigma": "volatility",
    "dividend": "dividend_yield",
    "type": "option_type",
}
_CONFIG_KEYS = frozenset({
    "option_type", "underlying", "strike", "delta",
    "days_to_expiry", "time_to_expiry", "interest_rate",
    "volatility", "dividend_yield", "target_price",
})


def _as_float(value) -> float | None:
    return None if value is None else float(value)


# ---------------------------------------------------------------------------
# Model
# ---------------------------------------------------------------------------
class OptionModel:
    """A single European option with mutable parameters.

    Parameters
    ----------
    option_type : OptionType or str
        ``"call"`` or ``"put"``.
    underlying : float
        Spot price.
    strike : float, optional
        Strike price.  When omitted it is solved from ``delta``.
    delta : float, optional
        Target ``|delta|`` in ``[0, 1]`` (give puts as positive numbers);
        only used when ``strike`` is omitted.
    days_to_expiry : float, optional
        Calendar days to expiry; takes precedence over ``time_to_expiry``.
    time_to_expiry : float, optional
        Years to expiry (default 0).
    interest_rate, volatility, dividend_yield : float
        Continuous rate, annualised sigma and continuous yield.
    target_price : float, optional
        When given, ``volatility`` is solved to reproduce this price.
    strict : bool
        Require ``volatility > 0`` in addition to the usual checks.
    sigma_policy : ConvergencePolicy
        Default failure policy of :meth:`set_sigma_by_price`.
    """

    def __init__(
        self,
        option_type: OptionType | str,
        *,
        underlying: float,
        strike: float | None = None,
        delta: float | None = None,
        days_to_expiry: float | None = None,
        time_to_expiry: float | None = None,
        interest_rate: float = 0.0,
        volatility: float | None = 0.0,
        dividend_yield: float = 0.0,
        target_price: float | None = None,
        strict: bool = False,
        sigma_policy: ConvergencePolicy | str = ConvergencePolicy.BEST_EFFORT,
    ):
        if strike is None and delta is None:
            raise InvalidParameters("either strike or delta is required")
        if strike is not None and delta is not None:
            raise InvalidParameters("give strike or delta, not both")

        self.option_type = option_type
        self.strict = strict
        self.sigma_policy = ConvergencePolicy(sigma_policy)

        self._params = OptionParameters(
            underlying=float(underlying),
            strike=float(strike) if strike is not None else float(underlying),
            time_to_expiry=0.0,
            interest_rate=float(interest_rate or 0.0),
            volatility=float(volatility or 0.0),
            dividend_yield=float(dividend_yield or 0.0),
        )
        if days_to_expiry is not None:
            self.days_to_expiry = days_to_expiry
        else:
            self.time_to_expiry = _as_float(time_to_expiry) or 0.0

        if strike is None:
            self.set_strike_by_delta(float(delta))
        if target_price is not None:
            self.set_sigma_by_price(float(target_price))

    @classmethod
    def from_config(cls, config: Mapping[str, Any], **overrides) -> "OptionModel":
        """Build a model from a configuration record.

        Accepts the constructor's keyword names and the short aliases
        ``price``, ``dte``, ``time``, ``interest``, ``sigma``, ``dividend``
        and ``type``.
        """
        kwargs: dict[str, Any] = {}
        for key, value in {**config, **overrides}.items():
            name = _CONFIG_ALIASES.get(key, key)
            if name not in _CONFIG_KEYS:
                raise ValueError(f"unknown option parameter {key!r}")
            if name in kwargs:
                raise ValueError(f"option parameter {name!r} given twice")
            kwargs[name] = value
        return cls(**kwargs)

    def __repr__(self) -> str:
        p = self._params
        return (
            f"{type(self).__name__}({self.option_type.value}, underlying={p.underlying}, "
            f"strike={p.strike}, time_to_expiry={p.time_to_expiry}, "
            f"interest_rate={p.interest_rate}, volatility={p.volatility}, "
            f"dividend_yield={p.dividend_yield})"
        )

    # --- parameters ---------------------------------------------------------
    @property
    def option_type(self) -> OptionType:
        return self._kind.option_type

    @option_type.setter
    def option_type(self, value: OptionType | str) -> None:
        self._kind = _KINDS[OptionType.parse(value)]

    @property
    def is_call(self) -> bool:
        return self.option_type == CALL

    @property
    def is_put(self) -> bool:
        return self.option_type == PUT

    @property
    def parameters(self) -> OptionParameters:
        """Copy of the current parameter set."""
        return replace(self._params)

    @property
    def underlying(self) -> float:
        return self._params.underlying

    @underlying.setter
    def underlying(self, value: float) -> None:
        self._params.underlying = float(value)

    @property
    def strike(self) -> float:
        return self._params.strike

    @strike.setter
    def strike(self, value: float) -> None:
        self._params.strike = float(value)

    @property
    def days_to_expiry(self) -> float:
        return self._days

    @days_to_expiry.setter
    def days_to_expiry(self, n: float | None) -> None:
        n = 0.0 if n is None else float(n)
        n = max(n, 0.0)
        self._params.time_to_expiry = n / DAYS_PER_YEAR
        self._days = n

    @property
    def time_to_expiry(self) -> float:
        return self._params.time_to_expiry

    @time_to_expiry.setter
    def time_to_expiry(self, years: float) -> None:
        years = float(years)
        self._params.time_to_expiry = years
        self._days = years * DAYS_PER_YEAR

    @property
    def interest_rate(self) -> float:
        return self._params.interest_rate

    @interest_rate.setter
    def interest_rate(self, value: float) -> None:
        self._params.interest_rate = float(value)

    @property
    def volatility(self) -> float:
        return self._params.volatility

    @volatility.setter
    def volatility(self, value: float) -> None:
        self._params.volatility = float(value)

    @property
    def dividend_yield(self) -> float:
        return self._params.dividend_yield

    @dividend_yield.setter
    def dividend_yield(self, value: float) -> None:
        self._params.dividend_yield = float(value)

    def values(self) -> dict[str, Any]:
        p = self._params
        return {
            "option_type": self.option_type.value,
            "underlying": p.underlying,
            "strike": p.strike,
            "volatility": p.volatility,
            "days_to_expiry": self._days,
            "time_to_expiry": p.time_to_expiry,
            "interest_rate": p.interest_rate,
            "dividend_yield": p.dividend_yield,
        }

    # --- queries ------------------------------------------------------------
    def _validated(self) -> OptionParameters:
        self._params.validate(self.strict)
        return self._params

    def price(self) -> float:
        return self._kind.price(self._validated())

    def delta(self) -> float:
        return self._kind.delta(self._validated())

    def gamma(self) -> float:
        return calculator.gamma(*self._validated().as_args())

    def theta(self) -> float:
        """Value lost per calendar day."""
        return self._kind.theta(self._validated())

    def vega(self) -> float:
        """Value gained per volatility point."""
        return calculator.vega(*self._validated().as_args())

    def implied_volatility(self, target_price: float) -> float:
        """Volatility that reproduces ``target_price``; the model is not changed."""
        return self._kind.implied_volatility(self._validated(), float(target_price))

    def greeks(self) -> dict[str, float]:
        """Delta, gamma, theta, vega and ``iv`` (volatility in percent)."""
        snapshot = calculator.greeks(self.option_type, *self._validated().as_args())
        del snapshot["price"]
        snapshot["iv"] = self.volatility * 100
        return snapshot

    # --- strike from delta --------------------------------------------------
    def _abs_delta_at(self, strike: float) -> float:
        trial = replace(self._params, strike=strike)
        trial.validate(self.strict)
        return abs(self._kind.delta(trial))

    def set_strike_by_delta(self, target_delta: float) -> float:
        """Solve and store the strike whose ``|delta|`` matches ``target_delta``.

        The search starts at the underlying, steps the strike geometrically
        (by ``1 + 2% + i/250``) until the target delta is bracketed and then
        refines the bracket with Brent's method.  A strike within
        ``SET_STRIKE_ACCURACY`` of the target is rounded to cents; one within
        ``LAST_TRY_ACCURACY`` is accepted as is.

        Raises
        ------
        DeltaOutOfRange
            ``target_delta`` outside ``[0, 1]``.
        NonConvergence
            Delta is flat at zero or the target cannot be reached.  The
            previous strike is left in place.
        """
        if not 0.0 <= target_delta <= 1.0:
            raise DeltaOutOfRange(f"delta `{target_delta}` should be in range 0..1")

        target = abs(float(target_delta))
        logger.debug("set strike by delta %s for %r", target, self)
        strike = self._search_strike(target)
        self._params.strike = strike
        logger.debug("strike %s reproduces delta %s", strike, target)
        return strike

    def _search_strike(self, target: float) -> float:
        strike = self._params.underlying
        calced = self._abs_delta_at(strike)

        if abs(calced - target) <= SET_STRIKE_ACCURACY:
            return self._round_strike(strike, target)
        if calced == 0:
            raise NonConvergence(
                f"Set strike: can't find value for delta {target}, delta is flat at zero",
                target,
            )

        # a higher strike moves |delta| down for calls and up for puts
        upward = (calced > target) == (self._kind.strike_direction > 0)
        error = calced - target
        for i in range(MAX_CYCLES):
            step = 1.0 + PERCENT_STEP_STRIKE + i / 250.0
            nxt = strike * step if upward else strike / step
            if not math.isfinite(nxt) or nxt <= 0:
                break

            nxt_error = self._abs_delta_at(nxt) - target
            if abs(nxt_error) <= SET_STRIKE_ACCURACY:
                return self._round_strike(nxt, target)
            if nxt_error * error < 0:
                lo, hi = sorted((strike, nxt))
                root = brentq(
                    lambda k: self._abs_delta_at(k) - target,
                    lo, hi, xtol=1e-10, maxiter=MAX_CYCLES,
                )
                return self._settle_strike(root, target, "bracket refinement missed the target")
            strike, error = nxt, nxt_error

        return self._settle_strike(
            strike, target, f"limit reached: {MAX_CYCLES} cycles",
        )

    def _settle_strike(self, strike: float, target: float, reason: str) -> float:
        diff = abs(self._abs_delta_at(strike) - target)
        if diff <= SET_STRIKE_ACCURACY:
            return self._round_strike(strike, target)
        if diff <= LAST_TRY_ACCURACY:
            logger.warning(
                "set strike: accepting strike %s with delta error %.4f for target %s",
                strike, diff, target,
            )
            return strike
        raise NonConvergence(
            f"Set strike: can't find value for delta {target}, {reason}", target,
        )

    def _round_strike(self, strike: float, target: float) -> float:
        rounded = round(strike, 2)
        if rounded > 0 and abs(self._abs_delta_at(rounded) - target) <= SET_STRIKE_ACCURACY:
            return rounded
        return strike

    # --- sigma from price ---------------------------------------------------
    def set_sigma_by_price(
        self,
        target_price: float,
        policy: ConvergencePolicy | str | None = None,
    ) -> float:
        """Solve and store the volatility that reproduces ``target_price``.

        Brent's method on ``(MIN_SIGMA, MAX_SIGMA]``.  The result counts as
        converged when the relative price error rounds to zero at one
        decimal.  An unconverged result is stored anyway under
        ``ConvergencePolicy.BEST_EFFORT`` (the bound whose price is closest)
        and raises under ``ConvergencePolicy.RAISE``.

        Raises
        ------
        PriceOutOfRange
            ``target_price`` is not positive.
        NonConvergence
            Only with ``ConvergencePolicy.RAISE``.
        """
        if not target_price > 0:
            raise PriceOutOfRange(f"target price `{target_price}` should be positive")
        policy = self.sigma_policy if policy is None else ConvergencePolicy(policy)
        self._params.validate(strict=False)

        def error_at(sigma: float) -> float:
            return self._kind.price(replace(self._params, volatility=sigma)) - target_price

        err_lo, err_hi = error_at(MIN_SIGMA), error_at(MAX_SIGMA)
        if err_lo == 0:
            sigma = MIN_SIGMA
        elif err_hi == 0:
            sigma = MAX_SIGMA
        elif err_lo * err_hi < 0:
            sigma = brentq(error_at, MIN_SIGMA, MAX_SIGMA, xtol=1e-10, maxiter=MAX_CYCLES)
        else:
            sigma = MIN_SIGMA if abs(err_lo) <= abs(err_hi) else MAX_SIGMA

        if round(abs(error_at(sigma)) / target_price, 1) != 0:
            if policy is ConvergencePolicy.RAISE:
                raise NonConvergence(
                    f"Set sigma: can't find value for price {target_price}", target_price,
                )
            logger.warning(
                "set sigma: price %s unreachable, keeping best-effort sigma %s",
                target_price, sigma,
            )

        self._params.volatility = sigma
        return sigma


def _fix_option_type(params: dict, option_type: OptionType) -> dict:
    given = params.pop("option_type", option_type)
    if OptionType.parse(given) != option_type:
        raise InvalidParameters(
            f"option_type {given!r} conflicts with a {option_type.value} model"
        )
    params["option_type"] = option_type
    return params


class CallModel(OptionModel):
    def __init__(self, **params):
        super().__init__(**_fix_option_type(params, CALL))


class PutModel(OptionModel):
    def __init__(self, **params):
        super().__init__(**_fix_option_type(params, PUT))
