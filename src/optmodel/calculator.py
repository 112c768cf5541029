# calculator.py
# Closed-form Black-Scholes-Merton pricing, Greeks and implied vol.
# Every public function is a pure function of
#     (underlying, strike, time, interest, sigma, dividend)
# and returns a plain float.

from __future__ import annotations
import logging
import math
import threading

import numpy as np

from .core import OptionType, CALL
from .errors import InvalidInput

__all__ = [
    "phi", "norm_sdist", "series_saturations",
    "d_one", "d_two",
    "price_call", "price_put",
    "delta_call", "delta_put", "gamma", "vega",
    "theta_call", "theta_put",
    "implied_vol_call", "implied_vol_put",
    "greeks",
    "DEGENERATE_VALUES", "NAN_FALLBACKS",
]

logger = logging.getLogger(__name__)

# implied-vol bisection range and stopping width
LOW_VOL, HIGH_VOL, VOL_TOLERANCE = 0.0, 5.0, 0.0001

# time below this is treated as expiry
TIME_THRESHOLD = 0.00001

# tails of the normal distribution are clamped outside these scores
MIN_Z_SCORE, MAX_Z_SCORE = -7.98, +7.98

# series divisor at which norm_sdist gives up and saturates
MAX_SERIES_DIVISOR = 1000

_SQRT_2PI = math.sqrt(2.0 * math.pi)


# ---------------------------------------------------------------------------
# Degenerate-input policy
# ---------------------------------------------------------------------------
EXPIRED, NEAR_EXPIRY, LIVE = "expired", "near_expiry", "live"

#: Limiting values used instead of the closed form, keyed by
#: ``(metric, at_the_money, expiry_state)``.
DEGENERATE_VALUES: dict[tuple[str, bool, str], float] = {
    **{
        (metric, True, state): value
        for metric, value in (
            ("d1", 0.0),
            ("price_call", 0.0),
            ("price_put", 0.0),
            ("delta_call", 0.5),
            ("gamma", 0.0),
        )
        for state in (EXPIRED, NEAR_EXPIRY)
    },
    **{
        (metric, atm, EXPIRED): 0.0
        for metric in ("theta_call", "theta_put")
        for atm in (True, False)
    },
}

#: Value substituted when a metric's closed form evaluates to NaN
#: (zero ``sigma * sqrt(time)`` against a zero numerator).
NAN_FALLBACKS: dict[str, float] = {
    "gamma": 0.0,
    "theta_call": 0.0,
    "theta_put": 0.0,
    "vega": 0.0,
}


def _expiry_state(time: float) -> str:
    if time == 0:
        return EXPIRED
    if time <= TIME_THRESHOLD:
        return NEAR_EXPIRY
    return LIVE


def _degenerate(metric: str, underlying: float, strike: float, time: float) -> float | None:
    return DEGENERATE_VALUES.get((metric, underlying == strike, _expiry_state(time)))


def _finite_or_fallback(metric: str, value: float) -> float:
    if math.isnan(value):
        return NAN_FALLBACKS[metric]
    return value


def _ieee_div(numerator: float, denominator: float) -> float:
    """Float division yielding +-inf / NaN on a zero denominator instead of raising."""
    with np.errstate(divide="ignore", invalid="ignore"):
        return float(np.float64(numerator) / np.float64(denominator))


# ---------------------------------------------------------------------------
# Saturation counter for the normal-distribution series
# ---------------------------------------------------------------------------
class _EventCounter:
    def __init__(self):
        self._lock = threading.Lock()
        self._count = 0

    def increment(self) -> None:
        with self._lock:
            self._count += 1

    @property
    def value(self) -> int:
        with self._lock:
            return self._count


_saturations = _EventCounter()


def series_saturations() -> int:
    """Number of times :func:`norm_sdist` hit its series ceiling in this process."""
    return _saturations.value


# ---------------------------------------------------------------------------
# Standard normal
# ---------------------------------------------------------------------------
def phi(x: float) -> float:
    """Standard Gaussian pdf."""
    return math.exp(-1.0 * x * x / 2.0) / _SQRT_2PI


def norm_sdist(z: float) -> float:
    """Standard normal CDF from the Taylor series around ``phi(z)``.

        N(z) = 0.5 + phi(z) * (z + z^3/3 + z^5/(3*5) + ...)

    Scores outside ``[MIN_Z_SCORE, MAX_Z_SCORE]`` are clamped to 0 / 1,
    where the series stops being numerically significant.  Terms are added
    until they no longer change the running sum.  Should the divisor reach
    ``MAX_SERIES_DIVISOR`` first, the result saturates by the sign of ``z``.

    Raises
    ------
    InvalidInput
        If ``z`` is NaN.
    """
    if z <= MIN_Z_SCORE:
        return 0.0
    if z >= MAX_Z_SCORE:
        return 1.0
    if math.isnan(z):
        raise InvalidInput("norm_sdist: z is not a number")

    i, total, term = 3.0, 0.0, z
    while total + term != total:
        total = total + term
        term = term * z * z / i
        i += 2.0

        if i >= MAX_SERIES_DIVISOR:
            _saturations.increment()
            logger.warning(
                "norm_sdist: series did not settle before divisor %d (z=%r), saturating",
                MAX_SERIES_DIVISOR, z,
            )
            return 1.0 if z > 0 else 0.0

    return 0.5 + total * phi(z)


# ---------------------------------------------------------------------------
# d1 / d2
# ---------------------------------------------------------------------------
def d_one(underlying, strike, time, interest, sigma, dividend) -> float:
    """Standardised distance of the forward from the strike, plus half the variance."""
    limit = _degenerate("d1", underlying, strike, time)
    if limit is not None:
        return limit

    with np.errstate(divide="ignore"):
        log_moneyness = float(np.log(np.float64(underlying) / np.float64(strike)))
    numerator = log_moneyness + (interest - dividend + 0.5 * sigma ** 2.0) * time
    denominator = sigma * math.sqrt(time)
    return _ieee_div(numerator, denominator)


def d_two(underlying, strike, time, interest, sigma, dividend) -> float:
    return d_one(underlying, strike, time, interest, sigma, dividend) - sigma * math.sqrt(time)


# ---------------------------------------------------------------------------
# Prices
# ---------------------------------------------------------------------------
def price_call(underlying, strike, time, interest, sigma, dividend) -> float:
    """Fair value of the call for the given volatility."""
    limit = _degenerate("price_call", underlying, strike, time)
    if limit is not None:
        return limit

    d1 = d_one(underlying, strike, time, interest, sigma, dividend)
    d2 = d1 - sigma * math.sqrt(time)
    disc_q = math.exp(-dividend * time)
    disc_r = math.exp(-interest * time)
    return disc_q * underlying * norm_sdist(d1) - disc_r * strike * norm_sdist(d2)


def price_put(underlying, strike, time, interest, sigma, dividend) -> float:
    """Fair value of the put for the given volatility."""
    limit = _degenerate("price_put", underlying, strike, time)
    if limit is not None:
        return limit

    d1 = d_one(underlying, strike, time, interest, sigma, dividend)
    d2 = d1 - sigma * math.sqrt(time)
    disc_q = math.exp(-dividend * time)
    disc_r = math.exp(-interest * time)
    return disc_r * strike * norm_sdist(-d2) - disc_q * underlying * norm_sdist(-d1)


# ---------------------------------------------------------------------------
# Greeks
# ---------------------------------------------------------------------------
def delta_call(underlying, strike, time, interest, sigma, dividend) -> float:
    limit = _degenerate("delta_call", underlying, strike, time)
    if limit is not None:
        return limit
    return norm_sdist(d_one(underlying, strike, time, interest, sigma, dividend))


def delta_put(underlying, strike, time, interest, sigma, dividend) -> float:
    return delta_call(underlying, strike, time, interest, sigma, dividend) - 1.0


def gamma(underlying, strike, time, interest, sigma, dividend) -> float:
    """Change of delta per unit move of the underlying (same for calls and puts)."""
    limit = _degenerate("gamma", underlying, strike, time)
    if limit is not None:
        return limit

    d1 = d_one(underlying, strike, time, interest, sigma, dividend)
    g = _ieee_div(phi(d1), underlying * sigma * math.sqrt(time))
    return _finite_or_fallback("gamma", g)


def vega(underlying, strike, time, interest, sigma, dividend) -> float:
    """Price change for a one percentage point move in volatility."""
    d1 = d_one(underlying, strike, time, interest, sigma, dividend)
    return _finite_or_fallback("vega", 0.01 * underlying * math.sqrt(time) * phi(d1))


def _theta_decay(underlying, strike, time, interest, sigma, dividend) -> float:
    d1 = d_one(underlying, strike, time, interest, sigma, dividend)
    return _ieee_div(underlying * phi(d1) * sigma, 2.0 * math.sqrt(time))


def theta_call(underlying, strike, time, interest, sigma, dividend) -> float:
    """Call value lost per calendar day."""
    limit = _degenerate("theta_call", underlying, strike, time)
    if limit is not None:
        return limit

    term1 = _theta_decay(underlying, strike, time, interest, sigma, dividend)
    d2 = d_two(underlying, strike, time, interest, sigma, dividend)
    term2 = interest * strike * math.exp(-interest * time) * norm_sdist(d2)
    return _finite_or_fallback("theta_call", (-term1 - term2) / 365.0)


def theta_put(underlying, strike, time, interest, sigma, dividend) -> float:
    """Put value lost per calendar day."""
    limit = _degenerate("theta_put", underlying, strike, time)
    if limit is not None:
        return limit

    term1 = _theta_decay(underlying, strike, time, interest, sigma, dividend)
    d2 = d_two(underlying, strike, time, interest, sigma, dividend)
    term2 = interest * strike * math.exp(-interest * time) * norm_sdist(-d2)
    return _finite_or_fallback("theta_put", (-term1 + term2) / 365.0)


# ---------------------------------------------------------------------------
# Implied volatility (bisection)
# ---------------------------------------------------------------------------
def _bisect_vol(pricer, underlying, strike, time, interest, target_price, dividend) -> float:
    # relies on price being increasing in sigma; unreachable targets end at a bound
    low, high = LOW_VOL, HIGH_VOL
    while high - low > VOL_TOLERANCE:
        mid = (high + low) / 2.0
        if pricer(underlying, strike, time, interest, mid, dividend) > target_price:
            high = mid
        else:
            low = mid
    return (high + low) / 2.0


def implied_vol_call(underlying, strike, time, interest, target_price, dividend) -> float:
    """Volatility reproducing ``target_price`` for a call.  Note the argument order."""
    return _bisect_vol(price_call, underlying, strike, time, interest, target_price, dividend)


def implied_vol_put(underlying, strike, time, interest, target_price, dividend) -> float:
    """Volatility reproducing ``target_price`` for a put.  Note the argument order."""
    return _bisect_vol(price_put, underlying, strike, time, interest, target_price, dividend)


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------
def greeks(
    option_type: OptionType | str,
    underlying, strike, time, interest, sigma, dividend,
) -> dict[str, float]:
    """Price and all Greeks for one option.

    Returns
    -------
    dict[str, float]
        Keys: ``price``, ``delta``, ``gamma``, ``theta``, ``vega``.
        Theta is per calendar day, vega per volatility point.
    """
    args = (underlying, strike, time, interest, sigma, dividend)
    if OptionType.parse(option_type) == CALL:
        px, delta, theta = price_call(*args), delta_call(*args), theta_call(*args)
    else:
        px, delta, theta = price_put(*args), delta_put(*args), theta_put(*args)
    return {
        "price": px,
        "delta": delta,
        "gamma": gamma(*args),
        "theta": theta,
        "vega": vega(*args),
    }
