"""Tests for the stateless Black-Scholes-Merton calculator."""

import logging
import math

import numpy as np
import pytest
from scipy.stats import norm

from optmodel import calculator
from optmodel.calculator import (
    norm_sdist, phi, d_one, d_two,
    price_call, price_put, delta_call, delta_put,
    gamma, vega, theta_call, theta_put,
    implied_vol_call, implied_vol_put, greeks, series_saturations,
)
from optmodel.errors import InvalidInput

ATM_30D = (100.0, 100.0, 30 / 365, 0.01, 0.2, 0.0)


def _ref_call(S, K, T, r, sigma, q):
    d1 = (math.log(S / K) + (r - q + 0.5 * sigma ** 2) * T) / (sigma * math.sqrt(T))
    d2 = d1 - sigma * math.sqrt(T)
    return S * math.exp(-q * T) * norm.cdf(d1) - K * math.exp(-r * T) * norm.cdf(d2)


def _ref_put(S, K, T, r, sigma, q):
    d1 = (math.log(S / K) + (r - q + 0.5 * sigma ** 2) * T) / (sigma * math.sqrt(T))
    d2 = d1 - sigma * math.sqrt(T)
    return K * math.exp(-r * T) * norm.cdf(-d2) - S * math.exp(-q * T) * norm.cdf(-d1)


# ---------------------------------------------------------------------------
# Normal distribution series
# ---------------------------------------------------------------------------
class TestNormSDist:
    def test_matches_scipy(self):
        for z in np.linspace(-7.9, 7.9, 41):
            assert abs(norm_sdist(float(z)) - norm.cdf(z)) < 1e-9

    def test_symmetry(self):
        for z in np.linspace(-7.9, 7.9, 37):
            assert abs(norm_sdist(float(z)) + norm_sdist(float(-z)) - 1.0) < 1e-12

    def test_centre(self):
        assert norm_sdist(0.0) == 0.5

    def test_tails_are_clamped(self):
        assert norm_sdist(-7.98) == 0.0
        assert norm_sdist(-50.0) == 0.0
        assert norm_sdist(-math.inf) == 0.0
        assert norm_sdist(7.98) == 1.0
        assert norm_sdist(50.0) == 1.0
        assert norm_sdist(math.inf) == 1.0

    def test_nan_raises(self):
        with pytest.raises(InvalidInput):
            norm_sdist(float("nan"))

    def test_series_ceiling_saturates_and_is_counted(self, monkeypatch, caplog):
        monkeypatch.setattr(calculator, "MAX_SERIES_DIVISOR", 5)
        caplog.set_level(logging.WARNING, logger="optmodel.calculator")
        before = series_saturations()

        assert norm_sdist(1.0) == 1.0
        assert norm_sdist(-1.0) == 0.0

        assert series_saturations() == before + 2
        assert sum("saturating" in r.getMessage() for r in caplog.records) == 2

    def test_phi_is_gaussian_density(self):
        for x in (-3.0, -0.5, 0.0, 1.2, 4.0):
            assert abs(phi(x) - norm.pdf(x)) < 1e-15


# ---------------------------------------------------------------------------
# Prices
# ---------------------------------------------------------------------------
class TestPrices:
    CASES = [
        (100.0, 100.0, 1.0, 0.05, 0.2, 0.0),
        (100.0, 110.0, 0.5, 0.03, 0.25, 0.01),
        (50.0, 40.0, 2.0, 0.0, 0.4, 0.02),
        (100.0, 95.0, 30 / 365, 0.01, 0.15, 0.0),
    ]

    def test_known_values(self):
        args = (100.0, 100.0, 1.0, 0.05, 0.2, 0.0)
        assert abs(price_call(*args) - 10.4506) < 1e-3
        assert abs(price_put(*args) - 5.5735) < 1e-3

    def test_against_scipy(self):
        for args in self.CASES:
            assert abs(price_call(*args) - _ref_call(*args)) < 1e-9
            assert abs(price_put(*args) - _ref_put(*args)) < 1e-9

    def test_put_call_parity(self):
        for S, K, T, r, sigma, q in self.CASES:
            lhs = price_call(S, K, T, r, sigma, q) - price_put(S, K, T, r, sigma, q)
            rhs = S * math.exp(-q * T) - K * math.exp(-r * T)
            assert abs(lhs - rhs) < 1e-9

    def test_thirty_day_atm(self):
        # analytic value 2.328 (N(d1)=0.5172, N(d2)=0.4943)
        assert abs(price_call(*ATM_30D) - 2.33) < 0.05
        assert abs(delta_call(*ATM_30D) - 0.52) < 0.05

    def test_expired_intrinsic(self):
        assert price_call(110.0, 100.0, 0.0, 0.05, 0.2, 0.0) == pytest.approx(10.0)
        assert price_call(90.0, 100.0, 0.0, 0.05, 0.2, 0.0) == pytest.approx(0.0)
        assert price_put(90.0, 100.0, 0.0, 0.05, 0.2, 0.0) == pytest.approx(10.0)


# ---------------------------------------------------------------------------
# Greeks
# ---------------------------------------------------------------------------
class TestGreeks:
    ARGS = (100.0, 105.0, 0.5, 0.03, 0.25, 0.0)

    def test_d_two(self):
        S, K, T, r, sigma, q = self.ARGS
        assert d_two(*self.ARGS) == pytest.approx(d_one(*self.ARGS) - sigma * math.sqrt(T))

    def test_delta_put_is_call_minus_one(self):
        for args in TestPrices.CASES + [self.ARGS]:
            assert delta_put(*args) == delta_call(*args) - 1.0

    def test_against_closed_form(self):
        S, K, T, r, sigma, q = self.ARGS
        d1 = (math.log(S / K) + (r + 0.5 * sigma ** 2) * T) / (sigma * math.sqrt(T))
        d2 = d1 - sigma * math.sqrt(T)
        assert delta_call(*self.ARGS) == pytest.approx(norm.cdf(d1), abs=1e-9)
        assert gamma(*self.ARGS) == pytest.approx(norm.pdf(d1) / (S * sigma * math.sqrt(T)))
        assert vega(*self.ARGS) == pytest.approx(0.01 * S * math.sqrt(T) * norm.pdf(d1))

        decay = S * norm.pdf(d1) * sigma / (2 * math.sqrt(T))
        carry = r * K * math.exp(-r * T)
        assert theta_call(*self.ARGS) == pytest.approx((-decay - carry * norm.cdf(d2)) / 365)
        assert theta_put(*self.ARGS) == pytest.approx((-decay + carry * norm.cdf(-d2)) / 365)

    def test_theta_is_decay(self):
        assert theta_call(*self.ARGS) < 0
        assert theta_put(*ATM_30D) < 0

    def test_delta_matches_finite_difference(self):
        S, K, T, r, sigma, q = self.ARGS
        h = 1e-4
        fd = (price_call(S + h, K, T, r, sigma, q) - price_call(S - h, K, T, r, sigma, q)) / (2 * h)
        assert abs(fd - delta_call(*self.ARGS)) < 1e-5

    def test_snapshot(self):
        g = greeks("put", *self.ARGS)
        assert set(g) == {"price", "delta", "gamma", "theta", "vega"}
        assert g["price"] == price_put(*self.ARGS)
        assert g["delta"] == delta_put(*self.ARGS)
        assert g["theta"] == theta_put(*self.ARGS)
        assert greeks("call", *self.ARGS)["price"] == price_call(*self.ARGS)


# ---------------------------------------------------------------------------
# Degenerate inputs
# ---------------------------------------------------------------------------
class TestDegenerate:
    @pytest.mark.parametrize("time", [0.0, 1e-6, 9.9e-6])
    def test_atm_near_expiry(self, time):
        args = (100.0, 100.0, time, 0.02, 0.3, 0.0)
        assert delta_call(*args) == 0.5
        assert delta_put(*args) == -0.5
        assert gamma(*args) == 0.0
        assert price_call(*args) == 0.0
        assert price_put(*args) == 0.0

    def test_theta_zero_only_at_expiry(self):
        assert theta_call(100.0, 90.0, 0.0, 0.02, 0.3, 0.0) == 0.0
        assert theta_put(100.0, 100.0, 0.0, 0.02, 0.3, 0.0) == 0.0

    def test_zero_time_off_the_money(self):
        args = (100.0, 90.0, 0.0, 0.02, 0.3, 0.0)
        assert gamma(*args) == 0.0
        assert delta_call(*args) == 1.0
        assert vega(*args) == 0.0

    def test_zero_volatility_gamma(self):
        assert gamma(100.0, 90.0, 1.0, 0.0, 0.0, 0.0) == 0.0

    def test_policy_tables(self):
        table = calculator.DEGENERATE_VALUES
        assert table[("delta_call", True, calculator.NEAR_EXPIRY)] == 0.5
        assert table[("theta_put", False, calculator.EXPIRED)] == 0.0
        assert ("gamma", True, calculator.LIVE) not in table
        assert calculator.NAN_FALLBACKS["gamma"] == 0.0


# ---------------------------------------------------------------------------
# Implied volatility
# ---------------------------------------------------------------------------
class TestImpliedVol:
    @pytest.mark.parametrize("args", [
        (100.0, 100.0, 1.0, 0.05, 0.2, 0.0),
        (100.0, 110.0, 0.5, 0.03, 0.35, 0.01),
        (100.0, 90.0, 30 / 365, 0.01, 0.6, 0.0),
        (80.0, 100.0, 2.0, 0.02, 1.5, 0.0),
    ])
    def test_round_trip(self, args):
        S, K, T, r, sigma, q = args
        assert abs(implied_vol_call(S, K, T, r, price_call(*args), q) - sigma) < 1e-4
        assert abs(implied_vol_put(S, K, T, r, price_put(*args), q) - sigma) < 1e-4

    def test_unreachable_price_saturates_at_upper_bound(self):
        S, K, T, r, q = 100.0, 100.0, 1.0, 0.0, 0.0
        assert price_call(S, K, T, r, 5.0, q) < 99.5
        iv = implied_vol_call(S, K, T, r, 99.5, q)
        assert abs(iv - calculator.HIGH_VOL) < 1e-3

    def test_price_below_floor_saturates_at_lower_bound(self):
        iv = implied_vol_call(100.0, 100.0, 1.0, 0.0, -1.0, 0.0)
        assert abs(iv - calculator.LOW_VOL) < 1e-3
