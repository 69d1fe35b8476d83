"""Helper functions shared by the boundary solvers and the valuation engine."""

from __future__ import annotations

from contextlib import contextmanager
from collections.abc import Iterator
import time

import numpy as np

from .enums import OptionType
from .exceptions import ValidationError

__all__ = [
    "log_timing",
    "d_values",
    "intrinsic_value",
    "payoff_sign",
    "mirror_around_strike",
]


@contextmanager
def log_timing(logger, label: str, enabled: bool) -> Iterator[None]:
    """Log timing for a code block when enabled is True."""
    if not enabled:
        yield
        return
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        logger.debug("Timing %s: %.6fs", label, elapsed)


def d_values(
    spot: float | np.ndarray,
    strike: float | np.ndarray,
    time_to_maturity: float | np.ndarray,
    rate: float,
    dividend_yield: float,
    volatility: float,
) -> tuple[float | np.ndarray, float | np.ndarray]:
    """Black-Scholes-Merton ``(d1, d2)`` under continuous rate and yield.

    Parameters
    ----------
    spot
        Spot price(s), or the boundary level being tested in the Kim kernel.
    strike
        Strike price(s), or the boundary sample the kernel is measured against.
    time_to_maturity
        Time(s) to maturity in years. Must be positive.
    rate
        Continuously compounded risk-free rate.
    dividend_yield
        Continuous dividend yield.
    volatility
        Annualized volatility.

    Returns
    -------
    tuple
        Pair ``(d1, d2)``; arrays broadcast like numpy does.
    """
    if np.any(np.asarray(time_to_maturity) <= 0):
        raise ValidationError("time_to_maturity must be positive")

    vol_sqrt_t = volatility * np.sqrt(time_to_maturity)
    d1 = (
        np.log(spot / strike) + (rate - dividend_yield + 0.5 * volatility**2) * time_to_maturity
    ) / vol_sqrt_t
    return d1, d1 - vol_sqrt_t


def payoff_sign(option_type: OptionType) -> float:
    """Return eta: +1 for calls, -1 for puts."""
    return 1.0 if option_type is OptionType.CALL else -1.0


def intrinsic_value(spot: float, strike: float, option_type: OptionType) -> float:
    """Exercise value ``max(eta * (S - K), 0)``."""
    return max(payoff_sign(option_type) * (spot - strike), 0.0)


def mirror_around_strike(value: float, strike: float) -> float:
    """Reflect a boundary level across the strike: ``K + (K - value)``."""
    return strike + (strike - value)
