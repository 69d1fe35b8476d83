"""Black-Scholes-Merton European value and theta with continuous dividend yield.

The QD+ residual and the valuation engine both evaluate the European option
at prices other than the current spot (candidate boundaries), so every
function here takes an explicit ``spot`` override.
"""

from __future__ import annotations

from typing import NamedTuple

import numpy as np
from scipy.stats import norm

from ..enums import OptionType
from ..utils import d_values
from .params import MarketParameters


class _BSMInputs(NamedTuple):
    """Pre-computed inputs shared by value and theta."""

    spot: float
    strike: float
    volatility: float
    time_to_maturity: float
    df_r: float
    df_q: float
    d1: float
    d2: float


def _bsm_inputs(params: MarketParameters, spot: float | None) -> _BSMInputs:
    s = params.spot if spot is None else float(spot)
    d1, d2 = d_values(
        s,
        params.strike,
        params.maturity,
        params.rate,
        params.dividend_yield,
        params.volatility,
    )
    return _BSMInputs(
        spot=s,
        strike=params.strike,
        volatility=params.volatility,
        time_to_maturity=params.maturity,
        df_r=float(np.exp(-params.rate * params.maturity)),
        df_q=float(np.exp(-params.dividend_yield * params.maturity)),
        d1=float(d1),
        d2=float(d2),
    )


def european_value(params: MarketParameters, spot: float | None = None) -> float:
    """European option value.

    Parameters
    ----------
    params
        Market inputs; ``params.spot`` is used unless ``spot`` is given.
    spot
        Optional spot override (e.g. a candidate exercise boundary).

    Returns
    -------
    float
        Black-Scholes-Merton value under the flat rate and yield.
    """
    inp = _bsm_inputs(params, spot)

    if params.option_type is OptionType.CALL:
        value = inp.spot * inp.df_q * norm.cdf(inp.d1) - inp.strike * inp.df_r * norm.cdf(inp.d2)
    else:  # PUT
        value = inp.strike * inp.df_r * norm.cdf(-inp.d2) - inp.spot * inp.df_q * norm.cdf(-inp.d1)

    return float(value)


def european_theta(params: MarketParameters, spot: float | None = None) -> float:
    """Calendar-time theta dV/dt of the European option (per year).

    theta = -S df_q n(d1) sigma / (2 sqrt(T)) + eta (q S df_q N(eta d1) - r K df_r N(eta d2))

    with eta = +1 for calls and -1 for puts.
    """
    return european_value_and_theta(params, spot)[1]


def european_value_and_theta(
    params: MarketParameters, spot: float | None = None
) -> tuple[float, float, float]:
    """Return ``(value, theta, d1)`` from a single set of d-values.

    The QD+ residual needs all three at every candidate spot, so this avoids
    recomputing the logarithm and the normal CDFs.
    """
    inp = _bsm_inputs(params, spot)
    sqrt_t = np.sqrt(inp.time_to_maturity)
    decay = -inp.spot * inp.df_q * norm.pdf(inp.d1) * inp.volatility / (2.0 * sqrt_t)

    if params.option_type is OptionType.CALL:
        n1, n2 = norm.cdf(inp.d1), norm.cdf(inp.d2)
        value = inp.spot * inp.df_q * n1 - inp.strike * inp.df_r * n2
        theta = decay + params.dividend_yield * inp.spot * inp.df_q * n1
        theta -= params.rate * inp.strike * inp.df_r * n2
    else:  # PUT
        n1, n2 = norm.cdf(-inp.d1), norm.cdf(-inp.d2)
        value = inp.strike * inp.df_r * n2 - inp.spot * inp.df_q * n1
        theta = decay - params.dividend_yield * inp.spot * inp.df_q * n1
        theta += params.rate * inp.strike * inp.df_r * n2

    return float(value), float(theta), inp.d1
