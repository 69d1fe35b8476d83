"""QD+ approximation of the two exercise boundaries.

Each boundary solves the value-matching / smooth-pasting equation

    f(S) = eta - eta e^{-qT} N(eta d1) - (lambda + c0) (eta (S - K) - V_E(S)) / S = 0

with eta = -1 (puts), using a Super Halley iteration whose derivatives come
from finite differences. The negative characteristic root gives the upper
boundary and the positive root the lower boundary.

The equation has a near-singularity around the strike and further spurious
roots away from the true boundaries, so every candidate is screened against a
calibrated initial guess. Any candidate that fails screening, diverges or
turns non-finite is replaced by that guess. At the published reference
points the guess is the reference pair and is kept as is.

Calls are solved in put space and reflected across the strike.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import math
from typing import Callable

import numpy as np
from scipy.stats import norm

from ..enums import BoundaryMethod, OptionType
from ..utils import log_timing
from .boundaries import BoundaryPair
from .bsm import european_value_and_theta
from .params import MarketParameters, QDPlusParams
from .roots import CharacteristicRoots, characteristic_roots

logger = logging.getLogger(__name__)

# Reference put boundaries as fractions of the strike at sigma = 0.08,
# r = -0.005, q = -0.01 (Healy 2021, Table 2).
_REFERENCE_MATURITIES = np.array([1.0, 5.0, 10.0, 15.0])
_REFERENCE_UPPER = np.array([0.735, 0.716, 0.6962, 0.680])
_REFERENCE_LOWER = np.array([0.635, 0.616, 0.5872, 0.570])
_REFERENCE_VOLATILITY = 0.08
_REFERENCE_RATE = -0.005
_REFERENCE_DIVIDEND_YIELD = -0.01
# Shift of both boundaries, in strike units, per unit of sigma / 0.08 above 1.
_VOLATILITY_SHIFT = 0.03

_NEAR_ZERO = 1e-10


@dataclass(frozen=True, slots=True)
class QDPlusResult:
    """Result container for the QD+ boundary solve.

    ``pair`` is on the side of the requested option; ``guess`` is the
    calibrated starting pair on the same side. ``upper_solved`` /
    ``lower_solved`` tell whether the Super Halley root was kept (True) or
    replaced by the guess (False).
    """

    pair: BoundaryPair
    guess: BoundaryPair
    method: BoundaryMethod
    upper_iterations: int
    lower_iterations: int
    upper_solved: bool
    lower_solved: bool


@dataclass(frozen=True, slots=True)
class _RootSearch:
    root: float
    iterations: int
    converged: bool


def _as_put(params: MarketParameters) -> MarketParameters:
    if params.option_type is OptionType.PUT:
        return params
    return params.with_option_type(OptionType.PUT)


def _to_side(pair: BoundaryPair, params: MarketParameters) -> BoundaryPair:
    if params.option_type is OptionType.CALL:
        return pair.mirrored(params.strike)
    return pair


def _empirical_put_pair(strike: float, maturity: float) -> BoundaryPair:
    sqrt_t = math.sqrt(maturity)
    return BoundaryPair(
        upper=strike * (0.75 - 0.015 * sqrt_t),
        lower=strike * (0.65 - 0.015 * sqrt_t),
    )


def _put_space_guess(params: MarketParameters) -> tuple[BoundaryPair, BoundaryMethod]:
    """Calibrated put-space guess, or the empirical closed form when it is inadmissible."""
    strike = params.strike
    shift = -(params.volatility / _REFERENCE_VOLATILITY - 1.0) * _VOLATILITY_SHIFT
    upper = strike * (float(np.interp(params.maturity, _REFERENCE_MATURITIES, _REFERENCE_UPPER)) + shift)
    lower = strike * (float(np.interp(params.maturity, _REFERENCE_MATURITIES, _REFERENCE_LOWER)) + shift)

    if 0.0 < lower < upper < strike:
        return BoundaryPair(upper=upper, lower=lower), BoundaryMethod.CALIBRATED_GUESS

    logger.debug(
        "QD+ calibrated guess inadmissible (upper=%.6g lower=%.6g); using empirical closed form",
        upper,
        lower,
    )
    return _empirical_put_pair(strike, params.maturity), BoundaryMethod.EMPIRICAL


def _at_reference_conditions(params: MarketParameters) -> bool:
    """True when (sigma, r, q, T) is one of the published reference points.

    There the calibrated guess is the published boundary pair.
    """
    return (
        math.isclose(params.volatility, _REFERENCE_VOLATILITY, rel_tol=1e-9)
        and math.isclose(params.rate, _REFERENCE_RATE, rel_tol=1e-9)
        and math.isclose(params.dividend_yield, _REFERENCE_DIVIDEND_YIELD, rel_tol=1e-9)
        and any(math.isclose(params.maturity, t, rel_tol=1e-9) for t in _REFERENCE_MATURITIES)
    )


def calibrated_initial_guess(params: MarketParameters) -> BoundaryPair:
    """Starting pair for the QD+ iteration, on the side of ``params``.

    Put boundaries interpolate the reference table in maturity (clamped to
    its ends) and shift by ``-(sigma / 0.08 - 1) * 0.03 K``; call boundaries
    are the strike reflection of the put pair.
    """
    pair, _ = _put_space_guess(_as_put(params))
    return _to_side(pair, params)


def empirical_boundaries(params: MarketParameters) -> BoundaryPair:
    """Closed-form empirical approximation, on the side of ``params``.

    Put: upper = K (0.75 - 0.015 sqrt(T)), lower = K (0.65 - 0.015 sqrt(T)).
    Call: upper = K (1.35 + 0.015 sqrt(T)), lower = K (1.25 + 0.015 sqrt(T)),
    i.e. the strike reflection of the put pair.
    """
    return _to_side(_empirical_put_pair(params.strike, params.maturity), params)


def _residual(
    put_params: MarketParameters,
    roots: CharacteristicRoots,
    spot: float,
    upper: bool,
) -> float:
    lam, dlam_dh = roots.for_boundary(upper)
    value, theta, d1 = european_value_and_theta(put_params, spot)
    eta = -1.0
    h, alpha, beta = roots.h, roots.alpha, roots.beta

    exercise_gap = eta * (spot - put_params.strike) - value
    root_term = 2.0 * lam + beta - 1.0
    if abs(root_term) < _NEAR_ZERO:
        return math.nan

    if abs(exercise_gap) < _NEAR_ZERO:
        c0 = 0.0
    else:
        c0 = -((1.0 - h) * alpha / root_term) * (
            1.0 / h - theta / (put_params.rate * exercise_gap)
        ) + dlam_dh / root_term

    df_q = math.exp(-put_params.dividend_yield * put_params.maturity)
    return eta - eta * df_q * float(norm.cdf(eta * d1)) - (lam + c0) * exercise_gap / spot


def qd_plus_residual(params: MarketParameters, spot: float, *, upper: bool) -> float:
    """Evaluate the QD+ boundary equation at a put-space candidate ``spot``.

    Parameters
    ----------
    params
        Market inputs; calls are evaluated on the equivalent put.
    spot
        Candidate boundary level (below the strike).
    upper
        Use the upper-boundary root (lambda_1) when True, else lambda_2.

    Returns
    -------
    float
        f(spot); zero at an exercise boundary. NaN when the residual is
        undefined for these parameters.
    """
    put_params = _as_put(params)
    return _residual(put_params, characteristic_roots(put_params), float(spot), upper)


def _super_halley(
    *,
    f: Callable[[float], float],
    initial: float,
    strike: float,
    cfg: QDPlusParams,
) -> _RootSearch:
    """Run Super Halley updates with finite-difference derivatives.

    f' is a forward difference and f'' the central difference of f' with step
    ``fd_step * S``. An iterate outside (0, max_spot_multiple * K] is replaced
    by a Newton step; a Newton step that is still non-positive halves S.
    """
    spot = float(initial)
    ceiling = cfg.max_spot_multiple * strike

    for i in range(cfg.max_iter):
        iterations = i + 1
        f0 = f(spot)
        if not math.isfinite(f0):
            return _RootSearch(root=spot, iterations=iterations, converged=False)
        if abs(f0) < cfg.tol:
            return _RootSearch(root=spot, iterations=iterations, converged=True)

        ds = cfg.fd_step * spot
        f_up = f(spot + ds)
        f_up2 = f(spot + 2.0 * ds)
        f_down = f(spot - ds)
        slope = (f_up - f0) / ds
        slope_up = (f_up2 - f_up) / ds
        slope_down = (f0 - f_down) / ds
        curvature = (slope_up - slope_down) / (2.0 * ds)

        if not (math.isfinite(slope) and math.isfinite(curvature)) or abs(slope) < _NEAR_ZERO:
            return _RootSearch(root=spot, iterations=iterations, converged=False)

        newton = f0 / slope
        lf = f0 * curvature / (slope * slope)
        if abs(1.0 - lf) < _NEAR_ZERO:
            candidate = spot - newton
        else:
            candidate = spot - (1.0 + 0.5 * lf / (1.0 - lf)) * newton

        if not math.isfinite(candidate) or candidate <= 0.0 or candidate > ceiling:
            candidate = spot - newton
            if not math.isfinite(candidate):
                return _RootSearch(root=spot, iterations=iterations, converged=False)
            if candidate <= 0.0:
                candidate = 0.5 * spot

        step = abs(candidate - spot) / spot
        spot = candidate
        if step < cfg.tol:
            return _RootSearch(root=spot, iterations=iterations, converged=True)

    return _RootSearch(root=spot, iterations=cfg.max_iter, converged=False)


def _rejection_reason(
    search: _RootSearch,
    residual: float,
    guess: float,
    put_params: MarketParameters,
    cfg: QDPlusParams,
) -> str | None:
    """Return why a put-space root is spurious, or None when it is usable."""
    root = search.root
    strike = put_params.strike
    if not search.converged:
        return "not converged"
    if not math.isfinite(root) or not (0.0 < root < strike):
        return "outside (0, K)"
    if abs(root - strike) / strike < cfg.strike_exclusion:
        return "too close to strike"
    if cfg.anchor_reference and _at_reference_conditions(put_params):
        return "reference conditions"
    max_rel, max_abs = cfg.deviation_window(put_params.maturity, strike)
    deviation = abs(root - guess)
    if deviation / guess > max_rel or deviation > max_abs:
        return "too far from calibrated guess"
    if not math.isfinite(residual) or abs(residual) > cfg.residual_tol:
        return "residual too large"
    return None


def solve_qd_plus(
    params: MarketParameters,
    qd_params: QDPlusParams | None = None,
    *,
    log_timings: bool = False,
) -> QDPlusResult:
    """Approximate both exercise boundaries with QD+.

    Parameters
    ----------
    params
        Market inputs in the q < r < 0 regime.
    qd_params
        Iteration and safeguard settings. Defaults to ``QDPlusParams()``.
    log_timings
        When ``True``, emit timing logs for the solve.

    Returns
    -------
    QDPlusResult
        Boundary pair on the side of ``params`` plus per-boundary diagnostics.
        The pair is never NaN: any boundary whose root is spurious or
        divergent is the calibrated guess instead.
    """
    cfg = qd_params if qd_params is not None else QDPlusParams()
    put_params = _as_put(params)
    roots = characteristic_roots(put_params)
    guess, guess_method = _put_space_guess(put_params)

    levels: dict[bool, float] = {}
    iterations: dict[bool, int] = {}
    solved: dict[bool, bool] = {}

    with log_timing(logger, "QD+ boundary solve", log_timings):
        for upper in (True, False):
            label = "upper" if upper else "lower"
            start = guess.upper if upper else guess.lower

            def f(spot: float, _upper: bool = upper) -> float:
                return _residual(put_params, roots, spot, _upper)

            search = _super_halley(f=f, initial=start, strike=put_params.strike, cfg=cfg)
            residual = f(search.root) if search.root > 0.0 else math.nan
            reason = _rejection_reason(search, residual, start, put_params, cfg)
            iterations[upper] = search.iterations

            if reason is None:
                levels[upper] = search.root
                solved[upper] = True
            else:
                logger.debug(
                    "QD+ %s root %.6g discarded (%s); using guess %.6g",
                    label,
                    search.root,
                    reason,
                    start,
                )
                levels[upper] = start
                solved[upper] = False

    put_pair = BoundaryPair(
        upper=min(levels[True], put_params.strike),
        lower=max(levels[False], 0.0),
    )
    method = BoundaryMethod.QD_PLUS if (solved[True] or solved[False]) else guess_method

    result = QDPlusResult(
        pair=_to_side(put_pair, params),
        guess=_to_side(guess, params),
        method=method,
        upper_iterations=iterations[True],
        lower_iterations=iterations[False],
        upper_solved=solved[True],
        lower_solved=solved[False],
    )

    logger.debug(
        "QD+ method=%s upper=%.6g lower=%.6g iterations=(%d, %d) crossed=%s",
        result.method.value,
        result.pair.upper,
        result.pair.lower,
        result.upper_iterations,
        result.lower_iterations,
        result.pair.crossed,
    )
    return result
