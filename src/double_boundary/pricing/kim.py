"""Kim integral-equation refinement of the QD+ boundaries.

In the q < r < 0 regime the put is exercised inside the band L(tau) <= S <= U(tau).
Value matching at either boundary B gives (Healy 2021, eqs. 30-35)

    K - B = p_E(B, tau) + K I_r(B, tau) - B I_q(B, tau)

    I_r = int_0^tau r e^{-r s} [N(-d2(B, U(u), s)) - N(-d2(B, L(u), s))] du
    I_q = int_0^tau q e^{-q s} [N(-d1(B, U(u), s)) - N(-d1(B, L(u), s))] du

with s = tau - u. The upper curve is updated with the FP-B map B <- K N / D,

    N = 1 - e^{-r tau} N(-d2(B, K, tau)) - I_r
    D = 1 - e^{-q tau} N(-d1(B, K, tau)) - I_q

and the lower curve with the FP-B' map B <- K (N + (B / K) I_q) / D', where D'
keeps only the non-integral part of D and the integrals use the upper curve
of the current sweep. As tau -> 0 the boundaries tend to U = K and L = K r / q.

Every node moves by at most ``max_step`` of its level per sweep. Nodes at or
past the time where the two curves cross are merged and frozen. Refinement
runs in put space; call pairs are reflected across the strike on the way in
and out.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging

import numpy as np
from scipy.optimize import isotonic_regression
from scipy.signal import savgol_filter
from scipy.stats import norm

from ..enums import OptionType
from ..utils import d_values, log_timing
from .boundaries import BoundaryPair, CollocationCurve
from .params import KimParams, MarketParameters, QDPlusParams
from .qdplus import solve_qd_plus

logger = logging.getLogger(__name__)

_NEAR_ZERO = 1e-10
_SAVGOL_WINDOW = 5
_SAVGOL_ORDER = 2


@dataclass(frozen=True, slots=True)
class KimResult:
    """Result container for the Kim refinement.

    ``pair`` and ``seed`` are on the side of the requested option; ``curve`` is
    the put-space collocation curve the refined pair was read from. When
    ``accepted`` is False the refinement was discarded and ``pair`` equals the
    seed that was actually used. ``crossing_time`` is the time to maturity at
    which the curves met, or None.
    """

    pair: BoundaryPair
    seed: BoundaryPair
    curve: CollocationCurve
    sweeps: int
    converged: bool
    accepted: bool
    seed_recomputed: bool = False
    stagnated: bool = False
    crossing_time: float | None = None


def seed_is_plausible(seed: BoundaryPair, strike: float, kim_params: KimParams) -> bool:
    """Check a put-space seed against the configured fractional strike ranges."""
    upper_ratio = seed.upper / strike
    lower_ratio = seed.lower / strike
    upper_low, upper_high = kim_params.upper_seed_range
    lower_low, lower_high = kim_params.lower_seed_range
    return (
        upper_low <= upper_ratio < upper_high
        and lower_low <= lower_ratio < lower_high
        and seed.upper > seed.lower
    )


def expiry_boundaries(params: MarketParameters) -> BoundaryPair:
    """Put-space limits of the boundaries as tau -> 0: U = K and L = K r / q."""
    strike = params.strike
    return BoundaryPair(upper=strike, lower=strike * params.rate / params.dividend_yield)


def initial_curve(seed: BoundaryPair, params: MarketParameters, points: int) -> CollocationCurve:
    """Interpolate linearly in tau from the expiry limits (tau = 0) to the put-space seed (tau = T)."""
    start = expiry_boundaries(params)
    tau = np.linspace(0.0, params.maturity, points)
    frac = tau / params.maturity
    upper = start.upper + (seed.upper - start.upper) * frac
    lower = start.lower + (seed.lower - start.lower) * frac
    return CollocationCurve(tau=tau, upper=upper, lower=lower)


def locate_crossing(curve: CollocationCurve, tolerance: float = 1e-2) -> float | None:
    """First time to maturity at which the upper curve meets the lower one.

    The first crossed node brackets the crossing with its predecessor; the
    bracket is halved on the linearly interpolated curves until it is
    narrower than ``tolerance``.
    """
    crossed = np.nonzero(curve.upper[1:] <= curve.lower[1:])[0]
    if crossed.size == 0:
        return None

    index = int(crossed[0]) + 1
    left, right = float(curve.tau[index - 1]), float(curve.tau[index])
    gap = curve.upper - curve.lower
    while right - left > tolerance:
        mid = 0.5 * (left + right)
        if np.interp(mid, curve.tau, gap) > 0.0:
            left = mid
        else:
            right = mid
    return 0.5 * (left + right)


def merge_after_crossing(curve: CollocationCurve, crossing_time: float) -> CollocationCurve:
    """Set both curves to their midpoint from the first node at or past ``crossing_time``."""
    index = int(np.searchsorted(curve.tau, crossing_time))
    if index >= curve.size:
        return curve
    level = 0.5 * (curve.upper[index] + curve.lower[index])
    upper = curve.upper.copy()
    lower = curve.lower.copy()
    upper[index:] = level
    lower[index:] = level
    return CollocationCurve(tau=curve.tau, upper=upper, lower=lower)


def _integral_terms(
    target: np.ndarray,
    tau: np.ndarray,
    upper: np.ndarray,
    lower: np.ndarray,
    params: MarketParameters,
) -> tuple[np.ndarray, np.ndarray]:
    """Return ``(I_r, I_q)`` at every node for boundary levels ``target``.

    Row i integrates over nodes j <= i with the trapezoid rule. At s = 0 the
    level sits on one edge of the band, so the bracket takes its limit 1/2.
    Nodes whose boundaries are crossed contribute zero.
    """
    r, q, vol = params.rate, params.dividend_yield, params.volatility
    size = tau.size
    s = tau[:, None] - tau[None, :]
    history = np.tri(size, dtype=bool)
    ordered = (upper > lower) & (lower > 0.0)
    inside = history & ordered[None, :]
    interior = inside & (s > _NEAR_ZERO)
    s_eff = np.where(interior, s, 0.0)
    s_safe = np.where(interior, s, 1.0)
    level = target[:, None]
    upper_row = np.where(ordered, upper, 1.0)[None, :]
    lower_row = np.where(ordered, lower, 1.0)[None, :]

    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        d1_u, d2_u = d_values(level, upper_row, s_safe, r, q, vol)
        d1_l, d2_l = d_values(level, lower_row, s_safe, r, q, vol)
        r_band = norm.cdf(-d2_u) - norm.cdf(-d2_l)
        q_band = norm.cdf(-d1_u) - norm.cdf(-d1_l)

    edge = inside & ~interior
    r_band = np.where(interior & np.isfinite(r_band), r_band, np.where(edge, 0.5, 0.0))
    q_band = np.where(interior & np.isfinite(q_band), q_band, np.where(edge, 0.5, 0.0))

    weights = np.where(history, tau[1] - tau[0], 0.0)
    weights[:, 0] *= 0.5
    weights[np.diag_indices(size)] *= 0.5
    weights[0, :] = 0.0

    i_r = (weights * r * np.exp(-r * s_eff) * r_band).sum(axis=1)
    i_q = (weights * q * np.exp(-q * s_eff) * q_band).sum(axis=1)
    return i_r, i_q


def _european_terms(
    target: np.ndarray, tau: np.ndarray, params: MarketParameters
) -> tuple[np.ndarray, np.ndarray]:
    """Return ``(e^{-r tau} N(-d2), e^{-q tau} N(-d1))`` at every node."""
    r, q = params.rate, params.dividend_yield
    tau_safe = np.where(tau > 0.0, tau, 1.0)
    with np.errstate(divide="ignore", invalid="ignore"):
        d1, d2 = d_values(target, params.strike, tau_safe, r, q, params.volatility)
    return np.exp(-r * tau_safe) * norm.cdf(-d2), np.exp(-q * tau_safe) * norm.cdf(-d1)


def _damped(candidate: np.ndarray, current: np.ndarray, max_step: float) -> np.ndarray:
    limit = max_step * np.abs(current)
    return np.clip(candidate, current - limit, current + limit)


def _sweep(
    curve: CollocationCurve,
    params: MarketParameters,
    kim_params: KimParams,
    active: np.ndarray,
) -> tuple[np.ndarray, np.ndarray]:
    """One FP-B' sweep over the ``active`` nodes.

    A node keeps its previous value where the map is undefined or leaves
    (0, K) for the upper curve and (0, upper) for the lower one.
    """
    strike = params.strike
    tau, upper, lower = curve.tau, curve.upper, curve.lower

    i_r, i_q = _integral_terms(upper, tau, upper, lower, params)
    put_d2, put_d1 = _european_terms(upper, tau, params)
    with np.errstate(divide="ignore", invalid="ignore"):
        numerator = 1.0 - put_d2 - i_r
        denominator = 1.0 - put_d1 - i_q
        candidate = strike * numerator / denominator
    keep = (
        active
        & (np.abs(denominator) > _NEAR_ZERO)
        & np.isfinite(candidate)
        & (candidate > 0.0)
        & (candidate < strike)
    )
    new_upper = np.where(keep, _damped(candidate, upper, kim_params.max_step), upper)

    i_r, i_q = _integral_terms(lower, tau, new_upper, lower, params)
    put_d2, put_d1 = _european_terms(lower, tau, params)
    with np.errstate(divide="ignore", invalid="ignore"):
        numerator = 1.0 - put_d2 - i_r + lower / strike * i_q
        denominator = 1.0 - put_d1
        candidate = _damped(strike * numerator / denominator, lower, kim_params.max_step)
    keep = (
        active
        & (np.abs(denominator) > _NEAR_ZERO)
        & np.isfinite(candidate)
        & (candidate > 0.0)
        & (candidate < new_upper)
    )
    new_lower = np.where(keep, candidate, lower)

    return new_upper, new_lower


def pool_adjacent_violators(values: np.ndarray, increasing: bool = True) -> np.ndarray:
    """Least-squares monotone projection of ``values``."""
    return isotonic_regression(np.asarray(values, dtype=float), increasing=increasing).x


def savgol_smooth(values: np.ndarray) -> np.ndarray:
    """5-point quadratic Savitzky-Golay smoothing of interior points; the two nodes at each end are kept."""
    y = np.asarray(values, dtype=float)
    if y.size < _SAVGOL_WINDOW:
        return y.copy()
    smoothed = y.copy()
    smoothed[2:-2] = savgol_filter(y, _SAVGOL_WINDOW, _SAVGOL_ORDER)[2:-2]
    return smoothed


def _post_process(curve: CollocationCurve, kim_params: KimParams) -> CollocationCurve:
    """Monotone projection and smoothing, node by node undone where it breaks the ordering."""
    upper, lower = curve.upper, curve.lower
    if kim_params.enforce_monotone:
        upper = pool_adjacent_violators(upper, increasing=False)
        lower = pool_adjacent_violators(lower, increasing=True)
    if kim_params.smooth:
        upper = savgol_smooth(upper)
        lower = savgol_smooth(lower)

    was_ordered = curve.upper > curve.lower
    broken = was_ordered & ~(upper > lower)
    if np.any(broken):
        logger.debug("Kim post-processing crossed %d node(s); restoring them", int(broken.sum()))
        upper = np.where(broken, curve.upper, upper)
        lower = np.where(broken, curve.lower, lower)
    return CollocationCurve(tau=curve.tau, upper=upper, lower=lower)


def _refinement_acceptable(
    refined: BoundaryPair, seed: BoundaryPair, kim_params: KimParams
) -> bool:
    upper_change = abs(refined.upper - seed.upper)
    lower_change = abs(refined.lower - seed.lower)
    if not (np.isfinite(upper_change) and np.isfinite(lower_change)):
        return False
    if refined.crossed:
        return False
    if upper_change < kim_params.accept_tol and lower_change < kim_params.accept_tol:
        return True

    def degrades(change: float, level: float) -> bool:
        return change / abs(level) > kim_params.reject_relative and change > kim_params.reject_absolute

    return not (degrades(upper_change, seed.upper) or degrades(lower_change, seed.lower))


def _to_put_space(pair: BoundaryPair, params: MarketParameters) -> BoundaryPair:
    if pair.option_type is OptionType.CALL:
        return pair.mirrored(params.strike)
    return pair


def _to_side(pair: BoundaryPair, params: MarketParameters) -> BoundaryPair:
    if params.option_type is OptionType.CALL:
        return pair.mirrored(params.strike)
    return pair


def _unrefined(
    put_seed: BoundaryPair,
    curve: CollocationCurve,
    params: MarketParameters,
    *,
    sweeps: int,
    converged: bool,
    accepted: bool,
    recomputed: bool,
    stagnated: bool = False,
    crossing_time: float | None = None,
) -> KimResult:
    pair = _to_side(put_seed, params)
    return KimResult(
        pair=pair,
        seed=pair,
        curve=curve,
        sweeps=sweeps,
        converged=converged,
        accepted=accepted,
        seed_recomputed=recomputed,
        stagnated=stagnated,
        crossing_time=crossing_time,
    )


def refine_boundaries(
    params: MarketParameters,
    seed: BoundaryPair,
    kim_params: KimParams | None = None,
    qd_params: QDPlusParams | None = None,
    *,
    log_timings: bool = False,
) -> KimResult:
    """Refine a QD+ boundary pair with the Kim integral equation.

    Parameters
    ----------
    params
        Market inputs in the q < r < 0 regime.
    seed
        Boundary pair at valuation time (typically ``solve_qd_plus(...).pair``),
        on either side of the strike.
    kim_params
        Collocation, sweep and acceptance settings. Defaults to ``KimParams()``.
    qd_params
        Settings for the QD+ re-solve triggered by an implausible seed.
    log_timings
        When ``True``, emit timing logs for the refinement.

    Returns
    -------
    KimResult
        Refined pair, or the seed itself when the first sweep barely moves
        it, when the sweeps stagnate, or when the refined pair would degrade
        it. All of these are normal outcomes; ``accepted`` and ``stagnated``
        tell them apart.
    """
    cfg = kim_params if kim_params is not None else KimParams()
    strike = params.strike
    put_seed = _to_put_space(seed, params)
    recomputed = False

    if not seed_is_plausible(put_seed, strike, cfg):
        logger.debug(
            "Kim seed implausible (upper=%.6g lower=%.6g); recomputing QD+",
            put_seed.upper,
            put_seed.lower,
        )
        put_seed = _to_put_space(solve_qd_plus(params, qd_params).pair, params)
        recomputed = True
        if not seed_is_plausible(put_seed, strike, cfg):
            logger.debug("Kim recomputed seed still implausible; returning QD+ pair unrefined")
            return _unrefined(
                put_seed,
                initial_curve(put_seed, params, cfg.collocation_points),
                params,
                sweeps=0,
                converged=False,
                accepted=False,
                recomputed=True,
            )

    seed_curve = initial_curve(put_seed, params, cfg.collocation_points)
    crossing_time = locate_crossing(seed_curve, cfg.crossing_tol)
    curve = seed_curve
    if crossing_time is not None:
        curve = merge_after_crossing(curve, crossing_time)

    converged = False
    sweeps = 0
    previous_change = np.inf
    flat_sweeps = 0

    with log_timing(logger, "Kim refinement", log_timings):
        for sweep in range(cfg.max_sweeps):
            sweeps = sweep + 1
            active = curve.tau > 0.0
            if crossing_time is not None:
                active &= curve.tau < crossing_time
            new_upper, new_lower = _sweep(curve, params, cfg, active)
            upper_change = float(np.max(np.abs(new_upper - curve.upper)))
            lower_change = float(np.max(np.abs(new_lower - curve.lower)))
            max_change = max(upper_change, lower_change)

            if sweep == 0 and upper_change < 10.0 * cfg.tol and lower_change < 10.0 * cfg.tol:
                logger.debug("Kim first sweep moved the seed by %.3g; keeping seed", max_change)
                return _unrefined(
                    put_seed,
                    seed_curve,
                    params,
                    sweeps=sweeps,
                    converged=True,
                    accepted=True,
                    recomputed=recomputed,
                    crossing_time=crossing_time,
                )

            if sweep > 3 and max_change > (1.0 - cfg.stagnation_rtol) * previous_change:
                flat_sweeps += 1
            else:
                flat_sweeps = 0
            previous_change = max_change
            if flat_sweeps > cfg.stagnation_sweeps:
                logger.debug(
                    "Kim refinement stagnated at max_change=%.3g; falling back to the QD+ pair",
                    max_change,
                )
                return _unrefined(
                    put_seed,
                    CollocationCurve(tau=curve.tau, upper=new_upper, lower=new_lower),
                    params,
                    sweeps=sweeps,
                    converged=False,
                    accepted=False,
                    recomputed=recomputed,
                    stagnated=True,
                    crossing_time=crossing_time,
                )

            curve = CollocationCurve(tau=curve.tau, upper=new_upper, lower=new_lower)
            if crossing_time is None:
                crossing_time = locate_crossing(curve, cfg.crossing_tol)
                if crossing_time is not None:
                    logger.debug("Kim curves cross at tau=%.4g; merging later nodes", crossing_time)
                    curve = merge_after_crossing(curve, crossing_time)

            if max_change < cfg.tol:
                converged = True
                break

    curve = _post_process(curve, cfg)
    refined = curve.at_valuation()
    accepted = _refinement_acceptable(refined, put_seed, cfg)
    if not accepted:
        logger.debug(
            "Kim refinement discarded (upper %.6g -> %.6g, lower %.6g -> %.6g); keeping seed",
            put_seed.upper,
            refined.upper,
            put_seed.lower,
            refined.lower,
        )
        refined = put_seed

    logger.debug(
        "Kim sweeps=%d converged=%s accepted=%s upper=%.6g lower=%.6g",
        sweeps,
        converged,
        accepted,
        refined.upper,
        refined.lower,
    )
    return KimResult(
        pair=_to_side(refined, params),
        seed=_to_side(put_seed, params),
        curve=curve,
        sweeps=sweeps,
        converged=converged,
        accepted=accepted,
        seed_recomputed=recomputed,
        crossing_time=crossing_time,
    )
