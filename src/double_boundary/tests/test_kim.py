"""Tests for the Kim integral-equation refinement."""

import numpy as np
import pandas as pd
import pytest

from double_boundary.enums import OptionType
from double_boundary.pricing import (
    BoundaryPair,
    CollocationCurve,
    KimParams,
    expiry_boundaries,
    initial_curve,
    locate_crossing,
    merge_after_crossing,
    pool_adjacent_violators,
    refine_boundaries,
    savgol_smooth,
    seed_is_plausible,
    solve_qd_plus,
)
from double_boundary.pricing import kim

from double_boundary.tests.helpers import REFERENCE_BOUNDARIES, market_params, max_refinement_move

# Converged one-year put boundaries of the integral equation for the benchmark
# market (r = -0.005, q = -0.01, sigma = 0.08, K = 100).
CONVERGED_ONE_YEAR = (86.26, 52.55)


# ═══════════════════════════════════════════════════════════════════
# Building blocks
# ═══════════════════════════════════════════════════════════════════


def test_expiry_boundaries(put_params):
    start = expiry_boundaries(put_params)
    assert start.upper == pytest.approx(100.0)
    assert start.lower == pytest.approx(50.0)


def test_initial_curve_endpoints(reference_put_pair):
    params = market_params(maturity=2.0)
    curve = initial_curve(reference_put_pair, params, points=11)
    assert curve.size == 11
    assert curve.tau[0] == 0.0
    assert curve.tau[-1] == pytest.approx(2.0)
    assert curve.upper[0] == pytest.approx(100.0)
    assert curve.lower[0] == pytest.approx(50.0)
    assert curve.at_valuation().as_tuple() == pytest.approx(reference_put_pair.as_tuple())
    assert np.all(curve.lower < curve.upper)
    assert curve.upper[5] == pytest.approx(0.5 * (100.0 + 73.5))
    assert curve.lower[5] == pytest.approx(0.5 * (50.0 + 63.5))


def test_collocation_curve_shape_check():
    with pytest.raises(ValueError, match="equal length"):
        CollocationCurve(tau=np.linspace(0.0, 1.0, 5), upper=np.ones(5), lower=np.ones(4))


def test_crossing_time_and_frame():
    curve = CollocationCurve(
        tau=[0.0, 0.5, 1.0, 1.5],
        upper=[100.0, 80.0, 70.0, 65.0],
        lower=[50.0, 75.0, 70.0, 66.0],
    )
    assert curve.crossing_time() == pytest.approx(1.0)
    frame = curve.to_frame()
    assert isinstance(frame, pd.DataFrame)
    assert list(frame.columns) == ["tau", "upper", "lower"]
    assert len(frame) == 4


def test_locate_crossing_bisects_to_tolerance():
    # gap = upper - lower falls linearly from 10 at tau = 1 to -10 at tau = 2
    curve = CollocationCurve(
        tau=[0.0, 1.0, 2.0, 3.0],
        upper=[100.0, 80.0, 70.0, 60.0],
        lower=[50.0, 70.0, 80.0, 90.0],
    )
    crossing = locate_crossing(curve, tolerance=1e-2)
    assert crossing == pytest.approx(1.5, abs=1e-2)
    assert 1.0 < crossing < 2.0


def test_locate_crossing_without_crossing(reference_put_pair, put_params):
    assert locate_crossing(initial_curve(reference_put_pair, put_params, 20)) is None


def test_merge_after_crossing_sets_midpoint():
    curve = CollocationCurve(
        tau=[0.0, 1.0, 2.0, 3.0],
        upper=[100.0, 80.0, 70.0, 60.0],
        lower=[50.0, 70.0, 80.0, 90.0],
    )
    merged = merge_after_crossing(curve, 1.5)
    np.testing.assert_allclose(merged.upper[:2], [100.0, 80.0])
    np.testing.assert_allclose(merged.lower[:2], [50.0, 70.0])
    np.testing.assert_allclose(merged.upper[2:], [75.0, 75.0])
    np.testing.assert_allclose(merged.lower[2:], [75.0, 75.0])
    assert merged.crossing_time() == pytest.approx(2.0)


def test_seed_plausibility(kim_params):
    assert seed_is_plausible(BoundaryPair(73.5, 63.5), 100.0, kim_params)
    assert not seed_is_plausible(BoundaryPair(95.0, 63.5), 100.0, kim_params)
    assert not seed_is_plausible(BoundaryPair(73.5, 40.0), 100.0, kim_params)
    assert not seed_is_plausible(BoundaryPair(70.0, 75.0), 100.0, kim_params)


@pytest.mark.parametrize(
    "values,increasing,expected",
    [
        ([3.0, 1.0, 2.0], True, [2.0, 2.0, 2.0]),
        ([1.0, 2.0, 3.0], True, [1.0, 2.0, 3.0]),
        ([1.0, 3.0, 2.0], False, [2.0, 2.0, 2.0]),
        ([5.0, 4.0, 4.5, 1.0], False, [5.0, 4.25, 4.25, 1.0]),
    ],
)
def test_pool_adjacent_violators(values, increasing, expected):
    np.testing.assert_allclose(pool_adjacent_violators(np.array(values), increasing=increasing), expected)


def test_savgol_preserves_quadratics_and_endpoints():
    x = np.arange(9, dtype=float)
    y = 0.5 * x**2 - 3.0 * x + 7.0
    np.testing.assert_allclose(savgol_smooth(y), y, atol=1e-10)

    noisy = y.copy()
    noisy[4] += 1.0
    smoothed = savgol_smooth(noisy)
    assert smoothed[0] == noisy[0]
    assert smoothed[1] == noisy[1]
    assert smoothed[-1] == noisy[-1]
    # 5-point quadratic weights give the spike 17/35 of its height at its own node
    assert smoothed[4] - y[4] == pytest.approx(17.0 / 35.0)


def test_savgol_short_input_unchanged():
    values = np.array([1.0, 2.0, 4.0])
    np.testing.assert_array_equal(savgol_smooth(values), values)


def test_post_processing_keeps_curves_ordered():
    upper = np.array([100.0, 100.0, 61.0, 61.0, 61.0, 100.0, 100.0])
    lower = np.array([50.0, 60.0, 60.0, 60.0, 60.0, 60.0, 50.0])
    # smoothing alone pulls upper[3] below lower[3]
    assert savgol_smooth(upper)[3] < 60.0

    curve = CollocationCurve(tau=np.linspace(0.0, 1.0, 7), upper=upper, lower=lower)
    processed = kim._post_process(curve, KimParams(enforce_monotone=False))
    assert np.all(processed.lower < processed.upper)
    assert processed.upper[3] == pytest.approx(61.0)
    assert processed.lower[3] == pytest.approx(60.0)


def test_post_processing_monotone_directions():
    curve = CollocationCurve(
        tau=np.linspace(0.0, 1.0, 6),
        upper=[100.0, 95.0, 96.0, 90.0, 88.0, 89.0],
        lower=[50.0, 51.0, 50.5, 52.0, 53.0, 52.5],
    )
    processed = kim._post_process(curve, KimParams(smooth=False))
    assert np.all(np.diff(processed.upper) <= 1e-12)
    assert np.all(np.diff(processed.lower) >= -1e-12)


# ═══════════════════════════════════════════════════════════════════
# Refinement
# ═══════════════════════════════════════════════════════════════════


def test_refinement_never_moves_seed_beyond_acceptance(put_params, kim_params):
    seed = solve_qd_plus(put_params).pair
    result = refine_boundaries(put_params, seed, kim_params)
    assert abs(result.pair.upper - seed.upper) <= max_refinement_move(seed.upper) + 1e-9
    assert abs(result.pair.lower - seed.lower) <= max_refinement_move(seed.lower) + 1e-9
    assert result.seed.as_tuple() == pytest.approx(seed.as_tuple())
    assert not result.seed_recomputed


@pytest.mark.parametrize("maturity", sorted(REFERENCE_BOUNDARIES))
def test_reference_seed_is_kept(maturity, kim_params):
    # The integral equation settles far from the tabulated pairs, so the
    # refinement is discarded and the seed survives unchanged.
    seed = BoundaryPair(*REFERENCE_BOUNDARIES[maturity])
    result = refine_boundaries(market_params(maturity=maturity), seed, kim_params)
    assert not result.accepted
    assert result.pair.as_tuple() == seed.as_tuple()


def test_near_converged_seed_is_accepted_and_improved(put_params, kim_params):
    seed = BoundaryPair(86.2, 52.5)
    result = refine_boundaries(put_params, seed, kim_params)
    assert result.converged
    assert result.accepted
    assert not result.stagnated
    assert result.pair.as_tuple() == pytest.approx(CONVERGED_ONE_YEAR, abs=0.02)

    target = np.array(CONVERGED_ONE_YEAR)
    before = np.abs(np.array(seed.as_tuple()) - target)
    after = np.abs(np.array(result.pair.as_tuple()) - target)
    assert np.all(after < before)


def test_refined_curve_is_ordered_at_every_node(put_params, kim_params):
    result = refine_boundaries(put_params, BoundaryPair(86.2, 52.5), kim_params)
    curve = result.curve
    assert curve.size == kim_params.collocation_points
    assert curve.upper[0] == pytest.approx(100.0)
    assert curve.lower[0] == pytest.approx(50.0)
    assert np.all(curve.lower < curve.upper)
    assert np.all(np.diff(curve.upper) <= 1e-12)
    assert np.all(np.diff(curve.lower) >= -1e-12)
    assert result.crossing_time is None


def test_sweeps_respect_cap(put_params):
    cfg = KimParams(collocation_points=20, max_sweeps=3)
    result = refine_boundaries(put_params, BoundaryPair(73.5, 63.5), cfg)
    assert 1 <= result.sweeps <= 3


def test_first_sweep_within_tolerance_keeps_seed(put_params):
    # No node can move more than 3% of the strike in one sweep, well inside 10 * tol.
    cfg = KimParams(collocation_points=20, tol=1.0)
    seed = BoundaryPair(86.2, 52.5)
    result = refine_boundaries(put_params, seed, cfg)
    assert result.sweeps == 1
    assert result.accepted
    assert result.converged
    assert result.pair.as_tuple() == seed.as_tuple()
    np.testing.assert_allclose(result.curve.upper, initial_curve(seed, put_params, 20).upper)


def test_stagnation_falls_back_to_seed(put_params, kim_params, monkeypatch):
    def flat_sweep(curve, params, kim_params, active):
        return curve.upper - 0.01 * active, curve.lower

    monkeypatch.setattr(kim, "_sweep", flat_sweep)
    seed = BoundaryPair(86.2, 52.5)
    result = refine_boundaries(put_params, seed, kim_params)
    assert result.stagnated
    assert not result.accepted
    assert not result.converged
    assert result.pair.as_tuple() == seed.as_tuple()
    # flat from the fifth sweep on; the fourth flat sweep in a row gives up
    assert result.sweeps == 8
    start = initial_curve(seed, put_params, kim_params.collocation_points)
    np.testing.assert_allclose(result.curve.upper[1:], start.upper[1:] - 0.08)


def test_crossing_is_detected_during_sweeps(put_params, kim_params):
    # From the one-year reference seed the valuation node of the upper curve
    # drops onto the lower one within a few sweeps.
    seed = BoundaryPair(73.5, 63.5)
    result = refine_boundaries(put_params, seed, kim_params)
    assert result.crossing_time is not None
    assert 0.0 < result.crossing_time <= 1.0
    assert not result.accepted
    assert result.pair.as_tuple() == seed.as_tuple()


def test_implausible_seed_is_recomputed(put_params, kim_params):
    result = refine_boundaries(put_params, BoundaryPair(99.0, 98.0), kim_params)
    assert result.seed_recomputed
    assert result.seed.as_tuple() == pytest.approx(solve_qd_plus(put_params).pair.as_tuple())


def test_call_refinement_mirrors_put_refinement(put_params, call_params, kim_params):
    put_seed = BoundaryPair(86.2, 52.5)
    put = refine_boundaries(put_params, put_seed, kim_params)
    call = refine_boundaries(call_params, put_seed.mirrored(100.0), kim_params)
    assert call.pair.option_type is OptionType.CALL
    assert call.pair.upper == pytest.approx(200.0 - put.pair.lower)
    assert call.pair.lower == pytest.approx(200.0 - put.pair.upper)
    assert call.accepted == put.accepted
    assert call.sweeps == put.sweeps


@pytest.mark.parametrize("maturity", [0.5, 5.0])
def test_refined_pair_is_finite_and_ordered(maturity, kim_params):
    params = market_params(maturity=maturity)
    result = refine_boundaries(params, solve_qd_plus(params).pair, kim_params)
    assert np.isfinite(result.pair.upper)
    assert np.isfinite(result.pair.lower)
    assert 0.0 < result.pair.lower < result.pair.upper < 100.0
