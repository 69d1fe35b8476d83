"""Plot exercise boundaries and price profiles."""

from typing import TYPE_CHECKING
import numpy as np
import matplotlib.pyplot as plt
from matplotlib.figure import Figure
from matplotlib.axes import Axes

from ..pricing.bsm import european_value
from ..pricing.engine import solve_boundaries, value_with_boundaries
from ..utils import intrinsic_value

if TYPE_CHECKING:
    from ..pricing.boundaries import BoundaryPair, CollocationCurve
    from ..pricing.params import MarketParameters


def plot_boundary_curve(
    curve: "CollocationCurve",
    strike: float | None = None,
    figsize: tuple[float, float] = (10, 6),
) -> tuple[Figure, Axes]:
    """Plot the upper and lower put-space boundaries against time to maturity.

    Parameters
    ----------
    curve : CollocationCurve
        Collocation curve, e.g. ``KimResult.curve``
    strike : float, optional
        Draw a reference line at the strike when given
    figsize : tuple[float, float], optional
        Figure size (default: (10, 6))

    Returns
    -------
    tuple[Figure, Axes]
        Matplotlib figure and axes objects
    """
    fig, ax = plt.subplots(figsize=figsize)

    ax.plot(curve.tau, curve.upper, label="Upper boundary", linewidth=2)
    ax.plot(curve.tau, curve.lower, label="Lower boundary", linewidth=2)
    ax.fill_between(curve.tau, curve.lower, curve.upper, alpha=0.15, label="Exercise region")
    if strike is not None:
        ax.axhline(y=strike, color="r", linestyle=":", alpha=0.5, label="Strike")

    crossing = curve.crossing_time()
    if crossing is not None:
        ax.axvline(x=crossing, color="k", linestyle="--", alpha=0.5, label="Crossing")

    ax.set_xlabel("Time to Maturity (years)")
    ax.set_ylabel("Boundary Level")
    ax.set_title("Exercise Boundaries")
    ax.legend()
    ax.grid(True, alpha=0.3)

    return fig, ax


def plot_price_profile(
    params: "MarketParameters",
    spot_range: tuple[float, float] | None = None,
    num_points: int = 200,
    boundaries: "BoundaryPair | None" = None,
    figsize: tuple[float, float] = (10, 6),
) -> tuple[Figure, Axes]:
    """Plot American value, European value and intrinsic value across spot.

    Parameters
    ----------
    params : MarketParameters
        Market inputs; the spot is varied over ``spot_range``
    spot_range : tuple[float, float], optional
        (min_spot, max_spot) range. If None, uses 30% to 150% of strike.
    num_points : int, optional
        Number of points to plot (default: 200)
    boundaries : BoundaryPair, optional
        Boundary pair to value with. If None, runs ``solve_boundaries``.
    figsize : tuple[float, float], optional
        Figure size (default: (10, 6))

    Returns
    -------
    tuple[Figure, Axes]
        Matplotlib figure and axes objects
    """
    fig, ax = plt.subplots(figsize=figsize)

    if spot_range is None:
        spot_min = params.strike * 0.3
        spot_max = params.strike * 1.5
    else:
        spot_min, spot_max = spot_range

    if boundaries is None:
        boundaries = solve_boundaries(params).pair

    spot_values = np.linspace(spot_min, spot_max, num_points)
    american = np.array(
        [value_with_boundaries(params.with_spot(s), boundaries).price for s in spot_values]
    )
    european = np.array([european_value(params, spot=s) for s in spot_values])
    intrinsic = np.array(
        [intrinsic_value(s, params.strike, params.option_type) for s in spot_values]
    )

    ax.plot(spot_values, american, label="American", linewidth=2)
    ax.plot(spot_values, european, label="European", linewidth=2, linestyle="--", alpha=0.7)
    ax.plot(spot_values, intrinsic, label="Intrinsic", linestyle=":", alpha=0.7)
    for level, name in ((boundaries.upper, "Upper"), (boundaries.lower, "Lower")):
        ax.axvline(x=level, color="k", linestyle=":", alpha=0.5, label=f"{name} boundary")

    ax.set_xlabel("Spot Price")
    ax.set_ylabel("Option Value")
    ax.set_title(f"{params.option_type.value.upper()} Price Profile (T={params.maturity:g})")
    ax.legend()
    ax.grid(True, alpha=0.3)

    return fig, ax
