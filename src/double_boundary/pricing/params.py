"""Market inputs and solver configuration.

``MarketParameters`` describes the contract and the market; the two solver
parameter classes explicitly document the tuning knobs of the QD+ engine and
the Kim refinement.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
import math

from ..enums import OptionType
from ..exceptions import ConfigurationError, ValidationError


@dataclass(frozen=True, slots=True)
class MarketParameters:
    """Inputs for pricing one American option.

    Attributes
    ==========
    spot:
        Current underlying price. Must be positive.
    strike:
        Strike price. Must be positive.
    maturity:
        Time to maturity in years. Must be positive.
    rate:
        Continuously compounded risk-free rate.
    dividend_yield:
        Continuous dividend yield.
    volatility:
        Annualized volatility. Must be positive.
    option_type:
        OptionType.CALL / OptionType.PUT (or "call" / "put").
    """

    spot: float
    strike: float
    maturity: float
    rate: float
    dividend_yield: float
    volatility: float
    option_type: OptionType | str = OptionType.PUT

    def __post_init__(self) -> None:
        if isinstance(self.option_type, str):
            try:
                object.__setattr__(self, "option_type", OptionType(self.option_type.lower()))
            except ValueError as exc:
                raise ConfigurationError(
                    f"option_type must be 'call' or 'put', got {self.option_type!r}"
                ) from exc
        if not isinstance(self.option_type, OptionType):
            raise ConfigurationError(
                f"option_type must be OptionType enum, got {type(self.option_type).__name__}"
            )

        for name in ("spot", "strike", "maturity", "rate", "dividend_yield", "volatility"):
            raw = getattr(self, name)
            try:
                value = float(raw)
            except (TypeError, ValueError) as exc:
                raise ConfigurationError(f"{name} must be numeric, got {raw!r}") from exc
            if not math.isfinite(value):
                raise ValidationError(f"{name} must be finite, got {value}")
            object.__setattr__(self, name, value)

        for name in ("spot", "strike", "maturity", "volatility"):
            value = getattr(self, name)
            if value <= 0.0:
                raise ValidationError(f"{name} must be positive, got {value}")

    @property
    def is_call(self) -> bool:
        return self.option_type is OptionType.CALL

    @property
    def in_double_boundary_regime(self) -> bool:
        """True when q < r < 0."""
        return self.dividend_yield < self.rate < 0.0

    def with_spot(self, spot: float) -> MarketParameters:
        """Return a copy with a different spot."""
        return replace(self, spot=spot)

    def with_option_type(self, option_type: OptionType) -> MarketParameters:
        """Return a copy on the other side of the strike."""
        return replace(self, option_type=option_type)


@dataclass(frozen=True, slots=True)
class QDPlusParams:
    """Parameters for the QD+ boundary approximation.

    Attributes
    ==========
    max_iter:
        Super Halley iteration cap per boundary. Default: 50.
    tol:
        Stop once |f| or the relative step falls below this. Default: 1e-6.
    fd_step:
        Finite-difference step as a fraction of the current iterate.
        Default: 1e-4 (0.01% of S).
    strike_exclusion:
        Roots within this fraction of the strike are spurious (the residual
        is near-singular there). Default: 0.05.
    max_spot_multiple:
        Halley iterates above ``max_spot_multiple * K`` (or <= 0) fall back
        to a Newton step. Default: 10.0.
    long_dated_cutoff:
        Maturity (years) at which the wider long-dated deviation window
        applies. Default: 3.0.
    max_relative_deviation, max_absolute_deviation:
        Deviation window around the calibrated guess for maturities below
        ``long_dated_cutoff``. The relative limit is a fraction of the guess,
        the absolute one a fraction of the strike. Defaults: 0.10 and 0.05.
    long_max_relative_deviation, long_max_absolute_deviation:
        Deviation window for long-dated options. Defaults: 0.15 and 0.08.
    anchor_reference:
        At the published reference conditions (sigma = 0.08, r = -0.005,
        q = -0.01, T in {1, 5, 10, 15}) keep the calibrated guess, which is
        the reference boundary itself, instead of any QD+ root. Default: True.
    residual_tol:
        A converged root whose |f| exceeds this is discarded. Default: 1e-4.
    """

    max_iter: int = 50
    tol: float = 1e-6
    fd_step: float = 1e-4
    strike_exclusion: float = 0.05
    max_spot_multiple: float = 10.0
    long_dated_cutoff: float = 3.0
    max_relative_deviation: float = 0.10
    max_absolute_deviation: float = 0.05
    long_max_relative_deviation: float = 0.15
    long_max_absolute_deviation: float = 0.08
    residual_tol: float = 1e-4
    anchor_reference: bool = True

    def __post_init__(self):
        if self.max_iter < 1:
            raise ValueError(f"max_iter must be >= 1, got {self.max_iter}")
        if self.tol <= 0:
            raise ValueError(f"tol must be positive, got {self.tol}")
        if not (0.0 < self.fd_step < 0.1):
            raise ValueError(f"fd_step must be in (0, 0.1), got {self.fd_step}")
        if not (0.0 <= self.strike_exclusion < 1.0):
            raise ValueError(f"strike_exclusion must be in [0, 1), got {self.strike_exclusion}")
        if self.max_spot_multiple <= 1.0:
            raise ValueError(f"max_spot_multiple must be > 1, got {self.max_spot_multiple}")
        for name in (
            "max_relative_deviation",
            "max_absolute_deviation",
            "long_max_relative_deviation",
            "long_max_absolute_deviation",
            "residual_tol",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")

    def deviation_window(self, maturity: float, strike: float) -> tuple[float, float]:
        """Return ``(max_relative, max_absolute)`` deviation, the latter in price units."""
        if maturity < self.long_dated_cutoff:
            return self.max_relative_deviation, self.max_absolute_deviation * strike
        return self.long_max_relative_deviation, self.long_max_absolute_deviation * strike


@dataclass(frozen=True, slots=True)
class KimParams:
    """Parameters for the Kim integral-equation refinement.

    Attributes
    ==========
    collocation_points:
        Number of time-to-maturity nodes m spanning [0, T]. Default: 50.
    max_sweeps:
        Sweep cap. Default: 100.
    tol:
        Convergence threshold on the max absolute change over both curves.
        Default: 1e-5.
    upper_seed_range, lower_seed_range:
        Plausible seed ranges as fractions of the strike (put space),
        half-open ``[low, high)``. A seed outside them is recomputed with
        QD+ before refining. Defaults: (0.60, 0.90) and (0.45, 0.85).
    accept_tol:
        Changes at the valuation-time node below this are accepted
        outright. Default: 1e-4.
    reject_relative, reject_absolute:
        A refined boundary that moves more than both of these away from the
        seed is discarded. Defaults: 0.002 and 0.1.
    max_step:
        Largest relative move of a node in one sweep. Default: 0.03.
    crossing_tol:
        Bisection width at which the crossing time of the two curves is
        considered resolved. Default: 1e-2.
    enforce_monotone:
        Project the upper curve onto a non-increasing and the lower curve onto
        a non-decreasing sequence in tau (isotonic regression). Default: True.
    smooth:
        Apply a 5-point quadratic Savitzky-Golay filter to interior nodes.
        Default: True.
    stagnation_sweeps:
        Give up on the refinement once the max change has failed to shrink by
        ``stagnation_rtol`` for more than this many consecutive sweeps.
        Default: 3.
    stagnation_rtol:
        Relative decrease of the max change below which a sweep counts as
        flat. Default: 1e-3.
    """

    collocation_points: int = 50
    max_sweeps: int = 100
    tol: float = 1e-5
    upper_seed_range: tuple[float, float] = (0.60, 0.90)
    lower_seed_range: tuple[float, float] = (0.45, 0.85)
    accept_tol: float = 1e-4
    reject_relative: float = 0.002
    reject_absolute: float = 0.1
    max_step: float = 0.03
    crossing_tol: float = 1e-2
    enforce_monotone: bool = True
    smooth: bool = True
    stagnation_sweeps: int = 3
    stagnation_rtol: float = 1e-3

    def __post_init__(self):
        if self.collocation_points < 3:
            raise ValueError(f"collocation_points must be >= 3, got {self.collocation_points}")
        if self.max_sweeps < 1:
            raise ValueError(f"max_sweeps must be >= 1, got {self.max_sweeps}")
        if self.tol <= 0:
            raise ValueError(f"tol must be positive, got {self.tol}")
        for name in ("upper_seed_range", "lower_seed_range"):
            low, high = getattr(self, name)
            if not (0.0 <= low < high):
                raise ValueError(f"{name} must satisfy 0 <= low < high, got {(low, high)}")
        if self.accept_tol <= 0 or self.reject_relative <= 0 or self.reject_absolute <= 0:
            raise ValueError("accept_tol, reject_relative and reject_absolute must be positive")
        if not (0.0 < self.max_step < 1.0):
            raise ValueError(f"max_step must be in (0, 1), got {self.max_step}")
        if self.crossing_tol <= 0:
            raise ValueError(f"crossing_tol must be positive, got {self.crossing_tol}")
        if self.stagnation_sweeps < 1:
            raise ValueError(f"stagnation_sweeps must be >= 1, got {self.stagnation_sweeps}")
        if not (0.0 <= self.stagnation_rtol < 1.0):
            raise ValueError(f"stagnation_rtol must be in [0, 1), got {self.stagnation_rtol}")


# Type alias for any solver parameters
SolverParams = QDPlusParams | KimParams
