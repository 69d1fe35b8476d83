"""Value types for exercise boundaries.

``BoundaryPair`` is the boundary pair at valuation time; ``CollocationCurve``
holds both boundaries as functions of time to maturity for the Kim
refinement. Put-space and call-space pairs are related by reflection across
the strike, see :meth:`BoundaryPair.mirrored`.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import pandas as pd

from ..enums import OptionType
from ..utils import mirror_around_strike


@dataclass(frozen=True, slots=True)
class BoundaryPair:
    """Upper and lower exercise boundaries.

    Attributes
    ==========
    upper:
        Upper boundary S*_u.
    lower:
        Lower boundary S*_l.
    option_type:
        Side the pair belongs to. Put boundaries lie below the strike, call
        boundaries above it.
    """

    upper: float
    lower: float
    option_type: OptionType = OptionType.PUT

    @property
    def crossed(self) -> bool:
        """True when the boundaries have crossed and no premium may be computed."""
        if self.option_type is OptionType.CALL:
            return self.upper <= self.lower
        return self.lower >= self.upper

    @property
    def width(self) -> float:
        return self.upper - self.lower

    def mirrored(self, strike: float) -> BoundaryPair:
        """Reflect the pair across the strike onto the other option side.

        upper' = K + (K - lower), lower' = K + (K - upper).
        """
        other = OptionType.PUT if self.option_type is OptionType.CALL else OptionType.CALL
        return BoundaryPair(
            upper=mirror_around_strike(self.lower, strike),
            lower=mirror_around_strike(self.upper, strike),
            option_type=other,
        )

    def as_tuple(self) -> tuple[float, float]:
        return self.upper, self.lower


@dataclass(frozen=True, slots=True, eq=False)
class CollocationCurve:
    """Put-space boundary curves sampled at collocation times.

    Attributes
    ==========
    tau:
        Time to maturity of each node, ascending from 0 to T.
    upper, lower:
        Boundary samples at each node. Index 0 is immediate maturity
        (upper = K, lower = K r / q); the last index is valuation time.
    """

    tau: np.ndarray
    upper: np.ndarray
    lower: np.ndarray

    def __post_init__(self):
        tau = np.asarray(self.tau, dtype=float)
        upper = np.asarray(self.upper, dtype=float)
        lower = np.asarray(self.lower, dtype=float)
        if not (tau.shape == upper.shape == lower.shape) or tau.ndim != 1:
            raise ValueError(
                f"tau, upper and lower must be 1-D with equal length, got "
                f"{tau.shape}, {upper.shape}, {lower.shape}"
            )
        object.__setattr__(self, "tau", tau)
        object.__setattr__(self, "upper", upper)
        object.__setattr__(self, "lower", lower)

    @property
    def size(self) -> int:
        return int(self.tau.size)

    def at_valuation(self) -> BoundaryPair:
        """Put-space boundary pair at the valuation-time node (tau = T)."""
        return BoundaryPair(upper=float(self.upper[-1]), lower=float(self.lower[-1]))

    def crossing_time(self) -> float | None:
        """First tau > 0 at which upper <= lower, or None if the curves never cross."""
        crossed = np.nonzero(self.upper[1:] <= self.lower[1:])[0]
        if crossed.size == 0:
            return None
        return float(self.tau[crossed[0] + 1])

    def to_frame(self) -> pd.DataFrame:
        """Return the curves as a DataFrame indexed by node."""
        return pd.DataFrame({"tau": self.tau, "upper": self.upper, "lower": self.lower})
