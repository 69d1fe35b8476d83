"""Admissibility checks for a boundary pair."""

from __future__ import annotations

from dataclasses import dataclass
import math

from ..enums import OptionType
from .boundaries import BoundaryPair


@dataclass(frozen=True, slots=True)
class BoundaryValidation:
    """Outcome of :func:`validate_boundaries`.

    Attributes
    ==========
    finite:
        Both boundaries are finite numbers.
    positive:
        Both boundaries are strictly positive.
    ordered:
        Upper strictly above lower.
    strike_side:
        Both boundaries strictly below the strike (puts) or above it (calls).
    """

    finite: bool
    positive: bool
    ordered: bool
    strike_side: bool

    @property
    def is_valid(self) -> bool:
        return self.finite and self.positive and self.ordered and self.strike_side

    def reasons(self) -> list[str]:
        """Names of the failed checks, empty when valid."""
        return [
            name
            for name in ("finite", "positive", "ordered", "strike_side")
            if not getattr(self, name)
        ]


def validate_boundaries(pair: BoundaryPair, strike: float) -> BoundaryValidation:
    """Check positivity, ordering and strike side of ``pair``.

    Never raises; an inadmissible pair is reported through the flags so the
    caller can fall back to the European value.
    """
    finite = math.isfinite(pair.upper) and math.isfinite(pair.lower)
    positive = finite and pair.upper > 0.0 and pair.lower > 0.0
    ordered = finite and pair.upper > pair.lower
    if pair.option_type is OptionType.CALL:
        strike_side = finite and pair.upper > strike and pair.lower > strike
    else:
        strike_side = finite and pair.upper < strike and pair.lower < strike
    return BoundaryValidation(
        finite=finite,
        positive=positive,
        ordered=ordered,
        strike_side=strike_side,
    )
