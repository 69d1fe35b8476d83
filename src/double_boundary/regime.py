"""Classify the rate regime an American option falls into.

With negative rates the put (and, symmetrically, the call) can have two
exercise boundaries instead of one:

- put:  q < r < 0 gives a double boundary,
- call: 0 < r < q gives a double boundary.

Everything else is the standard single-boundary case. Only the put-side
regime q < r < 0 (and calls priced under the same rates) is supported by
:func:`double_boundary.pricing.price_american`.
"""

from __future__ import annotations

from .enums import OptionType, RateRegime

__all__ = ["classify_regime", "requires_double_boundary"]


def classify_regime(rate: float, dividend_yield: float, option_type: OptionType | str) -> RateRegime:
    if isinstance(option_type, str):
        option_type = OptionType(option_type.lower())
    if option_type is OptionType.PUT:
        double = dividend_yield < rate < 0.0
    else:
        double = 0.0 < rate < dividend_yield
    return RateRegime.DOUBLE_BOUNDARY if double else RateRegime.STANDARD


def requires_double_boundary(rate: float, dividend_yield: float, option_type: OptionType | str) -> bool:
    """True when the exercise region of this option is bounded on both sides."""
    return classify_regime(rate, dividend_yield, option_type) is RateRegime.DOUBLE_BOUNDARY
