"""Characteristic roots of the QD+ boundary equation.

For the double-boundary regime q < r < 0 both the rate term ``alpha`` and
``h = 1 - exp(-rT)`` are negative, so ``4 alpha / h`` is positive and the two
roots are real with opposite signs: the negative root drives the upper
boundary and the positive root the lower boundary.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
import math

from ..exceptions import StabilityError, ValidationError
from .params import MarketParameters

# |h| below this means r*T is numerically zero and 4 alpha / h blows up.
_MIN_ABS_H = 1e-12


@dataclass(frozen=True, slots=True)
class CharacteristicRoots:
    """Roots of ``lambda^2 + (beta - 1) lambda - alpha / h = 0`` and their h-derivatives."""

    lambda_upper: float
    lambda_lower: float
    h: float
    alpha: float
    beta: float
    discriminant: float
    dlambda_upper_dh: float
    dlambda_lower_dh: float

    def for_boundary(self, upper: bool) -> tuple[float, float]:
        """Return ``(lambda, dlambda/dh)`` for the upper or lower boundary."""
        if upper:
            return self.lambda_upper, self.dlambda_upper_dh
        return self.lambda_lower, self.dlambda_lower_dh


@lru_cache(maxsize=256)
def _roots(rate: float, dividend_yield: float, volatility: float, maturity: float) -> CharacteristicRoots:
    h = 1.0 - math.exp(-rate * maturity)
    if abs(h) < _MIN_ABS_H:
        raise ValidationError(
            f"h = 1 - exp(-rT) is numerically zero (r={rate}, T={maturity}); "
            "use an intrinsic-value fast path for this input"
        )

    sigma2 = volatility * volatility
    alpha = 2.0 * rate / sigma2
    beta = 2.0 * (rate - dividend_yield) / sigma2

    radicand = (beta - 1.0) ** 2 + 4.0 * alpha / h
    if not radicand >= 0.0:
        raise StabilityError(
            f"Characteristic roots are complex (radicand={radicand:.6g}); "
            "parameters are outside the double-boundary regime"
        )
    disc = math.sqrt(radicand)

    lambda_upper = (-(beta - 1.0) - disc) / 2.0
    lambda_lower = (-(beta - 1.0) + disc) / 2.0

    if disc > 0.0:
        slope = alpha / (h * h * disc)
    else:
        slope = 0.0

    return CharacteristicRoots(
        lambda_upper=lambda_upper,
        lambda_lower=lambda_lower,
        h=h,
        alpha=alpha,
        beta=beta,
        discriminant=disc,
        dlambda_upper_dh=slope,
        dlambda_lower_dh=-slope,
    )


def characteristic_roots(params: MarketParameters) -> CharacteristicRoots:
    """Compute (and cache) the characteristic roots for ``params``.

    Parameters
    ----------
    params
        Market inputs. Only rate, dividend yield, volatility and maturity are
        used, so results are shared across spots, strikes and option sides.

    Returns
    -------
    CharacteristicRoots
        lambda_upper < 0 < lambda_lower in the q < r < 0 regime, plus h,
        alpha, beta, the discriminant and the h-derivatives obtained by
        implicit differentiation.

    Raises
    ------
    ValidationError
        If h is numerically zero (near-zero rate or maturity).
    StabilityError
        If the discriminant is negative.
    """
    return _roots(params.rate, params.dividend_yield, params.volatility, params.maturity)
