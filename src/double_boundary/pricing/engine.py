"""Boundary pipeline and valuation engine.

``solve_boundaries`` chains QD+ -> (optional) Kim refinement -> validation.
``value_with_boundaries`` turns a boundary pair into a price:

- crossed or inadmissible pair: the European value, flagged invalid;
- spot at or past the exercise-side boundary: intrinsic value;
- otherwise European value plus a premium a_1 S^lambda_1 at or above the
  upper boundary, a_2 S^lambda_2 at or below the lower boundary, and zero
  strictly between them.

``price_american`` runs both steps.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging

from ..enums import BoundaryMethod, ExerciseRegion, OptionType
from ..exceptions import UnsupportedFeatureError
from ..utils import intrinsic_value, log_timing
from .boundaries import BoundaryPair
from .bsm import european_value
from .kim import KimResult, refine_boundaries
from .params import KimParams, MarketParameters, QDPlusParams
from .qdplus import QDPlusResult, solve_qd_plus
from .roots import characteristic_roots
from .validation import BoundaryValidation, validate_boundaries

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BoundarySolution:
    """Output of the boundary pipeline.

    ``pair`` is the boundary pair to value with: the Kim-refined pair when the
    refinement was accepted, otherwise the QD+ pair.
    """

    pair: BoundaryPair
    qd: QDPlusResult
    method: BoundaryMethod
    validation: BoundaryValidation
    kim: KimResult | None = None

    @property
    def qd_pair(self) -> BoundaryPair:
        return self.qd.pair

    @property
    def refined(self) -> bool:
        return self.kim is not None and self.kim.accepted

    @property
    def is_valid(self) -> bool:
        return self.validation.is_valid and not self.pair.crossed


@dataclass(frozen=True, slots=True)
class PriceResult:
    """Result container for an American option price.

    ``price == european_value + premium`` in every region. ``valid`` is False
    when the boundary pair was crossed or inadmissible and the price fell back
    to the European value.
    """

    price: float
    european_value: float
    premium: float
    intrinsic_value: float
    region: ExerciseRegion
    valid: bool
    boundaries: BoundaryPair
    method: BoundaryMethod | None = None
    solution: BoundarySolution | None = None


def _require_double_boundary_regime(params: MarketParameters) -> None:
    if not params.in_double_boundary_regime:
        raise UnsupportedFeatureError(
            "Double-boundary pricing requires q < r < 0, got "
            f"r={params.rate}, q={params.dividend_yield}"
        )


def solve_boundaries(
    params: MarketParameters,
    qd_params: QDPlusParams | None = None,
    kim_params: KimParams | None = None,
    *,
    refine: bool = True,
    log_timings: bool = False,
) -> BoundarySolution:
    """Compute and validate the exercise boundaries for ``params``.

    Parameters
    ----------
    params
        Market inputs. Must satisfy q < r < 0.
    qd_params
        QD+ settings. Defaults to ``QDPlusParams()``.
    kim_params
        Kim refinement settings. Defaults to ``KimParams()``.
    refine
        Run the Kim refinement on the QD+ pair. A crossed QD+ pair is never
        refined.
    log_timings
        When ``True``, emit timing logs for each stage.

    Returns
    -------
    BoundarySolution
        Pair to value with, the QD+ result, the Kim result (if run) and the
        validation flags.

    Raises
    ------
    UnsupportedFeatureError
        If the parameters are outside the q < r < 0 regime.
    """
    _require_double_boundary_regime(params)

    with log_timing(logger, "Boundary pipeline", log_timings):
        qd = solve_qd_plus(params, qd_params, log_timings=log_timings)
        pair, method, kim = qd.pair, qd.method, None

        if refine and not qd.pair.crossed:
            kim = refine_boundaries(params, qd.pair, kim_params, qd_params, log_timings=log_timings)
            pair = kim.pair
            if kim.accepted:
                method = BoundaryMethod.KIM_REFINED

    validation = validate_boundaries(pair, params.strike)
    if pair.crossed or not validation.is_valid:
        logger.warning(
            "Boundary pair unusable (crossed=%s failed=%s): upper=%.6g lower=%.6g; "
            "valuation falls back to the European value",
            pair.crossed,
            ",".join(validation.reasons()) or "-",
            pair.upper,
            pair.lower,
        )

    return BoundarySolution(pair=pair, qd=qd, method=method, validation=validation, kim=kim)


def _boundary_coefficient(params: MarketParameters, boundary: float, lam: float) -> float:
    """Value-matching coefficient (intrinsic - European) / boundary^lambda."""
    gap = intrinsic_value(boundary, params.strike, params.option_type) - european_value(
        params, spot=boundary
    )
    return gap / boundary**lam


def value_with_boundaries(
    params: MarketParameters,
    pair: BoundaryPair,
    *,
    method: BoundaryMethod | None = None,
) -> PriceResult:
    """Price an American option from a given boundary pair.

    Parameters
    ----------
    params
        Market inputs. Must satisfy q < r < 0.
    pair
        Exercise boundaries. A pair given for the other option side is
        reflected across the strike first.
    method
        Optional label of how ``pair`` was obtained, copied to the result.

    Returns
    -------
    PriceResult
        Price and its decomposition. A crossed or inadmissible pair yields
        the European value with ``valid=False``; no premium is ever computed
        from such a pair.
    """
    _require_double_boundary_regime(params)

    spot, strike = params.spot, params.strike
    if pair.option_type is not params.option_type:
        logger.debug(
            "Boundary pair given for %s side; mirroring onto %s side",
            pair.option_type.value,
            params.option_type.value,
        )
        pair = pair.mirrored(strike)

    european = european_value(params)
    intrinsic = intrinsic_value(spot, strike, params.option_type)
    validation = validate_boundaries(pair, strike)

    if pair.crossed or not validation.is_valid:
        return PriceResult(
            price=european,
            european_value=european,
            premium=0.0,
            intrinsic_value=intrinsic,
            region=ExerciseRegion.FALLBACK,
            valid=False,
            boundaries=pair,
            method=method,
        )

    if params.option_type is OptionType.CALL:
        exercise_now = spot >= pair.upper
    else:
        exercise_now = spot <= pair.lower

    if exercise_now:
        region = ExerciseRegion.IMMEDIATE
        price = intrinsic
        premium = intrinsic - european
    else:
        roots = characteristic_roots(params)
        if spot >= pair.upper:
            region = ExerciseRegion.ABOVE_UPPER
            lam = roots.lambda_upper
            premium = _boundary_coefficient(params, pair.upper, lam) * spot**lam
        elif spot <= pair.lower:
            region = ExerciseRegion.BELOW_LOWER
            lam = roots.lambda_lower
            premium = _boundary_coefficient(params, pair.lower, lam) * spot**lam
        else:
            region = ExerciseRegion.CONTINUATION
            premium = 0.0
        price = european + premium

    logger.debug(
        "Valuation region=%s price=%.8g european=%.8g premium=%.3g",
        region.value,
        price,
        european,
        premium,
    )
    return PriceResult(
        price=price,
        european_value=european,
        premium=premium,
        intrinsic_value=intrinsic,
        region=region,
        valid=True,
        boundaries=pair,
        method=method,
    )


def price_american(
    params: MarketParameters,
    qd_params: QDPlusParams | None = None,
    kim_params: KimParams | None = None,
    *,
    refine: bool = True,
    log_timings: bool = False,
) -> PriceResult:
    """Price an American option in the q < r < 0 regime.

    Runs :func:`solve_boundaries` and values with the resulting pair. The
    returned ``PriceResult.solution`` carries the full boundary diagnostics.
    """
    solution = solve_boundaries(
        params, qd_params, kim_params, refine=refine, log_timings=log_timings
    )
    result = value_with_boundaries(params, solution.pair, method=solution.method)
    return PriceResult(
        price=result.price,
        european_value=result.european_value,
        premium=result.premium,
        intrinsic_value=result.intrinsic_value,
        region=result.region,
        valid=result.valid,
        boundaries=result.boundaries,
        method=result.method,
        solution=solution,
    )
