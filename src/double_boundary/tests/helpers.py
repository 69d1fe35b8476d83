from double_boundary.enums import OptionType
from double_boundary.pricing import MarketParameters

# Put boundaries (upper, lower) at S = K = 100, r = -0.005, q = -0.01, sigma = 0.08,
# by maturity.
REFERENCE_BOUNDARIES = {
    1.0: (73.50, 63.50),
    5.0: (71.60, 61.60),
    10.0: (69.62, 58.72),
    15.0: (68.00, 57.00),
}


def market_params(
    *,
    spot: float = 100.0,
    strike: float = 100.0,
    maturity: float = 1.0,
    rate: float = -0.005,
    dividend_yield: float = -0.01,
    volatility: float = 0.08,
    option_type: OptionType = OptionType.PUT,
) -> MarketParameters:
    """Market parameters defaulting to the negative-rate benchmark put."""
    return MarketParameters(
        spot=spot,
        strike=strike,
        maturity=maturity,
        rate=rate,
        dividend_yield=dividend_yield,
        volatility=volatility,
        option_type=option_type,
    )


def max_refinement_move(seed: float, reject_relative: float = 0.002, reject_absolute: float = 0.1) -> float:
    """Largest change an accepted Kim refinement may make to a seed boundary."""
    return max(reject_relative * abs(seed), reject_absolute)
