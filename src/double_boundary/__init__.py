from .enums import OptionType, BoundaryMethod, ExerciseRegion, RateRegime
from .exceptions import (
    DoubleBoundaryError,
    ValidationError,
    ConfigurationError,
    UnsupportedFeatureError,
    NumericalError,
    StabilityError,
)
from .regime import classify_regime, requires_double_boundary
from .pricing import (
    MarketParameters,
    QDPlusParams,
    KimParams,
    BoundaryPair,
    solve_qd_plus,
    refine_boundaries,
    validate_boundaries,
    solve_boundaries,
    value_with_boundaries,
    price_american,
)


__all__ = [
    "OptionType",
    "BoundaryMethod",
    "ExerciseRegion",
    "RateRegime",
    "DoubleBoundaryError",
    "ValidationError",
    "ConfigurationError",
    "UnsupportedFeatureError",
    "NumericalError",
    "StabilityError",
    "classify_regime",
    "requires_double_boundary",
    "MarketParameters",
    "QDPlusParams",
    "KimParams",
    "BoundaryPair",
    "solve_qd_plus",
    "refine_boundaries",
    "validate_boundaries",
    "solve_boundaries",
    "value_with_boundaries",
    "price_american",
]
