"""American option pricing in the double-boundary regime q < r < 0.

Public API
----------
Parameter classes:
    MarketParameters: Contract and market inputs
    QDPlusParams: Configuration for the QD+ boundary approximation
    KimParams: Configuration for the Kim integral refinement
    SolverParams: Union type for both solver parameter classes

Boundary stages:
    characteristic_roots: Roots of the discounted-time characteristic equation
    solve_qd_plus: QD+ approximation of both boundaries (Super Halley)
    refine_boundaries: Kim integral-equation refinement (FP-B' sweeps)
    validate_boundaries: Admissibility checks for a boundary pair

Valuation:
    solve_boundaries: QD+ -> Kim -> validation pipeline
    value_with_boundaries: Price from a given boundary pair
    price_american: Full pipeline plus valuation
"""

from .params import MarketParameters, QDPlusParams, KimParams, SolverParams
from .boundaries import BoundaryPair, CollocationCurve
from .bsm import european_value, european_theta
from .roots import CharacteristicRoots, characteristic_roots
from .qdplus import (
    QDPlusResult,
    calibrated_initial_guess,
    empirical_boundaries,
    qd_plus_residual,
    solve_qd_plus,
)
from .kim import (
    KimResult,
    expiry_boundaries,
    initial_curve,
    locate_crossing,
    merge_after_crossing,
    pool_adjacent_violators,
    refine_boundaries,
    savgol_smooth,
    seed_is_plausible,
)
from .validation import BoundaryValidation, validate_boundaries
from .engine import (
    BoundarySolution,
    PriceResult,
    price_american,
    solve_boundaries,
    value_with_boundaries,
)

__all__ = [
    # Parameter classes
    "MarketParameters",
    "QDPlusParams",
    "KimParams",
    "SolverParams",
    # Boundary types
    "BoundaryPair",
    "CollocationCurve",
    # European reference
    "european_value",
    "european_theta",
    # Characteristic roots
    "CharacteristicRoots",
    "characteristic_roots",
    # QD+
    "QDPlusResult",
    "calibrated_initial_guess",
    "empirical_boundaries",
    "qd_plus_residual",
    "solve_qd_plus",
    # Kim refinement
    "KimResult",
    "expiry_boundaries",
    "initial_curve",
    "locate_crossing",
    "merge_after_crossing",
    "pool_adjacent_violators",
    "refine_boundaries",
    "savgol_smooth",
    "seed_is_plausible",
    # Validation
    "BoundaryValidation",
    "validate_boundaries",
    # Valuation
    "BoundarySolution",
    "PriceResult",
    "price_american",
    "solve_boundaries",
    "value_with_boundaries",
]
