"""Enums for double-boundary American option pricing."""

from enum import Enum

__all__ = [
    "OptionType",
    "BoundaryMethod",
    "ExerciseRegion",
    "RateRegime",
]


class OptionType(Enum):
    CALL = "call"
    PUT = "put"


class BoundaryMethod(Enum):
    QD_PLUS = "qd_plus"
    CALIBRATED_GUESS = "calibrated_guess"
    EMPIRICAL = "empirical"
    KIM_REFINED = "kim_refined"


class ExerciseRegion(Enum):
    IMMEDIATE = "immediate"
    ABOVE_UPPER = "above_upper"
    BELOW_LOWER = "below_lower"
    CONTINUATION = "continuation"
    FALLBACK = "fallback"


class RateRegime(Enum):
    STANDARD = "standard"
    DOUBLE_BOUNDARY = "double_boundary"
