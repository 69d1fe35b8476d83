"""Custom exception hierarchy for the double_boundary library.

All library-specific exceptions inherit from :class:`DoubleBoundaryError`,
enabling callers to catch *any* library error with a single ``except`` clause::

    try:
        result = price_american(params)
    except DoubleBoundaryError as exc:
        log.error("Library error: %s", exc)

Numerical trouble inside the boundary solvers (divergence, spurious roots,
regressing refinements) is recovered internally and reported through result
flags, so it does not surface here.
"""

from __future__ import annotations


class DoubleBoundaryError(Exception):
    """Base exception for all library errors."""


# ── Input validation ────────────────────────────────────────────────


class ValidationError(DoubleBoundaryError):
    """Invalid input values (non-positive, non-finite, degenerate maturity, etc.)."""


class ConfigurationError(DoubleBoundaryError):
    """Wrong types passed to a public API (e.g. an unknown option type)."""


# ── Feature support ─────────────────────────────────────────────────


class UnsupportedFeatureError(DoubleBoundaryError):
    """Parameters fall outside the q < r < 0 regime this library prices."""


# ── Numerical issues ────────────────────────────────────────────────


class NumericalError(DoubleBoundaryError):
    """Base for errors arising from numerical computation."""


class StabilityError(NumericalError):
    """Intermediate quantities are not usable (e.g. complex characteristic roots)."""
