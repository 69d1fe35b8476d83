"""Visualization module for double-boundary pricing.

This module provides plotting functions for:
- Kim collocation curves of both exercise boundaries
- American and European price profiles across spot
"""

from .boundaries import plot_boundary_curve, plot_price_profile

__all__ = [
    "plot_boundary_curve",
    "plot_price_profile",
]
