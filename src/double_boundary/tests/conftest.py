"""Shared pytest fixtures for double_boundary tests."""

import pytest

from double_boundary.enums import OptionType
from double_boundary.pricing import BoundaryPair, KimParams, MarketParameters, QDPlusParams

from double_boundary.tests.helpers import REFERENCE_BOUNDARIES, market_params


# ---------------------------------------------------------------------------
# Scalar constants
# ---------------------------------------------------------------------------

SPOT = 100.0
STRIKE = 100.0
RATE = -0.005
DIVIDEND_YIELD = -0.01
VOL = 0.08


@pytest.fixture()
def spot() -> float:
    return SPOT


@pytest.fixture()
def strike() -> float:
    return STRIKE


@pytest.fixture()
def risk_free_rate() -> float:
    return RATE


@pytest.fixture()
def dividend_yield() -> float:
    return DIVIDEND_YIELD


@pytest.fixture()
def vol() -> float:
    return VOL


# ---------------------------------------------------------------------------
# Market parameters
# ---------------------------------------------------------------------------


@pytest.fixture()
def put_params() -> MarketParameters:
    """One-year benchmark put in the q < r < 0 regime."""
    return market_params(option_type=OptionType.PUT)


@pytest.fixture()
def call_params() -> MarketParameters:
    """One-year call under the same rates as ``put_params``."""
    return market_params(option_type=OptionType.CALL)


@pytest.fixture()
def positive_rate_params() -> MarketParameters:
    """Standard single-boundary regime (r > 0, q = 0)."""
    return market_params(rate=0.05, dividend_yield=0.0)


# ---------------------------------------------------------------------------
# Boundaries / solver settings
# ---------------------------------------------------------------------------


@pytest.fixture()
def reference_put_pair() -> BoundaryPair:
    upper, lower = REFERENCE_BOUNDARIES[1.0]
    return BoundaryPair(upper=upper, lower=lower)


@pytest.fixture()
def qd_params() -> QDPlusParams:
    return QDPlusParams()


@pytest.fixture()
def kim_params() -> KimParams:
    return KimParams(collocation_points=30)
