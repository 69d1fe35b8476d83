"""Tests for rate-regime classification."""

import pytest

from double_boundary.enums import OptionType, RateRegime
from double_boundary.regime import classify_regime, requires_double_boundary


@pytest.mark.parametrize(
    "rate,dividend_yield,option_type,expected",
    [
        (-0.005, -0.01, OptionType.PUT, RateRegime.DOUBLE_BOUNDARY),
        (-0.01, -0.005, OptionType.PUT, RateRegime.STANDARD),
        (0.05, 0.0, OptionType.PUT, RateRegime.STANDARD),
        (0.01, 0.02, OptionType.CALL, RateRegime.DOUBLE_BOUNDARY),
        (0.02, 0.01, OptionType.CALL, RateRegime.STANDARD),
        (-0.005, -0.01, OptionType.CALL, RateRegime.STANDARD),
        (-0.005, -0.01, "put", RateRegime.DOUBLE_BOUNDARY),
    ],
)
def test_classify_regime(rate, dividend_yield, option_type, expected):
    assert classify_regime(rate, dividend_yield, option_type) is expected


def test_requires_double_boundary():
    assert requires_double_boundary(-0.005, -0.01, OptionType.PUT)
    assert not requires_double_boundary(0.0, -0.01, OptionType.PUT)
