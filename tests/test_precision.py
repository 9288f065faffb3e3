from decimal import Decimal

import pytest

from shared.utils.precision import (
    decimals_from_step,
    floor_lots,
    midpoint,
    percent_between,
    percent_of,
    to_decimal,
)

D = Decimal


def test_to_decimal_goes_through_str_for_float():
    assert to_decimal(101.9) == D("101.9")
    assert to_decimal("0.01") == D("0.01")
    assert to_decimal(5) == D(5)
    with pytest.raises(TypeError):
        to_decimal(True)
    with pytest.raises(TypeError):
        to_decimal(None)


@pytest.mark.parametrize(
    "value, places",
    [(D("0.01"), 2), (D("1"), 0), (D("100.250"), 3), (D("1E+2"), 0)],
)
def test_decimals_from_step(value, places):
    assert decimals_from_step(value) == places


@pytest.mark.parametrize(
    "high, low, expected",
    [
        ("100", "100", "100"),
        ("101", "100", "100"),      # 100.5 -> 100
        ("102", "101", "102"),      # 101.5 -> 102
        ("100.3", "100.2", "100.2"),
        ("100.2", "100.1", "100.2"),
        ("100.5", "100.25", "100.38"),
    ],
)
def test_midpoint_rounds_half_even(high, low, expected):
    assert midpoint(D(high), D(low)) == D(expected)


def test_percent_of_uses_absolute_delta():
    assert percent_of(D("3"), D("100")) == D("3")
    assert percent_of(D("-3"), D("100")) == D("3")
    assert percent_of(D("1.1"), D("103")) == D("1.06796117")


def test_percent_between():
    assert percent_between(D("98"), D("100")) == D("2")
    assert percent_between(D("101"), D("100")) == D("1")


@pytest.mark.parametrize(
    "cap, price, lot, expected",
    [
        ("1000", "100", 1, 10),
        ("1000", "101.9", 1, 9),
        ("1000", "33", 10, 3),
        ("50", "100", 1, 0),
    ],
)
def test_floor_lots_truncates(cap, price, lot, expected):
    assert floor_lots(D(cap), D(price), lot) == expected


@pytest.mark.parametrize(
    "delta, base, expected",
    [
        ("0.0000024", "0.0001234", "1.94489465"),
        ("0.0000014", "0.000122", "1.14754098"),
        ("1E-8", "4E-8", "25"),
        ("1E-10", "4E-10", "25"),
        ("1E+10", "1E-8", "1E+20"),
    ],
)
def test_percent_of_keeps_precision_for_extreme_prices(delta, base, expected):
    # 1% 不再被定点截断：极小价格既不会除零，也不会放大误差
    assert percent_of(D(delta), D(base)) == D(expected)
