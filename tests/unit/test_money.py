"""Unit tests for minor-unit conversion"""

from decimal import Decimal

import pytest

from clover_checkout.domain.money import format_minor_units, to_minor_units


def test_to_minor_units_plain_amounts():
    assert to_minor_units("12.34") == 1234
    assert to_minor_units("0.5") == 50
    assert to_minor_units(Decimal("99.99")) == 9999
    assert to_minor_units(7) == 700


def test_to_minor_units_rounds_half_away_from_zero():
    """Third decimal rounds before the separator is dropped"""
    assert to_minor_units("10.005") == 1001
    assert to_minor_units("10.004") == 1000
    assert to_minor_units("-10.005") == -1001


def test_to_minor_units_blank_is_zero():
    assert to_minor_units("") == 0
    assert to_minor_units("  ") == 0


@pytest.mark.parametrize("amount", ["abc", "12,34", "NaN", "Infinity"])
def test_to_minor_units_rejects_non_numbers(amount):
    with pytest.raises(ValueError):
        to_minor_units(amount)


@pytest.mark.parametrize("cents", [1, 99, 100, 12345, 1_000_000_000])
def test_minor_units_survive_decimal_rendering(cents):
    assert to_minor_units(format_minor_units(cents)) == cents


def test_format_minor_units():
    assert format_minor_units(1234) == "12.34"
    assert format_minor_units(5) == "0.05"
    assert format_minor_units(0) == "0.00"
    assert format_minor_units(-150) == "-1.50"
