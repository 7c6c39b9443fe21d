"""
Tests for billing_kernel.domain.decimal_math.

Covers:
- Exact conversion of ints, floats, strings and Decimals
- Arithmetic helpers (multiply, add, subtract, divide, percentage)
- Default half-up rounding and directional rounding
"""

import pytest
from decimal import Decimal

from billing_kernel.domain.decimal_math import (
    RoundingDirection,
    add,
    divide,
    multiply,
    percentage,
    round_amount,
    subtract,
    to_decimal,
)
from billing_kernel.exceptions import CalculationError, DivisionByZeroError


class TestToDecimal:
    """Conversion into exact Decimals."""

    def test_float_converted_through_repr(self):
        assert to_decimal(1.1) == Decimal("1.1")
        assert str(to_decimal(0.1)) == "0.1"

    def test_int_and_decimal_pass_through(self):
        assert to_decimal(42) == Decimal("42")
        value = Decimal("3.14159")
        assert to_decimal(value) is value

    def test_string_is_stripped(self):
        assert to_decimal(" 12.50 ") == Decimal("12.50")

    def test_invalid_string_raises_value_error(self):
        with pytest.raises(ValueError, match="Not a decimal value"):
            to_decimal("twelve")

    def test_empty_string_raises_value_error(self):
        with pytest.raises(ValueError):
            to_decimal("")

    @pytest.mark.parametrize("value", ["NaN", "Infinity", "-inf", float("inf")])
    def test_non_finite_rejected(self, value):
        with pytest.raises(ValueError):
            to_decimal(value)

    def test_boolean_rejected(self):
        with pytest.raises(TypeError):
            to_decimal(True)

    def test_unsupported_type_rejected(self):
        with pytest.raises(TypeError, match="Unsupported numeric type"):
            to_decimal([1])


class TestArithmetic:
    """Exact arithmetic helpers."""

    def test_multiply_has_no_float_drift(self):
        assert multiply(3, 1.1) == Decimal("3.3")

    def test_add_and_subtract(self):
        assert add("0.1", 0.2) == Decimal("0.3")
        assert subtract(Decimal("1.00"), "0.01") == Decimal("0.99")

    def test_divide(self):
        assert divide(10, 4) == Decimal("2.5")

    def test_divide_by_zero_raises_typed_error(self):
        with pytest.raises(DivisionByZeroError) as exc_info:
            divide(5, "0.00")

        assert exc_info.value.code == "DIVISION_BY_ZERO"
        assert exc_info.value.dividend == "5"
        assert str(exc_info.value) == "Division by zero: 5 / 0"

    def test_division_by_zero_is_calculation_and_arithmetic_error(self):
        with pytest.raises(CalculationError):
            divide(1, 0)
        with pytest.raises(ArithmeticError):
            divide(1, 0)

    def test_percentage(self):
        assert percentage(200, 15) == Decimal("30")
        assert percentage("19.99", "7.5") == Decimal("1.499250")


class TestRoundAmount:
    """Rounding defaults and directives."""

    def test_default_is_half_up_two_places(self):
        assert round_amount(Decimal("2.345")) == Decimal("2.35")
        assert round_amount(Decimal("2.344")) == Decimal("2.34")
        assert round_amount(Decimal("-2.345")) == Decimal("-2.35")

    def test_default_pads_to_two_places(self):
        assert str(round_amount(5)) == "5.00"

    def test_up_is_ceiling(self):
        assert round_amount(Decimal("2.341"), 2, RoundingDirection.UP) == Decimal("2.35")
        assert round_amount(Decimal("-2.349"), 2, RoundingDirection.UP) == Decimal("-2.34")

    def test_down_is_floor(self):
        assert round_amount(Decimal("2.349"), 2, RoundingDirection.DOWN) == Decimal("2.34")
        assert round_amount(Decimal("-2.341"), 2, "down") == Decimal("-2.35")

    def test_custom_places(self):
        assert round_amount(Decimal("1.23456"), 4, RoundingDirection.UP) == Decimal("1.2346")
        assert round_amount(Decimal("17.9"), 0, RoundingDirection.DOWN) == Decimal("17")

    def test_none_direction_returns_value_unrounded(self):
        assert round_amount(Decimal("1.23456"), 2, RoundingDirection.NONE) == Decimal("1.23456")

    def test_negative_places_rejected(self):
        with pytest.raises(ValueError, match="non-negative"):
            round_amount(Decimal("1.5"), -1)

    def test_unknown_direction_rejected(self):
        with pytest.raises(ValueError):
            round_amount(Decimal("1.5"), 2, "sideways")
