"""
Tests for the Decimal billing calculators.

Covers:
- basic, simple tiered and graduated tiered pricing
- Default half-up rounding and rounding directives
- Dual cost/sell pricing
- Permissive numeric coercion
- Tier parsing from config and from price-list fields
- CalculationConfig validation
"""

import logging

import pytest
from decimal import Decimal

from billing_engines.calculator import (
    CalculationConfig,
    CalculationMethod,
    GraduatedTier,
    RoundingDirective,
    Tier,
    basic,
    calculate,
    coerce_numeric,
    graduated_tiered,
    parse_graduated_tiers,
    parse_tiers,
    simple_tiered,
)
from billing_kernel.domain.decimal_math import RoundingDirection
from billing_kernel.exceptions import ConfigurationError, TierDefinitionError


def _d(value: str) -> Decimal:
    return Decimal(value)


VOLUME_TIERS = (
    Tier(threshold=_d("0"), rate=_d("1.00")),
    Tier(threshold=_d("100"), rate=_d("0.80")),
    Tier(threshold=_d("1000"), rate=_d("0.50")),
)

GRADUATED_TIERS = (
    GraduatedTier(min=_d("0"), max=_d("99"), rate=_d("1")),
    GraduatedTier(min=_d("100"), max=None, rate=_d("0.5")),
)


# =============================================================================
# Pricing models
# =============================================================================


class TestBasic:
    """quantity x price."""

    def test_exact_decimal_result(self):
        assert basic(3, 1.1) == Decimal("3.3")
        assert str(basic(3, 1.1)) == "3.30"
        assert isinstance(basic(3, 1.1), Decimal)
        assert basic(3, 1.1) != 3 * 1.1

    def test_half_up_default(self):
        assert basic("1", "0.125") == Decimal("0.13")

    def test_rounding_up_directive(self):
        rounding = RoundingDirective(direction=RoundingDirection.UP, decimal_places=2)
        assert basic("3", "0.3333") == Decimal("1.00")
        assert basic("3", "0.3331", rounding) == Decimal("1.00")
        assert basic("1", "0.121", rounding) == Decimal("0.13")

    def test_rounding_down_directive_custom_places(self):
        rounding = RoundingDirective(direction="down", decimal_places=3)
        assert basic("1", "0.12399", rounding) == Decimal("0.123")

    def test_negative_values_pass_through(self):
        assert basic(-2, "1.50") == Decimal("-3.00")


class TestSimpleTiered:
    """One rate applies to the whole quantity."""

    @pytest.mark.parametrize(
        "quantity,expected",
        [
            (50, "50.00"),
            (100, "80.00"),
            (999, "799.20"),
            (1000, "500.00"),
            (2500, "1250.00"),
        ],
    )
    def test_rate_selected_by_threshold(self, quantity, expected):
        assert simple_tiered(quantity, VOLUME_TIERS) == Decimal(expected)

    def test_tier_order_does_not_matter(self):
        assert simple_tiered(150, tuple(reversed(VOLUME_TIERS))) == Decimal("120.00")

    def test_below_lowest_threshold_uses_lowest_tier(self):
        tiers = (Tier(_d("10"), _d("2")), Tier(_d("50"), _d("1")))
        assert simple_tiered(5, tiers) == Decimal("10.00")

    def test_no_tiers(self):
        with pytest.raises(TierDefinitionError):
            simple_tiered(10, ())


class TestGraduatedTiered:
    """Each band billed at its own rate."""

    def test_two_bands(self):
        # 99 units at 1.00 + 51 units at 0.50
        assert graduated_tiered(150, GRADUATED_TIERS) == Decimal("124.50")

    def test_within_first_band(self):
        assert graduated_tiered(40, GRADUATED_TIERS) == Decimal("40.00")

    def test_exact_band_boundary(self):
        assert graduated_tiered(99, GRADUATED_TIERS) == Decimal("99.00")
        assert graduated_tiered(100, GRADUATED_TIERS) == Decimal("99.50")

    def test_three_closed_bands_and_overflow_unbilled(self):
        tiers = (
            GraduatedTier(_d("1"), _d("10"), _d("3")),
            GraduatedTier(_d("11"), _d("20"), _d("2")),
        )
        # Units beyond the last closed band are not billed
        assert graduated_tiered(25, tiers) == Decimal("50.00")

    def test_zero_and_negative_quantity_bill_nothing(self):
        assert graduated_tiered(0, GRADUATED_TIERS) == Decimal("0.00")
        assert graduated_tiered(-5, GRADUATED_TIERS) == Decimal("0.00")

    def test_fractional_quantity(self):
        assert graduated_tiered("100.5", GRADUATED_TIERS) == Decimal("99.75")

    def test_rounding_applied_once_to_total(self):
        tiers = (
            GraduatedTier(_d("0"), _d("1"), _d("0.333")),
            GraduatedTier(_d("2"), None, _d("0.333")),
        )
        rounding = RoundingDirective(direction="up", decimal_places=1)
        # 3 x 0.333 = 0.999 -> 1.0 (ceiling of the total, not of each band)
        assert graduated_tiered(3, tiers, rounding) == Decimal("1.0")

    def test_max_below_min_rejected(self):
        with pytest.raises(TierDefinitionError):
            GraduatedTier(_d("10"), _d("5"), _d("1"))

    def test_no_tiers(self):
        with pytest.raises(TierDefinitionError, match="No tiers defined"):
            graduated_tiered(10, [])


# =============================================================================
# Tier parsing
# =============================================================================


class TestTierParsing:
    def test_parse_simple_tiers_from_list(self):
        tiers = parse_tiers([{"threshold": 0, "rate": "1.00"}, {"Threshold": "100", "Rate": 0.8}])
        assert tiers == (Tier(_d("0"), _d("1.00")), Tier(_d("100"), _d("0.8")))

    def test_parse_graduated_from_json_string(self):
        raw = '[{"min": 0, "max": 99, "rate": 1}, {"min": 100, "max": null, "rate": 0.5}]'
        assert parse_graduated_tiers(raw) == GRADUATED_TIERS

    def test_open_ended_when_max_absent(self):
        (tier,) = parse_graduated_tiers([{"min": 1, "rate": 2}])
        assert tier.max is None

    def test_invalid_json(self):
        with pytest.raises(TierDefinitionError, match="not valid JSON"):
            parse_tiers("[{threshold: 1")

    def test_empty_list(self):
        with pytest.raises(TierDefinitionError):
            parse_tiers([])

    def test_missing_key(self):
        with pytest.raises(TierDefinitionError, match="missing 'rate'"):
            parse_tiers([{"threshold": 1}])

    def test_non_numeric_value(self):
        with pytest.raises(TierDefinitionError, match="not numeric"):
            parse_graduated_tiers([{"min": "low", "rate": 1}])

    def test_non_object_tier(self):
        with pytest.raises(TierDefinitionError):
            parse_tiers([1, 2])


# =============================================================================
# Numeric coercion
# =============================================================================


class TestCoerceNumeric:
    def test_absent_and_null_become_zero(self):
        from billing_kernel.domain.records import MISSING

        assert coerce_numeric(MISSING) == Decimal("0")
        assert coerce_numeric(None) == Decimal("0")

    def test_numeric_strings_parsed(self):
        assert coerce_numeric(" 12.5 ") == Decimal("12.5")

    def test_non_numeric_logged_and_zero(self, captured_logs):
        assert coerce_numeric("abc", "qty") == Decimal("0")

        warnings = [r for r in captured_logs() if r["message"] == "numeric_field_coerced_to_zero"]
        assert len(warnings) == 1
        assert warnings[0]["level"] == "WARNING"
        assert warnings[0]["field"] == "qty"
        assert warnings[0]["value"] == "'abc'"

    def test_boolean_treated_as_non_numeric(self):
        assert coerce_numeric(True, "qty") == Decimal("0")


# =============================================================================
# CalculationConfig
# =============================================================================


class TestCalculationConfig:
    """Construction-time validation."""

    def test_quantity_field_required(self):
        with pytest.raises(ConfigurationError) as exc_info:
            CalculationConfig(quantity_field="", price_field="price")
        assert exc_info.value.code == "MISSING_REQUIRED_FIELD"

    def test_price_field_required(self):
        with pytest.raises(ConfigurationError) as exc_info:
            CalculationConfig(quantity_field="qty")
        assert exc_info.value.code == "MISSING_REQUIRED_FIELD"
        assert exc_info.value.field_name == "calculation.price_field"

    def test_dual_pricing_needs_both_fields(self):
        with pytest.raises(ConfigurationError, match="both cost_price_field"):
            CalculationConfig(quantity_field="qty", cost_price_field="cost")

    def test_single_and_dual_exclusive(self):
        with pytest.raises(ConfigurationError):
            CalculationConfig(
                quantity_field="qty",
                price_field="price",
                cost_price_field="cost",
                sell_price_field="sell",
            )

    def test_dual_pricing_basic_only(self):
        with pytest.raises(ConfigurationError, match="only supported with the basic method"):
            CalculationConfig(
                quantity_field="qty",
                cost_price_field="cost",
                sell_price_field="sell",
                method="tiered",
                tiers=VOLUME_TIERS,
            )

    def test_tiered_needs_tiers(self):
        with pytest.raises(ConfigurationError, match="needs tiers"):
            CalculationConfig(quantity_field="qty", price_field="price", method="graduated")

    def test_tier_type_must_fit_method(self):
        with pytest.raises(ConfigurationError, match="GraduatedTier"):
            CalculationConfig(
                quantity_field="qty", price_field="price", method="graduated", tiers=VOLUME_TIERS
            )

    def test_unknown_method(self):
        with pytest.raises(ConfigurationError, match="Unknown calculation method"):
            CalculationConfig(quantity_field="qty", price_field="price", method="flat_fee")

    def test_rounding_directive_validation(self):
        with pytest.raises(ConfigurationError):
            RoundingDirective(direction="sideways")
        with pytest.raises(ConfigurationError):
            RoundingDirective(decimal_places=-1)
        assert not RoundingDirective().is_active
        assert RoundingDirective(direction="up").is_active

    def test_price_fields(self):
        dual = CalculationConfig(quantity_field="q", cost_price_field="c", sell_price_field="s")
        assert dual.is_dual_pricing
        assert dual.price_fields == ("c", "s")
        single = CalculationConfig(quantity_field="q", price_field="p")
        assert single.price_fields == ("p",)


# =============================================================================
# calculate()
# =============================================================================


class TestCalculate:
    """Price one usage record against its matched entry."""

    def test_basic_with_case_insensitive_fields(self):
        config = CalculationConfig(quantity_field="Quantity", price_field="UnitPrice")
        result = calculate({"unitprice": "2.50"}, {"QUANTITY": "4"}, config)

        assert result.amount == Decimal("10.00")
        assert result.quantity == Decimal("4")
        assert result.method is CalculationMethod.BASIC
        assert result.inputs == {"Quantity": Decimal("4"), "UnitPrice": Decimal("2.50")}

    def test_missing_quantity_bills_zero(self):
        config = CalculationConfig(quantity_field="qty", price_field="price")
        result = calculate({"price": "9.99"}, {}, config)

        assert result.amount == Decimal("0.00")
        assert result.inputs["qty"] == Decimal("0")

    def test_non_numeric_price_bills_and_echoes_zero(self):
        config = CalculationConfig(quantity_field="qty", price_field="price")
        result = calculate({"price": "call us"}, {"qty": 3}, config)

        assert result.amount == Decimal("0.00")
        assert result.inputs["price"] == Decimal("0")

    def test_dual_pricing(self):
        config = CalculationConfig(
            quantity_field="qty", cost_price_field="cost", sell_price_field="sell"
        )
        result = calculate({"cost": "0.40", "sell": "0.65"}, {"qty": "10"}, config)

        assert result.amount is None
        assert result.cost_amount == Decimal("4.00")
        assert result.sell_amount == Decimal("6.50")
        assert result.inputs == {"qty": Decimal("10"), "cost": Decimal("0.40"), "sell": Decimal("0.65")}

    def test_tiered_with_config_tiers(self):
        config = CalculationConfig(
            quantity_field="qty", price_field="price", method="tiered", tiers=VOLUME_TIERS
        )
        result = calculate({"price": "1"}, {"qty": 150}, config)
        assert result.amount == Decimal("120.00")

    def test_graduated_tiers_from_price_entry(self):
        config = CalculationConfig(
            quantity_field="qty",
            price_field="price",
            method=CalculationMethod.GRADUATED,
            tiers_field="tiers",
        )
        entry = {
            "price": "1",
            "tiers": '[{"min": 0, "max": 99, "rate": 1}, {"min": 100, "max": null, "rate": 0.5}]',
        }
        result = calculate(entry, {"qty": 150}, config)
        assert result.amount == Decimal("124.50")

    def test_config_tiers_take_precedence(self):
        config = CalculationConfig(
            quantity_field="qty",
            price_field="price",
            method="tiered",
            tiers=(Tier(_d("0"), _d("2")),),
            tiers_field="tiers",
        )
        entry = {"price": "1", "tiers": [{"threshold": 0, "rate": 9}]}
        assert calculate(entry, {"qty": 5}, config).amount == Decimal("10.00")

    def test_missing_tier_field_raises(self):
        config = CalculationConfig(
            quantity_field="qty", price_field="price", method="tiered", tiers_field="tiers"
        )
        with pytest.raises(TierDefinitionError, match="no tier data"):
            calculate({"price": "1"}, {"qty": 5}, config)

    def test_inputs_are_not_mutated(self):
        config = CalculationConfig(quantity_field="qty", price_field="price")
        entry = {"price": "1.25"}
        usage = {"qty": 2}
        calculate(entry, usage, config)
        assert entry == {"price": "1.25"}
        assert usage == {"qty": 2}

    def test_trace_logged_at_debug(self, captured_logs):
        config = CalculationConfig(quantity_field="qty", price_field="price")
        calculate({"price": "1"}, {"qty": 1}, config)

        traces = [r for r in captured_logs() if r["message"] == "BILLING_ENGINE_TRACE"]
        assert traces
        assert traces[-1]["engine_name"] == "calculator"
        assert traces[-1]["level"] == "DEBUG"
