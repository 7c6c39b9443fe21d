"""
billing_engines.calculator -- Decimal billing calculators.

Responsibility:
    Compute the billed amount(s) for one usage record and its single matched
    price-list entry: basic (quantity x price), simple tiered (one rate for
    the whole quantity, chosen by threshold) and graduated tiered (each
    quantity band billed at its own rate, then summed).

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    All arithmetic goes through ``billing_kernel.domain.decimal_math``.

Invariants enforced:
    - Decimal-only arithmetic; floats are converted via their repr.
    - Every amount is rounded exactly once, AFTER the raw computation:
      2 places half-up by default, or the configured rounding directive
      (ceiling / floor at a custom number of places) when one is set.
    - Negative quantities and prices are passed through arithmetically.

Permissive numeric policy:
    A missing or null quantity/price is treated as zero. A value that is
    present but not numeric is also treated as zero and logged at WARNING
    (``numeric_field_coerced_to_zero``). The record is still billed.

Failure modes:
    - TierDefinitionError when a tiered method has no tiers, or tier data
      cannot be parsed. The orchestrator routes this per record.
    - ConfigurationError from CalculationConfig for a missing quantity or
      price field name, or an unusable combination of options.

Usage:
    from billing_engines.calculator import CalculationConfig, calculate

    config = CalculationConfig(quantity_field="qty", price_field="unit_price")
    result = calculate(price_entry, usage_record, config)
    result.amount  # Decimal
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

from billing_engines.tracer import traced_engine
from billing_kernel.domain.decimal_math import (
    DEFAULT_DECIMAL_PLACES,
    Numeric,
    RoundingDirection,
    add,
    multiply,
    round_amount,
    subtract,
    to_decimal,
)
from billing_kernel.domain.records import (
    MISSING,
    Record,
    get_case_insensitive,
    is_present,
)
from billing_kernel.exceptions import ConfigurationError, TierDefinitionError
from billing_kernel.logging_config import get_logger

logger = get_logger("engines.calculator")

_ZERO = Decimal("0")
_ONE = Decimal("1")


class CalculationMethod(str, Enum):
    """Pricing model."""

    BASIC = "basic"
    TIERED = "tiered"
    GRADUATED = "graduated"


@dataclass(frozen=True)
class Tier:
    """Simple tier: the whole quantity is billed at ``rate`` once ``threshold`` is reached."""

    threshold: Decimal
    rate: Decimal


@dataclass(frozen=True)
class GraduatedTier:
    """Graduated tier covering units ``min``..``max`` inclusive (``max=None`` is open-ended)."""

    min: Decimal
    max: Decimal | None
    rate: Decimal

    def __post_init__(self) -> None:
        if self.max is not None and self.max < self.min:
            raise TierDefinitionError(
                f"Graduated tier max {self.max} is below min {self.min}"
            )


@dataclass(frozen=True)
class RoundingDirective:
    """
    Optional rounding override.

    ``direction=NONE`` means no override: amounts get the default 2-place
    half-up rounding.
    """

    direction: RoundingDirection = RoundingDirection.NONE
    decimal_places: int = DEFAULT_DECIMAL_PLACES

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "direction", RoundingDirection(self.direction))
        except ValueError:
            raise ConfigurationError(
                f"Unknown rounding direction: {self.direction!r}",
                field_name="calculation.rounding.direction",
            ) from None
        if not isinstance(self.decimal_places, int) or self.decimal_places < 0:
            raise ConfigurationError(
                f"Decimal places must be a non-negative integer, got {self.decimal_places!r}",
                field_name="calculation.rounding.decimal_places",
            )

    @property
    def is_active(self) -> bool:
        return self.direction is not RoundingDirection.NONE


@dataclass(frozen=True)
class CalculationConfig:
    """
    How to price a matched pair.

    Either ``price_field`` or both ``cost_price_field`` and
    ``sell_price_field`` must be named. The quantity is read from the usage
    record; prices and ``tiers_field`` from the matched price-list entry.
    Dual cost/sell pricing is only available with the basic method.
    """

    quantity_field: str
    price_field: str | None = None
    cost_price_field: str | None = None
    sell_price_field: str | None = None
    method: CalculationMethod = CalculationMethod.BASIC
    rounding: RoundingDirective = field(default_factory=RoundingDirective)
    tiers: tuple[Tier, ...] | tuple[GraduatedTier, ...] = ()
    tiers_field: str | None = None

    def __post_init__(self) -> None:
        if not self.quantity_field or not str(self.quantity_field).strip():
            raise ConfigurationError(
                "Quantity field name is required",
                field_name="calculation.quantity_field",
                code="MISSING_REQUIRED_FIELD",
            )
        try:
            object.__setattr__(self, "method", CalculationMethod(self.method))
        except ValueError:
            raise ConfigurationError(
                f"Unknown calculation method: {self.method!r}",
                field_name="calculation.method",
            ) from None

        has_single = bool(self.price_field)
        has_dual = bool(self.cost_price_field) or bool(self.sell_price_field)
        if has_dual and not (self.cost_price_field and self.sell_price_field):
            raise ConfigurationError(
                "Dual pricing needs both cost_price_field and sell_price_field",
                field_name="calculation.cost_price_field",
                code="MISSING_REQUIRED_FIELD",
            )
        if not has_single and not has_dual:
            raise ConfigurationError(
                "Price field name is required",
                field_name="calculation.price_field",
                code="MISSING_REQUIRED_FIELD",
            )
        if has_single and has_dual:
            raise ConfigurationError(
                "Configure either price_field or cost/sell price fields, not both",
                field_name="calculation.price_field",
            )
        if has_dual and self.method is not CalculationMethod.BASIC:
            raise ConfigurationError(
                "Dual cost/sell pricing is only supported with the basic method",
                field_name="calculation.method",
            )
        object.__setattr__(self, "tiers", tuple(self.tiers))
        if self.method is not CalculationMethod.BASIC:
            if not self.tiers and not self.tiers_field:
                raise ConfigurationError(
                    f"The {self.method.value} method needs tiers or a tiers_field",
                    field_name="calculation.tiers",
                )
            expected = Tier if self.method is CalculationMethod.TIERED else GraduatedTier
            if any(not isinstance(t, expected) for t in self.tiers):
                raise ConfigurationError(
                    f"The {self.method.value} method needs {expected.__name__} entries",
                    field_name="calculation.tiers",
                )

    @property
    def is_dual_pricing(self) -> bool:
        return bool(self.cost_price_field and self.sell_price_field)

    @property
    def price_fields(self) -> tuple[str, ...]:
        if self.is_dual_pricing:
            return (self.cost_price_field, self.sell_price_field)  # type: ignore[return-value]
        return (self.price_field,)  # type: ignore[return-value]


@dataclass(frozen=True)
class CalculationResult:
    """
    Amounts computed for one matched pair.

    Attributes:
        amount: Billed amount (single-price mode), else None.
        cost_amount / sell_amount: Dual-pricing amounts, else None.
        quantity: Coerced quantity used in the calculation.
        inputs: Field name -> the Decimal actually used (quantity and
            price(s)), echoed into the output record.
        method: Pricing model that produced the amount(s).
    """

    quantity: Decimal
    method: CalculationMethod
    amount: Decimal | None = None
    cost_amount: Decimal | None = None
    sell_amount: Decimal | None = None
    inputs: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Numeric coercion
# =============================================================================


def coerce_numeric(value: Any, field_name: str = "") -> Decimal:
    """Permissive numeric read: absent, null or non-numeric values become zero."""
    if not is_present(value):
        return _ZERO
    try:
        return to_decimal(value)
    except (TypeError, ValueError):
        logger.warning(
            "numeric_field_coerced_to_zero",
            extra={"field": field_name, "value": repr(value)},
        )
        return _ZERO


# =============================================================================
# Rounding
# =============================================================================


def _finalize(raw: Decimal, rounding: RoundingDirective | None) -> Decimal:
    if rounding is not None and rounding.is_active:
        return round_amount(raw, rounding.decimal_places, rounding.direction)
    return round_amount(raw, DEFAULT_DECIMAL_PLACES)


# =============================================================================
# Pricing models
# =============================================================================


def basic(
    quantity: Numeric,
    price: Numeric,
    rounding: RoundingDirective | None = None,
) -> Decimal:
    """``quantity * price`` rounded to 2 places (or per ``rounding``)."""
    return _finalize(multiply(quantity, price), rounding)


def simple_tiered(
    quantity: Numeric,
    tiers: Sequence[Tier],
    rounding: RoundingDirective | None = None,
) -> Decimal:
    """
    Bill the whole quantity at one tier's rate.

    The tier is the one with the highest threshold that is <= quantity. When
    no tier qualifies the lowest-threshold tier applies.
    """
    if not tiers:
        raise TierDefinitionError("No tiers defined for tiered pricing", tiers=[])
    qty = to_decimal(quantity)
    ordered = sorted(tiers, key=lambda t: t.threshold, reverse=True)
    selected = next((t for t in ordered if t.threshold <= qty), ordered[-1])
    return _finalize(multiply(qty, selected.rate), rounding)


def graduated_tiered(
    quantity: Numeric,
    tiers: Sequence[GraduatedTier],
    rounding: RoundingDirective | None = None,
) -> Decimal:
    """
    Bill each band of the quantity at its own tier's rate and sum.

    Units are counted from 1, so a tier ``{min: 0, max: 99}`` covers units
    1..99 and ``{min: 100, max: None}`` covers unit 100 onward. Tiers are
    walked in ascending ``min`` order; the walk stops at an open-ended tier
    or once the quantity is fully covered. A quantity <= 0 bills nothing.

        >>> graduated_tiered(150, [GraduatedTier(Decimal(0), Decimal(99), Decimal(1)),
        ...                        GraduatedTier(Decimal(100), None, Decimal("0.5"))])
        Decimal('124.50')
    """
    if not tiers:
        raise TierDefinitionError("No tiers defined for graduated pricing", tiers=[])
    qty = to_decimal(quantity)
    total = _ZERO
    covered = _ZERO

    for tier in sorted(tiers, key=lambda t: t.min):
        lower = max(tier.min - _ONE, _ZERO)
        if qty <= lower:
            break
        upper = qty if tier.max is None else min(qty, tier.max)
        portion = subtract(upper, max(lower, covered))
        if portion > _ZERO:
            total = add(total, multiply(portion, tier.rate))
            covered = upper
        if tier.max is None or qty <= tier.max:
            break

    return _finalize(total, rounding)


# =============================================================================
# Tier parsing
# =============================================================================


def _tier_number(raw: Mapping[str, Any], key: str, *, required: bool = True) -> Decimal | None:
    value = get_case_insensitive(raw, key)
    if value is MISSING or value is None:
        if required:
            raise TierDefinitionError(f"Tier is missing '{key}'", tiers=dict(raw))
        return None
    try:
        return to_decimal(value)
    except (TypeError, ValueError):
        raise TierDefinitionError(
            f"Tier '{key}' is not numeric: {value!r}", tiers=dict(raw)
        ) from None


def _load_tier_list(raw: Any) -> list[Mapping[str, Any]]:
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise TierDefinitionError(
                f"Tier data is not valid JSON: {exc.msg}", tiers=raw
            ) from None
    if not isinstance(raw, (list, tuple)) or not raw:
        raise TierDefinitionError("Tier data must be a non-empty list", tiers=raw)
    if not all(isinstance(item, Mapping) for item in raw):
        raise TierDefinitionError("Every tier must be an object", tiers=raw)
    return list(raw)


def parse_tiers(raw: Any) -> tuple[Tier, ...]:
    """Parse ``[{threshold, rate}, ...]`` (list or JSON string) into Tiers."""
    return tuple(
        Tier(
            threshold=_tier_number(item, "threshold"),  # type: ignore[arg-type]
            rate=_tier_number(item, "rate"),  # type: ignore[arg-type]
        )
        for item in _load_tier_list(raw)
    )


def parse_graduated_tiers(raw: Any) -> tuple[GraduatedTier, ...]:
    """Parse ``[{min, max|null, rate}, ...]`` (list or JSON string) into GraduatedTiers."""
    return tuple(
        GraduatedTier(
            min=_tier_number(item, "min"),  # type: ignore[arg-type]
            max=_tier_number(item, "max", required=False),
            rate=_tier_number(item, "rate"),  # type: ignore[arg-type]
        )
        for item in _load_tier_list(raw)
    )


def _resolve_tiers(price_entry: Record, config: CalculationConfig) -> tuple:
    if config.tiers:
        return config.tiers
    raw = get_case_insensitive(price_entry, config.tiers_field or "")
    if not is_present(raw):
        raise TierDefinitionError(
            f"Price-list entry has no tier data in '{config.tiers_field}'"
        )
    if config.method is CalculationMethod.TIERED:
        return parse_tiers(raw)
    return parse_graduated_tiers(raw)


# =============================================================================
# Entry point
# =============================================================================


@traced_engine("calculator", "1.0", fingerprint_fields=("price_entry", "usage_record"))
def calculate(
    price_entry: Record,
    usage_record: Record,
    config: CalculationConfig,
) -> CalculationResult:
    """
    Price one usage record against its matched price-list entry.

    Raises:
        TierDefinitionError: tier data missing or malformed.
    """
    quantity = coerce_numeric(
        get_case_insensitive(usage_record, config.quantity_field), config.quantity_field
    )
    inputs: dict[str, Any] = {config.quantity_field: quantity}

    if config.is_dual_pricing:
        cost_price = coerce_numeric(
            get_case_insensitive(price_entry, config.cost_price_field), config.cost_price_field
        )
        sell_price = coerce_numeric(
            get_case_insensitive(price_entry, config.sell_price_field), config.sell_price_field
        )
        inputs[config.cost_price_field] = cost_price
        inputs[config.sell_price_field] = sell_price
        return CalculationResult(
            quantity=quantity,
            method=config.method,
            cost_amount=basic(quantity, cost_price, config.rounding),
            sell_amount=basic(quantity, sell_price, config.rounding),
            inputs=inputs,
        )

    price = coerce_numeric(
        get_case_insensitive(price_entry, config.price_field), config.price_field
    )
    inputs[config.price_field] = price

    if config.method is CalculationMethod.TIERED:
        amount = simple_tiered(quantity, _resolve_tiers(price_entry, config), config.rounding)
    elif config.method is CalculationMethod.GRADUATED:
        amount = graduated_tiered(quantity, _resolve_tiers(price_entry, config), config.rounding)
    else:
        amount = basic(quantity, price, config.rounding)

    return CalculationResult(
        quantity=quantity, method=config.method, amount=amount, inputs=inputs
    )
