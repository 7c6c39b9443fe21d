"""
billing_engines.assembly -- Output record assembly.

Responsibility:
    Build the output record for a matched and priced usage record from the
    configured field inclusion rules.

Assignment order (later assignments overwrite earlier keys):
    1. Match-key echo fields: ``<price_prefix><price_list_field>`` and
       ``<usage_prefix><usage_field>`` for every match pair (toggles).
    2. Calculation fields: ``<calc_prefix><quantity_field>`` and
       ``<calc_prefix><price_field>`` (or both cost/sell price fields).
    3. Calculated amount(s) under the configured amount field name(s).
    4. Explicit field mappings, each reading either the price-list entry or
       the usage record. A mapping whose source value is absent writes
       nothing.
    5. ``include_all_fields`` only: every remaining price-list and usage
       field under its side's prefix, never overwriting a key already set.

Architecture position:
    Engines -- pure, zero I/O.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from billing_engines.calculator import CalculationConfig, CalculationResult
from billing_engines.matching import MatchFieldPair
from billing_engines.tracer import traced_engine
from billing_kernel.domain.records import MISSING, Record, get_case_insensitive
from billing_kernel.exceptions import ConfigurationError


class FieldSource(str, Enum):
    """Which side of the matched pair a mapped field is read from."""

    PRICELIST = "pricelist"
    USAGE = "usage"


@dataclass(frozen=True)
class FieldMappingRule:
    """Copy ``source_field`` from one side into ``target_field`` (defaults to the source name)."""

    source_field: str
    target_field: str | None = None
    source: FieldSource = FieldSource.USAGE

    def __post_init__(self) -> None:
        if not self.source_field:
            raise ConfigurationError(
                "Field mapping needs a source field", field_name="output.field_mappings"
            )
        try:
            object.__setattr__(self, "source", FieldSource(self.source))
        except ValueError:
            raise ConfigurationError(
                f"Unknown field mapping source: {self.source!r}",
                field_name="output.field_mappings",
            ) from None

    @property
    def target(self) -> str:
        return self.target_field or self.source_field


@dataclass(frozen=True)
class OutputFieldConfig:
    """Field inclusion rules, prefixes and amount field names."""

    include_match_pricelist_fields: bool = True
    include_match_usage_fields: bool = True
    include_calculation_fields: bool = True
    include_all_fields: bool = False
    price_prefix: str = "price_"
    usage_prefix: str = "usage_"
    calc_prefix: str = "calc_"
    calculated_amount_field: str = "calc_amount"
    calculated_cost_amount_field: str = "calc_cost_amount"
    calculated_sell_amount_field: str = "calc_sell_amount"
    field_mappings: tuple[FieldMappingRule, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "field_mappings", tuple(self.field_mappings))
        for name in (
            "calculated_amount_field",
            "calculated_cost_amount_field",
            "calculated_sell_amount_field",
        ):
            if not getattr(self, name):
                raise ConfigurationError(
                    f"Output field name '{name}' must not be empty",
                    field_name=f"output.{name}",
                )


def _set_if_present(out: dict[str, Any], key: str, value: Any) -> None:
    if value is not MISSING:
        out[key] = value


@traced_engine("assembly", "1.0")
def assemble_output(
    price_entry: Record,
    usage_record: Record,
    match_fields: Sequence[MatchFieldPair],
    calculation: CalculationResult,
    calc_config: CalculationConfig,
    output_config: OutputFieldConfig | None = None,
) -> dict[str, Any]:
    """Build the output record for one matched pair."""
    cfg = output_config or OutputFieldConfig()
    out: dict[str, Any] = {}

    for pair in match_fields:
        if cfg.include_match_pricelist_fields:
            _set_if_present(
                out,
                cfg.price_prefix + pair.price_list_field,
                get_case_insensitive(price_entry, pair.price_list_field),
            )
        if cfg.include_match_usage_fields:
            _set_if_present(
                out,
                cfg.usage_prefix + pair.usage_field,
                get_case_insensitive(usage_record, pair.usage_field),
            )

    if cfg.include_calculation_fields:
        for name, value in calculation.inputs.items():
            out[cfg.calc_prefix + name] = value

    if calc_config.is_dual_pricing:
        out[cfg.calculated_cost_amount_field] = calculation.cost_amount
        out[cfg.calculated_sell_amount_field] = calculation.sell_amount
    else:
        out[cfg.calculated_amount_field] = calculation.amount

    for rule in cfg.field_mappings:
        source = price_entry if rule.source is FieldSource.PRICELIST else usage_record
        _set_if_present(out, rule.target, get_case_insensitive(source, rule.source_field))

    if cfg.include_all_fields:
        _copy_prefixed(out, price_entry, cfg.price_prefix)
        _copy_prefixed(out, usage_record, cfg.usage_prefix)

    return out


def _copy_prefixed(out: dict[str, Any], record: Mapping[str, Any], prefix: str) -> None:
    for name, value in record.items():
        out.setdefault(f"{prefix}{name}", value)
