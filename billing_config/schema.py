"""
Billing job configuration schema.

A job configuration is the human-authored, reviewable description of one
billing run: where the price list and usage data live in the host's items,
how to parse and filter an imported price list, how to match, how to
calculate, how to shape the output and whether to summarize. YAML documents
are parsed into these frozen types by ``billing_config.loader``.

The match, calculation and output sections reuse the engines' own frozen
config types, so a parsed job hands them to the engines unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from billing_engines.assembly import OutputFieldConfig
from billing_engines.calculator import CalculationConfig
from billing_engines.matching import MatchFieldPair, MatchPolicy
from billing_ingestion.domain.types import FilterConfig, ParseConfig


@dataclass(frozen=True)
class InputConfig:
    """
    Where the host's items hold the data.

    ``price_list_field`` / ``usage_data_field`` name a field of the item
    (case-insensitive, dot paths allowed). ``None`` means the item itself.
    """

    price_list_field: str | None = None
    usage_data_field: str | None = None
    parse: ParseConfig = field(default_factory=ParseConfig)
    filter: FilterConfig = field(default_factory=FilterConfig)


@dataclass(frozen=True)
class MatchConfig:
    """Match-field pairs (level order for hierarchical mode) plus policy."""

    fields: tuple[MatchFieldPair, ...] = ()
    policy: MatchPolicy = field(default_factory=MatchPolicy)


@dataclass(frozen=True)
class SummaryConfig:
    """Optional usage summary over the matched output."""

    enabled: bool = False
    fields_to_total: tuple[str, ...] = ()
    group_by_fields: tuple[str, ...] = ()
    include_source_data: bool = False


@dataclass(frozen=True)
class BillingJobConfig:
    """A complete, parsed billing job."""

    name: str
    version: int
    calculation: CalculationConfig
    input: InputConfig = field(default_factory=InputConfig)
    match: MatchConfig = field(default_factory=MatchConfig)
    output: OutputFieldConfig = field(default_factory=OutputFieldConfig)
    summary: SummaryConfig = field(default_factory=SummaryConfig)
    max_workers: int | None = None
    checksum: str = ""

    def snapshot(self) -> dict[str, Any]:
        """Compact, JSON-safe view used as error-envelope context."""
        calc = self.calculation
        return {
            "job": self.name,
            "version": self.version,
            "checksum": self.checksum,
            "match_mode": self.match.policy.mode.value,
            "partial_match": self.match.policy.partial_match.value,
            "match_fields": [
                {"price_list_field": p.price_list_field, "usage_field": p.usage_field}
                for p in self.match.fields
            ],
            "method": calc.method.value,
            "quantity_field": calc.quantity_field,
            "price_fields": list(calc.price_fields),
            "price_list_field": self.input.price_list_field,
            "usage_data_field": self.input.usage_data_field,
        }
