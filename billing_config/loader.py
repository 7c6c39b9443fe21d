"""
Job configuration loader (``billing_config.loader``).

Responsibility
--------------
Reads a YAML job document and parses it into a frozen ``BillingJobConfig``.
Sections are optional except ``calculation``; every omitted value takes the
documented default.

Failure modes
-------------
* Missing file       -> ``FileNotFoundError`` propagates.
* Malformed YAML     -> ``yaml.YAMLError`` propagates.
* Unusable values    -> ``ConfigurationError`` (unknown enum values, empty
                        required field names, bad tier tables).

Example document
----------------
::

    name: cloud-usage
    version: 1
    match:
      mode: hierarchical
      partial_match: best_match
      fields:
        - {price_list_field: category, usage_field: category}
        - {price_list_field: product, usage_field: product}
    calculation:
      method: basic
      quantity_field: quantity
      price_field: unit_price
      rounding: {direction: up, decimal_places: 2}
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from billing_config.schema import (
    BillingJobConfig,
    InputConfig,
    MatchConfig,
    SummaryConfig,
)
from billing_engines.assembly import FieldMappingRule, OutputFieldConfig
from billing_engines.calculator import (
    CalculationConfig,
    CalculationMethod,
    RoundingDirective,
    parse_graduated_tiers,
    parse_tiers,
)
from billing_engines.matching import MatchFieldPair, MatchPolicy, WildcardConfig
from billing_ingestion.domain.types import ColumnMapping, FilterConfig, ParseConfig
from billing_kernel.exceptions import ConfigurationError, TierDefinitionError


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file and return its contents as a dict (empty file -> {})."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Job configuration must be a mapping, got {type(data).__name__}",
            context={"path": str(path)},
        )
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization (sorted keys)."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigurationError(
            f"Section '{name}' must be a mapping", field_name=name
        )
    return value


def _str_tuple(value: Any) -> tuple[str, ...]:
    """Accept a list or a comma-separated string."""
    if value is None:
        return ()
    if isinstance(value, str):
        value = value.split(",")
    return tuple(str(v).strip() for v in value if str(v).strip())


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_input(data: dict[str, Any]) -> InputConfig:
    parse = data.get("parse") or {}
    flt = data.get("filter") or {}
    return InputConfig(
        price_list_field=_optional_str(data.get("price_list_field")),
        usage_data_field=_optional_str(data.get("usage_data_field")),
        parse=ParseConfig(
            delimiter=str(parse.get("delimiter", ",")),
            quote=str(parse.get("quote", '"')),
            has_header=bool(parse.get("has_header", True)),
            skip_empty_lines=bool(parse.get("skip_empty_lines", True)),
            trim=bool(parse.get("trim", True)),
            encoding=str(parse.get("encoding", "utf-8")),
        ),
        filter=FilterConfig(
            include_all_columns=bool(flt.get("include_all_columns", True)),
            include_columns=_str_tuple(flt.get("include_columns")),
            column_mappings=tuple(
                ColumnMapping(
                    csv_column=str(m.get("csv_column", "")).strip(),
                    target_field=_optional_str(m.get("target_field")),
                    data_type=m.get("data_type", "string"),
                )
                for m in flt.get("column_mappings") or ()
            ),
            price_fields=_str_tuple(flt.get("price_fields", ["price"])),
        ),
    )


def parse_match(data: dict[str, Any]) -> MatchConfig:
    wildcard = data.get("wildcard") or {}
    return MatchConfig(
        fields=tuple(
            MatchFieldPair.from_mapping(pair) for pair in data.get("fields") or ()
        ),
        policy=MatchPolicy(
            mode=data.get("mode", "flat"),
            partial_match=data.get("partial_match", "no_match"),
            wildcard=WildcardConfig(
                enabled=bool(wildcard.get("enabled", False)),
                value=str(wildcard.get("value", "*")),
            ),
            case_sensitive_field_names=bool(data.get("case_sensitive_field_names", False)),
        ),
    )


def parse_calculation(data: dict[str, Any]) -> CalculationConfig:
    rounding = data.get("rounding") or {}
    try:
        method = CalculationMethod(data.get("method", "basic"))
    except ValueError:
        raise ConfigurationError(
            f"Unknown calculation method: {data.get('method')!r}",
            field_name="calculation.method",
        ) from None

    tiers: tuple = ()
    raw_tiers = data.get("tiers")
    if raw_tiers:
        try:
            if method is CalculationMethod.TIERED:
                tiers = parse_tiers(raw_tiers)
            elif method is CalculationMethod.GRADUATED:
                tiers = parse_graduated_tiers(raw_tiers)
        except TierDefinitionError as exc:
            raise ConfigurationError(
                f"Invalid tier table: {exc}", field_name="calculation.tiers"
            ) from exc

    return CalculationConfig(
        quantity_field=str(data.get("quantity_field") or "").strip(),
        price_field=_optional_str(data.get("price_field")),
        cost_price_field=_optional_str(data.get("cost_price_field")),
        sell_price_field=_optional_str(data.get("sell_price_field")),
        method=method,
        rounding=RoundingDirective(
            direction=rounding.get("direction", "none"),
            decimal_places=rounding.get("decimal_places", 2),
        ),
        tiers=tiers,
        tiers_field=_optional_str(data.get("tiers_field")),
    )


def parse_output(data: dict[str, Any]) -> OutputFieldConfig:
    defaults = OutputFieldConfig()
    return OutputFieldConfig(
        include_match_pricelist_fields=bool(
            data.get("include_match_pricelist_fields", defaults.include_match_pricelist_fields)
        ),
        include_match_usage_fields=bool(
            data.get("include_match_usage_fields", defaults.include_match_usage_fields)
        ),
        include_calculation_fields=bool(
            data.get("include_calculation_fields", defaults.include_calculation_fields)
        ),
        include_all_fields=bool(data.get("include_all_fields", defaults.include_all_fields)),
        price_prefix=str(data.get("price_prefix", defaults.price_prefix)),
        usage_prefix=str(data.get("usage_prefix", defaults.usage_prefix)),
        calc_prefix=str(data.get("calc_prefix", defaults.calc_prefix)),
        calculated_amount_field=str(
            data.get("calculated_amount_field", defaults.calculated_amount_field)
        ),
        calculated_cost_amount_field=str(
            data.get("calculated_cost_amount_field", defaults.calculated_cost_amount_field)
        ),
        calculated_sell_amount_field=str(
            data.get("calculated_sell_amount_field", defaults.calculated_sell_amount_field)
        ),
        field_mappings=tuple(
            FieldMappingRule(
                source_field=str(m.get("source_field", "")).strip(),
                target_field=_optional_str(m.get("target_field")),
                source=m.get("source", "usage"),
            )
            for m in data.get("field_mappings") or ()
        ),
    )


def parse_summary(data: dict[str, Any]) -> SummaryConfig:
    return SummaryConfig(
        enabled=bool(data.get("enabled", False)),
        fields_to_total=_str_tuple(data.get("fields_to_total")),
        group_by_fields=_str_tuple(data.get("group_by_fields")),
        include_source_data=bool(data.get("include_source_data", False)),
    )


def parse_job_config(data: dict[str, Any]) -> BillingJobConfig:
    """
    Parse a job document into a BillingJobConfig.

    Raises:
        ConfigurationError: a value cannot be turned into its config type.
    """
    if "calculation" not in data:
        raise ConfigurationError(
            "Job configuration has no 'calculation' section",
            field_name="calculation",
            code="MISSING_REQUIRED_FIELD",
        )
    max_workers = data.get("max_workers")
    if max_workers is not None and (not isinstance(max_workers, int) or max_workers < 1):
        raise ConfigurationError(
            f"max_workers must be a positive integer, got {max_workers!r}",
            field_name="max_workers",
        )
    return BillingJobConfig(
        name=str(data.get("name", "billing-job")),
        version=int(data.get("version", 1)),
        input=parse_input(_section(data, "input")),
        match=parse_match(_section(data, "match")),
        calculation=parse_calculation(_section(data, "calculation")),
        output=parse_output(_section(data, "output")),
        summary=parse_summary(_section(data, "summary")),
        max_workers=max_workers,
        checksum=compute_checksum(data),
    )


def load_job_config(path: Path) -> BillingJobConfig:
    """Load and parse a YAML job file (no validation beyond parsing)."""
    return parse_job_config(load_yaml_file(Path(path)))
