"""
billing_engines.summary -- Usage summary totals.

Totals selected numeric fields over a batch of records, either as a single
summary or one summary per distinct group-by key (first-seen order). Totals
are Decimal; absent values are skipped and non-numeric values count as zero
with a warning. The summary date comes from the injected Clock.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from billing_engines.calculator import coerce_numeric
from billing_engines.tracer import traced_engine
from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.domain.decimal_math import add
from billing_kernel.domain.records import Record, get_case_insensitive, is_present
from billing_kernel.exceptions import ConfigurationError
from billing_kernel.logging_config import get_logger

logger = get_logger("engines.summary")


@dataclass(frozen=True)
class UsageSummary:
    """One summary row."""

    records_processed: int
    summary_date: str
    totals: dict[str, Decimal]
    group: dict[str, Any] = field(default_factory=dict)
    source_data: tuple[Record, ...] | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = dict(self.group)
        payload["records_processed"] = self.records_processed
        payload["summary_date"] = self.summary_date
        for name, total in self.totals.items():
            payload[f"total_{name}"] = total
        if self.source_data:
            payload["source_data"] = [dict(r) for r in self.source_data]
        return payload


def _summarize(
    records: Sequence[Record],
    fields: tuple[str, ...],
    summary_date: str,
    group: dict[str, Any],
    include_source_data: bool,
) -> UsageSummary:
    totals = {name: Decimal("0") for name in fields}
    for record in records:
        for name in fields:
            value = get_case_insensitive(record, name)
            if is_present(value):
                totals[name] = add(totals[name], coerce_numeric(value, name))
    return UsageSummary(
        records_processed=len(records),
        summary_date=summary_date,
        totals=totals,
        group=group,
        source_data=tuple(records) if include_source_data and records else None,
    )


def _parse_field_list(fields: Sequence[str] | str) -> tuple[str, ...]:
    if isinstance(fields, str):
        fields = fields.split(",")
    return tuple(f.strip() for f in fields if f and f.strip())


@traced_engine("summary", "1.0", fingerprint_fields=("fields_to_total", "group_by_fields"))
def summarize_usage(
    records: Sequence[Record],
    fields_to_total: Sequence[str] | str,
    group_by_fields: Sequence[str] | str = (),
    include_source_data: bool = False,
    clock: Clock | None = None,
) -> list[UsageSummary]:
    """
    Total ``fields_to_total`` over ``records``.

    Field lists may be sequences or comma-separated strings. Returns a
    single-element list without grouping, otherwise one summary per group.

    Raises:
        ConfigurationError: no field to total.
    """
    fields = _parse_field_list(fields_to_total)
    if not fields:
        raise ConfigurationError(
            "Fields to total is required for usage summary",
            field_name="summary.fields_to_total",
            code="MISSING_REQUIRED_FIELD",
            suggestions=["Provide at least one field name to total"],
        )
    group_fields = _parse_field_list(group_by_fields)
    summary_date = (clock or SystemClock()).now_utc().isoformat()

    if not group_fields:
        return [_summarize(records, fields, summary_date, {}, include_source_data)]

    groups: dict[tuple, list[Record]] = {}
    group_values: dict[tuple, dict[str, Any]] = {}
    for record in records:
        values = {name: get_case_insensitive(record, name, None) for name in group_fields}
        key = tuple(
            v.lower() if isinstance(v, str) else v for v in values.values()
        )
        if key not in groups:
            groups[key] = []
            group_values[key] = values
        groups[key].append(record)

    logger.info(
        "usage_summary_grouped",
        extra={"group_by": list(group_fields), "group_count": len(groups)},
    )
    return [
        _summarize(members, fields, summary_date, group_values[key], include_source_data)
        for key, members in groups.items()
    ]
