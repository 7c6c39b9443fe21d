"""
Mapping engine: pure column filtering and type coercion for imported records.

CSV and text sources produce strings; mapped columns are converted to their
declared type here. ZERO I/O.

Coercion rules:
    number  -> Decimal; an unparseable or empty value becomes Decimal("0")
    boolean -> True for "true", "yes", "1" (any case) or True/1, else False
    string  -> str(value); None stays None
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from billing_ingestion.domain.types import ColumnDataType, ColumnMapping, FilterConfig
from billing_kernel.domain.decimal_math import to_decimal

_TRUE_STRINGS = frozenset({"true", "yes", "1"})


def coerce_column_value(value: Any, data_type: ColumnDataType) -> Any:
    """Convert one column value to ``data_type``. Pure function."""
    if data_type is ColumnDataType.NUMBER:
        if isinstance(value, bool) or value is None:
            return Decimal("0")
        try:
            return to_decimal(value)
        except (TypeError, ValueError):
            return Decimal("0")

    if data_type is ColumnDataType.BOOLEAN:
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, Decimal)):
            return value == 1
        if isinstance(value, str):
            return value.strip().lower() in _TRUE_STRINGS
        return False

    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def _apply_mapping(out: dict[str, Any], record: dict[str, Any], mapping: ColumnMapping) -> None:
    if mapping.csv_column in record:
        out[mapping.target] = coerce_column_value(record[mapping.csv_column], mapping.data_type)


def apply_column_filter(record: dict[str, Any], config: FilterConfig) -> dict[str, Any]:
    """
    Keep the configured columns of one record and coerce mapped ones.

    ``include_all_columns``: every column is kept; mapped columns are
    coerced and written under their target name (the source column stays
    when the target differs).

    Otherwise: ``include_columns`` first, in configured order, then each
    mapped column under its target name unless that name was already written.
    """
    if config.include_all_columns:
        out = dict(record)
        for mapping in config.column_mappings:
            _apply_mapping(out, record, mapping)
        return out

    out = {}
    for column in config.include_columns:
        if column in record:
            out[column] = record[column]
    for mapping in config.column_mappings:
        if mapping.target not in out:
            _apply_mapping(out, record, mapping)
    return out
