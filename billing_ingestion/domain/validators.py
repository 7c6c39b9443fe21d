"""
Validators for imported price-list records.

Structural validation checks the collection shape and is fatal. Record
validation checks individual values and routes failures to the invalid
stream. ZERO I/O.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Sequence

from billing_kernel.domain.decimal_math import to_decimal
from billing_kernel.domain.dtos import ValidationError
from billing_kernel.domain.records import MISSING, get_case_insensitive
from billing_kernel.exceptions import EmptyDatasetError, ExtractionError


def validate_collection_shape(records: Any, *, source: str = "price_list") -> list[dict[str, Any]]:
    """
    Require a non-empty list of mappings.

    Raises:
        EmptyDatasetError: the list is empty.
        ExtractionError: not a list, or an element is not a mapping.
    """
    if not isinstance(records, (list, tuple)):
        raise ExtractionError(
            f"Expected a list of records, got {type(records).__name__}",
            source=source,
        )
    if not records:
        raise EmptyDatasetError(f"The {source.replace('_', ' ')} contains no records", source=source)
    bad = [i for i, r in enumerate(records) if not isinstance(r, Mapping)]
    if bad:
        raise ExtractionError(
            f"{len(bad)} element(s) are not records (first at index {bad[0]})",
            source=source,
            context={"invalid_indexes": bad[:10]},
        )
    return [dict(r) for r in records]


def validate_price_values(
    record: Mapping[str, Any],
    price_fields: Sequence[str],
) -> list[ValidationError]:
    """Every price field that is present must be a non-negative number."""
    errors: list[ValidationError] = []
    for field_name in price_fields:
        value = get_case_insensitive(record, field_name)
        if value is MISSING:
            continue
        try:
            amount = to_decimal(value)
        except (TypeError, ValueError):
            amount = None
        if amount is None or amount < 0:
            errors.append(
                ValidationError(
                    code="INVALID_PRICE",
                    message=f"Invalid price value: {value}. Must be a non-negative number.",
                    field=field_name,
                )
            )
    return errors
