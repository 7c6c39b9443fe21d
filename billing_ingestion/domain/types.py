"""
billing_ingestion.domain.types -- Pure frozen dataclasses for price-list import.

ZERO I/O. Imports only from billing_kernel.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from billing_kernel.domain.dtos import InvalidRecord
from billing_kernel.exceptions import ConfigurationError


class ColumnDataType(str, Enum):
    """Target type of a mapped column."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"


@dataclass(frozen=True)
class ParseConfig:
    """
    How to parse raw text.

    ``delimiter`` may be a literal character, ``"tab"`` / ``"\\t"``, or
    ``"auto"`` to detect tab, then semicolon, then comma from the first line.
    """

    delimiter: str = ","
    quote: str = '"'
    has_header: bool = True
    skip_empty_lines: bool = True
    trim: bool = True
    encoding: str = "utf-8"

    def __post_init__(self) -> None:
        if not self.delimiter:
            raise ConfigurationError(
                "Delimiter must not be empty", field_name="input.parse.delimiter"
            )
        if len(self.quote) != 1:
            raise ConfigurationError(
                "Quote must be a single character", field_name="input.parse.quote"
            )


@dataclass(frozen=True)
class ColumnMapping:
    """Source column -> target field, with a type conversion."""

    csv_column: str
    target_field: str | None = None
    data_type: ColumnDataType = ColumnDataType.STRING

    def __post_init__(self) -> None:
        if not self.csv_column:
            raise ConfigurationError(
                "Column mapping needs a source column",
                field_name="input.filter.column_mappings",
            )
        try:
            object.__setattr__(self, "data_type", ColumnDataType(self.data_type))
        except ValueError:
            raise ConfigurationError(
                f"Unknown column data type: {self.data_type!r}",
                field_name="input.filter.column_mappings",
            ) from None

    @property
    def target(self) -> str:
        return self.target_field or self.csv_column


@dataclass(frozen=True)
class FilterConfig:
    """
    Which columns survive import and how they are typed.

    With ``include_all_columns`` every column is kept; otherwise only
    ``include_columns`` and the mapped columns are. Fields named in
    ``price_fields`` are validated as non-negative numbers when present.
    """

    include_all_columns: bool = True
    include_columns: tuple[str, ...] = ()
    column_mappings: tuple[ColumnMapping, ...] = ()
    price_fields: tuple[str, ...] = ("price",)

    def __post_init__(self) -> None:
        object.__setattr__(self, "include_columns", tuple(self.include_columns))
        object.__setattr__(self, "column_mappings", tuple(self.column_mappings))
        object.__setattr__(self, "price_fields", tuple(self.price_fields))


@dataclass(frozen=True)
class ImportResult:
    """Valid records and rejected records, never intermixed."""

    valid: tuple[dict[str, Any], ...] = ()
    invalid: tuple[InvalidRecord, ...] = ()

    @property
    def total(self) -> int:
        return len(self.valid) + len(self.invalid)

    def __iter__(self):
        yield list(self.valid)
        yield list(self.invalid)
