"""
Import service: read -> filter -> validate.

Orchestrates source adapters, the mapping engine and domain validators to
turn a raw price-list source into valid records plus rejected records.
Uses structured logging (LogContext, get_logger("ingestion.*")).
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from billing_ingestion.adapters import ADAPTERS_BY_SUFFIX, SourceAdapter
from billing_ingestion.adapters.csv_adapter import CsvSourceAdapter
from billing_ingestion.domain.types import FilterConfig, ImportResult, ParseConfig
from billing_ingestion.domain.validators import (
    validate_collection_shape,
    validate_price_values,
)
from billing_ingestion.mapping.engine import apply_column_filter
from billing_kernel.domain.dtos import InvalidRecord
from billing_kernel.exceptions import EmptyDatasetError, ExtractionError
from billing_kernel.logging_config import LogContext, get_logger

logger = get_logger("ingestion.import_service")


def _parse_options(config: ParseConfig) -> dict[str, Any]:
    return {
        "delimiter": config.delimiter,
        "quote": config.quote,
        "has_header": config.has_header,
        "skip_empty_lines": config.skip_empty_lines,
        "trim": config.trim,
        "encoding": config.encoding,
    }


class ImportService:
    """Reads a price-list source and partitions its records into valid / invalid."""

    def __init__(self, adapters: dict[str, SourceAdapter] | None = None):
        self._adapters = adapters if adapters is not None else dict(ADAPTERS_BY_SUFFIX)
        self._csv = CsvSourceAdapter()

    def read_records(self, raw: Any, parse_config: ParseConfig) -> list[dict[str, Any]]:
        """
        Resolve ``raw`` to a list of records.

        Raises:
            EmptyDatasetError: CSV text or file without data rows.
            IngestionError: unparseable CSV / JSON.
            ExtractionError: unsupported file suffix or input type.
        """
        options = _parse_options(parse_config)

        if isinstance(raw, Path):
            adapter = self._adapters.get(raw.suffix.lower())
            if adapter is None:
                raise ExtractionError(
                    f"Unsupported price-list file type: {raw.suffix or raw.name}",
                    context={"path": str(raw)},
                )
            records = list(adapter.read(raw, options))
            source = str(raw)
        elif isinstance(raw, str):
            records = list(self._csv.read_text(raw, options))
            source = "text"
        elif isinstance(raw, Sequence) and not isinstance(raw, (bytes, bytearray)):
            return validate_collection_shape(list(raw))
        else:
            raise ExtractionError(
                f"Cannot import price list from {type(raw).__name__}",
            )

        if not records:
            if source == "text":
                raise EmptyDatasetError("No data rows found in CSV")
            raise EmptyDatasetError(f"No data rows found in {raw.name}")
        logger.info("price_list_read", extra={"source": source, "row_count": len(records)})
        return records

    def import_and_filter(
        self,
        raw: Any,
        parse_config: ParseConfig | None = None,
        filter_config: FilterConfig | None = None,
    ) -> ImportResult:
        parse_config = parse_config or ParseConfig()
        filter_config = filter_config or FilterConfig()

        with LogContext.bind(source="price_list_import"):
            records = self.read_records(raw, parse_config)
            filtered = validate_collection_shape(
                [apply_column_filter(record, filter_config) for record in records]
            )

            valid: list[dict[str, Any]] = []
            invalid: list[InvalidRecord] = []
            for index, record in enumerate(filtered):
                errors = validate_price_values(record, filter_config.price_fields)
                if errors:
                    invalid.append(InvalidRecord(record=record, errors=tuple(errors)))
                    logger.debug(
                        "record_rejected",
                        extra={"row": index, "error_count": len(errors)},
                    )
                else:
                    valid.append(record)

            logger.info(
                "price_list_imported",
                extra={"valid_records": len(valid), "invalid_records": len(invalid)},
            )
            return ImportResult(valid=tuple(valid), invalid=tuple(invalid))


def import_and_filter(
    raw: str | Path | Sequence[Mapping[str, Any]],
    parse_config: ParseConfig | None = None,
    filter_config: FilterConfig | None = None,
) -> ImportResult:
    """
    Import a price list and split it into valid and invalid records.

    ``raw`` is CSV text, a file path (.csv, .json, .jsonl, .xlsx) or an
    already-parsed list of records.
    """
    return ImportService().import_and_filter(raw, parse_config, filter_config)
