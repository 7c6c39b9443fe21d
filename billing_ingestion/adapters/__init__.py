"""Source adapters for price-list and usage import (file I/O only)."""

from billing_ingestion.adapters.base import SourceAdapter
from billing_ingestion.adapters.csv_adapter import CsvSourceAdapter, detect_delimiter
from billing_ingestion.adapters.json_adapter import JsonSourceAdapter
from billing_ingestion.adapters.xlsx_adapter import XlsxSourceAdapter

ADAPTERS_BY_SUFFIX: dict[str, SourceAdapter] = {
    ".csv": CsvSourceAdapter(),
    ".json": JsonSourceAdapter(),
    ".jsonl": JsonSourceAdapter(),
    ".xlsx": XlsxSourceAdapter(),
}

__all__ = [
    "ADAPTERS_BY_SUFFIX",
    "SourceAdapter",
    "CsvSourceAdapter",
    "JsonSourceAdapter",
    "XlsxSourceAdapter",
    "detect_delimiter",
]
