"""
Price-list ingestion: CSV / JSON / XLSX adapters, column filtering and
record validation feeding the billing engines.
"""

from billing_ingestion.domain.types import (
    ColumnDataType,
    ColumnMapping,
    FilterConfig,
    ImportResult,
    ParseConfig,
)
from billing_ingestion.services.import_service import ImportService, import_and_filter

__all__ = [
    "ColumnDataType",
    "ColumnMapping",
    "FilterConfig",
    "ImportResult",
    "ParseConfig",
    "ImportService",
    "import_and_filter",
]
