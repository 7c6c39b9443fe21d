"""Pure domain types and validators for price-list import."""

from billing_ingestion.domain.types import (
    ColumnDataType,
    ColumnMapping,
    FilterConfig,
    ImportResult,
    ParseConfig,
)
from billing_ingestion.domain.validators import (
    validate_collection_shape,
    validate_price_values,
)

__all__ = [
    "ColumnDataType",
    "ColumnMapping",
    "FilterConfig",
    "ImportResult",
    "ParseConfig",
    "validate_collection_shape",
    "validate_price_values",
]
