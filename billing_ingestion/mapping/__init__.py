"""Column filtering and type coercion."""

from billing_ingestion.mapping.engine import apply_column_filter, coerce_column_value

__all__ = ["apply_column_filter", "coerce_column_value"]
