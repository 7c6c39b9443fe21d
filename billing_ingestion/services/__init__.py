"""Import orchestration."""

from billing_ingestion.services.import_service import ImportService, import_and_filter

__all__ = ["ImportService", "import_and_filter"]
