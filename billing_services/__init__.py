"""
billing_services -- orchestration over the pure billing engines.

Usage:
    from billing_services import lookup_and_calculate, run_lookup
    from billing_services.events import RecordingEventSink
"""

from billing_services.events import (
    LoggingEventSink,
    LookupEvent,
    LookupEventSink,
    LookupEventType,
    NullEventSink,
    RecordingEventSink,
)
from billing_services.lookup_service import (
    LookupResult,
    extract_price_list,
    extract_usage_records,
    lookup_and_calculate,
    normalize_collection,
    run_lookup,
)

__all__ = [
    "LoggingEventSink",
    "LookupEvent",
    "LookupEventSink",
    "LookupEventType",
    "NullEventSink",
    "RecordingEventSink",
    "LookupResult",
    "extract_price_list",
    "extract_usage_records",
    "lookup_and_calculate",
    "normalize_collection",
    "run_lookup",
]
