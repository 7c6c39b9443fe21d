"""
Lookup lifecycle events and the sinks that receive them.

The lookup orchestrator never writes log output itself. It reports discrete
lifecycle events to an injected ``LookupEventSink``:

    invocation_started    price list and usage sizes known
    price_list_extracted  price list resolved from the host items
    match_attempted       one usage record entered the matcher
    match_resolved        one usage record was priced and assembled
    record_unmatched      one usage record went to the unmatched stream
    invocation_completed  totals and duration
    invocation_failed     fatal error, with its code

``LoggingEventSink`` (the default) forwards events to the structured logger,
``RecordingEventSink`` keeps them in memory for tests, ``NullEventSink``
drops them.

Usage:
    sink = RecordingEventSink()
    lookup_and_calculate(..., event_sink=sink)
    assert sink.types()[-1] is LookupEventType.INVOCATION_COMPLETED
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from billing_kernel.logging_config import get_logger

logger = get_logger("services.lookup")


class LookupEventType(str, Enum):
    INVOCATION_STARTED = "invocation_started"
    PRICE_LIST_EXTRACTED = "price_list_extracted"
    MATCH_ATTEMPTED = "match_attempted"
    MATCH_RESOLVED = "match_resolved"
    RECORD_UNMATCHED = "record_unmatched"
    INVOCATION_COMPLETED = "invocation_completed"
    INVOCATION_FAILED = "invocation_failed"


@dataclass(frozen=True)
class LookupEvent:
    """One lifecycle event. ``record_index`` is set for per-record events."""

    event_type: LookupEventType
    record_index: int | None = None
    attributes: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class LookupEventSink(Protocol):
    def emit(self, event: LookupEvent) -> None:
        ...


_LEVELS = {
    LookupEventType.INVOCATION_STARTED: logging.INFO,
    LookupEventType.PRICE_LIST_EXTRACTED: logging.INFO,
    LookupEventType.MATCH_ATTEMPTED: logging.DEBUG,
    LookupEventType.MATCH_RESOLVED: logging.DEBUG,
    LookupEventType.RECORD_UNMATCHED: logging.INFO,
    LookupEventType.INVOCATION_COMPLETED: logging.INFO,
    LookupEventType.INVOCATION_FAILED: logging.ERROR,
}


class LoggingEventSink:
    """Forwards events to ``billing_kernel.services.lookup`` as structured records."""

    def __init__(self, log: logging.Logger | None = None):
        self._logger = log or logger

    def emit(self, event: LookupEvent) -> None:
        payload: dict[str, Any] = {"observability_event": event.event_type.value}
        if event.record_index is not None:
            payload["record_index"] = event.record_index
        payload.update(event.attributes)
        self._logger.log(
            _LEVELS[event.event_type], f"lookup_{event.event_type.value}", extra=payload
        )


class RecordingEventSink:
    """Keeps every event in memory. Safe to share across worker threads."""

    def __init__(self) -> None:
        self._events: list[LookupEvent] = []
        self._lock = threading.Lock()

    def emit(self, event: LookupEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> list[LookupEvent]:
        with self._lock:
            return list(self._events)

    def types(self) -> list[LookupEventType]:
        return [e.event_type for e in self.events]

    def of_type(self, event_type: LookupEventType) -> list[LookupEvent]:
        return [e for e in self.events if e.event_type is event_type]


class NullEventSink:
    def emit(self, event: LookupEvent) -> None:
        pass
