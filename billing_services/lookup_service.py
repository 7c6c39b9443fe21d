"""
Lookup orchestrator: price list + usage records -> matched / unmatched streams.

Responsibility:
    Drive the per-usage-record pipeline. The price list is captured once in a
    RecordMatcher and shared read-only by every record:

        START -> LOAD_PRICE_LIST -> for each usage record:
            MATCH -> exactly one entry:  CALCULATE -> ASSEMBLE -> matched
                  -> zero or many:       annotate reason      -> unmatched
        -> DONE

Architecture position:
    Services -- composes billing_engines; the only layer that knows about
    host items, event sinks and error envelopes.

Invariants enforced:
    - Output order equals input order in both streams, with or without
      ``max_workers``.
    - Matched and unmatched records are never intermixed.
    - Per-record problems (no match, ambiguous match, calculation errors)
      never abort the invocation.
    - Configuration and extraction errors abort the invocation before any
      record is processed.

Failure modes:
    - ConfigurationError / MissingMatchFieldsError -- invalid setup.
    - ExtractionError / EmptyDatasetError -- price list or usage data cannot
      be resolved from the host items.
    - LookupFailedError -- anything unexpected, from ``run_lookup`` only,
      carrying an ErrorEnvelope and chained to the original exception.

Usage:
    result = lookup_and_calculate(
        price_list, usage_records,
        [MatchFieldPair("sku", "sku")],
        CalculationConfig(quantity_field="qty", price_field="price"),
    )
    matched, unmatched = result
"""

from __future__ import annotations

import contextvars
import json
import time
from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any
from uuid import uuid4

from billing_config.schema import BillingJobConfig
from billing_config.validator import validate_job_config
from billing_engines.assembly import OutputFieldConfig, assemble_output
from billing_engines.calculator import CalculationConfig, calculate
from billing_engines.matching import (
    MatchFieldPair,
    MatchMode,
    MatchPolicy,
    MatchResult,
    RecordMatcher,
    describe_unmatched,
)
from billing_kernel.domain.clock import Clock
from billing_kernel.domain.records import MISSING, Record, get_case_insensitive
from billing_kernel.exceptions import (
    BillingKernelError,
    CalculationError,
    EmptyDatasetError,
    ExtractionError,
    LookupFailedError,
    build_error_envelope,
)
from billing_kernel.logging_config import LogContext
from billing_services.events import (
    LoggingEventSink,
    LookupEvent,
    LookupEventSink,
    LookupEventType,
)

MATCH_REASON_FIELD = "match_reason"
MATCH_COUNT_FIELD = "match_count"
MATCH_ERROR_CODE_FIELD = "match_error_code"
MATCH_DEPTH_FIELD = "match_depth"

# Property names checked, in order, when a JSON object wraps the real list
EMBEDDED_LIST_KEYS = (
    "priceList",
    "pricelist",
    "prices",
    "items",
    "records",
    "data",
    "usage",
    "usageData",
    "usageItems",
)


@dataclass(frozen=True)
class LookupResult:
    """Matched output records and annotated unmatched usage records."""

    matched: tuple[dict[str, Any], ...] = ()
    unmatched: tuple[dict[str, Any], ...] = ()

    def __iter__(self):
        yield list(self.matched)
        yield list(self.unmatched)


# =============================================================================
# Host item extraction
# =============================================================================


def resolve_field_path(item: Record, path: str) -> Any:
    """Follow a dot path, matching each segment case-insensitively."""
    value: Any = item
    for segment in path.split("."):
        segment = segment.strip()
        if not segment:
            continue
        if isinstance(value, str):
            value = _parse_json(value, value)
        if not isinstance(value, Mapping):
            return MISSING
        value = get_case_insensitive(value, segment)
        if value is MISSING:
            return MISSING
    return value


def _parse_json(text: str, default: Any) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return default


def _unwrap(value: Mapping[str, Any]) -> Any:
    for key in EMBEDDED_LIST_KEYS:
        embedded = value.get(key)
        if isinstance(embedded, list):
            return embedded
    return value


def normalize_collection(value: Any, *, unwrap: bool = False) -> list[dict[str, Any]]:
    """
    Coerce a host value into a list of records.

    - str: parsed as JSON; unparseable text becomes an empty collection.
    - list: kept; non-record elements are dropped.
    - mapping: a one-element collection holding the mapping unchanged. With
      ``unwrap`` (a configured field path points at the object) a list under
      a known wrapper key replaces the mapping.
    - anything else: empty collection.
    """
    if isinstance(value, str):
        value = _parse_json(value, None)
    if isinstance(value, Mapping):
        if unwrap:
            value = _unwrap(value)
        if isinstance(value, Mapping):
            return [dict(value)]
    if isinstance(value, list):
        return [dict(v) for v in value if isinstance(v, Mapping)]
    return []


def extract_price_list(
    items: Sequence[Record], price_list_field: str | None = None
) -> list[dict[str, Any]]:
    """
    Resolve the price list from the FIRST host item.

    Raises:
        EmptyDatasetError: no items, or the price list resolves to nothing.
        ExtractionError: the named field is not present.
    """
    if not items:
        raise EmptyDatasetError("No input items to read the price list from")
    first = items[0]
    if price_list_field:
        raw = resolve_field_path(first, price_list_field)
        if raw is MISSING:
            raise ExtractionError(
                f"Price list field '{price_list_field}' not found in input",
                context={"available_fields": list(first.keys())[:20]},
                suggestions=[
                    "Check the price_list_field name in the job configuration",
                    "Ensure the previous step outputs the price list under that field",
                ],
            )
    else:
        raw = first

    records = normalize_collection(raw, unwrap=bool(price_list_field))
    if not records:
        raise EmptyDatasetError("Price list contains no records")
    return records


def extract_usage_records(
    items: Sequence[Record],
    usage_data_field: str | None = None,
    *,
    exclude_fields: Sequence[str] = (),
) -> list[dict[str, Any]]:
    """
    Collect usage records from every host item.

    With ``usage_data_field`` each item contributes the collection found at
    that path (items without it contribute nothing). Without it each item is
    itself one usage record, minus ``exclude_fields``.

    Raises:
        EmptyDatasetError: no usage records at all.
    """
    records: list[dict[str, Any]] = []
    excluded = {name.lower() for name in exclude_fields}
    for item in items:
        if usage_data_field:
            raw = resolve_field_path(item, usage_data_field)
            if raw is not MISSING:
                records.extend(normalize_collection(raw, unwrap=True))
        elif isinstance(item, Mapping):
            records.append(
                {k: v for k, v in item.items() if str(k).lower() not in excluded}
            )
    if not records:
        raise EmptyDatasetError("No usage records found in input", source="usage")
    return records


# =============================================================================
# Orchestration
# =============================================================================


class _LookupRun:
    """One invocation: shared matcher plus the per-record pipeline."""

    def __init__(
        self,
        matcher: RecordMatcher,
        calc_config: CalculationConfig,
        output_config: OutputFieldConfig,
        sink: LookupEventSink,
    ):
        self._matcher = matcher
        self._calc_config = calc_config
        self._output_config = output_config
        self._sink = sink
        self._hierarchical = matcher.policy.mode is MatchMode.HIERARCHICAL

    def process(self, index: int, record: Record) -> tuple[bool, dict[str, Any]]:
        with LogContext.bind(record_index=str(index)):
            self._sink.emit(LookupEvent(LookupEventType.MATCH_ATTEMPTED, index))
            result = self._matcher.match(record)

            if not result.is_unambiguous:
                reason, code = describe_unmatched(result)
                return False, self._unmatched(index, record, result, reason, code)

            entry = result.entry
            try:
                calculation = calculate(entry, record, self._calc_config)
            except CalculationError as exc:
                return False, self._unmatched(
                    index, record, result, f"Calculation failed: {exc}", exc.code
                )

            output = assemble_output(
                entry,
                record,
                self._matcher.match_fields,
                calculation,
                self._calc_config,
                self._output_config,
            )
            self._sink.emit(
                LookupEvent(
                    LookupEventType.MATCH_RESOLVED,
                    index,
                    {"matched_depth": result.matched_depth, "partial": result.partial},
                )
            )
            return True, output

    def _unmatched(
        self,
        index: int,
        record: Record,
        result: MatchResult,
        reason: str,
        code: str,
    ) -> dict[str, Any]:
        annotated = dict(record)
        annotated[MATCH_REASON_FIELD] = reason
        annotated[MATCH_COUNT_FIELD] = result.match_count
        annotated[MATCH_ERROR_CODE_FIELD] = code
        if self._hierarchical:
            annotated[MATCH_DEPTH_FIELD] = result.matched_depth
        self._sink.emit(
            LookupEvent(
                LookupEventType.RECORD_UNMATCHED,
                index,
                {"error_code": code, "match_count": result.match_count},
            )
        )
        return annotated

    def run(self, usage_records: Sequence[Record], max_workers: int | None) -> LookupResult:
        t0 = time.monotonic()
        self._sink.emit(
            LookupEvent(
                LookupEventType.INVOCATION_STARTED,
                attributes={
                    "price_list_count": len(self._matcher.price_list),
                    "usage_count": len(usage_records),
                    "match_mode": self._matcher.policy.mode.value,
                    "method": self._calc_config.method.value,
                },
            )
        )

        indexed = list(enumerate(usage_records))
        if max_workers and max_workers > 1 and len(indexed) > 1:
            parent = contextvars.copy_context()
            with ThreadPoolExecutor(max_workers=max_workers) as pool:
                outcomes = list(
                    pool.map(lambda pair: parent.copy().run(self.process, *pair), indexed)
                )
        else:
            outcomes = [self.process(i, r) for i, r in indexed]

        matched = tuple(out for ok, out in outcomes if ok)
        unmatched = tuple(out for ok, out in outcomes if not ok)
        self._sink.emit(
            LookupEvent(
                LookupEventType.INVOCATION_COMPLETED,
                attributes={
                    "matched_count": len(matched),
                    "unmatched_count": len(unmatched),
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                },
            )
        )
        return LookupResult(matched=matched, unmatched=unmatched)


def _check_usage_records(usage_records: Sequence[Any]) -> None:
    bad = [i for i, r in enumerate(usage_records) if not isinstance(r, Mapping)]
    if bad:
        raise ExtractionError(
            f"{len(bad)} usage record(s) are not records (first at index {bad[0]})",
            source="usage",
        )


def _emit_failure(sink: LookupEventSink, exc: BaseException) -> None:
    code = exc.code if isinstance(exc, BillingKernelError) else LookupFailedError.code
    sink.emit(
        LookupEvent(
            LookupEventType.INVOCATION_FAILED,
            attributes={"error_code": code, "error_type": type(exc).__name__},
        )
    )


def lookup_and_calculate(
    price_list: Sequence[Record],
    usage_records: Sequence[Record],
    match_fields: Sequence[MatchFieldPair],
    calc_config: CalculationConfig,
    output_config: OutputFieldConfig | None = None,
    policy: MatchPolicy | None = None,
    *,
    event_sink: LookupEventSink | None = None,
    max_workers: int | None = None,
) -> LookupResult:
    """
    Match, price and assemble every usage record.

    Returns:
        LookupResult(matched, unmatched), each in input order. Unmatched
        records are copies of the usage record annotated with
        ``match_reason``, ``match_count``, ``match_error_code`` and, in
        hierarchical mode, ``match_depth``.

    Raises:
        MissingMatchFieldsError: no usable match-field pairs.
        ExtractionError: a usage record is not a mapping.
    """
    sink = event_sink or LoggingEventSink()
    with LogContext.bind(invocation_id=str(uuid4())):
        try:
            _check_usage_records(usage_records)
            matcher = RecordMatcher(price_list, match_fields, policy)
            run = _LookupRun(matcher, calc_config, output_config or OutputFieldConfig(), sink)
            return run.run(usage_records, max_workers)
        except Exception as exc:
            _emit_failure(sink, exc)
            raise


def run_lookup(
    items: Sequence[Record],
    job_config: BillingJobConfig,
    *,
    event_sink: LookupEventSink | None = None,
    clock: Clock | None = None,
) -> LookupResult:
    """
    Host boundary: extract price list and usage data from raw items and run
    the lookup described by ``job_config``.

    Raises:
        BillingKernelError subclasses for configuration / extraction errors.
        LookupFailedError for anything unexpected.
    """
    sink = event_sink or LoggingEventSink()
    with LogContext.bind(invocation_id=str(uuid4()), source="run_lookup"):
        try:
            validate_job_config(job_config)
            inp = job_config.input
            price_list = extract_price_list(items, inp.price_list_field)
            sink.emit(
                LookupEvent(
                    LookupEventType.PRICE_LIST_EXTRACTED,
                    attributes={"price_list_count": len(price_list)},
                )
            )
            exclude = () if inp.usage_data_field or not inp.price_list_field else (
                inp.price_list_field.split(".")[0],
            )
            usage_records = extract_usage_records(
                items, inp.usage_data_field, exclude_fields=exclude
            )
            matcher = RecordMatcher(price_list, job_config.match.fields, job_config.match.policy)
            run = _LookupRun(matcher, job_config.calculation, job_config.output, sink)
            return run.run(usage_records, job_config.max_workers)
        except BillingKernelError as exc:
            _emit_failure(sink, exc)
            raise
        except Exception as exc:
            _emit_failure(sink, exc)
            envelope = build_error_envelope(exc, context=job_config.snapshot(), clock=clock)
            raise LookupFailedError(envelope) from exc
