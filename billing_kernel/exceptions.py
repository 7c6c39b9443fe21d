"""
Typed Exception Hierarchy for the Billing Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

A billing run has two very different kinds of failure: the caller set the
engine up wrongly (fatal, abort the invocation) or one usage record could not
be priced (non-fatal, route it to the unmatched stream). Callers must be able
to tell these apart by TYPE and by CODE, never by parsing message text.

Every exception therefore carries:
  1. A class-level ``code`` (machine-readable, API-safe)
  2. A class-level ``category`` (INPUT_ERROR, PROCESSING_ERROR, DATA_ERROR,
     SYSTEM_ERROR)
  3. ``suggestions`` -- actionable hints for whoever configured the run
  4. Structured attributes for the data involved

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    BillingKernelError (base)
    |
    +-- ConfigurationError
    |   +-- MissingMatchFieldsError
    |
    +-- ExtractionError
    |   +-- EmptyDatasetError
    |
    +-- IngestionError
    |
    +-- CalculationError
    |   +-- TierDefinitionError
    |   +-- DivisionByZeroError
    |
    +-- LookupFailedError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Input           | MISSING_REQUIRED_FIELD      | Quantity / price field name not configured
                | INVALID_CONFIGURATION       | Unknown enum value, bad decimal places
                | MISSING_MATCH_FIELDS        | No match pairs, or a pair is incomplete
                | INVALID_PRICE_LIST_FORMAT   | Price list cannot be resolved to records
                | INVALID_USAGE_DATA_FORMAT   | Usage data cannot be resolved to records
----------------|-----------------------------|-----------------------------------------
Data            | EMPTY_DATASET               | Collection resolved but has no records
                | NO_MATCH_FOUND              | Per-record: zero price entries matched
                | MULTIPLE_MATCHES_FOUND      | Per-record: more than one entry matched
                | CALCULATION_ERROR           | Per-record: amount could not be computed
                | INVALID_TIER_DEFINITION     | Per-record: tier data missing/malformed
----------------|-----------------------------|-----------------------------------------
Processing      | PARSING_ERROR               | CSV / JSON source could not be parsed
                | DIVISION_BY_ZERO            | Decimal divide with a zero divisor
----------------|-----------------------------|-----------------------------------------
System          | UNKNOWN_ERROR               | Anything unexpected (wrapped, never lost)

===============================================================================
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from billing_kernel.domain.clock import Clock


class ErrorCategory(str, Enum):
    """Coarse error category used for routing and alerting."""

    INPUT_ERROR = "INPUT_ERROR"
    PROCESSING_ERROR = "PROCESSING_ERROR"
    DATA_ERROR = "DATA_ERROR"
    SYSTEM_ERROR = "SYSTEM_ERROR"


class BillingKernelError(Exception):
    """
    Base exception for all billing kernel errors.

    All subclasses must have ``code`` and ``category`` class attributes.
    """

    code: str = "BILLING_KERNEL_ERROR"
    category: ErrorCategory = ErrorCategory.SYSTEM_ERROR
    default_suggestions: tuple[str, ...] = ()

    def __init__(
        self,
        message: str,
        *,
        context: dict[str, Any] | None = None,
        suggestions: tuple[str, ...] | list[str] | None = None,
    ):
        self.context = dict(context or {})
        self.suggestions = tuple(
            suggestions if suggestions is not None else self.default_suggestions
        )
        super().__init__(message)


# Configuration errors (fatal for the invocation)


class ConfigurationError(BillingKernelError):
    """The engine was set up incorrectly; not a data problem."""

    code: str = "INVALID_CONFIGURATION"
    category: ErrorCategory = ErrorCategory.INPUT_ERROR

    def __init__(
        self,
        message: str,
        *,
        field_name: str | None = None,
        code: str | None = None,
        context: dict[str, Any] | None = None,
        suggestions: tuple[str, ...] | list[str] | None = None,
    ):
        self.field_name = field_name
        if code is not None:
            self.code = code
        super().__init__(message, context=context, suggestions=suggestions)


class MissingMatchFieldsError(ConfigurationError):
    """No match field pairs configured, or a pair is missing a side."""

    code: str = "MISSING_MATCH_FIELDS"
    default_suggestions = (
        "Define at least one match field pair to link price list and usage data",
        "Each match field pair should specify a price_list_field and usage_field",
    )

    def __init__(self, message: str, *, invalid_pairs: list[dict[str, Any]] | None = None):
        self.invalid_pairs = list(invalid_pairs or [])
        super().__init__(
            message,
            field_name="match.fields",
            context={"invalid_pairs": self.invalid_pairs} if self.invalid_pairs else None,
        )


# Extraction errors (fatal for the invocation)


class ExtractionError(BillingKernelError):
    """Price list or usage source cannot be resolved to a record collection."""

    code: str = "INVALID_PRICE_LIST_FORMAT"
    category: ErrorCategory = ErrorCategory.INPUT_ERROR

    def __init__(
        self,
        message: str,
        *,
        source: str = "price_list",
        context: dict[str, Any] | None = None,
        suggestions: tuple[str, ...] | list[str] | None = None,
    ):
        self.source = source
        if source == "usage":
            self.code = "INVALID_USAGE_DATA_FORMAT"
        super().__init__(message, context=context, suggestions=suggestions)


class EmptyDatasetError(ExtractionError):
    """A collection resolved correctly but contains no records."""

    code: str = "EMPTY_DATASET"
    category: ErrorCategory = ErrorCategory.DATA_ERROR
    default_suggestions = (
        "Ensure the data contains at least one record",
        "Check that the previous step is producing data",
    )

    def __init__(self, message: str, *, source: str = "price_list"):
        super().__init__(message, source=source)
        self.code = "EMPTY_DATASET"


# Ingestion errors


class IngestionError(BillingKernelError):
    """Raw source text could not be parsed."""

    code: str = "PARSING_ERROR"
    category: ErrorCategory = ErrorCategory.PROCESSING_ERROR
    default_suggestions = (
        "Check the delimiter and quote character settings",
        "Verify the source is well-formed CSV or JSON",
    )


# Calculation errors (per-record, routed to the unmatched stream)


class CalculationError(BillingKernelError):
    """An amount could not be computed for one matched record."""

    code: str = "CALCULATION_ERROR"
    category: ErrorCategory = ErrorCategory.DATA_ERROR


class TierDefinitionError(CalculationError):
    """Tier data is missing, empty, or malformed."""

    code: str = "INVALID_TIER_DEFINITION"
    default_suggestions = (
        "Provide tiers either in the calculation config or in the named price-list field",
        "Simple tiers need 'threshold' and 'rate'; graduated tiers need 'min', 'max' and 'rate'",
    )

    def __init__(self, message: str, *, tiers: Any = None):
        self.tiers = tiers
        super().__init__(message)


class DivisionByZeroError(CalculationError, ArithmeticError):
    """Decimal division with a divisor of exactly zero."""

    code: str = "DIVISION_BY_ZERO"
    category: ErrorCategory = ErrorCategory.PROCESSING_ERROR

    def __init__(self, dividend: Any):
        self.dividend = str(dividend)
        super().__init__(f"Division by zero: {dividend} / 0")


# Unexpected errors


class LookupFailedError(BillingKernelError):
    """Wraps an unexpected error with a standardized envelope."""

    code: str = "UNKNOWN_ERROR"
    category: ErrorCategory = ErrorCategory.SYSTEM_ERROR

    def __init__(self, envelope: "ErrorEnvelope"):
        self.envelope = envelope
        super().__init__(
            envelope.message,
            context=envelope.context,
            suggestions=envelope.suggestions,
        )


# ===========================================================================
# Standardized error envelope
# ===========================================================================


_UNKNOWN_SUGGESTIONS = (
    "Check your input data and configuration",
    "Review the job settings and ensure all required fields are specified correctly",
)


@dataclass(frozen=True)
class ErrorEnvelope:
    """
    Standardized, serializable error description.

    Attributes:
        code: Machine-readable error code
        category: Error category
        message: Human-readable message
        context: Configuration snapshot and other structured context
        suggestions: Actionable hints
        timestamp: When the envelope was built (ISO 8601)
        debug: Exception type and a short traceback excerpt
    """

    code: str
    category: ErrorCategory
    message: str
    timestamp: str
    context: dict[str, Any] = field(default_factory=dict)
    suggestions: tuple[str, ...] = ()
    debug: dict[str, str] | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "code": self.code,
            "category": self.category.value,
            "message": self.message,
            "timestamp": self.timestamp,
        }
        if self.context:
            payload["context"] = self.context
        if self.suggestions:
            payload["suggestions"] = list(self.suggestions)
        if self.debug:
            payload["debug"] = self.debug
        return payload


def build_error_envelope(
    exc: BaseException,
    *,
    context: dict[str, Any] | None = None,
    clock: "Clock | None" = None,
    include_debug: bool = True,
) -> ErrorEnvelope:
    """
    Build an ErrorEnvelope for any exception.

    Typed kernel errors contribute their own code, category, context and
    suggestions. Anything else becomes UNKNOWN_ERROR / SYSTEM_ERROR.
    """
    if clock is not None:
        now = clock.now_utc()
    else:
        from billing_kernel.domain.clock import SystemClock

        now = SystemClock().now_utc()

    merged_context: dict[str, Any] = {}
    if isinstance(exc, BillingKernelError):
        code = exc.code
        category = exc.category
        suggestions = exc.suggestions
        merged_context.update(exc.context)
    else:
        code = LookupFailedError.code
        category = LookupFailedError.category
        suggestions = _UNKNOWN_SUGGESTIONS
    if context:
        merged_context.update(context)

    debug = None
    if include_debug:
        # First three lines of the traceback only
        tb_lines = traceback.format_exception(type(exc), exc, exc.__traceback__)
        excerpt = "".join(tb_lines).strip().splitlines()[:3]
        debug = {"error_type": type(exc).__name__, "trace": "\n".join(excerpt)}

    return ErrorEnvelope(
        code=code,
        category=category,
        message=str(exc) or "An unknown error occurred",
        timestamp=_isoformat(now),
        context=merged_context,
        suggestions=tuple(suggestions),
        debug=debug,
    )


def _isoformat(value: datetime) -> str:
    return value.isoformat()
