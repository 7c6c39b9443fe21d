"""
billing_engines.matching -- Price-list record matcher.

Responsibility:
    Given a usage record, a price-list collection and an ordered list of
    match-field pairs, find the price-list entries that correspond to the
    usage record. Supports flat matching (every pair must hold) and
    hierarchical matching (levels narrowed most-general-first, with an
    optional best-match fallback and an optional wildcard fallback).

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Imports only billing_kernel.domain and billing_kernel.exceptions.

Invariants enforced:
    - A pair is satisfied only when both sides hold a value (absent or None
      never matches).
    - String values compare case-insensitively; anything else uses strict
      equality (see ``billing_kernel.domain.records.values_equal``).
    - Ambiguity is never resolved by picking a candidate: a result with more
      than one entry is reported as such and routed by the caller.
    - The price list is never mutated; entries are returned as-is.

Failure modes:
    - MissingMatchFieldsError when no pairs are configured or a pair has an
      empty field name.
    - ConfigurationError for unknown mode / policy values.

Usage:
    from billing_engines.matching import MatchFieldPair, MatchPolicy, RecordMatcher

    matcher = RecordMatcher(
        price_list,
        [MatchFieldPair("sku", "product_code")],
        MatchPolicy(),
    )
    result = matcher.match(usage_record)
    if result.is_unambiguous:
        entry = result.entries[0]
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from billing_engines.tracer import traced_engine
from billing_kernel.domain.records import (
    MISSING,
    Record,
    get_field,
    is_present,
    values_equal,
)
from billing_kernel.exceptions import ConfigurationError, MissingMatchFieldsError
from billing_kernel.logging_config import get_logger

logger = get_logger("engines.matching")


NO_MATCH_REASON = "No matching price records found"
MULTIPLE_MATCH_REASON = "Multiple matching price records found ({count})"

NO_MATCH_CODE = "NO_MATCH_FOUND"
MULTIPLE_MATCH_CODE = "MULTIPLE_MATCHES_FOUND"


class MatchMode(str, Enum):
    """How match-field pairs are evaluated."""

    FLAT = "flat"  # All pairs with equal weight
    HIERARCHICAL = "hierarchical"  # Level 0..N, most general first


class PartialMatchPolicy(str, Enum):
    """What a hierarchical match returns when a deeper level eliminates everything."""

    NO_MATCH = "no_match"  # Every level must match
    BEST_MATCH = "best_match"  # Keep the deepest non-empty candidate set


@dataclass(frozen=True)
class MatchFieldPair:
    """The named price-list field must equal the named usage field."""

    price_list_field: str
    usage_field: str

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> MatchFieldPair:
        """Build from ``{price_list_field, usage_field}`` (camelCase accepted)."""
        price_field = data.get("price_list_field", data.get("priceListField", ""))
        usage_field = data.get("usage_field", data.get("usageField", ""))
        return cls(str(price_field or "").strip(), str(usage_field or "").strip())

    @property
    def is_complete(self) -> bool:
        return bool(self.price_list_field) and bool(self.usage_field)


@dataclass(frozen=True)
class WildcardConfig:
    """Hierarchy wildcard fallback: entries holding ``value`` match anything."""

    enabled: bool = False
    value: str = "*"


@dataclass(frozen=True)
class MatchPolicy:
    """
    Matching policy.

    Attributes:
        mode: Flat or hierarchical evaluation.
        partial_match: Hierarchical-only best-match / no-match policy.
        wildcard: Hierarchical-only wildcard fallback.
        case_sensitive_field_names: Resolve field NAMES with an exact lookup
            instead of the case-insensitive scan. Values are still compared
            with ``values_equal``.
    """

    mode: MatchMode = MatchMode.FLAT
    partial_match: PartialMatchPolicy = PartialMatchPolicy.NO_MATCH
    wildcard: WildcardConfig = field(default_factory=WildcardConfig)
    case_sensitive_field_names: bool = False

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "mode", MatchMode(self.mode))
        except ValueError:
            raise ConfigurationError(
                f"Unknown match mode: {self.mode!r}", field_name="match.mode"
            ) from None
        try:
            object.__setattr__(
                self, "partial_match", PartialMatchPolicy(self.partial_match)
            )
        except ValueError:
            raise ConfigurationError(
                f"Unknown partial match policy: {self.partial_match!r}",
                field_name="match.partial_match",
            ) from None


@dataclass(frozen=True)
class MatchResult:
    """
    Outcome of matching one usage record.

    Attributes:
        entries: Surviving price-list entries, in price-list order.
        matched_depth: Number of hierarchy levels satisfied (flat: number of
            pairs when anything matched, else 0).
        partial: True when best-match stopped before the last level.
    """

    entries: tuple[Record, ...] = ()
    matched_depth: int = 0
    partial: bool = False

    @property
    def match_count(self) -> int:
        return len(self.entries)

    @property
    def matched(self) -> bool:
        return bool(self.entries)

    @property
    def is_unambiguous(self) -> bool:
        return len(self.entries) == 1

    @property
    def entry(self) -> Record:
        """The single matched entry; only valid when ``is_unambiguous``."""
        if not self.is_unambiguous:
            raise ValueError(
                f"MatchResult has {self.match_count} entries, expected exactly one"
            )
        return self.entries[0]


def validate_match_fields(
    match_fields: Sequence[MatchFieldPair],
) -> tuple[MatchFieldPair, ...]:
    """Reject an empty pair list or any pair with a missing side."""
    pairs = tuple(match_fields)
    if not pairs:
        raise MissingMatchFieldsError("No match fields defined")
    invalid = [
        {"index": i, "price_list_field": p.price_list_field, "usage_field": p.usage_field}
        for i, p in enumerate(pairs)
        if not p.is_complete
    ]
    if invalid:
        raise MissingMatchFieldsError(
            f"{len(invalid)} match field pair(s) are missing a field name",
            invalid_pairs=invalid,
        )
    return pairs


def describe_unmatched(result: MatchResult) -> tuple[str, str]:
    """Return ``(reason, error_code)`` for a result that cannot be calculated."""
    if result.match_count == 0:
        return NO_MATCH_REASON, NO_MATCH_CODE
    if result.match_count > 1:
        return MULTIPLE_MATCH_REASON.format(count=result.match_count), MULTIPLE_MATCH_CODE
    raise ValueError("An unambiguous match has no unmatched disposition")


class RecordMatcher:
    """
    Matches usage records against one immutable price-list snapshot.

    Contract:
        Pure -- no I/O. The price list is captured once at construction and
        shared read-only by every ``match`` call, so one matcher may be used
        from several threads.
    """

    def __init__(
        self,
        price_list: Sequence[Record],
        match_fields: Sequence[MatchFieldPair],
        policy: MatchPolicy | None = None,
    ):
        self._price_list: tuple[Record, ...] = tuple(price_list)
        self._pairs = validate_match_fields(match_fields)
        self._policy = policy or MatchPolicy()

    @property
    def price_list(self) -> tuple[Record, ...]:
        return self._price_list

    @property
    def match_fields(self) -> tuple[MatchFieldPair, ...]:
        return self._pairs

    @property
    def policy(self) -> MatchPolicy:
        return self._policy

    def match(self, usage_record: Record) -> MatchResult:
        if self._policy.mode is MatchMode.HIERARCHICAL:
            return self._match_hierarchical(usage_record)
        return self._match_flat(usage_record)

    # =========================================================================
    # Flat
    # =========================================================================

    def _match_flat(self, usage_record: Record) -> MatchResult:
        usage_values = [self._get(usage_record, p.usage_field) for p in self._pairs]
        if not all(is_present(v) for v in usage_values):
            return MatchResult()

        entries = tuple(
            entry
            for entry in self._price_list
            if all(
                values_equal(self._get(entry, pair.price_list_field), usage_value)
                for pair, usage_value in zip(self._pairs, usage_values)
            )
        )
        return MatchResult(
            entries=entries,
            matched_depth=len(self._pairs) if entries else 0,
        )

    # =========================================================================
    # Hierarchical
    # =========================================================================

    def _match_hierarchical(self, usage_record: Record) -> MatchResult:
        candidates = self._price_list
        best_match = self._policy.partial_match is PartialMatchPolicy.BEST_MATCH

        for level, pair in enumerate(self._pairs):
            usage_value = self._get(usage_record, pair.usage_field)
            narrowed = tuple(
                entry
                for entry in candidates
                if values_equal(self._get(entry, pair.price_list_field), usage_value)
            )
            if not narrowed and self._policy.wildcard.enabled:
                narrowed = tuple(
                    entry
                    for entry in candidates
                    if self._is_wildcard(self._get(entry, pair.price_list_field))
                )

            if not narrowed:
                if best_match and level > 0:
                    logger.debug(
                        "hierarchical_best_match_stopped",
                        extra={
                            "level": level,
                            "field": pair.usage_field,
                            "candidate_count": len(candidates),
                        },
                    )
                    return MatchResult(
                        entries=candidates, matched_depth=level, partial=True
                    )
                return MatchResult(entries=(), matched_depth=level)

            candidates = narrowed

        return MatchResult(entries=candidates, matched_depth=len(self._pairs))

    def _is_wildcard(self, value: Any) -> bool:
        return isinstance(value, str) and value.strip() == self._policy.wildcard.value

    def _get(self, record: Record, name: str) -> Any:
        return get_field(
            record,
            name,
            case_sensitive=self._policy.case_sensitive_field_names,
            default=MISSING,
        )


@traced_engine("matching", "1.0", fingerprint_fields=("usage_record", "match_fields"))
def match_record(
    usage_record: Record,
    price_list: Sequence[Record],
    match_fields: Sequence[MatchFieldPair],
    policy: MatchPolicy | None = None,
) -> MatchResult:
    """One-shot convenience wrapper around ``RecordMatcher``."""
    return RecordMatcher(price_list, match_fields, policy).match(usage_record)
