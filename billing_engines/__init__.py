"""
Module: billing_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines. This is the canonical import surface for
    billing_services and scripts.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import billing_kernel (domain, exceptions, logging_config).
    MUST NOT import billing_services, billing_config or billing_ingestion.

Invariants enforced:
    - Engines never read the clock directly; the summary engine takes an
      injected Clock.
    - Decimal-only arithmetic for every amount.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from billing_engines import RecordMatcher, CalculationConfig, calculate
    from billing_engines import OutputFieldConfig, assemble_output
"""

from billing_engines.assembly import (
    FieldMappingRule,
    FieldSource,
    OutputFieldConfig,
    assemble_output,
)
from billing_engines.calculator import (
    CalculationConfig,
    CalculationMethod,
    CalculationResult,
    GraduatedTier,
    RoundingDirective,
    Tier,
    basic,
    calculate,
    coerce_numeric,
    graduated_tiered,
    parse_graduated_tiers,
    parse_tiers,
    simple_tiered,
)
from billing_engines.matching import (
    MULTIPLE_MATCH_CODE,
    MULTIPLE_MATCH_REASON,
    NO_MATCH_CODE,
    NO_MATCH_REASON,
    MatchFieldPair,
    MatchMode,
    MatchPolicy,
    MatchResult,
    PartialMatchPolicy,
    RecordMatcher,
    WildcardConfig,
    describe_unmatched,
    match_record,
    validate_match_fields,
)
from billing_engines.summary import UsageSummary, summarize_usage
from billing_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    "FieldMappingRule",
    "FieldSource",
    "OutputFieldConfig",
    "assemble_output",
    "CalculationConfig",
    "CalculationMethod",
    "CalculationResult",
    "GraduatedTier",
    "RoundingDirective",
    "Tier",
    "basic",
    "calculate",
    "coerce_numeric",
    "graduated_tiered",
    "parse_graduated_tiers",
    "parse_tiers",
    "simple_tiered",
    "MULTIPLE_MATCH_CODE",
    "MULTIPLE_MATCH_REASON",
    "NO_MATCH_CODE",
    "NO_MATCH_REASON",
    "MatchFieldPair",
    "MatchMode",
    "MatchPolicy",
    "MatchResult",
    "PartialMatchPolicy",
    "RecordMatcher",
    "WildcardConfig",
    "describe_unmatched",
    "match_record",
    "validate_match_fields",
    "UsageSummary",
    "summarize_usage",
    "compute_input_fingerprint",
    "traced_engine",
]
