"""
Job configuration validator (``billing_config.validator``).

Responsibility
--------------
Checks the cross-section rules of a parsed ``BillingJobConfig`` before any
data is touched. Single-value rules (empty quantity field name, unknown
enum values, negative decimal places) are already enforced when the frozen
config types are constructed; this module adds the rules that span fields.

Rules
-----
* At least one match-field pair, and every pair names both sides.
* Price-list / usage field paths, when set, are non-empty.
* Summary enabled -> at least one field to total.
* Output prefixes must not collide in a way that makes match-key echoes of
  both sides overwrite each other (warning only).

Failure modes
-------------
* ``check_job_config`` returns a ``ConfigValidationResult``.
* ``validate_job_config`` raises ``MissingMatchFieldsError`` for match-field
  problems and ``ConfigurationError`` for everything else.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from billing_config.schema import BillingJobConfig
from billing_kernel.domain.dtos import ValidationError
from billing_kernel.exceptions import ConfigurationError, MissingMatchFieldsError


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    ``is_valid`` is True only when ``errors`` is empty. Warnings never block
    a run.
    """

    errors: list[ValidationError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, code: str, message: str, field_name: str | None = None) -> None:
        self.errors.append(ValidationError(code=code, message=message, field=field_name))

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def check_job_config(config: BillingJobConfig) -> ConfigValidationResult:
    result = ConfigValidationResult()
    _check_match_fields(config, result)
    _check_summary(config, result)
    _check_prefixes(config, result)
    return result


def _check_match_fields(config: BillingJobConfig, result: ConfigValidationResult) -> None:
    if not config.match.fields:
        result.add_error("MISSING_MATCH_FIELDS", "No match fields defined", "match.fields")
        return
    for index, pair in enumerate(config.match.fields):
        if not pair.is_complete:
            result.add_error(
                "MISSING_MATCH_FIELDS",
                f"Match field pair {index} must name both price_list_field and usage_field",
                f"match.fields[{index}]",
            )


def _check_summary(config: BillingJobConfig, result: ConfigValidationResult) -> None:
    if config.summary.enabled and not config.summary.fields_to_total:
        result.add_error(
            "MISSING_REQUIRED_FIELD",
            "Summary is enabled but no fields to total are configured",
            "summary.fields_to_total",
        )


def _check_prefixes(config: BillingJobConfig, result: ConfigValidationResult) -> None:
    out = config.output
    if (
        out.include_match_pricelist_fields
        and out.include_match_usage_fields
        and out.price_prefix == out.usage_prefix
    ):
        shared = [
            p.price_list_field for p in config.match.fields
            if p.price_list_field.lower() == p.usage_field.lower()
        ]
        if shared:
            result.add_warning(
                f"price_prefix and usage_prefix are both {out.price_prefix!r}; "
                f"usage values will overwrite price-list values for {shared}"
            )


def validate_job_config(config: BillingJobConfig) -> BillingJobConfig:
    """Raise on the first class of error found; return the config unchanged otherwise."""
    result = check_job_config(config)
    if result.is_valid:
        return config

    match_errors = [e for e in result.errors if e.code == "MISSING_MATCH_FIELDS"]
    if match_errors:
        raise MissingMatchFieldsError(
            "; ".join(e.message for e in match_errors),
            invalid_pairs=[{"field": e.field} for e in match_errors if e.field != "match.fields"],
        )
    first = result.errors[0]
    raise ConfigurationError(
        "Configuration validation failed: " + "; ".join(e.message for e in result.errors),
        field_name=first.field,
        code=first.code,
    )
