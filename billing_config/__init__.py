"""
billing_config -- single public entrypoint for billing job configuration.

Responsibility:
    Provides the runtime way to obtain a job configuration through
    ``get_job_config()``: load the YAML document, parse it into a frozen
    ``BillingJobConfig``, validate it, and emit a ``BILLING_CONFIG_TRACE``
    log record.

Architecture position:
    Configuration -- sits above ``billing_kernel``, ``billing_engines`` and
    ``billing_ingestion`` (it reuses their frozen config types) and below
    ``billing_services`` / ``scripts``. The kernel MUST NEVER import from
    ``billing_config``.

Failure modes:
    - ``FileNotFoundError`` -- the job file does not exist.
    - ``yaml.YAMLError`` -- malformed YAML.
    - ``ConfigurationError`` / ``MissingMatchFieldsError`` -- the job
      cannot be run as configured.
"""

from __future__ import annotations

from pathlib import Path

from billing_config.loader import compute_checksum, load_job_config, parse_job_config
from billing_config.schema import (
    BillingJobConfig,
    InputConfig,
    MatchConfig,
    SummaryConfig,
)
from billing_config.validator import (
    ConfigValidationResult,
    check_job_config,
    validate_job_config,
)
from billing_kernel.logging_config import get_logger

_logger = get_logger("config")


def get_job_config(path: Path | str) -> BillingJobConfig:
    """Load, parse and validate a job file; emits BILLING_CONFIG_TRACE."""
    config = validate_job_config(load_job_config(Path(path)))
    for warning in check_job_config(config).warnings:
        _logger.warning("config_warning", extra={"warning": warning})

    _logger.info(
        "BILLING_CONFIG_TRACE",
        extra={
            "trace_type": "BILLING_CONFIG_TRACE",
            "job": config.name,
            "version": config.version,
            "checksum": config.checksum,
            "match_mode": config.match.policy.mode.value,
            "match_field_count": len(config.match.fields),
            "method": config.calculation.method.value,
        },
    )
    return config


__all__ = [
    "BillingJobConfig",
    "ConfigValidationResult",
    "InputConfig",
    "MatchConfig",
    "SummaryConfig",
    "check_job_config",
    "compute_checksum",
    "get_job_config",
    "load_job_config",
    "parse_job_config",
    "validate_job_config",
]
