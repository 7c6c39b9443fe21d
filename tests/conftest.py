"""
Pytest fixtures for the billing kernel test suite.

Provides:
- Structured logging setup and a log-capture fixture
- A deterministic clock
- A small cloud-usage price list and matching usage records
- Common calculation / event-sink fixtures
"""

import json
import logging
from io import StringIO

import pytest
from datetime import datetime, timezone

from billing_engines.calculator import CalculationConfig
from billing_engines.matching import MatchFieldPair
from billing_kernel.domain.clock import DeterministicClock
from billing_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from billing_services.events import RecordingEventSink


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture billing_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            lookup_and_calculate(...)
            logs = captured_logs()
            assert any(r["message"] == "lookup_invocation_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("billing_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Clock
# =============================================================================


@pytest.fixture
def deterministic_clock():
    """Clock pinned to 2024-03-01 09:30 UTC."""
    return DeterministicClock(datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc))


# =============================================================================
# Billing data
# =============================================================================


@pytest.fixture
def price_list():
    """Cloud price list keyed by sku, with mixed-case field names."""
    return [
        {"SKU": "VM-SMALL", "Region": "us-east", "unit_price": "0.05", "category": "compute"},
        {"SKU": "VM-LARGE", "Region": "us-east", "unit_price": "0.20", "category": "compute"},
        {"SKU": "STORAGE", "Region": "eu-west", "unit_price": "0.023", "category": "storage"},
        {"SKU": "EGRESS", "Region": "us-east", "unit_price": 0.09, "category": "network"},
    ]


@pytest.fixture
def usage_records():
    """Usage lines: two priced, one unknown sku."""
    return [
        {"sku": "vm-small", "region": "US-EAST", "hours": 100, "customer": "acme"},
        {"sku": "STORAGE", "region": "eu-west", "hours": "250.5", "customer": "globex"},
        {"sku": "GPU-XL", "region": "us-east", "hours": 3, "customer": "acme"},
    ]


@pytest.fixture
def sku_match_fields():
    return [MatchFieldPair("sku", "sku")]


@pytest.fixture
def basic_calc_config():
    return CalculationConfig(quantity_field="hours", price_field="unit_price")


@pytest.fixture
def recording_sink():
    return RecordingEventSink()
