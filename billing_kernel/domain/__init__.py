"""
Pure domain layer.

Decimal arithmetic, the record field accessor, shared DTOs and the clock
abstraction. No I/O apart from SystemClock.
"""

from billing_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from billing_kernel.domain.decimal_math import (
    RoundingDirection,
    add,
    divide,
    multiply,
    percentage,
    round_amount,
    subtract,
    to_decimal,
)
from billing_kernel.domain.dtos import InvalidRecord, ValidationError
from billing_kernel.domain.records import (
    MISSING,
    Record,
    get_case_insensitive,
    get_exact,
    get_field,
    is_present,
    values_equal,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "RoundingDirection",
    "add",
    "divide",
    "multiply",
    "percentage",
    "round_amount",
    "subtract",
    "to_decimal",
    "InvalidRecord",
    "ValidationError",
    "MISSING",
    "Record",
    "get_case_insensitive",
    "get_exact",
    "get_field",
    "is_present",
    "values_equal",
]
