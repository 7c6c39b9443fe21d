"""
Decimal arithmetic primitives for monetary math.

Responsibility:
    Exact add / subtract / multiply / divide / percentage / round over
    arbitrary-precision ``Decimal`` values. Every monetary amount computed by
    the billing engines goes through these helpers.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Binary floating point never enters a calculation: floats are converted
      through their shortest ``repr`` (``Decimal(str(x))``), so ``1.1`` becomes
      ``Decimal("1.1")`` rather than ``Decimal(1.100000000000000088...)``.
    - ``divide`` never returns Infinity or NaN.
    - Results stay ``Decimal`` through to the output record and compare
      against ``Decimal`` values: ``basic(3, 1.1) == Decimal("3.3")``.
      Writers that leave Python render amounts as decimal strings
      (``"3.30"``), never as floats.

Failure modes:
    - DivisionByZeroError when the divisor is exactly zero.
    - ValueError for strings that are not decimal literals, and for NaN or
      infinite inputs.
    - TypeError for booleans and other non-numeric types.

Usage:
    >>> multiply(3, 1.1)
    Decimal('3.3')
    >>> round_amount(Decimal("2.345"), 2, RoundingDirection.UP)
    Decimal('2.35')
"""

from __future__ import annotations

from decimal import (
    ROUND_CEILING,
    ROUND_FLOOR,
    ROUND_HALF_UP,
    Decimal,
    InvalidOperation,
)
from enum import Enum
from typing import Union

from billing_kernel.exceptions import DivisionByZeroError

Numeric = Union[Decimal, int, float, str]

DEFAULT_DECIMAL_PLACES = 2

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


class RoundingDirection(str, Enum):
    """Direction of an explicit rounding directive."""

    UP = "up"
    DOWN = "down"
    NONE = "none"


_ROUNDING_MODES = {
    RoundingDirection.UP: ROUND_CEILING,
    RoundingDirection.DOWN: ROUND_FLOOR,
}


def to_decimal(value: Numeric) -> Decimal:
    """
    Convert a number or decimal string into an exact ``Decimal``.

    Strings are stripped before parsing so ``" 12.50 "`` is accepted.
    """
    if isinstance(value, bool):
        raise TypeError(f"Boolean is not a numeric value: {value!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        return Decimal(value)
    elif isinstance(value, float):
        result = Decimal(repr(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise ValueError(f"Not a decimal value: {value!r}") from None
    else:
        raise TypeError(f"Unsupported numeric type: {type(value).__name__}")

    if not result.is_finite():
        raise ValueError(f"Non-finite decimal value: {value!r}")
    return result


def multiply(a: Numeric, b: Numeric) -> Decimal:
    return to_decimal(a) * to_decimal(b)


def add(a: Numeric, b: Numeric) -> Decimal:
    return to_decimal(a) + to_decimal(b)


def subtract(a: Numeric, b: Numeric) -> Decimal:
    return to_decimal(a) - to_decimal(b)


def divide(a: Numeric, b: Numeric) -> Decimal:
    """Divide ``a`` by ``b``; raises DivisionByZeroError if ``b`` is zero."""
    dividend = to_decimal(a)
    divisor = to_decimal(b)
    if divisor == _ZERO:
        raise DivisionByZeroError(dividend)
    return dividend / divisor


def percentage(value: Numeric, percent: Numeric) -> Decimal:
    """Return ``percent`` percent of ``value`` (``percentage(200, 15) == 30``)."""
    return to_decimal(value) * to_decimal(percent) / _HUNDRED


def round_amount(
    value: Numeric,
    places: int = DEFAULT_DECIMAL_PLACES,
    direction: RoundingDirection | str | None = None,
) -> Decimal:
    """
    Round ``value`` to ``places`` fractional digits.

    Args:
        value: Amount to round.
        places: Number of fractional digits (must be >= 0).
        direction: ``None`` applies the default half-up rounding used for
            every billed amount. ``UP`` rounds toward positive infinity
            (ceiling), ``DOWN`` toward negative infinity (floor). ``NONE``
            means no directive: the value is returned unrounded.
    """
    amount = to_decimal(value)
    if direction is not None:
        direction = RoundingDirection(direction)
        if direction is RoundingDirection.NONE:
            return amount
        mode = _ROUNDING_MODES[direction]
    else:
        mode = ROUND_HALF_UP

    if places < 0:
        raise ValueError(f"Decimal places must be non-negative, got {places}")
    quantum = Decimal(1).scaleb(-places)
    return amount.quantize(quantum, rounding=mode)
