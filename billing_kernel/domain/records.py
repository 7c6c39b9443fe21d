"""
Field accessor for open-attribute records.

Price-list items and usage records are plain mappings from field name to a
scalar (str, number, bool or None). Nothing here knows which fields exist;
names come from configuration.

Case-insensitive lookup scans keys in insertion order and the FIRST key whose
lower-cased name equals the lower-cased lookup key wins. A record holding both
``Id`` and ``id`` therefore resolves ``"ID"`` to whichever was declared first.

Absence is reported with the ``MISSING`` sentinel so that a field explicitly
set to ``None`` can be told apart from one that does not exist.
"""

from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal
from typing import Any

Record = Mapping[str, Any]


class _Missing:
    __slots__ = ()

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


def get_case_insensitive(record: Record, key: str, default: Any = MISSING) -> Any:
    """Return the value of the first field whose name matches ``key`` ignoring case."""
    wanted = key.lower()
    for name, value in record.items():
        if isinstance(name, str) and name.lower() == wanted:
            return value
    return default


def get_exact(record: Record, key: str, default: Any = MISSING) -> Any:
    """Case-sensitive direct lookup."""
    return record.get(key, default)


def get_field(
    record: Record, key: str, *, case_sensitive: bool = False, default: Any = MISSING
) -> Any:
    if case_sensitive:
        return get_exact(record, key, default)
    return get_case_insensitive(record, key, default)


def is_present(value: Any) -> bool:
    """True unless the value is absent or None."""
    return value is not MISSING and value is not None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def values_equal(left: Any, right: Any) -> bool:
    """
    Compare two field values for matching.

    - Absent or None on either side never matches.
    - Two strings compare case-insensitively.
    - Two numbers compare by exact decimal value (``1 == 1.0 == Decimal("1.00")``).
    - Booleans only equal booleans.
    - Any other combination (e.g. ``"1"`` vs ``1``) is not equal.
    """
    if not is_present(left) or not is_present(right):
        return False
    if isinstance(left, str) and isinstance(right, str):
        return left.lower() == right.lower()
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if _is_number(left) and _is_number(right):
        return _as_decimal(left) == _as_decimal(right)
    if type(left) is not type(right):
        return False
    return left == right


def _as_decimal(value: int | float | Decimal) -> Decimal:
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(value)
