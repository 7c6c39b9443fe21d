"""
DTOs -- Immutable data structures shared across packages.

ValidationError describes a single problem with a record; InvalidRecord
pairs a rejected record with every problem found in it. Neither raises:
they ARE the error representation that flows to the invalid stream.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ValidationError:
    """
    A single validation error.

    Carries a machine-readable code, human-readable message, optional field
    name, and optional details dict.
    """

    code: str
    message: str
    field: str | None = None
    details: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.field is not None:
            payload["field"] = self.field
        if self.details:
            payload["details"] = self.details
        return payload


@dataclass(frozen=True)
class InvalidRecord:
    """A record rejected by validation, with all of its errors."""

    record: dict[str, Any]
    errors: tuple[ValidationError, ...] = field(default_factory=tuple)

    @property
    def messages(self) -> list[str]:
        return [e.message for e in self.errors]

    def to_dict(self) -> dict[str, Any]:
        return {
            "record": self.record,
            "errors": [e.to_dict() for e in self.errors],
        }
