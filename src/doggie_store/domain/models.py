"""
doggie-store — domain model

File: src/doggie_store/domain/models.py

Purpose
- The ``Dog`` record persisted in the ``dogs`` table.
- Explicit typed decoding of storage rows into ``Dog`` values.

Functional requirements
- ``Dog`` is immutable; an update is a new ``Dog`` with the same ``id``.
- ``to_dict`` keys are exactly the column names.
- Decoding fails with ``DecodeError`` on a missing or mistyped column.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from doggie_store.constants import DOGS_TABLE


class DecodeError(ValueError):
    """Raised when a storage row cannot be decoded into a ``Dog``."""


@dataclass(frozen=True, slots=True)
class Dog:
    """One row of the ``dogs`` table."""

    id: int
    name: str
    age: int

    def to_dict(self) -> dict[str, int | str]:
        return {
            "id": self.id,
            "name": self.name,
            "age": self.age,
        }

    def __str__(self) -> str:
        return f"Dog{{id: {self.id}, name: {self.name}, age: {self.age}}}"

    @classmethod
    def from_row(cls, row: Mapping[str, object], *, source: str = DOGS_TABLE) -> Dog:
        """Decode a row mapping, checking every column's presence and type."""

        if not isinstance(row, Mapping):
            raise DecodeError(f"{source}: expected a mapping row, got {type(row).__name__}")
        return cls(
            id=_column_int(row, "id", source),
            name=_column_str(row, "name", source),
            age=_column_int(row, "age", source),
        )


def _column(row: Mapping[str, object], column: str, source: str) -> object:
    if column not in row:
        raise DecodeError(f"{source}.{column}: missing column")
    return row[column]


def _column_int(row: Mapping[str, object], column: str, source: str) -> int:
    value = _column(row, column, source)
    if isinstance(value, bool) or not isinstance(value, int):
        raise DecodeError(f"{source}.{column}: expected integer, got {type(value).__name__}")
    return value


def _column_str(row: Mapping[str, object], column: str, source: str) -> str:
    value = _column(row, column, source)
    if not isinstance(value, str):
        raise DecodeError(f"{source}.{column}: expected text, got {type(value).__name__}")
    return value


__all__ = ["DecodeError", "Dog"]
