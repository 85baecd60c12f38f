"""Plain-text rendering for ``doggie`` command output (stdout only)."""

from __future__ import annotations

import sys
from typing import IO, TYPE_CHECKING

from doggie_store.constants import DOG_COLUMNS

if TYPE_CHECKING:
    from collections.abc import Sequence

    from doggie_store.domain.models import Dog

_DOG_COLUMNS: tuple[str, ...] = tuple(column.upper() for column in DOG_COLUMNS)


def format_dogs(dogs: Sequence[Dog]) -> str:
    """Bracketed one-line listing, e.g. ``[Dog{id: 0, name: Fido, age: 5}]``."""

    return "[" + ", ".join(map(str, dogs)) + "]"


def format_dog_table(dogs: Sequence[Dog]) -> list[str]:
    """Left-aligned ID/NAME/AGE columns with a dashed rule under the header."""

    cells = [_DOG_COLUMNS, *((str(dog.id), dog.name, str(dog.age)) for dog in dogs)]
    widths = [max(len(row[col]) for row in cells) for col in range(len(_DOG_COLUMNS))]
    lines = [
        "  ".join(cell.ljust(width) for cell, width in zip(row, widths)).rstrip()
        for row in cells
    ]
    lines.insert(1, "  ".join("-" * width for width in widths))
    return lines


class CLIRenderer:
    """Writes command results as plain lines to ``stream`` (stdout by default)."""

    def __init__(self, stream: IO[str] | None = None) -> None:
        self._stream = stream

    def line(self, text: str = "") -> None:
        print(text, file=self._stream if self._stream is not None else sys.stdout)

    def kv(self, key: str, value: object) -> None:
        self.line(f"{key}: {value}")

    def dogs(self, dogs: Sequence[Dog]) -> None:
        self.line(format_dogs(dogs))

    def dog_table(self, dogs: Sequence[Dog]) -> None:
        if not dogs:
            self.line("No dogs stored.")
            return
        for text in format_dog_table(dogs):
            self.line(text)

    def check(self, label: str, *, ok: bool) -> None:
        self.line(f"  {'OK' if ok else 'FAIL'}  {label}")


def create_renderer() -> CLIRenderer:
    return CLIRenderer()


__all__ = ["CLIRenderer", "create_renderer", "format_dog_table", "format_dogs"]
