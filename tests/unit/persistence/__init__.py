"""Shared deterministic fixtures and builders for persistence tests."""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING, Final

from doggie_store.domain.models import Dog
from doggie_store.persistence import DogDB, DogRepo

if TYPE_CHECKING:
    from pathlib import Path

SAMPLE_DOGS: Final[tuple[Dog, ...]] = (
    Dog(id=0, name="Fido", age=5),
    Dog(id=1, name="Rex", age=3),
    Dog(id=2, name="Bella", age=9),
)


def db_path(tmp_path: Path) -> Path:
    return tmp_path / "state" / "doggie_database.db"


def make_repo(tmp_path: Path, **db_kwargs: int) -> DogRepo:
    return DogRepo(DogDB(db_path(tmp_path), **db_kwargs))


def raw_rows(path: Path) -> list[tuple[object, ...]]:
    """Read the table through an independent connection, bypassing the store."""

    with sqlite3.connect(path) as conn:
        rows = conn.execute("SELECT id, name, age FROM dogs ORDER BY id").fetchall()
    return [tuple(row) for row in rows]
