"""
doggie-store — dog repository

File: src/doggie_store/persistence/repositories.py

Purpose
- CRUD over the single ``dogs`` table, mapping rows to ``Dog`` values.

What should be included in this file
- ``DogRepo``: upsert, list, update-by-key, delete-by-key, plus get/count by key.
- Async variants that offload the blocking calls to a worker thread.
- YAML seed-file loading.

Functional requirements
- Upsert fully replaces an existing row with the same ``id``.
- Update and delete of an unknown ``id`` are silent no-ops (zero rows affected).
- Every query returns freshly decoded values; nothing is cached.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
import yaml

from doggie_store.constants import DOG_COLUMNS, DOGS_TABLE
from doggie_store.domain.models import DecodeError, Dog
from doggie_store.persistence.state_db import StorageReadError

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from doggie_store.persistence.state_db import DogDB

_SELECT_DOGS = f"SELECT {', '.join(DOG_COLUMNS)} FROM {DOGS_TABLE}"


class SeedFileError(ValueError):
    """Raised when a YAML seed file cannot be read or decoded."""


class DogRepo:
    """Repository for ``Dog`` rows; the only writer of the ``dogs`` table."""

    def __init__(self, db: DogDB, *, logger: FilteringBoundLogger | None = None) -> None:
        self._db = db
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def db(self) -> DogDB:
        return self._db

    def upsert(self, dog: Dog) -> Dog:
        rows = self._db.execute(
            f"INSERT OR REPLACE INTO {DOGS_TABLE} (id, name, age) VALUES (?, ?, ?)",
            (dog.id, dog.name, dog.age),
        )
        self._logger.info("dog_upserted", dog_id=dog.id, rows_affected=rows)
        return dog

    def list_all(self) -> list[Dog]:
        rows = self._db.query_all(_SELECT_DOGS)
        return [Dog.from_row(row) for row in rows]

    def get(self, dog_id: int) -> Dog | None:
        row = self._db.query_one(
            f"{_SELECT_DOGS} WHERE id = ?",
            (dog_id,),
        )
        if row is None:
            return None
        return Dog.from_row(row)

    def count(self) -> int:
        row = self._db.query_one(f"SELECT COUNT(*) AS total FROM {DOGS_TABLE}")
        if row is None:
            return 0
        total = row.get("total")
        if not isinstance(total, int):
            raise StorageReadError(f"COUNT(*) returned {total!r} for {self._db.path}")
        return total

    def update(self, dog: Dog) -> int:
        """Overwrite the row keyed by ``dog.id``; returns 0 when no row matched."""

        rows = self._db.execute(
            f"UPDATE {DOGS_TABLE} SET name = ?, age = ? WHERE id = ?",
            (dog.name, dog.age, dog.id),
        )
        self._logger.info("dog_updated", dog_id=dog.id, rows_affected=rows)
        return rows

    def delete(self, dog_id: int) -> int:
        """Remove the row keyed by ``dog_id``; returns 0 when no row matched."""

        rows = self._db.execute(f"DELETE FROM {DOGS_TABLE} WHERE id = ?", (dog_id,))
        self._logger.info("dog_deleted", dog_id=dog_id, rows_affected=rows)
        return rows

    async def upsert_async(self, dog: Dog) -> Dog:
        return await asyncio.to_thread(self.upsert, dog)

    async def list_all_async(self) -> list[Dog]:
        return await asyncio.to_thread(self.list_all)

    async def update_async(self, dog: Dog) -> int:
        return await asyncio.to_thread(self.update, dog)

    async def delete_async(self, dog_id: int) -> int:
        return await asyncio.to_thread(self.delete, dog_id)


def load_seed_file(repo: DogRepo, path: str | Path) -> list[Dog]:
    """Upsert every dog listed in a YAML seed file, in file order.

    The file holds either a top-level ``dogs:`` list or a bare list of
    ``{id, name, age}`` mappings. All entries are decoded before any is written.
    """

    seed_path = Path(path).expanduser()
    try:
        with seed_path.open("r", encoding="utf-8") as handle:
            loaded: object = yaml.safe_load(handle)
    except OSError as exc:
        raise SeedFileError(f"unable to read seed file {seed_path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise SeedFileError(f"invalid YAML in {seed_path}: {exc}") from exc

    if loaded is None:
        entries: object = []
    elif isinstance(loaded, Mapping):
        entries = loaded.get("dogs", [])
    else:
        entries = loaded
    if not isinstance(entries, list):
        raise SeedFileError(f"{seed_path}: expected a list of dogs")

    dogs: list[Dog] = []
    for index, entry in enumerate(entries):
        try:
            dogs.append(Dog.from_row(entry, source=f"{seed_path.name}[{index}]"))
        except DecodeError as exc:
            raise SeedFileError(str(exc)) from exc

    for dog in dogs:
        repo.upsert(dog)
    return dogs


__all__ = ["DogRepo", "SeedFileError", "load_seed_file"]
