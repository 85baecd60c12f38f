"""
doggie-store — package root

File: src/doggie_store/__init__.py

Purpose
- Single-table persistence of ``Dog`` records in an embedded SQLite file.

Import boundary
- Importing the package has no side effects (no config loading, no logging init,
  no database access).
"""

from doggie_store.domain.models import DecodeError, Dog
from doggie_store.persistence.repositories import DogRepo
from doggie_store.persistence.state_db import (
    DogDB,
    StorageError,
    StorageReadError,
    StorageUnavailable,
    StorageWriteError,
)

__version__ = "0.1.0"

__all__ = [
    "DecodeError",
    "Dog",
    "DogDB",
    "DogRepo",
    "StorageError",
    "StorageReadError",
    "StorageUnavailable",
    "StorageWriteError",
    "__version__",
]
