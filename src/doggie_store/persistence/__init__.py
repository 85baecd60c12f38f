"""
doggie-store — persistence package

File: src/doggie_store/persistence/__init__.py

Purpose
- SQLite handle ownership (``DogDB``) and the dog repository (``DogRepo``).

Non-functional requirements
- SQLite only; no server process, no pooling.
"""

from doggie_store.persistence.repositories import DogRepo, SeedFileError, load_seed_file
from doggie_store.persistence.state_db import (
    DogDB,
    StorageError,
    StorageReadError,
    StorageUnavailable,
    StorageWriteError,
)

__all__ = [
    "DogDB",
    "DogRepo",
    "SeedFileError",
    "StorageError",
    "StorageReadError",
    "StorageUnavailable",
    "StorageWriteError",
    "load_seed_file",
]
