"""Stable constants shared across the store, config, and CLI."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
STATE_DB_SCHEMA_VERSION: Final[int] = 1

# Persisted table layout.
DOGS_TABLE: Final[str] = "dogs"
DOG_COLUMNS: Final[tuple[str, ...]] = ("id", "name", "age")

# Default runtime paths (relative to the config file directory unless overridden).
STATE_DIR: Final[PurePosixPath] = PurePosixPath("state")
DEFAULT_DATABASE_FILENAME: Final[str] = "doggie_database.db"
DEFAULT_DATABASE_PATH: Final[PurePosixPath] = STATE_DIR / DEFAULT_DATABASE_FILENAME

__all__ = [
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_DATABASE_FILENAME",
    "DEFAULT_DATABASE_PATH",
    "DOGS_TABLE",
    "DOG_COLUMNS",
    "STATE_DB_SCHEMA_VERSION",
    "STATE_DIR",
]
