"""
doggie-store — state database handle

File: src/doggie_store/persistence/state_db.py

Purpose
- Own the single SQLite handle for the dog store: lazy open, schema creation,
  and translation of ``sqlite3`` failures into the storage error taxonomy.

What should be included in this file
- One-time guarded open of the database file (created when absent).
- Fixed schema at version 1, tracked in ``PRAGMA user_version``.
- Bounded busy retry and actionable error messages.
- Backup and integrity-check helpers.

Functional requirements
- Opening is idempotent and never re-creates an existing table.
- Every failure propagates to the caller as a ``StorageError`` subclass.

Non-functional requirements
- No mutual exclusion beyond the engine's own locking; the lock below only
  guards the one-time open.
"""

from __future__ import annotations

import sqlite3
import threading
import time
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Final, Literal, TypeVar

import structlog

from doggie_store.constants import DOGS_TABLE, STATE_DB_SCHEMA_VERSION

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

SQLValue = str | int | float | bytes | None
SQLParams = Sequence[SQLValue]
RowValue = str | int | float | bytes | None
T = TypeVar("T")

DEFAULT_BUSY_TIMEOUT_MS: Final[int] = 5_000
DEFAULT_BUSY_RETRY_LIMIT: Final[int] = 4
DEFAULT_BUSY_RETRY_BACKOFF_MS: Final[int] = 25

_CREATE_DOGS_TABLE_SQL: Final[str] = f"""
CREATE TABLE IF NOT EXISTS {DOGS_TABLE} (
    id INTEGER PRIMARY KEY,
    name TEXT,
    age INTEGER
)
"""

FailureKind = Literal["busy", "corrupt", "other"]

# Primary result codes; extended codes keep the primary code in the low byte.
_PRIMARY_CODE_KINDS: Final[dict[int, FailureKind]] = {
    sqlite3.SQLITE_BUSY: "busy",
    sqlite3.SQLITE_LOCKED: "busy",
    sqlite3.SQLITE_CORRUPT: "corrupt",
    sqlite3.SQLITE_NOTADB: "corrupt",
}
_MESSAGE_KINDS: Final[tuple[tuple[str, FailureKind], ...]] = (
    ("is locked", "busy"),
    ("malformed", "corrupt"),
    ("not a database", "corrupt"),
)


class StorageError(RuntimeError):
    """Base class for dog store persistence errors."""


class StorageUnavailable(StorageError):
    """Raised when the database file cannot be opened, created, or recognized."""


class StorageReadError(StorageError):
    """Raised when a query against the store fails."""


class StorageWriteError(StorageError):
    """Raised when an insert, update, or delete fails."""


class DogDB:
    """Lazily opened SQLite handle for the ``dogs`` table.

    The file and its schema are created on first use, by whichever caller gets
    there first; concurrent first calls share one connection. ``close()`` drops the
    handle, and the next operation opens it again.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
        busy_retry_limit: int = DEFAULT_BUSY_RETRY_LIMIT,
        busy_retry_backoff_ms: int = DEFAULT_BUSY_RETRY_BACKOFF_MS,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        for name, value in (
            ("busy_timeout_ms", busy_timeout_ms),
            ("busy_retry_limit", busy_retry_limit),
            ("busy_retry_backoff_ms", busy_retry_backoff_ms),
        ):
            if value < 0:
                raise ValueError(f"{name} must be >= 0, got {value}")

        self._path = Path(path).expanduser()
        self._busy_timeout_ms = busy_timeout_ms
        self._busy_retry_limit = busy_retry_limit
        self._busy_retry_backoff_s = busy_retry_backoff_ms / 1000.0
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._open_lock = threading.Lock()
        self._conn: sqlite3.Connection | None = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def connection(self) -> sqlite3.Connection:
        """Return the shared handle, opening the file and schema on first use."""

        conn = self._conn
        if conn is not None:
            return conn
        with self._open_lock:
            if self._conn is None:
                self._conn = self._open()
            return self._conn

    def schema_version(self) -> int:
        row = self.query_one("PRAGMA user_version")
        version = None if row is None else row.get("user_version")
        if not isinstance(version, int):
            raise StorageReadError(f"PRAGMA user_version returned {version!r} for {self._path}")
        return version

    def execute(self, sql: str, params: SQLParams = ()) -> int:
        """Run one parameterized write statement; returns the affected row count."""

        conn = self.connection()
        cursor = self._with_retry(
            lambda: conn.execute(sql, tuple(params)),
            operation="write",
            error_type=StorageWriteError,
        )
        return cursor.rowcount

    def query_all(self, sql: str, params: SQLParams = ()) -> list[dict[str, RowValue]]:
        conn = self.connection()
        rows = self._with_retry(
            lambda: conn.execute(sql, tuple(params)).fetchall(),
            operation="read",
            error_type=StorageReadError,
        )
        return [dict(row) for row in rows]

    def query_one(self, sql: str, params: SQLParams = ()) -> dict[str, RowValue] | None:
        conn = self.connection()
        row = self._with_retry(
            lambda: conn.execute(sql, tuple(params)).fetchone(),
            operation="read",
            error_type=StorageReadError,
        )
        return None if row is None else dict(row)

    def backup(self, destination: str | Path) -> Path:
        """Copy the live database to ``destination`` with the SQLite online backup API."""

        source = self.connection()
        target_path = Path(destination).expanduser()
        try:
            target_path.parent.mkdir(parents=True, exist_ok=True)
            target = sqlite3.connect(target_path)
        except (OSError, sqlite3.Error) as exc:
            raise StorageWriteError(f"cannot create backup file {target_path}: {exc}") from exc
        try:
            self._with_retry(
                lambda: source.backup(target),
                operation="backup",
                error_type=StorageReadError,
            )
        finally:
            target.close()

        self._logger.info(
            "state_db_backup_written",
            path=str(self._path),
            backup=str(target_path),
        )
        return target_path

    def integrity_check(self, *, max_errors: int = 100) -> tuple[str, ...]:
        """Run ``PRAGMA integrity_check``; an empty tuple means the file is sound."""

        if max_errors < 1:
            raise ValueError(f"max_errors must be >= 1, got {max_errors}")
        rows = self.query_all(f"PRAGMA integrity_check({int(max_errors)})")
        problems = tuple(str(value) for row in rows for value in row.values())
        return () if problems == ("ok",) else problems

    def close(self) -> None:
        with self._open_lock:
            conn, self._conn = self._conn, None
        if conn is not None:
            conn.close()
            self._logger.debug("state_db_closed", path=str(self._path))

    def __enter__(self) -> DogDB:
        self.connection()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def _open(self) -> sqlite3.Connection:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                self._path,
                timeout=self._busy_timeout_ms / 1000.0,
                isolation_level=None,
                check_same_thread=False,
            )
        except (OSError, sqlite3.Error) as exc:
            raise StorageUnavailable(f"unable to open database {self._path}: {exc}") from exc

        try:
            conn.row_factory = sqlite3.Row
            conn.execute(f"PRAGMA busy_timeout={self._busy_timeout_ms}")
            created = self._ensure_schema(conn)
        except StorageUnavailable:
            conn.close()
            raise
        except sqlite3.Error as exc:
            conn.close()
            raise StorageUnavailable(
                f"unable to initialize database {self._path}: {exc}"
            ) from exc

        self._logger.info(
            "state_db_opened",
            path=str(self._path),
            schema_version=STATE_DB_SCHEMA_VERSION,
            created=created,
        )
        return conn

    def _ensure_schema(self, conn: sqlite3.Connection) -> bool:
        """Create the table and stamp the version on a fresh file; True when it did so."""

        found = int(conn.execute("PRAGMA user_version").fetchone()[0])
        if found > STATE_DB_SCHEMA_VERSION:
            raise StorageUnavailable(
                "database schema is newer than supported by this version "
                f"(db={found}, code={STATE_DB_SCHEMA_VERSION}): {self._path}"
            )

        conn.execute("BEGIN IMMEDIATE")
        try:
            conn.execute(_CREATE_DOGS_TABLE_SQL)
            if found == 0:
                conn.execute(f"PRAGMA user_version={STATE_DB_SCHEMA_VERSION}")
        except sqlite3.Error:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")
        return found == 0

    def _with_retry(
        self,
        action: Callable[[], T],
        *,
        operation: str,
        error_type: type[StorageError],
    ) -> T:
        attempt = 0
        while True:
            try:
                return action()
            except sqlite3.IntegrityError as exc:
                raise error_type(
                    f"{operation} violated a constraint in {self._path}: {exc}"
                ) from exc
            except (OverflowError, UnicodeEncodeError) as exc:
                raise error_type(
                    f"{operation} rejected a parameter for {self._path}: {exc}"
                ) from exc
            except sqlite3.Error as exc:
                kind = _failure_kind(exc)
                if kind == "busy" and attempt < self._busy_retry_limit:
                    attempt += 1
                    self._logger.debug(
                        "state_db_busy_retry",
                        operation=operation,
                        attempt=attempt,
                        path=str(self._path),
                    )
                    time.sleep(self._busy_retry_backoff_s * 2 ** (attempt - 1))
                    continue
                raise error_type(self._describe(exc, kind, operation, attempt + 1)) from exc

    def _describe(
        self, exc: sqlite3.Error, kind: FailureKind, operation: str, attempts: int
    ) -> str:
        if kind == "corrupt":
            return (
                f"{operation} failed for {self._path}: {exc}. "
                "Run `doggie check` and restore from a `doggie backup` copy if needed."
            )
        if kind == "busy":
            return (
                f"{operation} hit SQLITE_BUSY on {self._path} "
                f"after {attempts} attempt(s): {exc}"
            )
        return f"{operation} failed for {self._path}: {exc}"


def _failure_kind(exc: sqlite3.Error) -> FailureKind:
    code = getattr(exc, "sqlite_errorcode", None)
    if isinstance(code, int) and (code & 0xFF) in _PRIMARY_CODE_KINDS:
        return _PRIMARY_CODE_KINDS[code & 0xFF]
    message = str(exc).lower()
    for fragment, kind in _MESSAGE_KINDS:
        if fragment in message:
            return kind
    return "other"


__all__ = [
    "DEFAULT_BUSY_RETRY_BACKOFF_MS",
    "DEFAULT_BUSY_RETRY_LIMIT",
    "DEFAULT_BUSY_TIMEOUT_MS",
    "DogDB",
    "StorageError",
    "StorageReadError",
    "StorageUnavailable",
    "StorageWriteError",
]
