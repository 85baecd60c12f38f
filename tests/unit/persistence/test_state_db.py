"""State DB handle tests: lazy open, schema, error taxonomy, busy retry, backup."""

from __future__ import annotations

import sqlite3
import threading
from typing import TYPE_CHECKING

import pytest
from structlog.testing import capture_logs

from doggie_store.constants import STATE_DB_SCHEMA_VERSION
from doggie_store.persistence.state_db import (
    DogDB,
    StorageReadError,
    StorageUnavailable,
    StorageWriteError,
)

from . import SAMPLE_DOGS, db_path, make_repo, raw_rows

if TYPE_CHECKING:
    from pathlib import Path


def test_open_is_lazy_and_creates_file_and_schema(tmp_path: Path) -> None:
    path = db_path(tmp_path)
    db = DogDB(path)

    assert not db.is_open
    assert not path.exists()

    assert db.schema_version() == STATE_DB_SCHEMA_VERSION
    assert db.is_open
    assert path.exists()

    columns = [
        (row["name"], row["type"], row["pk"])
        for row in db.query_all("PRAGMA table_info(dogs)")
    ]
    assert columns == [("id", "INTEGER", 1), ("name", "TEXT", 0), ("age", "INTEGER", 0)]

    tables = db.query_all("SELECT name FROM sqlite_master WHERE type = 'table'")
    assert [row["name"] for row in tables] == ["dogs"]
    db.close()


def test_connection_is_reused_until_close(tmp_path: Path) -> None:
    db = DogDB(db_path(tmp_path))

    first = db.connection()
    assert db.connection() is first

    db.close()
    assert not db.is_open
    db.close()

    reopened = db.connection()
    assert reopened is not first
    db.close()


def test_reopening_existing_file_keeps_rows(tmp_path: Path) -> None:
    repo = make_repo(tmp_path)
    repo.upsert(SAMPLE_DOGS[0])
    repo.db.close()

    with capture_logs() as logs:
        again = make_repo(tmp_path)
        assert again.list_all() == [SAMPLE_DOGS[0]]
        again.db.close()

    opened = [entry for entry in logs if entry["event"] == "state_db_opened"]
    assert len(opened) == 1
    assert opened[0]["created"] is False
    assert opened[0]["schema_version"] == STATE_DB_SCHEMA_VERSION


def test_concurrent_first_use_opens_the_handle_once(tmp_path: Path) -> None:
    db = DogDB(db_path(tmp_path))
    barrier = threading.Barrier(8)
    handles: list[sqlite3.Connection] = []
    handles_lock = threading.Lock()

    def _worker() -> None:
        barrier.wait()
        conn = db.connection()
        with handles_lock:
            handles.append(conn)

    with capture_logs() as logs:
        threads = [threading.Thread(target=_worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

    assert len(handles) == 8
    assert all(conn is handles[0] for conn in handles)
    assert [entry["event"] for entry in logs].count("state_db_opened") == 1
    db.close()


def test_context_manager_opens_and_closes(tmp_path: Path) -> None:
    with DogDB(db_path(tmp_path)) as db:
        assert db.is_open
    assert not db.is_open


def test_unopenable_path_raises_storage_unavailable(tmp_path: Path) -> None:
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("occupied", encoding="utf-8")
    db = DogDB(blocker / "doggie_database.db")

    with pytest.raises(StorageUnavailable, match="unable to open database"):
        db.connection()
    assert not db.is_open


def test_non_database_file_raises_storage_unavailable(tmp_path: Path) -> None:
    path = tmp_path / "garbage.db"
    path.write_bytes(b"this is definitely not sqlite " * 64)

    with pytest.raises(StorageUnavailable) as excinfo:
        DogDB(path).connection()
    assert isinstance(excinfo.value.__cause__, sqlite3.DatabaseError)


def test_newer_schema_version_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "future.db"
    conn = sqlite3.connect(path)
    conn.execute("PRAGMA user_version = 2")
    conn.close()

    with pytest.raises(StorageUnavailable, match="newer than supported"):
        DogDB(path).connection()


def test_invalid_statements_map_to_read_and_write_errors(tmp_path: Path) -> None:
    db = DogDB(db_path(tmp_path))

    with pytest.raises(StorageReadError) as read_info:
        db.query_all("SELECT * FROM missing_table")
    assert isinstance(read_info.value.__cause__, sqlite3.OperationalError)

    with pytest.raises(StorageWriteError):
        db.execute("INSERT INTO missing_table VALUES (1)")
    db.close()


def test_constraint_violation_is_a_write_error(tmp_path: Path) -> None:
    db = DogDB(db_path(tmp_path))
    db.execute("INSERT INTO dogs (id, name, age) VALUES (?, ?, ?)", (1, "Rex", 3))

    with pytest.raises(StorageWriteError, match="violated a constraint") as excinfo:
        db.execute("INSERT INTO dogs (id, name, age) VALUES (?, ?, ?)", (1, "Rex", 3))
    assert isinstance(excinfo.value.__cause__, sqlite3.IntegrityError)
    db.close()


def test_locked_database_surfaces_after_bounded_retries(tmp_path: Path) -> None:
    path = db_path(tmp_path)
    db = DogDB(path, busy_timeout_ms=0, busy_retry_limit=2, busy_retry_backoff_ms=1)
    db.connection()

    locker = sqlite3.connect(path, isolation_level=None)
    locker.execute("BEGIN EXCLUSIVE")
    try:
        with capture_logs() as logs:
            with pytest.raises(StorageWriteError, match="SQLITE_BUSY"):
                db.execute("INSERT INTO dogs (id, name, age) VALUES (1, 'Rex', 3)")
            with pytest.raises(StorageReadError, match="SQLITE_BUSY"):
                db.query_all("SELECT id, name, age FROM dogs")
    finally:
        locker.execute("ROLLBACK")
        locker.close()

    retries = [entry for entry in logs if entry["event"] == "state_db_busy_retry"]
    assert len(retries) == 4
    assert [entry["attempt"] for entry in retries[:2]] == [1, 2]

    db.execute("INSERT INTO dogs (id, name, age) VALUES (1, 'Rex', 3)")
    assert raw_rows(path) == [(1, "Rex", 3)]
    db.close()


def test_rejects_negative_settings(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="busy_timeout_ms"):
        DogDB(db_path(tmp_path), busy_timeout_ms=-1)
    with pytest.raises(ValueError, match="busy_retry_limit"):
        DogDB(db_path(tmp_path), busy_retry_limit=-1)
    with pytest.raises(ValueError, match="busy_retry_backoff_ms"):
        DogDB(db_path(tmp_path), busy_retry_backoff_ms=-1)


def test_backup_and_integrity_check(tmp_path: Path) -> None:
    repo = make_repo(tmp_path)
    for dog in SAMPLE_DOGS:
        repo.upsert(dog)

    assert repo.db.integrity_check() == ()
    with pytest.raises(ValueError, match="max_errors"):
        repo.db.integrity_check(max_errors=0)

    backup_path = repo.db.backup(tmp_path / "backups" / "copy.db")
    assert backup_path.exists()
    assert raw_rows(backup_path) == [(0, "Fido", 5), (1, "Rex", 3), (2, "Bella", 9)]
    repo.db.close()


@pytest.mark.parametrize(
    "params",
    [
        (2**63, "Big", 1),
        (1, "Rex", -(2**63) - 1),
        (1, "\ud800", 3),
    ],
)
def test_unbindable_parameters_map_to_write_error(
    tmp_path: Path, params: tuple[object, ...]
) -> None:
    db = DogDB(db_path(tmp_path))

    with pytest.raises(StorageWriteError, match="rejected a parameter") as excinfo:
        db.execute("INSERT INTO dogs (id, name, age) VALUES (?, ?, ?)", params)
    assert isinstance(excinfo.value.__cause__, (OverflowError, UnicodeEncodeError))
    assert raw_rows(db_path(tmp_path)) == []
    db.close()


def test_unbindable_query_parameter_maps_to_read_error(tmp_path: Path) -> None:
    db = DogDB(db_path(tmp_path))

    with pytest.raises(StorageReadError, match="rejected a parameter") as excinfo:
        db.query_one("SELECT id, name, age FROM dogs WHERE id = ?", (2**63,))
    assert isinstance(excinfo.value.__cause__, OverflowError)
    db.close()
