"""Process exit-code contract of ``cli_entrypoint``."""

from __future__ import annotations

from pathlib import Path

import pytest

from doggie_store.main import ExitCode, cli_entrypoint


@pytest.fixture(autouse=True)
def _isolated_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("DOGGIE_PATHS_DATABASE", raising=False)


def test_success_is_zero(tmp_path: Path) -> None:
    assert cli_entrypoint(["list", "--db", str(tmp_path / "ok.db")]) == ExitCode.SUCCESS


def test_unknown_dog_is_not_found(tmp_path: Path) -> None:
    assert cli_entrypoint(["get", "--db", str(tmp_path / "ok.db"), "4"]) == ExitCode.NOT_FOUND


def test_usage_errors_map_to_config_code(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli_entrypoint(["add", "one", "Rex", "3"]) == ExitCode.CONFIG_ERROR
    assert "invalid int value" in capsys.readouterr().err


def test_missing_config_file_maps_to_config_code(tmp_path: Path) -> None:
    code = cli_entrypoint(["list", "--config", str(tmp_path / "missing.toml")])

    assert code == ExitCode.CONFIG_ERROR


def test_unavailable_storage_maps_to_storage_code(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    blocker = tmp_path / "occupied"
    blocker.write_text("not a directory", encoding="utf-8")

    code = cli_entrypoint(["list", "--db", str(blocker / "dogs.db")])

    assert code == ExitCode.STORAGE_ERROR
    assert capsys.readouterr().err.startswith("error: unable to open database")


def test_corrupt_database_maps_to_storage_code(tmp_path: Path) -> None:
    garbage = tmp_path / "garbage.db"
    garbage.write_bytes(b"not sqlite at all " * 128)

    assert cli_entrypoint(["list", "--db", str(garbage)]) == ExitCode.STORAGE_ERROR


def test_unexpected_failures_map_to_internal_code(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    def _boom(argv: object) -> int:
        raise KeyError("unexpected")

    monkeypatch.setattr("doggie_store.ui.cli.run_cli", _boom)

    assert cli_entrypoint(["list"]) == ExitCode.INTERNAL_ERROR
    assert "KeyError" in capsys.readouterr().err


def test_out_of_range_id_maps_to_storage_code(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    database = str(tmp_path / "ok.db")

    code = cli_entrypoint(["add", "--db", database, "9223372036854775808", "Big", "1"])

    assert code == ExitCode.STORAGE_ERROR
    err = capsys.readouterr().err
    assert err.startswith("error: write rejected a parameter")
    assert "Traceback" not in err
