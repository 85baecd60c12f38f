"""Command-line interface router for doggie-store."""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import structlog

from doggie_store.config import (
    ConfigLoadError,
    ConfigValidationError,
    dump_effective_config,
    load_config,
)
from doggie_store.domain.models import Dog
from doggie_store.observability import bind_context, configure_logging
from doggie_store.persistence import DogDB, DogRepo, SeedFileError, load_seed_file
from doggie_store.ui.render import CLIRenderer, create_renderer

Handler = Callable[[argparse.Namespace, Mapping[str, Any]], int]

_logger = structlog.get_logger(__name__)


class CLIError(RuntimeError):
    """A user-facing command failure; ``run_cli`` prints it and returns ``exit_code``."""

    def __init__(self, message: str, exit_code: int = 1) -> None:
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Return the ``doggie`` parser; each subcommand sets ``handler`` in its namespace."""

    parser = argparse.ArgumentParser(
        prog="doggie",
        description=(
            "doggie-store: keep Dog records in an embedded SQLite file.\n\n"
            "Common workflows:\n"
            "  doggie demo                 Insert, list, update, list, delete, list\n"
            "  doggie add 1 Rex 3          Insert or replace dog 1\n"
            "  doggie list                 Show every stored dog\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to doggie TOML config (default: ./doggie.toml if present).",
    )
    common.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="Database file path; overrides paths.database.",
    )
    common.add_argument(
        "--log-level",
        default=None,
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        help="Override observability.log_level.",
    )
    common.add_argument(
        "--log-format",
        default=None,
        choices=("json", "text"),
        help="Override observability.log_format.",
    )
    common.add_argument("--json", action="store_true", help="Emit deterministic JSON output")

    subparsers = parser.add_subparsers(dest="command", required=True)

    demo_parser = subparsers.add_parser(
        "demo",
        parents=[common],
        help="Run the insert/update/delete walkthrough for Fido",
    )
    demo_parser.set_defaults(handler=_cmd_demo)

    add_parser = subparsers.add_parser("add", parents=[common], help="Insert or replace a dog")
    _add_dog_arguments(add_parser)
    add_parser.set_defaults(handler=_cmd_add)

    list_parser = subparsers.add_parser("list", parents=[common], help="List every dog")
    list_parser.set_defaults(handler=_cmd_list)

    get_parser = subparsers.add_parser("get", parents=[common], help="Show one dog by id")
    get_parser.add_argument("id", type=int, help="Dog id")
    get_parser.set_defaults(handler=_cmd_get)

    update_parser = subparsers.add_parser(
        "update",
        parents=[common],
        help="Overwrite an existing dog (no-op when the id is unknown)",
    )
    _add_dog_arguments(update_parser)
    update_parser.set_defaults(handler=_cmd_update)

    delete_parser = subparsers.add_parser(
        "delete",
        parents=[common],
        help="Delete a dog by id (no-op when the id is unknown)",
    )
    delete_parser.add_argument("id", type=int, help="Dog id")
    delete_parser.set_defaults(handler=_cmd_delete)

    load_parser = subparsers.add_parser(
        "load", parents=[common], help="Upsert every dog listed in a YAML seed file"
    )
    load_parser.add_argument("seed_path", help="Path to a YAML file with a `dogs:` list")
    load_parser.set_defaults(handler=_cmd_load)

    backup_parser = subparsers.add_parser(
        "backup", parents=[common], help="Write a consistent copy of the database"
    )
    backup_parser.add_argument("destination", help="Backup file path")
    backup_parser.set_defaults(handler=_cmd_backup)

    check_parser = subparsers.add_parser(
        "check", parents=[common], help="Run the SQLite integrity check"
    )
    check_parser.set_defaults(handler=_cmd_check)

    config_parser = subparsers.add_parser(
        "config", parents=[common], help="Print the effective configuration"
    )
    config_parser.set_defaults(handler=_cmd_config)

    return parser


def _add_dog_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("id", type=int, help="Dog id (primary key)")
    parser.add_argument("name", help="Dog name")
    parser.add_argument("age", type=int, help="Dog age in years")


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Load config, configure logging, and dispatch ``argv`` to its command handler."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler: Handler | None = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        config = _load_effective_config(namespace)
        observability = config["observability"]
        configure_logging(observability["log_level"], observability["log_format"])
        with bind_context(command=namespace.command):
            result = handler(namespace, config)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_demo(args: argparse.Namespace, config: Mapping[str, Any]) -> int:
    with _open_repo(config) as repo:
        fido = Dog(id=0, name="Fido", age=5)
        repo.upsert(fido)
        _emit_dogs(args, repo.list_all())

        fido = Dog(id=fido.id, name=fido.name, age=fido.age + 2)
        repo.update(fido)
        _emit_dogs(args, repo.list_all())

        repo.delete(fido.id)
        _emit_dogs(args, repo.list_all())
    return 0


def _cmd_add(args: argparse.Namespace, config: Mapping[str, Any]) -> int:
    dog = _dog_from_args(args)
    with _open_repo(config) as repo:
        repo.upsert(dog)

    if _flag(args, "json"):
        _emit_json({"command": "add", "dog": dog.to_dict()})
    else:
        create_renderer().kv("Saved", dog)
    return 0


def _cmd_list(args: argparse.Namespace, config: Mapping[str, Any]) -> int:
    with _open_repo(config) as repo:
        dogs = repo.list_all()

    if _flag(args, "json"):
        _emit_json({"command": "list", "dogs": [dog.to_dict() for dog in dogs]})
        return 0

    create_renderer().dog_table(dogs)
    return 0


def _cmd_get(args: argparse.Namespace, config: Mapping[str, Any]) -> int:
    dog_id = int(args.id)
    with _open_repo(config) as repo:
        dog = repo.get(dog_id)
    if dog is None:
        raise CLIError(f"no dog with id {dog_id}", exit_code=1)

    if _flag(args, "json"):
        _emit_json({"command": "get", "dog": dog.to_dict()})
    else:
        create_renderer().line(str(dog))
    return 0


def _cmd_update(args: argparse.Namespace, config: Mapping[str, Any]) -> int:
    dog = _dog_from_args(args)
    with _open_repo(config) as repo:
        rows = repo.update(dog)
    _emit_rows_affected(args, "update", dog.id, rows)
    return 0


def _cmd_delete(args: argparse.Namespace, config: Mapping[str, Any]) -> int:
    dog_id = int(args.id)
    with _open_repo(config) as repo:
        rows = repo.delete(dog_id)
    _emit_rows_affected(args, "delete", dog_id, rows)
    return 0


def _cmd_load(args: argparse.Namespace, config: Mapping[str, Any]) -> int:
    seed_path = Path(args.seed_path).expanduser().resolve()
    with _open_repo(config) as repo:
        try:
            dogs = load_seed_file(repo, seed_path)
        except SeedFileError as exc:
            raise CLIError(str(exc), exit_code=2) from exc

    if _flag(args, "json"):
        _emit_json({"command": "load", "dogs": [dog.to_dict() for dog in dogs]})
    else:
        create_renderer().kv("Loaded", f"{len(dogs)} dog(s) from {seed_path}")
    return 0


def _cmd_backup(args: argparse.Namespace, config: Mapping[str, Any]) -> int:
    destination = Path(args.destination).expanduser().resolve()
    with DogDB(**_db_settings(config)) as db:
        written = db.backup(destination)

    if _flag(args, "json"):
        _emit_json({"command": "backup", "backup_path": written.as_posix()})
    else:
        create_renderer().kv("Backup written", written)
    return 0


def _cmd_check(args: argparse.Namespace, config: Mapping[str, Any]) -> int:
    with DogDB(**_db_settings(config)) as db:
        version = db.schema_version()
        problems = db.integrity_check()

    if _flag(args, "json"):
        _emit_json(
            {
                "command": "check",
                "path": db.path.as_posix(),
                "schema_version": version,
                "ok": not problems,
                "problems": list(problems),
            }
        )
    else:
        renderer: CLIRenderer = create_renderer()
        renderer.kv("Database", db.path)
        renderer.kv("Schema version", version)
        for problem in problems:
            renderer.check(problem, ok=False)
        if not problems:
            renderer.check("integrity_check", ok=True)
    return 0 if not problems else 3


def _cmd_config(args: argparse.Namespace, config: Mapping[str, Any]) -> int:
    if _flag(args, "json"):
        print(dump_effective_config(config))
        return 0
    create_renderer().line(json.dumps(config, indent=2, sort_keys=True, ensure_ascii=False))
    return 0


# ---------------------------------------------------------------------------
# Rendering helpers
# ---------------------------------------------------------------------------


def _emit_json(payload: Mapping[str, object]) -> None:
    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _emit_dogs(args: argparse.Namespace, dogs: Sequence[Dog]) -> None:
    if _flag(args, "json"):
        _emit_json({"dogs": [dog.to_dict() for dog in dogs]})
    else:
        create_renderer().dogs(dogs)


def _emit_rows_affected(args: argparse.Namespace, command: str, dog_id: int, rows: int) -> None:
    if _flag(args, "json"):
        _emit_json({"command": command, "id": dog_id, "rows_affected": rows})
        return
    renderer = create_renderer()
    renderer.kv("Rows affected", rows)
    if rows == 0:
        renderer.line(f"No dog with id {dog_id}; nothing changed.")


# ---------------------------------------------------------------------------
# Helpers: config and store wiring
# ---------------------------------------------------------------------------


def _load_effective_config(args: argparse.Namespace) -> dict[str, Any]:
    config_path = getattr(args, "config_path", None)
    db_path = getattr(args, "db_path", None)
    overrides: dict[str, object] = {
        "paths.database": (
            Path(db_path).expanduser().resolve().as_posix() if db_path is not None else None
        ),
        "observability.log_level": getattr(args, "log_level", None),
        "observability.log_format": getattr(args, "log_format", None),
    }

    try:
        return load_config(config_path, cli_overrides=overrides)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _db_settings(config: Mapping[str, Any]) -> dict[str, Any]:
    storage = config["storage"]
    return {
        "path": Path(config["paths"]["database"]),
        "busy_timeout_ms": storage["busy_timeout_ms"],
        "busy_retry_limit": storage["busy_retry_limit"],
        "busy_retry_backoff_ms": storage["busy_retry_backoff_ms"],
    }


@contextmanager
def _open_repo(config: Mapping[str, Any]) -> Iterator[DogRepo]:
    with DogDB(**_db_settings(config)) as db:
        _logger.debug("cli_store_ready", path=db.path.as_posix())
        yield DogRepo(db)


def _dog_from_args(args: argparse.Namespace) -> Dog:
    return Dog(id=int(args.id), name=str(args.name), age=int(args.age))


def _flag(args: argparse.Namespace, name: str) -> bool:
    return bool(getattr(args, name, False))


__all__ = ["CLIError", "build_parser", "run_cli"]
