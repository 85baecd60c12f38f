"""Process entrypoint for the ``doggie`` console script and ``python -m doggie_store``."""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence


class ExitCode(IntEnum):
    """Process exit codes reported by ``doggie``."""

    SUCCESS = 0
    NOT_FOUND = 1
    CONFIG_ERROR = 2
    STORAGE_ERROR = 3
    INTERNAL_ERROR = 4


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Run the CLI and translate whatever escapes it into an ``ExitCode``.

    Known failures print a single ``error: ...`` line on stderr. Anything else is an
    internal error and prints its traceback.
    """

    from doggie_store.ui.cli import run_cli

    try:
        status: object = run_cli(argv)
    except SystemExit as exc:
        status = exc.code
    except Exception as exc:  # noqa: BLE001 - process boundary
        code = exit_code_for(exc)
        if code is ExitCode.INTERNAL_ERROR:
            traceback.print_exception(exc, file=sys.stderr)
        else:
            print(f"error: {exc}", file=sys.stderr)
        return int(code)
    return _as_exit_status(status)


def console_main() -> None:
    raise SystemExit(cli_entrypoint())


def exit_code_for(exc: BaseException) -> ExitCode:
    """Map an exception, or the first known error in its ``__cause__`` chain, to an exit code."""

    from doggie_store.config import ConfigLoadError, ConfigValidationError
    from doggie_store.domain.models import DecodeError
    from doggie_store.persistence import SeedFileError, StorageError

    routes: tuple[tuple[tuple[type[BaseException], ...], ExitCode], ...] = (
        ((StorageError, DecodeError), ExitCode.STORAGE_ERROR),
        ((ConfigLoadError, ConfigValidationError, SeedFileError), ExitCode.CONFIG_ERROR),
    )
    current: BaseException | None = exc
    while current is not None:
        for error_types, code in routes:
            if isinstance(current, error_types):
                return code
        current = current.__cause__
    return ExitCode.INTERNAL_ERROR


def _as_exit_status(status: object) -> int:
    if status is None:
        return int(ExitCode.SUCCESS)
    if isinstance(status, int) and status in tuple(ExitCode):
        return status
    if isinstance(status, str) and status.strip():
        print(status.strip(), file=sys.stderr)
    return int(ExitCode.INTERNAL_ERROR)


__all__ = ["ExitCode", "cli_entrypoint", "console_main", "exit_code_for"]
