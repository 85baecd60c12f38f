"""Structured logging setup: structlog over stdlib ``logging``, JSON or text lines on stderr."""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import IO, Final

import structlog

_DEFAULT_LOGGER_NAME: Final[str] = "doggie_store"
_LOG_FORMATS: Final[tuple[str, ...]] = ("json", "text")

# Handler installed by the most recent ``configure_logging`` call, replaced on reconfigure.
_ACTIVE_HANDLER: logging.Handler | None = None


def configure_logging(
    level: int | str = "WARNING",
    fmt: str = "text",
    *,
    stream: IO[str] | None = None,
    logger_name: str = _DEFAULT_LOGGER_NAME,
) -> logging.Logger:
    """Route structlog events through a single stderr handler and return the package logger.

    Parameters
    ----------
    level:
        Stdlib level name or number; events below it are dropped.
    fmt:
        ``"json"`` for one JSON object per line, ``"text"`` for key=value console lines.
    stream:
        Destination stream. Defaults to ``sys.stderr`` so stdout stays reserved for
        command output.
    logger_name:
        Stdlib logger that owns the handler.
    """

    global _ACTIVE_HANDLER

    if fmt not in _LOG_FORMATS:
        raise ValueError(f"log format must be one of {', '.join(_LOG_FORMATS)}; got {fmt!r}")
    parsed_level = _parse_log_level(level)

    shared_processors: list[structlog.typing.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    renderer: structlog.typing.Processor
    if fmt == "json":
        renderer = structlog.processors.JSONRenderer(sort_keys=True)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    logger = logging.getLogger(logger_name)
    if _ACTIVE_HANDLER is not None:
        logger.removeHandler(_ACTIVE_HANDLER)
        _ACTIVE_HANDLER.close()
    logger.addHandler(handler)
    logger.setLevel(parsed_level)
    logger.propagate = False
    _ACTIVE_HANDLER = handler
    return logger


@contextmanager
def bind_context(**fields: object) -> Iterator[None]:
    """Attach ``fields`` to every event logged inside the ``with`` block."""

    with structlog.contextvars.bound_contextvars(**fields):
        yield


def _parse_log_level(value: int | str) -> int:
    if isinstance(value, int):
        return value
    parsed = logging.getLevelName(value.strip().upper())
    if not isinstance(parsed, int):
        raise ValueError(f"unknown log level: {value!r}")
    return parsed


__all__ = ["bind_context", "configure_logging"]
