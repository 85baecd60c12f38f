"""structlog wiring: renderers, level filtering, and context binding."""

from __future__ import annotations

import io
import json
import logging

import pytest
import structlog

from doggie_store.observability import bind_context, configure_logging


def _json_lines(stream: io.StringIO) -> list[dict[str, object]]:
    return [json.loads(line) for line in stream.getvalue().splitlines() if line.strip()]


def test_json_format_emits_one_object_per_event() -> None:
    stream = io.StringIO()
    configure_logging("INFO", "json", stream=stream)

    structlog.get_logger("doggie_store.tests").info("dog_upserted", dog_id=3, rows_affected=1)

    [record] = _json_lines(stream)
    assert record["event"] == "dog_upserted"
    assert record["dog_id"] == 3
    assert record["rows_affected"] == 1
    assert record["level"] == "info"
    assert record["logger"] == "doggie_store.tests"
    assert str(record["timestamp"]).endswith("Z")


def test_events_below_level_are_dropped() -> None:
    stream = io.StringIO()
    configure_logging("warning", "json", stream=stream)
    logger = structlog.get_logger("doggie_store.tests")

    logger.info("quiet")
    logger.debug("quieter")
    logger.warning("loud")

    assert [record["event"] for record in _json_lines(stream)] == ["loud"]


def test_bind_context_adds_fields_inside_block_only() -> None:
    stream = io.StringIO()
    configure_logging(logging.DEBUG, "json", stream=stream)
    logger = structlog.get_logger("doggie_store.tests")

    with bind_context(command="list"):
        logger.debug("inside")
    logger.debug("outside")

    inside, outside = _json_lines(stream)
    assert inside["command"] == "list"
    assert "command" not in outside


def test_text_format_renders_key_values() -> None:
    stream = io.StringIO()
    configure_logging("INFO", "text", stream=stream)

    structlog.get_logger("doggie_store.tests").info("state_db_opened", created=True)

    output = stream.getvalue()
    assert "state_db_opened" in output
    assert "created=True" in output
    assert not output.lstrip().startswith("{")


def test_reconfigure_replaces_the_handler() -> None:
    first = io.StringIO()
    second = io.StringIO()
    configure_logging("INFO", "json", stream=first)
    package_logger = configure_logging("INFO", "json", stream=second)

    structlog.get_logger("doggie_store.tests").info("once")

    assert len(package_logger.handlers) == 1
    assert first.getvalue() == ""
    assert [record["event"] for record in _json_lines(second)] == ["once"]


def test_stdlib_records_share_the_formatter() -> None:
    stream = io.StringIO()
    configure_logging("INFO", "json", stream=stream)

    logging.getLogger("doggie_store.plain").info("plain stdlib message")

    [record] = _json_lines(stream)
    assert record["event"] == "plain stdlib message"
    assert record["level"] == "info"


@pytest.mark.parametrize(
    ("level", "fmt", "message"),
    [
        ("INFO", "xml", "log format"),
        ("LOUD", "json", "unknown log level"),
    ],
)
def test_invalid_arguments_are_rejected(level: str, fmt: str, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        configure_logging(level, fmt, stream=io.StringIO())
