"""
doggie-store — configuration schema and validation.

File: src/doggie_store/config/schema.py

Purpose
- Built-in defaults for every ``doggie.toml`` field.
- Field-by-field validation that reports every problem at once, each with a dotted path.

Functional requirements
- Unknown sections or fields are errors, as are missing ones.
- ``observability.log_level`` is accepted in any case and normalized to upper case.
- A ``meta.schema_version`` other than the current one is rejected with migration guidance.
"""

from __future__ import annotations

import copy
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, TypedDict

from doggie_store.constants import CONFIG_SCHEMA_VERSION, DEFAULT_DATABASE_PATH
from doggie_store.persistence.state_db import (
    DEFAULT_BUSY_RETRY_BACKOFF_MS,
    DEFAULT_BUSY_RETRY_LIMIT,
    DEFAULT_BUSY_TIMEOUT_MS,
)

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION
LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")
LOG_FORMATS: Final[tuple[str, ...]] = ("json", "text")

# Resolved against the config file directory by the loader.
PATH_FIELDS: Final[tuple[tuple[str, str], ...]] = (("paths", "database"),)


class MetaConfig(TypedDict):
    schema_version: int


class PathsConfig(TypedDict):
    database: str


class StorageConfig(TypedDict):
    busy_timeout_ms: int
    busy_retry_limit: int
    busy_retry_backoff_ms: int


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_format: Literal["json", "text"]


class DoggieConfig(TypedDict):
    meta: MetaConfig
    paths: PathsConfig
    storage: StorageConfig
    observability: ObservabilityConfig


DEFAULT_CONFIG: Final[DoggieConfig] = {
    "meta": {"schema_version": ConfigSchemaVersion},
    "paths": {"database": DEFAULT_DATABASE_PATH.as_posix()},
    "storage": {
        "busy_timeout_ms": DEFAULT_BUSY_TIMEOUT_MS,
        "busy_retry_limit": DEFAULT_BUSY_RETRY_LIMIT,
        "busy_retry_backoff_ms": DEFAULT_BUSY_RETRY_BACKOFF_MS,
    },
    "observability": {"log_level": "WARNING", "log_format": "text"},
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """One invalid field: dotted ``path`` plus a human-readable ``message``."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised by ``assert_valid_config``; ``issues`` lists every violation found."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        lines = [f"- {issue.path}: {issue.message}" for issue in self.issues]
        super().__init__("invalid config:\n" + ("\n".join(lines) or "- <root>: rejected"))


class _Invalid(Exception):
    """Signals a single-field failure inside a field checker."""


FieldCheck = Callable[[object], object]


def _as_int(value: object, minimum: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise _Invalid(f"expected integer, got {type(value).__name__}")
    if value < minimum:
        raise _Invalid(f"must be >= {minimum}")
    return value


def _integer(minimum: int) -> FieldCheck:
    return lambda value: _as_int(value, minimum)


def _text(value: object) -> str:
    if not isinstance(value, str):
        raise _Invalid(f"expected string, got {type(value).__name__}")
    stripped = value.strip()
    if not stripped:
        raise _Invalid("must not be empty")
    return stripped


def _path_text(value: object) -> str:
    text = _text(value)
    if "\x00" in text:
        raise _Invalid("must not contain NUL bytes")
    return text


def _one_of(choices: tuple[str, ...], *, upper: bool = False) -> FieldCheck:
    def check(value: object) -> str:
        text = _text(value)
        if upper:
            text = text.upper()
        if text not in choices:
            expected = ", ".join(sorted(choices))
            raise _Invalid(f"invalid value {text!r}; expected one of: {expected}")
        return text

    return check


def _schema_version(value: object) -> int:
    version = _as_int(value, 1)
    if version != ConfigSchemaVersion:
        raise _Invalid(migration_guidance(version))
    return version


_SCHEMA: Final[dict[str, dict[str, FieldCheck]]] = {
    "meta": {"schema_version": _schema_version},
    "paths": {"database": _path_text},
    "storage": {
        "busy_timeout_ms": _integer(0),
        "busy_retry_limit": _integer(0),
        "busy_retry_backoff_ms": _integer(0),
    },
    "observability": {
        "log_level": _one_of(LOG_LEVELS, upper=True),
        "log_format": _one_of(LOG_FORMATS),
    },
}


def default_config() -> DoggieConfig:
    """Fresh deep copy of ``DEFAULT_CONFIG``; safe to mutate."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "rewrite doggie.toml for the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "install a newer doggie-store"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deep-merge ``overlay`` onto a copy of ``base``; nested tables merge, scalars replace."""

    merged: dict[str, Any] = {key: _copied(value) for key, value in base.items()}
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(value, Mapping) and isinstance(current, dict):
            merged[key] = merge_config(current, value)
        else:
            merged[key] = _copied(value)
    return merged


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Check ``config`` against the schema, collecting every issue instead of stopping early."""

    issues: list[ConfigValidationIssue] = []
    if not isinstance(config, Mapping):
        issue = ConfigValidationIssue("<root>", f"expected object, got {type(config).__name__}")
        return ConfigValidationResult(config=None, issues=(issue,))

    normalized: dict[str, Any] = {}
    for section_name in sorted(set(_SCHEMA) | {str(key) for key in config}):
        fields = _SCHEMA.get(section_name)
        if fields is None:
            issues.append(ConfigValidationIssue(section_name, "unknown field"))
            continue
        if section_name not in config:
            issues.append(ConfigValidationIssue(section_name, "missing required field"))
            continue
        section = config[section_name]
        if not isinstance(section, Mapping):
            kind = type(section).__name__
            issues.append(ConfigValidationIssue(section_name, f"expected object, got {kind}"))
            continue
        normalized[section_name] = _validate_section(section_name, section, fields, issues)

    if issues:
        return ConfigValidationResult(config=None, issues=tuple(issues))
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def _validate_section(
    section_name: str,
    section: Mapping[str, object],
    fields: Mapping[str, FieldCheck],
    issues: list[ConfigValidationIssue],
) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for field_name in sorted(set(fields) | {str(key) for key in section}):
        path = f"{section_name}.{field_name}"
        check = fields.get(field_name)
        if check is None:
            issues.append(ConfigValidationIssue(path, "unknown field"))
        elif field_name not in section:
            issues.append(ConfigValidationIssue(path, "missing required field"))
        else:
            try:
                out[field_name] = check(section[field_name])
            except _Invalid as exc:
                issues.append(ConfigValidationIssue(path, str(exc)))
    return out


def _copied(value: object) -> Any:
    if isinstance(value, Mapping):
        return merge_config({}, value)
    return copy.deepcopy(value)


__all__ = [
    "DEFAULT_CONFIG",
    "LOG_FORMATS",
    "LOG_LEVELS",
    "PATH_FIELDS",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DoggieConfig",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "migration_guidance",
    "validate_config",
]
