"""
doggie-store — runtime config loader.

File: src/doggie_store/config/loader.py

Purpose
- Build the effective config by layering defaults, ``doggie.toml``, ``DOGGIE_*``
  environment variables and CLI overrides, in that order.

Functional requirements
- Environment values are coerced to the type of the built-in default they replace.
- ``paths.database`` is resolved against the directory holding the config file.
- The merged result is validated once; any violation raises ``ConfigValidationError``.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Iterator, Mapping
from functools import reduce
from pathlib import Path
from typing import Any, Final

from doggie_store.config.schema import (
    PATH_FIELDS,
    assert_valid_config,
    default_config,
    merge_config,
)

DEFAULT_CONFIG_FILE: Final[str] = "doggie.toml"
ENV_PREFIX: Final[str] = "DOGGIE_"

ConfigKey = tuple[str, ...]


class ConfigLoadError(ValueError):
    """Raised when a config source cannot be read or an override cannot be coerced."""


def load_config(
    config_path: str | Path | None = None,
    *,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Return the validated effective config. Later layers win: CLI > env > file > defaults.

    ``config_path`` defaults to ``./doggie.toml``, which may be absent. An explicitly
    named file must exist. ``cli_overrides`` maps dotted keys such as
    ``"paths.database"`` to values; ``None`` values are ignored so argparse
    namespaces can be passed through unfiltered.
    """

    source = _locate(config_path)
    layers = (
        default_config(),
        _file_layer(source, required=config_path is not None),
        _env_layer(os.environ if environ is None else environ),
        _cli_layer(cli_overrides or {}),
    )
    merged: dict[str, Any] = reduce(merge_config, layers, {})
    return normalize_paths(assert_valid_config(merged), base_dir=source.parent)


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Return a copy of ``config`` with every path field made absolute under ``base_dir``."""

    resolved = merge_config({}, config)
    for key in PATH_FIELDS:
        section = resolved.get(key[0])
        if isinstance(section, dict) and isinstance(section.get(key[1]), str):
            section[key[1]] = _absolute_posix(section[key[1]], base_dir)
    return resolved


def dump_effective_config(config: Mapping[str, object]) -> str:
    """Compact, key-sorted JSON rendering of ``config``."""

    return json.dumps(config, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _locate(config_path: str | Path | None) -> Path:
    if config_path is None:
        return Path.cwd().resolve() / DEFAULT_CONFIG_FILE
    return Path(config_path).expanduser().resolve()


def _file_layer(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.is_file():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc


def _env_layer(environ: Mapping[str, str]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for key, default in _leaves(default_config()):
        env_name = _env_var_name(key)
        if env_name in environ:
            _assign(layer, key, _coerce(environ[env_name], like=default, env_name=env_name))
    return layer


def _cli_layer(overrides: Mapping[str, object]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for dotted, value in sorted(overrides.items()):
        if value is None:
            continue
        key = tuple(part for part in dotted.split(".") if part)
        if not key:
            raise ConfigLoadError(f"invalid CLI override key {dotted!r}")
        _assign(layer, key, value)
    return layer


def _env_var_name(key: ConfigKey) -> str:
    return ENV_PREFIX + "_".join(part.upper() for part in key)


def _leaves(
    tree: Mapping[str, object], prefix: ConfigKey = ()
) -> Iterator[tuple[ConfigKey, object]]:
    for name, value in sorted(tree.items()):
        if isinstance(value, Mapping):
            yield from _leaves(value, (*prefix, name))
        else:
            yield (*prefix, name), value


def _coerce(raw: str, *, like: object, env_name: str) -> object:
    text = raw.strip()
    if isinstance(like, bool) or not isinstance(like, int):
        return text
    try:
        return int(text)
    except ValueError as exc:
        raise ConfigLoadError(f"{env_name} must be an integer, got {raw!r}") from exc


def _assign(tree: dict[str, Any], key: ConfigKey, value: object) -> None:
    node = tree
    for part in key[:-1]:
        node = node.setdefault(part, {})
    node[key[-1]] = value


def _absolute_posix(raw: str, base_dir: Path) -> str:
    candidate = Path(os.path.expandvars(raw)).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return Path(os.path.normpath(candidate)).as_posix()


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "dump_effective_config",
    "load_config",
    "normalize_paths",
]
