"""Build a :class:`ToolstreamConfig` from layered TOML sources.

Layers, lowest priority first: model defaults, the user file
(``$XDG_CONFIG_HOME/toolstream/config.toml``), ``./toolstream.toml``,
the file named by ``$TOOLSTREAM_CONFIG``, the ``path`` argument, then
the ``overrides`` mapping. A file reached twice is read once, at its
highest position.

Secrets and endpoints are usually not written to disk. Any ``url`` or
``api_key`` left empty after merging is filled from the variable named
by its ``*_env`` companion field (``MCP_PROD_URL``, ``OPENAI_API_KEY``).
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from toolstream.core.errors import ConfigError

from .schema import ToolstreamConfig

if TYPE_CHECKING:
    from collections.abc import Iterator

    from pydantic import BaseModel

CONFIG_ENV = "TOOLSTREAM_CONFIG"
APP_DIR = "toolstream"
PROJECT_FILE = "toolstream.toml"


def _config_home() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME")
    return Path(xdg) if xdg else Path.home() / ".config"


def _layer_files(path: str | Path | None) -> Iterator[Path]:
    """Yield every TOML layer that applies, in merge order."""
    for candidate in (_config_home() / APP_DIR / "config.toml", Path(PROJECT_FILE)):
        if candidate.is_file():
            yield candidate

    named = os.environ.get(CONFIG_ENV)
    if named:
        if not Path(named).is_file():
            msg = f"{CONFIG_ENV} points to non-existent file: {named}"
            raise ConfigError(msg)
        yield Path(named)

    if path is not None:
        if not Path(path).is_file():
            msg = f"Config file not found: {path}"
            raise ConfigError(msg)
        yield Path(path)


def _unique_layers(files: Iterator[Path]) -> list[Path]:
    # Keep the last occurrence so a repeated file retains its top priority.
    ordered: dict[Path, Path] = {}
    for f in files:
        key = f.resolve()
        ordered.pop(key, None)
        ordered[key] = f
    return list(ordered.values())


def _parse(path: Path) -> dict[str, Any]:
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        msg = f"Invalid TOML in {path}: {e}"
        raise ConfigError(msg) from e
    except (OSError, UnicodeDecodeError) as e:
        msg = f"Cannot read config file {path}: {e}"
        raise ConfigError(msg) from e


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return ``base`` updated by ``override``, recursing into shared tables."""
    result = dict(base)
    for key, value in override.items():
        current = result.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            value = _deep_merge(current, value)
        result[key] = value
    return result


def _fill_from_env(section: BaseModel, *fields: str) -> None:
    for name in fields:
        env_name = getattr(section, f"{name}_env", None)
        if getattr(section, name) is None and env_name:
            setattr(section, name, os.environ.get(env_name))


def load_config(
    path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> ToolstreamConfig:
    """Merge every config layer and validate the result.

    Raises:
        ConfigError: A named file is missing or unreadable, a file is not
            valid TOML, or the merged data fails validation.
    """
    data: dict[str, Any] = {}
    for layer in _unique_layers(_layer_files(path)):
        data = _deep_merge(data, _parse(layer))
    data = _deep_merge(data, overrides or {})

    try:
        config = ToolstreamConfig.model_validate(data)
    except ValidationError as e:
        msg = f"Configuration validation failed: {e}"
        raise ConfigError(msg) from e

    for registry in config.registries.values():
        _fill_from_env(registry, "url", "api_key")
    _fill_from_env(config.provider, "api_key")
    return config
