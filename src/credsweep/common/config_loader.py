from __future__ import annotations

import functools
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import ValidationError

from credsweep.common.config import Settings


logger = logging.getLogger(__name__)

ENV_PREFIX = "CREDSWEEP__"
BASE_PATH = Path(__file__).resolve().parents[3]


class ConfigError(RuntimeError):
    """Raised when configuration files cannot be loaded or parsed."""


@functools.lru_cache(maxsize=4)
def load_settings(env: Optional[str] = None, config_path: Optional[Path] = None) -> Settings:
    """Load configuration from disk, environment overrides, and validate.

    ``config_path`` defaults to ``config/settings.yml`` at the repository root.
    A missing default file falls back to built-in defaults; a missing explicit
    file is an error.
    """

    explicit = config_path is not None
    defaults_path = Path(config_path) if explicit else BASE_PATH / "config" / "settings.yml"

    settings: Dict[str, Any] = {}
    if defaults_path.exists():
        settings = _read_yaml(defaults_path)
    elif explicit:
        raise ConfigError(f"Missing configuration file: {defaults_path}")
    else:
        logger.debug("No configuration file at %s; using built-in defaults", defaults_path)

    if env:
        env_path = defaults_path.parent / "env" / f"{env}.yml"
        if env_path.exists():
            _deep_update(settings, _read_yaml(env_path))
        else:
            logger.warning("Environment override %s not found at %s", env, env_path)

    _apply_env_overrides(settings, os.environ)

    try:
        return Settings.model_validate(settings)
    except ValidationError as exc:
        raise ConfigError(f"Configuration validation error: {exc}") from exc


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Could not read {path}: {exc}") from exc
    if not isinstance(loaded, dict):
        raise ConfigError(f"Expected a mapping at the top of {path}")
    return loaded


def _apply_env_overrides(settings: Dict[str, Any], environ: Mapping[str, str]) -> None:
    """Apply environment variables prefixed with ``CREDSWEEP__`` as overrides."""

    for key, value in environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        path = key[len(ENV_PREFIX) :].lower().split("__")
        _assign_nested(settings, path, value)


def _assign_nested(target: Dict[str, Any], path: list[str], value: Any) -> None:
    cursor = target
    for segment in path[:-1]:
        if segment not in cursor or not isinstance(cursor[segment], dict):
            cursor[segment] = {}
        cursor = cursor[segment]
    cursor[path[-1]] = value


def _deep_update(destination: Dict[str, Any], source: Dict[str, Any]) -> None:
    """Recursively merge ``source`` into ``destination``."""

    for key, value in source.items():
        if (
            isinstance(value, dict)
            and key in destination
            and isinstance(destination[key], dict)
        ):
            _deep_update(destination[key], value)
        else:
            destination[key] = value
