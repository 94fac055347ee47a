"""Configuration hierarchy: merges sources in priority order.

Precedence (later overrides earlier):
  1. Package defaults
  2. Global config   (~/.screenscope/config.yaml)
  3. Project config   (./screenscope.yaml, searched upward)
  4. Environment variables (OPENAI_API_KEY, OPENAI_BASE_URL, SCREENSCOPE_*)
  5. Runtime arguments
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from screenscope.config.defaults import get_defaults

logger = logging.getLogger(__name__)

_GLOBAL_CONFIG_PATH = Path.home() / ".screenscope" / "config.yaml"
_PROJECT_CONFIG_NAME = "screenscope.yaml"
_ENV_PREFIX = "SCREENSCOPE_"

# Provider variables keep their conventional names
_PROVIDER_ENV: dict[str, str] = {
    "OPENAI_API_KEY": "api_key",
    "OPENAI_BASE_URL": "base_url",
}

# Keys whose default is None, so their type cannot be inferred
_OPTIONAL_TYPES: dict[str, type] = {
    "cache_max_age_seconds": float,
}

_TRUTHY = {"1", "true", "yes", "on"}
_NONE_VALUES = {"", "none", "null"}


def load_config_hierarchy(
    config_path: Path | None = None, **runtime_overrides: Any
) -> dict[str, Any]:
    """Load and merge configuration from all sources.

    ``config_path`` replaces the project config search when given.
    Returns a merged dict with the final resolved values.
    """
    config = get_defaults()

    global_cfg = _load_yaml_config(_GLOBAL_CONFIG_PATH)
    if global_cfg:
        config.update(global_cfg)

    project_path = config_path or _find_project_config()
    if project_path:
        project_cfg = _load_yaml_config(project_path)
        if project_cfg:
            config.update(project_cfg)

    config.update(_load_env_vars())

    # Only override when explicitly set
    for key, value in runtime_overrides.items():
        if value is not None:
            config[key] = value

    return config


def mask_secret(value: str | None) -> str | None:
    """Mask all but the last four characters of a secret."""
    if not value:
        return value
    if len(value) <= 8:
        return "****"
    return f"****{value[-4:]}"


def _load_yaml_config(path: Path) -> dict[str, Any] | None:
    """Load a YAML config file if it exists."""
    if not path.exists() or not path.is_file():
        return None
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Failed to load config %s: %s", path, e)
        return None
    if isinstance(data, dict):
        return data
    if data is not None:
        logger.warning("Config file %s is not a mapping, ignoring", path)
    return None


def _find_project_config() -> Path | None:
    """Search for screenscope.yaml from cwd upward."""
    cwd = Path.cwd()
    for parent in [cwd, *cwd.parents]:
        candidate = parent / _PROJECT_CONFIG_NAME
        if candidate.exists():
            return candidate
    return None


def _load_env_vars() -> dict[str, Any]:
    """Read provider variables and SCREENSCOPE_<KEY> for every known key."""
    defaults = get_defaults()
    env_map = dict(_PROVIDER_ENV)
    env_map.update({f"{_ENV_PREFIX}{key.upper()}": key for key in defaults})

    result: dict[str, Any] = {}
    for env_key, config_key in env_map.items():
        value = os.environ.get(env_key)
        if value is None:
            continue
        result[config_key] = _coerce_env_value(config_key, value, defaults.get(config_key))
    return result


def _coerce_env_value(key: str, value: str, default: Any) -> Any:
    """Coerce an environment variable string to the type of its default."""
    if isinstance(default, bool):
        return value.strip().lower() in _TRUTHY

    target_type = _OPTIONAL_TYPES.get(key)
    if target_type is None and isinstance(default, (int, float)):
        target_type = type(default)

    if target_type is None:
        return value
    if key in _OPTIONAL_TYPES and value.strip().lower() in _NONE_VALUES:
        return None
    try:
        return target_type(value)
    except (ValueError, TypeError):
        logger.warning(
            "Cannot convert env var for '%s' to %s: %s", key, target_type.__name__, value
        )
        return default
