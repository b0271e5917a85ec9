# === NAVMAP v1 ===
# {
#   "module": "MediaVault.config.loader",
#   "purpose": "Configuration loading with file/env/override precedence.",
#   "sections": [
#     {
#       "id": "read-file",
#       "name": "_read_file",
#       "anchor": "function-read-file",
#       "kind": "function"
#     },
#     {
#       "id": "merge-env-overrides",
#       "name": "_merge_env_overrides",
#       "anchor": "function-merge-env-overrides",
#       "kind": "function"
#     },
#     {
#       "id": "load-config",
#       "name": "load_config",
#       "anchor": "function-load-config",
#       "kind": "function"
#     },
#     {
#       "id": "export-config-schema",
#       "name": "export_config_schema",
#       "anchor": "function-export-config-schema",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Configuration Loading with File/Env/Override Precedence

Implements three-level config composition:
1. **File level** (YAML/JSON) - base configuration
2. **Environment level** - MEDIAVAULT_* prefixed variables override file
3. **Override level** - programmatic overrides (CLI flags) win

Environment variables use double-underscore notation:
  MEDIAVAULT_REMOTE__BASE_URL="https://host/api"  ->  remote.base_url
  MEDIAVAULT_STORE__WAL_MODE=false                 ->  store.wal_mode
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from .models import MediaVaultConfig

_LOGGER = logging.getLogger(__name__)

DEFAULT_ENV_PREFIX = "MEDIAVAULT_"


def _read_file(path: str | Path) -> dict[str, Any]:
    """
    Read YAML or JSON config file.

    Raises:
        ValueError: If file cannot be read or parsed
    """
    p = Path(path)
    if not p.exists():
        raise ValueError(f"Config file not found: {path}")

    try:
        text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise ValueError(f"Cannot read config file {path}: {e}") from e

    suffix = p.suffix.lower()

    if suffix in (".yaml", ".yml"):
        try:
            data = yaml.safe_load(text) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {path}: {e}") from e
    elif suffix == ".json":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in {path}: {e}") from e
    else:
        raise ValueError(f"Unsupported file format: {suffix}. Use .yaml or .json")

    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping at the top level")
    return data


def _assign_nested(data: dict[str, Any], dotted_key: str, value: Any) -> None:
    """Assign ``value`` at ``a.b.c`` inside ``data``, creating dicts as needed."""
    keys = dotted_key.split(".")
    current = data

    for key in keys[:-1]:
        if not isinstance(current.get(key), dict):
            current[key] = {}
        current = current[key]

    current[keys[-1]] = value


def _coerce_env_value(value: str) -> Any:
    """
    Coerce an environment string: JSON first (lists, numbers, bools, null),
    then case-insensitive booleans, else the raw string.
    """
    try:
        return json.loads(value)
    except (json.JSONDecodeError, ValueError):
        pass

    if value.lower() in ("true", "false"):
        return value.lower() == "true"

    return value


def _merge_env_overrides(
    data: dict[str, Any], env_prefix: str = DEFAULT_ENV_PREFIX
) -> dict[str, Any]:
    """Overlay ``{env_prefix}SECTION__FIELD`` variables onto ``data``."""
    for env_key, env_value in os.environ.items():
        if not env_key.startswith(env_prefix):
            continue

        relative_key = env_key[len(env_prefix) :].lower()
        dotted_key = relative_key.replace("__", ".")
        coerced_value = _coerce_env_value(env_value)
        _assign_nested(data, dotted_key, coerced_value)
        shown = "***masked***" if "token" in dotted_key else repr(coerced_value)
        _LOGGER.debug("Environment override: %s -> %s = %s", env_key, dotted_key, shown)

    return data


def _merge_overrides(
    data: dict[str, Any], overrides: Mapping[str, Any] | None
) -> dict[str, Any]:
    """Recursively merge ``overrides`` into ``data``; later values win."""
    if not overrides:
        return data

    for key, value in overrides.items():
        if isinstance(value, Mapping) and isinstance(data.get(key), dict):
            data[key] = _merge_overrides(data[key], value)
        elif isinstance(value, Mapping):
            data[key] = _merge_overrides({}, value)
        else:
            data[key] = value

    return data


def load_config(
    path: str | Path | None = None,
    env_prefix: str = DEFAULT_ENV_PREFIX,
    overrides: Mapping[str, Any] | None = None,
) -> MediaVaultConfig:
    """
    Load MediaVaultConfig from file, environment, and overrides.

    **Precedence:** file < environment < overrides

    Raises:
        ValueError: If the file cannot be read or the result fails validation
    """
    data: dict[str, Any] = {}

    if path:
        data = _read_file(path)
        _LOGGER.info("Loaded config from %s", path)

    data = _merge_env_overrides(data, env_prefix)
    data = _merge_overrides(data, overrides)

    config = MediaVaultConfig.model_validate(data)
    _LOGGER.debug("Configuration validated. Config hash: %s...", config.config_hash()[:8])
    return config


def export_config_schema() -> dict[str, Any]:
    """Export the JSON Schema for MediaVaultConfig."""
    return MediaVaultConfig.model_json_schema()
