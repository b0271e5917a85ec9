"""Configuration models and loader for MediaVault."""

from __future__ import annotations

from .loader import export_config_schema, load_config
from .models import (
    LoggingConfig,
    MediaVaultConfig,
    PlaceholderConfig,
    RemoteConfig,
    StoreConfig,
)

__all__ = [
    "LoggingConfig",
    "MediaVaultConfig",
    "PlaceholderConfig",
    "RemoteConfig",
    "StoreConfig",
    "export_config_schema",
    "load_config",
]
