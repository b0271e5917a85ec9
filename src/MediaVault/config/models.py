"""
Pydantic v2 Configuration Models for MediaVault

Provides strict, typed configuration for the asset store subsystems:
- Local store settings (SQLite path, journaling, hashing offload)
- Remote sync settings (base URL, token, timeouts, TLS)
- Placeholder rendering
- Logging
- Top-level MediaVaultConfig as single source of truth

All models use extra="forbid" for strict validation. Environment variables
and programmatic overrides follow: file < env < overrides precedence.
"""

from __future__ import annotations

import hashlib
import json
from typing import ClassVar, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class StoreConfig(BaseModel):
    """Local durable store configuration."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    path: str = Field(
        default="state/mediavault.sqlite",
        description="SQLite database file path (':memory:' for an ephemeral store)",
    )
    wal_mode: bool = Field(default=True, description="Enable WAL mode for SQLite")
    hash_offload_bytes: int = Field(
        default=1 << 20,
        description="Payloads larger than this are hashed in a worker thread",
    )

    @field_validator("hash_offload_bytes")
    @classmethod
    def validate_offload(cls, v: int) -> int:
        if v < 0:
            raise ValueError("hash_offload_bytes must be >= 0")
        return v


class RemoteConfig(BaseModel):
    """Remote asset service used for upload/fetch reconciliation."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    base_url: Optional[str] = Field(
        default=None,
        description="API base URL, e.g. https://host/api (None = offline only)",
    )
    token: Optional[str] = Field(default=None, description="Bearer token sent with requests")
    timeout_connect_s: float = Field(default=10.0, description="Connection timeout in seconds")
    timeout_read_s: float = Field(default=60.0, description="Read timeout in seconds")
    verify_tls: bool = Field(default=True, description="Verify TLS certificates")
    user_agent: str = Field(default="MediaVault/1.0", description="User-Agent string")

    @field_validator("timeout_connect_s", "timeout_read_s")
    @classmethod
    def validate_timeouts(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Timeouts must be > 0")
        return v

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().rstrip("/")
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must be an http(s) URL")
        return v


class PlaceholderConfig(BaseModel):
    """Placeholder graphic settings."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    width: int = Field(default=300, description="Canvas width in px")
    height: int = Field(default=200, description="Canvas height in px")
    loading_text: str = Field(default="Loading...")
    error_text: str = Field(default="Error loading asset")
    notfound_text: str = Field(default="Image not found")

    @field_validator("width", "height")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Must be > 0")
        return v


class LoggingConfig(BaseModel):
    """Logging configuration."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    json_format: bool = Field(default=False, description="Emit JSON lines instead of plain text")

    @field_validator("level", mode="before")
    @classmethod
    def upper_level(cls, v: object) -> object:
        return v.upper() if isinstance(v, str) else v


class MediaVaultConfig(BaseModel):
    """
    Single source of truth for MediaVault configuration.

    Loaded from file (YAML/JSON), overlaid with environment variables,
    and finally overridden programmatically. Precedence: file < env < overrides.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid", validate_assignment=True)

    store: StoreConfig = Field(default_factory=StoreConfig, description="Local store")
    remote: RemoteConfig = Field(default_factory=RemoteConfig, description="Remote sync")
    placeholder: PlaceholderConfig = Field(
        default_factory=PlaceholderConfig, description="Placeholder rendering"
    )
    logging: LoggingConfig = Field(default_factory=LoggingConfig, description="Logging")

    def config_hash(self) -> str:
        """
        Compute deterministic SHA256 hash of config for reproducibility.

        The remote token is excluded so the hash can be logged.
        """
        data = self.model_dump(mode="json")
        data["remote"].pop("token", None)
        normalized = json.dumps(data, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(normalized.encode()).hexdigest()
