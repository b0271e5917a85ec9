"""Tests for configuration models and loader precedence."""

from __future__ import annotations

import json
import os

import pytest
from pydantic import ValidationError

from MediaVault.config import (
    MediaVaultConfig,
    RemoteConfig,
    export_config_schema,
    load_config,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Drop any MEDIAVAULT_* variables from the developer's shell."""
    for key in list(os.environ):
        if key.startswith("MEDIAVAULT_"):
            monkeypatch.delenv(key)


class TestModels:
    """Validation rules."""

    def test_defaults(self):
        config = MediaVaultConfig()

        assert config.store.wal_mode is True
        assert config.remote.base_url is None
        assert config.placeholder.width == 300
        assert config.placeholder.height == 200
        assert config.logging.level == "INFO"

    def test_extra_fields_forbidden(self):
        with pytest.raises(ValidationError):
            MediaVaultConfig.model_validate({"store": {"unknown": 1}})

    def test_base_url_normalized(self):
        assert RemoteConfig(base_url="https://host/api/").base_url == "https://host/api"

    def test_base_url_must_be_http(self):
        with pytest.raises(ValidationError):
            RemoteConfig(base_url="ftp://host")

    def test_timeouts_positive(self):
        with pytest.raises(ValidationError):
            RemoteConfig(timeout_read_s=0)

    def test_log_level_case_insensitive(self):
        config = MediaVaultConfig.model_validate({"logging": {"level": "debug"}})

        assert config.logging.level == "DEBUG"

    def test_config_hash_ignores_token(self):
        first = MediaVaultConfig.model_validate({"remote": {"token": "a"}})
        second = MediaVaultConfig.model_validate({"remote": {"token": "b"}})

        assert first.config_hash() == second.config_hash()
        assert first.config_hash() != MediaVaultConfig(
            store={"path": "elsewhere.sqlite"}
        ).config_hash()


class TestLoader:
    """File < env < overrides."""

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "mediavault.yaml"
        path.write_text("store:\n  path: data/assets.sqlite\nremote:\n  base_url: https://h/api\n")

        config = load_config(path)

        assert config.store.path == "data/assets.sqlite"
        assert config.remote.base_url == "https://h/api"

    def test_json_file(self, tmp_path):
        path = tmp_path / "mediavault.json"
        path.write_text(json.dumps({"placeholder": {"width": 640}}))

        assert load_config(path).placeholder.width == 640

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "mediavault.yaml"
        path.write_text("store:\n  wal_mode: true\n")
        monkeypatch.setenv("MEDIAVAULT_STORE__WAL_MODE", "false")
        monkeypatch.setenv("MEDIAVAULT_REMOTE__TIMEOUT_READ_S", "5")

        config = load_config(path)

        assert config.store.wal_mode is False
        assert config.remote.timeout_read_s == 5

    def test_overrides_win(self, monkeypatch):
        monkeypatch.setenv("MEDIAVAULT_STORE__PATH", "from-env.sqlite")

        config = load_config(overrides={"store": {"path": "from-cli.sqlite"}})

        assert config.store.path == "from-cli.sqlite"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ValueError, match="not found"):
            load_config(tmp_path / "absent.yaml")

    def test_unsupported_suffix(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text("x = 1")

        with pytest.raises(ValueError, match="Unsupported"):
            load_config(path)

    def test_non_mapping_file(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ValueError, match="mapping"):
            load_config(path)

    def test_schema_export(self):
        schema = export_config_schema()

        assert "store" in schema["properties"]
        assert "remote" in schema["properties"]
