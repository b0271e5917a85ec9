"""Tests for the mediavault CLI using typer's CliRunner."""

from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from MediaVault.cli import app
from MediaVault.identity import identify
from tests.media_vault.fakes import JPEG_BYTES, PNG_BYTES

runner = CliRunner()


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    """Point the store at a temp database and keep the environment clean."""
    for key in ("MEDIAVAULT_REMOTE__BASE_URL", "MEDIAVAULT_REMOTE__TOKEN"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("MEDIAVAULT_STORE__PATH", str(tmp_path / "cli.sqlite"))
    monkeypatch.setenv("MEDIAVAULT_STORE__WAL_MODE", "false")
    monkeypatch.setenv("MEDIAVAULT_LOGGING__LEVEL", "WARNING")
    return tmp_path


def _write(tmp_path, name: str, data: bytes):
    path = tmp_path / name
    path.write_bytes(data)
    return path


class TestAssetCommands:
    """add / list / stats / delete."""

    def test_add_prints_reference(self, cli_env):
        photo = _write(cli_env, "photo.jpg", JPEG_BYTES)

        result = runner.invoke(app, ["add", str(photo), "--project", "p1"])

        assert result.exit_code == 0, result.output
        assert f"asset://{identify(JPEG_BYTES)}/photo.jpg" in result.output

    def test_list_and_stats(self, cli_env):
        photo = _write(cli_env, "photo.jpg", JPEG_BYTES)
        icon = _write(cli_env, "icon.png", PNG_BYTES)
        runner.invoke(app, ["add", str(photo), str(icon), "-p", "p1"])

        listed = runner.invoke(app, ["list", "-p", "p1", "--json"])
        stats = runner.invoke(app, ["stats", "-p", "p1"])

        assert listed.exit_code == 0, listed.output
        rows = json.loads(listed.output)
        assert {row["filename"] for row in rows} == {"photo.jpg", "icon.png"}
        assert all(row["uploaded"] is False for row in rows)
        assert "Total:    2" in stats.output
        assert "Pending:  2" in stats.output

    def test_list_empty(self, cli_env):
        result = runner.invoke(app, ["list", "-p", "empty"])

        assert result.exit_code == 0
        assert "No assets stored" in result.output

    def test_delete(self, cli_env):
        photo = _write(cli_env, "photo.jpg", JPEG_BYTES)
        runner.invoke(app, ["add", str(photo), "-p", "p1"])

        deleted = runner.invoke(app, ["delete", identify(JPEG_BYTES), "-p", "p1"])
        again = runner.invoke(app, ["delete", identify(JPEG_BYTES), "-p", "p1"])

        assert "✓ Deleted" in deleted.output
        assert "not found" in again.output


class TestExport:
    """Writing payloads back out."""

    def test_export_writes_payload(self, cli_env):
        photo = _write(cli_env, "photo.jpg", JPEG_BYTES)
        runner.invoke(app, ["add", str(photo), "-p", "p1"])
        target = cli_env / "out.jpg"

        result = runner.invoke(app, ["export", identify(JPEG_BYTES), str(target), "-p", "p1"])

        assert result.exit_code == 0, result.output
        assert target.read_bytes() == JPEG_BYTES

    def test_export_unknown_asset(self, cli_env):
        target = cli_env / "out.jpg"

        result = runner.invoke(app, ["export", "nope", str(target), "-p", "p1"])

        assert result.exit_code == 1
        assert "✗ Error: Asset nope not found in project p1" in result.output
        assert not target.exists()


class TestRefs:
    """Reference reporting."""

    def test_reports_missing(self, cli_env):
        photo = _write(cli_env, "photo.jpg", JPEG_BYTES)
        runner.invoke(app, ["add", str(photo), "-p", "p1"])
        page = cli_env / "page.html"
        page.write_text(
            f'<img src="asset://{identify(JPEG_BYTES)}/photo.jpg"><img src="asset://{identify(PNG_BYTES)}">'
        )

        result = runner.invoke(app, ["refs", str(page), "-p", "p1"])

        assert result.exit_code == 2
        assert f"{identify(JPEG_BYTES)}  ok" in result.output
        assert f"{identify(PNG_BYTES)}  missing" in result.output


class TestSyncCommands:
    """Commands that need a remote."""

    @pytest.mark.parametrize("command", [["upload"], ["fetch", "abc"], ["pull"]])
    def test_requires_remote(self, cli_env, command):
        result = runner.invoke(app, [*command, "-p", "p1"])

        assert result.exit_code == 1
        assert "remote.base_url is not configured" in result.output


class TestConfigCommands:
    """Config handling."""

    def test_config_schema(self):
        result = runner.invoke(app, ["config-schema"])

        assert result.exit_code == 0
        assert "remote" in json.loads(result.output)["properties"]

    def test_bad_config_file(self, cli_env):
        result = runner.invoke(app, ["stats", "-p", "p1", "-c", str(cli_env / "absent.yaml")])

        assert result.exit_code == 1
        assert "✗ Error" in result.output
