"""CLI commands for the asset store.

Provides commands for managing a project's local assets:
  - add: Store files and print their asset:// references
  - list: Show stored assets
  - stats: Summarise counts and sizes
  - delete: Remove an asset
  - export: Write an asset's bytes to a file
  - refs: Report which references in a text file are available locally
  - upload: Push pending assets to the remote
  - fetch: Download specific assets from the remote
  - pull: Download everything the remote has that is missing locally
  - config-schema: Print the configuration JSON schema
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

import typer

from MediaVault.config import MediaVaultConfig, export_config_schema, load_config
from MediaVault.errors import MediaVaultError
from MediaVault.logging_config import setup_logging
from MediaVault.manager import AssetManager
from MediaVault.media import format_file_size

logger = logging.getLogger(__name__)
app = typer.Typer(help="Offline-first asset store commands")

T = TypeVar("T")

ProjectOption = typer.Option(..., "--project", "-p", help="Project identifier")
ConfigOption = typer.Option(None, "--config", "-c", help="Config file path (YAML/JSON)")


def _load(config_path: Optional[str]) -> MediaVaultConfig:
    config = load_config(path=config_path)
    setup_logging(config.logging)
    return config


def _run(
    project: str,
    config_path: Optional[str],
    action: Callable[[AssetManager], Awaitable[T]],
) -> T:
    """Run ``action`` against an initialized manager, exiting 1 on failure."""

    async def runner() -> T:
        config = _load(config_path)
        async with AssetManager.from_config(project, config) as manager:
            return await action(manager)

    try:
        return asyncio.run(runner())
    except (MediaVaultError, ValueError, OSError) as e:
        typer.echo(f"✗ Error: {e}", err=True)
        raise typer.Exit(1)


@app.command()
def add(
    files: List[Path] = typer.Argument(..., help="Files to store", exists=True, dir_okay=False),
    project: str = ProjectOption,
    config_path: Optional[str] = ConfigOption,
) -> None:
    """Store files and print their asset:// references."""

    async def action(manager: AssetManager) -> List[str]:
        return [await manager.insert(path.read_bytes(), path.name) for path in files]

    for token in _run(project, config_path, action):
        typer.echo(token)


@app.command("list")
def list_assets(
    project: str = ProjectOption,
    config_path: Optional[str] = ConfigOption,
    as_json: bool = typer.Option(False, "--json", help="Emit JSON"),
) -> None:
    """Show stored assets for a project."""
    records = _run(project, config_path, lambda manager: manager.list_assets())

    if as_json:
        rows: List[dict[str, Any]] = [
            {
                "id": r.id,
                "filename": r.filename,
                "mime": r.mime,
                "size": r.size,
                "uploaded": r.uploaded,
                "created_at": r.created_at.isoformat(),
            }
            for r in records
        ]
        typer.echo(json.dumps(rows, indent=2))
        return

    if not records:
        typer.echo("No assets stored")
        return
    for r in records:
        state = "uploaded" if r.uploaded else "pending"
        typer.echo(f"{r.id}  {format_file_size(r.size):>10}  {state:8}  {r.mime}  {r.filename or ''}")


@app.command()
def stats(
    project: str = ProjectOption,
    config_path: Optional[str] = ConfigOption,
) -> None:
    """Summarise stored asset counts and sizes."""
    result = _run(project, config_path, lambda manager: manager.stats())
    typer.echo(f"Total:    {result.total}")
    typer.echo(f"Pending:  {result.pending}")
    typer.echo(f"Uploaded: {result.uploaded}")
    typer.echo(f"Size:     {format_file_size(result.total_size)}")


@app.command()
def delete(
    asset_id: str = typer.Argument(..., help="Asset id"),
    project: str = ProjectOption,
    config_path: Optional[str] = ConfigOption,
) -> None:
    """Delete an asset."""
    removed = _run(project, config_path, lambda manager: manager.delete(asset_id))
    if removed:
        typer.echo(f"✓ Deleted {asset_id}")
    else:
        typer.echo(f"Asset {asset_id} not found")


@app.command()
def export(
    asset_id: str = typer.Argument(..., help="Asset id"),
    output: Path = typer.Argument(..., help="Destination file", dir_okay=False),
    project: str = ProjectOption,
    config_path: Optional[str] = ConfigOption,
) -> None:
    """Write an asset's bytes to a file."""
    payload = _run(project, config_path, lambda manager: manager.read_asset(asset_id))
    output.write_bytes(payload)
    typer.echo(f"✓ Wrote {format_file_size(len(payload))} to {output}")


@app.command()
def refs(
    text_file: Path = typer.Argument(..., help="Text/HTML file to scan", exists=True, dir_okay=False),
    project: str = ProjectOption,
    config_path: Optional[str] = ConfigOption,
) -> None:
    """Report which asset references in a file are available locally."""
    text = text_file.read_text(encoding="utf-8")
    asset_ids = AssetManager.extract_references(text)

    async def action(manager: AssetManager) -> List[str]:
        return await manager.reconciler.missing_among(asset_ids)

    missing = set(_run(project, config_path, action))
    for asset_id in asset_ids:
        typer.echo(f"{asset_id}  {'missing' if asset_id in missing else 'ok'}")
    if missing:
        raise typer.Exit(2)


def _require_remote(manager: AssetManager) -> None:
    if manager.remote is None:
        raise ValueError("remote.base_url is not configured")


@app.command()
def upload(
    project: str = ProjectOption,
    config_path: Optional[str] = ConfigOption,
) -> None:
    """Upload pending assets to the remote in one batch."""

    async def action(manager: AssetManager):
        _require_remote(manager)
        return await manager.upload_pending()

    result = _run(project, config_path, action)
    typer.echo(
        f"✓ uploaded {result.uploaded}, failed {result.failed} ({format_file_size(result.bytes)})"
    )
    if result.failed:
        raise typer.Exit(1)


@app.command()
def fetch(
    asset_ids: List[str] = typer.Argument(..., help="Asset ids to download"),
    project: str = ProjectOption,
    config_path: Optional[str] = ConfigOption,
) -> None:
    """Download specific assets from the remote."""

    async def action(manager: AssetManager):
        _require_remote(manager)
        for asset_id in await manager.reconciler.missing_among(asset_ids):
            manager.reconciler.mark_missing(asset_id)
        return await manager.fetch_missing()

    result = _run(project, config_path, action)
    typer.echo(f"✓ downloaded {result.downloaded}, failed {result.failed}")
    if result.failed:
        raise typer.Exit(1)


@app.command()
def pull(
    project: str = ProjectOption,
    config_path: Optional[str] = ConfigOption,
) -> None:
    """Download every remote asset that is missing locally."""

    async def action(manager: AssetManager):
        _require_remote(manager)
        return await manager.download_remote_listing()

    result = _run(project, config_path, action)
    typer.echo(f"✓ downloaded {result.downloaded}, failed {result.failed}")
    if result.failed:
        raise typer.Exit(1)


@app.command("config-schema")
def config_schema() -> None:
    """Print the JSON schema of the configuration file."""
    typer.echo(json.dumps(export_config_schema(), indent=2))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
