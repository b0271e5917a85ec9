"""Shared fixtures for the asset store tests.

Async components are driven from plain synchronous tests through
``tests.media_vault.fakes.run``, which executes a coroutine on a fresh
event loop.
"""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Any

import pytest

from MediaVault.config import MediaVaultConfig
from MediaVault.store import ContentStore
from tests.media_vault.fakes import FakeRemote


@pytest.fixture
def temp_db():
    """Create a temporary SQLite database path."""
    with tempfile.TemporaryDirectory() as tmp:
        yield str(Path(tmp) / "assets.sqlite")


@pytest.fixture
def config(temp_db) -> MediaVaultConfig:
    return MediaVaultConfig.model_validate({"store": {"path": temp_db, "wal_mode": False}})


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def store_factory(temp_db):
    """Build stores on the shared temp database; each test opens and closes them."""

    def factory(project_id: str = "project-1", **kwargs: Any) -> ContentStore:
        return ContentStore(temp_db, project_id, wal_mode=False, **kwargs)

    return factory
