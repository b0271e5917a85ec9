"""Data transfer objects for the asset store.

Records and batch results are plain dataclasses; per-call option structs
are pydantic models so unknown fields are rejected at the call site.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import ClassVar, Optional

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    "ArtifactRecord",
    "FetchResult",
    "RemoteAsset",
    "ResolveOptions",
    "ResolvedUrl",
    "StoreStats",
    "UploadResult",
    "utcnow",
]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ArtifactRecord:
    """One stored asset, scoped to a project.

    ``payload``, ``hash`` and ``id`` never change after creation; only
    ``filename``, ``mime`` and ``uploaded`` are mutable metadata.
    """

    id: str
    project_id: str
    payload: bytes = field(repr=False)
    mime: str
    size: int
    hash: str
    filename: Optional[str] = None
    original_path: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    uploaded: bool = False

    def copy_for_project(self, project_id: str, **changes) -> "ArtifactRecord":
        """Return a fresh, not-yet-uploaded record sharing this payload."""
        changes.setdefault("uploaded", False)
        changes.setdefault("created_at", utcnow())
        return replace(self, project_id=project_id, **changes)


@dataclass(frozen=True)
class RemoteAsset:
    """Payload plus metadata as exchanged with a remote."""

    asset_id: str
    payload: bytes = field(repr=False)
    mime: Optional[str] = None
    hash: Optional[str] = None
    size: Optional[int] = None
    filename: Optional[str] = None


@dataclass(frozen=True)
class UploadResult:
    uploaded: int = 0
    failed: int = 0
    bytes: int = 0


@dataclass(frozen=True)
class FetchResult:
    downloaded: int = 0
    failed: int = 0


@dataclass(frozen=True)
class StoreStats:
    total: int = 0
    pending: int = 0
    uploaded: int = 0
    total_size: int = 0


@dataclass(frozen=True)
class ResolvedUrl:
    """Outcome of resolving a single reference token."""

    url: str
    is_placeholder: bool
    asset_id: str


class ResolveOptions(BaseModel):
    """Options for text resolution."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid", frozen=True)

    use_placeholder: bool = Field(
        default=True,
        description="Substitute a status placeholder for unresolved tokens (else leave them)",
    )
    add_tracking: bool = Field(
        default=False,
        description=(
            "Add data-asset-id attributes to <img> tags so views can be refreshed. "
            "Off by default on both the async and the cache-only path; views that "
            "re-render once fetches land should pass True."
        ),
    )
    fetch_missing: bool = Field(
        default=True,
        description="Schedule a background fetch for tokens missing locally (async path only)",
    )
