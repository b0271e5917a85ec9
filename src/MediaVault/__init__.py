"""
Offline-first, content-addressed asset store.

Binary assets (images, audio, video, documents) referenced from document
text as ``asset://<id>`` tokens are stored locally in SQLite, addressed by
a UUID-shaped prefix of their SHA-256 digest, exposed to renderers through
revocable in-process handles, and reconciled with a remote service.
"""

from __future__ import annotations

from MediaVault.errors import (
    AssetNotFoundError,
    HandleRevokedError,
    MediaVaultError,
    NotInitializedError,
    StorageError,
    TransportError,
)
from MediaVault.handles import Handle, HandleCache
from MediaVault.identity import compute_hash, hash_to_uuid, identify
from MediaVault.manager import AssetManager
from MediaVault.models import (
    ArtifactRecord,
    FetchResult,
    RemoteAsset,
    ResolvedUrl,
    ResolveOptions,
    StoreStats,
    UploadResult,
)
from MediaVault.references import ReferenceResolver, extract_references
from MediaVault.remote import AssetRemote, HttpAssetRemote
from MediaVault.store import ContentStore
from MediaVault.sync import SyncReconciler

__version__ = "1.0.0"
__all__ = [
    "ArtifactRecord",
    "AssetManager",
    "AssetNotFoundError",
    "AssetRemote",
    "ContentStore",
    "FetchResult",
    "Handle",
    "HandleCache",
    "HandleRevokedError",
    "HttpAssetRemote",
    "MediaVaultError",
    "NotInitializedError",
    "ReferenceResolver",
    "RemoteAsset",
    "ResolveOptions",
    "ResolvedUrl",
    "StorageError",
    "StoreStats",
    "SyncReconciler",
    "TransportError",
    "UploadResult",
    "compute_hash",
    "extract_references",
    "hash_to_uuid",
    "identify",
]
