"""High-level entry point wiring the asset store components together.

Usage::

    async with AssetManager.from_config("project-1", load_config("mediavault.yaml")) as assets:
        token = await assets.insert(photo_bytes, "photo.jpg")   # "asset://<id>/photo.jpg"
        html = await assets.resolve_text(f"<img src='{token}'>")  # handle URL substituted
        await assets.upload_pending()

Every component receives its collaborators through its constructor; there is
no module-level registry of active managers.
"""

from __future__ import annotations

import logging
from pathlib import PurePosixPath
from typing import Dict, List, Mapping, Optional

from MediaVault.config.models import MediaVaultConfig
from MediaVault.errors import StorageError
from MediaVault.handles import HandleCache
from MediaVault.identity import compute_hash_async, hash_to_uuid
from MediaVault.media import guess_mime, is_media_path
from MediaVault.models import (
    ArtifactRecord,
    FetchResult,
    ResolveOptions,
    StoreStats,
    UploadResult,
)
from MediaVault.references import ReferenceResolver, extract_references, make_reference
from MediaVault.remote import AssetRemote, HttpAssetRemote
from MediaVault.store import ContentStore
from MediaVault.sync import AvailabilityListener, SyncReconciler

logger = logging.getLogger(__name__)


class AssetManager:
    """Offline-first asset management for one project."""

    def __init__(
        self,
        project_id: str,
        config: Optional[MediaVaultConfig] = None,
        *,
        remote: Optional[AssetRemote] = None,
        on_asset_available: Optional[AvailabilityListener] = None,
        store: Optional[ContentStore] = None,
    ):
        self.project_id = project_id
        self.config = config or MediaVaultConfig()
        self.store = store or ContentStore(
            self.config.store.path,
            project_id,
            wal_mode=self.config.store.wal_mode,
        )
        self.handles = HandleCache(self.store)
        self.reconciler = SyncReconciler(
            self.store,
            self.handles,
            remote=remote,
            on_asset_available=on_asset_available,
            hash_offload_bytes=self.config.store.hash_offload_bytes,
        )
        self.resolver = ReferenceResolver(self.handles, self.reconciler, self.config.placeholder)
        self._owned_remote: Optional[HttpAssetRemote] = None

    @classmethod
    def from_config(
        cls,
        project_id: str,
        config: MediaVaultConfig,
        *,
        on_asset_available: Optional[AvailabilityListener] = None,
    ) -> "AssetManager":
        """Build a manager, with an HTTP remote when ``remote.base_url`` is set."""
        remote = HttpAssetRemote(config.remote) if config.remote.base_url else None
        manager = cls(project_id, config, remote=remote, on_asset_available=on_asset_available)
        manager._owned_remote = remote
        return manager

    @property
    def remote(self) -> Optional[AssetRemote]:
        return self.reconciler.remote

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def init(self) -> None:
        """Open the local store. Must be awaited before any other call."""
        await self.store.init()
        logger.info("Asset manager initialized for project %s", self.project_id)

    async def shutdown(self) -> None:
        """Let in-flight fetches finish, revoke all handles and close the store."""
        await self.reconciler.wait_idle()
        revoked = self.handles.revoke_all()
        await self.store.close()
        if self._owned_remote is not None:
            await self._owned_remote.aclose()
            self._owned_remote = None
        logger.info("Asset manager shut down (%d handles revoked)", revoked)

    async def __aenter__(self) -> "AssetManager":
        await self.init()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.shutdown()

    # ------------------------------------------------------------------
    # Insertion
    # ------------------------------------------------------------------

    async def _new_record(
        self,
        data: bytes,
        filename: Optional[str],
        mime: Optional[str],
        original_path: Optional[str] = None,
    ) -> ArtifactRecord:
        digest = await compute_hash_async(data, self.config.store.hash_offload_bytes)
        return ArtifactRecord(
            id=hash_to_uuid(digest),
            project_id=self.project_id,
            payload=data,
            mime=mime or guess_mime(filename),
            size=len(data),
            hash=digest,
            filename=filename,
            original_path=original_path,
        )

    async def insert(self, data: bytes, filename: str, mime: Optional[str] = None) -> str:
        """Store ``data`` and return its ``asset://<id>/<filename>`` reference.

        Inserting identical bytes again returns the same id without creating
        a second record; the stored filename is kept.
        """
        logger.info("Inserting asset: %s (%d bytes, %s)", filename, len(data), mime or "?")
        record = await self._new_record(data, filename, mime)
        stored, created = await self.store.register_or_get(record)
        if created:
            logger.info("Stored new asset %s", stored.id)
        else:
            logger.info("Asset already exists: %s", stored.id)
        return make_reference(stored.id, stored.filename or filename)

    async def register_files(self, files: Mapping[str, bytes]) -> Dict[str, str]:
        """Bulk-register package media files; returns ``path -> asset id``.

        Non-media entries are skipped. Content already stored under another
        project is copied into a new record for this project. A file that
        fails to store is logged and left out of the mapping.
        """
        asset_map: Dict[str, str] = {}
        candidates = [path for path in files if is_media_path(path)]
        logger.info("Registering %d media files", len(candidates))

        for path in candidates:
            data = files[path]
            filename = PurePosixPath(path).name
            try:
                record = await self._new_record(data, filename, guess_mime(path), original_path=path)
                if not await self.store.has(record.id):
                    other = await self.store.find_by_id_any_project(record.id)
                    if other is not None:
                        logger.info(
                            "Asset %s... exists in project %s, copying into %s",
                            record.id[:8],
                            other.project_id,
                            self.project_id,
                        )
                        record = other.copy_for_project(
                            self.project_id, filename=filename, original_path=path
                        )
                await self.store.register_or_get(record)
            except StorageError:
                logger.exception("Failed to register %s", path)
                continue
            asset_map[path] = record.id
            logger.debug("Registered %s -> %s...", path, record.id[:8])

        return asset_map

    # ------------------------------------------------------------------
    # Lookup and metadata
    # ------------------------------------------------------------------

    async def get_asset(self, asset_id: str) -> Optional[ArtifactRecord]:
        return await self.store.get(asset_id)

    async def read_asset(self, asset_id: str) -> bytes:
        """Return the payload of a stored asset.

        Raises:
            AssetNotFoundError: If the project has no such asset
        """
        record = await self.store.require(asset_id)
        return record.payload

    async def has_asset(self, asset_id: str) -> bool:
        return await self.store.has(asset_id)

    async def list_assets(self) -> List[ArtifactRecord]:
        return await self.store.list_by_project(self.project_id)

    async def all_asset_ids(self) -> List[str]:
        return await self.store.all_ids()

    async def stats(self) -> StoreStats:
        return await self.store.stats()

    async def update_filename(self, asset_id: str, filename: str) -> Optional[ArtifactRecord]:
        record = await self.store.update_metadata(asset_id, filename=filename)
        if record is None:
            logger.warning("Cannot update filename for %s: not found", asset_id)
        else:
            logger.info("Updated filename for %s to %s", asset_id, filename)
        return record

    async def preload_all(self) -> int:
        """Create handles for every project asset so sync resolution hits the cache."""
        count = 0
        for record in await self.store.list_by_project(self.project_id):
            if record.id not in self.handles:
                self.handles.materialize(record)
                count += 1
        logger.info("Preloaded %d assets", count)
        return count

    async def delete(self, asset_id: str) -> bool:
        """Delete an asset and revoke its handle. Missing ids only log a warning."""
        self.handles.revoke(asset_id)
        removed = await self.store.delete(asset_id)
        if not removed:
            logger.warning("Cannot delete asset %s: not found", asset_id)
        return removed

    async def clear_project(self) -> int:
        asset_ids = await self.store.all_ids()
        for asset_id in asset_ids:
            await self.delete(asset_id)
        logger.info("Cleared %d assets", len(asset_ids))
        return len(asset_ids)

    # ------------------------------------------------------------------
    # Text resolution
    # ------------------------------------------------------------------

    async def resolve_text(self, text: Optional[str], options: Optional[ResolveOptions] = None) -> Optional[str]:
        return await self.resolver.resolve_text(text, options)

    def resolve_text_sync(self, text: Optional[str], options: Optional[ResolveOptions] = None) -> Optional[str]:
        return self.resolver.resolve_text_sync(text, options)

    def unresolve_text(self, text: Optional[str]) -> Optional[str]:
        return self.resolver.unresolve_text(text)

    @staticmethod
    def extract_references(text: Optional[str]) -> List[str]:
        return extract_references(text)

    @staticmethod
    def convert_context_paths(text: Optional[str], asset_map: Mapping[str, str]) -> Optional[str]:
        return ReferenceResolver.convert_context_paths(text, asset_map)

    # ------------------------------------------------------------------
    # Synchronisation
    # ------------------------------------------------------------------

    def missing_ids(self) -> List[str]:
        return self.reconciler.missing_ids()

    async def upload_pending(self, remote: Optional[AssetRemote] = None) -> UploadResult:
        return await self.reconciler.upload_pending(remote)

    async def fetch_missing(self, remote: Optional[AssetRemote] = None) -> FetchResult:
        return await self.reconciler.fetch_missing(remote)

    async def download_remote_listing(self, remote: Optional[AssetRemote] = None) -> FetchResult:
        return await self.reconciler.download_remote_listing(remote)
