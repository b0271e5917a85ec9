"""Reconciliation of local assets with a remote copy.

:class:`SyncReconciler` tracks four populations:

- *pending upload*: local records with ``uploaded = False`` (kept in the store)
- *missing*: ids referenced in content but absent locally (``MissingSet``)
- *in flight*: ids with a fetch currently running (``PendingFetchSet``)
- *failed*: missing ids whose last fetch failed; shown with the error
  placeholder and only retried by an explicit :meth:`SyncReconciler.fetch_missing`

Every fetch goes through :meth:`SyncReconciler.schedule_fetch`, which adds
the id to the in-flight map before the first suspension point. Under a
single event loop that makes check-then-insert atomic, so concurrent
requests for the same id share one network transfer.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Dict, Iterable, List, Literal, Optional, Set, Union

from MediaVault.errors import TransportError, log_sync_failure
from MediaVault.handles import HandleCache
from MediaVault.identity import compute_hash_async, hash_to_uuid
from MediaVault.media import DEFAULT_MIME, guess_mime
from MediaVault.models import ArtifactRecord, FetchResult, RemoteAsset, UploadResult
from MediaVault.remote import AssetRemote
from MediaVault.store import ContentStore

logger = logging.getLogger(__name__)

FetchOutcome = Literal["downloaded", "local", "failed"]
AvailabilityListener = Callable[[str], Union[None, Awaitable[None]]]


class SyncReconciler:
    """Upload pending assets and fetch missing ones, one transfer per id."""

    def __init__(
        self,
        store: ContentStore,
        handles: HandleCache,
        *,
        remote: Optional[AssetRemote] = None,
        on_asset_available: Optional[AvailabilityListener] = None,
        hash_offload_bytes: int = 1 << 20,
    ):
        self.store = store
        self.handles = handles
        self.remote = remote
        self.on_asset_available = on_asset_available
        self.hash_offload_bytes = hash_offload_bytes
        self._missing: Set[str] = set()
        self._in_flight: Dict[str, asyncio.Task] = {}
        self._failed: Set[str] = set()

    @property
    def project_id(self) -> str:
        return self.store.project_id

    @property
    def can_fetch(self) -> bool:
        return self.remote is not None

    # ------------------------------------------------------------------
    # Missing / in-flight bookkeeping
    # ------------------------------------------------------------------

    def mark_missing(self, asset_id: str) -> None:
        self._missing.add(asset_id)

    def missing_ids(self) -> List[str]:
        return sorted(self._missing)

    def has_missing(self) -> bool:
        return bool(self._missing)

    def is_pending(self, asset_id: str) -> bool:
        return asset_id in self._in_flight

    def is_failed(self, asset_id: str) -> bool:
        """True when the last fetch of ``asset_id`` failed and it has not arrived since.

        Failed ids are not fetched again on resolution; :meth:`fetch_missing`
        retries them.
        """
        return asset_id in self._failed

    def schedule_fetch(
        self, asset_id: str, remote: Optional[AssetRemote] = None
    ) -> Optional[asyncio.Task]:
        """Start a background fetch for ``asset_id`` unless one is running.

        Returns the in-flight task (existing or new), or None when there is
        no remote to fetch from or a handle for the id is already cached.
        Must be called from the event loop thread.
        """
        existing = self._in_flight.get(asset_id)
        if existing is not None:
            return existing
        remote = remote or self.remote
        if remote is None or asset_id in self.handles:
            return None
        task = asyncio.get_running_loop().create_task(
            self._fetch_bracketed(asset_id, remote), name=f"mediavault-fetch-{asset_id}"
        )
        self._in_flight[asset_id] = task
        return task

    async def _fetch_bracketed(self, asset_id: str, remote: AssetRemote) -> FetchOutcome:
        try:
            return await self._fetch_one(asset_id, remote)
        except Exception as exc:
            log_sync_failure(logger, "fetch", asset_id, exc)
            self._failed.add(asset_id)
            return "failed"
        finally:
            self._in_flight.pop(asset_id, None)

    async def _fetch_one(self, asset_id: str, remote: AssetRemote) -> FetchOutcome:
        local = await self.store.get(asset_id)
        if local is not None:
            self._mark_available(local)
            await self._notify(asset_id)
            logger.debug("Asset %s... appeared locally, skipping fetch", asset_id[:8])
            return "local"

        logger.debug("Fetching asset %s... from remote", asset_id[:8])
        asset = await remote.fetch_asset(self.project_id, asset_id)
        record = await self._record_from_remote(asset)
        await self.store.put(record)
        self._mark_available(record)
        await self._notify(asset_id)
        logger.info("Downloaded and cached asset %s...", asset_id[:8])
        return "downloaded"

    def _mark_available(self, record: ArtifactRecord) -> None:
        self.handles.materialize(record)
        self._missing.discard(record.id)
        self._failed.discard(record.id)

    async def _notify(self, asset_id: str) -> None:
        if self.on_asset_available is None:
            return
        try:
            result = self.on_asset_available(asset_id)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Availability listener failed for asset %s", asset_id)

    async def _record_from_remote(self, asset: RemoteAsset) -> ArtifactRecord:
        payload = asset.payload
        digest = await compute_hash_async(payload, self.hash_offload_bytes)
        if asset.hash and asset.hash.lower() != digest:
            logger.warning(
                "Hash mismatch for asset %s: remote says %s..., payload is %s...",
                asset.asset_id,
                asset.hash[:16],
                digest[:16],
            )
        if hash_to_uuid(digest) != asset.asset_id:
            logger.warning("Asset %s is not content-addressed by its payload", asset.asset_id)
        if asset.size is not None and asset.size != len(payload):
            logger.warning(
                "Size mismatch for asset %s: remote says %d, received %d",
                asset.asset_id,
                asset.size,
                len(payload),
            )

        filename = asset.filename or f"asset-{asset.asset_id}"
        mime = asset.mime
        if not mime or mime == DEFAULT_MIME:
            mime = guess_mime(filename)
        return ArtifactRecord(
            id=asset.asset_id,
            project_id=self.project_id,
            payload=payload,
            mime=mime,
            size=len(payload),
            hash=digest,
            filename=filename,
            uploaded=True,
        )

    def _require_remote(self, remote: Optional[AssetRemote]) -> AssetRemote:
        remote = remote or self.remote
        if remote is None:
            raise ValueError("No remote configured for synchronisation")
        return remote

    # ------------------------------------------------------------------
    # Batch operations
    # ------------------------------------------------------------------

    async def upload_pending(self, remote: Optional[AssetRemote] = None) -> UploadResult:
        """Push every not-yet-uploaded record in one batch.

        A transport failure fails the whole batch: nothing is marked and all
        records are reported as failed, to be retried wholesale later.
        """
        remote = self._require_remote(remote)
        pending = await self.store.list_pending()
        if not pending:
            logger.info("No pending assets to upload")
            return UploadResult()

        total_bytes = sum(record.size for record in pending)
        logger.info("Uploading %d pending assets (%d bytes)...", len(pending), total_bytes)
        try:
            accepted = await remote.upload_batch(self.project_id, pending)
        except TransportError as exc:
            log_sync_failure(logger, "upload", None, exc)
            return UploadResult(uploaded=0, failed=len(pending), bytes=0)

        if accepted != len(pending):
            logger.warning("Remote acknowledged %d of %d uploaded assets", accepted, len(pending))
        await self.store.mark_uploaded(record.id for record in pending)
        return UploadResult(uploaded=len(pending), failed=0, bytes=total_bytes)

    async def fetch_missing(self, remote: Optional[AssetRemote] = None) -> FetchResult:
        """Fetch every id in the missing set that is not already in flight.

        One id's failure never aborts the batch.
        """
        remote = self._require_remote(remote)
        if not self._missing:
            logger.debug("No missing assets to download")
            return FetchResult()

        asset_ids = self.missing_ids()
        logger.info("Downloading %d missing assets...", len(asset_ids))
        downloaded = failed = 0

        for asset_id in asset_ids:
            if self.is_pending(asset_id):
                continue
            cached = self.handles.resolve_sync(asset_id)
            if cached is not None:
                self._missing.discard(asset_id)
                continue

            task = self.schedule_fetch(asset_id, remote)
            if task is None:
                self._missing.discard(asset_id)
                continue
            outcome = await task
            if outcome == "downloaded":
                downloaded += 1
            elif outcome == "failed":
                failed += 1

        logger.info("Download complete: %d downloaded, %d failed", downloaded, failed)
        return FetchResult(downloaded=downloaded, failed=failed)

    async def download_remote_listing(self, remote: Optional[AssetRemote] = None) -> FetchResult:
        """Fetch every asset the remote lists that is absent locally."""
        remote = self._require_remote(remote)
        try:
            listing = await remote.list_assets(self.project_id)
        except TransportError as exc:
            log_sync_failure(logger, "list", None, exc)
            return FetchResult()

        remote_ids = [str(entry["id"]) for entry in listing]
        absent = await self.missing_among(remote_ids)
        if not absent:
            logger.info("All %d remote assets cached locally", len(remote_ids))
            return FetchResult()

        downloaded = failed = 0
        for asset_id in absent:
            task = self.schedule_fetch(asset_id, remote)
            if task is None:
                continue
            outcome = await task
            if outcome == "downloaded":
                downloaded += 1
            elif outcome == "failed":
                failed += 1
        logger.info("Downloaded %d/%d remote assets", downloaded, len(absent))
        return FetchResult(downloaded=downloaded, failed=failed)

    # ------------------------------------------------------------------
    # Peer coordination
    # ------------------------------------------------------------------

    async def missing_among(self, asset_ids: Iterable[str]) -> List[str]:
        """Return the subset of ``asset_ids`` not stored locally."""
        absent = []
        for asset_id in asset_ids:
            if not await self.store.has(asset_id):
                absent.append(asset_id)
        return absent

    async def store_from_remote(self, asset: RemoteAsset) -> bool:
        """Store an asset pushed to us. Returns False if it was already present."""
        if await self.store.has(asset.asset_id):
            logger.debug("Asset %s... already exists", asset.asset_id[:8])
            return False
        record = await self._record_from_remote(asset)
        await self.store.put(record)
        if asset.asset_id in self._missing:
            self._mark_available(record)
            await self._notify(asset.asset_id)
        logger.info("Stored asset from remote: %s...", asset.asset_id[:8])
        return True

    async def asset_for_upload(self, asset_id: str) -> Optional[RemoteAsset]:
        record = await self.store.get(asset_id)
        if record is None:
            return None
        return RemoteAsset(
            asset_id=record.id,
            payload=record.payload,
            mime=record.mime,
            hash=record.hash,
            size=record.size,
            filename=record.filename or f"asset-{record.id}",
        )

    async def wait_idle(self) -> None:
        """Wait for every in-flight fetch to finish."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight.values()), return_exceptions=True)
