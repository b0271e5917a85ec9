"""In-process handles for stored payloads.

A :class:`Handle` is what the rendering layer receives instead of an
``asset://`` token: an opaque ``blob:`` URL plus a read-only view over the
payload bytes. Handles live only in this process and must be revoked
explicitly when their record is deleted or the store shuts down.

:class:`HandleCache` keeps ``id -> handle`` and ``url -> id`` in lockstep;
both maps are only ever mutated together while holding ``_lock``.
"""

from __future__ import annotations

import logging
import threading
import uuid
from typing import Dict, Iterator, List, Optional, Tuple

from MediaVault.errors import HandleRevokedError
from MediaVault.models import ArtifactRecord
from MediaVault.store import ContentStore

logger = logging.getLogger(__name__)

HANDLE_URL_PREFIX = "blob:mediavault/"


class Handle:
    """Revocable reference to one asset's payload."""

    __slots__ = ("asset_id", "url", "mime", "_view")

    def __init__(self, asset_id: str, payload: bytes, mime: str = "application/octet-stream"):
        self.asset_id = asset_id
        self.url = f"{HANDLE_URL_PREFIX}{uuid.uuid4()}"
        self.mime = mime
        self._view: Optional[memoryview] = memoryview(payload)

    @property
    def revoked(self) -> bool:
        return self._view is None

    @property
    def data(self) -> memoryview:
        if self._view is None:
            raise HandleRevokedError(f"Handle {self.url} for asset {self.asset_id} was revoked")
        return self._view

    def read(self) -> bytes:
        return self.data.tobytes()

    def revoke(self) -> None:
        """Release the underlying view. Safe to call twice."""
        view, self._view = self._view, None
        if view is not None:
            view.release()

    def __str__(self) -> str:
        return self.url

    def __repr__(self) -> str:
        state = "revoked" if self.revoked else "live"
        return f"Handle({self.asset_id!r}, {self.url!r}, {state})"


class HandleCache:
    """Bidirectional ``asset id <-> Handle`` cache backed by a ContentStore."""

    def __init__(self, store: ContentStore):
        self.store = store
        self._lock = threading.Lock()
        self._by_id: Dict[str, Handle] = {}
        self._by_url: Dict[str, str] = {}

    async def resolve(self, asset_id: str) -> Optional[Handle]:
        """Return the cached handle, loading the record from the store on a miss.

        Returns None when the store has no such asset.
        """
        cached = self.resolve_sync(asset_id)
        if cached is not None:
            return cached

        record = await self.store.get(asset_id)
        if record is None:
            logger.debug("Asset not found in store: %s", asset_id)
            return None
        return self.materialize(record)

    def resolve_sync(self, asset_id: str) -> Optional[Handle]:
        """Cache-only lookup; never touches the store."""
        with self._lock:
            return self._by_id.get(asset_id)

    def materialize(self, record: ArtifactRecord) -> Handle:
        """Create and cache a handle for an already-loaded record.

        If another call chain cached a handle for the same id meanwhile, that
        handle is kept and returned.
        """
        handle = Handle(record.id, record.payload, record.mime)
        with self._lock:
            existing = self._by_id.get(record.id)
            if existing is not None:
                handle.revoke()
                return existing
            self._by_id[record.id] = handle
            self._by_url[handle.url] = record.id
        logger.debug("Resolved %s... -> %s", record.id[:8], handle.url)
        return handle

    def id_for_url(self, url: str) -> Optional[str]:
        with self._lock:
            return self._by_url.get(url)

    def items(self) -> List[Tuple[str, str]]:
        """Snapshot of ``(handle_url, asset_id)`` pairs."""
        with self._lock:
            return list(self._by_url.items())

    def revoke(self, asset_id: str) -> bool:
        """Release and forget the handle for ``asset_id``. Returns False if none was cached."""
        with self._lock:
            handle = self._by_id.pop(asset_id, None)
            if handle is None:
                return False
            self._by_url.pop(handle.url, None)
        handle.revoke()
        return True

    def revoke_all(self) -> int:
        """Release every outstanding handle. Returns how many were revoked."""
        with self._lock:
            handles = list(self._by_id.values())
            self._by_id.clear()
            self._by_url.clear()
        for handle in handles:
            handle.revoke()
        if handles:
            logger.debug("Revoked %d handles", len(handles))
        return len(handles)

    def __contains__(self, asset_id: object) -> bool:
        with self._lock:
            return asset_id in self._by_id

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_id)

    def __iter__(self) -> Iterator[str]:
        with self._lock:
            return iter(list(self._by_id))
