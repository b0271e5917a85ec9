"""Remote asset service transport.

Responsibilities
----------------
- Define :class:`AssetRemote`, the interface :class:`~MediaVault.sync.SyncReconciler`
  talks to. Any object with these three coroutines can act as the remote
  (an HTTP service, a peer relay, or a test double).
- Provide :class:`HttpAssetRemote`, an :class:`httpx.AsyncClient`-based
  implementation of the project asset endpoints:

  ``POST /projects/{id}/assets``           multipart batch upload -> ``{"uploaded": n}``
  ``GET  /projects/{id}/assets``           listing -> ``[{"id": ...}, ...]``
  ``GET  /projects/{id}/assets/{assetId}`` payload + ``X-Original-*`` headers

Design Notes
------------
- Every failure (connection error, timeout, non-2xx status, malformed body)
  surfaces as :class:`~MediaVault.errors.TransportError`; callers never see
  raw ``httpx`` exceptions.
- Tests inject :class:`httpx.MockTransport` via the ``transport`` argument.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable
from urllib.parse import unquote

import httpx

from MediaVault.config.models import RemoteConfig
from MediaVault.errors import TransportError
from MediaVault.models import ArtifactRecord, RemoteAsset

LOGGER = logging.getLogger(__name__)

_FILENAME_RE = re.compile(r"filename\*?=(?:UTF-8'')?(?:\"([^\"]*)\"|([^;\n]*))", re.IGNORECASE)


@runtime_checkable
class AssetRemote(Protocol):
    """Collaborator that holds the authoritative copy of project assets."""

    async def upload_batch(self, project_id: str, records: Sequence[ArtifactRecord]) -> int:
        """Send all ``records`` in one transfer; return the count the remote accepted."""
        ...

    async def list_assets(self, project_id: str) -> List[Dict[str, Any]]:
        """Return the remote's asset listing (each entry carries at least ``id``)."""
        ...

    async def fetch_asset(self, project_id: str, asset_id: str) -> RemoteAsset:
        """Download one asset by id."""
        ...


def _parse_content_disposition(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    match = _FILENAME_RE.search(value)
    if not match:
        return None
    name = (match.group(1) or match.group(2) or "").strip()
    return unquote(name) or None


def _parse_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


class HttpAssetRemote:
    """HTTP implementation of :class:`AssetRemote` built on ``httpx``."""

    def __init__(
        self,
        config: RemoteConfig,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not config.base_url:
            raise ValueError("RemoteConfig.base_url is required for HttpAssetRemote")
        self.config = config
        self.base_url = config.base_url
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(
                connect=config.timeout_connect_s,
                read=config.timeout_read_s,
                write=config.timeout_read_s,
                pool=config.timeout_connect_s,
            ),
            verify=config.verify_tls,
            headers=self._default_headers(),
            transport=transport,
        )

    def _default_headers(self) -> Dict[str, str]:
        headers = {"User-Agent": self.config.user_agent}
        if self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token}"
        return headers

    def _assets_url(self, project_id: str, asset_id: Optional[str] = None) -> str:
        url = f"{self.base_url}/projects/{project_id}/assets"
        return f"{url}/{asset_id}" if asset_id else url

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise TransportError(
                f"{method} {url} timed out", url=url, details={"reason": "timeout"}
            ) from exc
        except httpx.HTTPError as exc:
            raise TransportError(
                f"{method} {url} failed: {exc}", url=url, details={"reason": "connection_error"}
            ) from exc

        if response.is_error:
            raise TransportError(
                f"{method} {url} returned HTTP {response.status_code}",
                url=url,
                http_status=response.status_code,
            )
        return response

    async def upload_batch(self, project_id: str, records: Sequence[ArtifactRecord]) -> int:
        if not records:
            return 0
        files = []
        data: Dict[str, str] = {}
        for record in records:
            files.append(("assets", (record.id, record.payload, record.mime)))
            data[f"{record.id}_mime"] = record.mime
            data[f"{record.id}_hash"] = record.hash
            data[f"{record.id}_size"] = str(record.size)
            if record.filename:
                data[f"{record.id}_filename"] = record.filename

        url = self._assets_url(project_id)
        response = await self._request("POST", url, data=data, files=files)
        try:
            body = response.json()
            uploaded = int(body["uploaded"])
        except (ValueError, KeyError, TypeError) as exc:
            raise TransportError(
                f"Unexpected upload response from {url}", url=url, details={"reason": "bad_response"}
            ) from exc
        LOGGER.info("Uploaded %d assets for project %s", uploaded, project_id)
        return uploaded

    async def list_assets(self, project_id: str) -> List[Dict[str, Any]]:
        url = self._assets_url(project_id)
        response = await self._request("GET", url)
        try:
            body = response.json()
        except ValueError as exc:
            raise TransportError(
                f"Unexpected listing from {url}", url=url, details={"reason": "bad_response"}
            ) from exc
        if isinstance(body, dict):
            body = body.get("assets", [])
        if not isinstance(body, list):
            raise TransportError(
                f"Unexpected listing from {url}", url=url, details={"reason": "bad_response"}
            )
        return [entry for entry in body if isinstance(entry, dict) and entry.get("id")]

    async def fetch_asset(self, project_id: str, asset_id: str) -> RemoteAsset:
        url = self._assets_url(project_id, asset_id)
        response = await self._request("GET", url)
        headers = response.headers
        content_type = headers.get("Content-Type")
        if content_type:
            content_type = content_type.split(";", 1)[0].strip() or None
        return RemoteAsset(
            asset_id=asset_id,
            payload=response.content,
            mime=headers.get("X-Original-Mime") or content_type,
            hash=headers.get("X-Original-Hash") or headers.get("X-Asset-Hash"),
            size=_parse_int(headers.get("X-Original-Size")),
            filename=headers.get("X-Original-Filename")
            or _parse_content_disposition(headers.get("Content-Disposition")),
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpAssetRemote":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
