# === NAVMAP v1 ===
# {
#   "module": "MediaVault.errors",
#   "purpose": "Error taxonomy and failure logging helpers for the asset store.",
#   "sections": [
#     {
#       "id": "mediavaulterror",
#       "name": "MediaVaultError",
#       "anchor": "class-mediavaulterror",
#       "kind": "class"
#     },
#     {
#       "id": "notinitializederror",
#       "name": "NotInitializedError",
#       "anchor": "class-notinitializederror",
#       "kind": "class"
#     },
#     {
#       "id": "assetnotfounderror",
#       "name": "AssetNotFoundError",
#       "anchor": "class-assetnotfounderror",
#       "kind": "class"
#     },
#     {
#       "id": "transporterror",
#       "name": "TransportError",
#       "anchor": "class-transporterror",
#       "kind": "class"
#     },
#     {
#       "id": "storageerror",
#       "name": "StorageError",
#       "anchor": "class-storageerror",
#       "kind": "class"
#     },
#     {
#       "id": "handlerevokederror",
#       "name": "HandleRevokedError",
#       "anchor": "class-handlerevokederror",
#       "kind": "class"
#     },
#     {
#       "id": "get-actionable-error-message",
#       "name": "get_actionable_error_message",
#       "anchor": "function-get-actionable-error-message",
#       "kind": "function"
#     },
#     {
#       "id": "log-sync-failure",
#       "name": "log_sync_failure",
#       "anchor": "function-log-sync-failure",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Error taxonomy and failure logging helpers for the asset store.

Responsibilities
----------------
- Define the exception types raised by single-record operations
  (``NotInitializedError``, ``AssetNotFoundError``, ``StorageError``) and by
  the remote transport (``TransportError``).
- Translate HTTP status codes into remediation hints via
  :func:`get_actionable_error_message`.
- Centralise structured logging of per-asset sync failures through
  :func:`log_sync_failure`. Batch operations count failures instead of
  raising, so this log line is the only trace a failed asset leaves.
"""

from __future__ import annotations

import logging
from typing import Any

__all__ = (
    "MediaVaultError",
    "NotInitializedError",
    "AssetNotFoundError",
    "TransportError",
    "StorageError",
    "HandleRevokedError",
    "get_actionable_error_message",
    "log_sync_failure",
)


class MediaVaultError(Exception):
    """Base class for all asset store errors."""


class NotInitializedError(MediaVaultError):
    """Raised when the store is used before :meth:`ContentStore.init`."""

    def __init__(self, component: str = "ContentStore"):
        super().__init__(f"{component} used before init()")
        self.component = component


class AssetNotFoundError(MediaVaultError):
    """Raised when a lookup that must succeed misses."""

    def __init__(self, asset_id: str, *, project_id: str | None = None):
        scope = f" in project {project_id}" if project_id else ""
        super().__init__(f"Asset {asset_id} not found{scope}")
        self.asset_id = asset_id
        self.project_id = project_id


class TransportError(MediaVaultError):
    """Raised when a remote transfer fails."""

    def __init__(
        self,
        message: str,
        *,
        url: str | None = None,
        http_status: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.url = url
        self.http_status = http_status
        self.details = details or {}


class StorageError(MediaVaultError):
    """Raised when a durable-store transaction fails."""

    def __init__(self, message: str, *, operation: str | None = None):
        super().__init__(message)
        self.operation = operation


class HandleRevokedError(MediaVaultError):
    """Raised when reading from a handle that has been revoked."""


def get_actionable_error_message(
    http_status: int | None,
    reason_code: str | None = None,
) -> tuple[str, str | None]:
    """Return ``(message, suggestion)`` for a failed transfer.

    Examples:
        >>> msg, suggestion = get_actionable_error_message(404)
        >>> msg
        'Asset not found on remote (HTTP 404)'
    """
    if http_status == 401:
        return (
            "Authentication required (HTTP 401)",
            "Check the remote token in the MediaVault configuration",
        )
    if http_status == 403:
        return (
            "Access forbidden (HTTP 403)",
            "The token does not grant access to this project's assets",
        )
    if http_status == 404:
        return (
            "Asset not found on remote (HTTP 404)",
            "The asset may not have been uploaded yet by the session that created it",
        )
    if http_status == 413:
        return (
            "Upload batch too large (HTTP 413)",
            "Raise the remote's request size limit or upload fewer assets per batch",
        )
    if http_status in (502, 503, 504):
        return (
            f"Remote temporarily unavailable (HTTP {http_status})",
            "Retry the sync later",
        )
    if http_status and http_status >= 400:
        return (f"HTTP error {http_status}", "Check the remote's logs for details")

    if reason_code == "timeout":
        return ("Request timed out", "Increase remote.timeout_read_s or retry later")
    if reason_code == "connection_error":
        return (
            "Failed to establish connection",
            "Check network connectivity and remote.base_url",
        )
    if reason_code == "bad_response":
        return ("Remote returned an unexpected payload", None)

    return ("Sync failed", "Check logs for detailed error information")


def log_sync_failure(
    logger: logging.Logger,
    operation: str,
    asset_id: str | None,
    exception: Exception,
) -> None:
    """Log one asset's sync failure with structured context."""
    http_status = None
    reason_code = None
    if isinstance(exception, TransportError):
        http_status = exception.http_status
        reason_code = exception.details.get("reason")
    error_msg, suggestion = get_actionable_error_message(http_status, reason_code)

    log_entry: dict[str, Any] = {
        "operation": operation,
        "asset_id": asset_id,
        "http_status": http_status,
        "error_message": error_msg,
        "exception_type": type(exception).__name__,
        "exception_message": str(exception),
    }
    if isinstance(exception, TransportError) and exception.url:
        log_entry["url"] = exception.url

    logger.error(
        "%s failed for %s: %s",
        operation,
        asset_id or "batch",
        error_msg,
        extra={"extra_fields": log_entry},
    )
    if suggestion:
        logger.info("Suggestion: %s", suggestion, extra={"extra_fields": {"asset_id": asset_id}})
