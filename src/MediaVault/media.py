"""MIME inference, media-kind checks and size formatting."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Optional, Union

from MediaVault.models import ArtifactRecord

__all__ = [
    "DEFAULT_MIME",
    "MEDIA_EXTENSIONS",
    "format_file_size",
    "guess_mime",
    "is_audio",
    "is_image",
    "is_media_path",
    "is_video",
]

DEFAULT_MIME = "application/octet-stream"

_MIME_TYPES = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "svg": "image/svg+xml",
    "webp": "image/webp",
    "mp4": "video/mp4",
    "webm": "video/webm",
    "ogg": "video/ogg",
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "pdf": "application/pdf",
    "css": "text/css",
    "js": "application/javascript",
}

# Extensions picked up when bulk-registering files from an unpacked package.
MEDIA_EXTENSIONS = frozenset(
    {"png", "jpg", "jpeg", "gif", "svg", "webp", "mp4", "webm", "mp3", "ogg", "wav", "pdf"}
)

_SIZE_UNITS = ("Bytes", "KB", "MB", "GB")


def _extension(filename: str) -> str:
    return PurePosixPath(filename).suffix.lstrip(".").lower()


def guess_mime(filename: Optional[str]) -> str:
    """Map a filename's extension to a MIME type (octet-stream if unknown)."""
    if not filename:
        return DEFAULT_MIME
    return _MIME_TYPES.get(_extension(filename), DEFAULT_MIME)


def is_media_path(path: str) -> bool:
    """True for package entries that should be registered as assets."""
    if not path or path.endswith("/"):
        return False
    if path.startswith("__MACOSX"):
        return False
    return _extension(path) in MEDIA_EXTENSIONS


def _mime_of(item: Union[ArtifactRecord, str, None]) -> str:
    if item is None:
        return ""
    if isinstance(item, ArtifactRecord):
        return item.mime or ""
    return item


def is_image(item: Union[ArtifactRecord, str, None]) -> bool:
    return _mime_of(item).startswith("image/")


def is_video(item: Union[ArtifactRecord, str, None]) -> bool:
    return _mime_of(item).startswith("video/")


def is_audio(item: Union[ArtifactRecord, str, None]) -> bool:
    return _mime_of(item).startswith("audio/")


def format_file_size(num_bytes: int) -> str:
    """Human-readable size with 1024-based units.

    Examples:
        >>> format_file_size(0)
        '0 Bytes'
        >>> format_file_size(1536)
        '1.5 KB'
    """
    if num_bytes <= 0:
        return "0 Bytes"
    index = 0
    scaled = float(num_bytes)
    while scaled >= 1024 and index < len(_SIZE_UNITS) - 1:
        scaled /= 1024
        index += 1
    value = round(scaled, 2)
    return f"{value:g} {_SIZE_UNITS[index]}"
