"""Content-derived identifiers for stored assets.

An asset id is a pure function of the payload bytes: the SHA-256 digest is
computed and its first 32 hex characters are grouped 8-4-4-4-12 so the
result looks like a UUID. Identical bytes always yield the identical id.
"""

from __future__ import annotations

import asyncio
import hashlib
import string

__all__ = [
    "compute_hash",
    "compute_hash_async",
    "hash_to_uuid",
    "identify",
]

_HEX_DIGITS = frozenset(string.hexdigits.lower())
_UUID_GROUPS = (8, 4, 4, 4, 12)


def compute_hash(data: bytes) -> str:
    """Return the lowercase SHA-256 hex digest of ``data``."""
    return hashlib.sha256(data).hexdigest()


async def compute_hash_async(data: bytes, offload_threshold: int = 1 << 20) -> str:
    """Hash ``data``, moving large payloads off the event loop.

    Payloads at or below ``offload_threshold`` bytes are hashed inline.
    """
    if len(data) <= offload_threshold:
        return compute_hash(data)
    return await asyncio.to_thread(compute_hash, data)


def hash_to_uuid(hex_digest: str) -> str:
    """Format the first 32 hex characters of a digest as ``8-4-4-4-12``.

    Raises:
        ValueError: If the digest is shorter than 32 characters or contains
            non-hex characters.
    """
    head = hex_digest[:32].lower()
    if len(head) < 32 or not set(head) <= _HEX_DIGITS:
        raise ValueError(f"Not a usable hex digest: {hex_digest!r}")

    parts = []
    offset = 0
    for width in _UUID_GROUPS:
        parts.append(head[offset : offset + width])
        offset += width
    return "-".join(parts)


def identify(data: bytes) -> str:
    """Return the stable asset id for ``data``."""
    return hash_to_uuid(compute_hash(data))
