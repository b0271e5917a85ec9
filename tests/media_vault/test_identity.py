"""Tests for content-derived asset identifiers."""

from __future__ import annotations

import hashlib
import re

import pytest

from MediaVault.identity import compute_hash, compute_hash_async, hash_to_uuid, identify
from tests.media_vault.fakes import run

UUID_SHAPE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")


class TestComputeHash:
    """SHA-256 digests."""

    def test_known_digest(self):
        assert compute_hash(b"abc") == (
            "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
        )

    def test_empty_payload(self):
        assert compute_hash(b"") == hashlib.sha256(b"").hexdigest()

    def test_async_matches_sync_inline(self):
        data = b"small payload"
        assert run(compute_hash_async(data)) == compute_hash(data)

    def test_async_matches_sync_offloaded(self):
        data = b"x" * 4096
        assert run(compute_hash_async(data, offload_threshold=16)) == compute_hash(data)


class TestHashToUuid:
    """Formatting digests as UUID-shaped ids."""

    def test_groups_first_32_chars(self):
        digest = "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
        assert hash_to_uuid(digest) == "ba7816bf-8f01-cfea-4141-40de5dae2223"

    def test_uppercase_digest_is_lowered(self):
        digest = "BA7816BF8F01CFEA414140DE5DAE2223"
        assert hash_to_uuid(digest) == "ba7816bf-8f01-cfea-4141-40de5dae2223"

    def test_rejects_short_digest(self):
        with pytest.raises(ValueError):
            hash_to_uuid("abc123")

    def test_rejects_non_hex(self):
        with pytest.raises(ValueError):
            hash_to_uuid("z" * 64)


class TestIdentify:
    """Identity is a pure function of the bytes."""

    def test_same_bytes_same_id(self):
        assert identify(b"payload") == identify(bytes(b"payload"))

    def test_different_bytes_different_id(self):
        assert identify(b"payload-a") != identify(b"payload-b")

    def test_id_is_uuid_shaped(self):
        assert UUID_SHAPE.match(identify(b"anything"))

    def test_empty_payload_has_id(self):
        assert identify(b"") == hash_to_uuid(hashlib.sha256(b"").hexdigest())
