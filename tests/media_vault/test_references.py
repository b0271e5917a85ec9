"""Tests for asset token scanning and text resolution."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from MediaVault.handles import HANDLE_URL_PREFIX, HandleCache
from MediaVault.models import ResolveOptions
from MediaVault.placeholders import is_placeholder, render_placeholder
from MediaVault.references import (
    ReferenceResolver,
    extract_asset_id,
    extract_references,
    make_reference,
)
from MediaVault.sync import SyncReconciler
from tests.media_vault.fakes import FakeRemote, JPEG_BYTES, PNG_BYTES, make_record, run

ID_A = "abcdef01-2345-6789-abcd-ef0123456789"
ID_B = "00000000-1111-2222-3333-444444444444"


class TestExtraction:
    """Token scanning."""

    def test_distinct_ids_in_order(self):
        text = f"<img src='asset://{ID_B}/b.png'> asset://{ID_A} and again asset://{ID_B}"

        assert extract_references(text) == [ID_B, ID_A]

    def test_case_insensitive_scheme_and_id(self):
        text = f'<img src="ASSET://{ID_A.upper()}/x.png">'

        assert extract_references(text) == [ID_A]

    def test_no_tokens(self):
        assert extract_references("plain text") == []
        assert extract_references("") == []
        assert extract_references(None) == []

    def test_make_and_extract(self):
        assert make_reference(ID_A) == f"asset://{ID_A}"
        assert make_reference(ID_A, "photo.jpg") == f"asset://{ID_A}/photo.jpg"
        assert extract_asset_id(f"asset://{ID_A}/photo.jpg") == ID_A
        assert extract_asset_id(f"asset://{ID_A}") == ID_A


@pytest.fixture
def store():
    store = MagicMock()
    store.project_id = "project-1"
    store.get = AsyncMock(return_value=None)
    store.put = AsyncMock()
    return store


def build_resolver(store, remote=None):
    handles = HandleCache(store)
    reconciler = SyncReconciler(store, handles, remote=remote)
    return ReferenceResolver(handles, reconciler), handles, reconciler


class TestResolveText:
    """Async resolution against the store."""

    def test_known_token_becomes_handle_url(self, store):
        record = make_record(PNG_BYTES)
        store.get.return_value = record
        resolver, handles, _ = build_resolver(store)

        out = run(resolver.resolve_text(f'<img src="asset://{record.id}/photo.jpg">'))

        url = handles.resolve_sync(record.id).url
        assert out == f'<img src="{url}">'
        assert url.startswith(HANDLE_URL_PREFIX)

    def test_missing_without_remote_gets_notfound_placeholder(self, store):
        resolver, _, reconciler = build_resolver(store)

        out = run(resolver.resolve_text(f'<img src="asset://{ID_A}">'))

        assert render_placeholder("Image not found", "notfound") in out
        assert reconciler.missing_ids() == [ID_A]

    def test_missing_without_placeholder_keeps_token(self, store):
        resolver, _, _ = build_resolver(store)
        text = f'<img src="asset://{ID_A}/x.png">'

        out = run(resolver.resolve_text(text, ResolveOptions(use_placeholder=False)))

        assert out == text

    def test_text_without_tokens_unchanged(self, store):
        resolver, _, _ = build_resolver(store)

        assert run(resolver.resolve_text("<p>hi</p>")) == "<p>hi</p>"
        assert run(resolver.resolve_text("")) == ""
        store.get.assert_not_called()

    def test_resolved_text_is_stable(self, store):
        record = make_record(PNG_BYTES)
        store.get.return_value = record
        resolver, _, _ = build_resolver(store)

        resolved = run(resolver.resolve_text(f'<img src="asset://{record.id}/photo.jpg">'))
        lookups = store.get.await_count

        assert run(resolver.resolve_text(resolved)) == resolved
        assert resolver.resolve_text_sync(resolved) == resolved
        assert store.get.await_count == lookups

    def test_missing_with_remote_gets_loading_placeholder(self, store):
        remote = FakeRemote()
        remote.add(JPEG_BYTES)
        missing_id = make_record(JPEG_BYTES).id
        resolver, _, reconciler = build_resolver(store, remote)

        async def scenario():
            out = await resolver.resolve_text(f'<img src="asset://{missing_id}">')
            await reconciler.wait_idle()
            return out

        out = run(scenario())
        assert render_placeholder("Loading...", "loading") in out
        assert remote.fetch_calls == [missing_id]

    def test_tracking_attributes(self, store):
        record = make_record(PNG_BYTES)
        store.get.side_effect = lambda asset_id: record if asset_id == record.id else None
        resolver, _, _ = build_resolver(store)
        text = f'<img src="asset://{record.id}"><img src="asset://{ID_A}">'

        out = run(resolver.resolve_text(text, ResolveOptions(add_tracking=True)))

        assert f'data-asset-id="{record.id}"' in out
        assert f'<img data-asset-id="{ID_A}" data-asset-loading="true"' in out
        assert out.count("data-asset-loading") == 1


class TestResolveTextSync:
    """Cache-only resolution."""

    def test_cached_id_resolves_without_io(self, store):
        record = make_record(PNG_BYTES)
        resolver, handles, _ = build_resolver(store)
        handle = handles.materialize(record)

        out = resolver.resolve_text_sync(f"asset://{record.id}")

        assert out == handle.url
        store.get.assert_not_called()

    def test_miss_marks_missing_without_io(self, store):
        resolver, _, reconciler = build_resolver(store)

        out = resolver.resolve_text_sync(f'<img src="asset://{ID_A}">')

        assert is_placeholder(out.split('"')[1])
        assert reconciler.missing_ids() == [ID_A]
        store.get.assert_not_called()


    def test_tracking_is_opt_in(self, store):
        resolver, _, _ = build_resolver(store)
        text = f'<img src="asset://{ID_A}">'

        plain = resolver.resolve_text_sync(text)
        tracked = resolver.resolve_text_sync(text, ResolveOptions(add_tracking=True))

        assert "data-asset-id" not in plain
        assert f'<img data-asset-id="{ID_A}" data-asset-loading="true"' in tracked


class TestUnresolve:
    """Inverse mapping."""

    def test_round_trip(self, store):
        record = make_record(PNG_BYTES)
        store.get.return_value = record
        resolver, _, _ = build_resolver(store)
        original = f'<p><img src="asset://{record.id}"></p>'

        resolved = run(resolver.resolve_text(original))

        assert "asset://" not in resolved
        assert resolver.unresolve_text(resolved) == original

    def test_round_trip_drops_filename(self, store):
        record = make_record(PNG_BYTES)
        store.get.return_value = record
        resolver, _, _ = build_resolver(store)

        resolved = run(resolver.resolve_text(f'<img src="asset://{record.id}/photo.jpg">'))

        assert resolver.unresolve_text(resolved) == f'<img src="asset://{record.id}">'

    def test_tracked_placeholder_restored(self, store):
        resolver, _, _ = build_resolver(store)

        resolved = run(
            resolver.resolve_text(f'<img src="asset://{ID_A}">', ResolveOptions(add_tracking=True))
        )
        restored = resolver.unresolve_text(resolved)

        assert f'src="asset://{ID_A}"' in restored
        assert "data-asset-loading" not in restored
        assert "data:image/svg+xml" not in restored

    def test_text_without_urls_unchanged(self, store):
        resolver, _, _ = build_resolver(store)

        assert resolver.unresolve_text("<p>plain</p>") == "<p>plain</p>"


class TestContextPaths:
    """Package path rewriting."""

    def test_exact_and_prefixed(self):
        asset_map = {"content/resources/img/a.png": ID_A, "b.png": ID_B}
        text = '<img src="{{context_path}}/img/a.png"><img src="{{context_path}}/b.png">'

        out = ReferenceResolver.convert_context_paths(text, asset_map)

        assert out == f'<img src="asset://{ID_A}"><img src="asset://{ID_B}">'

    def test_filename_fallback(self):
        out = ReferenceResolver.convert_context_paths(
            "{{context_path}}/other/dir/a.png", {"deep/path/a.png": ID_A}
        )

        assert out == f"asset://{ID_A}"

    def test_unknown_path_untouched(self):
        text = "{{context_path}}/missing.png"

        assert ReferenceResolver.convert_context_paths(text, {"a.png": ID_A}) == text


class TestResolveUrl:
    """Single-token resolution."""

    def test_known_token(self, store):
        record = make_record(PNG_BYTES)
        store.get.return_value = record
        resolver, _, _ = build_resolver(store)

        resolved = run(resolver.resolve_url(f"asset://{record.id}/photo.jpg"))

        assert not resolved.is_placeholder
        assert resolved.asset_id == record.id
        assert resolved.url.startswith(HANDLE_URL_PREFIX)

    def test_missing_token(self, store):
        resolver, _, reconciler = build_resolver(store)

        resolved = run(resolver.resolve_url(f"asset://{ID_A}"))

        assert resolved.is_placeholder
        assert is_placeholder(resolved.url)
        assert reconciler.has_missing()
