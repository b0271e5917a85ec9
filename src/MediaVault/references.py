"""Reference token scanning and substitution.

Document text embeds assets as ``asset://<id>`` or ``asset://<id>/<name>``.
Before rendering, :class:`ReferenceResolver` swaps each token for a handle
URL (or a status placeholder); before persisting, :meth:`unresolve_text`
swaps handle URLs back so stored text never contains process-local URLs.
Only the id segment is used for lookup; the trailing name is informational.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Mapping, Optional

from MediaVault.config.models import PlaceholderConfig
from MediaVault.handles import HandleCache
from MediaVault.models import ResolvedUrl, ResolveOptions
from MediaVault.placeholders import render_placeholder
from MediaVault.sync import SyncReconciler

logger = logging.getLogger(__name__)

ASSET_SCHEME = "asset://"
TOKEN_RE = re.compile(r"asset://([a-f0-9-]+)(/[^\"'\s)]+)?", re.IGNORECASE)

_IMG_TAG_RE = re.compile(r"<img\b([^>]*)>", re.IGNORECASE)
_SRC_ATTR_RE = re.compile(r"""src=(["'])(data:image/svg\+xml,[^"']*)\1""", re.IGNORECASE)
_TRACKING_ID_RE = re.compile(r"""data-asset-id=["']([a-f0-9-]+)["']""", re.IGNORECASE)
_LOADING_ATTR_RE = re.compile(r"""\s*data-asset-loading=["']true["']""", re.IGNORECASE)
_CONTEXT_PATH_RE = re.compile(r"\{\{context_path\}\}/([^\"'\s<>]+)")
_CONTEXT_PREFIXES = ("", "content/", "content/resources/", "resources/")

_DEFAULT_OPTIONS = ResolveOptions()


def make_reference(asset_id: str, filename: Optional[str] = None) -> str:
    """Build ``asset://<id>`` or ``asset://<id>/<filename>``."""
    return f"{ASSET_SCHEME}{asset_id}/{filename}" if filename else f"{ASSET_SCHEME}{asset_id}"


def extract_asset_id(token: str) -> str:
    """Return the id segment of an ``asset://`` token."""
    path = token[len(ASSET_SCHEME) :] if token.startswith(ASSET_SCHEME) else token
    slash = path.find("/")
    return (path[:slash] if slash > 0 else path).lower()


def extract_references(text: Optional[str]) -> List[str]:
    """Distinct asset ids referenced in ``text``, in order of first appearance."""
    if not text:
        return []
    seen: Dict[str, None] = {}
    for match in TOKEN_RE.finditer(text):
        seen.setdefault(match.group(1).lower(), None)
    return list(seen)


class ReferenceResolver:
    """Rewrite asset tokens in text using a HandleCache and a SyncReconciler."""

    def __init__(
        self,
        handles: HandleCache,
        reconciler: SyncReconciler,
        placeholder: Optional[PlaceholderConfig] = None,
    ):
        self.handles = handles
        self.reconciler = reconciler
        self.placeholder = placeholder or PlaceholderConfig()

    def placeholder_for(self, status: str) -> str:
        cfg = self.placeholder
        text = {
            "loading": cfg.loading_text,
            "error": cfg.error_text,
        }.get(status, cfg.notfound_text)
        return render_placeholder(text, status, width=cfg.width, height=cfg.height)

    def _miss_status(self, asset_id: str) -> str:
        if self.reconciler.is_failed(asset_id):
            return "error"
        if self.reconciler.is_pending(asset_id) or self.reconciler.can_fetch:
            return "loading"
        return "notfound"

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def resolve_text(self, text: Optional[str], options: Optional[ResolveOptions] = None) -> Optional[str]:
        """Replace every token with a handle URL, loading from the store as needed.

        Missing ids get a placeholder, join the missing set and, when
        ``options.fetch_missing`` is set, get exactly one background fetch.
        Ids whose last fetch failed get the error placeholder and are not
        fetched again here.
        """
        if not text:
            return text
        options = options or _DEFAULT_OPTIONS
        asset_ids = extract_references(text)
        if not asset_ids:
            return text

        logger.debug("Resolving %d asset references", len(asset_ids))
        replacements: Dict[str, Optional[str]] = {}
        missing: List[str] = []
        for asset_id in asset_ids:
            handle = await self.handles.resolve(asset_id)
            if handle is None:
                # a fetch may have landed while the store lookup was suspended
                handle = self.handles.resolve_sync(asset_id)
            if handle is not None:
                replacements[asset_id] = handle.url
                continue
            missing.append(asset_id)
            self.reconciler.mark_missing(asset_id)
            if options.fetch_missing and not self.reconciler.is_failed(asset_id):
                self.reconciler.schedule_fetch(asset_id)
            replacements[asset_id] = (
                self.placeholder_for(self._miss_status(asset_id)) if options.use_placeholder else None
            )

        return self._substitute(text, replacements, missing, options)

    def resolve_text_sync(self, text: Optional[str], options: Optional[ResolveOptions] = None) -> Optional[str]:
        """Cache-only variant of :meth:`resolve_text`.

        Never touches the store or the network. Misses are recorded in the
        missing set; draining it is left to :meth:`SyncReconciler.fetch_missing`.
        """
        if not text:
            return text
        options = options or _DEFAULT_OPTIONS
        asset_ids = extract_references(text)
        if not asset_ids:
            return text

        replacements: Dict[str, Optional[str]] = {}
        missing: List[str] = []
        for asset_id in asset_ids:
            handle = self.handles.resolve_sync(asset_id)
            if handle is not None:
                replacements[asset_id] = handle.url
                continue
            missing.append(asset_id)
            self.reconciler.mark_missing(asset_id)
            replacements[asset_id] = (
                self.placeholder_for(self._miss_status(asset_id)) if options.use_placeholder else None
            )

        return self._substitute(text, replacements, missing, options)

    async def resolve_url(self, token: str, options: Optional[ResolveOptions] = None) -> ResolvedUrl:
        """Resolve a single token, reporting whether a placeholder was returned."""
        options = options or _DEFAULT_OPTIONS
        asset_id = extract_asset_id(token)
        handle = await self.handles.resolve(asset_id)
        if handle is not None:
            return ResolvedUrl(url=handle.url, is_placeholder=False, asset_id=asset_id)

        self.reconciler.mark_missing(asset_id)
        if options.fetch_missing and not self.reconciler.is_failed(asset_id):
            self.reconciler.schedule_fetch(asset_id)
        return ResolvedUrl(
            url=self.placeholder_for(self._miss_status(asset_id)),
            is_placeholder=True,
            asset_id=asset_id,
        )

    def _substitute(
        self,
        text: str,
        replacements: Mapping[str, Optional[str]],
        missing: List[str],
        options: ResolveOptions,
    ) -> str:
        if options.add_tracking:
            text = self._add_tracking(text, set(missing))

        def repl(match: re.Match) -> str:
            url = replacements.get(match.group(1).lower())
            return url if url is not None else match.group(0)

        return TOKEN_RE.sub(repl, text)

    @staticmethod
    def _add_tracking(text: str, missing: set) -> str:
        """Tag ``<img>`` elements with the asset id they display."""

        def repl(match: re.Match) -> str:
            attrs = match.group(1)
            if "data-asset-id" in attrs:
                return match.group(0)
            token = TOKEN_RE.search(attrs)
            if token is None:
                return match.group(0)
            asset_id = token.group(1).lower()
            extra = f' data-asset-id="{asset_id}"'
            if asset_id in missing:
                extra += ' data-asset-loading="true"'
            return f"<img{extra}{attrs}>"

        return _IMG_TAG_RE.sub(repl, text)

    # ------------------------------------------------------------------
    # Inverse mapping
    # ------------------------------------------------------------------

    def unresolve_text(self, text: Optional[str]) -> Optional[str]:
        """Rewrite handle URLs (and tracked placeholders) back into tokens."""
        if not text:
            return text
        converted = text
        for url, asset_id in self.handles.items():
            if url in converted:
                converted = converted.replace(url, make_reference(asset_id))
        if "data-asset-id" in converted:
            converted = self._restore_tracked_placeholders(converted)
        return converted

    @staticmethod
    def _restore_tracked_placeholders(text: str) -> str:
        def repl(match: re.Match) -> str:
            attrs = match.group(1)
            tracked = _TRACKING_ID_RE.search(attrs)
            if tracked is None:
                return match.group(0)
            reference = make_reference(tracked.group(1).lower())
            restored = _SRC_ATTR_RE.sub(
                lambda src: f"src={src.group(1)}{reference}{src.group(1)}", attrs
            )
            restored = _LOADING_ATTR_RE.sub("", restored)
            return f"<img{restored}>"

        return _IMG_TAG_RE.sub(repl, text)

    # ------------------------------------------------------------------
    # Package import helpers
    # ------------------------------------------------------------------

    @staticmethod
    def convert_context_paths(text: Optional[str], asset_map: Mapping[str, str]) -> Optional[str]:
        """Rewrite ``{{context_path}}/<path>`` references using ``path -> id``.

        Lookup order: exact path, path under the usual package prefixes,
        same filename anywhere, then same last two path segments. Paths
        that match nothing are left untouched.
        """
        if not text:
            return text

        def repl(match: re.Match) -> str:
            clean = re.sub(r"[\\\s]+$", "", match.group(1)).strip()
            asset_id = _lookup_package_path(clean, asset_map)
            if asset_id is None:
                logger.warning("Asset not found for path: %s", clean)
                return match.group(0)
            return make_reference(asset_id)

        return _CONTEXT_PATH_RE.sub(repl, text)


def _lookup_package_path(path: str, asset_map: Mapping[str, str]) -> Optional[str]:
    for prefix in _CONTEXT_PREFIXES:
        asset_id = asset_map.get(prefix + path)
        if asset_id is not None:
            return asset_id

    filename = path.rsplit("/", 1)[-1]
    for candidate, asset_id in asset_map.items():
        if candidate == filename or candidate.endswith("/" + filename):
            return asset_id

    parts = path.split("/")
    if len(parts) >= 2:
        short = "/".join(parts[-2:])
        for candidate, asset_id in asset_map.items():
            if candidate.endswith(short):
                return asset_id
    return None
