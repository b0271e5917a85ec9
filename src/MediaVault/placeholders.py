"""Inline SVG placeholders for references that cannot be resolved yet."""

from __future__ import annotations

from typing import Literal
from urllib.parse import quote
from xml.sax.saxutils import escape

PlaceholderStatus = Literal["loading", "error", "notfound"]

_STYLES = {
    "loading": {"bg": "#e3f2fd", "text": "#1976d2", "icon": "&#8987;"},
    "error": {"bg": "#ffebee", "text": "#c62828", "icon": "&#9888;"},
    "notfound": {"bg": "#f0f0f0", "text": "#999", "icon": "&#128247;"},
}

DEFAULT_WIDTH = 300
DEFAULT_HEIGHT = 200


def render_placeholder(
    text: str,
    status: str = "notfound",
    *,
    width: int = DEFAULT_WIDTH,
    height: int = DEFAULT_HEIGHT,
) -> str:
    """Return a ``data:image/svg+xml`` URL showing ``text`` in the status colors.

    Unknown statuses render as ``notfound``.
    """
    style = _STYLES.get(status, _STYLES["notfound"])
    cx = width // 2
    svg = (
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{width}" height="{height}" '
        f'viewBox="0 0 {width} {height}">'
        f'<rect width="{width}" height="{height}" fill="{style["bg"]}"/>'
        f'<text x="{cx}" y="{int(height * 0.425)}" text-anchor="middle" '
        f'fill="{style["text"]}" font-size="32">{style["icon"]}</text>'
        f'<text x="{cx}" y="{int(height * 0.6)}" text-anchor="middle" '
        f'fill="{style["text"]}" font-size="14">{escape(text)}</text>'
        "</svg>"
    )
    return "data:image/svg+xml," + quote(svg, safe="")


def is_placeholder(url: str) -> bool:
    return url.startswith("data:image/svg+xml,")
