"""
Render Cache

Decoded images of the pages of one open document, keyed by page id.

The document itself only holds durable references (URLs or data URIs). This
cache is the parallel, never-serialized place for decoded pixels: an entry
remembers the reference it was decoded from and is rebuilt lazily whenever
the page points at a different reference.
"""

from __future__ import annotations

import io
from functools import lru_cache
from typing import Awaitable, Callable, Dict, Optional, Tuple

from PIL import Image, UnidentifiedImageError

Fetch = Callable[[str], Awaitable[bytes]]


class InvalidImageError(ValueError):
    """Raised when bytes cannot be decoded as an image."""


def decode_image(data: bytes) -> Image.Image:
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
        raise InvalidImageError("The data is not a readable image.") from exc
    return image


def render_png(image: Image.Image, size: Tuple[int, int], background: str) -> bytes:
    """
    Draw `image` stretched over a canvas of `size` and encode it as PNG.

    Transparent areas show the background colour, as on the editor canvas.
    """
    canvas = Image.new("RGB", size, background)
    layer = image.convert("RGBA").resize(size)
    canvas.paste(layer, (0, 0), layer)
    buffer = io.BytesIO()
    canvas.save(buffer, format="PNG")
    return buffer.getvalue()


@lru_cache(maxsize=8)
def blank_canvas_png(width: int, height: int, background: str) -> bytes:
    """A solid canvas of the given size, PNG encoded."""
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), background).save(buffer, format="PNG")
    return buffer.getvalue()


class RenderCache:
    def __init__(self) -> None:
        self._entries: Dict[str, Tuple[str, Image.Image]] = {}

    def get(self, page_id: str, reference: str) -> Optional[Image.Image]:
        entry = self._entries.get(page_id)
        if entry is None or entry[0] != reference:
            return None
        return entry[1]

    async def load(self, page_id: str, reference: str, fetch: Fetch) -> Image.Image:
        """Return the decoded image for `reference`, fetching it if needed."""
        cached = self.get(page_id, reference)
        if cached is not None:
            return cached
        image = decode_image(await fetch(reference))
        self._entries[page_id] = (reference, image)
        return image

    def discard(self, page_id: str) -> None:
        self._entries.pop(page_id, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
