"""
Blob Storage

Durable storage for generated images.

Images are written under ``<blob_root>/<owner>/<project>/<file>`` and served
by the application at ``<public_base_url>/blobs/<owner>/<project>/<file>``.
Every write uses a unique path (the caller appends a timestamp), so an image
referenced by an older version is never overwritten.

Security
--------
- Path segments are validated to prevent path traversal
- Only alphanumeric characters, dots, hyphens and underscores are allowed
- Identifiers (owner, project, page) are mapped onto safe segments
- `fetch` only resolves blobs of this store and ``data:`` URIs; it never
  requests arbitrary URLs on behalf of a document
"""

from __future__ import annotations

import base64
import hashlib
import logging
import re
from pathlib import Path
from typing import Optional

from ..config import settings

logger = logging.getLogger("criador.blobs")


# ---------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------

BLOB_ROUTE_PREFIX = "/blobs"

SEGMENT_PATTERN = re.compile(r"^[a-zA-Z0-9_.-]{1,128}$")
UNSAFE_SEGMENT_CHARS = re.compile(r"[^a-zA-Z0-9_-]+")
MAX_ID_SEGMENT = 64

EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
}


# ---------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------

class BlobStorageError(RuntimeError):
    """Raised when a blob cannot be written or read."""


class InvalidBlobPathError(BlobStorageError, ValueError):
    """Raised when a blob path is malformed or escapes the storage root."""


# ---------------------------------------------------------------------
# Path Utilities
# ---------------------------------------------------------------------

def extension_for(mime_type: str) -> str:
    return EXTENSIONS.get(mime_type.lower(), "png")


def validate_blob_path(path: str) -> str:
    """
    Validate a relative, slash-separated blob path.

    Returns the path unchanged if valid.
    """
    segments = path.split("/")
    if not path or any(not SEGMENT_PATTERN.match(s) for s in segments):
        raise InvalidBlobPathError(f"Invalid blob path '{path}'")
    if any(s in (".", "..") for s in segments):
        raise InvalidBlobPathError(f"Invalid blob path '{path}': path traversal detected")
    return path


def safe_segment(identifier: str) -> str:
    """
    Map an arbitrary identifier onto a valid path segment.

    Identifiers that already are short valid segments are kept as they are.
    Anything else (e-mail addresses, ``auth0|...`` subjects, imported page
    ids) becomes a readable stem plus a digest of the full identifier, so
    two identifiers never share a segment.
    """
    if (
        len(identifier) <= MAX_ID_SEGMENT
        and SEGMENT_PATTERN.match(identifier)
        and identifier not in (".", "..")
    ):
        return identifier
    digest = hashlib.sha256(identifier.encode("utf-8")).hexdigest()[:12]
    stem = UNSAFE_SEGMENT_CHARS.sub("_", identifier).strip("_")[: MAX_ID_SEGMENT - 13] or "id"
    return f"{stem}-{digest}"


def image_blob_path(owner_id: str, project_id: str, page_id: str, timestamp_ms: int, mime_type: str) -> str:
    """Unique path of one generated image of a page."""
    return validate_blob_path(
        f"{safe_segment(owner_id)}/{safe_segment(project_id)}/"
        f"{safe_segment(page_id)}-{timestamp_ms}.{extension_for(mime_type)}"
    )


# ---------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------

class LocalBlobStore:
    """
    Filesystem-backed blob store.

    `write` returns the public URL of the stored blob; `fetch` resolves an
    image reference held by a page (a URL of this store or a ``data:`` URI)
    back to bytes. Other references are refused: pages are user data, and
    the server must not request arbitrary URLs for them.
    """

    def __init__(
        self,
        root: Optional[str] = None,
        public_base_url: Optional[str] = None,
    ) -> None:
        self.root = Path(root or settings.blob_root)
        self.public_base_url = (public_base_url or settings.public_base_url).rstrip("/")

    @property
    def url_prefix(self) -> str:
        return f"{self.public_base_url}{BLOB_ROUTE_PREFIX}/"

    def url_for(self, path: str) -> str:
        return self.url_prefix + validate_blob_path(path)

    def local_path(self, path: str) -> Path:
        return self.root / validate_blob_path(path)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def write(self, path: str, data: bytes, content_type: str) -> str:
        """
        Store `data` at `path` and return its durable URL.

        Raises
        ------
        BlobStorageError
            If the file cannot be written.
        """
        target = self.local_path(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            raise BlobStorageError(f"Could not store image '{path}': {exc}") from exc

        logger.info("Stored blob %s (%d bytes, %s)", path, len(data), content_type)
        return self.url_for(path)

    async def fetch(self, reference: str) -> bytes:
        """
        Return the bytes behind an image reference.

        Raises
        ------
        BlobStorageError
            If the reference cannot be resolved.
        """
        if reference.startswith("data:"):
            try:
                _, encoded = reference.split(",", 1)
                return base64.b64decode(encoded)
            except ValueError as exc:
                raise BlobStorageError("Malformed data URI") from exc

        if reference.startswith(self.url_prefix):
            path = reference[len(self.url_prefix):]
            try:
                return self.local_path(path).read_bytes()
            except OSError as exc:
                raise BlobStorageError(f"Could not read image '{path}': {exc}") from exc

        raise BlobStorageError("Image reference is not served by this store")
