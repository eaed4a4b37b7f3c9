from __future__ import annotations
"""Durable media storage on the local media volume.

Binary payloads are written to ``data/{project_id}/{entity_type}/{entity_id}{ext}``
relative to ``MEDIA_VOLUME``; the database stores only that relative reference.
Naming is deterministic, so saving the same entity again overwrites in place.

entity_type:
  - character   → character reference image
  - variation   → character variation reference image
  - scene       → scene reference image
  - prop        → prop reference image
  - keyframe    → keyframe image
  - video       → video interval clip
  - turnaround  → character turnaround sheet
  - ninegrid    → shot nine-grid sheet
  - task        → output of a task with no target entity
"""

import asyncio
import base64
import binascii
import json
import logging
import os
import re
import shutil
from dataclasses import dataclass

logger = logging.getLogger(__name__)

ENTITY_TYPES = (
    "character", "variation", "scene", "prop",
    "keyframe", "video", "turnaround", "ninegrid", "task",
)

MIME_EXT_MAP: dict[str, str] = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/svg+xml": ".svg",
    "image/bmp": ".bmp",
    "video/mp4": ".mp4",
    "video/webm": ".webm",
    "video/quicktime": ".mov",
    "video/x-msvideo": ".avi",
}

EXT_MIME_MAP: dict[str, str] = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".svg": "image/svg+xml",
    ".bmp": "image/bmp",
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".mov": "video/quicktime",
    ".avi": "video/x-msvideo",
    ".bin": "application/octet-stream",
}

_DATA_URI_RE = re.compile(r"^data:([\w+/.-]+);base64,(.+)$", re.DOTALL)
_MEDIA_URL_RE = re.compile(r"^/api/projects/([^/]+)/media/([^/]+)/([^/]+)$")
_UNSAFE_CHARS_RE = re.compile(r"[^a-zA-Z0-9_-]")


def safe_id(value: str) -> str:
    return _UNSAFE_CHARS_RE.sub("_", value)


def is_data_uri(value: str | None) -> bool:
    return bool(value) and value.startswith("data:")


def is_file_reference(value: str | None) -> bool:
    """True for a durable reference produced by :class:`MediaStorage`."""
    return bool(value) and value.startswith("data/")


def is_remote_url(value: str | None) -> bool:
    return bool(value) and re.match(r"^https?://", value, re.IGNORECASE) is not None


def is_internal_media_url(value: str | None) -> bool:
    return bool(value) and value.startswith("/api/")


def media_api_url(project_id: str, entity_type: str, entity_id: str) -> str:
    """Display URL under which the media route serves an entity's blob."""
    return f"/api/projects/{project_id}/media/{entity_type}/{entity_id}"


def parse_media_api_url(url: str) -> tuple[str, str, str] | None:
    match = _MEDIA_URL_RE.match(url)
    if not match:
        return None
    return match.group(1), match.group(2), match.group(3)


@dataclass(frozen=True)
class DecodedMedia:
    mime: str
    data: bytes


def parse_data_uri(data_uri: str) -> DecodedMedia | None:
    """Decode ``data:<mime>;base64,<payload>``. Returns None if malformed."""
    match = _DATA_URI_RE.match(data_uri)
    if not match:
        return None
    try:
        data = base64.b64decode(match.group(2), validate=False)
    except (binascii.Error, ValueError):
        return None
    return DecodedMedia(mime=match.group(1).lower(), data=data)


def to_data_uri(data: bytes, mime: str) -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode()}"


# Leading base64 characters of common image headers
_BASE64_SIGNATURES = (
    ("/9j/", "image/jpeg"),
    ("iVBORw", "image/png"),
    ("R0lGOD", "image/gif"),
    ("UklGR", "image/webp"),
)


def as_image_data_uri(value: str) -> str:
    """Give a bare base64 image string a data URI prefix; data URIs pass through."""
    if value.startswith("data:"):
        return value
    mime = next((m for sig, m in _BASE64_SIGNATURES if value.startswith(sig)), "image/png")
    return f"data:{mime};base64,{value}"


def unwrap_legacy_value(value: str) -> tuple[str | None, str | None]:
    """Split a legacy ``{"base64": ..., "url": ...}`` column value.

    Returns (inline payload, remote url); both None if ``value`` isn't that shape.
    """
    if not value.startswith("{"):
        return None, None
    try:
        parsed = json.loads(value)
    except ValueError:
        return None, None
    if not isinstance(parsed, dict):
        return None, None
    return parsed.get("base64") or None, parsed.get("url") or None


class MediaStorage:
    """Blob store rooted at the media volume.

    Public methods are coroutines; the filesystem work runs in a worker thread.
    """

    def __init__(self, root: str):
        self.root = os.path.abspath(root)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def reference_for(self, project_id: str, entity_type: str, entity_id: str, ext: str) -> str:
        return f"data/{safe_id(project_id)}/{entity_type}/{safe_id(entity_id)}{ext}"

    def absolute_path(self, reference: str) -> str:
        """Map a stored reference to an absolute path inside the volume."""
        full = os.path.abspath(os.path.join(self.root, reference))
        if not full.startswith(self.root + os.sep):
            raise ValueError(f"Media reference escapes storage root: {reference}")
        return full

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def save(
        self, project_id: str, entity_type: str, entity_id: str, data: bytes, mime: str
    ) -> str:
        """Persist ``data`` and return its stable reference."""
        ext = MIME_EXT_MAP.get(mime.split(";")[0].strip().lower(), ".bin")
        reference = self.reference_for(project_id, entity_type, entity_id, ext)
        await asyncio.to_thread(self._write, reference, data)
        logger.debug("Saved %d bytes → %s", len(data), reference)
        return reference

    async def save_data_uri(
        self, project_id: str, entity_type: str, entity_id: str, data_uri: str
    ) -> str | None:
        decoded = parse_data_uri(data_uri)
        if decoded is None:
            logger.warning("Malformed data URI for %s/%s, not stored", entity_type, entity_id)
            return None
        return await self.save(project_id, entity_type, entity_id, decoded.data, decoded.mime)

    def _write(self, reference: str, data: bytes) -> None:
        path = self.absolute_path(reference)
        directory, filename = os.path.split(path)
        os.makedirs(directory, exist_ok=True)

        tmp_path = f"{path}.tmp"
        with open(tmp_path, "wb") as f:
            f.write(data)
        os.replace(tmp_path, path)

        # Same entity, different format from an earlier save
        stem = os.path.splitext(filename)[0]
        for name in os.listdir(directory):
            if name != filename and os.path.splitext(name)[0] == stem:
                os.remove(os.path.join(directory, name))

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def read(self, reference: str) -> DecodedMedia | None:
        """Return the stored bytes and MIME type, or None if missing."""
        return await asyncio.to_thread(self._read, reference)

    def _read(self, reference: str) -> DecodedMedia | None:
        try:
            path = self.absolute_path(reference)
        except ValueError:
            return None
        if not os.path.isfile(path):
            return None
        ext = os.path.splitext(path)[1].lower()
        with open(path, "rb") as f:
            data = f.read()
        return DecodedMedia(mime=EXT_MIME_MAP.get(ext, "application/octet-stream"), data=data)

    async def read_data_uri(self, reference: str) -> str | None:
        media = await self.read(reference)
        if media is None:
            return None
        return to_data_uri(media.data, media.mime)

    async def locate(self, project_id: str, entity_type: str, entity_id: str) -> str | None:
        """Find the stored reference for an entity regardless of its extension."""
        return await asyncio.to_thread(self._locate, project_id, entity_type, entity_id)

    def _locate(self, project_id: str, entity_type: str, entity_id: str) -> str | None:
        stem = safe_id(entity_id)
        reference_dir = f"data/{safe_id(project_id)}/{entity_type}"
        try:
            directory = self.absolute_path(reference_dir)
        except ValueError:
            return None
        if not os.path.isdir(directory):
            return None
        for name in sorted(os.listdir(directory)):
            base, ext = os.path.splitext(name)
            if base == stem and ext != ".tmp":
                return f"{reference_dir}/{name}"
        return None

    # ------------------------------------------------------------------
    # Value resolution
    # ------------------------------------------------------------------

    async def resolve_media_value(
        self, project_id: str, entity_type: str, entity_id: str, value: str | None
    ) -> str | None:
        """Normalize an incoming media value to what the database should hold.

        Inline payloads are persisted and replaced by their reference; remote
        URLs, internal URLs and existing references pass through unchanged.
        """
        if not value:
            return None
        if is_file_reference(value) or is_remote_url(value) or is_internal_media_url(value):
            return value
        if is_data_uri(value):
            return await self.save_data_uri(project_id, entity_type, entity_id, value)

        inline, url = unwrap_legacy_value(value)
        if inline and is_data_uri(inline):
            return await self.save_data_uri(project_id, entity_type, entity_id, inline) or url
        if inline is not None or url is not None:
            return url
        return value

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    async def delete_project_files(self, project_id: str) -> None:
        directory = self.absolute_path(f"data/{safe_id(project_id)}")
        if await asyncio.to_thread(os.path.isdir, directory):
            await asyncio.to_thread(shutil.rmtree, directory, True)
            logger.info("Deleted media directory for project %s", project_id)
