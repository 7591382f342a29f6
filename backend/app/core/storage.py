"""Media storage used for message and status attachments."""

from __future__ import annotations

import asyncio
import logging
import mimetypes
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Final, Protocol

from fastapi import UploadFile

from app.config import get_settings
from app.core.errors import UploadError, ValidationError
from app.models.enums import MediaType

logger = logging.getLogger(__name__)

settings = get_settings()

_CHUNK_SIZE: Final[int] = 1024 * 1024  # 1 MiB

PICTURE_MIME_TYPES: Final[frozenset[str]] = frozenset({"image/jpeg", "image/png", "image/gif"})
VIDEO_MIME_TYPES: Final[frozenset[str]] = frozenset(
    {"video/mp4", "video/mov", "video/avi", "video/mkv", "video/webm"}
)


@dataclass(slots=True)
class MediaPayload:
    """Raw bytes of an attachment together with its declared mimetype."""

    data: bytes
    mime_type: str


@dataclass(slots=True)
class UploadResult:
    url: str
    media_type: MediaType


class MediaStore(Protocol):
    """Opaque storage that turns bytes into a public URL."""

    async def upload(
        self, data: bytes, mime_type: str, kind: str, owner_id: int, object_id: str
    ) -> UploadResult:
        ...


def classify_media(mime_type: str, size: int) -> MediaType:
    """Return the media kind for ``mime_type`` or raise if it is not accepted."""

    if mime_type in PICTURE_MIME_TYPES:
        if size > settings.max_photo_size:
            raise ValidationError("Image exceeds allowed size")
        return MediaType.IMAGE
    if mime_type in VIDEO_MIME_TYPES:
        if size > settings.max_video_size:
            raise ValidationError("Video exceeds allowed size")
        return MediaType.VIDEO
    raise ValidationError(f"Unsupported media type '{mime_type}'")


def media_public_id(kind: str, owner_id: int, object_id: str) -> str:
    return f"{kind}_{owner_id}_{object_id}"


class LocalMediaStore:
    """Filesystem backed media store serving files below ``media_base_url``."""

    def __init__(self, root: Path | None = None, base_url: str | None = None) -> None:
        self._root = root or settings.media_root
        self._base_url = (base_url or settings.media_base_url).rstrip("/")

    async def upload(
        self, data: bytes, mime_type: str, kind: str, owner_id: int, object_id: str
    ) -> UploadResult:
        media_type = classify_media(mime_type, len(data))
        extension = mimetypes.guess_extension(mime_type) or ""
        file_name = f"{media_public_id(kind, owner_id, object_id)}{extension}"
        target = self._root / kind / file_name
        try:
            await asyncio.to_thread(self._write, target, data)
        except OSError as exc:
            logger.exception("Failed to store media %s", target)
            raise UploadError("Error uploading media") from exc
        return UploadResult(url=f"{self._base_url}/{kind}/{file_name}", media_type=media_type)

    @staticmethod
    def _write(target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        try:
            target.write_bytes(data)
        except OSError:
            if target.exists():
                target.unlink()
            raise


async def upload_media(
    store: MediaStore, media: MediaPayload, *, kind: str, owner_id: int, object_id: str
) -> UploadResult:
    """Upload ``media`` bounded by the configured timeout."""

    try:
        return await asyncio.wait_for(
            store.upload(media.data, media.mime_type, kind, owner_id, object_id),
            timeout=settings.media_upload_timeout_seconds,
        )
    except asyncio.TimeoutError as exc:
        logger.warning("Media upload for %s_%s timed out", kind, object_id)
        raise UploadError("Error uploading media") from exc


async def read_upload(upload: UploadFile) -> MediaPayload:
    """Read a multipart upload into memory, enforcing the largest media limit."""

    limit = max(settings.max_photo_size, settings.max_video_size)
    chunks: list[bytes] = []
    total_size = 0
    try:
        while True:
            chunk = await upload.read(_CHUNK_SIZE)
            if not chunk:
                break
            total_size += len(chunk)
            if total_size > limit:
                raise ValidationError("Attachment exceeds allowed size")
            chunks.append(chunk)
    finally:
        await upload.close()
    return MediaPayload(data=b"".join(chunks), mime_type=upload.content_type or "")


@lru_cache
def get_media_store() -> MediaStore:
    return LocalMediaStore()
