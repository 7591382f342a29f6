"""Tests for media classification and the local media store."""

from __future__ import annotations

import asyncio

import pytest

from app.core import storage
from app.core.errors import UploadError, ValidationError
from app.core.storage import LocalMediaStore, MediaPayload, classify_media, upload_media
from app.models import MediaType

pytestmark = pytest.mark.anyio


class SlowMediaStore:
    async def upload(self, data, mime_type, kind, owner_id, object_id):
        await asyncio.sleep(1)


async def test_classify_media_by_mimetype_and_size():
    assert classify_media("image/png", 10) is MediaType.IMAGE
    assert classify_media("video/mp4", 10) is MediaType.VIDEO
    with pytest.raises(ValidationError):
        classify_media("application/pdf", 10)
    with pytest.raises(ValidationError):
        classify_media("image/png", storage.settings.max_photo_size + 1)


async def test_local_store_writes_under_kind_directory(tmp_path):
    store = LocalMediaStore(root=tmp_path, base_url="/media/")

    result = await store.upload(b"\x89PNG", "image/png", "message", 4, "abc")

    assert result.media_type is MediaType.IMAGE
    assert result.url == "/media/message/message_4_abc.png"
    assert (tmp_path / "message" / "message_4_abc.png").read_bytes() == b"\x89PNG"


async def test_upload_timeout_becomes_upload_error(monkeypatch):
    monkeypatch.setattr(storage.settings, "media_upload_timeout_seconds", 0.01)

    with pytest.raises(UploadError):
        await upload_media(
            SlowMediaStore(),
            MediaPayload(data=b"x", mime_type="image/png"),
            kind="status",
            owner_id=1,
            object_id="abc",
        )
