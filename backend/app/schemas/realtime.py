"""Inbound websocket frames."""

from __future__ import annotations

import base64
import binascii
from typing import Any

from pydantic import Field

from app.core.errors import ValidationError
from app.core.storage import MediaPayload
from app.schemas.base import CamelModel


class ClientFrame(CamelModel):
    """Envelope of every frame a client sends: ``{"event", "data", "ack"}``."""

    event: str
    data: dict[str, Any] = Field(default_factory=dict)
    ack: int | str | None = None


class MediaFrame(CamelModel):
    data: str = Field(description="Base64 encoded bytes")
    mimetype: str

    def to_payload(self) -> MediaPayload:
        try:
            raw = base64.b64decode(self.data, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValidationError("Media must be base64 encoded") from exc
        return MediaPayload(data=raw, mime_type=self.mimetype)


class SendPrivateMessage(CamelModel):
    to: int
    text: str | None = None
    media: MediaFrame | None = None
    reply_message: str | None = None


class SendGroupMessage(CamelModel):
    conversation_id: int
    text: str | None = None
    media: MediaFrame | None = None
    reply_message: str | None = None


class Typing(CamelModel):
    to: int
    is_typing: bool


class SeeAllMessages(CamelModel):
    to: int


class StartCall(CamelModel):
    to: int
    call_type: str


class CallUpdate(CamelModel):
    to: int
    call_id: str


class SignalData(CamelModel):
    to: int
    call_id: str | None = None
    data: Any = None
