"""Schemas for messages and conversations."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, Field

from app.models.enums import ReactionKind
from app.schemas.base import CamelModel
from app.schemas.users import UserSummary


class ReactionRead(CamelModel):
    react: ReactionKind
    user: UserSummary


class ReplyPreview(CamelModel):
    """Quoted message shown above a reply."""

    id: str
    sender_id: int = Field(
        validation_alias=AliasChoices("from", "senderId"), serialization_alias="from"
    )
    text: str | None = None
    media_url: str | None = None
    media_type: str = ""


class MessageRead(CamelModel):
    id: str
    conversation_id: int
    sender_id: int = Field(
        validation_alias=AliasChoices("from", "senderId"), serialization_alias="from"
    )
    recipient_id: int | None = Field(
        default=None, validation_alias=AliasChoices("to", "recipientId"), serialization_alias="to"
    )
    text: str | None = None
    media_url: str | None = None
    media_type: str = ""
    reply_message: ReplyPreview | None = None
    seen: bool = False
    reacts: list[ReactionRead] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class ConversationRead(CamelModel):
    """Private or group conversation as seen by one viewer."""

    id: int
    type: str
    participants: list[UserSummary]
    last_message: MessageRead | None = None
    created_at: datetime
    updated_at: datetime
    admin: int | None = None
    group_name: str | None = None
    desc: str | None = None
    group_image: str | None = None
    group_settings: dict[str, Any] | None = None


class ConversationResponse(CamelModel):
    success: bool = True
    conversation: ConversationRead


class ConversationListResponse(CamelModel):
    success: bool = True
    conversations: list[ConversationRead]


class MessageResponse(CamelModel):
    success: bool = True
    message: MessageRead


class SendMessageResponse(CamelModel):
    """Acknowledgement of a sent or forwarded message."""

    success: bool = True
    message: MessageRead
    conversation: ConversationRead


class MessagePageResponse(CamelModel):
    success: bool = True
    messages: list[MessageRead]
    has_more: bool


class ReactionRequest(CamelModel):
    react: ReactionKind


class ForwardRequest(CamelModel):
    conversation_id: int


class DeletedMessageResponse(CamelModel):
    success: bool = True
    message_id: str
    conversation: ConversationRead
