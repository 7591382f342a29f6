"""Conversion of ORM rows into response schemas."""

from __future__ import annotations

from app.models import (
    Conversation,
    GroupConversation,
    Message,
    Status,
    User,
    ensure_utc,
)
from app.schemas import (
    ConversationRead,
    MessageRead,
    ReactionRead,
    ReplyPreview,
    StatusRead,
    UserSummary,
)
from app.services.group_permissions import project_settings


def serialize_user(user: User) -> UserSummary:
    return UserSummary(
        id=user.id,
        login=user.login,
        name=user.name,
        avatar_url=user.avatar_url,
    )


def _serialize_reply(message: Message | None) -> ReplyPreview | None:
    if message is None:
        return None
    return ReplyPreview(
        id=message.id,
        sender_id=message.sender_id,
        text=message.text,
        media_url=message.media_url,
        media_type=message.media_type,
    )


def serialize_message(message: Message) -> MessageRead:
    return MessageRead(
        id=message.id,
        conversation_id=message.conversation_id,
        sender_id=message.sender_id,
        recipient_id=message.recipient_id,
        text=message.text,
        media_url=message.media_url,
        media_type=message.media_type,
        reply_message=_serialize_reply(message.reply_message),
        seen=message.seen,
        reacts=[
            ReactionRead(react=reaction.react, user=serialize_user(reaction.user))
            for reaction in message.reactions
        ],
        created_at=ensure_utc(message.created_at),
        updated_at=ensure_utc(message.updated_at),
    )


def serialize_conversation(conversation: Conversation, viewer_id: int | None) -> ConversationRead:
    """Conversation as seen by ``viewer_id``.

    Group settings are projected for the viewer, and the last message is
    omitted when it is older than the viewer's clear watermark.
    """
    last_message = conversation.last_message
    if last_message is not None and ensure_utc(last_message.created_at) <= ensure_utc(
        conversation.watermark_for(viewer_id)
    ):
        last_message = None

    read = ConversationRead(
        id=conversation.id,
        type=conversation.type,
        participants=[serialize_user(participant.user) for participant in conversation.participants],
        last_message=serialize_message(last_message) if last_message is not None else None,
        created_at=ensure_utc(conversation.created_at),
        updated_at=ensure_utc(conversation.updated_at),
    )
    if isinstance(conversation, GroupConversation):
        read.admin = conversation.admin_id
        read.group_name = conversation.group_name
        read.desc = conversation.description
        read.group_image = conversation.group_image
        read.group_settings = project_settings(conversation, viewer_id)
    return read


def serialize_status(status: Status, viewer_id: int | None) -> StatusRead:
    """The owner sees who viewed the status, everybody else whether they did."""

    read = StatusRead(
        id=status.id,
        user=serialize_user(status.user),
        content=status.content,
        media_url=status.media_url,
        media_type=status.media_type,
        expires_at=ensure_utc(status.expires_at),
        created_at=ensure_utc(status.created_at),
    )
    if status.user_id == viewer_id:
        read.viewers = [viewer.user_id for viewer in status.viewers]
    else:
        read.is_seen = status.viewed_by(viewer_id)
    return read
