"""Message lifecycle: send, react, seen, delete, forward and history pages."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.core.errors import NotFoundError, PermissionDeniedError, ValidationError
from app.core.storage import MediaPayload, MediaStore, upload_media
from app.models import (
    Conversation,
    GroupConversation,
    MediaType,
    Message,
    MessageReaction,
    PrivateConversation,
    ReactionKind,
    User,
    ensure_utc,
    new_object_id,
)
from app.services import group_permissions as perms
from app.services.conversations import (
    get_conversation,
    require_participant,
    resolve_group,
    resolve_private,
)
from app.services.relationships import ensure_can_interact, get_user

logger = logging.getLogger(__name__)

settings = get_settings()


@dataclass(slots=True)
class SendResult:
    message: Message
    conversation: Conversation


@dataclass(slots=True)
class MessagePage:
    messages: list[Message]
    has_more: bool
    limit: int


@dataclass(slots=True)
class DeletedMessage:
    """Identity of a removed message and the conversation state after removal."""

    message_id: str
    sender_id: int
    recipient_id: int | None
    conversation: Conversation


def clamp_limit(limit: int | None) -> int:
    if not limit or limit <= 0:
        return settings.chat_page_default_limit
    return min(limit, settings.chat_page_max_limit)


def validate_content(text: str | None, media: MediaPayload | None) -> str | None:
    """Return the normalized text after checking exactly one content kind is set."""

    normalized = text if text and text.strip() else None
    if normalized is None and media is None:
        raise ValidationError("Message text or media is required")
    if normalized is not None and media is not None:
        raise ValidationError("A message carries either text or media, not both")
    if normalized is not None and len(normalized) > settings.chat_message_max_length:
        raise ValidationError("Message is too long")
    return normalized


def get_message(db: Session, message_id: str) -> Message:
    message = db.get(Message, message_id)
    if message is None:
        raise NotFoundError("No message with this id")
    return message


def _touch_last_message(db: Session, conversation_id: int, message: Message) -> None:
    db.execute(
        update(Conversation)
        .where(Conversation.id == conversation_id)
        .values(last_message_id=message.id, updated_at=message.created_at)
        .execution_options(synchronize_session=False)
    )


def _resolve_reply(db: Session, conversation_id: int, reply_to_id: str | None) -> str | None:
    if reply_to_id is None:
        return None
    reply = db.get(Message, reply_to_id)
    if reply is None or reply.conversation_id != conversation_id:
        raise NotFoundError("No message with this id")
    return reply.id


async def _upload(
    store: MediaStore, media: MediaPayload | None, sender_id: int, message_id: str
) -> tuple[str | None, str]:
    if media is None:
        return None, MediaType.NONE.value
    result = await upload_media(
        store, media, kind="message", owner_id=sender_id, object_id=message_id
    )
    return result.url, result.media_type.value


def _store(
    db: Session,
    conversation: Conversation,
    message: Message,
) -> SendResult:
    db.add(message)
    db.flush()
    _touch_last_message(db, conversation.id, message)
    db.commit()
    db.refresh(conversation)
    return SendResult(message=message, conversation=conversation)


async def send_private(
    db: Session,
    sender: User,
    recipient_id: int,
    *,
    text: str | None = None,
    media: MediaPayload | None = None,
    reply_to_id: str | None = None,
    media_store: MediaStore,
) -> SendResult:
    """Send a message to another user, creating the conversation if needed.

    Media is uploaded before anything is written, so an upload failure
    leaves no message behind.
    """
    text = validate_content(text, media)
    get_user(db, recipient_id)
    ensure_can_interact(db, sender.id, recipient_id)

    message_id = new_object_id()
    media_url, media_type = await _upload(media_store, media, sender.id, message_id)

    conversation = resolve_private(db, sender.id, recipient_id)
    message = Message(
        id=message_id,
        conversation_id=conversation.id,
        sender_id=sender.id,
        recipient_id=recipient_id,
        text=text,
        media_url=media_url,
        media_type=media_type,
        reply_message_id=_resolve_reply(db, conversation.id, reply_to_id),
    )
    return _store(db, conversation, message)


async def send_group(
    db: Session,
    sender: User,
    group_id: int,
    *,
    text: str | None = None,
    media: MediaPayload | None = None,
    reply_to_id: str | None = None,
    media_store: MediaStore,
) -> SendResult:
    text = validate_content(text, media)
    group = resolve_group(db, group_id)
    require_participant(group, sender.id)
    perms.require(perms.can_send_message(group, sender.id), "Can't send message to this group")
    reply_message_id = _resolve_reply(db, group.id, reply_to_id)

    message_id = new_object_id()
    media_url, media_type = await _upload(media_store, media, sender.id, message_id)

    message = Message(
        id=message_id,
        conversation_id=group.id,
        sender_id=sender.id,
        text=text,
        media_url=media_url,
        media_type=media_type,
        reply_message_id=reply_message_id,
    )
    return _store(db, group, message)


def react(db: Session, message_id: str, user: User, kind: str | ReactionKind) -> Message:
    """Append, replace or toggle off the user's reaction on a message."""

    try:
        reaction_kind = ReactionKind(kind)
    except ValueError:
        raise ValidationError(f"Unknown reaction '{kind}'") from None
    message = get_message(db, message_id)
    conversation = message.conversation
    if not conversation.has_participant(user.id):
        raise PermissionDeniedError("You can only react to messages in your conversations")
    if isinstance(conversation, PrivateConversation):
        other_id = conversation.other_participant(user.id)
        if other_id is not None:
            ensure_can_interact(db, user.id, other_id)

    for attempt in range(2):
        existing = db.execute(
            select(MessageReaction).where(
                MessageReaction.message_id == message.id,
                MessageReaction.user_id == user.id,
            )
        ).scalar_one_or_none()
        if existing is None:
            db.add(MessageReaction(message_id=message.id, user_id=user.id, react=reaction_kind))
        elif existing.react == reaction_kind:
            db.delete(existing)
        else:
            existing.react = reaction_kind
        try:
            db.commit()
            break
        except IntegrityError:
            # A concurrent call by the same user inserted first; re-apply on top of it.
            db.rollback()
            if attempt:
                raise
    db.refresh(message)
    return message


def mark_seen(db: Session, reader: User, other_id: int) -> tuple[PrivateConversation, int]:
    """Mark every unseen message addressed to ``reader`` by ``other_id`` as seen."""

    get_user(db, other_id)
    ensure_can_interact(db, reader.id, other_id)
    conversation = resolve_private(db, reader.id, other_id)
    result = db.execute(
        update(Message)
        .where(
            Message.conversation_id == conversation.id,
            Message.recipient_id == reader.id,
            Message.seen.is_(False),
        )
        .values(seen=True)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return conversation, result.rowcount or 0


def delete_message(db: Session, message_id: str, actor: User) -> DeletedMessage:
    """Remove a message sent by ``actor``.

    When it is the conversation's last message the pointer moves to the newest
    surviving message, or is cleared, in the same conditional update.
    """
    message = get_message(db, message_id)
    if message.sender_id != actor.id:
        raise PermissionDeniedError("You can only delete your own messages")
    conversation = message.conversation
    newest_survivor = (
        select(Message.id)
        .where(Message.conversation_id == conversation.id, Message.id != message.id)
        .order_by(Message.created_at.desc(), Message.id.desc())
        .limit(1)
        .scalar_subquery()
    )
    db.execute(
        update(Conversation)
        .where(Conversation.id == conversation.id, Conversation.last_message_id == message.id)
        .values(last_message_id=newest_survivor)
        .execution_options(synchronize_session=False)
    )
    db.expire(conversation, ["last_message_id", "last_message"])
    deleted = DeletedMessage(
        message_id=message.id,
        sender_id=message.sender_id,
        recipient_id=message.recipient_id,
        conversation=conversation,
    )
    db.delete(message)
    db.commit()
    return deleted


def list_page(
    db: Session,
    conversation: Conversation,
    reader_id: int,
    *,
    before: datetime | None = None,
    limit: int | None = None,
) -> MessagePage:
    """Newest-first page of messages newer than the reader's watermark."""

    page_size = clamp_limit(limit)
    stmt = select(Message).where(
        Message.conversation_id == conversation.id,
        Message.created_at > conversation.watermark_for(reader_id),
    )
    if before is not None:
        stmt = stmt.where(Message.created_at < ensure_utc(before))
    stmt = stmt.order_by(Message.created_at.desc(), Message.id.desc()).limit(page_size)
    messages = list(db.execute(stmt).scalars())
    return MessagePage(messages=messages, has_more=len(messages) == page_size, limit=page_size)


def private_history(
    db: Session,
    reader: User,
    other_id: int,
    *,
    before: datetime | None = None,
    limit: int | None = None,
) -> tuple[PrivateConversation, MessagePage]:
    """History with another user; opening it marks the last message as seen."""

    get_user(db, other_id)
    conversation = resolve_private(db, reader.id, other_id)
    last = conversation.last_message
    if last is not None and last.recipient_id == reader.id and not last.seen:
        last.seen = True
        db.commit()
    return conversation, list_page(db, conversation, reader.id, before=before, limit=limit)


def group_history(
    db: Session,
    reader: User,
    group_id: int,
    *,
    before: datetime | None = None,
    limit: int | None = None,
) -> tuple[GroupConversation, MessagePage]:
    group = resolve_group(db, group_id)
    require_participant(group, reader.id)
    return group, list_page(db, group, reader.id, before=before, limit=limit)


def forward(db: Session, message_id: str, actor: User, target_id: int) -> SendResult:
    """Copy a message's text or media into another conversation."""

    message = get_message(db, message_id)
    if not message.conversation.has_participant(actor.id):
        raise PermissionDeniedError("You can't forward this message")
    target = get_conversation(db, target_id)
    require_participant(target, actor.id)

    recipient_id: int | None = None
    if isinstance(target, PrivateConversation):
        recipient_id = target.other_participant(actor.id)
        if recipient_id is not None:
            ensure_can_interact(db, actor.id, recipient_id)
    elif isinstance(target, GroupConversation):
        perms.require(perms.can_send_message(target, actor.id), "Can't send message to this group")

    copy = Message(
        conversation_id=target.id,
        sender_id=actor.id,
        recipient_id=recipient_id,
        text=message.text,
        media_url=message.media_url,
        media_type=message.media_type,
        seen=False,
    )
    return _store(db, target, copy)
