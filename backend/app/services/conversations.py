"""Canonical conversation lookup and group lifecycle."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, aliased

from app.core.errors import (
    ConcurrencyConflict,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from app.models import (
    Conversation,
    ConversationParticipant,
    ConversationType,
    ConversationUserSetting,
    GroupConversation,
    Message,
    PrivateConversation,
    User,
    pair_key,
    utcnow,
)
from app.services import group_permissions as perms
from app.services.relationships import get_user

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class GroupRemoval:
    """Outcome of deleting a group, captured before the rows disappear."""

    group_id: int
    participant_ids: list[int]


def _find_private(db: Session, key: str) -> PrivateConversation | None:
    stmt = select(PrivateConversation).where(PrivateConversation.participant_key == key)
    return db.execute(stmt).scalar_one_or_none()


def _create_private(db: Session, key: str, user_id: int, other_id: int) -> PrivateConversation:
    conversation = PrivateConversation(participant_key=key)
    conversation.participants = [
        ConversationParticipant(user_id=participant_id)
        for participant_id in sorted((user_id, other_id))
    ]
    db.add(conversation)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConcurrencyConflict("Private conversation already exists") from exc
    return conversation


def resolve_private(db: Session, user_id: int, other_id: int) -> PrivateConversation:
    """Return the single private conversation of an unordered user pair.

    The conversation is created on first contact. When a concurrent request
    inserts the same pair first, the unique participant key rejects our row
    and the lookup is repeated once.
    """
    if user_id == other_id:
        raise ValidationError("Can't start a conversation with yourself")
    key = pair_key(user_id, other_id)
    conversation = _find_private(db, key)
    if conversation is not None:
        return conversation
    try:
        return _create_private(db, key, user_id, other_id)
    except ConcurrencyConflict:
        logger.info("Private conversation %s created concurrently, reusing it", key)
        conversation = _find_private(db, key)
        if conversation is None:
            raise
        return conversation


def get_conversation(db: Session, conversation_id: int) -> Conversation:
    conversation = db.get(Conversation, conversation_id)
    if conversation is None:
        raise NotFoundError("No conversation with this id")
    return conversation


def resolve_group(db: Session, conversation_id: int) -> GroupConversation:
    conversation = db.get(Conversation, conversation_id)
    if not isinstance(conversation, GroupConversation):
        raise NotFoundError("No group with this id")
    return conversation


def require_participant(conversation: Conversation, user_id: int) -> None:
    if not conversation.has_participant(user_id):
        raise PermissionDeniedError("You are not a participant of this conversation")


def group_ids_for_user(db: Session, user_id: int) -> list[int]:
    stmt = (
        select(ConversationParticipant.conversation_id)
        .join(Conversation, Conversation.id == ConversationParticipant.conversation_id)
        .where(
            ConversationParticipant.user_id == user_id,
            Conversation.type == ConversationType.GROUP.value,
        )
    )
    return list(db.execute(stmt).scalars())


def private_partner_ids(db: Session, user_id: int) -> list[int]:
    """Users sharing a private conversation with ``user_id``."""

    mine = (
        select(ConversationParticipant.conversation_id)
        .join(Conversation, Conversation.id == ConversationParticipant.conversation_id)
        .where(
            ConversationParticipant.user_id == user_id,
            Conversation.type == ConversationType.PRIVATE.value,
        )
    )
    stmt = select(ConversationParticipant.user_id).where(
        ConversationParticipant.conversation_id.in_(mine),
        ConversationParticipant.user_id != user_id,
    )
    return sorted(set(db.execute(stmt).scalars()))


def list_conversations(db: Session, user_id: int) -> list[Conversation]:
    """Conversations visible to ``user_id``, most recently active first.

    Private conversations appear once they have a last message newer than the
    user's watermark. Groups are listed while empty, and hidden once their
    last message falls behind the watermark.
    """
    last = aliased(Message)
    setting = ConversationUserSetting
    newer_than_watermark = and_(
        last.id.is_not(None),
        or_(
            setting.messages_cleared_at.is_(None),
            last.created_at > setting.messages_cleared_at,
        ),
    )
    stmt = (
        select(Conversation)
        .join(ConversationParticipant, ConversationParticipant.conversation_id == Conversation.id)
        .outerjoin(last, last.id == Conversation.last_message_id)
        .outerjoin(
            setting,
            and_(setting.conversation_id == Conversation.id, setting.user_id == user_id),
        )
        .where(ConversationParticipant.user_id == user_id)
        .where(
            or_(
                newer_than_watermark,
                and_(
                    Conversation.type == ConversationType.GROUP.value,
                    Conversation.last_message_id.is_(None),
                ),
            )
        )
        .order_by(Conversation.updated_at.desc(), Conversation.id.desc())
    )
    return list(db.execute(stmt).scalars())


def clear_conversation(db: Session, conversation_id: int, user: User) -> Conversation:
    """Hide every existing message of the conversation from ``user`` only."""

    conversation = get_conversation(db, conversation_id)
    require_participant(conversation, user.id)
    conversation.set_watermark(user.id, utcnow())
    db.commit()
    return conversation


def create_group(
    db: Session,
    admin: User,
    group_name: str,
    *,
    description: str | None = None,
    group_image: str | None = None,
    member_ids: Iterable[int] = (),
) -> GroupConversation:
    group = GroupConversation(
        admin_id=admin.id,
        group_name=group_name,
        description=description,
        group_image=group_image,
    )
    participants = [admin.id]
    for member_id in member_ids:
        if member_id not in participants:
            get_user(db, member_id)
            participants.append(member_id)
    group.participants = [ConversationParticipant(user_id=user_id) for user_id in participants]
    db.add(group)
    db.commit()
    logger.info("User %s created group %s", admin.id, group.id)
    return group


def get_group(db: Session, group_id: int, viewer: User) -> GroupConversation:
    group = resolve_group(db, group_id)
    require_participant(group, viewer.id)
    return group


def delete_group(db: Session, group_id: int, actor: User) -> GroupRemoval:
    group = resolve_group(db, group_id)
    perms.require(group.is_admin(actor.id), "Can't delete this group")
    removal = GroupRemoval(group_id=group.id, participant_ids=group.participant_ids)
    db.execute(
        update(Conversation)
        .where(Conversation.id == group.id)
        .values(last_message_id=None)
        .execution_options(synchronize_session=False)
    )
    db.expire(group, ["last_message_id", "last_message"])
    db.delete(group)
    db.commit()
    logger.info("User %s deleted group %s", actor.id, removal.group_id)
    return removal


def leave_group(db: Session, group_id: int, actor: User) -> GroupConversation:
    group = resolve_group(db, group_id)
    require_participant(group, actor.id)
    if group.is_admin(actor.id):
        raise ValidationError("The admin can't leave the group, delete it instead")
    _drop_participant(group, actor.id)
    db.commit()
    return group


def add_member(db: Session, group_id: int, actor: User, target: User) -> GroupConversation:
    group = resolve_group(db, group_id)
    perms.require(perms.can_add_member(group, actor.id, target.id), "Can't add this user to the group")
    perms.require(not perms.requires_admin_approval(group, actor.id), "Admin approval required")
    group.participants.append(ConversationParticipant(user_id=target.id))
    db.commit()
    return group


def remove_member(db: Session, group_id: int, actor: User, target_id: int) -> GroupConversation:
    group = resolve_group(db, group_id)
    perms.require(perms.can_remove_member(group, actor.id), "Only the admin can remove users")
    if target_id == actor.id:
        raise ValidationError("The admin can't remove themselves")
    if not group.has_participant(target_id):
        raise NotFoundError("No member with this id")
    _drop_participant(group, target_id)
    db.commit()
    return group


def join_group(db: Session, group_id: int, actor: User, link_token: str) -> GroupConversation:
    group = resolve_group(db, group_id)
    perms.require(perms.can_join(group, actor.id, link_token), "Invalid invite link")
    perms.require(not perms.requires_admin_approval(group, actor.id), "Admin approval required")
    group.participants.append(ConversationParticipant(user_id=actor.id))
    db.commit()
    return group


def update_group_settings(
    db: Session, group_id: int, actor: User, patch: Mapping[str, Any]
) -> GroupConversation:
    group = resolve_group(db, group_id)
    perms.require(perms.can_edit_settings(group, actor.id), "Only the admin can edit group settings")
    effective = perms.filter_settings_patch(patch)
    perms.apply_settings_patch(group, effective)
    db.commit()
    return group


def update_group_data(
    db: Session,
    group_id: int,
    actor: User,
    *,
    group_name: str | None = None,
    description: str | None = None,
    group_image: str | None = None,
) -> GroupConversation:
    group = resolve_group(db, group_id)
    perms.require(perms.can_edit_group_data(group, actor.id), "Can't edit this group")
    if group_name is None and description is None and group_image is None:
        raise ValidationError("Nothing to update")
    if group_name is not None:
        group.group_name = group_name
    if description is not None:
        group.description = description
    if group_image is not None:
        group.group_image = group_image
    db.commit()
    return group


def get_link_token(db: Session, group_id: int, actor: User) -> str:
    group = resolve_group(db, group_id)
    require_participant(group, actor.id)
    perms.require(
        group.is_admin(actor.id) or group.settings["members"]["inviteViaLink"],
        "Invite link is not available",
    )
    had_token = bool(group.settings.get("linkToken"))
    token = perms.ensure_link_token(group)
    if not had_token:
        db.commit()
    return token


def reset_link_token(db: Session, group_id: int, actor: User) -> str:
    group = resolve_group(db, group_id)
    perms.require(perms.can_edit_settings(group, actor.id), "Only the admin can reset the invite link")
    token = perms.rotate_link_token(group)
    db.commit()
    return token


def _drop_participant(group: GroupConversation, user_id: int) -> None:
    for participant in list(group.participants):
        if participant.user_id == user_id:
            group.participants.remove(participant)
