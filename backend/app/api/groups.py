"""Group conversation management endpoints."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user
from app.api.serializers import serialize_conversation, serialize_user
from app.database import get_db
from app.models import GroupConversation, User
from app.schemas import (
    GroupCreate,
    GroupDataUpdate,
    GroupJoin,
    GroupMemberAdd,
    GroupResponse,
    LinkTokenResponse,
    SuccessResponse,
)
from app.services import conversations, relationships
from parley.realtime import DomainEvent, EventKind, conversation_room, get_dispatcher, get_room_registry

router = APIRouter(prefix="/chat/groups", tags=["groups"])

logger = logging.getLogger(__name__)


def _group_response(group: GroupConversation, viewer_id: int) -> GroupResponse:
    return GroupResponse(group=serialize_conversation(group, viewer_id))


def _broadcast_view(group: GroupConversation) -> dict[str, Any]:
    return serialize_conversation(group, None).to_wire()


async def _announce_member(group: GroupConversation, actor: User, member: User) -> None:
    await get_room_registry().join_user(member.id, conversation_room(group.id))
    await get_dispatcher().publish(
        DomainEvent(
            EventKind.MEMBER_ADDED,
            {"user": serialize_user(member).to_wire(), "conversation": _broadcast_view(group)},
            actor_id=actor.id,
            conversation_id=group.id,
        )
    )


async def _announce_removal(group: GroupConversation, actor: User, member_id: int) -> None:
    await get_room_registry().leave_user(member_id, conversation_room(group.id))
    await get_dispatcher().publish(
        DomainEvent(
            EventKind.MEMBER_REMOVED,
            {"userId": member_id, "conversation": _broadcast_view(group)},
            actor_id=actor.id,
            recipient_ids=[member_id],
            conversation_id=group.id,
        )
    )


@router.post("", response_model=GroupResponse, status_code=status.HTTP_201_CREATED)
async def create_group(
    payload: GroupCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> GroupResponse:
    group = conversations.create_group(
        db,
        current_user,
        payload.group_name,
        description=payload.desc,
        group_image=payload.group_image,
        member_ids=payload.members,
    )
    registry = get_room_registry()
    for member_id in group.participant_ids:
        await registry.join_user(member_id, conversation_room(group.id))
    await get_dispatcher().publish(
        DomainEvent(
            EventKind.MEMBER_ADDED,
            {"user": serialize_user(current_user).to_wire(), "conversation": _broadcast_view(group)},
            actor_id=current_user.id,
            conversation_id=group.id,
        )
    )
    return _group_response(group, current_user.id)


@router.get("/{group_id}", response_model=GroupResponse)
def get_group(
    group_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> GroupResponse:
    return _group_response(conversations.get_group(db, group_id, current_user), current_user.id)


@router.delete("/{group_id}", response_model=SuccessResponse)
async def delete_group(
    group_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> SuccessResponse:
    removal = conversations.delete_group(db, group_id, current_user)
    await get_dispatcher().publish(
        DomainEvent(
            EventKind.GROUP_DELETED,
            {"conversationId": removal.group_id},
            actor_id=current_user.id,
            conversation_id=removal.group_id,
        )
    )
    await get_room_registry().drop_room(conversation_room(removal.group_id))
    return SuccessResponse()


@router.post("/{group_id}/join", response_model=GroupResponse)
async def join_group(
    group_id: int,
    payload: GroupJoin,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> GroupResponse:
    group = conversations.join_group(db, group_id, current_user, payload.link_token)
    await _announce_member(group, current_user, current_user)
    return _group_response(group, current_user.id)


@router.post("/{group_id}/leave", response_model=SuccessResponse)
async def leave_group(
    group_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> SuccessResponse:
    group = conversations.leave_group(db, group_id, current_user)
    await _announce_removal(group, current_user, current_user.id)
    return SuccessResponse()


@router.post("/{group_id}/members", response_model=GroupResponse)
async def add_member(
    group_id: int,
    payload: GroupMemberAdd,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> GroupResponse:
    """Add a user, identified by id or email, to the group."""

    if payload.user_id is not None:
        target = relationships.get_user(db, payload.user_id)
    else:
        target = relationships.find_user_by_email(db, current_user, payload.email)
    group = conversations.add_member(db, group_id, current_user, target)
    await _announce_member(group, current_user, target)
    return _group_response(group, current_user.id)


@router.delete("/{group_id}/members/{user_id}", response_model=GroupResponse)
async def remove_member(
    group_id: int,
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> GroupResponse:
    group = conversations.remove_member(db, group_id, current_user, user_id)
    await _announce_removal(group, current_user, user_id)
    return _group_response(group, current_user.id)


@router.patch("/{group_id}/settings", response_model=GroupResponse)
async def update_settings(
    group_id: int,
    patch: dict[str, Any] = Body(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> GroupResponse:
    """Apply a nested settings patch; unknown paths are ignored."""

    group = conversations.update_group_settings(db, group_id, current_user, patch)
    logger.info("User %s updated settings of group %s", current_user.id, group.id)
    await get_dispatcher().publish(
        DomainEvent(
            EventKind.SETTINGS_UPDATED,
            {"conversationId": group.id, "groupSettings": _broadcast_view(group)["groupSettings"]},
            actor_id=current_user.id,
            conversation_id=group.id,
        )
    )
    return _group_response(group, current_user.id)


@router.patch("/{group_id}", response_model=GroupResponse)
async def update_group_data(
    group_id: int,
    payload: GroupDataUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> GroupResponse:
    group = conversations.update_group_data(
        db,
        group_id,
        current_user,
        group_name=payload.group_name,
        description=payload.desc,
        group_image=payload.group_image,
    )
    await get_dispatcher().publish(
        DomainEvent(
            EventKind.GROUP_UPDATED,
            _broadcast_view(group),
            actor_id=current_user.id,
            conversation_id=group.id,
        )
    )
    return _group_response(group, current_user.id)


@router.get("/{group_id}/link", response_model=LinkTokenResponse)
def get_link_token(
    group_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> LinkTokenResponse:
    return LinkTokenResponse(link_token=conversations.get_link_token(db, group_id, current_user))


@router.post("/{group_id}/link/reset", response_model=LinkTokenResponse)
def reset_link_token(
    group_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> LinkTokenResponse:
    return LinkTokenResponse(link_token=conversations.reset_link_token(db, group_id, current_user))
