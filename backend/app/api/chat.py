"""Conversation, history and message endpoints."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_current_user
from app.api.serializers import serialize_conversation, serialize_message
from app.database import get_db
from app.models import GroupConversation, PrivateConversation, User
from app.schemas import (
    ConversationListResponse,
    ConversationResponse,
    DeletedMessageResponse,
    ForwardRequest,
    MessagePageResponse,
    MessageResponse,
    ReactionRequest,
    SendMessageResponse,
    SuccessResponse,
)
from app.services import conversations, messages, relationships
from parley.realtime import DomainEvent, EventKind, get_dispatcher

router = APIRouter(prefix="/chat", tags=["chat"])


def _page_response(page: messages.MessagePage) -> MessagePageResponse:
    return MessagePageResponse(
        messages=[serialize_message(message) for message in page.messages],
        has_more=page.has_more,
    )


def _audience(conversation, actor_id: int) -> tuple[list[int], int | None]:
    """Recipients and room of an event about ``conversation``."""

    if isinstance(conversation, GroupConversation):
        return [], conversation.id
    return [user_id for user_id in conversation.participant_ids if user_id != actor_id], None


@router.get("/conversations", response_model=ConversationListResponse)
def list_conversations(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ConversationListResponse:
    items = conversations.list_conversations(db, current_user.id)
    return ConversationListResponse(
        conversations=[serialize_conversation(item, current_user.id) for item in items]
    )


@router.get(
    "/conversations/user/{user_id}",
    response_model=ConversationResponse,
)
def get_private_conversation(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ConversationResponse:
    """Return the private conversation with ``user_id``, creating it on first contact."""

    relationships.get_user(db, user_id)
    conversation = conversations.resolve_private(db, current_user.id, user_id)
    return ConversationResponse(conversation=serialize_conversation(conversation, current_user.id))


@router.get(
    "/conversations/messages/{user_id}",
    response_model=MessagePageResponse,
)
def private_messages(
    user_id: int,
    before: datetime | None = Query(default=None),
    limit: int | None = Query(default=None, ge=1),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MessagePageResponse:
    _, page = messages.private_history(db, current_user, user_id, before=before, limit=limit)
    return _page_response(page)


@router.get(
    "/conversations/{conversation_id}/messages",
    response_model=MessagePageResponse,
)
def group_messages(
    conversation_id: int,
    before: datetime | None = Query(default=None),
    limit: int | None = Query(default=None, ge=1),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MessagePageResponse:
    _, page = messages.group_history(db, current_user, conversation_id, before=before, limit=limit)
    return _page_response(page)


@router.delete(
    "/conversations/{conversation_id}",
    response_model=SuccessResponse,
)
def clear_conversation(
    conversation_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> SuccessResponse:
    """Hide the conversation's current messages for the caller only."""

    conversations.clear_conversation(db, conversation_id, current_user)
    return SuccessResponse()


@router.post(
    "/message/{message_id}/react",
    response_model=MessageResponse,
)
async def react_to_message(
    message_id: str,
    payload: ReactionRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MessageResponse:
    message = messages.react(db, message_id, current_user, payload.react)
    read = serialize_message(message)
    recipients, room = _audience(message.conversation, current_user.id)
    await get_dispatcher().publish(
        DomainEvent(
            EventKind.REACTION,
            read.to_wire(),
            actor_id=current_user.id,
            recipient_ids=recipients,
            conversation_id=room,
        )
    )
    return MessageResponse(message=read)


@router.delete(
    "/message/{message_id}",
    response_model=DeletedMessageResponse,
)
async def delete_message(
    message_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> DeletedMessageResponse:
    deleted = messages.delete_message(db, message_id, current_user)
    recipients, room = _audience(deleted.conversation, current_user.id)
    response = DeletedMessageResponse(
        message_id=deleted.message_id,
        conversation=serialize_conversation(deleted.conversation, current_user.id),
    )
    await get_dispatcher().publish(
        DomainEvent(
            EventKind.MESSAGE_DELETED,
            {
                "messageId": deleted.message_id,
                "conversationId": deleted.conversation.id,
                "lastMessage": response.conversation.to_wire()["lastMessage"],
            },
            actor_id=current_user.id,
            recipient_ids=recipients,
            conversation_id=room,
        )
    )
    return response


@router.post(
    "/message/forward/{message_id}",
    response_model=SendMessageResponse,
)
async def forward_message(
    message_id: str,
    payload: ForwardRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> SendMessageResponse:
    result = messages.forward(db, message_id, current_user, payload.conversation_id)
    response = SendMessageResponse(
        message=serialize_message(result.message),
        conversation=serialize_conversation(result.conversation, current_user.id),
    )
    if isinstance(result.conversation, PrivateConversation):
        event = DomainEvent(
            EventKind.PRIVATE_MESSAGE,
            response.to_wire(),
            actor_id=current_user.id,
            recipient_ids=[result.message.recipient_id] if result.message.recipient_id else [],
        )
    else:
        event = DomainEvent(
            EventKind.GROUP_MESSAGE,
            response.to_wire(),
            actor_id=current_user.id,
            conversation_id=result.conversation.id,
        )
    await get_dispatcher().publish(event)
    return response
