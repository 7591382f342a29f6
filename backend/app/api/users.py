"""Profile, privacy, friendship and block-list endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_current_user
from app.api.serializers import serialize_user
from app.database import get_db
from app.models import User
from app.schemas import (
    BlockedUsersResponse,
    CurrentUserResponse,
    FriendRequestsResponse,
    FriendsResponse,
    PrivacyUpdate,
    SentRequestsResponse,
    SuccessResponse,
    UserPrivacy,
    UserResponse,
)
from app.services import relationships
from parley.realtime import DomainEvent, EventKind, get_dispatcher

router = APIRouter(prefix="/users", tags=["users"])


def _current_user_response(user: User) -> CurrentUserResponse:
    return CurrentUserResponse(
        user=serialize_user(user),
        privacy=UserPrivacy(online=user.online_visibility, read_receipts=user.read_receipts),
    )


async def _notify(kind: EventKind, actor: User, other_id: int) -> None:
    await get_dispatcher().publish(
        DomainEvent(
            kind,
            {"user": serialize_user(actor).to_wire()},
            actor_id=actor.id,
            recipient_ids=[other_id],
        )
    )


@router.get("/me", response_model=CurrentUserResponse)
def read_current_user(current_user: User = Depends(get_current_user)) -> CurrentUserResponse:
    return _current_user_response(current_user)


@router.patch("/me/privacy", response_model=CurrentUserResponse)
def update_privacy(
    payload: PrivacyUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> CurrentUserResponse:
    user = relationships.update_privacy(
        db, current_user, online=payload.online, read_receipts=payload.read_receipts
    )
    return _current_user_response(user)


@router.post("/block/{user_id}", response_model=UserResponse)
async def block_user(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UserResponse:
    target = relationships.block_user(db, current_user, user_id)
    await _notify(EventKind.FRIEND_DELETED, current_user, target.id)
    return UserResponse(user=serialize_user(target))


@router.delete("/block/{user_id}", response_model=SuccessResponse)
def unblock_user(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> SuccessResponse:
    relationships.unblock_user(db, current_user, user_id)
    return SuccessResponse()


@router.get("/blocked", response_model=BlockedUsersResponse)
def list_blocked(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> BlockedUsersResponse:
    users = relationships.list_blocked(db, current_user.id)
    return BlockedUsersResponse(blocked_users=[serialize_user(user) for user in users])


@router.get("/friends", response_model=FriendsResponse)
def list_friends(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> FriendsResponse:
    users = relationships.list_friends(db, current_user.id)
    return FriendsResponse(friends=[serialize_user(user) for user in users])


@router.post("/friends/{user_id}", response_model=SuccessResponse)
async def send_friend_request(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> SuccessResponse:
    relationships.send_friend_request(db, current_user, user_id)
    await _notify(EventKind.FRIEND_REQUEST, current_user, user_id)
    return SuccessResponse()


@router.delete("/friends/{user_id}", response_model=SuccessResponse)
async def remove_friend(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> SuccessResponse:
    relationships.remove_friend(db, current_user, user_id)
    await _notify(EventKind.FRIEND_DELETED, current_user, user_id)
    return SuccessResponse()


@router.get("/friend-requests", response_model=FriendRequestsResponse)
def list_friend_requests(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> FriendRequestsResponse:
    users = relationships.list_incoming_requests(db, current_user.id)
    return FriendRequestsResponse(friend_requests=[serialize_user(user) for user in users])


@router.post("/friend-requests/{user_id}/accept", response_model=SuccessResponse)
async def accept_friend_request(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> SuccessResponse:
    relationships.accept_friend_request(db, current_user, user_id)
    await _notify(EventKind.FRIEND_ACCEPTED, current_user, user_id)
    return SuccessResponse()


@router.delete("/friend-requests/{user_id}", response_model=SuccessResponse)
async def cancel_friend_request(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> SuccessResponse:
    """Withdraw a sent request or decline a received one."""

    relationships.cancel_friend_request(db, current_user, user_id)
    await _notify(EventKind.FRIEND_REQUEST_CANCELLED, current_user, user_id)
    return SuccessResponse()


@router.get("/sent-requests", response_model=SentRequestsResponse)
def list_sent_requests(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> SentRequestsResponse:
    users = relationships.list_sent_requests(db, current_user.id)
    return SentRequestsResponse(sent_requests=[serialize_user(user) for user in users])


@router.get("/find/{email}", response_model=UserResponse)
def find_user(
    email: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UserResponse:
    user = relationships.find_user_by_email(db, current_user, email)
    return UserResponse(user=serialize_user(user))
