"""Block-list and friendship rules between two users."""

from __future__ import annotations

import logging

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from app.core.errors import NotFoundError, PermissionDeniedError, ValidationError
from app.models import (
    FriendRequest,
    FriendRequestStatus,
    OnlineVisibility,
    ReadReceipts,
    User,
    UserBlock,
    pair_key,
)

logger = logging.getLogger(__name__)


def get_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("No user with this id")
    return user


def is_blocked(db: Session, user_id: int, other_id: int) -> bool:
    """Return True if either user has the other on their block-list."""

    stmt = select(UserBlock.id).where(
        or_(
            and_(UserBlock.user_id == user_id, UserBlock.blocked_user_id == other_id),
            and_(UserBlock.user_id == other_id, UserBlock.blocked_user_id == user_id),
        )
    )
    return db.execute(stmt.limit(1)).first() is not None


def can_interact(db: Session, user_id: int, other_id: int) -> bool:
    return not is_blocked(db, user_id, other_id)


def ensure_can_interact(
    db: Session, user_id: int, other_id: int, message: str = "Can't send message to this user"
) -> None:
    if not can_interact(db, user_id, other_id):
        raise PermissionDeniedError(message)


def get_friend_request(db: Session, user_id: int, other_id: int) -> FriendRequest | None:
    stmt = select(FriendRequest).where(FriendRequest.pair_key == pair_key(user_id, other_id))
    return db.execute(stmt).scalar_one_or_none()


def friend_ids(db: Session, user_id: int) -> list[int]:
    """Ids of users with an accepted edge to ``user_id``."""

    stmt = select(FriendRequest).where(
        FriendRequest.status == FriendRequestStatus.ACCEPTED,
        or_(FriendRequest.requester_id == user_id, FriendRequest.addressee_id == user_id),
    )
    return [edge.other_party(user_id) for edge in db.execute(stmt).scalars()]


def are_friends(db: Session, user_id: int, other_id: int) -> bool:
    edge = get_friend_request(db, user_id, other_id)
    return edge is not None and edge.status == FriendRequestStatus.ACCEPTED


def block_user(db: Session, actor: User, target_id: int) -> User:
    """Add ``target_id`` to the actor's block-list.

    A pending or accepted friendship between the two becomes rejected. The
    relationship is not restored by a later unblock.
    """
    if target_id == actor.id:
        raise ValidationError("Can't block yourself")
    target = get_user(db, target_id)
    if any(entry.blocked_user_id == target_id for entry in actor.blocks):
        raise ValidationError("User already blocked")

    edge = get_friend_request(db, actor.id, target_id)
    if edge is not None and edge.status in (
        FriendRequestStatus.PENDING,
        FriendRequestStatus.ACCEPTED,
    ):
        edge.status = FriendRequestStatus.REJECTED

    actor.blocks.append(UserBlock(blocked_user_id=target_id))
    db.commit()
    logger.info("User %s blocked user %s", actor.id, target_id)
    return target


def unblock_user(db: Session, actor: User, target_id: int) -> None:
    entry = next((item for item in actor.blocks if item.blocked_user_id == target_id), None)
    if entry is None:
        raise ValidationError("User not blocked")
    actor.blocks.remove(entry)
    db.commit()


def send_friend_request(db: Session, actor: User, target_id: int) -> FriendRequest:
    """Create or revive the friendship edge from ``actor`` to ``target_id``."""

    if target_id == actor.id:
        raise ValidationError("Can't add yourself as a friend")
    get_user(db, target_id)
    if is_blocked(db, actor.id, target_id):
        raise ValidationError("You can't add this user")

    edge = get_friend_request(db, actor.id, target_id)
    if edge is None:
        edge = FriendRequest(
            requester_id=actor.id,
            addressee_id=target_id,
            pair_key=pair_key(actor.id, target_id),
            status=FriendRequestStatus.PENDING,
        )
        db.add(edge)
    elif edge.status == FriendRequestStatus.ACCEPTED:
        raise ValidationError("You are already friends")
    elif edge.status == FriendRequestStatus.PENDING:
        raise ValidationError("Friend request already sent")
    else:
        edge.requester_id = actor.id
        edge.addressee_id = target_id
        edge.status = FriendRequestStatus.PENDING
    db.commit()
    return edge


def accept_friend_request(db: Session, actor: User, requester_id: int) -> FriendRequest:
    edge = get_friend_request(db, actor.id, requester_id)
    if (
        edge is None
        or edge.status != FriendRequestStatus.PENDING
        or edge.addressee_id != actor.id
    ):
        raise NotFoundError("Friend request not found")
    edge.status = FriendRequestStatus.ACCEPTED
    db.commit()
    return edge


def cancel_friend_request(db: Session, actor: User, other_id: int) -> FriendRequest:
    """Reject a pending request in either direction."""

    edge = get_friend_request(db, actor.id, other_id)
    if edge is None or edge.status != FriendRequestStatus.PENDING:
        raise NotFoundError("Friend request not found")
    edge.status = FriendRequestStatus.REJECTED
    db.commit()
    return edge


def remove_friend(db: Session, actor: User, other_id: int) -> FriendRequest:
    edge = get_friend_request(db, actor.id, other_id)
    if edge is None or edge.status != FriendRequestStatus.ACCEPTED:
        raise ValidationError("No friend with this id")
    edge.status = FriendRequestStatus.REJECTED
    db.commit()
    return edge


def list_friends(db: Session, user_id: int) -> list[User]:
    ids = friend_ids(db, user_id)
    if not ids:
        return []
    return list(db.execute(select(User).where(User.id.in_(ids)).order_by(User.id)).scalars())


def list_incoming_requests(db: Session, user_id: int) -> list[User]:
    stmt = (
        select(User)
        .join(FriendRequest, FriendRequest.requester_id == User.id)
        .where(
            FriendRequest.addressee_id == user_id,
            FriendRequest.status == FriendRequestStatus.PENDING,
        )
        .order_by(FriendRequest.updated_at.desc())
    )
    return list(db.execute(stmt).scalars())


def list_sent_requests(db: Session, user_id: int) -> list[User]:
    stmt = (
        select(User)
        .join(FriendRequest, FriendRequest.addressee_id == User.id)
        .where(
            FriendRequest.requester_id == user_id,
            FriendRequest.status == FriendRequestStatus.PENDING,
        )
        .order_by(FriendRequest.updated_at.desc())
    )
    return list(db.execute(stmt).scalars())


def list_blocked(db: Session, user_id: int) -> list[User]:
    stmt = (
        select(User)
        .join(UserBlock, UserBlock.blocked_user_id == User.id)
        .where(UserBlock.user_id == user_id)
        .order_by(UserBlock.id)
    )
    return list(db.execute(stmt).scalars())


def find_user_by_email(db: Session, viewer: User, email: str) -> User:
    """Look up a user by email; users in a block relation are reported as missing."""

    user = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if user is None or is_blocked(db, viewer.id, user.id):
        raise NotFoundError("User not found")
    return user


def update_privacy(
    db: Session,
    user: User,
    *,
    online: OnlineVisibility | None = None,
    read_receipts: ReadReceipts | None = None,
) -> User:
    if online is None and read_receipts is None:
        raise ValidationError("Nothing to update")
    if online is not None:
        user.online_visibility = online
    if read_receipts is not None:
        user.read_receipts = read_receipts
    db.commit()
    return user
