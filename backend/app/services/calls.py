"""One-to-one call signaling between two users."""

from __future__ import annotations

from sqlalchemy.orm import Session

from app.core.errors import ValidationError
from app.models import CallType, User, new_object_id
from app.services.relationships import ensure_can_interact, get_user

CALL_BLOCKED = "Can't call this user"


def ensure_can_call(db: Session, caller_id: int, callee_id: int) -> User:
    """Return the callee after the block-list gate."""

    if caller_id == callee_id:
        raise ValidationError("You can't call yourself")
    callee = get_user(db, callee_id)
    ensure_can_interact(db, caller_id, callee_id, CALL_BLOCKED)
    return callee


def start_call(
    db: Session,
    caller: User,
    callee_id: int,
    call_type: str | CallType,
    *,
    callee_online: bool,
) -> str:
    """Validate a call request and return the id of the new call."""

    try:
        CallType(call_type)
    except ValueError:
        raise ValidationError("Invalid call type") from None
    ensure_can_call(db, caller.id, callee_id)
    if not callee_online:
        raise ValidationError("User is not online")
    return new_object_id()


def check_signal(call_id: str | None, data: object) -> None:
    if not call_id:
        raise ValidationError("No call id")
    if not data:
        raise ValidationError("No signal data")
