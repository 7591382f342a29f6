"""24 hour status updates shared with accepted friends."""

from __future__ import annotations

from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.core.errors import NotFoundError, ValidationError
from app.core.storage import MediaPayload, MediaStore, upload_media
from app.models import MediaType, Status, StatusViewer, User, new_object_id, utcnow
from app.services.relationships import friend_ids

settings = get_settings()


def get_active_status(db: Session, status_id: str) -> Status:
    stmt = select(Status).where(Status.id == status_id, Status.active_clause())
    status = db.execute(stmt).scalar_one_or_none()
    if status is None:
        raise NotFoundError("Status not found")
    return status


async def create_status(
    db: Session,
    user: User,
    *,
    content: str | None = None,
    media: MediaPayload | None = None,
    media_store: MediaStore,
) -> Status:
    content = content if content and content.strip() else None
    if content is None and media is None:
        raise ValidationError("Content or media is required")

    status_id = new_object_id()
    media_url: str | None = None
    media_type = MediaType.NONE.value
    if media is not None:
        result = await upload_media(
            media_store, media, kind="status", owner_id=user.id, object_id=status_id
        )
        media_url, media_type = result.url, result.media_type.value

    now = utcnow()
    status = Status(
        id=status_id,
        user_id=user.id,
        content=content,
        media_url=media_url,
        media_type=media_type,
        created_at=now,
        expires_at=now + timedelta(hours=settings.status_ttl_hours),
    )
    db.add(status)
    db.commit()
    return status


def list_own(db: Session, user_id: int) -> list[Status]:
    stmt = (
        select(Status)
        .where(Status.user_id == user_id, Status.active_clause())
        .order_by(Status.created_at.asc())
    )
    return list(db.execute(stmt).scalars())


def list_friends(db: Session, user_id: int) -> list[Status]:
    ids = friend_ids(db, user_id)
    if not ids:
        return []
    stmt = (
        select(Status)
        .where(Status.user_id.in_(ids), Status.active_clause())
        .order_by(Status.created_at.asc())
    )
    return list(db.execute(stmt).scalars())


def see_status(db: Session, status_id: str, viewer: User) -> Status:
    """Record ``viewer`` once among the viewers of an active status."""

    status = get_active_status(db, status_id)
    if status.user_id == viewer.id:
        raise ValidationError("You cannot see your own status")
    if not status.viewed_by(viewer.id):
        status.viewers.append(StatusViewer(user_id=viewer.id))
        try:
            db.commit()
        except IntegrityError:
            # recorded concurrently by the same viewer
            db.rollback()
        db.refresh(status)
    return status


def delete_status(db: Session, status_id: str, owner: User) -> Status:
    stmt = select(Status).where(
        Status.id == status_id,
        Status.user_id == owner.id,
        Status.active_clause(),
    )
    status = db.execute(stmt).scalar_one_or_none()
    if status is None:
        raise NotFoundError("Status not found")
    status.is_deleted = True
    db.commit()
    return status
