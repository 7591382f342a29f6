"""Status (story) endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user
from app.api.serializers import serialize_status
from app.core.storage import MediaStore, get_media_store, read_upload
from app.database import get_db
from app.models import User
from app.schemas import StatusListResponse, StatusResponse, SuccessResponse
from app.services import relationships, statuses
from parley.realtime import DomainEvent, EventKind, get_dispatcher

router = APIRouter(prefix="/statuses", tags=["statuses"])


@router.get("", response_model=StatusListResponse)
def list_own_statuses(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> StatusListResponse:
    items = statuses.list_own(db, current_user.id)
    return StatusListResponse(statuses=[serialize_status(item, current_user.id) for item in items])


@router.post("", response_model=StatusResponse, status_code=status.HTTP_201_CREATED)
async def create_status(
    content: str | None = Form(default=None),
    status_media: UploadFile | None = File(default=None, alias="statusMedia"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    media_store: MediaStore = Depends(get_media_store),
) -> StatusResponse:
    media = await read_upload(status_media) if status_media is not None else None
    created = await statuses.create_status(
        db, current_user, content=content, media=media, media_store=media_store
    )
    await get_dispatcher().publish(
        DomainEvent(
            EventKind.STATUS_CREATED,
            serialize_status(created, viewer_id=None).to_wire(),
            actor_id=current_user.id,
            recipient_ids=relationships.friend_ids(db, current_user.id),
        )
    )
    return StatusResponse(status=serialize_status(created, current_user.id))


@router.get("/friends", response_model=StatusListResponse)
def list_friend_statuses(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> StatusListResponse:
    items = statuses.list_friends(db, current_user.id)
    return StatusListResponse(statuses=[serialize_status(item, current_user.id) for item in items])


@router.post("/see/{status_id}", response_model=StatusResponse)
async def see_status(
    status_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> StatusResponse:
    seen = statuses.see_status(db, status_id, current_user)
    await get_dispatcher().publish(
        DomainEvent(
            EventKind.STATUS_SEEN,
            {"statusId": seen.id, "viewerId": current_user.id},
            actor_id=current_user.id,
            recipient_ids=[seen.user_id],
        )
    )
    return StatusResponse(status=serialize_status(seen, current_user.id))


@router.delete("/{status_id}", response_model=SuccessResponse)
async def delete_status(
    status_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> SuccessResponse:
    deleted = statuses.delete_status(db, status_id, current_user)
    await get_dispatcher().publish(
        DomainEvent(
            EventKind.STATUS_DELETED,
            {"statusId": deleted.id, "userId": current_user.id},
            actor_id=current_user.id,
            recipient_ids=relationships.friend_ids(db, current_user.id),
        )
    )
    return SuccessResponse()
