"""Schemas for status updates."""

from __future__ import annotations

from datetime import datetime

from app.schemas.base import CamelModel
from app.schemas.users import UserSummary


class StatusRead(CamelModel):
    id: str
    user: UserSummary
    content: str | None = None
    media_url: str | None = None
    media_type: str = ""
    expires_at: datetime
    created_at: datetime
    viewers: list[int] | None = None
    is_seen: bool | None = None


class StatusResponse(CamelModel):
    success: bool = True
    status: StatusRead


class StatusListResponse(CamelModel):
    success: bool = True
    statuses: list[StatusRead]
