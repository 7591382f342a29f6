"""Schemas for group management requests."""

from __future__ import annotations

from pydantic import Field, constr, model_validator

from app.schemas.base import CamelModel
from app.schemas.messages import ConversationRead


class GroupCreate(CamelModel):
    group_name: constr(strip_whitespace=True, min_length=1, max_length=128)
    desc: str | None = Field(default=None, max_length=1024)
    group_image: str | None = None
    members: list[int] = Field(default_factory=list, description="Users added alongside the admin")


class GroupDataUpdate(CamelModel):
    group_name: constr(strip_whitespace=True, min_length=1, max_length=128) | None = None
    desc: str | None = Field(default=None, max_length=1024)
    group_image: str | None = None


class GroupMemberAdd(CamelModel):
    """Identify the user to add either by id or by email."""

    user_id: int | None = None
    email: str | None = None

    @model_validator(mode="after")
    def require_one_identifier(self) -> "GroupMemberAdd":
        if (self.user_id is None) == (self.email is None):
            raise ValueError("Provide either userId or email")
        return self


class GroupJoin(CamelModel):
    link_token: constr(strip_whitespace=True, min_length=1)


class GroupResponse(CamelModel):
    success: bool = True
    group: ConversationRead


class LinkTokenResponse(CamelModel):
    success: bool = True
    link_token: str
