"""Schemas related to users and friendships."""

from app.models.enums import OnlineVisibility, ReadReceipts
from app.schemas.base import CamelModel


class UserSummary(CamelModel):
    """Minimal public-facing user information."""

    id: int
    login: str
    name: str
    avatar_url: str | None = None


class UserPrivacy(CamelModel):
    online: OnlineVisibility
    read_receipts: ReadReceipts


class CurrentUserResponse(CamelModel):
    success: bool = True
    user: UserSummary
    privacy: UserPrivacy


class UserResponse(CamelModel):
    success: bool = True
    user: UserSummary


class FriendsResponse(CamelModel):
    success: bool = True
    friends: list[UserSummary]


class FriendRequestsResponse(CamelModel):
    success: bool = True
    friend_requests: list[UserSummary]


class SentRequestsResponse(CamelModel):
    success: bool = True
    sent_requests: list[UserSummary]


class BlockedUsersResponse(CamelModel):
    success: bool = True
    blocked_users: list[UserSummary]


class PrivacyUpdate(CamelModel):
    online: OnlineVisibility | None = None
    read_receipts: ReadReceipts | None = None
