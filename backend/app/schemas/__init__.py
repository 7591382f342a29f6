"""Pydantic schemas for API and websocket payloads."""

from .base import CamelModel, SuccessResponse
from .groups import (
    GroupCreate,
    GroupDataUpdate,
    GroupJoin,
    GroupMemberAdd,
    GroupResponse,
    LinkTokenResponse,
)
from .messages import (
    ConversationListResponse,
    ConversationRead,
    ConversationResponse,
    DeletedMessageResponse,
    ForwardRequest,
    MessagePageResponse,
    MessageRead,
    MessageResponse,
    ReactionRead,
    ReactionRequest,
    ReplyPreview,
    SendMessageResponse,
)
from .statuses import StatusListResponse, StatusRead, StatusResponse
from .users import (
    BlockedUsersResponse,
    CurrentUserResponse,
    FriendRequestsResponse,
    FriendsResponse,
    SentRequestsResponse,
    PrivacyUpdate,
    UserPrivacy,
    UserResponse,
    UserSummary,
)

__all__ = [
    "CamelModel",
    "SuccessResponse",
    "GroupCreate",
    "GroupDataUpdate",
    "GroupJoin",
    "GroupMemberAdd",
    "GroupResponse",
    "LinkTokenResponse",
    "ConversationListResponse",
    "ConversationRead",
    "ConversationResponse",
    "DeletedMessageResponse",
    "ForwardRequest",
    "MessagePageResponse",
    "MessageRead",
    "MessageResponse",
    "ReactionRead",
    "ReactionRequest",
    "ReplyPreview",
    "SendMessageResponse",
    "StatusListResponse",
    "StatusRead",
    "StatusResponse",
    "BlockedUsersResponse",
    "CurrentUserResponse",
    "FriendRequestsResponse",
    "FriendsResponse",
    "PrivacyUpdate",
    "SentRequestsResponse",
    "UserPrivacy",
    "UserResponse",
    "UserSummary",
]
