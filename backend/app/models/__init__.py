"""Database models package."""

from .base import EPOCH, Base, Timestamp, ensure_utc, utcnow
from .chat import (
    Conversation,
    ConversationParticipant,
    ConversationUserSetting,
    FriendRequest,
    GroupConversation,
    Message,
    MessageReaction,
    PrivateConversation,
    Status,
    StatusViewer,
    User,
    UserBlock,
    default_group_settings,
    new_object_id,
    pair_key,
)
from .enums import (
    CallType,
    ConversationType,
    FriendRequestStatus,
    MediaType,
    OnlineVisibility,
    ReactionKind,
    ReadReceipts,
)

__all__ = [
    "Base",
    "EPOCH",
    "Timestamp",
    "ensure_utc",
    "utcnow",
    "User",
    "UserBlock",
    "FriendRequest",
    "Conversation",
    "PrivateConversation",
    "GroupConversation",
    "ConversationParticipant",
    "ConversationUserSetting",
    "Message",
    "MessageReaction",
    "Status",
    "StatusViewer",
    "default_group_settings",
    "new_object_id",
    "pair_key",
    "CallType",
    "ConversationType",
    "FriendRequestStatus",
    "MediaType",
    "OnlineVisibility",
    "ReactionKind",
    "ReadReceipts",
]
