from __future__ import annotations

from enum import Enum


class OnlineVisibility(str, Enum):
    """Who may observe a user's online presence."""

    EVERYONE = "Everyone"
    FRIENDS = "Friends"
    NONE = "None"


class ReadReceipts(str, Enum):
    """Whether a user emits seen acknowledgements."""

    ENABLE = "Enable"
    DISABLE = "Disable"


class FriendRequestStatus(str, Enum):
    """Lifecycle states for friend relationships."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class ConversationType(str, Enum):
    PRIVATE = "private"
    GROUP = "group"


class MediaType(str, Enum):
    """Kind of media attached to a message or status."""

    IMAGE = "image"
    VIDEO = "video"
    NONE = ""


class ReactionKind(str, Enum):
    """Reactions a user can leave on a message."""

    LIKE = "like"
    LOVE = "love"
    HAHA = "haha"
    WOW = "wow"
    SAD = "sad"
    ANGRY = "angry"


class CallType(str, Enum):
    VOICE = "voice"
    VIDEO = "video"
