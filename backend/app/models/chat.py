from __future__ import annotations

import copy
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Enum as SAEnum,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    and_,
)
from sqlalchemy.orm import Mapped, attribute_keyed_dict, mapped_column, relationship
from sqlalchemy.sql.elements import ColumnElement

from app.models.base import EPOCH, Base, Timestamp, ensure_utc, utcnow
from app.models.enums import (
    ConversationType,
    FriendRequestStatus,
    MediaType,
    OnlineVisibility,
    ReactionKind,
    ReadReceipts,
)

DEFAULT_GROUP_SETTINGS: dict[str, Any] = {
    "linkToken": None,
    "members": {
        "editGroupData": True,
        "sendNewMessages": True,
        "addOtherMembers": True,
        "inviteViaLink": False,
    },
    "admin": {"approveNewMembers": False},
}


def default_group_settings() -> dict[str, Any]:
    return copy.deepcopy(DEFAULT_GROUP_SETTINGS)


def new_object_id() -> str:
    """Return a fresh identifier usable before the row is flushed."""

    return uuid.uuid4().hex


def pair_key(first_id: int, second_id: int) -> str:
    """Canonical key for an unordered pair of user ids."""

    low, high = sorted((int(first_id), int(second_id)))
    return f"{low}:{high}"


class User(Base):
    """Chat participant with privacy preferences."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    login: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), unique=True)
    display_name: Mapped[str | None] = mapped_column(String(128))
    avatar_url: Mapped[str | None] = mapped_column(String(512))
    online_visibility: Mapped[OnlineVisibility] = mapped_column(
        SAEnum(
            OnlineVisibility,
            name="online_visibility",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        default=OnlineVisibility.EVERYONE,
        nullable=False,
    )
    read_receipts: Mapped[ReadReceipts] = mapped_column(
        SAEnum(
            ReadReceipts,
            name="read_receipts",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        default=ReadReceipts.ENABLE,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        Timestamp, default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        Timestamp, default=utcnow, onupdate=utcnow, nullable=False
    )

    blocks: Mapped[list["UserBlock"]] = relationship(
        back_populates="user",
        foreign_keys="UserBlock.user_id",
        cascade="all, delete-orphan",
    )

    @property
    def name(self) -> str:
        return self.display_name or self.login


class UserBlock(Base):
    """Entry of a user's block-list."""

    __tablename__ = "user_blocks"
    __table_args__ = (
        UniqueConstraint("user_id", "blocked_user_id", name="uq_user_block"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    blocked_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        Timestamp, default=utcnow, nullable=False
    )

    user: Mapped[User] = relationship(back_populates="blocks", foreign_keys=[user_id])
    blocked_user: Mapped[User] = relationship(foreign_keys=[blocked_user_id])


class FriendRequest(Base):
    """Directed friendship edge, unique per unordered pair of users."""

    __tablename__ = "friend_requests"

    id: Mapped[int] = mapped_column(primary_key=True)
    requester_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    addressee_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    pair_key: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    status: Mapped[FriendRequestStatus] = mapped_column(
        SAEnum(
            FriendRequestStatus,
            name="friend_request_status",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        default=FriendRequestStatus.PENDING,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        Timestamp, default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        Timestamp, default=utcnow, onupdate=utcnow, nullable=False
    )

    requester: Mapped[User] = relationship(foreign_keys=[requester_id])
    addressee: Mapped[User] = relationship(foreign_keys=[addressee_id])

    def other_party(self, user_id: int) -> int:
        return self.addressee_id if self.requester_id == user_id else self.requester_id


class Conversation(Base):
    """Shared base of private and group conversations."""

    __tablename__ = "conversations"
    __mapper_args__ = {"polymorphic_on": "type", "polymorphic_identity": "conversation"}

    id: Mapped[int] = mapped_column(primary_key=True)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    last_message_id: Mapped[str | None] = mapped_column(
        ForeignKey(
            "messages.id",
            ondelete="SET NULL",
            use_alter=True,
            name="fk_conversations_last_message",
        )
    )
    created_at: Mapped[datetime] = mapped_column(
        Timestamp, default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        Timestamp, default=utcnow, nullable=False
    )

    participants: Mapped[list["ConversationParticipant"]] = relationship(
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="ConversationParticipant.id",
    )
    user_settings: Mapped[dict[int, "ConversationUserSetting"]] = relationship(
        back_populates="conversation",
        cascade="all, delete-orphan",
        collection_class=attribute_keyed_dict("user_id"),
    )
    last_message: Mapped["Message | None"] = relationship(
        foreign_keys=[last_message_id], post_update=True
    )
    messages: Mapped[list["Message"]] = relationship(
        back_populates="conversation",
        cascade="all, delete-orphan",
        foreign_keys="Message.conversation_id",
        order_by="Message.created_at",
    )

    @property
    def participant_ids(self) -> list[int]:
        return [participant.user_id for participant in self.participants]

    def has_participant(self, user_id: int) -> bool:
        return any(participant.user_id == user_id for participant in self.participants)

    def watermark_for(self, user_id: int) -> datetime:
        """Return the user's messages-cleared timestamp, defaulting to the epoch."""

        setting = self.user_settings.get(user_id)
        if setting is None or setting.messages_cleared_at is None:
            return EPOCH
        return ensure_utc(setting.messages_cleared_at)

    def set_watermark(self, user_id: int, value: datetime) -> None:
        setting = self.user_settings.get(user_id)
        if setting is None:
            self.user_settings[user_id] = ConversationUserSetting(
                user_id=user_id, messages_cleared_at=value
            )
        else:
            setting.messages_cleared_at = value


class PrivateConversation(Conversation):
    """Conversation between exactly two users."""

    __mapper_args__ = {"polymorphic_identity": ConversationType.PRIVATE.value}

    participant_key: Mapped[str | None] = mapped_column(String(64), unique=True)

    def other_participant(self, user_id: int) -> int | None:
        for participant_id in self.participant_ids:
            if participant_id != user_id:
                return participant_id
        return None


class GroupConversation(Conversation):
    """Admin-owned conversation with an arbitrary participant set."""

    __mapper_args__ = {"polymorphic_identity": ConversationType.GROUP.value}

    admin_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL")
    )
    group_name: Mapped[str | None] = mapped_column(String(128))
    description: Mapped[str | None] = mapped_column(Text)
    group_image: Mapped[str | None] = mapped_column(String(512))
    group_settings: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, default=default_group_settings
    )

    admin: Mapped[User | None] = relationship(foreign_keys=[admin_id])

    def is_admin(self, user_id: int) -> bool:
        return self.admin_id == user_id

    @property
    def settings(self) -> dict[str, Any]:
        """Stored settings merged over the defaults."""

        merged = default_group_settings()
        stored = self.group_settings or {}
        if "linkToken" in stored:
            merged["linkToken"] = stored["linkToken"]
        for section in ("members", "admin"):
            merged[section].update(stored.get(section) or {})
        return merged


class ConversationParticipant(Base):
    """Membership of a user in a conversation, in insertion order."""

    __tablename__ = "conversation_participants"
    __table_args__ = (
        UniqueConstraint("conversation_id", "user_id", name="uq_conversation_participant"),
        Index("ix_conversation_participants_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    conversation_id: Mapped[int] = mapped_column(
        ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    joined_at: Mapped[datetime] = mapped_column(
        Timestamp, default=utcnow, nullable=False
    )

    conversation: Mapped[Conversation] = relationship(back_populates="participants")
    user: Mapped[User] = relationship()


class ConversationUserSetting(Base):
    """Per-user conversation state keyed by user id."""

    __tablename__ = "conversation_user_settings"
    __table_args__ = (
        UniqueConstraint("conversation_id", "user_id", name="uq_conversation_user_setting"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    conversation_id: Mapped[int] = mapped_column(
        ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    messages_cleared_at: Mapped[datetime | None] = mapped_column(Timestamp)

    conversation: Mapped[Conversation] = relationship(back_populates="user_settings")


class Message(Base):
    """Message exchanged in a private or group conversation."""

    __tablename__ = "messages"
    __table_args__ = (
        Index("ix_messages_conversation_created", "conversation_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_object_id)
    conversation_id: Mapped[int] = mapped_column(
        ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    sender_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    recipient_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE")
    )
    text: Mapped[str | None] = mapped_column(Text)
    media_url: Mapped[str | None] = mapped_column(String(512))
    media_type: Mapped[str] = mapped_column(
        String(8), default=MediaType.NONE.value, nullable=False
    )
    reply_message_id: Mapped[str | None] = mapped_column(
        ForeignKey("messages.id", ondelete="SET NULL")
    )
    seen: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        Timestamp, default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        Timestamp, default=utcnow, onupdate=utcnow, nullable=False
    )

    conversation: Mapped[Conversation] = relationship(
        back_populates="messages", foreign_keys=[conversation_id]
    )
    sender: Mapped[User] = relationship(foreign_keys=[sender_id])
    reply_message: Mapped["Message | None"] = relationship(
        remote_side=[id], back_populates="replies"
    )
    replies: Mapped[list["Message"]] = relationship(back_populates="reply_message")
    reactions: Mapped[list["MessageReaction"]] = relationship(
        back_populates="message",
        cascade="all, delete-orphan",
        order_by="MessageReaction.id",
    )


class MessageReaction(Base):
    """A user's single reaction to a message."""

    __tablename__ = "message_reactions"
    __table_args__ = (
        UniqueConstraint("message_id", "user_id", name="uq_message_reaction"),
        Index("ix_reactions_message", "message_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    message_id: Mapped[str] = mapped_column(
        ForeignKey("messages.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    react: Mapped[ReactionKind] = mapped_column(
        SAEnum(
            ReactionKind,
            name="reaction_kind",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        Timestamp, default=utcnow, nullable=False
    )

    message: Mapped[Message] = relationship(back_populates="reactions")
    user: Mapped[User] = relationship()


class Status(Base):
    """Ephemeral status update visible to accepted friends."""

    __tablename__ = "statuses"
    __table_args__ = (Index("ix_statuses_user_expires", "user_id", "expires_at"),)

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_object_id)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    content: Mapped[str | None] = mapped_column(Text)
    media_url: Mapped[str | None] = mapped_column(String(512))
    media_type: Mapped[str] = mapped_column(
        String(8), default=MediaType.NONE.value, nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(Timestamp, nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        Timestamp, default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        Timestamp, default=utcnow, onupdate=utcnow, nullable=False
    )

    user: Mapped[User] = relationship()
    viewers: Mapped[list["StatusViewer"]] = relationship(
        back_populates="status",
        cascade="all, delete-orphan",
        order_by="StatusViewer.id",
    )

    @classmethod
    def active_clause(cls, now: datetime | None = None) -> ColumnElement[bool]:
        """SQL filter selecting statuses that are neither expired nor deleted."""

        moment = now or utcnow()
        return and_(cls.expires_at > moment, cls.is_deleted.is_(False))

    def viewed_by(self, user_id: int) -> bool:
        return any(viewer.user_id == user_id for viewer in self.viewers)


class StatusViewer(Base):
    __tablename__ = "status_viewers"
    __table_args__ = (UniqueConstraint("status_id", "user_id", name="uq_status_viewer"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    status_id: Mapped[str] = mapped_column(
        ForeignKey("statuses.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    viewed_at: Mapped[datetime] = mapped_column(
        Timestamp, default=utcnow, nullable=False
    )

    status: Mapped[Status] = relationship(back_populates="viewers")
    user: Mapped[User] = relationship()
