"""Unit tests for canonical conversation lookup and group lifecycle."""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.dialects import mysql
from sqlalchemy.schema import CreateTable

from app.core.errors import NotFoundError, PermissionDeniedError, ValidationError
from app.models import (
    Conversation,
    ConversationUserSetting,
    GroupConversation,
    Message,
    PrivateConversation,
    Status,
    User,
    utcnow,
)
from app.services import conversations


def _user(db, login: str) -> User:
    user = User(login=login, email=f"{login}@example.com")
    db.add(user)
    db.commit()
    return user


def _private_count(db) -> int:
    return db.execute(select(func.count()).select_from(PrivateConversation)).scalar_one()


def test_resolve_private_is_symmetric(db_session):
    alice = _user(db_session, "alice")
    bob = _user(db_session, "bob")

    first = conversations.resolve_private(db_session, alice.id, bob.id)
    second = conversations.resolve_private(db_session, bob.id, alice.id)

    assert first.id == second.id
    assert sorted(first.participant_ids) == sorted([alice.id, bob.id])
    assert _private_count(db_session) == 1


def test_participant_key_sorts_numerically(db_session):
    users = [_user(db_session, f"user{index}") for index in range(10)]
    low, high = users[1], users[9]

    conversation = conversations.resolve_private(db_session, high.id, low.id)

    assert conversation.participant_key == f"{low.id}:{high.id}"


def test_resolve_private_rejects_self(db_session):
    alice = _user(db_session, "alice")

    with pytest.raises(ValidationError):
        conversations.resolve_private(db_session, alice.id, alice.id)


def test_resolve_private_reuses_row_created_concurrently(db_session, monkeypatch):
    alice = _user(db_session, "alice")
    bob = _user(db_session, "bob")
    existing = conversations.resolve_private(db_session, alice.id, bob.id)

    original = conversations._find_private
    calls = {"count": 0}

    def stale_then_fresh(db, key):
        calls["count"] += 1
        if calls["count"] == 1:
            return None
        return original(db, key)

    monkeypatch.setattr(conversations, "_find_private", stale_then_fresh)

    resolved = conversations.resolve_private(db_session, bob.id, alice.id)

    assert resolved.id == existing.id
    assert calls["count"] == 2
    assert _private_count(db_session) == 1


def test_list_conversations_orders_by_activity_and_respects_watermark(db_session):
    alice = _user(db_session, "alice")
    bob = _user(db_session, "bob")
    carol = _user(db_session, "carol")
    with_bob = conversations.resolve_private(db_session, alice.id, bob.id)
    with_carol = conversations.resolve_private(db_session, alice.id, carol.id)
    group = conversations.create_group(db_session, alice, "Team", member_ids=[bob.id])

    now = utcnow() - timedelta(minutes=1)
    for conversation, sender, offset in ((with_bob, bob, 1), (with_carol, carol, 2)):
        message = Message(
            conversation_id=conversation.id,
            sender_id=sender.id,
            recipient_id=alice.id,
            text="hello",
            created_at=now + timedelta(seconds=offset),
        )
        db_session.add(message)
        db_session.flush()
        conversation.last_message_id = message.id
        conversation.updated_at = message.created_at
    group.updated_at = now
    db_session.commit()

    listed = [item.id for item in conversations.list_conversations(db_session, alice.id)]
    assert listed == [with_carol.id, with_bob.id, group.id]

    conversations.clear_conversation(db_session, with_carol.id, alice)
    listed = [item.id for item in conversations.list_conversations(db_session, alice.id)]
    assert with_carol.id not in listed
    assert with_carol.id in [item.id for item in conversations.list_conversations(db_session, carol.id)]


def test_empty_private_conversation_is_not_listed(db_session):
    alice = _user(db_session, "alice")
    bob = _user(db_session, "bob")
    conversations.resolve_private(db_session, alice.id, bob.id)

    assert conversations.list_conversations(db_session, alice.id) == []


def test_group_membership_rules(db_session):
    admin = _user(db_session, "admin")
    member = _user(db_session, "member")
    outsider = _user(db_session, "outsider")
    group = conversations.create_group(db_session, admin, "Team", member_ids=[member.id])

    conversations.add_member(db_session, group.id, member, outsider)
    assert group.has_participant(outsider.id)

    with pytest.raises(PermissionDeniedError):
        conversations.remove_member(db_session, group.id, member, outsider.id)
    conversations.remove_member(db_session, group.id, admin, outsider.id)
    assert not group.has_participant(outsider.id)

    with pytest.raises(ValidationError):
        conversations.leave_group(db_session, group.id, admin)
    conversations.leave_group(db_session, group.id, member)
    assert group.participant_ids == [admin.id]


def test_approval_required_blocks_member_adds(db_session):
    admin = _user(db_session, "admin")
    member = _user(db_session, "member")
    outsider = _user(db_session, "outsider")
    group = conversations.create_group(db_session, admin, "Team", member_ids=[member.id])
    conversations.update_group_settings(
        db_session, group.id, admin, {"admin": {"approveNewMembers": True}}
    )

    with pytest.raises(PermissionDeniedError, match="Admin approval required"):
        conversations.add_member(db_session, group.id, member, outsider)
    conversations.add_member(db_session, group.id, admin, outsider)
    assert group.has_participant(outsider.id)


def test_approval_required_blocks_link_joins_with_403(db_session):
    admin = _user(db_session, "admin")
    joiner = _user(db_session, "joiner")
    group = conversations.create_group(db_session, admin, "Team")
    token = conversations.get_link_token(db_session, group.id, admin)
    conversations.update_group_settings(
        db_session, group.id, admin, {"admin": {"approveNewMembers": True}}
    )

    with pytest.raises(PermissionDeniedError, match="Admin approval required") as excinfo:
        conversations.join_group(db_session, group.id, joiner, token)

    assert excinfo.value.status_code == 403
    assert not group.has_participant(joiner.id)


def test_join_group_with_link_token(db_session):
    admin = _user(db_session, "admin")
    joiner = _user(db_session, "joiner")
    group = conversations.create_group(db_session, admin, "Team")
    token = conversations.get_link_token(db_session, group.id, admin)

    with pytest.raises(PermissionDeniedError):
        conversations.join_group(db_session, group.id, joiner, "not-the-token")
    conversations.join_group(db_session, group.id, joiner, token)

    assert group.has_participant(joiner.id)


def test_delete_group_removes_messages(db_session):
    admin = _user(db_session, "admin")
    member = _user(db_session, "member")
    group = conversations.create_group(db_session, admin, "Team", member_ids=[member.id])
    message = Message(conversation_id=group.id, sender_id=admin.id, text="bye")
    db_session.add(message)
    db_session.flush()
    group.last_message_id = message.id
    db_session.commit()

    with pytest.raises(PermissionDeniedError):
        conversations.delete_group(db_session, group.id, member)
    removal = conversations.delete_group(db_session, group.id, admin)

    assert sorted(removal.participant_ids) == sorted([admin.id, member.id])
    assert db_session.get(Conversation, removal.group_id) is None
    assert db_session.execute(select(func.count()).select_from(Message)).scalar_one() == 0
    with pytest.raises(NotFoundError):
        conversations.get_group(db_session, removal.group_id, admin)


def test_group_lookup_rejects_private_ids(db_session):
    alice = _user(db_session, "alice")
    bob = _user(db_session, "bob")
    private = conversations.resolve_private(db_session, alice.id, bob.id)

    with pytest.raises(NotFoundError, match="No group with this id"):
        conversations.resolve_group(db_session, private.id)
    assert isinstance(
        conversations.create_group(db_session, alice, "Pair"), GroupConversation
    )


def test_mysql_timestamps_keep_microseconds():
    def ddl(model) -> str:
        return str(CreateTable(model.__table__).compile(dialect=mysql.dialect()))

    assert "created_at DATETIME(6) NOT NULL" in ddl(Message)
    assert "updated_at DATETIME(6) NOT NULL" in ddl(Conversation)
    assert "messages_cleared_at DATETIME(6)" in ddl(ConversationUserSetting)
    assert "expires_at DATETIME(6) NOT NULL" in ddl(Status)
