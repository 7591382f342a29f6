"""Unit tests for the message store."""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from app.core.errors import PermissionDeniedError, UploadError, ValidationError
from app.core.storage import MediaPayload
from app.models import Message, MessageReaction, ReactionKind, User, utcnow
from app.services import conversations, messages, relationships

pytestmark = pytest.mark.anyio


def _user(db, login: str) -> User:
    user = User(login=login, email=f"{login}@example.com")
    db.add(user)
    db.commit()
    return user


def _message_count(db) -> int:
    return db.execute(select(func.count()).select_from(Message)).scalar_one()


async def test_send_private_creates_conversation_and_last_message(db_session, media_store):
    alice = _user(db_session, "alice")
    bob = _user(db_session, "bob")

    result = await messages.send_private(db_session, alice, bob.id, text="hi", media_store=media_store)

    assert result.message.sender_id == alice.id
    assert result.message.recipient_id == bob.id
    assert sorted(result.conversation.participant_ids) == sorted([alice.id, bob.id])
    assert result.conversation.last_message.text == "hi"
    assert result.conversation.updated_at is not None


async def test_send_requires_exactly_one_content_kind(db_session, media_store):
    alice = _user(db_session, "alice")
    bob = _user(db_session, "bob")
    media = MediaPayload(data=b"\x89PNG", mime_type="image/png")

    with pytest.raises(ValidationError):
        await messages.send_private(db_session, alice, bob.id, media_store=media_store)
    with pytest.raises(ValidationError):
        await messages.send_private(
            db_session, alice, bob.id, text="hi", media=media, media_store=media_store
        )
    assert _message_count(db_session) == 0


async def test_media_is_uploaded_under_message_public_id(db_session, media_store):
    alice = _user(db_session, "alice")
    bob = _user(db_session, "bob")
    media = MediaPayload(data=b"\x89PNG", mime_type="image/png")

    result = await messages.send_private(db_session, alice, bob.id, media=media, media_store=media_store)

    assert media_store.uploads == [f"message_{alice.id}_{result.message.id}"]
    assert result.message.media_type == "image"
    assert result.message.media_url.endswith(result.message.id)


async def test_upload_failure_persists_nothing(db_session, media_store):
    alice = _user(db_session, "alice")
    bob = _user(db_session, "bob")
    media_store.fail = True

    with pytest.raises(UploadError):
        await messages.send_private(
            db_session,
            alice,
            bob.id,
            media=MediaPayload(data=b"\x89PNG", mime_type="image/png"),
            media_store=media_store,
        )

    assert _message_count(db_session) == 0
    assert conversations.list_conversations(db_session, alice.id) == []


async def test_blocked_users_cannot_message(db_session, media_store):
    alice = _user(db_session, "alice")
    bob = _user(db_session, "bob")
    relationships.block_user(db_session, bob, alice.id)

    with pytest.raises(PermissionDeniedError, match="Can't send message to this user"):
        await messages.send_private(db_session, alice, bob.id, text="hi", media_store=media_store)


async def test_group_send_respects_send_new_messages(db_session, media_store):
    admin = _user(db_session, "admin")
    member = _user(db_session, "member")
    group = conversations.create_group(db_session, admin, "Team", member_ids=[member.id])
    conversations.update_group_settings(
        db_session, group.id, admin, {"members": {"sendNewMessages": False}}
    )

    with pytest.raises(PermissionDeniedError, match="Can't send message to this group"):
        await messages.send_group(db_session, member, group.id, text="hello", media_store=media_store)
    result = await messages.send_group(db_session, admin, group.id, text="hello", media_store=media_store)

    assert result.conversation.last_message_id == result.message.id


async def test_group_send_ignores_pairwise_blocks(db_session, media_store):
    admin = _user(db_session, "admin")
    member = _user(db_session, "member")
    group = conversations.create_group(db_session, admin, "Team", member_ids=[member.id])
    relationships.block_user(db_session, admin, member.id)

    result = await messages.send_group(db_session, member, group.id, text="still here", media_store=media_store)

    assert result.message.conversation_id == group.id


async def test_reply_keeps_reference_to_quoted_message(db_session, media_store):
    alice = _user(db_session, "alice")
    bob = _user(db_session, "bob")
    first = await messages.send_private(db_session, alice, bob.id, text="question", media_store=media_store)

    reply = await messages.send_private(
        db_session, bob, alice.id, text="answer", reply_to_id=first.message.id, media_store=media_store
    )

    assert reply.message.reply_message.text == "question"


async def test_react_toggles_and_replaces(db_session, media_store):
    alice = _user(db_session, "alice")
    bob = _user(db_session, "bob")
    sent = await messages.send_private(db_session, alice, bob.id, text="hi", media_store=media_store)
    message_id = sent.message.id

    message = messages.react(db_session, message_id, bob, "like")
    assert [(item.user_id, item.react) for item in message.reactions] == [(bob.id, ReactionKind.LIKE)]

    message = messages.react(db_session, message_id, bob, "love")
    assert [(item.user_id, item.react) for item in message.reactions] == [(bob.id, ReactionKind.LOVE)]

    message = messages.react(db_session, message_id, bob, "love")
    assert message.reactions == []
    assert db_session.execute(select(func.count()).select_from(MessageReaction)).scalar_one() == 0


async def test_react_rejects_unknown_kinds_and_outsiders(db_session, media_store):
    alice = _user(db_session, "alice")
    bob = _user(db_session, "bob")
    carol = _user(db_session, "carol")
    sent = await messages.send_private(db_session, alice, bob.id, text="hi", media_store=media_store)

    with pytest.raises(ValidationError):
        messages.react(db_session, sent.message.id, bob, "shrug")
    with pytest.raises(PermissionDeniedError):
        messages.react(db_session, sent.message.id, carol, "like")


async def test_mark_seen_updates_only_messages_addressed_to_reader(db_session, media_store):
    alice = _user(db_session, "alice")
    bob = _user(db_session, "bob")
    await messages.send_private(db_session, alice, bob.id, text="one", media_store=media_store)
    await messages.send_private(db_session, alice, bob.id, text="two", media_store=media_store)
    await messages.send_private(db_session, bob, alice.id, text="three", media_store=media_store)

    _, updated = messages.mark_seen(db_session, bob, alice.id)

    assert updated == 2
    seen = dict(db_session.execute(select(Message.text, Message.seen)).all())
    assert seen == {"one": True, "two": True, "three": False}


async def test_history_pages_newest_first_and_hides_cleared_messages(db_session, media_store):
    alice = _user(db_session, "alice")
    bob = _user(db_session, "bob")
    conversation = conversations.resolve_private(db_session, alice.id, bob.id)
    base = utcnow() - timedelta(hours=1)
    for index in range(5):
        db_session.add(
            Message(
                conversation_id=conversation.id,
                sender_id=alice.id,
                recipient_id=bob.id,
                text=f"m{index}",
                created_at=base + timedelta(minutes=index),
            )
        )
    db_session.commit()

    _, page = messages.private_history(db_session, bob, alice.id, limit=2)
    assert [message.text for message in page.messages] == ["m4", "m3"]
    assert page.has_more is True

    _, older = messages.private_history(
        db_session, bob, alice.id, before=page.messages[-1].created_at, limit=10
    )
    assert [message.text for message in older.messages] == ["m2", "m1", "m0"]
    assert older.has_more is False

    conversation.set_watermark(bob.id, base + timedelta(minutes=2, seconds=30))
    db_session.commit()
    _, visible = messages.private_history(db_session, bob, alice.id)
    assert [message.text for message in visible.messages] == ["m4", "m3"]
    _, unaffected = messages.private_history(db_session, alice, bob.id)
    assert len(unaffected.messages) == 5


async def test_message_stamped_at_the_clear_time_stays_hidden(db_session, media_store):
    alice = _user(db_session, "alice")
    bob = _user(db_session, "bob")
    conversation = conversations.resolve_private(db_session, alice.id, bob.id)
    cleared_at = utcnow() - timedelta(minutes=5)
    stamps = {
        "before": cleared_at - timedelta(microseconds=1),
        "at": cleared_at,
        "after": cleared_at + timedelta(microseconds=1),
    }
    for text, created_at in stamps.items():
        db_session.add(
            Message(
                conversation_id=conversation.id,
                sender_id=alice.id,
                recipient_id=bob.id,
                text=text,
                created_at=created_at,
            )
        )
    conversation.set_watermark(bob.id, cleared_at)
    db_session.commit()

    _, page = messages.private_history(db_session, bob, alice.id)

    assert [message.text for message in page.messages] == ["after"]


async def test_delete_recomputes_last_message(db_session, media_store):
    alice = _user(db_session, "alice")
    bob = _user(db_session, "bob")
    first = await messages.send_private(db_session, alice, bob.id, text="first", media_store=media_store)
    second = await messages.send_private(db_session, alice, bob.id, text="second", media_store=media_store)
    first_id, second_id = first.message.id, second.message.id

    with pytest.raises(PermissionDeniedError):
        messages.delete_message(db_session, second_id, bob)

    deleted = messages.delete_message(db_session, second_id, alice)
    assert deleted.message_id == second_id
    assert deleted.conversation.last_message_id == first_id

    deleted = messages.delete_message(db_session, first_id, alice)
    assert deleted.conversation.last_message_id is None
    assert _message_count(db_session) == 0


async def test_forward_copies_content_into_target(db_session, media_store):
    alice = _user(db_session, "alice")
    bob = _user(db_session, "bob")
    carol = _user(db_session, "carol")
    sent = await messages.send_private(db_session, alice, bob.id, text="news", media_store=media_store)
    target = conversations.resolve_private(db_session, bob.id, carol.id)

    result = messages.forward(db_session, sent.message.id, bob, target.id)

    assert result.message.text == "news"
    assert result.message.sender_id == bob.id
    assert result.message.recipient_id == carol.id
    assert result.conversation.last_message_id == result.message.id

    with pytest.raises(PermissionDeniedError):
        messages.forward(db_session, sent.message.id, carol, target.id)
