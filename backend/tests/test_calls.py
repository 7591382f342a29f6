"""Unit tests for call signaling checks."""

from __future__ import annotations

import pytest

from app.core.errors import NotFoundError, PermissionDeniedError, ValidationError
from app.models import User
from app.services import calls, relationships


def _user(db, login: str) -> User:
    user = User(login=login, email=f"{login}@example.com")
    db.add(user)
    db.commit()
    return user


def test_start_call_returns_fresh_ids(db_session):
    alice = _user(db_session, "alice")
    bob = _user(db_session, "bob")

    first = calls.start_call(db_session, alice, bob.id, "voice", callee_online=True)
    second = calls.start_call(db_session, alice, bob.id, "video", callee_online=True)

    assert len(first) == 32
    assert first != second


def test_start_call_validation_order(db_session):
    alice = _user(db_session, "alice")
    bob = _user(db_session, "bob")

    with pytest.raises(ValidationError, match="Invalid call type"):
        calls.start_call(db_session, alice, bob.id, "fax", callee_online=True)
    with pytest.raises(ValidationError, match="You can't call yourself"):
        calls.start_call(db_session, alice, alice.id, "voice", callee_online=True)
    with pytest.raises(NotFoundError):
        calls.start_call(db_session, alice, 999, "voice", callee_online=True)
    with pytest.raises(ValidationError, match="User is not online"):
        calls.start_call(db_session, alice, bob.id, "voice", callee_online=False)


def test_block_list_gates_calls_either_way(db_session):
    alice = _user(db_session, "alice")
    bob = _user(db_session, "bob")
    relationships.block_user(db_session, alice, bob.id)

    with pytest.raises(PermissionDeniedError, match="Can't call this user"):
        calls.start_call(db_session, bob, alice.id, "voice", callee_online=True)
    with pytest.raises(PermissionDeniedError, match="Can't call this user"):
        calls.ensure_can_call(db_session, alice.id, bob.id)


def test_signal_requires_call_id_and_data():
    with pytest.raises(ValidationError, match="No call id"):
        calls.check_signal(None, {"sdp": "x"})
    with pytest.raises(ValidationError, match="No signal data"):
        calls.check_signal("abc", None)
    calls.check_signal("abc", {"sdp": "x"})
