"""Integration tests exercising API endpoints via FastAPI's TestClient."""

from __future__ import annotations

from fastapi.testclient import TestClient

from app.models import Message
from app.services import conversations


def _seed_private_message(session_factory, sender_id: int, recipient_id: int, text: str) -> str:
    with session_factory() as session:
        conversation = conversations.resolve_private(session, sender_id, recipient_id)
        message = Message(
            conversation_id=conversation.id,
            sender_id=sender_id,
            recipient_id=recipient_id,
            text=text,
        )
        session.add(message)
        session.flush()
        conversation.last_message_id = message.id
        conversation.updated_at = message.created_at
        session.commit()
        return message.id


def test_health_and_metrics(client: TestClient):
    health = client.get("/health").json()
    assert health["status"] == "ok"
    assert health["onlineUsers"] == 0

    response = client.get("/metrics")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "realtime_online_users" in response.text


def test_requests_without_token_are_rejected(client: TestClient):
    response = client.get("/api/users/me")

    assert response.status_code == 401
    assert "msg" in response.json()


def test_current_user_profile_and_privacy(client: TestClient, make_user, auth_headers):
    alice = make_user("alice", display_name="Alice")
    headers = auth_headers(alice)

    body = client.get("/api/users/me", headers=headers).json()
    assert body["user"] == {"id": alice.id, "login": "alice", "name": "Alice", "avatarUrl": None}
    assert body["privacy"] == {"online": "Everyone", "readReceipts": "Enable"}

    response = client.patch("/api/users/me/privacy", json={"readReceipts": "Disable"}, headers=headers)
    assert response.status_code == 200
    assert response.json()["privacy"]["readReceipts"] == "Disable"


def test_friendship_flow(client: TestClient, make_user, auth_headers):
    alice, bob = make_user("alice"), make_user("bob")

    assert client.post(f"/api/users/friends/{bob.id}", headers=auth_headers(alice)).json() == {
        "success": True
    }
    requests = client.get("/api/users/friend-requests", headers=auth_headers(bob)).json()
    assert [user["id"] for user in requests["friendRequests"]] == [alice.id]

    response = client.post(f"/api/users/friend-requests/{alice.id}/accept", headers=auth_headers(bob))
    assert response.status_code == 200
    friends = client.get("/api/users/friends", headers=auth_headers(alice)).json()["friends"]
    assert [user["id"] for user in friends] == [bob.id]

    response = client.post(f"/api/users/friends/{bob.id}", headers=auth_headers(alice))
    assert response.status_code == 400
    assert response.json() == {"msg": "You are already friends"}


def test_block_prevents_contact_and_hides_user(client: TestClient, make_user, auth_headers):
    alice, bob = make_user("alice"), make_user("bob")

    response = client.post(f"/api/users/block/{alice.id}", headers=auth_headers(bob))
    assert response.status_code == 200
    blocked = client.get("/api/users/blocked", headers=auth_headers(bob)).json()["blockedUsers"]
    assert [user["id"] for user in blocked] == [alice.id]

    response = client.get("/api/users/find/bob@example.com", headers=auth_headers(alice))
    assert response.status_code == 404
    assert response.json() == {"msg": "User not found"}


def test_private_history_and_reactions(client: TestClient, session_factory, make_user, auth_headers):
    alice, bob = make_user("alice"), make_user("bob")
    message_id = _seed_private_message(session_factory, alice.id, bob.id, "hi")

    listed = client.get("/api/chat/conversations", headers=auth_headers(bob)).json()["conversations"]
    assert len(listed) == 1
    assert listed[0]["type"] == "private"
    assert listed[0]["lastMessage"]["text"] == "hi"
    assert listed[0]["lastMessage"]["from"] == alice.id
    assert listed[0]["lastMessage"]["to"] == bob.id

    page = client.get(f"/api/chat/conversations/messages/{alice.id}", headers=auth_headers(bob)).json()
    assert page["hasMore"] is False
    assert [message["id"] for message in page["messages"]] == [message_id]
    assert page["messages"][0]["seen"] is True

    response = client.post(
        f"/api/chat/message/{message_id}/react", json={"react": "haha"}, headers=auth_headers(bob)
    )
    assert response.status_code == 200
    reacts = response.json()["message"]["reacts"]
    assert [(react["react"], react["user"]["id"]) for react in reacts] == [("haha", bob.id)]

    response = client.post(
        f"/api/chat/message/{message_id}/react", json={"react": "meh"}, headers=auth_headers(bob)
    )
    assert response.status_code == 400
    assert "msg" in response.json()


def test_clear_conversation_only_affects_caller(client: TestClient, session_factory, make_user, auth_headers):
    alice, bob = make_user("alice"), make_user("bob")
    _seed_private_message(session_factory, alice.id, bob.id, "hi")
    conversation_id = client.get(
        f"/api/chat/conversations/user/{bob.id}", headers=auth_headers(alice)
    ).json()["conversation"]["id"]

    response = client.delete(f"/api/chat/conversations/{conversation_id}", headers=auth_headers(alice))
    assert response.status_code == 200

    assert client.get("/api/chat/conversations", headers=auth_headers(alice)).json()["conversations"] == []
    assert len(client.get("/api/chat/conversations", headers=auth_headers(bob)).json()["conversations"]) == 1


def test_delete_message_by_sender_only(client: TestClient, session_factory, make_user, auth_headers):
    alice, bob = make_user("alice"), make_user("bob")
    first = _seed_private_message(session_factory, alice.id, bob.id, "first")
    second = _seed_private_message(session_factory, alice.id, bob.id, "second")

    response = client.delete(f"/api/chat/message/{second}", headers=auth_headers(bob))
    assert response.status_code == 403
    assert response.json() == {"msg": "You can only delete your own messages"}

    response = client.delete(f"/api/chat/message/{second}", headers=auth_headers(alice))
    assert response.status_code == 200
    body = response.json()
    assert body["messageId"] == second
    assert body["conversation"]["lastMessage"]["id"] == first


def test_group_settings_and_invite_link(client: TestClient, make_user, auth_headers):
    admin, member, joiner = make_user("admin"), make_user("member"), make_user("joiner")

    response = client.post(
        "/api/chat/groups",
        json={"groupName": "Team", "desc": "Planning", "members": [member.id]},
        headers=auth_headers(admin),
    )
    assert response.status_code == 201
    group = response.json()["group"]
    assert group["admin"] == admin.id
    assert group["desc"] == "Planning"
    assert [user["id"] for user in group["participants"]] == [admin.id, member.id]

    response = client.patch(
        f"/api/chat/groups/{group['id']}/settings",
        json={"members": {"sendNewMessages": False}},
        headers=auth_headers(member),
    )
    assert response.status_code == 403
    assert "msg" in response.json()

    response = client.patch(
        f"/api/chat/groups/{group['id']}/settings",
        json={"members": {"inviteViaLink": True}, "bogus": True},
        headers=auth_headers(admin),
    )
    assert response.status_code == 200
    assert response.json()["group"]["groupSettings"]["members"]["inviteViaLink"] is True

    token = client.get(f"/api/chat/groups/{group['id']}/link", headers=auth_headers(member)).json()[
        "linkToken"
    ]
    assert client.get(f"/api/chat/groups/{group['id']}/link", headers=auth_headers(admin)).json()[
        "linkToken"
    ] == token

    response = client.post(
        f"/api/chat/groups/{group['id']}/join",
        json={"linkToken": token},
        headers=auth_headers(joiner),
    )
    assert response.status_code == 200
    assert joiner.id in [user["id"] for user in response.json()["group"]["participants"]]

    reset = client.post(f"/api/chat/groups/{group['id']}/link/reset", headers=auth_headers(admin))
    assert reset.json()["linkToken"] != token


def test_group_member_management(client: TestClient, make_user, auth_headers):
    admin, member, extra = make_user("admin"), make_user("member"), make_user("extra")
    group_id = client.post(
        "/api/chat/groups", json={"groupName": "Team"}, headers=auth_headers(admin)
    ).json()["group"]["id"]

    response = client.post(
        f"/api/chat/groups/{group_id}/members", json={"userId": member.id}, headers=auth_headers(admin)
    )
    assert response.status_code == 200
    response = client.post(
        f"/api/chat/groups/{group_id}/members",
        json={"email": "extra@example.com"},
        headers=auth_headers(member),
    )
    assert response.status_code == 200

    response = client.delete(f"/api/chat/groups/{group_id}/members/{extra.id}", headers=auth_headers(member))
    assert response.status_code == 403
    response = client.delete(f"/api/chat/groups/{group_id}/members/{extra.id}", headers=auth_headers(admin))
    assert [user["id"] for user in response.json()["group"]["participants"]] == [admin.id, member.id]

    assert client.post(f"/api/chat/groups/{group_id}/leave", headers=auth_headers(member)).status_code == 200
    assert client.delete(f"/api/chat/groups/{group_id}", headers=auth_headers(admin)).status_code == 200
    response = client.get(f"/api/chat/groups/{group_id}", headers=auth_headers(admin))
    assert response.status_code == 404
    assert response.json() == {"msg": "No group with this id"}


def test_request_validation_errors_use_msg_shape(client: TestClient, make_user, auth_headers):
    admin = make_user("admin")

    response = client.post("/api/chat/groups", json={"groupName": ""}, headers=auth_headers(admin))

    assert response.status_code == 400
    assert set(response.json()) == {"msg"}


def test_statuses_flow(client: TestClient, make_user, auth_headers, media_store):
    alice, bob = make_user("alice"), make_user("bob")
    client.post(f"/api/users/friends/{bob.id}", headers=auth_headers(alice))
    client.post(f"/api/users/friend-requests/{alice.id}/accept", headers=auth_headers(bob))

    response = client.post(
        "/api/statuses",
        data={"content": "sunny"},
        files={"statusMedia": ("beach.png", b"\x89PNG", "image/png")},
        headers=auth_headers(alice),
    )
    assert response.status_code == 201
    status = response.json()["status"]
    assert status["mediaType"] == "image"
    assert media_store.uploads == [f"status_{alice.id}_{status['id']}"]

    friends = client.get("/api/statuses/friends", headers=auth_headers(bob)).json()["statuses"]
    assert [(item["id"], item["isSeen"]) for item in friends] == [(status["id"], False)]

    seen = client.post(f"/api/statuses/see/{status['id']}", headers=auth_headers(bob)).json()["status"]
    assert seen["isSeen"] is True
    own = client.get("/api/statuses", headers=auth_headers(alice)).json()["statuses"]
    assert own[0]["viewers"] == [bob.id]

    assert client.delete(f"/api/statuses/{status['id']}", headers=auth_headers(alice)).status_code == 200
    assert client.get("/api/statuses/friends", headers=auth_headers(bob)).json()["statuses"] == []
