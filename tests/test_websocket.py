"""
End-to-end test of the ``/ws`` endpoint through a real app with its own database.
"""

import time
from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from schat.app import create_app


@pytest.fixture
def live_client(settings):
    app = create_app(settings)
    with TestClient(app) as client:
        yield client


def _signup(client, name):
    password = "secret1"
    resp = client.post(
        "/api/auth/signup",
        json={
            "username": name,
            "email": f"{name}@example.com",
            "password": password,
            "confirmPassword": password,
        },
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["user"], (f"{name}@example.com", password)


def _wait_for_presence(client, auth, online=True):
    """The socket has no auth ack; the stored flag flips once the relay has handled it."""
    for _ in range(200):
        me = client.get("/api/auth/me", auth=auth).json()
        if me["isOnline"] is online:
            return me
        time.sleep(0.01)
    raise AssertionError(f"user never became {'online' if online else 'offline'}")


def _naive(value):
    return datetime.fromisoformat(value.replace("Z", "+00:00")).replace(tzinfo=None)


def test_presence_typing_and_message_push(live_client):
    alice, alice_auth = _signup(live_client, "alice")
    bob, bob_auth = _signup(live_client, "bob")
    chat = live_client.post("/api/chats", json={"otherUserId": bob["id"]}, auth=alice_auth).json()

    with live_client.websocket_connect("/ws") as alice_ws:
        alice_ws.send_json({"type": "auth", "userId": alice["id"]})
        _wait_for_presence(live_client, alice_auth)
        # Garbage must not kill the socket.
        alice_ws.send_text("not json")
        alice_ws.send_json({"type": "join_chat", "chatId": chat["id"]})

        with live_client.websocket_connect("/ws") as bob_ws:
            bob_ws.send_json({"type": "auth", "userId": bob["id"]})

            online = alice_ws.receive_json()
            assert online["type"] == "user_status"
            assert online["userId"] == bob["id"]
            assert online["isOnline"] is True

            alice_ws.send_json({"type": "typing", "chatId": chat["id"], "isTyping": True})
            assert bob_ws.receive_json() == {
                "type": "typing",
                "chatId": chat["id"],
                "userId": alice["id"],
                "isTyping": True,
            }

            resp = live_client.post(
                f"/api/chats/{chat['id']}/messages", data={"content": "hi alice"}, auth=bob_auth
            )
            assert resp.status_code == 201

            pushed = alice_ws.receive_json()
            assert pushed["type"] == "new_message"
            assert pushed["message"]["content"] == "hi alice"
            assert pushed["message"]["sender"]["id"] == bob["id"]
            assert "password" not in pushed["message"]["sender"]

        # Closing the test session cancels bob's handler right away.
        me = _wait_for_presence(live_client, bob_auth, online=False)
        assert me["lastSeen"] is not None

        offline = alice_ws.receive_json()
        assert offline["type"] == "user_status"
        assert offline["userId"] == bob["id"]
        assert offline["isOnline"] is False
        assert _naive(offline["lastSeen"]) == _naive(me["lastSeen"])


def test_binary_frame_is_dropped_without_closing(live_client):
    alice, alice_auth = _signup(live_client, "alice")
    bob, bob_auth = _signup(live_client, "bob")
    chat = live_client.post("/api/chats", json={"otherUserId": bob["id"]}, auth=alice_auth).json()

    with live_client.websocket_connect("/ws") as alice_ws, live_client.websocket_connect("/ws") as bob_ws:
        alice_ws.send_json({"type": "auth", "userId": alice["id"]})
        _wait_for_presence(live_client, alice_auth)
        bob_ws.send_json({"type": "auth", "userId": bob["id"]})
        assert alice_ws.receive_json()["userId"] == bob["id"]

        alice_ws.send_bytes(b"\x00\x01garbage")
        # JSON in a binary frame is still a valid event.
        alice_ws.send_bytes(b'{"type": "join_chat", "chatId": "%s"}' % chat["id"].encode())
        alice_ws.send_json({"type": "typing", "chatId": chat["id"], "isTyping": True})

        # Frames are handled in order, so this proves alice's loop survived the binary garbage.
        assert bob_ws.receive_json()["type"] == "typing"
        assert live_client.get("/api/auth/me", auth=alice_auth).json()["isOnline"] is True

        resp = live_client.post(
            f"/api/chats/{chat['id']}/messages", data={"content": "still there?"}, auth=bob_auth
        )
        assert resp.status_code == 201
        assert resp.json()["status"] == "delivered"
        pushed = alice_ws.receive_json()
        assert pushed["type"] == "new_message"
        assert pushed["message"]["content"] == "still there?"


def test_uploads_dir_is_created_at_startup(settings, tmp_path):
    uploads = tmp_path / "uploads"
    app = create_app(settings)
    assert not uploads.exists()

    with TestClient(app):
        assert uploads.is_dir()
