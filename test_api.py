"""
Tests for the HTTP endpoints.

Tests cover:
- POST /register and POST /login
- GET /users and GET /users/{username}
- GET /users/{username}/to and /from
- POST /messages, GET /messages/{id}, POST /messages/{id}/read
- End-to-end conversation between two users
"""

from datetime import datetime

import pytest

from messagely.auth import verify_token
from messagely.config import get_settings


def register(client, username: str, password: str = "Secret1", phone: str = "555-1000"):
    return client.post(
        "/register",
        json={
            "username": username,
            "password": password,
            "first_name": username.capitalize(),
            "last_name": "Tester",
            "phone": phone,
        },
    )


def login(client, username: str, password: str):
    return client.post("/login", json={"username": username, "password": password})


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def send(client, token: str, to_username: str, body: str):
    return client.post(
        "/messages",
        json={"to_username": to_username, "body": body},
        headers=auth_header(token),
    )


class TestRegisterEndpoint:
    """Test POST /register."""

    def test_register_returns_token(self, client):
        response = register(client, "alice")

        assert response.status_code == 200
        token = response.json()["token"]
        assert verify_token(token, get_settings()) == {"username": "alice"}

    def test_register_missing_field(self, client):
        response = client.post("/register", json={"username": "alice", "password": "Secret1"})

        assert response.status_code == 400
        assert "required" in response.json()["detail"]

    def test_register_duplicate(self, client):
        assert register(client, "alice").status_code == 200

        response = register(client, "alice", password="Other1")

        assert response.status_code == 400
        assert "already exists" in response.json()["detail"]

    def test_register_password_too_long(self, client):
        response = register(client, "alice", password="x" * 100)

        assert response.status_code == 400
        assert "72 bytes" in response.json()["detail"]
        assert client.get("/users/alice").status_code == 404

    def test_register_wrong_field_type(self, client):
        response = client.post(
            "/register",
            json={
                "username": 123,
                "password": "Secret1",
                "first_name": "Alice",
                "last_name": "Tester",
                "phone": "555-1000",
            },
        )

        assert response.status_code == 400
        assert isinstance(response.json()["detail"], str)
        assert "username" in response.json()["detail"]

    def test_register_does_not_echo_password(self, client):
        response = register(client, "alice")
        assert "Secret1" not in response.text


class TestLoginEndpoint:
    """Test POST /login."""

    def test_login_success(self, client):
        register(client, "alice")

        response = login(client, "alice", "Secret1")

        assert response.status_code == 200
        assert verify_token(response.json()["token"], get_settings())["username"] == "alice"

    def test_login_updates_last_login(self, client):
        register(client, "alice")
        before = client.get("/users/alice").json()["user"]

        login(client, "alice", "Secret1")
        after = client.get("/users/alice").json()["user"]

        assert after["joined_at"] == before["joined_at"]
        assert datetime.fromisoformat(after["last_login_at"]) >= datetime.fromisoformat(before["last_login_at"])

    def test_wrong_password_and_unknown_user_look_the_same(self, client):
        register(client, "alice")

        wrong_password = login(client, "alice", "nope")
        unknown_user = login(client, "ghost", "x")

        assert wrong_password.status_code == unknown_user.status_code == 400
        assert wrong_password.json() == unknown_user.json()

    def test_login_missing_fields(self, client):
        response = client.post("/login", json={})
        assert response.status_code == 400


class TestUserEndpoints:
    """Test the /users routes."""

    def test_list_users_empty(self, client):
        response = client.get("/users")

        assert response.status_code == 200
        assert response.json() == {"users": []}

    def test_list_users(self, client):
        register(client, "alice")
        register(client, "bob")

        users = client.get("/users").json()["users"]

        assert [u["username"] for u in users] == ["alice", "bob"]
        assert "password_hash" not in users[0]

    def test_user_detail(self, client):
        register(client, "alice", phone="555-1000")

        response = client.get("/users/alice")

        assert response.status_code == 200
        user = response.json()["user"]
        assert user["username"] == "alice"
        assert user["phone"] == "555-1000"
        assert user["joined_at"] is not None
        assert user["last_login_at"] is not None
        assert "password_hash" not in user

    def test_user_detail_not_found(self, client):
        response = client.get("/users/ghost")

        assert response.status_code == 404
        assert "ghost" in response.json()["detail"]

    def test_messages_to_and_from(self, client):
        alice = register(client, "alice").json()["token"]
        bob = register(client, "bob").json()["token"]
        send(client, alice, "bob", "hello bob")
        send(client, bob, "alice", "hello alice")

        sent = client.get("/users/alice/from", headers=auth_header(alice)).json()["messages"]
        received = client.get("/users/alice/to", headers=auth_header(alice)).json()["messages"]

        assert len(sent) == 1
        assert sent[0]["body"] == "hello bob"
        assert sent[0]["to_user"]["username"] == "bob"
        assert len(received) == 1
        assert received[0]["body"] == "hello alice"
        assert received[0]["from_user"]["username"] == "bob"
        assert received[0]["read_at"] is None


class TestMessageEndpoints:
    """Test the /messages routes."""

    @pytest.fixture
    def tokens(self, client):
        return {
            name: register(client, name).json()["token"]
            for name in ("alice", "bob")
        }

    def test_post_message(self, client, tokens):
        response = send(client, tokens["alice"], "bob", "hi")

        assert response.status_code == 200
        message = response.json()["message"]
        assert message["id"] == 1
        assert message["from_username"] == "alice"
        assert message["to_username"] == "bob"
        assert message["body"] == "hi"
        assert message["read_at"] is None

    def test_sender_is_forced_to_caller(self, client, tokens):
        response = client.post(
            "/messages",
            json={"from_username": "bob", "to_username": "alice", "body": "spoof"},
            headers=auth_header(tokens["alice"]),
        )

        assert response.status_code == 200
        assert response.json()["message"]["from_username"] == "alice"

    def test_post_message_unknown_recipient(self, client, tokens):
        response = send(client, tokens["alice"], "ghost", "hi")
        assert response.status_code == 404

    def test_post_message_empty_body(self, client, tokens):
        response = send(client, tokens["alice"], "bob", "")
        assert response.status_code == 400

    def test_message_detail(self, client, tokens):
        send(client, tokens["alice"], "bob", "hi")

        response = client.get("/messages/1", headers=auth_header(tokens["alice"]))

        assert response.status_code == 200
        message = response.json()["message"]
        assert message["from_user"]["username"] == "alice"
        assert message["to_user"]["username"] == "bob"
        assert message["body"] == "hi"

    def test_post_message_body_too_long(self, client, tokens):
        response = send(client, tokens["alice"], "bob", "x" * 5000)

        assert response.status_code == 400
        assert "body" in response.json()["detail"]

    def test_non_integer_message_id(self, client, tokens):
        response = client.get("/messages/abc", headers=auth_header(tokens["alice"]))

        assert response.status_code == 400
        assert "message_id" in response.json()["detail"]

    def test_non_integer_message_id_on_read(self, client, tokens):
        response = client.post("/messages/abc/read", headers=auth_header(tokens["bob"]))
        assert response.status_code == 400

    def test_mark_read_not_found(self, client, tokens):
        response = client.post("/messages/7/read", headers=auth_header(tokens["bob"]))
        assert response.status_code == 404


class TestConversation:
    """alice and bob exchange a message end to end."""

    def test_full_flow(self, client):
        assert register(client, "alice", password="Secret1", phone="555-1000").status_code == 200
        assert register(client, "bob", password="Secret2", phone="555-2000").status_code == 200

        login_response = login(client, "alice", "Secret1")
        assert login_response.status_code == 200
        alice = login_response.json()["token"]
        bob = login(client, "bob", "Secret2").json()["token"]

        created = send(client, alice, "bob", "hi").json()["message"]
        assert created["id"] == 1
        assert created["read_at"] is None

        fetched = client.get("/messages/1", headers=auth_header(bob))
        assert fetched.status_code == 200
        assert fetched.json()["message"]["read_at"] is None

        read = client.post("/messages/1/read", headers=auth_header(bob))
        assert read.status_code == 200
        receipt = read.json()["message"]
        assert receipt["id"] == 1
        assert receipt["read_at"] is not None

        # Marking again is allowed for the recipient
        again = client.post("/messages/1/read", headers=auth_header(bob))
        assert again.status_code == 200
        assert again.json()["message"]["read_at"] is not None

        # The sender is not the recipient
        assert client.post("/messages/1/read", headers=auth_header(alice)).status_code == 401

        detail = client.get("/messages/1", headers=auth_header(alice)).json()["message"]
        assert detail["read_at"] is not None
        assert detail["body"] == "hi"
        assert detail["sent_at"] == created["sent_at"]
