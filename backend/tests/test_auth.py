"""Tests for registration, login and bearer token handling."""
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from together.auth.service import TokenStore, extract_token
from together.auth.validation import email_error, password_error
from together.errors import Unauthenticated
from together.main import app

from conftest import PASSWORD, register


client = TestClient(app)


class TestValidation:
    def test_valid_email(self):
        assert email_error("alice@example.com") is None

    def test_invalid_email(self):
        assert email_error("not-an-email") is not None
        assert email_error("") == "Email is required"

    def test_password_rules(self):
        assert password_error(PASSWORD) is None
        assert "at least 8" in password_error("Ab1!")
        assert "uppercase" in password_error("alllowercase1!")


class TestTokenStore:
    def test_issue_and_resolve(self):
        tokens = TokenStore(expire_minutes=5)
        token = tokens.issue("user-1")
        assert tokens.resolve(token) == "user-1"

    def test_missing_token(self):
        with pytest.raises(Unauthenticated, match="Missing token"):
            TokenStore(expire_minutes=5).resolve(None)

    def test_unknown_token(self):
        with pytest.raises(Unauthenticated, match="Invalid token"):
            TokenStore(expire_minutes=5).resolve("nope")

    def test_expired_token(self):
        tokens = TokenStore(expire_minutes=5)
        token = tokens.issue("user-1")
        tokens._tokens[token] = ("user-1", datetime.utcnow() - timedelta(seconds=1))
        with pytest.raises(Unauthenticated, match="Token expired"):
            tokens.resolve(token)

    def test_extract_token(self):
        assert extract_token("Bearer abc") == "abc"
        assert extract_token("abc") == "abc"
        assert extract_token(None) is None


class TestAuthEndpoints:
    def test_register_returns_token_and_user(self):
        resp = client.post(
            "/auth/register",
            json={"name": "Alice", "email": "alice@example.com", "password": PASSWORD},
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["success"] is True
        assert body["token"]
        assert body["user"]["email"] == "alice@example.com"
        assert body["user"]["name"] == "Alice"

    def test_register_duplicate_email(self):
        register(client, "Alice")
        resp = client.post(
            "/auth/register",
            json={"name": "Other", "email": "alice@example.com", "password": PASSWORD},
        )
        assert resp.status_code == 400
        assert resp.json() == {"success": False, "message": "User already exists"}

    def test_register_weak_password(self):
        resp = client.post(
            "/auth/register",
            json={"name": "Bob", "email": "bob@example.com", "password": "weak"},
        )
        assert resp.status_code == 400
        assert resp.json()["success"] is False

    def test_register_missing_field_is_400(self):
        resp = client.post("/auth/register", json={"name": "Bob"})
        assert resp.status_code == 400
        assert resp.json()["success"] is False

    def test_login(self):
        register(client, "Alice")
        resp = client.post("/auth/login", json={"email": "alice@example.com", "password": PASSWORD})
        assert resp.status_code == 200
        assert resp.json()["token"]

    def test_login_wrong_password(self):
        register(client, "Alice")
        resp = client.post("/auth/login", json={"email": "alice@example.com", "password": "Wrong#123"})
        assert resp.status_code == 400
        assert resp.json()["message"] == "Invalid email or password"

    def test_login_unknown_email(self):
        resp = client.post("/auth/login", json={"email": "ghost@example.com", "password": PASSWORD})
        assert resp.status_code == 400

    def test_protected_endpoint_requires_token(self):
        resp = client.get("/users/profile")
        assert resp.status_code == 401
        assert resp.json() == {"success": False, "message": "Missing token"}

    def test_raw_token_without_bearer_prefix(self):
        alice = register(client, "Alice")
        resp = client.get("/users/profile", headers={"Authorization": alice["token"]})
        assert resp.status_code == 200
        assert resp.json()["id"] == alice["id"]
