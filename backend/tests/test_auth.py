from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from backend.app import app
from backend.auth import users
from backend.errors import Conflict, NotFound, ValidationError

client = TestClient(app)


def _login_user(c):
    c.post("/auth/login", json={"email": "user@example.com", "password": "User123!"})


def _login_admin(c):
    c.post("/auth/login", json={"email": "admin@example.com", "password": "Admin123!"})


# ── Login / Logout ───────────────────────────────────────────────────────


def test_login_success_user():
    resp = client.post("/auth/login", json={"email": "user@example.com", "password": "User123!"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["data"]["username"] == "demo_user"
    assert body["data"]["role"] == "user"
    assert "password_hash" not in body["data"]


def test_login_success_admin():
    resp = client.post("/auth/login", json={"email": "admin@example.com", "password": "Admin123!"})
    assert resp.status_code == 200
    assert resp.json()["data"]["role"] == "admin"


def test_login_email_is_case_insensitive():
    resp = client.post("/auth/login", json={"email": "User@Example.com", "password": "User123!"})
    assert resp.status_code == 200


def test_login_wrong_password():
    resp = client.post("/auth/login", json={"email": "user@example.com", "password": "wrong"})
    assert resp.status_code == 401
    assert resp.json() == {"success": False, "message": "Invalid credentials"}


def test_login_unknown_user():
    resp = client.post("/auth/login", json={"email": "nobody@example.com", "password": "x"})
    assert resp.status_code == 401


def test_auth_me_when_logged_in():
    _login_user(client)
    resp = client.get("/auth/me")
    assert resp.status_code == 200
    assert resp.json()["data"]["email"] == "user@example.com"


def test_auth_me_not_logged_in():
    c = TestClient(app)  # fresh client, no session
    resp = c.get("/auth/me")
    assert resp.status_code == 401


def test_logout():
    _login_user(client)
    resp = client.post("/auth/logout")
    assert resp.status_code == 200
    assert resp.json()["success"] is True
    # Session should be cleared
    resp = client.get("/auth/me")
    assert resp.status_code == 401


# ── Registration ─────────────────────────────────────────────────────────


def test_register_logs_the_user_in():
    c = TestClient(app)
    resp = c.post(
        "/auth/register",
        json={"email": "Peel.Fan@example.com", "username": "peel_fan", "password": "Tangerine1!"},
    )
    assert resp.status_code == 201
    assert resp.json()["data"]["email"] == "peel.fan@example.com"
    assert c.get("/auth/me").json()["data"]["username"] == "peel_fan"


def test_register_reports_every_password_rule():
    resp = client.post(
        "/auth/register",
        json={"email": "weak@example.com", "username": "weak_pw", "password": "abc"},
    )
    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert len(body["errors"]) == 4


def test_register_duplicate_is_409():
    resp = client.post(
        "/auth/register",
        json={"email": "user@example.com", "username": "someone_new", "password": "User123!x"},
    )
    assert resp.status_code == 409


def test_password_problems():
    assert users.password_problems("Str0ng!pass") == []
    assert users.password_problems("alllowercase") == [
        "Password must contain an uppercase letter",
        "Password must contain a number",
        "Password must contain a special character",
    ]


def test_register_validation_error_lists_fields():
    with pytest.raises(ValidationError) as exc_info:
        users.register("not-an-email", "x", "Str0ng!pass")
    assert exc_info.value.errors == [
        "Please enter a valid email",
        "Username must be 3-30 letters, numbers or underscores",
    ]


# ── Linked identities ────────────────────────────────────────────────────


def test_link_google_identity():
    user = users.register("linker@example.com", "linker", "Linker123!")
    users.link_identity(user["id"], "google", "g-123")
    assert users.find_by_identity("google", "g-123")["id"] == user["id"]


def test_identity_cannot_be_linked_twice():
    first = users.register("first.link@example.com", "first_link", "First123!")
    second = users.register("second.link@example.com", "second_link", "Second123!")
    users.link_identity(first["id"], "google", "g-shared")
    with pytest.raises(Conflict):
        users.link_identity(second["id"], "google", "g-shared")


def test_link_identity_rejects_unknown_provider_and_user():
    with pytest.raises(ValidationError):
        users.link_identity("whoever", "myspace", "1")
    with pytest.raises(NotFound):
        users.link_identity("missing-user", "google", "g-999")


def test_get_user_by_email():
    user = users.get_user_by_email("admin@example.com")
    assert user["role"] == "admin"
    assert users.get_user(user["id"]) == user


# ── Route protection ─────────────────────────────────────────────────────


def test_cart_requires_login():
    c = TestClient(app)
    assert c.get("/cart").status_code == 401


def test_orders_require_login():
    c = TestClient(app)
    assert c.post("/orders", json={"payment_method": "stripe"}).status_code == 401


def test_admin_orders_requires_admin():
    c = TestClient(app)
    _login_user(c)
    assert c.get("/orders/admin/all").status_code == 403


def test_admin_orders_allowed_for_admin():
    c = TestClient(app)
    _login_admin(c)
    assert c.get("/orders/admin/all").status_code == 200


def test_cache_stats_requires_admin():
    c = TestClient(app)
    _login_user(c)
    resp = c.get("/cache/stats")
    assert resp.status_code == 403


# ── Public endpoints stay public ─────────────────────────────────────────


def test_health_is_public():
    c = TestClient(app)
    assert c.get("/health").status_code == 200


def test_catalog_and_search_are_public():
    c = TestClient(app)
    assert c.get("/products").status_code == 200
    assert c.get("/restaurants").status_code == 200
    assert c.get("/search", params={"query": "duck", "filter": "dish"}).status_code == 200
