"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - Tests run against an in-memory SQLite database (TestingConfig), or
    TEST_DATABASE_URL when set.
  - The app is created once per session using create_app("testing").
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted in FK-safe order so tests are
    isolated. Login attempts are deleted too, otherwise one test's failed
    logins would throttle the next test (the test client always reports
    127.0.0.1).

Helper functions (not fixtures) are provided for common operations:
  - register(client, ...)        → {"user": {...}, "tokens": {...}}
  - login(client, ...)           → {"user": {...}, "tokens": {...}}
  - auth_headers(token)          → {"Authorization": "Bearer <token>"}
  - make_admin(app, client, ...) → login data for a user promoted to admin
  - make_product(client, ...)    → product dict

These are plain functions (not pytest fixtures) so they can be called with
arbitrary arguments in any test.
"""

from __future__ import annotations

import pytest
from sqlalchemy import text

from secure_api.app import create_app
from secure_api.app.extensions import db as _db

PASSWORD = "Str0ng!Pass"


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """
    Creates the Flask application in 'testing' mode once for the entire
    test session, with every table created up front.
    """
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """Deletes all rows after every test, children before parents."""
    yield  # run the test

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test

        with _db.engine.connect() as conn:
            conn.execute(text("DELETE FROM products"))
            conn.execute(text("DELETE FROM refresh_tokens"))
            conn.execute(text("DELETE FROM login_attempts"))
            conn.execute(text("DELETE FROM registration_attempts"))
            conn.execute(text("DELETE FROM users"))
            conn.commit()


# ═══════════════════════════════════════════════════════════════════════════
# Client fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def register(
    client,
    username: str = "alice",
    email: str | None = None,
    password: str = PASSWORD,
) -> dict:
    """
    Registers a new user and returns the response data dict.
    Returns: {"user": {...}, "tokens": {"access_token": ..., "refresh_token": ...}}
    """
    if email is None:
        email = f"{username}@test.com"
    resp = client.post(
        "/api/v1/auth/register",
        json={"username": username, "email": email, "password": password},
    )
    assert resp.status_code == 201, f"register failed: {resp.get_json()}"
    return resp.get_json()["data"]


def login(client, username: str, password: str = PASSWORD) -> dict:
    """Logs in a user and returns the response data dict."""
    resp = client.post(
        "/api/v1/auth/login",
        json={"username": username, "password": password},
    )
    assert resp.status_code == 200, f"login failed: {resp.get_json()}"
    return resp.get_json()["data"]


def auth_headers(token: str) -> dict:
    """Returns the Authorization header dict for use in test requests."""
    return {"Authorization": f"Bearer {token}"}


def make_admin(app, client, username: str = "admin") -> dict:
    """
    Registers `username`, promotes it to admin directly in the database and
    logs in again so the returned tokens carry the admin role.
    """
    from secure_api.app.models.user import ROLE_ADMIN, User

    data = register(client, username)
    with app.app_context():
        user = _db.session.get(User, data["user"]["id"])
        user.role = ROLE_ADMIN
        _db.session.commit()
    return login(client, username)


def make_product(client, token: str, name: str = "Keyboard", price: str = "49.90", stock: int = 5) -> dict:
    resp = client.post(
        "/api/v1/products",
        json={"name": name, "price": price, "stock": stock},
        headers=auth_headers(token),
    )
    assert resp.status_code == 201, f"make_product failed: {resp.get_json()}"
    return resp.get_json()["data"]
