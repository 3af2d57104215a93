"""
tests/integration/test_auth_middleware.py — @require_auth over real requests.

Every failure branch of the per-request sequence:
  no header          → 401 TOKEN_MISSING
  not "Bearer <t>"   → 401 TOKEN_INVALID (malformed_header)
  bad token          → 401 TOKEN_INVALID (reason names the failure)
  user deleted       → 401 USER_NOT_FOUND
  user deactivated   → 403 ACCOUNT_INACTIVE
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from secure_api.app.extensions import db
from secure_api.app.models.user import User
from secure_api.app.services.token_service import TokenService

from .conftest import auth_headers, register

PROFILE = "/api/v1/auth/profile"


def _token_service(app, **changes) -> TokenService:
    """A TokenService configured like the app's, with `changes` applied."""
    config = app.config
    kwargs = dict(
        access_secret=config["JWT_ACCESS_SECRET"],
        refresh_secret=config["JWT_REFRESH_SECRET"],
        issuer=config["JWT_ISSUER"],
        audience=config["JWT_AUDIENCE"],
        access_ttl=config["JWT_ACCESS_TOKEN_EXPIRES"],
        refresh_ttl=config["JWT_REFRESH_TOKEN_EXPIRES"],
    )
    kwargs.update(changes)
    return TokenService(**kwargs)


def _subject(user: dict) -> SimpleNamespace:
    return SimpleNamespace(id=user["id"], username=user["username"], email=user["email"], role=user["role"])


def _reason(resp) -> str:
    error = resp.get_json()["error"]
    assert error["code"] == "TOKEN_INVALID"
    return error["details"]["reason"]


# ═══════════════════════════════════════════════════════════════════════════
# Header parsing
# ═══════════════════════════════════════════════════════════════════════════

class TestAuthorizationHeader:

    def test_missing_header_returns_token_missing(self, client):
        resp = client.get(PROFILE)
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_MISSING"

    @pytest.mark.parametrize("header", ["Token abc", "Bearer", "Bearer a b", "abc"])
    def test_malformed_header_returns_token_invalid(self, client, header):
        resp = client.get(PROFILE, headers={"Authorization": header})
        assert resp.status_code == 401
        assert _reason(resp) == "malformed_header"

    def test_bearer_scheme_is_case_insensitive(self, client):
        token = register(client, "alice")["tokens"]["access_token"]
        resp = client.get(PROFILE, headers={"Authorization": f"bearer {token}"})
        assert resp.status_code == 200


# ═══════════════════════════════════════════════════════════════════════════
# Token verification
# ═══════════════════════════════════════════════════════════════════════════

class TestTokenVerification:

    def test_expired_token_is_rejected(self, app, client):
        user = register(client, "alice")["user"]
        past = datetime.now(timezone.utc) - timedelta(hours=1)
        token = _token_service(app, clock=lambda: past).issue_access_token(_subject(user))

        resp = client.get(PROFILE, headers=auth_headers(token))
        assert resp.status_code == 401
        assert _reason(resp) == "expired"

    def test_token_expiring_now_is_rejected(self, app, client):
        user = register(client, "alice")["user"]
        ttl = app.config["JWT_ACCESS_TOKEN_EXPIRES"]
        issued = datetime.now(timezone.utc) - ttl
        token = _token_service(app, clock=lambda: issued).issue_access_token(_subject(user))

        resp = client.get(PROFILE, headers=auth_headers(token))
        assert resp.status_code == 401
        assert _reason(resp) == "expired"

    def test_token_signed_with_another_secret_is_rejected(self, app, client):
        user = register(client, "alice")["user"]
        token = _token_service(app, access_secret="someone-elses-secret-0123456789abcdef") \
            .issue_access_token(_subject(user))

        resp = client.get(PROFILE, headers=auth_headers(token))
        assert resp.status_code == 401
        assert _reason(resp) == "invalid_signature"

    def test_token_for_another_audience_is_rejected(self, app, client):
        user = register(client, "alice")["user"]
        token = _token_service(app, audience="another-api").issue_access_token(_subject(user))

        resp = client.get(PROFILE, headers=auth_headers(token))
        assert resp.status_code == 401
        assert _reason(resp) == "invalid_audience"

    def test_token_from_another_issuer_is_rejected(self, app, client):
        user = register(client, "alice")["user"]
        token = _token_service(app, issuer="someone-else").issue_access_token(_subject(user))

        resp = client.get(PROFILE, headers=auth_headers(token))
        assert resp.status_code == 401
        assert _reason(resp) == "invalid_issuer"

    def test_refresh_token_is_not_an_access_token(self, client):
        tokens = register(client, "alice")["tokens"]
        resp = client.get(PROFILE, headers=auth_headers(tokens["refresh_token"]))
        assert resp.status_code == 401
        assert _reason(resp) == "invalid_signature"

    def test_garbage_token_is_malformed(self, client):
        resp = client.get(PROFILE, headers=auth_headers("not-a-jwt"))
        assert resp.status_code == 401
        assert _reason(resp) == "malformed"


# ═══════════════════════════════════════════════════════════════════════════
# User state is reloaded on every request
# ═══════════════════════════════════════════════════════════════════════════

class TestUserState:

    def test_deleted_user_returns_401_user_not_found(self, app, client):
        data = register(client, "alice")
        with app.app_context():
            db.session.delete(db.session.get(User, data["user"]["id"]))
            db.session.commit()

        resp = client.get(PROFILE, headers=auth_headers(data["tokens"]["access_token"]))
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "USER_NOT_FOUND"

    def test_deactivated_user_returns_403_account_inactive(self, app, client):
        data = register(client, "alice")
        with app.app_context():
            db.session.get(User, data["user"]["id"]).active = False
            db.session.commit()

        resp = client.get(PROFILE, headers=auth_headers(data["tokens"]["access_token"]))
        assert resp.status_code == 403
        assert resp.get_json()["error"]["code"] == "ACCOUNT_INACTIVE"

    def test_role_comes_from_the_database_not_the_token(self, app, client):
        data = register(client, "alice")
        with app.app_context():
            db.session.get(User, data["user"]["id"]).role = "admin"
            db.session.commit()

        # Token was issued while alice was a plain user.
        resp = client.get("/api/v1/users", headers=auth_headers(data["tokens"]["access_token"]))
        assert resp.status_code == 200


# ═══════════════════════════════════════════════════════════════════════════
# @optional_auth
# ═══════════════════════════════════════════════════════════════════════════

class TestOptionalAuth:

    def test_public_listing_works_without_token(self, client):
        resp = client.get("/api/v1/products")
        assert resp.status_code == 200

    def test_public_listing_ignores_bad_token(self, client):
        resp = client.get("/api/v1/products?mine=true", headers=auth_headers("garbage"))
        assert resp.status_code == 200
