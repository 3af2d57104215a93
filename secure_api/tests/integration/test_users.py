"""
tests/integration/test_users.py — Admin user management and role checks.

  GET   /users               admin
  GET   /users/<id>          self or admin
  PATCH /users/<id>/status   admin; not on themself when deactivating
  PATCH /users/<id>/role     admin; never on themself
"""

from __future__ import annotations

from .conftest import auth_headers, make_admin, register


def _token(data: dict) -> str:
    return data["tokens"]["access_token"]


# ═══════════════════════════════════════════════════════════════════════════
# Role checks
# ═══════════════════════════════════════════════════════════════════════════

class TestRoleChecks:

    def test_list_users_forbidden_for_plain_user(self, client):
        alice = register(client, "alice")
        resp = client.get("/api/v1/users", headers=auth_headers(_token(alice)))
        assert resp.status_code == 403
        assert resp.get_json()["error"]["code"] == "FORBIDDEN"

    def test_list_users_requires_token(self, client):
        resp = client.get("/api/v1/users")
        assert resp.status_code == 401

    def test_admin_lists_users_with_filters(self, app, client):
        register(client, "alice")
        register(client, "bob")
        admin = make_admin(app, client)

        resp = client.get("/api/v1/users?role=user", headers=auth_headers(_token(admin)))
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert {u["username"] for u in data["items"]} == {"alice", "bob"}
        assert data["pagination"]["total"] == 2

    def test_unknown_role_filter_returns_400(self, app, client):
        admin = make_admin(app, client)
        resp = client.get("/api/v1/users?role=root", headers=auth_headers(_token(admin)))
        assert resp.status_code == 400


# ═══════════════════════════════════════════════════════════════════════════
# GET /users/<id> — self or admin
# ═══════════════════════════════════════════════════════════════════════════

class TestGetUser:

    def test_user_can_read_themself(self, client):
        alice = register(client, "alice")
        resp = client.get(f"/api/v1/users/{alice['user']['id']}", headers=auth_headers(_token(alice)))
        assert resp.status_code == 200
        assert resp.get_json()["data"]["user"]["username"] == "alice"

    def test_user_cannot_read_someone_else(self, client):
        alice = register(client, "alice")
        bob = register(client, "bob")
        resp = client.get(f"/api/v1/users/{bob['user']['id']}", headers=auth_headers(_token(alice)))
        assert resp.status_code == 403

    def test_admin_can_read_anyone(self, app, client):
        alice = register(client, "alice")
        admin = make_admin(app, client)
        resp = client.get(f"/api/v1/users/{alice['user']['id']}", headers=auth_headers(_token(admin)))
        assert resp.status_code == 200

    def test_missing_user_returns_404(self, client):
        alice = register(client, "alice")
        resp = client.get("/api/v1/users/99999", headers=auth_headers(_token(alice)))
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "USER_NOT_FOUND"


# ═══════════════════════════════════════════════════════════════════════════
# PATCH /users/<id>/status
# ═══════════════════════════════════════════════════════════════════════════

class TestUpdateStatus:

    def test_deactivation_locks_the_user_out(self, app, client):
        alice = register(client, "alice")
        admin = make_admin(app, client)

        resp = client.patch(
            f"/api/v1/users/{alice['user']['id']}/status",
            json={"active": False},
            headers=auth_headers(_token(admin)),
        )
        assert resp.status_code == 200
        assert resp.get_json()["data"]["user"]["active"] is False

        # access token: rejected on next use
        profile = client.get("/api/v1/auth/profile", headers=auth_headers(_token(alice)))
        assert profile.status_code == 403
        # refresh token: revoked
        refresh = client.post("/api/v1/auth/refresh", json={
            "refresh_token": alice["tokens"]["refresh_token"],
        })
        assert refresh.status_code == 401

    def test_reactivation_allows_login_again(self, app, client):
        alice = register(client, "alice")
        admin = make_admin(app, client)
        url = f"/api/v1/users/{alice['user']['id']}/status"
        client.patch(url, json={"active": False}, headers=auth_headers(_token(admin)))
        client.patch(url, json={"active": True}, headers=auth_headers(_token(admin)))

        resp = client.post("/api/v1/auth/login", json={"username": "alice", "password": "Str0ng!Pass"})
        assert resp.status_code == 200

    def test_admin_cannot_deactivate_themself(self, app, client):
        admin = make_admin(app, client)
        resp = client.patch(
            f"/api/v1/users/{admin['user']['id']}/status",
            json={"active": False},
            headers=auth_headers(_token(admin)),
        )
        assert resp.status_code == 422
        assert resp.get_json()["error"]["code"] == "CANNOT_MODIFY_SELF"

    def test_plain_user_cannot_change_status(self, client):
        alice = register(client, "alice")
        bob = register(client, "bob")
        resp = client.patch(
            f"/api/v1/users/{bob['user']['id']}/status",
            json={"active": False},
            headers=auth_headers(_token(alice)),
        )
        assert resp.status_code == 403

    def test_missing_active_field_returns_400(self, app, client):
        alice = register(client, "alice")
        admin = make_admin(app, client)
        resp = client.patch(
            f"/api/v1/users/{alice['user']['id']}/status",
            json={},
            headers=auth_headers(_token(admin)),
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "MISSING_FIELD"


# ═══════════════════════════════════════════════════════════════════════════
# PATCH /users/<id>/role
# ═══════════════════════════════════════════════════════════════════════════

class TestUpdateRole:

    def test_promoted_user_gains_admin_access(self, app, client):
        alice = register(client, "alice")
        admin = make_admin(app, client)

        resp = client.patch(
            f"/api/v1/users/{alice['user']['id']}/role",
            json={"role": "admin"},
            headers=auth_headers(_token(admin)),
        )
        assert resp.status_code == 200
        assert resp.get_json()["data"]["user"]["role"] == "admin"

        listing = client.get("/api/v1/users", headers=auth_headers(_token(alice)))
        assert listing.status_code == 200

    def test_admin_cannot_change_own_role(self, app, client):
        admin = make_admin(app, client)
        resp = client.patch(
            f"/api/v1/users/{admin['user']['id']}/role",
            json={"role": "user"},
            headers=auth_headers(_token(admin)),
        )
        assert resp.status_code == 422

    def test_invalid_role_returns_400(self, app, client):
        alice = register(client, "alice")
        admin = make_admin(app, client)
        resp = client.patch(
            f"/api/v1/users/{alice['user']['id']}/role",
            json={"role": "superuser"},
            headers=auth_headers(_token(admin)),
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"]["field"] == "role"

    def test_role_change_for_missing_user_returns_404(self, app, client):
        admin = make_admin(app, client)
        resp = client.patch(
            "/api/v1/users/99999/role",
            json={"role": "admin"},
            headers=auth_headers(_token(admin)),
        )
        assert resp.status_code == 404
