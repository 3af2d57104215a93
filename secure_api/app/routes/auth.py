"""
routes/auth.py — Authentication route handlers.

Layer rules:
  - Parse request body
  - Validate with the appropriate schema (raises ValidationError on bad input)
  - Call exactly ONE service operation
  - Commit the DB session
  - Return the standard response envelope: {"data": {...}, "warnings": []}

No business logic here. AppError propagates to the global error handler in
app/__init__.py — routes never catch it.

Login and registration attempts must survive a rejected request (the
throttles depend on them), so /login and /register commit before re-raising.

Endpoints (url_prefix=/api/v1/auth):
  POST   /register         → 201
  POST   /login            → 200
  POST   /refresh          → 200
  POST   /logout           → 200   (bearer optional)
  GET    /profile          → 200   (bearer required)
  GET    /verify           → 200   (bearer required)
  PUT    /change-password  → 200   (bearer required)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from secure_api.app.errors import (
    ConflictError,
    InactiveAccount,
    InvalidCredentials,
    ValidationFailed,
)
from secure_api.app.extensions import db
from secure_api.app.middleware.auth_middleware import (
    current_auth,
    get_client_ip,
    optional_auth,
    require_auth,
)
from secure_api.app.schemas.auth_schema import (
    ChangePasswordSchema,
    LoginSchema,
    LogoutSchema,
    RefreshTokenSchema,
    RegisterSchema,
)

auth_bp = Blueprint("auth", __name__)


def _body() -> dict:
    return request.get_json(silent=True) or {}


@auth_bp.route("/register", methods=["POST"])
def register():
    """POST /auth/register — Create account; return user and tokens."""
    data = RegisterSchema().load(_body())
    try:
        result = current_auth().auth_service.register(
            username=data["username"],
            email=data["email"],
            password=data["password"],
            source_ip=get_client_ip(),
        )
    except (ValidationFailed, ConflictError):
        db.session.commit()  # keep the registration-attempt row
        raise
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@auth_bp.route("/login", methods=["POST"])
def login():
    """POST /auth/login — Authenticate by username or email; return tokens."""
    data = LoginSchema().load(_body())
    try:
        result = current_auth().auth_service.login(
            credential=data["username"],
            password=data["password"],
            source_ip=get_client_ip(),
        )
    except (InvalidCredentials, InactiveAccount):
        db.session.commit()  # keep the failed-attempt row
        raise
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@auth_bp.route("/refresh", methods=["POST"])
def refresh():
    """POST /auth/refresh — Exchange a refresh token for a new access token."""
    data = RefreshTokenSchema().load(_body())
    result = current_auth().auth_service.refresh(data["refresh_token"])
    return jsonify({"data": result, "warnings": []}), 200


@auth_bp.route("/logout", methods=["POST"])
@optional_auth
def logout():
    """
    POST /auth/logout — Remove the given refresh token; with a valid bearer
    token, remove every refresh token of the caller. Always 200.
    """
    data = LogoutSchema().load(_body())
    current_auth().auth_service.logout(
        refresh_token=data["refresh_token"],
        user_id=g.user_id,
    )
    db.session.commit()
    return jsonify({"data": {"message": "Logged out successfully."}, "warnings": []}), 200


@auth_bp.route("/profile", methods=["GET"])
@require_auth
def profile():
    """GET /auth/profile — Current user's profile."""
    result = current_auth().auth_service.get_profile(g.user_id)
    return jsonify({"data": {"user": result}, "warnings": []}), 200


@auth_bp.route("/verify", methods=["GET"])
@require_auth
def verify():
    """GET /auth/verify — 200 with the token's identity if the token is usable."""
    return jsonify({"data": {"valid": True, "user": g.current_user.to_dict()}, "warnings": []}), 200


@auth_bp.route("/change-password", methods=["PUT"])
@require_auth
def change_password():
    """PUT /auth/change-password — Replace password; signs out every device."""
    data = ChangePasswordSchema().load(_body())
    current_auth().auth_service.change_password(
        user_id=g.user_id,
        current_password=data["current_password"],
        new_password=data["new_password"],
    )
    db.session.commit()
    return jsonify({
        "data": {"message": "Password changed successfully. Please log in again."},
        "warnings": [],
    }), 200
