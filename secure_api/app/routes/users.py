"""
routes/users.py — Admin user management and self lookup.

  GET   /users               admin
  GET   /users/<id>          the user themself, or an admin
  PATCH /users/<id>/status   admin  {"active": bool}
  PATCH /users/<id>/role     admin  {"role": "user" | "admin"}
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from secure_api.app.extensions import db
from secure_api.app.middleware.auth_middleware import (
    current_auth,
    require_auth,
    require_ownership,
    require_role,
)
from secure_api.app.models.user import ROLE_ADMIN
from secure_api.app.schemas.user_schema import (
    ListUsersQuerySchema,
    UpdateRoleSchema,
    UpdateStatusSchema,
)

users_bp = Blueprint("users", __name__)


@users_bp.route("", methods=["GET"])
@require_auth
@require_role(ROLE_ADMIN)
def list_users():
    params = ListUsersQuerySchema().load(request.args)
    result = current_auth().user_service.list_users(
        page=params["page"],
        per_page=params["per_page"],
        role=params["role"],
        active=params["active"],
    )
    return jsonify({"data": result, "warnings": []}), 200


@users_bp.route("/<int:user_id>", methods=["GET"])
@require_auth
@require_ownership("user", "user_id")
def get_user(user_id: int):
    result = current_auth().user_service.get_user(user_id)
    return jsonify({"data": {"user": result}, "warnings": []}), 200


@users_bp.route("/<int:user_id>/status", methods=["PATCH"])
@require_auth
@require_role(ROLE_ADMIN)
def update_status(user_id: int):
    data = UpdateStatusSchema().load(request.get_json(silent=True) or {})
    result = current_auth().user_service.set_active(g.user_id, user_id, data["active"])
    db.session.commit()
    return jsonify({"data": {"user": result}, "warnings": []}), 200


@users_bp.route("/<int:user_id>/role", methods=["PATCH"])
@require_auth
@require_role(ROLE_ADMIN)
def update_role(user_id: int):
    data = UpdateRoleSchema().load(request.get_json(silent=True) or {})
    result = current_auth().user_service.set_role(g.user_id, user_id, data["role"])
    db.session.commit()
    return jsonify({"data": {"user": result}, "warnings": []}), 200
