"""
services/user_service.py — Admin user management.

Role and ownership checks happen in the route decorators. What remains here
is the one business rule those cannot express: an admin may not deactivate
or demote their own account (that could leave the system without an admin).

Deactivating a user also revokes their refresh tokens. Their access tokens
stop working on the next request, because the auth middleware reloads the
user and rejects inactive accounts.
"""

from __future__ import annotations

import logging

from secure_api.app.errors import AppError, ErrorCode, NotFound
from secure_api.app.models.user import User
from secure_api.app.services.auth_service import build_user_dict
from secure_api.app.services.credential_store import CredentialStore

security_log = logging.getLogger("secure_api.security")


class UserService:

    def __init__(self, store: CredentialStore) -> None:
        self.store = store

    def _get_user_or_404(self, user_id: int) -> User:
        user = self.store.find_user_by_id(user_id)
        if user is None:
            raise NotFound(ErrorCode.USER_NOT_FOUND, f"User {user_id} not found.")
        return user

    @staticmethod
    def _forbid_self(actor_id: int, user_id: int, action: str) -> None:
        if actor_id == user_id:
            raise AppError(
                ErrorCode.CANNOT_MODIFY_SELF,
                f"Administrators cannot {action} their own account.",
                422,
            )

    def list_users(
            self,
            page: int = 1,
            per_page: int = 10,
            role: str | None = None,
            active: bool | None = None,
    ) -> dict:
        users, total = self.store.list_users(page, per_page, role=role, active=active)
        return {
            "items": [build_user_dict(u) for u in users],
            "pagination": {
                "page": page,
                "per_page": per_page,
                "total": total,
                "pages": (total + per_page - 1) // per_page,
            },
        }

    def get_user(self, user_id: int) -> dict:
        return build_user_dict(self._get_user_or_404(user_id))

    def set_active(self, actor_id: int, user_id: int, active: bool) -> dict:
        user = self._get_user_or_404(user_id)
        if not active:
            self._forbid_self(actor_id, user_id, "deactivate")
        self.store.set_user_active(user, active)
        if not active:
            self.store.delete_all_refresh_tokens_for_user(user_id)

        event = "USER_ACTIVATED" if active else "USER_DEACTIVATED"
        security_log.info(
            "%s user_id=%s by=%s", event, user_id, actor_id,
            extra={"event": event, "user_id": user_id, "actor_id": actor_id},
        )
        return build_user_dict(user)

    def set_role(self, actor_id: int, user_id: int, role: str) -> dict:
        user = self._get_user_or_404(user_id)
        self._forbid_self(actor_id, user_id, "change the role of")
        self.store.set_user_role(user, role)

        security_log.info(
            "ROLE_CHANGED user_id=%s role=%s by=%s", user_id, role, actor_id,
            extra={"event": "ROLE_CHANGED", "user_id": user_id, "actor_id": actor_id},
        )
        return build_user_dict(user)
