"""
services/auth_service.py — Authentication business logic.

Responsibilities:
  - Registration (validation, uniqueness, hashing, first token pair)
  - Login (throttle, credential check, token pair, attempt log)
  - Refresh (new access token from a stored refresh token)
  - Logout (single session or every session of the user)
  - Password change (re-verify, re-hash, revoke all refresh tokens)

Layer rules:
  - No imports from routes or schemas.
  - No use of flask.request, flask.g, or HTTP status codes.
  - Collaborators are passed in; the app factory wires them.

Within one call the steps run strictly in order and the first failure
short-circuits the rest. In particular the throttle check runs before the
password is hashed, so a blocked client cannot make the server do bcrypt work.
"""

from __future__ import annotations

import logging

from marshmallow import ValidationError, validate

from secure_api.app.errors import (
    ErrorCode,
    InactiveAccount,
    InvalidCredentials,
    InvalidToken,
    NotFound,
    UserInvalid,
    ValidationFailed,
)
from secure_api.app.models.user import User
from secure_api.app.services.credential_store import CredentialStore
from secure_api.app.services.login_throttle import LoginThrottle, RegistrationThrottle
from secure_api.app.services.password_hasher import PasswordHasher
from secure_api.app.services.password_policy import PasswordPolicy
from secure_api.app.services.token_service import TokenService

security_log = logging.getLogger("secure_api.security")

_email_validator = validate.Email()


def build_user_dict(user: User) -> dict:
    """Serialises a User to a plain dict. The password hash never leaves here."""
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "role": user.role,
        "active": user.active,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


class AuthService:

    def __init__(
            self,
            store: CredentialStore,
            hasher: PasswordHasher,
            tokens: TokenService,
            throttle: LoginThrottle,
            policy: PasswordPolicy | None = None,
            registration_throttle: RegistrationThrottle | None = None,
    ) -> None:
        self.store = store
        self.hasher = hasher
        self.tokens = tokens
        self.throttle = throttle
        self.policy = policy or PasswordPolicy()
        self.registration_throttle = registration_throttle

    # ── Private helpers ────────────────────────────────────────────────────

    def _validate_password(self, password: str, field: str = "password") -> None:
        errors = self.policy.check(password)
        if errors:
            raise ValidationFailed(
                "The password does not meet the security requirements.",
                details=errors,
                field=field,
            )

    def _validate_email(self, email: str) -> None:
        try:
            _email_validator(email or "")
        except ValidationError:
            raise ValidationFailed(
                "The email address is not valid.",
                details=["Email must be a valid email address."],
                field="email",
            )

    def _issue_session(self, user: User) -> dict:
        """Issues a token pair and persists its refresh token."""
        pair = self.tokens.issue_token_pair(user)
        self.store.save_refresh_token(
            pair.refresh_token,
            user.id,
            self.tokens.refresh_expiry(),
        )
        return pair.to_dict()

    # ── Public operations ──────────────────────────────────────────────────

    def register(
            self,
            username: str,
            email: str,
            password: str,
            source_ip: str | None = None,
    ) -> dict:
        """
        Creates a new account and signs it in.

        With a source_ip and a registration throttle, the attempt is checked
        against the per-IP cap and recorded before any validation, so
        rejected registrations count too.

        Raises:
          TooManyAttempts  — source_ip has used up its registrations
          ValidationFailed — bad email or weak password (itemized details)
          ConflictError    — username or email already registered

        Returns: {"user": {...}, "tokens": {...}}
        """
        if source_ip is not None and self.registration_throttle is not None:
            self.registration_throttle.check(source_ip, username)
            self.registration_throttle.record(source_ip, username)

        self._validate_email(email)
        self._validate_password(password)

        user = self.store.create_user(
            username=username,
            email=email,
            password_hash=self.hasher.hash(password),
        )
        tokens = self._issue_session(user)

        security_log.info(
            "USER_REGISTERED user_id=%s username=%s", user.id, user.username,
            extra={"event": "USER_REGISTERED", "user_id": user.id},
        )
        return {"user": build_user_dict(user), "tokens": tokens}

    def login(self, credential: str, password: str, source_ip: str) -> dict:
        """
        Authenticates by username or email.

        Raises:
          TooManyAttempts    — source_ip is blocked (checked first)
          InvalidCredentials — unknown user or wrong password (same message)
          InactiveAccount    — correct password, deactivated account

        Returns: {"user": {...}, "tokens": {...}}
        """
        self.throttle.check(source_ip, credential)

        user = self.store.find_user_by_username_or_email(credential)
        if user is None or not self.hasher.verify(password, user.password_hash):
            self.throttle.record(source_ip, credential, successful=False)
            # %r: the submitted name is client input and may hold newlines
            security_log.warning(
                "LOGIN_FAILED username=%r ip=%s", credential, source_ip,
                extra={"event": "LOGIN_FAILED", "ip": source_ip},
            )
            raise InvalidCredentials()

        if not user.active:
            self.throttle.record(source_ip, credential, successful=False)
            security_log.warning(
                "LOGIN_INACTIVE user_id=%s ip=%s", user.id, source_ip,
                extra={"event": "LOGIN_INACTIVE", "user_id": user.id, "ip": source_ip},
            )
            raise InactiveAccount()

        self.throttle.record(source_ip, credential, successful=True)
        tokens = self._issue_session(user)

        security_log.info(
            "LOGIN_SUCCESS user_id=%s ip=%s", user.id, source_ip,
            extra={"event": "LOGIN_SUCCESS", "user_id": user.id, "ip": source_ip},
        )
        return {"user": build_user_dict(user), "tokens": tokens}

    def refresh(self, refresh_token: str) -> dict:
        """
        Exchanges a stored, unexpired refresh token for a new access token.

        The refresh token is NOT rotated: it stays usable until it expires or
        is removed by logout / password change.

        Raises:
          InvalidToken — bad signature/claims/expiry, or not stored
          UserInvalid  — owner missing or deactivated

        Returns: {"access_token": "...", "expires_in": 900, "token_type": "Bearer"}
        """
        claims = self.tokens.verify_refresh_token(refresh_token)
        try:
            user_id = int(claims["sub"])
        except (TypeError, ValueError):
            raise InvalidToken("invalid_subject")

        if self.store.find_valid_refresh_token(refresh_token, user_id) is None:
            raise InvalidToken(
                "not_stored",
                "The refresh token is not recognised, has expired, or has been revoked.",
            )

        user = self.store.find_user_by_id(user_id)
        if user is None or not user.active:
            raise UserInvalid()

        return {
            "access_token": self.tokens.issue_access_token(user),
            "expires_in": self.tokens.access_expires_in,
            "token_type": "Bearer",
        }

    def logout(self, refresh_token: str | None = None, user_id: int | None = None) -> int:
        """
        Removes refresh tokens. Never fails for tokens that are already gone.

        - refresh_token given: that one session is removed.
        - user_id given (caller is authenticated): every session of that
          user is removed, i.e. "log out everywhere".

        Returns the number of stored tokens removed.
        """
        removed = 0
        if refresh_token:
            removed += self.store.delete_refresh_token(refresh_token)
        if user_id is not None:
            removed += self.store.delete_all_refresh_tokens_for_user(user_id)
            security_log.info(
                "LOGOUT user_id=%s removed=%d", user_id, removed,
                extra={"event": "LOGOUT", "user_id": user_id},
            )
        return removed

    def change_password(self, user_id: int, current_password: str, new_password: str) -> None:
        """
        Replaces the password and revokes every refresh token of the user,
        forcing a fresh login on all devices.

        Raises:
          NotFound           — user_id no longer exists
          InvalidCredentials — current_password is wrong
          ValidationFailed   — new_password fails the policy
        """
        user = self.store.find_user_by_id(user_id)
        if user is None:
            raise NotFound(ErrorCode.USER_NOT_FOUND, f"User {user_id} not found.")

        if not self.hasher.verify(current_password, user.password_hash):
            security_log.warning(
                "PASSWORD_CHANGE_REJECTED user_id=%s", user_id,
                extra={"event": "PASSWORD_CHANGE_REJECTED", "user_id": user_id},
            )
            raise InvalidCredentials("The current password is incorrect.")

        self._validate_password(new_password, field="new_password")

        self.store.update_user_password(user_id, self.hasher.hash(new_password))
        revoked = self.store.delete_all_refresh_tokens_for_user(user_id)

        security_log.info(
            "PASSWORD_CHANGED user_id=%s revoked_sessions=%d", user_id, revoked,
            extra={"event": "PASSWORD_CHANGED", "user_id": user_id},
        )

    def get_profile(self, user_id: int) -> dict:
        """
        Raises:
          NotFound(USER_NOT_FOUND, 404) — user deleted after the token was issued.
        """
        user = self.store.find_user_by_id(user_id)
        if user is None:
            raise NotFound(ErrorCode.USER_NOT_FOUND, f"User {user_id} not found.")
        return build_user_dict(user)
