"""
services/credential_store.py — Persistence for users, refresh tokens,
login attempts and registration attempts.

Layer rules:
  - No Flask imports. Pure Python over a SQLAlchemy session.
  - "Not found" is returned as None, never raised.
  - Only flush here; committing is the route's (or CLI command's) job.

Uniqueness of username and email is enforced by the database constraints.
The pre-check in create_user() only exists to name the offending field; the
constraint is what rejects the second of two concurrent registrations.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from secure_api.app.errors import ConflictError, ErrorCode
from secure_api.app.models.login_attempt import LoginAttempt
from secure_api.app.models.refresh_token import RefreshToken
from secure_api.app.models.registration_attempt import RegistrationAttempt
from secure_api.app.models.user import ROLE_USER, User


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class CredentialStore:

    def __init__(self, session: Session) -> None:
        self.session = session

    # ── Users ──────────────────────────────────────────────────────────────

    def find_user_by_id(self, user_id: int) -> User | None:
        return self.session.get(User, user_id)

    def find_user_by_username(self, username: str) -> User | None:
        return self.session.execute(
            select(User).where(User.username == username)
        ).scalar_one_or_none()

    def find_user_by_email(self, email: str) -> User | None:
        return self.session.execute(
            select(User).where(User.email == normalize_email(email))
        ).scalar_one_or_none()

    def find_user_by_username_or_email(self, credential: str) -> User | None:
        """Username matches exactly; email matches case-insensitively."""
        return self.session.execute(
            select(User)
            .where(or_(
                User.username == credential,
                User.email == normalize_email(credential),
            ))
            .order_by(User.id)
        ).scalars().first()

    def create_user(
            self,
            username: str,
            email: str,
            password_hash: str,
            role: str = ROLE_USER,
    ) -> User:
        """
        Inserts a new user.

        Raises:
          ConflictError(DUPLICATE_USERNAME) — username already taken
          ConflictError(DUPLICATE_EMAIL)    — email already registered
        """
        email = normalize_email(email)
        self._raise_if_taken(username, email)

        user = User(
            username=username,
            email=email,
            password_hash=password_hash,
            role=role,
            active=True,
        )
        try:
            # Savepoint: a lost race discards only this insert, not rows the
            # caller flushed earlier in the same transaction.
            with self.session.begin_nested():
                self.session.add(user)
        except IntegrityError:
            self._raise_if_taken(username, email)
            raise
        return user

    def _raise_if_taken(self, username: str, email: str) -> None:
        if self.find_user_by_username(username) is not None:
            raise ConflictError(
                ErrorCode.DUPLICATE_USERNAME,
                f"The username '{username}' is already taken.",
                field="username",
            )
        if self.find_user_by_email(email) is not None:
            raise ConflictError(
                ErrorCode.DUPLICATE_EMAIL,
                f"The email address '{email}' is already registered.",
                field="email",
            )

    def update_user_password(self, user_id: int, new_hash: str) -> None:
        """
        Stores a new password hash. Revoking the user's refresh tokens is
        the caller's responsibility (AuthService.change_password).
        """
        user = self.find_user_by_id(user_id)
        if user is None:
            return
        user.password_hash = new_hash
        user.updated_at = _utcnow()
        self.session.flush()

    def set_user_active(self, user: User, active: bool) -> User:
        user.active = active
        user.updated_at = _utcnow()
        self.session.flush()
        return user

    def set_user_role(self, user: User, role: str) -> User:
        user.role = role
        user.updated_at = _utcnow()
        self.session.flush()
        return user

    def list_users(
            self,
            page: int = 1,
            per_page: int = 10,
            role: str | None = None,
            active: bool | None = None,
    ) -> tuple[list[User], int]:
        """Returns (users on this page, total matching users), newest first."""
        query = select(User)
        count_query = select(func.count(User.id))
        if role is not None:
            query = query.where(User.role == role)
            count_query = count_query.where(User.role == role)
        if active is not None:
            query = query.where(User.active.is_(active))
            count_query = count_query.where(User.active.is_(active))

        total = self.session.execute(count_query).scalar_one()
        users = self.session.execute(
            query.order_by(User.created_at.desc(), User.id.desc())
            .limit(per_page)
            .offset((page - 1) * per_page)
        ).scalars().all()
        return list(users), total

    # ── Refresh tokens ─────────────────────────────────────────────────────

    def save_refresh_token(self, token: str, user_id: int, expires_at: datetime) -> RefreshToken:
        record = RefreshToken(token=token, user_id=user_id, expires_at=expires_at)
        self.session.add(record)
        self.session.flush()
        return record

    def find_valid_refresh_token(
            self,
            token: str,
            user_id: int,
            now: datetime | None = None,
    ) -> RefreshToken | None:
        """Returns the stored row only if it belongs to user_id and has not expired."""
        now = now or _utcnow()
        return self.session.execute(
            select(RefreshToken).where(
                RefreshToken.token == token,
                RefreshToken.user_id == user_id,
                RefreshToken.expires_at > now,
            )
        ).scalar_one_or_none()

    def delete_refresh_token(self, token: str) -> int:
        return self._bulk_delete(
            delete(RefreshToken).where(RefreshToken.token == token)
        )

    def delete_all_refresh_tokens_for_user(self, user_id: int) -> int:
        return self._bulk_delete(
            delete(RefreshToken).where(RefreshToken.user_id == user_id)
        )

    def purge_expired_refresh_tokens(self, now: datetime | None = None) -> int:
        now = now or _utcnow()
        return self._bulk_delete(
            delete(RefreshToken).where(RefreshToken.expires_at <= now)
        )

    def _bulk_delete(self, statement) -> int:
        # Rows are not reloaded afterwards, so skip syncing the identity map.
        result = self.session.execute(
            statement.execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    # ── Login attempts ─────────────────────────────────────────────────────

    def record_login_attempt(
            self,
            ip_address: str,
            username: str,
            successful: bool,
            attempted_at: datetime | None = None,
    ) -> LoginAttempt:
        attempt = LoginAttempt(
            ip_address=ip_address,
            username=username,
            successful=successful,
            attempted_at=attempted_at or _utcnow(),
        )
        self.session.add(attempt)
        self.session.flush()
        return attempt

    def count_recent_failed_attempts(
            self,
            ip_address: str,
            window_minutes: int,
            now: datetime | None = None,
    ) -> int:
        cutoff = (now or _utcnow()) - timedelta(minutes=window_minutes)
        return self.session.execute(
            select(func.count(LoginAttempt.id)).where(
                LoginAttempt.ip_address == ip_address,
                LoginAttempt.successful.is_(False),
                LoginAttempt.attempted_at > cutoff,
            )
        ).scalar_one()

    def purge_login_attempts_before(self, cutoff: datetime) -> int:
        return self._bulk_delete(
            delete(LoginAttempt).where(LoginAttempt.attempted_at < cutoff)
        )

    # ── Registration attempts ──────────────────────────────────────────────

    def record_registration_attempt(
            self,
            ip_address: str,
            username: str,
            attempted_at: datetime | None = None,
    ) -> RegistrationAttempt:
        attempt = RegistrationAttempt(
            ip_address=ip_address,
            username=username,
            attempted_at=attempted_at or _utcnow(),
        )
        self.session.add(attempt)
        self.session.flush()
        return attempt

    def count_recent_registration_attempts(
            self,
            ip_address: str,
            window_minutes: int,
            now: datetime | None = None,
    ) -> int:
        cutoff = (now or _utcnow()) - timedelta(minutes=window_minutes)
        return self.session.execute(
            select(func.count(RegistrationAttempt.id)).where(
                RegistrationAttempt.ip_address == ip_address,
                RegistrationAttempt.attempted_at > cutoff,
            )
        ).scalar_one()

    def purge_registration_attempts_before(self, cutoff: datetime) -> int:
        return self._bulk_delete(
            delete(RegistrationAttempt).where(RegistrationAttempt.attempted_at < cutoff)
        )
