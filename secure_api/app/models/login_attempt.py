"""
models/login_attempt.py — LoginAttempt table definition.

Append-only audit log used by the login throttle. Rows are inserted and
queried over a rolling window; they are never updated. There is no FK to
users: the username is stored exactly as submitted, including names that
do not exist.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from secure_api.app.extensions import db


class LoginAttempt(db.Model):
    __tablename__ = "login_attempts"

    __table_args__ = (
        Index("ix_login_attempts_ip_attempted_at", "ip_address", "attempted_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    # IPv6 textual form is at most 45 characters.
    ip_address: Mapped[str] = mapped_column(String(45), nullable=False)

    username: Mapped[str] = mapped_column(String(255), nullable=False)

    successful: Mapped[bool] = mapped_column(Boolean, nullable=False)

    # Set in Python (UTC) rather than by the DB clock so window queries
    # compare like with like.
    attempted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<LoginAttempt ip={self.ip_address!r} "
            f"username={self.username!r} successful={self.successful}>"
        )
