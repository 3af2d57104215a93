"""
models/registration_attempt.py — RegistrationAttempt table definition.

One row per POST /auth/register that reached the service, whatever the
outcome. The registration throttle counts these per source IP.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from secure_api.app.extensions import db


class RegistrationAttempt(db.Model):
    __tablename__ = "registration_attempts"

    __table_args__ = (
        Index("ix_registration_attempts_ip_attempted_at", "ip_address", "attempted_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    ip_address: Mapped[str] = mapped_column(String(45), nullable=False)
    username: Mapped[str] = mapped_column(String(255), nullable=False)
    attempted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<RegistrationAttempt ip={self.ip_address!r} username={self.username!r}>"
