"""Registration attempts — per-IP log behind the registration throttle.

Revision: 002_add_registration_attempts
Parent:   001_initial_schema

No FK to users: a row is written before the account exists, and for
registrations that never create one.
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision: str = "002_add_registration_attempts"
down_revision: str | None = "001_initial_schema"
branch_labels: tuple | None = None
depends_on: tuple | None = None


def upgrade() -> None:
    op.create_table(
        "registration_attempts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("ip_address", sa.String(45), nullable=False),
        sa.Column("username", sa.String(255), nullable=False),
        sa.Column("attempted_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_registration_attempts"),
    )
    op.create_index(
        "ix_registration_attempts_ip_attempted_at",
        "registration_attempts",
        ["ip_address", "attempted_at"],
    )


def downgrade() -> None:
    op.drop_index(
        "ix_registration_attempts_ip_attempted_at",
        table_name="registration_attempts",
    )
    op.drop_table("registration_attempts")
