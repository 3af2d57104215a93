"""
app/cli.py — Maintenance commands, available as `flask <command>`.

  flask create-admin --username root --email root@example.com --password ...
  flask purge-auth-data --attempts-older-than 30
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import click
from flask import current_app
from flask.cli import with_appcontext

from secure_api.app.errors import AppError
from secure_api.app.extensions import db
from secure_api.app.models.user import ROLE_ADMIN


def _components():
    return current_app.extensions["auth"]


@click.command("create-admin")
@click.option("--username", required=True)
@click.option("--email", required=True)
@click.option("--password", required=True, prompt=True, hide_input=True, confirmation_prompt=True)
@with_appcontext
def create_admin(username, email, password):
    """Create an administrator account."""
    auth = _components()

    problems = auth.auth_service.policy.check(password)
    if problems:
        raise click.ClickException("Weak password: " + "; ".join(problems))

    try:
        user = auth.store.create_user(
            username=username.strip(),
            email=email,
            password_hash=auth.hasher.hash(password),
            role=ROLE_ADMIN,
        )
    except AppError as exc:
        db.session.rollback()
        raise click.ClickException(exc.message)

    db.session.commit()
    click.echo(f"Admin created: {user.id} {user.username} <{user.email}>")


@click.command("purge-auth-data")
@click.option(
    "--attempts-older-than",
    "days",
    type=click.IntRange(min=1),
    default=30,
    show_default=True,
    help="Delete login and registration attempts older than this many days.",
)
@with_appcontext
def purge_auth_data(days):
    """Delete expired refresh tokens and old login and registration attempts."""
    store = _components().store
    cutoff = datetime.now(timezone.utc) - timedelta(days=days)

    tokens = store.purge_expired_refresh_tokens()
    attempts = store.purge_login_attempts_before(cutoff)
    registrations = store.purge_registration_attempts_before(cutoff)
    db.session.commit()

    current_app.logger.info(
        "Purged %d expired refresh tokens, %d login attempts, %d registration attempts",
        tokens, attempts, registrations,
    )
    click.echo(
        f"Removed {tokens} expired refresh tokens, {attempts} login attempts, "
        f"{registrations} registration attempts."
    )


def register_cli(app):
    app.cli.add_command(create_admin)
    app.cli.add_command(purge_auth_data)
