"""
schemas/auth_schema.py — Marshmallow schemas for authentication endpoints.

Validation responsibility:
  - This file: presence, types, lengths, formats.
  - services/auth_service.py: password strength (itemized, policy-driven)
    and DUPLICATE_EMAIL / DUPLICATE_USERNAME (require a DB lookup).

All schemas inherit from marshmallow.Schema directly so they can be
instantiated in unit tests without a Flask app context.
"""

from __future__ import annotations

import re

from marshmallow import Schema, ValidationError, fields, validate, validates

_USERNAME_SPECIALS = re.compile(r"^[_.-]|[_.-]$")
_USERNAME_CONSECUTIVE = re.compile(r"[_.-]{2,}")


class RegisterSchema(Schema):
    """
    POST /auth/register

    Field rules:
      username : 3–50 chars; letters, digits, '_', '.', '-'; may not start or
                 end with a special character or repeat specials back to back
      email    : valid email format
      password : required here; strength is checked by the auth service so
                 the client gets every failed rule at once
    """

    username = fields.Str(
        required=True,
        validate=[
            validate.Length(
                min=3,
                max=50,
                error="Username must be between 3 and 50 characters.",
            ),
            validate.Regexp(
                r"^[a-zA-Z0-9_.-]+$",
                error="Username may only contain letters, numbers, '_', '.' and '-'.",
            ),
        ],
    )

    email = fields.Email(
        required=True,
        validate=validate.Length(max=255),
    )

    password = fields.Str(required=True, load_only=True)

    @validates("username")
    def validate_username_shape(self, value: str, **kwargs) -> None:
        if _USERNAME_SPECIALS.search(value):
            raise ValidationError("Username may not start or end with '_', '.' or '-'.")
        if _USERNAME_CONSECUTIVE.search(value):
            raise ValidationError("Username may not contain consecutive special characters.")


class LoginSchema(Schema):
    """
    POST /auth/login

    `username` accepts either the username or the email address. Credential
    correctness is checked in auth_service.py (INVALID_CREDENTIALS, 401).
    """

    username = fields.Str(required=True, validate=validate.Length(min=1, max=255))
    password = fields.Str(required=True, load_only=True, validate=validate.Length(min=1))


class RefreshTokenSchema(Schema):
    """POST /auth/refresh"""

    refresh_token = fields.Str(required=True, validate=validate.Length(min=1))


class LogoutSchema(Schema):
    """
    POST /auth/logout

    The body is optional. Without a refresh_token (and without a bearer
    token) logout is a no-op that still succeeds.
    """

    refresh_token = fields.Str(load_default=None, allow_none=True)


class ChangePasswordSchema(Schema):
    """PUT /auth/change-password"""

    current_password = fields.Str(required=True, load_only=True, validate=validate.Length(min=1))
    new_password = fields.Str(required=True, load_only=True)
