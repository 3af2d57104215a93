"""
schemas/user_schema.py — Marshmallow schemas for admin user endpoints.
"""

from __future__ import annotations

from marshmallow import Schema, fields, validate

from secure_api.app.models.user import ROLES
from secure_api.app.schemas.product_schema import PaginationQuerySchema


class ListUsersQuerySchema(PaginationQuerySchema):

    role = fields.Str(load_default=None, validate=validate.OneOf(ROLES))
    active = fields.Bool(load_default=None, allow_none=True)


class UpdateStatusSchema(Schema):
    """PATCH /users/<id>/status"""

    active = fields.Bool(required=True)


class UpdateRoleSchema(Schema):
    """PATCH /users/<id>/role"""

    role = fields.Str(required=True, validate=validate.OneOf(ROLES))
