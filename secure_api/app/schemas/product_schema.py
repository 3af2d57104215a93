"""
schemas/product_schema.py — Marshmallow schemas for product endpoints.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import EXCLUDE, Schema, ValidationError, fields, validate, validates, validates_schema

_MAX_PRICE = Decimal("999999.99")


class PaginationQuerySchema(Schema):
    """?page=&per_page= — shared by every list endpoint."""

    class Meta:
        unknown = EXCLUDE

    page = fields.Int(load_default=1, validate=validate.Range(min=1))
    per_page = fields.Int(load_default=10, validate=validate.Range(min=1, max=50))


class ListProductsQuerySchema(PaginationQuerySchema):
    # Only meaningful for an authenticated caller.
    mine = fields.Bool(load_default=False)


class CreateProductSchema(Schema):

    name = fields.Str(required=True, validate=validate.Length(min=3, max=100))
    description = fields.Str(load_default=None, allow_none=True, validate=validate.Length(max=500))
    price = fields.Decimal(required=True, places=None, as_string=False)
    stock = fields.Int(load_default=0, validate=validate.Range(min=0, max=999999))

    @validates("price")
    def validate_price(self, value: Decimal, **kwargs) -> None:
        if value <= 0:
            raise ValidationError("Price must be greater than 0.")
        if value > _MAX_PRICE:
            raise ValidationError(f"Price may not exceed {_MAX_PRICE}.")
        if value.as_tuple().exponent < -2:
            raise ValidationError("Price must have at most 2 decimal places.")


class UpdateProductSchema(CreateProductSchema):
    """PUT /products/<id> — every field optional, at least one required."""

    name = fields.Str(validate=validate.Length(min=3, max=100))
    description = fields.Str(allow_none=True, validate=validate.Length(max=500))
    price = fields.Decimal(places=None, as_string=False)
    stock = fields.Int(validate=validate.Range(min=0, max=999999))

    @validates_schema
    def require_some_field(self, data: dict, **kwargs) -> None:
        if not data:
            raise ValidationError("Provide at least one field to update.")
