"""
routes/products.py — Product route handlers.

Access rules:
  GET    /products              public; ?mine=true lists the caller's own
                                (401 without a valid bearer token)
  GET    /products/stats        admin only
  GET    /products/<id>         public
  POST   /products              any authenticated user (becomes the owner)
  PUT    /products/<id>         owner or admin
  DELETE /products/<id>         owner or admin
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from secure_api.app.errors import MissingToken
from secure_api.app.extensions import db
from secure_api.app.middleware.auth_middleware import (
    optional_auth,
    require_auth,
    require_ownership,
    require_role,
)
from secure_api.app.models.user import ROLE_ADMIN
from secure_api.app.schemas.product_schema import (
    CreateProductSchema,
    ListProductsQuerySchema,
    UpdateProductSchema,
)
from secure_api.app.services import product_service

products_bp = Blueprint("products", __name__)


@products_bp.route("", methods=["GET"])
@optional_auth
def list_products():
    params = ListProductsQuerySchema().load(request.args)
    if params["mine"] and g.user_id is None:
        # "mine" has no meaning without a caller
        raise MissingToken()
    owner_id = g.user_id if params["mine"] else None
    result = product_service.list_products(
        db.session,
        page=params["page"],
        per_page=params["per_page"],
        owner_id=owner_id,
    )
    return jsonify({"data": result, "warnings": []}), 200


@products_bp.route("/stats", methods=["GET"])
@require_auth
@require_role(ROLE_ADMIN)
def stats():
    return jsonify({"data": product_service.product_stats(db.session), "warnings": []}), 200


@products_bp.route("/<int:product_id>", methods=["GET"])
def get_product(product_id: int):
    return jsonify({"data": product_service.get_product(product_id, db.session), "warnings": []}), 200


@products_bp.route("", methods=["POST"])
@require_auth
def create_product():
    data = CreateProductSchema().load(request.get_json(silent=True) or {})
    result = product_service.create_product(g.user_id, data, db.session)
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@products_bp.route("/<int:product_id>", methods=["PUT"])
@require_auth
@require_ownership("product", "product_id")
def update_product(product_id: int):
    data = UpdateProductSchema().load(request.get_json(silent=True) or {})
    result = product_service.update_product(product_id, data, db.session)
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@products_bp.route("/<int:product_id>", methods=["DELETE"])
@require_auth
@require_ownership("product", "product_id")
def delete_product(product_id: int):
    product_service.delete_product(product_id, db.session)
    db.session.commit()
    return jsonify({"data": {"message": f"Product {product_id} deleted."}, "warnings": []}), 200
