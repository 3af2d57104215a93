"""
services/product_service.py — Product CRUD.

Authorization (who may edit or delete which product) is decided by the
ownership decorator before these functions run. This module only reads and
writes rows.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from secure_api.app.errors import ErrorCode, NotFound
from secure_api.app.models.product import Product

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = ("name", "description", "price", "stock")
_CENTS = Decimal("0.01")


def _get_product_or_404(product_id: int, session: Session) -> Product:
    product = session.get(Product, product_id)
    if product is None:
        raise NotFound(ErrorCode.PRODUCT_NOT_FOUND, f"Product {product_id} does not exist.")
    return product


def _build_product_dict(product: Product) -> dict:
    return {
        "id": product.id,
        "name": product.name,
        "description": product.description,
        "price": product.price,
        "stock": product.stock,
        "user_id": product.user_id,
        "created_at": product.created_at.isoformat(),
        "updated_at": product.updated_at.isoformat(),
    }


def list_products(
        session: Session,
        page: int = 1,
        per_page: int = 10,
        owner_id: int | None = None,
) -> dict:
    query = select(Product)
    count_query = select(func.count(Product.id))
    if owner_id is not None:
        query = query.where(Product.user_id == owner_id)
        count_query = count_query.where(Product.user_id == owner_id)

    total = session.execute(count_query).scalar_one()
    products = session.execute(
        query.order_by(Product.created_at.desc(), Product.id.desc())
        .limit(per_page)
        .offset((page - 1) * per_page)
    ).scalars().all()

    return {
        "items": [_build_product_dict(p) for p in products],
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "pages": (total + per_page - 1) // per_page,
        },
    }


def get_product(product_id: int, session: Session) -> dict:
    return _build_product_dict(_get_product_or_404(product_id, session))


def create_product(owner_id: int, data: dict, session: Session) -> dict:
    product = Product(
        name=data["name"],
        description=data.get("description"),
        price=data["price"],
        stock=data.get("stock", 0),
        user_id=owner_id,
    )
    session.add(product)
    session.flush()
    logger.info("Product %s created by user %s", product.id, owner_id)
    return _build_product_dict(product)


def update_product(product_id: int, data: dict, session: Session) -> dict:
    product = _get_product_or_404(product_id, session)
    for key in _EDITABLE_FIELDS:
        if key in data:
            setattr(product, key, data[key])
    session.flush()
    logger.info("Product %s updated", product_id)
    return _build_product_dict(product)


def delete_product(product_id: int, session: Session) -> None:
    product = _get_product_or_404(product_id, session)
    session.delete(product)
    session.flush()
    logger.info("Product %s deleted", product_id)


def product_stats(session: Session) -> dict:
    """Aggregate figures for the admin dashboard."""
    count, total_stock, avg_price = session.execute(
        select(
            func.count(Product.id),
            func.coalesce(func.sum(Product.stock), 0),
            func.avg(Product.price),
        )
    ).one()
    out_of_stock = session.execute(
        select(func.count(Product.id)).where(Product.stock == 0)
    ).scalar_one()
    return {
        "total_products": count,
        "total_stock": int(total_stock),
        "average_price": (
            str(Decimal(str(avg_price)).quantize(_CENTS)) if avg_price is not None else None
        ),
        "out_of_stock": out_of_stock,
    }
