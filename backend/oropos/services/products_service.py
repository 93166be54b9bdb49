# backend/oropos/services/products_service.py
"""
Universal product search for the register.

Tenant-scoped, active products only. Queries shorter than two characters
return nothing. Results are ranked:

0. exact barcode or SKU match (scanner input)
1. name starts with the query
2. name, SKU or barcode contains the query

Ties are broken by name.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import case, func, or_

from ..errors import ValidationFailed
from ..extensions import db
from ..models import Product

MIN_QUERY_LENGTH = 2


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def parse_limit(value) -> int:
    default = current_app.config["PRODUCT_SEARCH_DEFAULT_LIMIT"]
    maximum = current_app.config["PRODUCT_SEARCH_MAX_LIMIT"]
    if value in (None, ""):
        return default
    try:
        limit = int(value)
    except (TypeError, ValueError):
        raise ValidationFailed("limit must be an integer")
    if limit <= 0:
        return default
    return min(limit, maximum)


def search_products(tenant_id: int, query: str | None, limit=None) -> list[Product]:
    q = (query or "").strip()
    if len(q) < MIN_QUERY_LENGTH:
        return []
    limit = parse_limit(limit)

    pattern = f"%{_escape_like(q.lower())}%"
    prefix = f"{_escape_like(q.lower())}%"
    name = func.lower(Product.name)

    rank = case(
        (or_(Product.barcode == q, Product.sku == q), 0),
        (name.like(prefix, escape="\\"), 1),
        else_=2,
    )

    return (
        db.session.query(Product)
        .filter(
            Product.tenant_id == tenant_id,
            Product.is_active.is_(True),
            or_(
                name.like(pattern, escape="\\"),
                func.lower(Product.sku).like(pattern, escape="\\"),
                func.lower(Product.barcode).like(pattern, escape="\\"),
            ),
        )
        .order_by(rank, Product.name, Product.id)
        .limit(limit)
        .all()
    )
