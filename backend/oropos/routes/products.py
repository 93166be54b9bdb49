# Overview: Flask API routes for product search; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..errors import InternalError, PosError
from ..services import products_service


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("/search")
@require_auth
def search_products_route():
    """
    Query params: q (2+ characters), limit (default 10, max 50).

    Returns {"results": [...], "count": n}; a short query returns an empty
    list rather than an error.
    """
    try:
        products = products_service.search_products(
            g.tenant_id,
            request.args.get("q"),
            request.args.get("limit"),
        )
        results = [p.to_dict() for p in products]
        return jsonify({"results": results, "count": len(results)}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Product search failed")
        err = InternalError()
        return jsonify(err.to_dict()), err.http_status
