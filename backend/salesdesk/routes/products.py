# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/salesdesk/routes/products.py
"""
Product & Stock API Routes

DESIGN:
- Stock counters are read-only here except through restock, which goes
  through the inventory ledger like every other stock change
- Every stock change is visible in /<id>/movements

SECURITY:
- VIEW_INVENTORY to read products and movements
- MANAGE_INVENTORY to create products and record restocks
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import SalesDeskError
from ..services import inventory_service
from ..validation import coerce_box_quantity, coerce_int, coerce_kg_quantity, require_reason
from ..decorators import require_auth, require_permission


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
@require_permission("VIEW_INVENTORY")
def list_products_route():
    try:
        include_inactive = request.args.get("include_inactive", "").lower() in {"1", "true", "yes"}
        products = inventory_service.list_products(g.account_id, include_inactive=include_inactive)
        return jsonify({"products": [p.to_dict() for p in products]}), 200
    except SalesDeskError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("")
@require_auth
@require_permission("MANAGE_INVENTORY")
def create_product_route():
    """
    Create a product.

    Request body:
    {
        "sku": "TIL-001",
        "name": "Tilapia",
        "box_to_kg_ratio": "20",           (optional, default 20)
        "low_stock_threshold": 10,         (optional)
        "box_price_cents": 150000,         (optional default price)
        "kg_price_cents": 8000,            (optional default price)
        "opening_boxes": 10,               (optional)
        "opening_kg": "12.5"               (optional)
    }

    Returns:
        201: {"product": {...}}
        400: Invalid input
        409: SKU already exists
    """
    try:
        data = request.get_json(silent=True) or {}
        product = inventory_service.create_product(g.account_id, data, user_id=g.current_user.id)
        return jsonify({"product": product.to_dict()}), 201
    except SalesDeskError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>")
@require_auth
@require_permission("VIEW_INVENTORY")
def get_product_route(product_id: int):
    try:
        product = inventory_service.get_product(g.account_id, product_id)
        return jsonify({"product": product.to_dict()}), 200
    except SalesDeskError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("/<int:product_id>/restock")
@require_auth
@require_permission("MANAGE_INVENTORY")
def restock_route(product_id: int):
    """
    Record incoming stock.

    Request body: {"boxes": 5, "kg": "2.5", "reason": "Delivery from supplier"}

    Returns:
        200: {"product": {...}, "movement": {...}}
    """
    try:
        data = request.get_json(silent=True) or {}
        boxes = coerce_box_quantity(data.get("boxes") or 0, "boxes")
        grams = coerce_kg_quantity(data.get("kg") or 0, "kg")
        reason = require_reason(data.get("reason"))

        movement = inventory_service.restock(
            g.account_id, product_id, boxes, grams,
            reason=reason, user_id=g.current_user.id,
        )
        product = inventory_service.get_product(g.account_id, product_id)
        return jsonify({"product": product.to_dict(), "movement": movement.to_dict()}), 200
    except SalesDeskError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to restock product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>/movements")
@require_auth
@require_permission("VIEW_INVENTORY")
def list_movements_route(product_id: int):
    try:
        limit = coerce_int(request.args.get("limit", 100), "limit")
        limit = max(1, min(limit, current_app.config["MAX_PAGE_SIZE"]))
        movements = inventory_service.list_movements(g.account_id, product_id, limit=limit)
        return jsonify({"movements": [m.to_dict() for m in movements]}), 200
    except SalesDeskError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list stock movements")
        return jsonify({"error": "Internal server error"}), 500
