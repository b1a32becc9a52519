# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/salesdesk/routes/sales.py
"""
Sales API Routes

WHY: Sales are recorded once and then only changed through reviewed
change requests. There is no PUT/PATCH/DELETE on a sale.

DESIGN:
- POST /api/sales takes stock immediately (reserve, then insert)
- POST /<id>/edit-requests and /<id>/delete-requests only record a
  pending proposal; nothing changes until an admin approves it
- GET /<id>/audits is the full change history of a sale

SECURITY:
- VIEW_SALES to read, CREATE_SALE to sell, REQUEST_SALE_CHANGE to propose
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import SalesDeskError
from ..services import audit_service, sales_service
from ..validation import parse_pagination
from ..decorators import require_auth, require_permission


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _sale_payload(sale) -> dict:
    pending = sales_service.pending_audit_ids([sale.id])
    return sale.to_dict(pending_audit_id=pending.get(sale.id))


# =============================================================================
# SALES
# =============================================================================

@sales_bp.post("")
@require_auth
@require_permission("CREATE_SALE")
def create_sale_route():
    """
    Record a sale and take its stock.

    Request body:
    {
        "product_id": 1,
        "boxes_quantity": 3,
        "kg_quantity": "2.5",
        "box_price_cents": 150000,          (optional if the product has a default)
        "kg_price_cents": 8000,             (optional if the product has a default)
        "payment_method": "cash",           (momo_pay | cash | bank_transfer)
        "payment_status": "paid",           (paid | pending | partial, default pending)
        "amount_paid_cents": 0,             (optional)
        "client_name": "Ama",               (required unless paid)
        "client_email": "...",
        "client_phone": "..."
    }

    Returns:
        201: {"sale": {...}}
        400: Invalid input
        404: Unknown product
        409: Insufficient stock
    """
    try:
        data = request.get_json(silent=True)
        sale = sales_service.create_sale(g.account_id, g.current_user.id, data)
        return jsonify({"sale": _sale_payload(sale)}), 201
    except SalesDeskError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@require_auth
@require_permission("VIEW_SALES")
def list_sales_route():
    """
    List sales, newest first.

    Query params: page, limit, payment_status, payment_method, product_id,
    start_date, end_date, search, include_deleted
    """
    try:
        page, limit = parse_pagination(
            request.args,
            default_limit=current_app.config["DEFAULT_PAGE_SIZE"],
            max_limit=current_app.config["MAX_PAGE_SIZE"],
        )
        sales, total = sales_service.list_sales(
            g.account_id, filters=request.args.to_dict(), page=page, limit=limit
        )
        pending = sales_service.pending_audit_ids([s.id for s in sales])
        return jsonify({
            "sales": [s.to_dict(pending_audit_id=pending.get(s.id)) for s in sales],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": (total + limit - 1) // limit,
            },
        }), 200
    except SalesDeskError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
@require_auth
@require_permission("VIEW_SALES")
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(g.account_id, sale_id)
        return jsonify({"sale": _sale_payload(sale)}), 200
    except SalesDeskError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get sale")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# CHANGE REQUESTS
# =============================================================================

@sales_bp.post("/<int:sale_id>/edit-requests")
@require_auth
@require_permission("REQUEST_SALE_CHANGE")
def propose_edit_route(sale_id: int):
    """
    Propose an edit. Nothing changes until the proposal is approved.

    Request body:
    {
        "changes": {"boxes_quantity": 5, "payment_status": "paid"},
        "reason": "Customer took two more boxes"
    }

    Returns:
        201: {"audit": {...}}
        400: Invalid input / no change
        409: Pending proposal exists, sale deleted, or not enough free stock
    """
    try:
        data = request.get_json(silent=True) or {}
        audit = audit_service.propose_edit(
            g.account_id,
            sale_id,
            data.get("changes"),
            data.get("reason"),
            g.current_user.id,
        )
        return jsonify({"audit": audit.to_dict()}), 201
    except SalesDeskError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to propose sale edit")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/delete-requests")
@require_auth
@require_permission("REQUEST_SALE_CHANGE")
def propose_deletion_route(sale_id: int):
    """
    Propose deleting a sale.

    Request body: {"reason": "Duplicate entry"}
    """
    try:
        data = request.get_json(silent=True) or {}
        audit = audit_service.propose_deletion(
            g.account_id, sale_id, data.get("reason"), g.current_user.id
        )
        return jsonify({"audit": audit.to_dict()}), 201
    except SalesDeskError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to propose sale deletion")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>/audits")
@require_auth
@require_permission("VIEW_SALES")
def sale_history_route(sale_id: int):
    try:
        audits = audit_service.sale_history(g.account_id, sale_id)
        return jsonify({"audits": [a.to_dict() for a in audits]}), 200
    except SalesDeskError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load sale history")
        return jsonify({"error": "Internal server error"}), 500
