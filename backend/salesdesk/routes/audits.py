# Overview: Flask API routes for sale change proposals; parses input and returns JSON responses.

# backend/salesdesk/routes/audits.py
"""
Sale Change Review API Routes

WHY: Admins review pending edit/delete requests here. Approval applies the
change and its stock compensation atomically; rejection leaves the sale and
stock exactly as they were.

SECURITY:
- VIEW_SALES to read proposals
- APPROVE_SALE_CHANGE to approve or reject
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import SalesDeskError
from ..services import approval_service, audit_service, sales_service
from ..validation import parse_pagination
from ..decorators import require_auth, require_permission


audits_bp = Blueprint("audits", __name__, url_prefix="/api/audits")


@audits_bp.get("")
@require_auth
@require_permission("VIEW_SALES")
def list_audits_route():
    """
    List proposals, newest first.

    Query params: page, limit, sale_id, audit_type, approval_status
    """
    try:
        page, limit = parse_pagination(
            request.args,
            default_limit=current_app.config["DEFAULT_PAGE_SIZE"],
            max_limit=current_app.config["MAX_PAGE_SIZE"],
        )
        audits, total = audit_service.list_audits(
            g.account_id, filters=request.args.to_dict(), page=page, limit=limit
        )
        return jsonify({
            "audits": [a.to_dict() for a in audits],
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
        current_app.logger.exception("Failed to list proposals")
        return jsonify({"error": "Internal server error"}), 500


@audits_bp.get("/<int:audit_id>")
@require_auth
@require_permission("VIEW_SALES")
def get_audit_route(audit_id: int):
    try:
        audit = audit_service.get_audit(g.account_id, audit_id)
        return jsonify({"audit": audit.to_dict()}), 200
    except SalesDeskError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get proposal")
        return jsonify({"error": "Internal server error"}), 500


@audits_bp.post("/<int:audit_id>/approve")
@require_auth
@require_permission("APPROVE_SALE_CHANGE")
def approve_route(audit_id: int):
    """
    Approve a pending proposal.

    Request body: {"reason": "Checked against the delivery note"}

    Returns:
        200: {"audit": {...}, "sale": {...}, "stock_delta": {"boxes": 2, "kg": "0.000"}}
        400: Missing reason
        404: Unknown proposal
        409: Already decided, or insufficient stock (proposal stays pending)
    """
    try:
        data = request.get_json(silent=True) or {}
        audit, sale, applied = approval_service.approve(
            g.account_id, audit_id, data.get("reason"), g.current_user.id
        )
        pending = sales_service.pending_audit_ids([sale.id])
        return jsonify({
            "audit": audit.to_dict(),
            "sale": sale.to_dict(pending_audit_id=pending.get(sale.id)),
            "stock_delta": applied,
        }), 200
    except SalesDeskError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to approve proposal")
        return jsonify({"error": "Internal server error"}), 500


@audits_bp.post("/<int:audit_id>/reject")
@require_auth
@require_permission("APPROVE_SALE_CHANGE")
def reject_route(audit_id: int):
    """
    Reject a pending proposal. The sale and stock are not touched.

    Request body: {"reason": "Not supported by the receipt"}
    """
    try:
        data = request.get_json(silent=True) or {}
        audit = approval_service.reject(
            g.account_id, audit_id, data.get("reason"), g.current_user.id
        )
        return jsonify({"audit": audit.to_dict()}), 200
    except SalesDeskError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reject proposal")
        return jsonify({"error": "Internal server error"}), 500
