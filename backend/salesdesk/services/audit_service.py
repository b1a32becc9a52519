"""
Sale Change Proposal Service

WHY: A recorded sale has already taken its stock. Editing or deleting it in
place would let stock and sales history drift apart, so every change is
captured as a pending proposal instead. Nothing in this module writes to a
sale or to product stock; approval_service applies or discards proposals.

DESIGN PRINCIPLES:
- Proposals freeze a full before/after snapshot of the sale's editable fields
- Stored deltas are relative to the sale's quantities at proposal time
  (new - current for edits, -current for deletions)
- A sale can only grow into stock that is free right now
- At most one pending proposal per sale: checked here and enforced by the
  partial unique index on sale_audits

LIFECYCLE:
1. propose_edit / propose_deletion (pending)
2. approve or reject (approval_service), terminal
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product, SaleAudit, SaleSnapshot, QuantityChange, PaymentUpdate, Deletion
from ..models.audits import (
    APPROVAL_PENDING,
    APPROVAL_STATUSES,
    AUDIT_TYPES,
    QUANTITY_FIELDS,
)
from ..models.sales import PAYMENT_METHODS, PAYMENT_STATUSES
from ..validation import (
    coerce_box_quantity,
    coerce_int,
    coerce_kg_quantity,
    coerce_non_negative_int,
    grams_to_kg,
    line_total_cents,
    optional_email,
    optional_string,
    require_choice,
    require_reason,
)
from salesdesk.time_utils import utcnow
from .concurrency import begin_write, run_with_retry
from .sales_service import get_sale, require_client_for_unpaid, settle_payment

logger = logging.getLogger(__name__)


# Request keys a client may change; prices and product are fixed at sale time
EDIT_REQUEST_FIELDS = frozenset({
    "boxes_quantity",
    "kg_quantity",
    "payment_status",
    "payment_method",
    "amount_paid_cents",
    "client_name",
    "client_email",
    "client_phone",
})


# =============================================================================
# HELPERS
# =============================================================================

def _load_open_sale(account_id: int, sale_id: int):
    sale = get_sale(account_id, sale_id)
    if sale.is_deleted:
        raise ConflictError(f"Sale {sale_id} is deleted and cannot be changed")
    return sale


def _ensure_no_pending(sale_id: int) -> None:
    pending = (
        db.session.query(SaleAudit.id)
        .filter(SaleAudit.sale_id == sale_id, SaleAudit.approval_status == APPROVAL_PENDING)
        .first()
    )
    if pending is not None:
        raise ConflictError(
            f"Sale {sale_id} already has a pending change request",
            details={"pending_audit_id": pending.id},
        )


def _edited_snapshot(before: SaleSnapshot, changes: dict) -> SaleSnapshot:
    """Apply requested field changes to a snapshot and recompute the money fields."""
    unknown = sorted(set(changes) - EDIT_REQUEST_FIELDS)
    if unknown:
        raise ValidationError(f"Field not editable: {', '.join(unknown)}")

    values = before.to_dict()

    if "boxes_quantity" in changes:
        values["boxes_quantity"] = coerce_box_quantity(changes["boxes_quantity"], "boxes_quantity")
    if "kg_quantity" in changes:
        values["kg_grams"] = coerce_kg_quantity(changes["kg_quantity"], "kg_quantity")
    if values["boxes_quantity"] == 0 and values["kg_grams"] == 0:
        raise ValidationError("At least one of boxes_quantity or kg_quantity must be greater than 0")

    if "payment_method" in changes:
        values["payment_method"] = require_choice(changes["payment_method"], PAYMENT_METHODS, "payment_method")
    if "payment_status" in changes:
        values["payment_status"] = require_choice(changes["payment_status"], PAYMENT_STATUSES, "payment_status")
    if "client_name" in changes:
        values["client_name"] = optional_string(changes["client_name"], "client_name", 100)
    if "client_email" in changes:
        values["client_email"] = optional_email(changes["client_email"])
    if "client_phone" in changes:
        values["client_phone"] = optional_string(changes["client_phone"], "client_phone", 20)

    require_client_for_unpaid(values["payment_status"], values["client_name"])

    total = line_total_cents(
        values["boxes_quantity"], values["box_price_cents"],
        values["kg_grams"], values["kg_price_cents"],
    )
    if "amount_paid_cents" in changes and changes["amount_paid_cents"] is not None:
        requested_paid = coerce_non_negative_int(changes["amount_paid_cents"], "amount_paid_cents")
    elif values["payment_status"] == "paid":
        requested_paid = None
    elif before.payment_status == "paid":
        # Leaving "paid" without a new amount: nothing counts as collected
        requested_paid = None
    else:
        requested_paid = values["amount_paid_cents"]

    paid, remaining = settle_payment(total, values["payment_status"], requested_paid)
    values.update(total_amount_cents=total, amount_paid_cents=paid, remaining_amount_cents=remaining)
    return SaleSnapshot(**values)


def _check_free_stock(product: Product, before: SaleSnapshot, after: SaleSnapshot) -> None:
    # The sale already holds its current quantities; it may grow only into free stock
    max_boxes = product.stock_boxes + before.boxes_quantity
    max_grams = product.stock_grams + before.kg_grams
    if after.boxes_quantity > max_boxes or after.kg_grams > max_grams:
        raise InsufficientStockError(
            f"Not enough free stock on product {product.id} for the requested quantities",
            details={
                "product_id": product.id,
                "requested": {"boxes": after.boxes_quantity, "kg": grams_to_kg(after.kg_grams)},
                "available": {"boxes": max_boxes, "kg": grams_to_kg(max_grams)},
            },
        )


def _insert_proposal(account_id: int, sale, change, reason: str, user_id: int) -> SaleAudit:
    audit = SaleAudit(
        account_id=account_id,
        sale_id=sale.id,
        product_id=sale.product_id,
        reason=reason,
        performed_by_user_id=user_id,
        approval_status=APPROVAL_PENDING,
        created_at=utcnow(),
    )
    audit.record_change(change)
    db.session.add(audit)
    try:
        db.session.flush()
    except IntegrityError:
        # Lost the race against another request for the same sale
        raise ConflictError(f"Sale {sale.id} already has a pending change request")
    return audit


# =============================================================================
# PROPOSALS
# =============================================================================

def propose_edit(account_id: int, sale_id: int, changes: dict, reason, user_id: int) -> SaleAudit:
    """
    Record a pending edit of a sale.

    Args:
        account_id: Owning account of the acting user
        sale_id: Sale to change
        changes: Requested field values (boxes_quantity, kg_quantity, payment
            and client fields)
        reason: Why the change is needed (required)
        user_id: User requesting the change

    Returns:
        SaleAudit with approval_status pending and audit_type quantity_change
        (if boxes or kg change) or payment_update

    Raises:
        ValidationError: Missing reason, bad fields, or nothing would change
        ConflictError: Sale deleted or already has a pending proposal
        InsufficientStockError: New quantities exceed the stock free for this sale
        NotFoundError: Unknown sale
    """
    reason = require_reason(reason)
    if not isinstance(changes, dict) or not changes:
        raise ValidationError("changes must be a non-empty object")

    def _op():
        begin_write()
        sale = _load_open_sale(account_id, sale_id)
        _ensure_no_pending(sale.id)

        before = SaleSnapshot.from_sale(sale)
        after = _edited_snapshot(before, changes)
        changed = before.changed_fields(after)
        if not changed:
            raise ValidationError("The requested values match the current sale; nothing to change")

        if set(changed) & set(QUANTITY_FIELDS):
            _check_free_stock(db.session.get(Product, sale.product_id), before, after)
            change = QuantityChange(before=before, after=after)
        else:
            change = PaymentUpdate(before=before, after=after)

        audit = _insert_proposal(account_id, sale, change, reason, user_id)
        db.session.commit()
        return audit

    audit = run_with_retry(_op)
    logger.info(
        "Proposal %s (%s) recorded for sale %s by user %s",
        audit.id, audit.audit_type, sale_id, user_id,
    )
    return audit


def propose_deletion(account_id: int, sale_id: int, reason, user_id: int) -> SaleAudit:
    """Record a pending deletion; on approval the full sale quantity goes back to stock."""
    reason = require_reason(reason)

    def _op():
        begin_write()
        sale = _load_open_sale(account_id, sale_id)
        _ensure_no_pending(sale.id)
        change = Deletion(before=SaleSnapshot.from_sale(sale))
        audit = _insert_proposal(account_id, sale, change, reason, user_id)
        db.session.commit()
        return audit

    audit = run_with_retry(_op)
    logger.info("Deletion proposal %s recorded for sale %s by user %s", audit.id, sale_id, user_id)
    return audit


# =============================================================================
# READS
# =============================================================================

def get_audit(account_id: int, audit_id: int) -> SaleAudit:
    audit = db.session.get(SaleAudit, audit_id)
    if audit is None or audit.account_id != account_id:
        raise NotFoundError(f"Proposal {audit_id} not found")
    return audit


def list_audits(account_id: int, *, filters: dict | None = None, page: int = 1, limit: int = 20) -> tuple[list[SaleAudit], int]:
    filters = filters or {}
    q = db.session.query(SaleAudit).filter(SaleAudit.account_id == account_id)

    if filters.get("sale_id"):
        q = q.filter(SaleAudit.sale_id == coerce_int(filters["sale_id"], "sale_id"))
    if filters.get("audit_type"):
        q = q.filter(SaleAudit.audit_type == require_choice(filters["audit_type"], AUDIT_TYPES, "audit_type"))
    if filters.get("approval_status"):
        q = q.filter(
            SaleAudit.approval_status == require_choice(filters["approval_status"], APPROVAL_STATUSES, "approval_status")
        )

    total = q.count()
    audits = (
        q.order_by(SaleAudit.created_at.desc(), SaleAudit.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return audits, total


def sale_history(account_id: int, sale_id: int) -> list[SaleAudit]:
    """Every proposal ever made against a sale, oldest first."""
    get_sale(account_id, sale_id)
    return (
        db.session.query(SaleAudit)
        .filter(SaleAudit.sale_id == sale_id)
        .order_by(SaleAudit.created_at.asc(), SaleAudit.id.asc())
        .all()
    )


def list_pending(account_id: int | None = None) -> list[SaleAudit]:
    """Pending proposals, oldest first (the review queue)."""
    q = db.session.query(SaleAudit).filter(SaleAudit.approval_status == APPROVAL_PENDING)
    if account_id is not None:
        q = q.filter(SaleAudit.account_id == account_id)
    return q.order_by(SaleAudit.created_at.asc(), SaleAudit.id.asc()).all()
