"""
Proposal Decision Service

WHY: This is the only place where a recorded sale changes after creation.
Approval applies the proposal's compensating stock delta and its sale
changes in ONE transaction; rejection only closes the proposal, because
proposals are never applied eagerly.

STATE MACHINE: pending -> approved | rejected (terminal)

Stock moves by the negated proposal delta:
- quantity_change from (b1, k1) to (b2, k2): stock changes by (b1 - b2, k1 - k2)
- deletion of (b, k): stock changes by (+b, +k)
- payment_update: no stock change

The ledger re-checks non-negativity at decision time. If stock would go
negative the whole approval is rolled back and the proposal stays pending.
"""

from __future__ import annotations

import logging

from ..errors import ConflictError, InsufficientStockError, NotFoundError
from ..extensions import db
from ..models import Deletion, Sale, SaleAudit
from ..models.audits import APPROVAL_APPROVED, APPROVAL_REJECTED, AUDIT_TYPE_DELETION
from ..models.sales import SALE_STATUS_DELETED
from ..validation import grams_to_kg, line_total_cents, require_reason
from salesdesk.time_utils import utcnow
from . import inventory_service
from .concurrency import begin_write, run_with_retry

logger = logging.getLogger(__name__)


def _load_pending(account_id: int, audit_id: int) -> SaleAudit:
    audit = db.session.get(SaleAudit, audit_id)
    if audit is None or audit.account_id != account_id:
        raise NotFoundError(f"Proposal {audit_id} not found")
    if not audit.is_pending:
        raise ConflictError(
            f"Proposal {audit_id} is already {audit.approval_status}",
            details={"approval_status": audit.approval_status},
        )
    return audit


def _apply_to_sale(sale: Sale, change, user_id: int) -> None:
    now = utcnow()
    if isinstance(change, Deletion):
        sale.status = SALE_STATUS_DELETED
        sale.deleted_at = now
        sale.deleted_by_user_id = user_id
        sale.updated_at = now
        return

    # Only the approved fields are written; totals are derived from them
    for name in change.before.changed_fields(change.after):
        setattr(sale, name, getattr(change.after, name))

    sale.total_amount_cents = line_total_cents(
        sale.boxes_quantity, sale.box_price_cents, sale.kg_grams, sale.kg_price_cents
    )
    if sale.payment_status == "paid":
        sale.amount_paid_cents = sale.total_amount_cents
        sale.remaining_amount_cents = 0
    else:
        sale.remaining_amount_cents = sale.total_amount_cents - sale.amount_paid_cents
    sale.updated_at = now


def _close(audit: SaleAudit, status: str, reason: str, user_id: int) -> None:
    audit.approval_status = status
    audit.approved_by_user_id = user_id
    audit.decision_reason = reason
    audit.decided_at = utcnow()


def approve(account_id: int, audit_id: int, decision_reason, user_id: int) -> tuple[SaleAudit, Sale, dict]:
    """
    Apply a pending proposal.

    Returns (audit, sale, applied_delta) where applied_delta is the stock
    change actually made: {"boxes": int, "kg": "x.xxx"}.

    Raises:
        ValidationError: missing decision reason
        NotFoundError: unknown proposal
        ConflictError: proposal already decided
        InsufficientStockError: stock can no longer cover the change; nothing
            was written and the proposal is still pending
        PersistenceError: the store failed; nothing was written
    """
    reason = require_reason(decision_reason)

    def _op():
        begin_write()
        audit = _load_pending(account_id, audit_id)
        sale = db.session.get(Sale, audit.sale_id)
        if sale.is_deleted:
            raise ConflictError(f"Sale {sale.id} is already deleted")

        movement_type = (
            inventory_service.MOVEMENT_SALE_REVERSAL
            if audit.audit_type == AUDIT_TYPE_DELETION
            else inventory_service.MOVEMENT_AUDIT_ADJUSTMENT
        )
        inventory_service.adjust(
            audit.product_id,
            -audit.boxes_change,
            -audit.grams_change,
            movement_type=movement_type,
            user_id=user_id,
            note=f"Approved {audit.audit_type} proposal {audit.id}",
            sale_id=sale.id,
            audit_id=audit.id,
            commit=False,
        )
        _apply_to_sale(sale, audit.change, user_id)
        _close(audit, APPROVAL_APPROVED, reason, user_id)
        db.session.commit()
        return audit, sale

    try:
        audit, sale = run_with_retry(_op)
    except InsufficientStockError as exc:
        logger.warning(
            "Approval of proposal %s refused, insufficient stock; it stays pending: %s",
            audit_id, exc.details,
        )
        raise

    applied = {"boxes": -audit.boxes_change, "kg": grams_to_kg(-audit.grams_change)}
    logger.info(
        "Proposal %s (%s) approved by user %s; stock delta %s",
        audit.id, audit.audit_type, user_id, applied,
    )
    return audit, sale, applied


def reject(account_id: int, audit_id: int, decision_reason, user_id: int) -> SaleAudit:
    """Close a pending proposal without touching the sale or stock."""
    reason = require_reason(decision_reason)

    def _op():
        begin_write()
        audit = _load_pending(account_id, audit_id)
        _close(audit, APPROVAL_REJECTED, reason, user_id)
        db.session.commit()
        return audit

    audit = run_with_retry(_op)
    logger.info("Proposal %s (%s) rejected by user %s", audit.id, audit.audit_type, user_id)
    return audit
