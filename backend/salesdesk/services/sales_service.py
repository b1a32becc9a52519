"""
Sales Service - sale creation and read access

WHY: A sale takes stock the moment it is recorded. Creation is a two-step
saga (reserve stock, then insert the sale row) because the ledger and the
sale are separate resources: if the insert fails the reservation is
released again. After creation a sale is never updated here; every later
change goes through audit_service (proposal) and approval_service
(decision).
"""

from __future__ import annotations

import logging

from sqlalchemy import func, or_

from ..errors import NotFoundError, PersistenceError, ValidationError
from ..extensions import db
from ..models import Sale, SaleAudit, StockMovement
from ..models.audits import APPROVAL_PENDING
from ..models.sales import PAYMENT_METHODS, PAYMENT_STATUSES, SALE_STATUS_ACTIVE
from ..validation import (
    coerce_box_quantity,
    coerce_int,
    coerce_kg_quantity,
    coerce_non_negative_int,
    coerce_price_cents,
    line_total_cents,
    optional_email,
    optional_string,
    require_choice,
)
from salesdesk.time_utils import inclusive_range, utcnow
from . import inventory_service
from .concurrency import begin_write, run_with_retry

logger = logging.getLogger(__name__)


SALE_INPUT_FIELDS = frozenset({
    "product_id",
    "boxes_quantity",
    "kg_quantity",
    "box_price_cents",
    "kg_price_cents",
    "payment_status",
    "payment_method",
    "amount_paid_cents",
    "client_name",
    "client_email",
    "client_phone",
})


def settle_payment(total_cents: int, payment_status: str, amount_paid_cents: int | None) -> tuple[int, int]:
    """
    Resolve (amount_paid_cents, remaining_amount_cents) for a payment state.

    - paid:    amount defaults to the total and must equal it; nothing remains
    - partial: 0 < amount < total
    - pending: amount defaults to 0; a non-zero amount must stay below the total
    """
    if amount_paid_cents is not None and amount_paid_cents > total_cents:
        raise ValidationError(
            "amount_paid_cents cannot exceed the total",
            details={"total_amount_cents": total_cents, "amount_paid_cents": amount_paid_cents},
        )

    if payment_status == "paid":
        paid = total_cents if amount_paid_cents is None else amount_paid_cents
        if paid != total_cents:
            raise ValidationError("A paid sale must be paid in full")
        return paid, 0

    paid = amount_paid_cents or 0
    if payment_status == "partial":
        if not 0 < paid < total_cents:
            raise ValidationError("A partial payment must be more than 0 and less than the total")
    elif paid and paid >= total_cents:
        raise ValidationError("A pending sale cannot be paid in full; use payment_status 'paid'")
    return paid, total_cents - paid


def require_client_for_unpaid(payment_status: str, client_name: str | None) -> None:
    if payment_status != "paid" and not client_name:
        raise ValidationError("client_name is required for pending or partial payments")


def _unit_price(data: dict, key: str, fallback: int | None, quantity: int) -> int:
    raw = data.get(key)
    if raw is None:
        raw = fallback
    if raw is None:
        if quantity > 0:
            raise ValidationError(f"{key} is required when selling that unit")
        return 0
    return coerce_price_cents(raw, key)


def _parse_sale_input(product, data: dict) -> dict:
    unknown = sorted(set(data) - SALE_INPUT_FIELDS)
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(unknown)}")

    boxes = coerce_box_quantity(data.get("boxes_quantity") or 0, "boxes_quantity")
    grams = coerce_kg_quantity(data.get("kg_quantity") or 0, "kg_quantity")
    if boxes == 0 and grams == 0:
        raise ValidationError("At least one of boxes_quantity or kg_quantity must be greater than 0")

    box_price = _unit_price(data, "box_price_cents", product.box_price_cents, boxes)
    kg_price = _unit_price(data, "kg_price_cents", product.kg_price_cents, grams)

    if data.get("payment_method") is None:
        raise ValidationError("payment_method is required")
    payment_method = require_choice(data["payment_method"], PAYMENT_METHODS, "payment_method")
    payment_status = require_choice(data.get("payment_status", "pending"), PAYMENT_STATUSES, "payment_status")

    client_name = optional_string(data.get("client_name"), "client_name", 100)
    require_client_for_unpaid(payment_status, client_name)

    total = line_total_cents(boxes, box_price, grams, kg_price)
    raw_paid = data.get("amount_paid_cents")
    amount_paid, remaining = settle_payment(
        total,
        payment_status,
        None if raw_paid is None else coerce_non_negative_int(raw_paid, "amount_paid_cents"),
    )

    return {
        "boxes_quantity": boxes,
        "kg_grams": grams,
        "box_price_cents": box_price,
        "kg_price_cents": kg_price,
        "total_amount_cents": total,
        "amount_paid_cents": amount_paid,
        "remaining_amount_cents": remaining,
        "payment_status": payment_status,
        "payment_method": payment_method,
        "client_name": client_name,
        "client_email": optional_email(data.get("client_email")),
        "client_phone": optional_string(data.get("client_phone"), "client_phone", 20),
    }


def create_sale(account_id: int, user_id: int, data: dict) -> Sale:
    """
    Record a sale and take its quantities out of stock.

    Step 1 reserves stock (committed on its own). Step 2 inserts the sale
    and links the reservation's movement row to it. If step 2 fails the
    reservation is released; if that release fails too, the failure is
    logged as critical because stock is now short by the reserved amount.
    """
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    if data.get("product_id") is None:
        raise ValidationError("product_id is required")

    product_id = coerce_int(data["product_id"], "product_id")
    product = inventory_service.get_product(account_id, product_id)
    if not product.is_active:
        raise ValidationError(f"Product {product_id} is not active")

    fields = _parse_sale_input(product, data)
    boxes, grams = fields["boxes_quantity"], fields["kg_grams"]

    reservation = inventory_service.reserve(product_id, boxes, grams, user_id=user_id, note="Sale")
    reservation_id = reservation.id

    def _insert():
        begin_write()
        sale = Sale(
            account_id=account_id,
            product_id=product_id,
            status=SALE_STATUS_ACTIVE,
            created_by_user_id=user_id,
            created_at=utcnow(),
            **fields,
        )
        db.session.add(sale)
        db.session.flush()
        db.session.query(StockMovement).filter(StockMovement.id == reservation_id).update(
            {"sale_id": sale.id}, synchronize_session=False
        )
        db.session.commit()
        return sale

    try:
        sale = run_with_retry(_insert)
    except Exception:
        logger.warning(
            "Sale insert failed after reserving stock on product %s (movement %s); releasing",
            product_id, reservation_id,
        )
        try:
            inventory_service.release(
                product_id, boxes, grams,
                user_id=user_id, note=f"Compensation for unrecorded sale (movement {reservation_id})",
            )
        except Exception as release_exc:
            logger.critical(
                "Could not release reserved stock on product %s: boxes=%d grams=%d (movement %s)",
                product_id, boxes, grams, reservation_id, exc_info=True,
            )
            raise PersistenceError(
                "Sale was not recorded and reserved stock could not be released",
                details={"product_id": product_id, "reservation_movement_id": reservation_id},
            ) from release_exc
        raise

    logger.info("Sale %s created on product %s: boxes=%d grams=%d", sale.id, product_id, boxes, grams)
    return sale


def get_sale(account_id: int, sale_id: int) -> Sale:
    """Deleted sales stay readable by id."""
    sale = db.session.get(Sale, sale_id)
    if sale is None or sale.account_id != account_id:
        raise NotFoundError(f"Sale {sale_id} not found")
    return sale


def pending_audit_ids(sale_ids: list[int]) -> dict[int, int]:
    """Map sale_id -> id of its pending proposal, for the sales that have one."""
    if not sale_ids:
        return {}
    rows = (
        db.session.query(SaleAudit.sale_id, SaleAudit.id)
        .filter(SaleAudit.sale_id.in_(sale_ids), SaleAudit.approval_status == APPROVAL_PENDING)
        .all()
    )
    return {sale_id: audit_id for sale_id, audit_id in rows}


def _bool_arg(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in {"1", "true", "yes"}


def list_sales(account_id: int, *, filters: dict | None = None, page: int = 1, limit: int = 20) -> tuple[list[Sale], int]:
    """
    Newest-first sales for an account.

    filters: payment_status, payment_method, product_id, start_date,
    end_date (inclusive ISO-8601), search (client name/email substring),
    include_deleted.
    """
    filters = filters or {}
    q = db.session.query(Sale).filter(Sale.account_id == account_id)

    if not _bool_arg(filters.get("include_deleted")):
        q = q.filter(Sale.status == SALE_STATUS_ACTIVE)

    if filters.get("payment_status"):
        q = q.filter(Sale.payment_status == require_choice(filters["payment_status"], PAYMENT_STATUSES, "payment_status"))
    if filters.get("payment_method"):
        q = q.filter(Sale.payment_method == require_choice(filters["payment_method"], PAYMENT_METHODS, "payment_method"))
    if filters.get("product_id"):
        q = q.filter(Sale.product_id == coerce_int(filters["product_id"], "product_id"))

    try:
        start, end = inclusive_range(filters.get("start_date"), filters.get("end_date"))
    except ValueError:
        raise ValidationError("start_date and end_date must be ISO-8601 dates, with end not before start")
    if start is not None:
        q = q.filter(Sale.created_at >= start)
    if end is not None:
        q = q.filter(Sale.created_at < end)

    search = (filters.get("search") or "").strip()
    if search:
        # % and _ in the search text match literally
        escaped = search.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{escaped}%"
        q = q.filter(or_(
            func.lower(Sale.client_name).like(pattern, escape="\\"),
            func.lower(Sale.client_email).like(pattern, escape="\\"),
        ))

    total = q.count()
    sales = (
        q.order_by(Sale.created_at.desc(), Sale.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return sales, total
