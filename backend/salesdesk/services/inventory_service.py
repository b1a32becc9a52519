# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

# backend/salesdesk/services/inventory_service.py

from __future__ import annotations

import logging

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product, StockMovement
from ..validation import (
    MAX_COLUMN_INT,
    MAX_QUANTITY_BOXES,
    MAX_QUANTITY_GRAMS,
    ModelValidationPolicy,
    coerce_box_quantity,
    coerce_kg_quantity,
    coerce_price_cents,
    grams_to_kg,
    validate_payload,
)
from salesdesk.time_utils import utcnow
from .concurrency import begin_write, run_with_retry

logger = logging.getLogger(__name__)
"""
SalesDesk Inventory Ledger Invariants (authoritative)

Stock model:
- Each product row holds the authoritative counters stock_boxes and
  stock_grams (kilograms stored as whole grams).
- Boxes and kilograms are independent. box_to_kg_ratio is never used to
  turn one into the other here.

Business invariants:
- Neither counter may go negative. Every change is one guarded UPDATE:
      SET stock = stock + delta WHERE stock + delta >= 0
  so the check and the write are a single atomic statement. If the guard
  fails nothing is written and InsufficientStockError is raised.
- Deltas are never computed from a value read earlier in application code;
  the database applies them to whatever the row holds at that moment.

Audit:
- Each counter change appends a StockMovement in the same DB transaction.

Transactions:
- reserve/release/adjust commit by default. Pass commit=False to make them
  part of a caller's unit of work (the caller must have called begin_write
  and owns commit/rollback).
"""

MOVEMENT_SALE = "sale"
MOVEMENT_SALE_REVERSAL = "sale_reversal"
MOVEMENT_AUDIT_ADJUSTMENT = "audit_adjustment"
MOVEMENT_RESTOCK = "restock"
MOVEMENT_TYPES = frozenset({
    MOVEMENT_SALE,
    MOVEMENT_SALE_REVERSAL,
    MOVEMENT_AUDIT_ADJUSTMENT,
    MOVEMENT_RESTOCK,
})

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku",
        "name",
        "box_to_kg_ratio",
        "low_stock_threshold",
        "box_price_cents",
        "kg_price_cents",
    },
    required_on_create={"sku", "name"},
)


def get_product(account_id: int, product_id: int) -> Product:
    """Load a product owned by the account. Foreign products look like missing ones."""
    product = db.session.get(Product, product_id)
    if product is None or product.account_id != account_id:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def list_products(account_id: int, *, include_inactive: bool = False) -> list[Product]:
    q = db.session.query(Product).filter(Product.account_id == account_id)
    if not include_inactive:
        q = q.filter(Product.is_active.is_(True))
    return q.order_by(Product.name.asc(), Product.id.asc()).all()


def list_movements(account_id: int, product_id: int, *, limit: int = 100) -> list[StockMovement]:
    get_product(account_id, product_id)
    return (
        db.session.query(StockMovement)
        .filter(StockMovement.product_id == product_id)
        .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )


def _apply_delta(
    product_id: int,
    boxes_delta: int,
    grams_delta: int,
    *,
    movement_type: str,
    user_id: int | None,
    note: str | None,
    sale_id: int | None = None,
    audit_id: int | None = None,
) -> StockMovement:
    if movement_type not in MOVEMENT_TYPES:
        raise ValueError(f"Unknown movement_type {movement_type!r}")

    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")

    stmt = (
        update(Product)
        .where(
            Product.id == product_id,
            Product.stock_boxes + boxes_delta >= 0,
            Product.stock_grams + grams_delta >= 0,
            Product.stock_boxes + boxes_delta <= MAX_COLUMN_INT,
            Product.stock_grams + grams_delta <= MAX_COLUMN_INT,
        )
        .values(
            stock_boxes=Product.stock_boxes + boxes_delta,
            stock_grams=Product.stock_grams + grams_delta,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    # The loaded instance still holds pre-update counters
    db.session.expire(product, ["stock_boxes", "stock_grams", "updated_at"])

    if result.rowcount != 1:
        if product.stock_boxes + boxes_delta > MAX_COLUMN_INT or product.stock_grams + grams_delta > MAX_COLUMN_INT:
            raise ValidationError(
                f"Stock for product {product_id} would exceed the maximum of {MAX_COLUMN_INT}",
                details={"product_id": product_id, "boxes": product.stock_boxes, "grams": product.stock_grams},
            )
        raise InsufficientStockError(
            f"Insufficient stock for product {product_id}",
            details={
                "product_id": product_id,
                "requested": {"boxes": -boxes_delta, "kg": grams_to_kg(-grams_delta)},
                "available": {"boxes": product.stock_boxes, "kg": grams_to_kg(product.stock_grams)},
            },
        )

    movement = StockMovement(
        account_id=product.account_id,
        product_id=product_id,
        movement_type=movement_type,
        boxes_delta=boxes_delta,
        grams_delta=grams_delta,
        sale_id=sale_id,
        audit_id=audit_id,
        note=note,
        performed_by_user_id=user_id,
        created_at=utcnow(),
    )
    db.session.add(movement)
    db.session.flush()

    logger.info(
        "Stock %s on product %s: boxes %+d, grams %+d (movement %s)",
        movement_type, product_id, boxes_delta, grams_delta, movement.id,
    )
    return movement


def _run(op, commit: bool):
    if not commit:
        return op()

    def _unit():
        begin_write()
        movement = op()
        db.session.commit()
        return movement

    return run_with_retry(_unit)


def _require_amounts(boxes: int, grams: int, verb: str) -> None:
    if boxes < 0 or grams < 0:
        raise ValidationError(f"Cannot {verb} negative quantities")
    if boxes > MAX_QUANTITY_BOXES or grams > MAX_QUANTITY_GRAMS:
        raise ValidationError(f"Cannot {verb} more than {MAX_QUANTITY_BOXES} boxes or {MAX_QUANTITY_GRAMS} g at once")
    if boxes == 0 and grams == 0:
        raise ValidationError(f"Nothing to {verb}: boxes and kg are both zero")


def reserve(
    product_id: int,
    boxes: int,
    grams: int,
    *,
    user_id: int | None = None,
    note: str | None = None,
    sale_id: int | None = None,
    commit: bool = True,
) -> StockMovement:
    """
    Take stock out for a sale. All-or-nothing: raises InsufficientStockError
    if either unit would go negative, leaving both counters untouched.
    """
    _require_amounts(boxes, grams, "reserve")
    return _run(
        lambda: _apply_delta(
            product_id, -boxes, -grams,
            movement_type=MOVEMENT_SALE, user_id=user_id, note=note, sale_id=sale_id,
        ),
        commit,
    )


def release(
    product_id: int,
    boxes: int,
    grams: int,
    *,
    movement_type: str = MOVEMENT_SALE_REVERSAL,
    user_id: int | None = None,
    note: str | None = None,
    sale_id: int | None = None,
    commit: bool = True,
) -> StockMovement:
    """Put stock back (compensation for a failed sale insert, or a restock)."""
    _require_amounts(boxes, grams, "release")
    return _run(
        lambda: _apply_delta(
            product_id, boxes, grams,
            movement_type=movement_type, user_id=user_id, note=note, sale_id=sale_id,
        ),
        commit,
    )


def adjust(
    product_id: int,
    boxes_delta: int,
    grams_delta: int,
    *,
    movement_type: str = MOVEMENT_AUDIT_ADJUSTMENT,
    user_id: int | None = None,
    note: str | None = None,
    sale_id: int | None = None,
    audit_id: int | None = None,
    commit: bool = True,
) -> StockMovement | None:
    """
    Apply a signed delta to both counters in one step.

    The non-negativity check runs against the row as it is now, not as it
    was when the delta was computed. A zero delta is a no-op and returns None.
    """
    if boxes_delta == 0 and grams_delta == 0:
        return None
    return _run(
        lambda: _apply_delta(
            product_id, boxes_delta, grams_delta,
            movement_type=movement_type, user_id=user_id, note=note,
            sale_id=sale_id, audit_id=audit_id,
        ),
        commit,
    )


def create_product(account_id: int, payload: dict, user_id: int | None = None) -> Product:
    """
    Create a product, optionally with opening stock.

    Opening stock (opening_boxes / opening_kg) is recorded as a restock
    movement so the movement log always sums to the current counters.
    """
    payload = dict(payload or {})
    opening_boxes = coerce_box_quantity(payload.pop("opening_boxes", 0) or 0, "opening_boxes")
    opening_grams = coerce_kg_quantity(payload.pop("opening_kg", 0) or 0, "opening_kg")

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)

    if "box_to_kg_ratio" in patch and (patch["box_to_kg_ratio"] is None or patch["box_to_kg_ratio"] <= 0):
        raise ValidationError("box_to_kg_ratio must be > 0")
    if patch.get("low_stock_threshold") is not None and not 0 <= patch["low_stock_threshold"] <= MAX_QUANTITY_BOXES:
        raise ValidationError(f"low_stock_threshold must be between 0 and {MAX_QUANTITY_BOXES}")
    for field in ("box_price_cents", "kg_price_cents"):
        if patch.get(field) is not None:
            patch[field] = coerce_price_cents(patch[field], field)

    def _op():
        begin_write()
        product = Product(account_id=account_id, stock_boxes=0, stock_grams=0, **patch)
        db.session.add(product)
        try:
            db.session.flush()
        except IntegrityError:
            raise ConflictError(f"SKU {patch['sku']!r} already exists")

        if opening_boxes or opening_grams:
            _apply_delta(
                product.id, opening_boxes, opening_grams,
                movement_type=MOVEMENT_RESTOCK, user_id=user_id, note="Opening stock",
            )

        db.session.commit()
        return product

    return run_with_retry(_op)


def restock(
    account_id: int,
    product_id: int,
    boxes: int,
    grams: int,
    *,
    reason: str,
    user_id: int,
) -> StockMovement:
    """Record new stock arriving for a product."""
    get_product(account_id, product_id)
    return release(
        product_id,
        boxes,
        grams,
        movement_type=MOVEMENT_RESTOCK,
        user_id=user_id,
        note=reason,
    )
