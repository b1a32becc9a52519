from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from salesdesk.time_utils import to_utc_z
from salesdesk.validation import grams_to_kg, GRAMS_PER_KG


class Product(db.Model):
    """
    Product master data plus its authoritative stock counters.

    Stock is held in two independent units: whole boxes and loose kilograms
    (stored as integer grams). box_to_kg_ratio is informational only; stock
    is never converted from one unit into the other.

    The counters are only ever changed through inventory_service, which uses
    a single guarded UPDATE per change (see _apply_delta there). The CHECK
    constraints are the last line of defence if anything bypasses it.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("account_id", "sku", name="uq_products_account_sku"),
        db.CheckConstraint("stock_boxes >= 0", name="ck_products_stock_boxes_non_negative"),
        db.CheckConstraint("stock_grams >= 0", name="ck_products_stock_grams_non_negative"),
        db.CheckConstraint("box_to_kg_ratio > 0", name="ck_products_ratio_positive"),
        db.Index("ix_products_account_name", "account_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)

    stock_boxes = db.Column(db.Integer, nullable=False, default=0)
    stock_grams = db.Column(db.Integer, nullable=False, default=0)

    # kilograms represented by one box (display / threshold math only)
    box_to_kg_ratio = db.Column(db.Numeric(10, 3), nullable=False, default=Decimal("20"))
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=10)

    # Suggested prices for new sales; each sale stores its own prices
    box_price_cents = db.Column(db.Integer, nullable=True)
    kg_price_cents = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    account = db.relationship("Account", backref=db.backref("products", lazy=True))

    def __repr__(self) -> str:
        return (
            f"<Product id={self.id} sku={self.sku!r} "
            f"boxes={self.stock_boxes} grams={self.stock_grams}>"
        )

    @property
    def stock_status(self) -> str:
        """critical at or below half the threshold, warning at or below it."""
        threshold = self.low_stock_threshold or 0
        if self.stock_boxes <= threshold / 2:
            return "critical"
        if self.stock_boxes <= threshold:
            return "warning"
        return "ok"

    def total_kg_equivalent(self) -> Decimal:
        ratio = Decimal(self.box_to_kg_ratio or 0)
        return Decimal(self.stock_grams) / GRAMS_PER_KG + self.stock_boxes * ratio

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "sku": self.sku,
            "name": self.name,
            "stock_boxes": self.stock_boxes,
            "stock_kg": grams_to_kg(self.stock_grams),
            "box_to_kg_ratio": str(self.box_to_kg_ratio) if self.box_to_kg_ratio is not None else None,
            "low_stock_threshold": self.low_stock_threshold,
            "stock_status": self.stock_status,
            "total_kg_equivalent": str(self.total_kg_equivalent().quantize(Decimal("0.001"))),
            "box_price_cents": self.box_price_cents,
            "kg_price_cents": self.kg_price_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only log of every change to a product's stock counters.

    Written in the same DB transaction as the counter update it records.
    Deltas are signed: negative for stock leaving, positive for stock coming back.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # sale, sale_reversal, audit_adjustment, restock
    movement_type = db.Column(db.String(32), nullable=False, index=True)

    boxes_delta = db.Column(db.Integer, nullable=False, default=0)
    grams_delta = db.Column(db.Integer, nullable=False, default=0)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    audit_id = db.Column(db.Integer, db.ForeignKey("sale_audits.id"), nullable=True, index=True)

    note = db.Column(db.String(500), nullable=True)
    performed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("movements", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "movement_type": self.movement_type,
            "boxes_delta": self.boxes_delta,
            "kg_delta": grams_to_kg(self.grams_delta),
            "sale_id": self.sale_id,
            "audit_id": self.audit_id,
            "note": self.note,
            "performed_by_user_id": self.performed_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
