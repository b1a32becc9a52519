from __future__ import annotations

from ..extensions import db
from salesdesk.time_utils import to_utc_z
from salesdesk.validation import grams_to_kg


SALE_STATUS_ACTIVE = "active"
SALE_STATUS_DELETED = "deleted"

PAYMENT_STATUSES = frozenset({"paid", "pending", "partial"})
PAYMENT_METHODS = frozenset({"momo_pay", "cash", "bank_transfer"})


class Sale(db.Model):
    """
    The as-sold facts of one transaction.

    Stock for boxes_quantity / kg_grams was taken from the product when the
    row was created. After that the row only changes through an approved
    SaleAudit; a deletion is a soft delete (status=deleted) so that the
    audit history keeps pointing at a real row.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.CheckConstraint("boxes_quantity >= 0", name="ck_sales_boxes_non_negative"),
        db.CheckConstraint("kg_grams >= 0", name="ck_sales_grams_non_negative"),
        db.CheckConstraint(
            "boxes_quantity > 0 OR kg_grams > 0", name="ck_sales_has_quantity"
        ),
        db.Index("ix_sales_account_status_created", "account_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    boxes_quantity = db.Column(db.Integer, nullable=False, default=0)
    kg_grams = db.Column(db.Integer, nullable=False, default=0)

    # Unit prices as sold (kg price is per kilogram)
    box_price_cents = db.Column(db.Integer, nullable=False, default=0)
    kg_price_cents = db.Column(db.Integer, nullable=False, default=0)

    total_amount_cents = db.Column(db.Integer, nullable=False)
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    remaining_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_status = db.Column(db.String(16), nullable=False, index=True)  # paid, pending, partial
    payment_method = db.Column(db.String(16), nullable=False, index=True)  # momo_pay, cash, bank_transfer

    client_name = db.Column(db.String(100), nullable=True, index=True)
    client_email = db.Column(db.String(150), nullable=True)
    client_phone = db.Column(db.String(20), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=SALE_STATUS_ACTIVE, index=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    deleted_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product", backref=db.backref("sales", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_deleted(self) -> bool:
        return self.status == SALE_STATUS_DELETED

    def to_dict(self, *, pending_audit_id: int | None = None) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "product_id": self.product_id,
            "boxes_quantity": self.boxes_quantity,
            "kg_quantity": grams_to_kg(self.kg_grams),
            "box_price_cents": self.box_price_cents,
            "kg_price_cents": self.kg_price_cents,
            "total_amount_cents": self.total_amount_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "remaining_amount_cents": self.remaining_amount_cents,
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "client_name": self.client_name,
            "client_email": self.client_email,
            "client_phone": self.client_phone,
            "status": self.status,
            "has_pending_audit": pending_audit_id is not None,
            "pending_audit_id": pending_audit_id,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "deleted_by_user_id": self.deleted_by_user_id,
            "deleted_at": to_utc_z(self.deleted_at),
            "version_id": self.version_id,
        }
