from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Union

from ..extensions import db
from salesdesk.time_utils import to_utc_z
from salesdesk.validation import grams_to_kg


AUDIT_TYPE_QUANTITY_CHANGE = "quantity_change"
AUDIT_TYPE_PAYMENT_UPDATE = "payment_update"
AUDIT_TYPE_DELETION = "deletion"
AUDIT_TYPES = frozenset({AUDIT_TYPE_QUANTITY_CHANGE, AUDIT_TYPE_PAYMENT_UPDATE, AUDIT_TYPE_DELETION})

APPROVAL_PENDING = "pending"
APPROVAL_APPROVED = "approved"
APPROVAL_REJECTED = "rejected"
APPROVAL_STATUSES = frozenset({APPROVAL_PENDING, APPROVAL_APPROVED, APPROVAL_REJECTED})

QUANTITY_FIELDS = ("boxes_quantity", "kg_grams")
PAYMENT_FIELDS = (
    "payment_status",
    "payment_method",
    "amount_paid_cents",
    "client_name",
    "client_email",
    "client_phone",
)
EDITABLE_FIELDS = QUANTITY_FIELDS + PAYMENT_FIELDS


@dataclass(frozen=True)
class SaleSnapshot:
    """
    The mutable facts of a sale at one point in time.

    Stored as JSON in SaleAudit.old_values / new_values. Totals are kept
    alongside the editable fields so a snapshot is self-describing for
    display; they are always recomputed, never edited directly.
    """
    product_id: int
    boxes_quantity: int
    kg_grams: int
    box_price_cents: int
    kg_price_cents: int
    total_amount_cents: int
    amount_paid_cents: int
    remaining_amount_cents: int
    payment_status: str
    payment_method: str
    client_name: str | None = None
    client_email: str | None = None
    client_phone: str | None = None

    @classmethod
    def from_sale(cls, sale) -> "SaleSnapshot":
        return cls(**{f.name: getattr(sale, f.name) for f in fields(cls)})

    @classmethod
    def from_dict(cls, data: dict) -> "SaleSnapshot":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_dict(self) -> dict:
        return asdict(self)

    def changed_fields(self, other: "SaleSnapshot") -> tuple[str, ...]:
        return tuple(name for name in EDITABLE_FIELDS if getattr(self, name) != getattr(other, name))

    def to_api_dict(self) -> dict:
        data = self.to_dict()
        data["kg_quantity"] = grams_to_kg(data.pop("kg_grams"))
        return data


@dataclass(frozen=True)
class QuantityChange:
    """Edit touching boxes and/or kg (payment fields may change with it)."""
    before: SaleSnapshot
    after: SaleSnapshot
    audit_type = AUDIT_TYPE_QUANTITY_CHANGE


@dataclass(frozen=True)
class PaymentUpdate:
    """Edit touching payment/client fields only; never moves stock."""
    before: SaleSnapshot
    after: SaleSnapshot
    audit_type = AUDIT_TYPE_PAYMENT_UPDATE


@dataclass(frozen=True)
class Deletion:
    before: SaleSnapshot
    audit_type = AUDIT_TYPE_DELETION

    @property
    def after(self) -> None:
        return None


ProposedChange = Union[QuantityChange, PaymentUpdate, Deletion]


class SaleAudit(db.Model):
    """
    A proposed mutation of a sale, frozen until a reviewer decides.

    Creating a proposal never touches the sale or product stock. The stored
    deltas (boxes_change, grams_change) are relative to the sale's quantities
    at proposal time: new minus current for edits, minus current for a
    deletion. Stock moves by the negated delta when the proposal is approved.

    STATE MACHINE: pending -> approved | rejected (terminal).

    At most one pending proposal per sale; enforced by the partial unique
    index below, not only by the service-level check.
    """
    __tablename__ = "sale_audits"
    __table_args__ = (
        db.Index(
            "uq_sale_audits_one_pending",
            "sale_id",
            unique=True,
            sqlite_where=db.text("approval_status = 'pending'"),
            postgresql_where=db.text("approval_status = 'pending'"),
        ),
        db.Index("ix_sale_audits_account_status_created", "account_id", "approval_status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    audit_type = db.Column(db.String(32), nullable=False, index=True)

    boxes_change = db.Column(db.Integer, nullable=False, default=0)
    grams_change = db.Column(db.Integer, nullable=False, default=0)

    old_values = db.Column(db.JSON, nullable=False)
    new_values = db.Column(db.JSON, nullable=True)

    reason = db.Column(db.Text, nullable=False)
    performed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    approval_status = db.Column(db.String(16), nullable=False, default=APPROVAL_PENDING, index=True)
    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    decision_reason = db.Column(db.Text, nullable=True)
    decided_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    sale = db.relationship("Sale", backref=db.backref("audits", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_pending(self) -> bool:
        return self.approval_status == APPROVAL_PENDING

    @property
    def change(self) -> ProposedChange:
        before = SaleSnapshot.from_dict(self.old_values)
        if self.audit_type == AUDIT_TYPE_DELETION:
            return Deletion(before=before)
        after = SaleSnapshot.from_dict(self.new_values or {})
        if self.audit_type == AUDIT_TYPE_QUANTITY_CHANGE:
            return QuantityChange(before=before, after=after)
        if self.audit_type == AUDIT_TYPE_PAYMENT_UPDATE:
            return PaymentUpdate(before=before, after=after)
        raise ValueError(f"Unknown audit_type {self.audit_type!r}")

    def record_change(self, change: ProposedChange) -> None:
        self.audit_type = change.audit_type
        self.old_values = change.before.to_dict()
        self.new_values = change.after.to_dict() if change.after is not None else None
        if change.after is None:
            self.boxes_change = -change.before.boxes_quantity
            self.grams_change = -change.before.kg_grams
        else:
            self.boxes_change = change.after.boxes_quantity - change.before.boxes_quantity
            self.grams_change = change.after.kg_grams - change.before.kg_grams

    def to_dict(self) -> dict:
        change = self.change
        return {
            "id": self.id,
            "account_id": self.account_id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "audit_type": self.audit_type,
            "boxes_change": self.boxes_change,
            "kg_change": grams_to_kg(self.grams_change),
            "old_values": change.before.to_api_dict(),
            "new_values": change.after.to_api_dict() if change.after is not None else None,
            "reason": self.reason,
            "performed_by_user_id": self.performed_by_user_id,
            "approval_status": self.approval_status,
            "approved_by_user_id": self.approved_by_user_id,
            "decision_reason": self.decision_reason,
            "decided_at": to_utc_z(self.decided_at),
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
