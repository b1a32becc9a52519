# Overview: Pytest coverage for proposal decisions and their stock reconciliation.

from unittest.mock import patch

import pytest

from salesdesk.errors import ConflictError, InsufficientStockError, NotFoundError, PersistenceError, ValidationError
from salesdesk.extensions import db
from salesdesk.models import Product, Sale, SaleAudit, StockMovement
from salesdesk.services import approval_service, audit_service, inventory_service, sales_service


def _stock(product_id):
    product = db.session.get(Product, product_id, populate_existing=True)
    return product.stock_boxes, product.stock_grams


def _sale(sale_id):
    return db.session.get(Sale, sale_id, populate_existing=True)


def _sell(account, user, product, boxes=3, kg="0", **extra):
    data = {
        "product_id": product.id,
        "boxes_quantity": boxes,
        "kg_quantity": kg,
        "payment_method": "cash",
        "payment_status": "paid",
    }
    data.update(extra)
    return sales_service.create_sale(account.id, user.id, data)


class TestApproveEdit:

    def test_worked_example(self, db_session, account, worker_user, admin_user, product):
        """10 boxes -> sell 3 -> edit to 5 -> approve -> delete -> approve: back to 10."""
        sale = _sell(account, worker_user, product, boxes=3)
        assert _stock(product.id) == (7, 0)

        edit = audit_service.propose_edit(account.id, sale.id, {"boxes_quantity": 5}, "Two more", worker_user.id)
        assert edit.boxes_change == 2

        audit, approved_sale, applied = approval_service.approve(account.id, edit.id, "Checked", admin_user.id)
        assert applied == {"boxes": -2, "kg": "0.000"}
        assert audit.approval_status == "approved"
        assert approved_sale.boxes_quantity == 5
        assert _stock(product.id) == (5, 0)

        deletion = audit_service.propose_deletion(account.id, sale.id, "Cancelled order", worker_user.id)
        _, deleted_sale, applied = approval_service.approve(account.id, deletion.id, "OK", admin_user.id)
        assert applied == {"boxes": 5, "kg": "0.000"}
        assert deleted_sale.status == "deleted"
        assert _stock(product.id) == (10, 0)

        sales, total = sales_service.list_sales(account.id)
        assert total == 0

    def test_edit_changes_stock_by_old_minus_new(self, db_session, account, worker_user, admin_user, mixed_product):
        sale = _sell(account, worker_user, mixed_product, boxes=2, kg="4")
        assert _stock(mixed_product.id) == (3, 8500)

        edit = audit_service.propose_edit(
            account.id, sale.id, {"boxes_quantity": 1, "kg_quantity": "6.5"}, "Swap", worker_user.id
        )
        approval_service.approve(account.id, edit.id, "Fine", admin_user.id)

        # (b1 - b2, k1 - k2) = (+1 box, -2.5 kg)
        assert _stock(mixed_product.id) == (4, 6000)

    def test_only_approved_fields_change(self, db_session, account, worker_user, admin_user, product):
        sale = _sell(
            account, worker_user, product, boxes=2,
            payment_status="partial", amount_paid_cents=100000, client_name="Ama", client_phone="0244000000",
        )
        edit = audit_service.propose_edit(account.id, sale.id, {"boxes_quantity": 3}, "One more", worker_user.id)
        approval_service.approve(account.id, edit.id, "OK", admin_user.id)

        updated = _sale(sale.id)
        assert updated.boxes_quantity == 3
        assert updated.total_amount_cents == 450000
        assert updated.amount_paid_cents == 100000
        assert updated.remaining_amount_cents == 350000
        assert (updated.client_name, updated.client_phone, updated.payment_method) == ("Ama", "0244000000", "cash")
        assert updated.box_price_cents == 150000

    def test_payment_update_moves_no_stock(self, db_session, account, worker_user, admin_user, product):
        sale = _sell(account, worker_user, product, payment_status="pending", client_name="Kofi")
        movements_before = db_session.query(StockMovement).count()

        edit = audit_service.propose_edit(account.id, sale.id, {"payment_status": "paid"}, "Paid in cash", worker_user.id)
        _, updated, applied = approval_service.approve(account.id, edit.id, "Receipt seen", admin_user.id)

        assert applied == {"boxes": 0, "kg": "0.000"}
        assert updated.payment_status == "paid"
        assert updated.remaining_amount_cents == 0
        assert updated.amount_paid_cents == updated.total_amount_cents
        assert _stock(product.id) == (7, 0)
        assert db_session.query(StockMovement).count() == movements_before

    def test_adjustment_movement_references_audit(self, db_session, account, worker_user, admin_user, product):
        sale = _sell(account, worker_user, product)
        edit = audit_service.propose_edit(account.id, sale.id, {"boxes_quantity": 1}, "Fewer", worker_user.id)
        approval_service.approve(account.id, edit.id, "OK", admin_user.id)

        movement = db_session.query(StockMovement).filter_by(audit_id=edit.id).one()
        assert movement.movement_type == "audit_adjustment"
        assert movement.boxes_delta == 2
        assert movement.sale_id == sale.id


class TestApprovalFailures:

    def test_insufficient_stock_leaves_proposal_pending(self, db_session, account, worker_user, admin_user, product):
        sale = _sell(account, worker_user, product, boxes=3)
        edit = audit_service.propose_edit(account.id, sale.id, {"boxes_quantity": 8}, "Bulk order", worker_user.id)

        # stock consumed elsewhere after the proposal was made
        _sell(account, worker_user, product, boxes=6)
        assert _stock(product.id) == (1, 0)

        with pytest.raises(InsufficientStockError):
            approval_service.approve(account.id, edit.id, "OK", admin_user.id)

        audit = db.session.get(SaleAudit, edit.id, populate_existing=True)
        assert audit.approval_status == "pending"
        assert audit.decided_at is None
        assert _sale(sale.id).boxes_quantity == 3
        assert _stock(product.id) == (1, 0)

        # once stock is replenished the same proposal can be approved
        inventory_service.restock(account.id, product.id, 5, 0, reason="Delivery", user_id=admin_user.id)
        approval_service.approve(account.id, edit.id, "OK now", admin_user.id)
        assert _stock(product.id) == (1, 0)
        assert _sale(sale.id).boxes_quantity == 8

    def test_store_failure_after_adjust_rolls_everything_back(self, db_session, account, worker_user, admin_user, product):
        sale = _sell(account, worker_user, product, boxes=3)
        edit = audit_service.propose_edit(account.id, sale.id, {"boxes_quantity": 1}, "Fewer", worker_user.id)

        with patch.object(approval_service, "_close", side_effect=PersistenceError("Database error")):
            with pytest.raises(PersistenceError):
                approval_service.approve(account.id, edit.id, "OK", admin_user.id)

        assert _stock(product.id) == (7, 0)
        assert _sale(sale.id).boxes_quantity == 3
        assert db.session.get(SaleAudit, edit.id, populate_existing=True).is_pending

    def test_decision_reason_required(self, db_session, account, worker_user, admin_user, product):
        sale = _sell(account, worker_user, product)
        edit = audit_service.propose_deletion(account.id, sale.id, "Dup", worker_user.id)
        with pytest.raises(ValidationError):
            approval_service.approve(account.id, edit.id, " ", admin_user.id)
        with pytest.raises(ValidationError):
            approval_service.reject(account.id, edit.id, None, admin_user.id)

    def test_decisions_are_terminal(self, db_session, account, worker_user, admin_user, product):
        sale = _sell(account, worker_user, product)
        edit = audit_service.propose_deletion(account.id, sale.id, "Dup", worker_user.id)
        approval_service.reject(account.id, edit.id, "No", admin_user.id)

        with pytest.raises(ConflictError):
            approval_service.approve(account.id, edit.id, "Changed my mind", admin_user.id)
        with pytest.raises(ConflictError):
            approval_service.reject(account.id, edit.id, "Again", admin_user.id)

    def test_unknown_or_foreign_proposal(self, db_session, account, other_account, worker_user, other_admin, product):
        sale = _sell(account, worker_user, product)
        edit = audit_service.propose_deletion(account.id, sale.id, "Dup", worker_user.id)

        with pytest.raises(NotFoundError):
            approval_service.approve(account.id, 987654, "OK", other_admin.id)
        with pytest.raises(NotFoundError):
            approval_service.approve(other_account.id, edit.id, "OK", other_admin.id)


class TestReject:

    @pytest.mark.parametrize("changes", [
        {"boxes_quantity": 5},
        {"payment_method": "bank_transfer"},
        None,
    ])
    def test_reject_changes_nothing(self, db_session, account, worker_user, admin_user, product, changes):
        sale = _sell(account, worker_user, product)
        before = _sale(sale.id).to_dict()
        stock_before = _stock(product.id)

        if changes is None:
            proposal = audit_service.propose_deletion(account.id, sale.id, "Dup", worker_user.id)
        else:
            proposal = audit_service.propose_edit(account.id, sale.id, changes, "Fix", worker_user.id)

        audit = approval_service.reject(account.id, proposal.id, "Not justified", admin_user.id)

        assert audit.approval_status == "rejected"
        assert audit.approved_by_user_id == admin_user.id
        assert audit.decision_reason == "Not justified"
        assert audit.decided_at is not None
        assert _stock(product.id) == stock_before
        assert _sale(sale.id).to_dict() == before
