# Overview: Pytest coverage for the inventory ledger (guarded stock updates and movement log).

import pytest
from sqlalchemy import update

from salesdesk.errors import ConflictError, InsufficientStockError, NotFoundError, ValidationError
from salesdesk.extensions import db
from salesdesk.models import Product, StockMovement
from salesdesk.services import inventory_service
from salesdesk.validation import MAX_COLUMN_INT

from conftest import make_product


def _stock(product_id):
    product = db.session.get(Product, product_id, populate_existing=True)
    return product.stock_boxes, product.stock_grams


class TestReserveRelease:

    def test_reserve_decrements_both_units(self, db_session, mixed_product):
        inventory_service.reserve(mixed_product.id, 2, 2500)
        assert _stock(mixed_product.id) == (3, 10000)

    def test_reserve_exact_stock_reaches_zero(self, db_session, product):
        inventory_service.reserve(product.id, 10, 0)
        assert _stock(product.id) == (0, 0)

    def test_reserve_more_than_stock_fails_and_changes_nothing(self, db_session, mixed_product):
        with pytest.raises(InsufficientStockError) as exc:
            inventory_service.reserve(mixed_product.id, 6, 0)

        assert exc.value.details["available"] == {"boxes": 5, "kg": "12.500"}
        assert _stock(mixed_product.id) == (5, 12500)

    def test_reserve_is_all_or_nothing_across_units(self, db_session, mixed_product):
        # boxes would fit, kg would not: neither counter moves
        with pytest.raises(InsufficientStockError):
            inventory_service.reserve(mixed_product.id, 1, 13000)
        assert _stock(mixed_product.id) == (5, 12500)

    def test_reserve_never_converts_boxes_into_kg(self, db_session, product):
        # 10 boxes of 20 kg each, but no loose kg
        with pytest.raises(InsufficientStockError):
            inventory_service.reserve(product.id, 0, 1000)
        assert _stock(product.id) == (10, 0)

    def test_reserve_rejects_zero_and_negative(self, db_session, product):
        with pytest.raises(ValidationError):
            inventory_service.reserve(product.id, 0, 0)
        with pytest.raises(ValidationError):
            inventory_service.reserve(product.id, -1, 0)

    def test_release_increments(self, db_session, product):
        inventory_service.release(product.id, 3, 500)
        assert _stock(product.id) == (13, 500)

    def test_unknown_product(self, db_session, account):
        with pytest.raises(NotFoundError):
            inventory_service.reserve(999999, 1, 0)


class TestAdjust:

    def test_signed_delta(self, db_session, mixed_product):
        inventory_service.adjust(mixed_product.id, -2, 1500)
        assert _stock(mixed_product.id) == (3, 14000)

    def test_negative_result_rejected(self, db_session, mixed_product):
        with pytest.raises(InsufficientStockError):
            inventory_service.adjust(mixed_product.id, 1, -20000)
        assert _stock(mixed_product.id) == (5, 12500)

    def test_zero_delta_is_noop(self, db_session, product):
        before = db_session.query(StockMovement).count()
        assert inventory_service.adjust(product.id, 0, 0) is None
        assert db_session.query(StockMovement).count() == before

    def test_uncommitted_adjust_rolls_back_with_caller(self, db_session, product):
        inventory_service.adjust(product.id, -4, 0, commit=False)
        db_session.rollback()
        assert _stock(product.id) == (10, 0)


class TestMovementLog:

    def test_every_change_is_logged(self, db_session, account, mixed_product):
        inventory_service.reserve(mixed_product.id, 1, 0, note="Sale")
        inventory_service.release(mixed_product.id, 0, 250)

        movements = inventory_service.list_movements(account.id, mixed_product.id)
        types = [m.movement_type for m in movements]
        # newest first; opening stock is the first restock
        assert types == ["sale_reversal", "sale", "restock"]

        boxes = sum(m.boxes_delta for m in movements)
        grams = sum(m.grams_delta for m in movements)
        assert (boxes, grams) == _stock(mixed_product.id)

    def test_failed_reserve_logs_nothing(self, db_session, product):
        before = db_session.query(StockMovement).count()
        with pytest.raises(InsufficientStockError):
            inventory_service.reserve(product.id, 11, 0)
        assert db_session.query(StockMovement).count() == before


class TestProducts:

    def test_create_product_defaults(self, db_session, account):
        product = inventory_service.create_product(account.id, {"sku": "X-1", "name": "Mackerel"})
        data = product.to_dict()
        assert data["stock_boxes"] == 0
        assert data["stock_kg"] == "0.000"
        assert data["box_to_kg_ratio"] == "20.000"

    def test_duplicate_sku_conflicts(self, db_session, account, product):
        with pytest.raises(ConflictError):
            inventory_service.create_product(account.id, {"sku": "TIL-001", "name": "Again"})

    def test_same_sku_allowed_in_another_account(self, db_session, product, other_account):
        other = inventory_service.create_product(other_account.id, {"sku": "TIL-001", "name": "Theirs"})
        assert other.id != product.id

    def test_invalid_ratio_rejected(self, db_session, account):
        with pytest.raises(ValidationError):
            inventory_service.create_product(account.id, {"sku": "R", "name": "R", "box_to_kg_ratio": "0"})

    def test_kg_precision_limited_to_grams(self, db_session, account):
        with pytest.raises(ValidationError):
            inventory_service.create_product(
                account.id, {"sku": "P", "name": "P", "opening_kg": "1.2345"}
            )

    def test_stock_status_thresholds(self, db_session, account):
        # threshold 4: <=2 critical, <=4 warning
        assert make_product(account, sku="A", boxes=2).stock_status == "critical"
        assert make_product(account, sku="B", boxes=4).stock_status == "warning"
        assert make_product(account, sku="C", boxes=5).stock_status == "ok"

    def test_total_kg_equivalent_is_display_only(self, db_session, mixed_product):
        assert mixed_product.to_dict()["total_kg_equivalent"] == "112.500"
        assert _stock(mixed_product.id) == (5, 12500)

    def test_restock_records_reason(self, db_session, account, admin_user, product):
        movement = inventory_service.restock(
            account.id, product.id, 5, 2000, reason="Delivery", user_id=admin_user.id
        )
        assert movement.movement_type == "restock"
        assert movement.note == "Delivery"
        assert _stock(product.id) == (15, 2000)

    def test_foreign_product_is_not_found(self, db_session, other_account, product):
        with pytest.raises(NotFoundError):
            inventory_service.get_product(other_account.id, product.id)

    def test_oversized_opening_stock_rejected(self, db_session, account):
        with pytest.raises(ValidationError):
            inventory_service.create_product(account.id, {"sku": "BIG", "name": "Big", "opening_boxes": 10**30})
        with pytest.raises(ValidationError):
            inventory_service.create_product(account.id, {"sku": "BIG", "name": "Big", "opening_kg": "1e30"})
        assert db_session.query(Product).filter_by(sku="BIG").count() == 0

    def test_oversized_restock_rejected(self, db_session, account, admin_user, product):
        with pytest.raises(ValidationError):
            inventory_service.restock(account.id, product.id, 10**19, 0, reason="Typo", user_id=admin_user.id)
        assert _stock(product.id) == (10, 0)

    def test_restock_cannot_overflow_counter(self, db_session, account, admin_user, product):
        db_session.execute(update(Product).where(Product.id == product.id).values(stock_boxes=MAX_COLUMN_INT - 1))
        db_session.commit()

        with pytest.raises(ValidationError) as exc:
            inventory_service.restock(account.id, product.id, 5, 0, reason="Delivery", user_id=admin_user.id)
        assert exc.value.details["boxes"] == MAX_COLUMN_INT - 1
        assert _stock(product.id) == (MAX_COLUMN_INT - 1, 0)
