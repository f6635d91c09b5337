"""
Inventory ledger: stock is derived, adjustments post deltas on today's row.
"""
import pytest

from fieldhub.models.models import InventoryDailyMovement, InventoryProduct
from fieldhub.services import inventory_ledger as ledger


@pytest.fixture
def product(db):
    row = InventoryProduct(product_code="SP-01", model_name="Daikin FTKA25", unit="bộ")
    db.add(row)
    db.commit()
    return row


class TestComputeDeltas:
    @pytest.mark.parametrize(
        "current,desired,expected",
        [
            ((20, 5), (25, 5), (5, 0)),
            ((20, 5), (20, 5), (0, 0)),
            ((20, 5), (18, 9), (-2, 4)),
            ((0, 0), (3, 1), (3, 1)),
        ],
    )
    def test_deltas(self, current, desired, expected):
        assert ledger.compute_deltas(*current, *desired) == expected


class TestLedger:
    def test_current_stock(self, db, product):
        ledger.set_month_opening(db, product.product_id, 2026, 3, 10)
        ledger.post_movement(db, product.product_id, 2026, 3, 2, 20, 5)
        db.commit()
        totals = ledger.month_totals(db, product.product_id, 2026, 3)
        assert (totals.opening_qty, totals.total_in, totals.total_out) == (10, 20, 5)
        assert totals.current_stock == 25

    def test_empty_month(self, db, product):
        assert ledger.current_stock(db, product.product_id, 2026, 4) == 0

    def test_adjustment_posts_only_the_delta(self, db, product):
        ledger.set_month_opening(db, product.product_id, 2026, 3, 0)
        ledger.post_movement(db, product.product_id, 2026, 3, 1, 20, 5)
        db.commit()

        result = ledger.apply_adjustment(db, product.product_id, 2026, 3, 15, desired_in=25, desired_out=5)
        db.commit()

        assert (result.delta_in, result.delta_out) == (5, 0)
        assert result.totals.current_stock == 20
        today = (
            db.query(InventoryDailyMovement)
            .filter(InventoryDailyMovement.product_id == product.product_id, InventoryDailyMovement.day == 15)
            .one()
        )
        assert (today.in_qty, today.out_qty) == (5, 0)
        assert today.note == ledger.MANUAL_ADJUSTMENT_NOTE
        assert ledger.month_totals(db, product.product_id, 2026, 3).total_in == 25

    def test_zero_delta_posts_nothing(self, db, product):
        ledger.post_movement(db, product.product_id, 2026, 3, 1, 7, 2)
        db.commit()
        result = ledger.apply_adjustment(db, product.product_id, 2026, 3, 20, desired_in=7, desired_out=2)
        db.commit()
        assert result.posted is False
        assert len(ledger.list_movements(db, product.product_id, 2026, 3)) == 1

    def test_same_day_movements_accumulate(self, db, product):
        ledger.post_movement(db, product.product_id, 2026, 3, 4, 3, 0)
        ledger.post_movement(db, product.product_id, 2026, 3, 4, 2, 1)
        db.commit()
        rows = ledger.list_movements(db, product.product_id, 2026, 3)
        assert len(rows) == 1
        assert (rows[0].in_qty, rows[0].out_qty) == (5, 1)

    def test_negative_stock_is_reported_not_blocked(self, db, product):
        ledger.set_month_opening(db, product.product_id, 2026, 3, 1)
        result = ledger.apply_adjustment(db, product.product_id, 2026, 3, 1, desired_in=0, desired_out=4)
        db.commit()
        assert result.totals.current_stock == -3

    def test_opening_is_created_once(self, db, product):
        ledger.ensure_month_opening(db, product.product_id, 2026, 3, 8)
        ledger.ensure_month_opening(db, product.product_id, 2026, 3, 99)
        db.commit()
        assert ledger.month_totals(db, product.product_id, 2026, 3).opening_qty == 8
