"""Tests for the batch ledger service.

Tests cover:
- create_batch(): codes, sequence numbers, aggregate and adjustment
- get_batch() / get_product_batches(): ledger queries
- reconcile_stock() / reconcile_all_products(): aggregate rebuild
- get_batch_stock_summary(): aggregate vs. ledger report
- adjust_batch_quantity() / delete_batch() / discard_batch(): batch corrections
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from batch_tracker.models import Batch, Product, StockAdjustment
from batch_tracker.services import adjustment_service, batch_service, product_service
from batch_tracker.services.exceptions import (
    BatchNotFound,
    ProductNotFound,
    StockConsistencyError,
    ValidationError,
)
from batch_tracker.utils.batch_codes import parse_batch_code
from batch_tracker.utils.datetime_utils import today


def _product(session, product_id):
    session.expire_all()
    return session.get(Product, product_id)


def _adjustments(session, product_id, category=None):
    session.expire_all()
    query = session.query(StockAdjustment).filter(StockAdjustment.product_id == product_id)
    if category:
        query = query.filter(StockAdjustment.category == category)
    return query.order_by(StockAdjustment.id).all()


# =============================================================================
# create_batch
# =============================================================================


class TestCreateBatch:
    """Tests for restocking."""

    def test_create_batch(self, test_db, sample_product):
        session = test_db()
        expiry = today() + timedelta(days=30)

        batch = batch_service.create_batch(sample_product.id, 12, expiry, actor="maria")

        assert batch.id is not None
        assert batch.quantity == 12
        assert batch.expiry_date == expiry
        assert batch.sequence == 1
        assert batch.batch_code == f"AcDeOl-1-{today().strftime('%d%m%Y')}"

        product = _product(session, sample_product.id)
        assert product.stock == 12
        assert product.last_batch_sequence == 1

        restocks = _adjustments(session, sample_product.id, "batch")
        assert len(restocks) == 1
        assert restocks[0].quantity_before == 0
        assert restocks[0].quantity_after == 12
        assert restocks[0].difference == 12
        assert restocks[0].actor == "maria"
        assert batch.batch_code in restocks[0].note

    def test_sequence_increments(self, test_db, sample_product, make_batch):
        codes = [make_batch(sample_product.id, 1, 10).batch_code for _ in range(3)]
        assert [parse_batch_code(code)["sequence"] for code in codes] == [1, 2, 3]

    def test_sequence_not_reused_after_deletion(self, test_db, sample_product, make_batch):
        """Exhausting the newest batch doesn't free its sequence number."""
        session = test_db()
        make_batch(sample_product.id, 2, 10)
        second = make_batch(sample_product.id, 2, 20)

        batch_service.discard_batch(second.id)
        third = make_batch(sample_product.id, 2, 30)

        assert third.sequence == 3
        assert _product(session, sample_product.id).last_batch_sequence == 3

    def test_sequence_is_per_product(self, test_db, sample_product, make_batch):
        other = product_service.create_product("Sal Marina", Decimal("1.00"), "kg")
        make_batch(sample_product.id, 1, 10)
        make_batch(sample_product.id, 1, 10)

        batch = make_batch(other.id, 1, 10)

        assert batch.sequence == 1
        assert batch.batch_code.startswith("SaMa-1-")

    def test_sequence_skips_imported_rows(self, test_db, sample_product, make_batch, insert_batch):
        """Rows carrying a sequence above the counter are never collided with."""
        insert_batch(sample_product.id, 1, 5, sequence=7)
        assert make_batch(sample_product.id, 1, 10).sequence == 8

    def test_default_actor(self, test_db, sample_product, make_batch):
        session = test_db()
        batch_service.create_batch(sample_product.id, 1, today() + timedelta(days=3))
        assert _adjustments(session, sample_product.id)[0].actor == "system"

    @pytest.mark.parametrize("quantity", [0, -1, 2.5, "3"])
    def test_invalid_quantity(self, test_db, sample_product, quantity):
        with pytest.raises(ValidationError):
            batch_service.create_batch(sample_product.id, quantity, today() + timedelta(days=3))

    @pytest.mark.parametrize("offset", [0, -1])
    def test_expiry_must_be_future(self, test_db, sample_product, offset):
        session = test_db()
        with pytest.raises(ValidationError, match="after today"):
            batch_service.create_batch(sample_product.id, 1, today() + timedelta(days=offset))
        assert _product(session, sample_product.id).stock == 0
        assert _adjustments(session, sample_product.id) == []

    def test_missing_expiry(self, test_db, sample_product):
        with pytest.raises(ValidationError):
            batch_service.create_batch(sample_product.id, 1, None)

    def test_actor_too_long(self, test_db, sample_product):
        session = test_db()
        with pytest.raises(ValidationError, match="Actor"):
            batch_service.create_batch(
                sample_product.id, 1, today() + timedelta(days=3), actor="x" * 101
            )
        assert _product(session, sample_product.id).stock == 0
        assert _adjustments(session, sample_product.id) == []

    def test_unknown_product(self, test_db):
        with pytest.raises(ProductNotFound):
            batch_service.create_batch(9999, 1, today() + timedelta(days=3))


# =============================================================================
# Queries
# =============================================================================


class TestBatchQueries:
    """Tests for get_batch() and get_product_batches()."""

    def test_get_batch(self, test_db, sample_product, make_batch):
        created = make_batch(sample_product.id, 4, 10)
        assert batch_service.get_batch(created.id).batch_code == created.batch_code

    def test_get_batch_not_found(self, test_db):
        with pytest.raises(BatchNotFound):
            batch_service.get_batch(9999)

    def test_product_batches_in_fifo_order(self, test_db, sample_product, make_batch):
        make_batch(sample_product.id, 4, 20)
        make_batch(sample_product.id, 6, 5)

        batches = batch_service.get_product_batches(sample_product.id)

        assert [b["quantity"] for b in batches] == [6, 4]
        assert batches[0]["days_until_expiry"] == 5
        assert set(batches[0]) >= {"batch_id", "batch_code", "expiry_date", "sequence"}

    def test_empty_batches_hidden_by_default(self, test_db, sample_product, make_batch, insert_batch):
        make_batch(sample_product.id, 4, 20)
        insert_batch(sample_product.id, 0, 10)

        assert len(batch_service.get_product_batches(sample_product.id)) == 1
        assert len(batch_service.get_product_batches(sample_product.id, include_empty=True)) == 2

    def test_product_batches_unknown_product(self, test_db):
        with pytest.raises(ProductNotFound):
            batch_service.get_product_batches(9999)


# =============================================================================
# Reconciliation
# =============================================================================


class TestReconcileStock:
    """Tests for rebuilding the aggregate from the ledger."""

    def test_reconcile_consistent_is_noop(self, test_db, sample_product, make_batch):
        session = test_db()
        make_batch(sample_product.id, 5, 10)
        before = len(_adjustments(session, sample_product.id))

        result = batch_service.reconcile_stock(sample_product.id)

        assert result["changed"] is False
        assert result["new_stock"] == 5
        assert len(_adjustments(session, sample_product.id)) == before

    def test_reconcile_drops_legacy_stock(self, test_db, sample_product, make_batch):
        session = test_db()
        make_batch(sample_product.id, 5, 10)
        adjustment_service.set_stock(sample_product.id, 9)

        result = batch_service.reconcile_stock(sample_product.id, actor="auditor")

        assert result == {
            "product_id": sample_product.id,
            "previous_stock": 9,
            "batch_total": 5,
            "new_stock": 5,
            "changed": True,
        }
        correction = _adjustments(session, sample_product.id, "correction")[-1]
        assert correction.difference == -4
        assert correction.actor == "auditor"

    def test_reconcile_is_idempotent(self, test_db, sample_product, make_batch):
        session = test_db()
        make_batch(sample_product.id, 5, 10)
        adjustment_service.set_stock(sample_product.id, 2)

        batch_service.reconcile_stock(sample_product.id)
        count = len(_adjustments(session, sample_product.id))
        second = batch_service.reconcile_stock(sample_product.id)

        assert second["changed"] is False
        assert _product(session, sample_product.id).stock == 5
        assert len(_adjustments(session, sample_product.id)) == count

    def test_reconcile_all_products(self, test_db, sample_product, make_batch):
        other = product_service.create_product("Sal Marina", Decimal("1.00"), "kg")
        make_batch(sample_product.id, 5, 10)
        make_batch(other.id, 3, 10)
        adjustment_service.set_stock(other.id, 1)

        corrected = batch_service.reconcile_all_products()

        assert [r["product_id"] for r in corrected] == [other.id]
        assert corrected[0]["new_stock"] == 3
        assert batch_service.reconcile_all_products() == []

    def test_reconcile_unknown_product(self, test_db):
        with pytest.raises(ProductNotFound):
            batch_service.reconcile_stock(9999)


class TestBatchStockSummary:
    """Tests for get_batch_stock_summary()."""

    def test_summary_with_legacy_stock(self, test_db, sample_product, make_batch):
        make_batch(sample_product.id, 5, 10)
        make_batch(sample_product.id, 2, 3)
        adjustment_service.set_stock(sample_product.id, 10)

        summary = batch_service.get_batch_stock_summary(sample_product.id)

        assert summary["total_stock"] == 10
        assert summary["stock_in_batches"] == 7
        assert summary["stock_outside_batches"] == 3
        assert summary["batch_count"] == 2
        assert summary["is_consistent"] is True
        assert [b["quantity"] for b in summary["batches"]] == [2, 5]

    def test_summary_flags_inconsistency(self, test_db, sample_product, make_batch):
        make_batch(sample_product.id, 5, 10)
        adjustment_service.set_stock(sample_product.id, 1)

        summary = batch_service.get_batch_stock_summary(sample_product.id)

        assert summary["is_consistent"] is False
        assert summary["stock_outside_batches"] == -4


# =============================================================================
# Batch corrections
# =============================================================================


class TestAdjustBatchQuantity:
    """Tests for adjust_batch_quantity()."""

    def test_adjust_down(self, test_db, sample_product, make_batch):
        session = test_db()
        batch = make_batch(sample_product.id, 10, 10)

        result = batch_service.adjust_batch_quantity(batch.id, 7, note="stocktake")

        assert result["previous_quantity"] == 10
        assert result["new_quantity"] == 7
        assert result["deleted"] is False
        assert session.get(Batch, batch.id).quantity == 7
        assert _product(session, sample_product.id).stock == 7
        correction = _adjustments(session, sample_product.id, "correction")[0]
        assert correction.difference == -3
        assert correction.note.startswith("stocktake; ")

    def test_adjust_up(self, test_db, sample_product, make_batch):
        session = test_db()
        batch = make_batch(sample_product.id, 10, 10)

        batch_service.adjust_batch_quantity(batch.id, 12)

        assert _product(session, sample_product.id).stock == 12

    def test_adjust_to_zero_removes_batch(self, test_db, sample_product, make_batch):
        session = test_db()
        batch = make_batch(sample_product.id, 10, 10)

        result = batch_service.adjust_batch_quantity(batch.id, 0)

        assert result["deleted"] is True
        session.expire_all()
        assert session.get(Batch, batch.id) is None
        assert _product(session, sample_product.id).stock == 0

    def test_adjust_unchanged_returns_none(self, test_db, sample_product, make_batch):
        session = test_db()
        batch = make_batch(sample_product.id, 10, 10)
        assert batch_service.adjust_batch_quantity(batch.id, 10) is None
        assert _adjustments(session, sample_product.id, "correction") == []

    def test_adjust_refused_when_inconsistent(self, test_db, sample_product, make_batch):
        batch = make_batch(sample_product.id, 10, 10)
        adjustment_service.set_stock(sample_product.id, 3)

        with pytest.raises(StockConsistencyError):
            batch_service.adjust_batch_quantity(batch.id, 9)

    def test_adjust_invalid_quantity(self, test_db, sample_product, make_batch):
        batch = make_batch(sample_product.id, 10, 10)
        with pytest.raises(ValidationError):
            batch_service.adjust_batch_quantity(batch.id, -1)

    def test_adjust_unknown_batch(self, test_db):
        with pytest.raises(BatchNotFound):
            batch_service.adjust_batch_quantity(9999, 1)


class TestDeleteAndDiscard:
    """Tests for delete_batch() and discard_batch()."""

    def test_delete_empty_batch(self, test_db, sample_product, insert_batch):
        session = test_db()
        batch_id = insert_batch(sample_product.id, 0, 10)

        result = batch_service.delete_batch(batch_id, actor="maria")

        assert result["batch_id"] == batch_id
        session.expire_all()
        assert session.get(Batch, batch_id) is None
        deletion = _adjustments(session, sample_product.id, "deletion")[0]
        assert deletion.difference == 0
        assert deletion.actor == "maria"

    def test_delete_batch_with_units_refused(self, test_db, sample_product, make_batch):
        session = test_db()
        batch = make_batch(sample_product.id, 3, 10)

        with pytest.raises(ValidationError, match="discard"):
            batch_service.delete_batch(batch.id)

        assert session.get(Batch, batch.id).quantity == 3

    def test_discard_batch(self, test_db, sample_product, make_batch, insert_batch):
        session = test_db()
        expired_id = insert_batch(sample_product.id, 4, -2)
        make_batch(sample_product.id, 6, 10)

        result = batch_service.discard_batch(expired_id, note="expired")

        assert result["units_discarded"] == 4
        assert result["stock_before"] == 10
        assert result["stock_after"] == 6
        session.expire_all()
        assert session.get(Batch, expired_id) is None
        deletion = _adjustments(session, sample_product.id, "deletion")[0]
        assert deletion.difference == -4
        assert deletion.note.startswith("expired; ")

    def test_discard_unknown_batch(self, test_db):
        with pytest.raises(BatchNotFound):
            batch_service.discard_batch(9999)
