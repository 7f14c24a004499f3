"""Tests for product lifecycle operations."""

from datetime import timedelta
from decimal import Decimal

import pytest

from batch_tracker.models import Batch, StockAdjustment
from batch_tracker.services import batch_service, product_service
from batch_tracker.services.exceptions import ProductNotFound, ServiceError, ValidationError
from batch_tracker.utils.datetime_utils import today


class TestCreateProduct:
    """Tests for create_product()."""

    def test_create_without_stock(self, test_db):
        session = test_db()

        product = product_service.create_product("Harina", Decimal("1.20"), "kg")

        assert product.id is not None
        assert product.stock == 0
        assert product.initial_stock == 0
        assert session.query(Batch).count() == 0
        assert session.query(StockAdjustment).count() == 0

    def test_starting_stock_becomes_first_batch(self, test_db):
        session = test_db()
        expiry = today() + timedelta(days=60)

        product = product_service.create_product(
            "Arroz Premium Blanco", "2.40", "kg", stock=12, expiry_date=expiry, actor="maria"
        )

        assert product.stock == 12
        assert product.initial_stock == 12
        assert product.price == Decimal("2.40")
        batch = session.query(Batch).filter(Batch.product_id == product.id).one()
        assert batch.quantity == 12
        assert batch.expiry_date == expiry
        assert batch.batch_code.startswith("ArPrBl-1-")
        adjustment = session.query(StockAdjustment).one()
        assert adjustment.category == "batch"
        assert adjustment.actor == "maria"
        assert adjustment.note.startswith("Starting stock; ")

    def test_default_shelf_life(self, test_db):
        session = test_db()
        product = product_service.create_product("Harina", 1, "kg", stock=3)
        batch = session.query(Batch).filter(Batch.product_id == product.id).one()
        assert batch.expiry_date == today() + timedelta(days=365)

    def test_configured_shelf_life(self, test_db, monkeypatch):
        from batch_tracker.utils.config import reset_config

        session = test_db()
        monkeypatch.setenv("BATCH_TRACKER_DEFAULT_SHELF_LIFE_DAYS", "10")
        reset_config()

        product = product_service.create_product("Harina", 1, "kg", stock=3)

        batch = session.query(Batch).filter(Batch.product_id == product.id).one()
        assert batch.expiry_date == today() + timedelta(days=10)

    def test_invalid_fields_rejected(self, test_db):
        session = test_db()
        with pytest.raises(ValidationError) as exc_info:
            product_service.create_product("  ", -1, "kg", stock=-2)
        assert len(exc_info.value.errors) == 3
        assert session.query(Batch).count() == 0

    def test_actor_too_long_rejected_up_front(self, test_db):
        with pytest.raises(ValidationError, match="Actor"):
            product_service.create_product("Harina", 1, "kg", stock=3, actor="x" * 101)
        assert product_service.get_all_products() == []

    def test_past_expiry_rejected_up_front(self, test_db):
        with pytest.raises(ValidationError, match="after today"):
            product_service.create_product(
                "Harina", 1, "kg", stock=3, expiry_date=today() - timedelta(days=1)
            )
        assert product_service.get_all_products() == []

    def test_failed_restock_keeps_product(self, test_db, monkeypatch, caplog):
        """A failing starting restock is logged; the product still exists."""

        def _fail(*args, **kwargs):
            raise ServiceError("ledger unavailable")

        monkeypatch.setattr(batch_service, "create_batch", _fail)

        product = product_service.create_product("Harina", 1, "kg", stock=5)

        assert product.stock == 0
        assert product.initial_stock == 5
        assert "initial_restock_failed" in caplog.text


class TestProductQueries:
    """Tests for get_product() and get_all_products()."""

    def test_get_product(self, test_db, sample_product):
        assert product_service.get_product(sample_product.id).title == "Aceite de Oliva"

    def test_get_product_not_found(self, test_db):
        with pytest.raises(ProductNotFound):
            product_service.get_product(9999)

    def test_get_all_products_by_category(self, test_db, sample_product):
        product_service.create_product("Harina", 1, "kg", category="Harinas")
        product_service.create_product("Arroz", 1, "kg", category="Harinas")

        titles = [p.title for p in product_service.get_all_products(category="Harinas")]

        assert titles == ["Arroz", "Harina"]
        assert len(product_service.get_all_products()) == 3


class TestUpdateProduct:
    """Tests for update_product()."""

    def test_update_descriptive_fields(self, test_db, sample_product):
        product = product_service.update_product(
            sample_product.id, {"title": "Aceite Virgen", "price": "9.10"}
        )
        assert product.title == "Aceite Virgen"
        assert product.price == Decimal("9.10")

    @pytest.mark.parametrize("field", ["stock", "initial_stock", "last_batch_sequence"])
    def test_engine_fields_rejected(self, test_db, sample_product, field):
        with pytest.raises(ValidationError, match="managed by the inventory engine"):
            product_service.update_product(sample_product.id, {field: 50})
        assert product_service.get_product(sample_product.id).stock == 0

    def test_unknown_field_rejected(self, test_db, sample_product):
        with pytest.raises(ValidationError, match="Unknown product field"):
            product_service.update_product(sample_product.id, {"colour": "green"})

    def test_invalid_value_rejected(self, test_db, sample_product):
        with pytest.raises(ValidationError):
            product_service.update_product(sample_product.id, {"price": -3})

    def test_update_unknown_product(self, test_db):
        with pytest.raises(ProductNotFound):
            product_service.update_product(9999, {"title": "X"})

    def test_title_change_affects_new_codes_only(self, test_db, sample_product, make_batch):
        first = make_batch(sample_product.id, 1, 10)
        product_service.update_product(sample_product.id, {"title": "Vinagre"})

        second = make_batch(sample_product.id, 1, 10)

        assert first.batch_code.startswith("AcDeOl-1-")
        assert second.batch_code.startswith("Vi-2-")
