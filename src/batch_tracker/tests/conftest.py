"""Pytest configuration and fixtures for Batch Tracker tests."""

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker, scoped_session

from batch_tracker.models import Base, Batch
from batch_tracker.services.database import create_database_engine
from batch_tracker.utils.config import reset_config
from batch_tracker.utils.datetime_utils import today


@pytest.fixture(autouse=True)
def fresh_config(monkeypatch):
    """Give every test a configuration built from a clean environment."""
    for name in (
        "BATCH_TRACKER_ENV",
        "BATCH_TRACKER_DATABASE_URL",
        "BATCH_TRACKER_DEFAULT_SHELF_LIFE_DAYS",
        "BATCH_TRACKER_ADJUSTMENT_RETENTION_DAYS",
        "BATCH_TRACKER_LOW_STOCK_THRESHOLD",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture(scope="function")
def test_db(monkeypatch):
    """Provide a clean test database for each test function.

    This fixture:
    1. Creates an in-memory SQLite database (same engine setup as production)
    2. Creates all tables
    3. Points the services' session factory at it
    4. Drops all tables after the test completes
    """
    engine = create_database_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    Session = scoped_session(session_factory)

    import batch_tracker.services.database as db_module

    monkeypatch.setattr(db_module, "get_session_factory", lambda: Session)

    yield Session

    Session.remove()
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def sample_product(test_db):
    """A product with no stock and no batches."""
    from batch_tracker.services import product_service

    return product_service.create_product(
        "Aceite de Oliva",
        Decimal("8.50"),
        "bottle",
        category="Aceites",
    )


@pytest.fixture
def make_batch(test_db):
    """Restock helper: make_batch(product_id, quantity, days_until_expiry)."""
    from batch_tracker.services import batch_service

    def _make(product_id, quantity, days, actor="tester"):
        return batch_service.create_batch(
            product_id, quantity, today() + timedelta(days=days), actor=actor
        )

    return _make


@pytest.fixture
def insert_batch(test_db):
    """Insert a batch row directly, bypassing restock validation.

    Used for states restock refuses to create (already expired, empty).
    The product's aggregate is raised by the same quantity.
    """
    from batch_tracker.models import Product

    def _insert(product_id, quantity, days, sequence=99):
        session = test_db()
        product = session.get(Product, product_id)
        batch = Batch(
            product_id=product_id,
            batch_code=f"LEGACY-{sequence}-01012020",
            sequence=sequence,
            quantity=quantity,
            expiry_date=today() + timedelta(days=days),
        )
        session.add(batch)
        product.stock += quantity
        session.commit()
        batch_id = batch.id
        session.close()
        return batch_id

    return _insert


@pytest.fixture
def file_store(tmp_path, monkeypatch):
    """Point the global engine at a fresh SQLite file under tmp_path.

    Used where the in-memory test_db cannot stand in: schema management
    and several threads writing through their own sessions.
    """
    from batch_tracker.services import database

    db_path = tmp_path / "inventory.db"
    monkeypatch.setenv("BATCH_TRACKER_DATABASE_URL", f"sqlite:///{db_path}")
    reset_config()
    database.close_connections()
    yield db_path
    database.close_connections()
