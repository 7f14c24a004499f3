"""
Engine, session and schema management for the inventory store.

The batch ledger, the product aggregates and the adjustment trail live in
one relational database, chosen by URL (SQLite file by default). This
module owns:

- Engine construction per backend (SQLite file, SQLite in-memory, server)
- SQLite connection pragmas and snapshot-consistent transactions
- The process-wide engine / session factory and session_scope()
- Creating, checking and resetting the inventory tables
"""

from typing import List, Optional
from contextlib import contextmanager
import logging
import sqlite3

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session, close_all_sessions
from sqlalchemy.pool import StaticPool

from ..utils.config import get_config
from ..utils.constants import TABLE_BATCH, TABLE_PRODUCT, TABLE_STOCK_ADJUSTMENT
from ..models.base import Base

logger = logging.getLogger(__name__)

INVENTORY_TABLES = (TABLE_PRODUCT, TABLE_BATCH, TABLE_STOCK_ADJUSTMENT)

# SQLite busy timeout (seconds) for file databases; writers queue this long
SQLITE_BUSY_TIMEOUT = 30

# Execution option naming the SQLite BEGIN mode for a unit of work
SQLITE_BEGIN_OPTION = "sqlite_begin"

# Process-wide engine and session factory, created on first use
_engine: Optional[Engine] = None
_SessionFactory: Optional[sessionmaker] = None


@event.listens_for(Engine, "connect")
def _configure_sqlite_connection(dbapi_connection, connection_record):
    """
    Apply SQLite pragmas to each new DB-API connection.

    Foreign keys must be on for batches and adjustments to cascade with
    their product. WAL lets radar and report reads run while a consumption
    is writing. Connections to other backends are skipped.
    """
    if not isinstance(dbapi_connection, sqlite3.Connection):
        return

    cursor = dbapi_connection.cursor()
    for pragma in ("foreign_keys=ON", "journal_mode=WAL", "synchronous=NORMAL"):
        cursor.execute(f"PRAGMA {pragma}")
    cursor.close()


def _enable_sqlite_transactions(engine: Engine) -> None:
    """
    Take over BEGIN from pysqlite so every unit of work is one transaction.

    pysqlite only opens a transaction before the first write, so a reader
    could compute a new stock level from a snapshot another writer has
    already replaced. Emitting BEGIN ourselves makes the whole unit of work
    one snapshot.

    Writing units (session_scope(write=True)) start with BEGIN IMMEDIATE
    and take the database write lock before their first read. A second
    writer then waits on the busy timeout until the first commits, and
    reads the committed stock when its turn comes.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        mode = conn.get_execution_options().get(SQLITE_BEGIN_OPTION)
        conn.exec_driver_sql(f"BEGIN {mode}" if mode else "BEGIN")


def create_database_engine(database_url: Optional[str] = None, echo: bool = False) -> Engine:
    """
    Build an engine for the inventory store.

    Args:
        database_url: SQLAlchemy URL. Defaults to the configured URL
            (BATCH_TRACKER_DATABASE_URL or the SQLite file for the environment).
        echo: Log every SQL statement

    Returns:
        Engine ready for session_scope()

    Note:
        In-memory SQLite gets a StaticPool so every session sees the same
        database. Server backends get pre-ping and rely on native
        SELECT ... FOR UPDATE for the product/batch row locks.
    """
    if database_url is None:
        database_url = get_config().database_url

    logger.info(f"Opening inventory store: {database_url}")

    if not database_url.startswith("sqlite"):
        return create_engine(database_url, echo=echo, pool_pre_ping=True)

    in_memory = ":memory:" in database_url or "mode=memory" in database_url
    if in_memory:
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT},
        )

    _enable_sqlite_transactions(engine)
    return engine


def _register_models() -> None:
    """Import the model modules so their tables exist on Base.metadata."""
    from ..models import batch, product, stock_adjustment  # noqa: F401


def init_database(engine: Optional[Engine] = None) -> None:
    """
    Create any missing inventory tables. Existing tables and data are kept.

    Args:
        engine: Engine to create the tables on (default: the global engine)
    """
    engine = engine or get_engine()

    _register_models()
    Base.metadata.create_all(engine)
    logger.info("Inventory tables ready")


def get_engine(force_recreate: bool = False) -> Engine:
    """
    Return the process-wide engine, creating it on first use.

    Args:
        force_recreate: Build a fresh engine from the current configuration
    """
    global _engine

    if force_recreate or _engine is None:
        _engine = create_database_engine()

    return _engine


def get_session_factory() -> sessionmaker:
    """
    Return the process-wide session factory, bound to get_engine().

    Sessions keep loaded attributes after commit (expire_on_commit=False) so
    services can return products and batches to callers.
    """
    global _SessionFactory

    if _SessionFactory is None:
        _SessionFactory = sessionmaker(bind=get_engine(), expire_on_commit=False)

    return _SessionFactory


def get_session() -> Session:
    """
    Open a session the caller must commit/rollback and close.

    Prefer session_scope(); this exists for callers that manage a longer
    unit of work themselves (e.g. one checkout covering several lines).
    """
    return get_session_factory()()


@contextmanager
def session_scope(write: bool = False):
    """
    Run a block as one inventory transaction.

    Commits when the block finishes, rolls back when it raises (the error is
    re-raised), and always closes the session. Every stock mutation, the
    batch changes behind it and its adjustment entry share one scope.

    Args:
        write: The block changes inventory. On SQLite the transaction then
            starts with BEGIN IMMEDIATE, so concurrent writers queue on the
            busy timeout instead of failing on a stale snapshot. Other
            backends rely on the row locks taken by the services.

    Yields:
        Session

    Example:
        with session_scope(write=True) as session:
            batch_service.create_batch(product_id, 24, expiry, session=session)
            fifo_service.consume_fifo(product_id, 6, session=session)
    """
    session = get_session()
    try:
        if write and not session.in_transaction():
            session.connection(execution_options={SQLITE_BEGIN_OPTION: "IMMEDIATE"})
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def missing_tables(engine: Optional[Engine] = None) -> List[str]:
    """Inventory tables not present in the database."""
    present = set(inspect(engine or get_engine()).get_table_names())
    return [table for table in INVENTORY_TABLES if table not in present]


def verify_database() -> bool:
    """
    Check that the store is reachable and holds every inventory table.

    Returns:
        False (and logs why) when a table is missing or the store is unreachable
    """
    try:
        missing = missing_tables()
    except Exception as e:
        logger.error(f"Inventory store unreachable: {e}")
        return False

    if missing:
        logger.error(f"Inventory store is missing tables: {', '.join(missing)}")
        return False
    return True


def reset_database(confirm: bool = False) -> None:
    """
    Drop and recreate every inventory table.

    This destroys all batches and the whole adjustment history, which the
    retention purge would otherwise never touch.

    Args:
        confirm: Must be True; anything else refuses to run

    Raises:
        ValueError: If confirm is not True
    """
    if confirm is not True:
        raise ValueError("reset_database() destroys the adjustment history; pass confirm=True")

    logger.warning("Dropping all inventory tables and the adjustment history")

    engine = get_engine()
    _register_models()
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)

    logger.info("Inventory tables recreated empty")


def close_connections() -> None:
    """Close open sessions and dispose of the global engine."""
    global _engine, _SessionFactory

    if _SessionFactory is not None:
        close_all_sessions()
        _SessionFactory = None

    if _engine is not None:
        _engine.dispose()
        _engine = None

    logger.info("Inventory store connections closed")


def initialize_app_database() -> None:
    """
    Prepare the store for a CLI run or application start.

    Creates the data directory and any missing tables, then verifies the
    schema. Verification failures are logged, not raised.
    """
    config = get_config()
    config.ensure_directories()

    if config.database_exists():
        logger.info(f"Using inventory store at {config.database_url}")
    else:
        logger.info(f"Creating inventory store at {config.database_path}")

    init_database(get_engine())

    if not verify_database():
        logger.warning("Inventory store failed verification after initialization")
