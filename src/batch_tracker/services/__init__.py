"""Inventory services for Batch Tracker.

Each module is a set of plain functions. They open their own
session_scope() unless a session is passed in, validate input before
writing, and raise ServiceError subclasses.

- batch_service: batch ledger, restocking, reconciliation, batch corrections
- fifo_service: consumption ordered by expiry
- adjustment_service: append-only adjustment ledger and manual stock correction
- expiry_service: read-only expiry radar
- product_service: products and their starting stock
- stock_alert_service: low-stock alerts with an injected suppression cache

Support modules: database (engine and sessions), exceptions, logging_utils.
"""

from . import (
    database,
    adjustment_service,
    batch_service,
    fifo_service,
    expiry_service,
    product_service,
    stock_alert_service,
)

from .exceptions import (
    ServiceError,
    ValidationError,
    ProductNotFound,
    BatchNotFound,
    NoBatchesAvailable,
    InsufficientBatchStock,
    StockConsistencyError,
    DatabaseError,
)

__all__ = [
    "database",
    "adjustment_service",
    "batch_service",
    "fifo_service",
    "expiry_service",
    "product_service",
    "stock_alert_service",
    "ServiceError",
    "ValidationError",
    "ProductNotFound",
    "BatchNotFound",
    "NoBatchesAvailable",
    "InsufficientBatchStock",
    "StockConsistencyError",
    "DatabaseError",
]
