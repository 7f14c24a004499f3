"""Errors raised by the inventory services.

Callers catch ServiceError for any refused or failed operation. Each
subclass carries the values needed to report it (ids, requested and
available quantities, validation messages).

    ServiceError
    ├── ValidationError
    ├── ProductNotFound
    ├── BatchNotFound
    ├── NoBatchesAvailable
    ├── InsufficientBatchStock
    ├── StockConsistencyError
    └── DatabaseError
"""


class ServiceError(Exception):
    """Base class for every error the services raise on purpose."""


class ValidationError(ServiceError):
    """Input rejected before anything was written; ``errors`` lists each problem."""

    def __init__(self, errors: list):
        self.errors = errors
        super().__init__("Validation failed: " + "; ".join(errors))


class ProductNotFound(ServiceError):
    """No product row with this id."""

    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__(f"Product with ID {product_id} not found")


class BatchNotFound(ServiceError):
    """No batch row with this id (it may have been exhausted and deleted)."""

    def __init__(self, batch_id: int):
        self.batch_id = batch_id
        super().__init__(f"Batch with ID {batch_id} not found")


class NoBatchesAvailable(ServiceError):
    """Raised when a product has no live batches to consume from.

    The product's aggregate stock may still be positive (untracked legacy
    stock); consumption only ever draws from batches.
    """

    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__(f"Product {product_id} has no batches with remaining stock")


class InsufficientBatchStock(ServiceError):
    """Raised when live batches cannot cover a requested quantity.

    Args:
        product_id: Product being consumed
        requested: Units requested
        available: Units held in live batches

    Example:
        >>> raise InsufficientBatchStock(7, 10, 4)
        InsufficientBatchStock: Insufficient batch stock for product 7: requested 10, available 4
    """

    def __init__(self, product_id: int, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient batch stock for product {product_id}: "
            f"requested {requested}, available {available}"
        )


class StockConsistencyError(ServiceError):
    """Raised when a product's aggregate stock is lower than its batch total.

    The operation is aborted and nothing is corrected automatically; run
    reconcile_stock() for the product to repair the aggregate.
    """

    def __init__(self, product_id: int, stock: int, batch_total: int):
        self.product_id = product_id
        self.stock = stock
        self.batch_total = batch_total
        super().__init__(
            f"Stock inconsistency for product {product_id}: aggregate stock {stock} "
            f"is lower than batch total {batch_total}; run reconcile_stock({product_id})"
        )


class DatabaseError(ServiceError):
    """Raised when a database operation fails."""

    def __init__(self, message: str, original_error: Exception = None):
        self.original_error = original_error
        super().__init__(f"Database error: {message}")
