"""
FIFO Service - expiry-ordered stock consumption.

Stock leaves the system only through consume_fifo(): units are drawn from
the live batch closest to expiry first (oldest receipt first on equal
expiry dates). The batch decrements, the aggregate decrement and the single
`consumption` adjustment happen in one transaction; if the batches cannot
cover the request nothing is changed.

Session Pattern:
All functions accept an optional `session` parameter. If provided, the function
uses the caller's session (for transaction atomicity). If None, the function
creates its own session via session_scope().
"""

import logging
from typing import Any, Dict, List, Optional

from batch_tracker.models import Batch, Product
from batch_tracker.services import adjustment_service
from batch_tracker.services.batch_service import (
    FIFO_ORDER,
    collect_errors,
    ensure_stock_consistent,
    lock_live_batches,
    lock_product,
    resolve_actor,
)
from batch_tracker.services.database import session_scope
from batch_tracker.services.exceptions import (
    DatabaseError,
    InsufficientBatchStock,
    NoBatchesAvailable,
    ProductNotFound,
    ServiceError,
    ValidationError,
)
from batch_tracker.services.logging_utils import get_service_logger, log_operation
from batch_tracker.utils.constants import ADJUSTMENT_CONSUMPTION
from batch_tracker.utils.validators import validate_quantity

logger = get_service_logger(__name__)


def _format_breakdown(breakdown: List[Dict[str, Any]]) -> str:
    return ", ".join(f"{entry['batch_code']}({entry['units_consumed']})" for entry in breakdown)


def consume_fifo(
    product_id: int,
    quantity: int,
    actor: Optional[str] = None,
    note: Optional[str] = None,
    dry_run: bool = False,
    session=None,
) -> List[Dict[str, Any]]:
    """Consume product stock using FIFO-by-expiry logic.

    **CRITICAL FUNCTION**: This is the only path by which stock leaves batches.

    Algorithm:
        1. Lock the product row, then its live batches ordered by
           expiry_date ASC, created_at ASC, id ASC
        2. Refuse if there are no live batches, if the aggregate is below
           the batch total, or if the batches hold fewer units than requested
        3. Walk the batches taking min(remaining in batch, still needed)
        4. Delete exhausted batches, decrement partially used ones
        5. Decrement the aggregate by `quantity`
        6. Record one `consumption` adjustment naming every batch touched

    Args:
        product_id: Product to consume
        quantity: Units to consume (whole number > 0)
        actor: Who consumed the stock (default "system")
        note: Optional context recorded on the adjustment (e.g. order reference)
        dry_run: If True, compute the breakdown without modifying anything
                 and without recording an adjustment
        session: Optional database session. If provided, the caller owns the
                 transaction and this function will NOT commit. If None,
                 this function manages its own transaction via session_scope().

    Returns:
        List of dicts, one per batch touched, in consumption order:
            - "batch_id" (int)
            - "batch_code" (str)
            - "units_consumed" (int)
            - "expiry_date" (date)
            - "remaining_in_batch" (int): 0 means the batch was exhausted

    Raises:
        ValidationError: If quantity is not a whole number > 0
        ProductNotFound: If the product doesn't exist
        NoBatchesAvailable: If the product has no live batches
        StockConsistencyError: If the aggregate is below the batch total
        InsufficientBatchStock: If live batches hold fewer units than requested
        DatabaseError: If the database operation fails

    Note:
        - Exhausted batches are deleted, not kept at quantity 0
        - Untracked legacy stock (aggregate above batch total) is never consumed
        - When session is provided, caller is responsible for commit/rollback
    """
    errors = collect_errors(validate_quantity(quantity))
    if errors:
        log_operation(
            logger,
            operation="consume_fifo",
            outcome="validation_failed",
            level=logging.WARNING,
            product_id=product_id,
            quantity=quantity,
        )
        raise ValidationError(errors)

    actor = resolve_actor(actor)

    def _do_consume(sess):
        """Inner function that performs the actual FIFO consumption logic."""
        product = lock_product(sess, product_id)
        batches = lock_live_batches(sess, product_id)

        if not batches:
            log_operation(
                logger,
                operation="consume_fifo",
                outcome="no_batches",
                level=logging.WARNING,
                product_id=product_id,
                stock=product.stock,
            )
            raise NoBatchesAvailable(product_id)

        available = sum(batch.quantity for batch in batches)
        ensure_stock_consistent(product, available, "consume_fifo")

        if available < quantity:
            log_operation(
                logger,
                operation="consume_fifo",
                outcome="insufficient_stock",
                level=logging.WARNING,
                product_id=product_id,
                requested=quantity,
                available=available,
            )
            raise InsufficientBatchStock(product_id, quantity, available)

        breakdown = []
        remaining_needed = quantity

        for batch in batches:
            if remaining_needed <= 0:
                break

            units = min(batch.quantity, remaining_needed)
            remaining_in_batch = batch.quantity - units
            remaining_needed -= units

            breakdown.append(
                {
                    "batch_id": batch.id,
                    "batch_code": batch.batch_code,
                    "units_consumed": units,
                    "expiry_date": batch.expiry_date,
                    "remaining_in_batch": remaining_in_batch,
                }
            )

            if dry_run:
                continue
            if remaining_in_batch == 0:
                sess.delete(batch)
            else:
                batch.take(units)

        if dry_run:
            log_operation(
                logger,
                operation="consume_fifo",
                outcome="dry_run",
                level=logging.DEBUG,
                product_id=product_id,
                quantity=quantity,
            )
            return breakdown

        stock_before = product.stock
        product.stock = stock_before - quantity

        detail = f"FIFO: {_format_breakdown(breakdown)}"
        adjustment_service.record_adjustment(
            product.id,
            ADJUSTMENT_CONSUMPTION,
            stock_before,
            product.stock,
            note=f"{note}; {detail}" if note else detail,
            actor=actor,
            session=sess,
        )
        sess.flush()

        log_operation(
            logger,
            operation="consume_fifo",
            outcome="success",
            product_id=product_id,
            quantity=quantity,
            batches_touched=len(breakdown),
            stock_after=product.stock,
        )
        return breakdown

    try:
        if session is not None:
            return _do_consume(session)
        with session_scope(write=not dry_run) as sess:
            return _do_consume(sess)
    except ServiceError:
        raise
    except Exception as e:
        raise DatabaseError(f"Failed to consume stock for product {product_id}", original_error=e)


def check_batch_availability(product_id: int, quantity: int, session=None) -> Dict[str, Any]:
    """
    Check whether live batches can cover a quantity, without consuming.

    Transaction boundary: Read-only operation.

    Args:
        product_id: Product to check
        quantity: Units wanted
        session: Optional SQLAlchemy session

    Returns:
        Dict with keys:
        - product_id
        - requested: Units wanted
        - available: Units held in live batches
        - shortage: Units missing (0 when available)
        - can_fulfill: True when available >= requested
        - batches: Number of live batches

    Raises:
        ValidationError: If quantity is not a whole number > 0
        ProductNotFound: If the product doesn't exist
    """
    errors = collect_errors(validate_quantity(quantity))
    if errors:
        raise ValidationError(errors)

    def _impl(sess):
        if sess.get(Product, product_id) is None:
            raise ProductNotFound(product_id)

        batches = (
            sess.query(Batch)
            .filter(Batch.product_id == product_id, Batch.quantity > 0)
            .order_by(*FIFO_ORDER)
            .all()
        )
        available = sum(batch.quantity for batch in batches)
        return {
            "product_id": product_id,
            "requested": quantity,
            "available": available,
            "shortage": max(0, quantity - available),
            "can_fulfill": available >= quantity,
            "batches": len(batches),
        }

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)
