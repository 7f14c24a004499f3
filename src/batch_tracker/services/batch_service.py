"""
Batch Service - batch ledger, restocking and stock reconciliation.

This module owns the batch ledger: the per-receipt rows that are the source
of truth for a product's stock. The denormalized `Product.stock` aggregate
is kept in step with the ledger inside the same transaction, and can be
rebuilt from it with reconcile_stock().

Key Functions:
- create_batch: Restock a product with a new batch (generates the batch code)
- get_batch / get_product_batches: Ledger queries (FIFO order)
- reconcile_stock / reconcile_all_products: Rebuild the aggregate
- get_batch_stock_summary: Aggregate vs. ledger report
- adjust_batch_quantity / delete_batch / discard_batch: Batch-level corrections

Every mutation writes exactly one StockAdjustment through adjustment_service.

Session Pattern:
All functions accept an optional `session` parameter. If provided, the function
uses the caller's session (for transaction atomicity). If None, the function
creates its own session via session_scope().
"""

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func

from batch_tracker.models import Batch, Product
from batch_tracker.services import adjustment_service
from batch_tracker.services.database import session_scope
from batch_tracker.services.exceptions import (
    BatchNotFound,
    DatabaseError,
    ProductNotFound,
    ServiceError,
    StockConsistencyError,
    ValidationError,
)
from batch_tracker.services.logging_utils import get_service_logger, log_operation
from batch_tracker.utils.batch_codes import generate_batch_code
from batch_tracker.utils.constants import (
    ADJUSTMENT_BATCH,
    ADJUSTMENT_CORRECTION,
    ADJUSTMENT_DELETION,
    DEFAULT_ACTOR,
)
from batch_tracker.utils.validators import (
    sanitize_string,
    validate_actor,
    validate_expiry_date,
    validate_quantity,
)

logger = get_service_logger(__name__)

# Consumption order: soonest expiry first, then oldest receipt, then insertion
FIFO_ORDER = (Batch.expiry_date.asc(), Batch.created_at.asc(), Batch.id.asc())


# =============================================================================
# Validation helpers (shared with fifo_service and product_service)
# =============================================================================


def collect_errors(*results: Tuple[bool, str]) -> List[str]:
    """Gather the messages of failed (is_valid, error) validator results."""
    return [error for is_valid, error in results if not is_valid]


def resolve_actor(actor: Optional[str]) -> str:
    """Actor recorded on adjustments, defaulting to the system actor.

    Raises:
        ValidationError: If the actor is longer than the adjustment column allows
    """
    is_valid, error = validate_actor(actor)
    if not is_valid:
        raise ValidationError([error])
    return sanitize_string(actor) or DEFAULT_ACTOR


# =============================================================================
# Locking and ledger helpers (session-bound)
# =============================================================================


def lock_product(session, product_id: int) -> Product:
    """
    Load a product row for update.

    The product row is always locked before its batches, so concurrent
    writers on the same product serialize on it.

    Raises:
        ProductNotFound: If the product doesn't exist
    """
    product = session.query(Product).filter(Product.id == product_id).with_for_update().first()
    if product is None:
        raise ProductNotFound(product_id)
    return product


def lock_live_batches(session, product_id: int) -> List[Batch]:
    """Load a product's live batches for update, in consumption order."""
    return (
        session.query(Batch)
        .filter(Batch.product_id == product_id, Batch.quantity > 0)
        .order_by(*FIFO_ORDER)
        .with_for_update()
        .all()
    )


def live_batch_total(session, product_id: int) -> int:
    """Sum of live batch quantities for a product."""
    total = (
        session.query(func.coalesce(func.sum(Batch.quantity), 0))
        .filter(Batch.product_id == product_id, Batch.quantity > 0)
        .scalar()
    )
    return int(total or 0)


def ensure_stock_consistent(product: Product, batch_total: int, operation: str) -> None:
    """
    Abort when the aggregate has fallen below the ledger.

    Stock above the batch total is tolerated (untracked legacy stock).

    Raises:
        StockConsistencyError: If product.stock < batch_total
    """
    if product.stock < batch_total:
        log_operation(
            logger,
            operation=operation,
            outcome="consistency_error",
            level=logging.ERROR,
            product_id=product.id,
            stock=product.stock,
            batch_total=batch_total,
            remedy="reconcile_stock",
        )
        raise StockConsistencyError(product.id, product.stock, batch_total)


def batch_to_dict(batch: Batch, reference: Optional[date] = None) -> Dict[str, Any]:
    """Report shape for a batch row."""
    return {
        "batch_id": batch.id,
        "batch_code": batch.batch_code,
        "product_id": batch.product_id,
        "sequence": batch.sequence,
        "quantity": batch.quantity,
        "expiry_date": batch.expiry_date,
        "days_until_expiry": batch.days_until_expiry(reference),
        "created_at": batch.created_at,
    }


def _next_sequence(session, product: Product) -> int:
    """
    Advance the product's batch counter and return the new value.

    Rows imported without a counter still never get a reused sequence.
    """
    highest_existing = (
        session.query(func.max(Batch.sequence)).filter(Batch.product_id == product.id).scalar()
    )
    product.last_batch_sequence = max(product.last_batch_sequence or 0, highest_existing or 0) + 1
    return product.last_batch_sequence


def _load_batch_for_update(session, batch_id: int) -> tuple:
    """Lock the owning product, then the batch. Returns (product, batch)."""
    batch = session.query(Batch).filter(Batch.id == batch_id).first()
    if batch is None:
        raise BatchNotFound(batch_id)
    product = lock_product(session, batch.product_id)
    batch = session.query(Batch).filter(Batch.id == batch_id).with_for_update().first()
    if batch is None:
        raise BatchNotFound(batch_id)
    return product, batch


# =============================================================================
# Restock
# =============================================================================


def create_batch(
    product_id: int,
    quantity: int,
    expiry_date: date,
    actor: Optional[str] = None,
    note: Optional[str] = None,
    session=None,
) -> Batch:
    """
    Restock a product by creating a new batch.

    Transaction boundary: one transaction covers the sequence increment,
    the batch insert, the aggregate increment and the `batch` adjustment.

    Args:
        product_id: Product to restock
        quantity: Units received (whole number > 0)
        expiry_date: Expiry date of the received units (must be after today)
        actor: Who performed the restock (default "system")
        note: Optional free text recorded on the adjustment
        session: Optional SQLAlchemy session for transactional composition

    Returns:
        The created Batch

    Raises:
        ValidationError: If quantity or expiry_date is invalid
        ProductNotFound: If the product doesn't exist
        DatabaseError: If the database operation fails
    """
    if isinstance(expiry_date, datetime):
        expiry_date = expiry_date.date()

    errors = collect_errors(validate_quantity(quantity), validate_expiry_date(expiry_date))
    if errors:
        log_operation(
            logger,
            operation="create_batch",
            outcome="validation_failed",
            level=logging.WARNING,
            product_id=product_id,
            errors=errors,
        )
        raise ValidationError(errors)

    actor = resolve_actor(actor)

    def _impl(sess):
        product = lock_product(sess, product_id)

        sequence = _next_sequence(sess, product)
        batch_code = generate_batch_code(product.title, sequence)

        batch = Batch(
            product_id=product.id,
            batch_code=batch_code,
            sequence=sequence,
            quantity=quantity,
            expiry_date=expiry_date,
        )
        sess.add(batch)

        stock_before = product.stock
        product.stock = stock_before + quantity

        detail = f"Batch {batch_code}: +{quantity} (expires {expiry_date.isoformat()})"
        adjustment_service.record_adjustment(
            product.id,
            ADJUSTMENT_BATCH,
            stock_before,
            product.stock,
            note=f"{note}; {detail}" if note else detail,
            actor=actor,
            session=sess,
        )
        sess.flush()

        log_operation(
            logger,
            operation="create_batch",
            outcome="success",
            product_id=product.id,
            batch_id=batch.id,
            batch_code=batch_code,
            quantity=quantity,
            expiry_date=expiry_date.isoformat(),
        )
        return batch

    try:
        if session is not None:
            return _impl(session)
        with session_scope(write=True) as sess:
            return _impl(sess)
    except ServiceError:
        raise
    except Exception as e:
        raise DatabaseError(f"Failed to create batch for product {product_id}", original_error=e)


# =============================================================================
# Ledger queries
# =============================================================================


def get_batch(batch_id: int, session=None) -> Batch:
    """
    Retrieve a batch by ID.

    Raises:
        BatchNotFound: If the batch doesn't exist
    """

    def _impl(sess):
        batch = sess.query(Batch).filter(Batch.id == batch_id).first()
        if batch is None:
            raise BatchNotFound(batch_id)
        return batch

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)


def get_product_batches(
    product_id: int,
    include_empty: bool = False,
    session=None,
) -> List[Dict[str, Any]]:
    """
    List a product's batches in consumption order.

    Transaction boundary: Read-only operation.

    Args:
        product_id: Product whose batches to list
        include_empty: Also list batches with quantity 0
        session: Optional SQLAlchemy session

    Returns:
        List of batch dicts (see batch_to_dict), soonest expiry first

    Raises:
        ProductNotFound: If the product doesn't exist
    """

    def _impl(sess):
        if sess.get(Product, product_id) is None:
            raise ProductNotFound(product_id)

        query = sess.query(Batch).filter(Batch.product_id == product_id)
        if not include_empty:
            query = query.filter(Batch.quantity > 0)
        return [batch_to_dict(batch) for batch in query.order_by(*FIFO_ORDER).all()]

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)


def get_batch_stock_summary(product_id: int, session=None) -> Dict[str, Any]:
    """
    Compare a product's aggregate stock with its batch ledger.

    Transaction boundary: Read-only operation.

    Returns:
        Dict with keys:
        - product_id, product_title
        - total_stock: Product.stock
        - stock_in_batches: Sum of live batch quantities
        - stock_outside_batches: total_stock - stock_in_batches (untracked
          legacy stock; negative means the aggregate needs reconciling)
        - batch_count: Number of live batches
        - is_consistent: False when the aggregate is below the ledger
        - batches: Live batches in consumption order

    Raises:
        ProductNotFound: If the product doesn't exist
    """

    def _impl(sess):
        product = sess.get(Product, product_id)
        if product is None:
            raise ProductNotFound(product_id)

        batches = (
            sess.query(Batch)
            .filter(Batch.product_id == product_id, Batch.quantity > 0)
            .order_by(*FIFO_ORDER)
            .all()
        )
        in_batches = sum(batch.quantity for batch in batches)

        return {
            "product_id": product.id,
            "product_title": product.title,
            "total_stock": product.stock,
            "stock_in_batches": in_batches,
            "stock_outside_batches": product.stock - in_batches,
            "batch_count": len(batches),
            "is_consistent": product.stock >= in_batches,
            "batches": [batch_to_dict(batch) for batch in batches],
        }

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)


# =============================================================================
# Reconciliation
# =============================================================================


def reconcile_stock(product_id: int, actor: Optional[str] = None, session=None) -> Dict[str, Any]:
    """
    Set a product's aggregate stock to the sum of its live batches.

    Idempotent: when the aggregate already matches, nothing is written.
    A run that changes the value writes one `correction` adjustment.

    Args:
        product_id: Product to reconcile
        actor: Who triggered the reconciliation (default "system")
        session: Optional SQLAlchemy session for transactional composition

    Returns:
        Dict with keys product_id, previous_stock, batch_total, new_stock, changed

    Raises:
        ProductNotFound: If the product doesn't exist
        DatabaseError: If the database operation fails
    """
    actor = resolve_actor(actor)

    def _impl(sess):
        product = lock_product(sess, product_id)
        batches = lock_live_batches(sess, product_id)
        batch_total = sum(batch.quantity for batch in batches)

        previous = product.stock
        changed = previous != batch_total
        if changed:
            product.stock = batch_total
            adjustment_service.record_adjustment(
                product.id,
                ADJUSTMENT_CORRECTION,
                previous,
                batch_total,
                note=f"Reconciled with batch ledger ({len(batches)} live batches)",
                actor=actor,
                session=sess,
            )
            sess.flush()

        log_operation(
            logger,
            operation="reconcile_stock",
            outcome="corrected" if changed else "unchanged",
            level=logging.INFO if changed else logging.DEBUG,
            product_id=product.id,
            previous_stock=previous,
            batch_total=batch_total,
        )
        return {
            "product_id": product.id,
            "previous_stock": previous,
            "batch_total": batch_total,
            "new_stock": product.stock,
            "changed": changed,
        }

    try:
        if session is not None:
            return _impl(session)
        with session_scope(write=True) as sess:
            return _impl(sess)
    except ServiceError:
        raise
    except Exception as e:
        raise DatabaseError(f"Failed to reconcile stock for product {product_id}", original_error=e)


def reconcile_all_products(actor: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Reconcile every product, each in its own transaction.

    Returns:
        Results for the products whose aggregate changed
    """
    with session_scope() as sess:
        product_ids = [row[0] for row in sess.query(Product.id).order_by(Product.id).all()]

    corrected = []
    for product_id in product_ids:
        result = reconcile_stock(product_id, actor=actor)
        if result["changed"]:
            corrected.append(result)

    log_operation(
        logger,
        operation="reconcile_all_products",
        outcome="success",
        products_checked=len(product_ids),
        products_corrected=len(corrected),
    )
    return corrected


# =============================================================================
# Batch-level corrections
# =============================================================================


def adjust_batch_quantity(
    batch_id: int,
    new_quantity: int,
    actor: Optional[str] = None,
    note: Optional[str] = None,
    session=None,
) -> Optional[Dict[str, Any]]:
    """
    Set a batch's remaining quantity (stock count correction).

    The aggregate moves by the same delta and one `correction` adjustment
    is written. A batch corrected to 0 is removed from the ledger.

    Args:
        batch_id: Batch to correct
        new_quantity: Counted quantity (whole number >= 0)
        actor: Who made the correction
        note: Reason for the correction
        session: Optional SQLAlchemy session

    Returns:
        Dict describing the change, or None if the quantity was unchanged

    Raises:
        ValidationError: If new_quantity is invalid
        BatchNotFound: If the batch doesn't exist
        StockConsistencyError: If the aggregate is already below the ledger
        DatabaseError: If the database operation fails
    """
    errors = collect_errors(validate_quantity(new_quantity, "New quantity", allow_zero=True))
    if errors:
        raise ValidationError(errors)

    actor = resolve_actor(actor)

    def _impl(sess):
        product, batch = _load_batch_for_update(sess, batch_id)
        ensure_stock_consistent(
            product, live_batch_total(sess, product.id), "adjust_batch_quantity"
        )

        previous_quantity = batch.quantity
        delta = new_quantity - previous_quantity
        if delta == 0:
            return None

        stock_before = product.stock
        product.stock = stock_before + delta

        detail = f"Batch {batch.batch_code}: {previous_quantity} -> {new_quantity}"
        adjustment_service.record_adjustment(
            product.id,
            ADJUSTMENT_CORRECTION,
            stock_before,
            product.stock,
            note=f"{note}; {detail}" if note else detail,
            actor=actor,
            session=sess,
        )

        deleted = new_quantity == 0
        if deleted:
            sess.delete(batch)
        else:
            batch.quantity = new_quantity
        sess.flush()

        log_operation(
            logger,
            operation="adjust_batch_quantity",
            outcome="success",
            product_id=product.id,
            batch_code=batch.batch_code,
            previous_quantity=previous_quantity,
            new_quantity=new_quantity,
        )
        return {
            "batch_id": batch_id,
            "batch_code": batch.batch_code,
            "previous_quantity": previous_quantity,
            "new_quantity": new_quantity,
            "deleted": deleted,
            "stock_before": stock_before,
            "stock_after": product.stock,
        }

    try:
        if session is not None:
            return _impl(session)
        with session_scope(write=True) as sess:
            return _impl(sess)
    except ServiceError:
        raise
    except Exception as e:
        raise DatabaseError(f"Failed to adjust batch {batch_id}", original_error=e)


def delete_batch(batch_id: int, actor: Optional[str] = None, session=None) -> Dict[str, Any]:
    """
    Delete an empty batch.

    Only batches with quantity 0 can be deleted this way; use discard_batch()
    to write off remaining units. Records a `deletion` adjustment with
    difference 0.

    Raises:
        BatchNotFound: If the batch doesn't exist
        ValidationError: If the batch still holds units
    """
    actor = resolve_actor(actor)

    def _impl(sess):
        product, batch = _load_batch_for_update(sess, batch_id)
        if batch.quantity != 0:
            raise ValidationError(
                [
                    f"Batch {batch.batch_code} still holds {batch.quantity} units; "
                    "discard it instead"
                ]
            )

        batch_code = batch.batch_code
        adjustment_service.record_adjustment(
            product.id,
            ADJUSTMENT_DELETION,
            product.stock,
            product.stock,
            note=f"Deleted empty batch {batch_code}",
            actor=actor,
            session=sess,
        )
        sess.delete(batch)
        sess.flush()

        log_operation(
            logger,
            operation="delete_batch",
            outcome="success",
            product_id=product.id,
            batch_code=batch_code,
        )
        return {"batch_id": batch_id, "batch_code": batch_code, "product_id": product.id}

    try:
        if session is not None:
            return _impl(session)
        with session_scope(write=True) as sess:
            return _impl(sess)
    except ServiceError:
        raise
    except Exception as e:
        raise DatabaseError(f"Failed to delete batch {batch_id}", original_error=e)


def discard_batch(
    batch_id: int,
    actor: Optional[str] = None,
    note: Optional[str] = None,
    session=None,
) -> Dict[str, Any]:
    """
    Write off a batch (expired or damaged) and remove it from the ledger.

    The aggregate drops by the batch's remaining quantity and one `deletion`
    adjustment with a negative difference is written.

    Raises:
        BatchNotFound: If the batch doesn't exist
        StockConsistencyError: If the aggregate is already below the ledger
    """
    actor = resolve_actor(actor)

    def _impl(sess):
        product, batch = _load_batch_for_update(sess, batch_id)
        ensure_stock_consistent(product, live_batch_total(sess, product.id), "discard_batch")

        batch_code = batch.batch_code
        discarded = batch.quantity
        stock_before = product.stock
        product.stock = stock_before - discarded

        detail = f"Discarded batch {batch_code} ({discarded} units)"
        adjustment_service.record_adjustment(
            product.id,
            ADJUSTMENT_DELETION,
            stock_before,
            product.stock,
            note=f"{note}; {detail}" if note else detail,
            actor=actor,
            session=sess,
        )
        sess.delete(batch)
        sess.flush()

        log_operation(
            logger,
            operation="discard_batch",
            outcome="success",
            product_id=product.id,
            batch_code=batch_code,
            quantity=discarded,
        )
        return {
            "batch_id": batch_id,
            "batch_code": batch_code,
            "product_id": product.id,
            "units_discarded": discarded,
            "stock_before": stock_before,
            "stock_after": product.stock,
        }

    try:
        if session is not None:
            return _impl(session)
        with session_scope(write=True) as sess:
            return _impl(sess)
    except ServiceError:
        raise
    except Exception as e:
        raise DatabaseError(f"Failed to discard batch {batch_id}", original_error=e)
