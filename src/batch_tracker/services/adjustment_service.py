"""
Adjustment Service - append-only stock audit trail.

Every stock-affecting operation writes exactly one StockAdjustment through
record_adjustment(), inside the same transaction as the stock change it
describes. Entries are never updated; purge_old_adjustments() is the only
deletion path and only removes entries past the retention window.

Key Functions:
- record_adjustment: Append one entry (called by the other services)
- get_adjustment_history / get_recent_adjustments: Newest-first queries
- get_adjustment_stats: Increase/decrease totals per product
- purge_old_adjustments: Retention enforcement
- set_stock: Manual aggregate correction (bypasses the batch ledger)

Session Pattern:
All functions accept an optional `session` parameter. If provided, the function
uses the caller's session (for transaction atomicity). If None, the function
creates its own session via session_scope().
"""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import joinedload

from batch_tracker.models import Product, StockAdjustment
from batch_tracker.services.database import session_scope
from batch_tracker.services.exceptions import (
    DatabaseError,
    ProductNotFound,
    ServiceError,
    ValidationError,
)
from batch_tracker.services.logging_utils import get_service_logger, log_operation
from batch_tracker.utils.config import get_config
from batch_tracker.utils.constants import (
    ADJUSTMENT_CATEGORIES,
    ADJUSTMENT_CORRECTION,
    DEFAULT_ACTOR,
    DEFAULT_RECENT_ADJUSTMENT_DAYS,
    MAX_NOTES_LENGTH,
    is_valid_adjustment_category,
)
from batch_tracker.utils.datetime_utils import utc_now
from batch_tracker.utils.validators import sanitize_string, validate_actor, validate_quantity

logger = get_service_logger(__name__)


def _adjustment_to_dict(adjustment: StockAdjustment) -> Dict[str, Any]:
    """Report shape for an adjustment (product title joined in)."""
    return adjustment.to_dict()


# =============================================================================
# Recording
# =============================================================================


def record_adjustment(
    product_id: int,
    category: str,
    quantity_before: int,
    quantity_after: int,
    note: Optional[str] = None,
    actor: Optional[str] = None,
    session=None,
) -> StockAdjustment:
    """
    Append one adjustment entry.

    The difference is derived from the before/after quantities, never
    passed in, so it always satisfies difference = after - before.

    Args:
        product_id: Product whose stock changed
        category: One of ADJUSTMENT_CATEGORIES
        quantity_before: Aggregate stock before the change
        quantity_after: Aggregate stock after the change
        note: Optional context (batch codes touched, reasons)
        actor: Who made the change (default "system")
        session: Optional SQLAlchemy session; pass the session of the
            stock change so both commit or roll back together

    Returns:
        The new StockAdjustment

    Raises:
        ValidationError: If category or quantities are invalid
        DatabaseError: If the database operation fails
    """
    errors = []
    if not is_valid_adjustment_category(category):
        errors.append(
            f"Invalid adjustment category '{category}'. "
            f"Must be one of: {', '.join(ADJUSTMENT_CATEGORIES)}"
        )
    for field_name, value in (
        ("Quantity before", quantity_before),
        ("Quantity after", quantity_after),
    ):
        is_valid, error = validate_quantity(value, field_name, allow_zero=True)
        if not is_valid:
            errors.append(error)
    is_valid, error = validate_actor(actor)
    if not is_valid:
        errors.append(error)
    if errors:
        raise ValidationError(errors)

    if note and len(note) > MAX_NOTES_LENGTH:
        note = note[: MAX_NOTES_LENGTH - 3] + "..."

    def _impl(sess):
        adjustment = StockAdjustment(
            product_id=product_id,
            category=category,
            quantity_before=quantity_before,
            quantity_after=quantity_after,
            difference=quantity_after - quantity_before,
            note=note,
            actor=sanitize_string(actor) or DEFAULT_ACTOR,
            timestamp=utc_now(),
        )
        sess.add(adjustment)
        sess.flush()

        log_operation(
            logger,
            operation="record_adjustment",
            outcome="success",
            level=logging.DEBUG,
            product_id=product_id,
            category=category,
            difference=adjustment.difference,
        )
        return adjustment

    try:
        if session is not None:
            return _impl(session)
        with session_scope(write=True) as sess:
            return _impl(sess)
    except ServiceError:
        raise
    except Exception as e:
        raise DatabaseError(
            f"Failed to record adjustment for product {product_id}", original_error=e
        )


# =============================================================================
# Queries
# =============================================================================


def get_adjustment_history(
    product_id: int,
    limit: Optional[int] = None,
    session=None,
) -> List[Dict[str, Any]]:
    """
    Get the adjustment history of one product, newest first.

    Transaction boundary: Read-only operation.

    Args:
        product_id: Product to report on
        limit: Optional maximum number of entries
        session: Optional SQLAlchemy session

    Returns:
        List of adjustment dicts (product_id, product_title, category,
        quantity_before, quantity_after, difference, note, actor, timestamp)

    Raises:
        ProductNotFound: If the product doesn't exist
    """

    def _impl(sess):
        if sess.get(Product, product_id) is None:
            raise ProductNotFound(product_id)

        query = (
            sess.query(StockAdjustment)
            .options(joinedload(StockAdjustment.product))
            .filter(StockAdjustment.product_id == product_id)
            .order_by(StockAdjustment.timestamp.desc(), StockAdjustment.id.desc())
        )
        if limit is not None:
            query = query.limit(limit)
        return [_adjustment_to_dict(adj) for adj in query.all()]

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)


def get_recent_adjustments(
    days: int = DEFAULT_RECENT_ADJUSTMENT_DAYS,
    category: Optional[str] = None,
    session=None,
) -> List[Dict[str, Any]]:
    """
    Get adjustments across all products from the last `days` days, newest first.

    Args:
        days: Window size in days
        category: Optional category filter
        session: Optional SQLAlchemy session

    Raises:
        ValidationError: If days is negative or category is unknown
    """
    is_valid, error = validate_quantity(days, "Days", allow_zero=True)
    if not is_valid:
        raise ValidationError([error])
    if category is not None and not is_valid_adjustment_category(category):
        raise ValidationError([f"Invalid adjustment category '{category}'"])

    cutoff = utc_now() - timedelta(days=days)

    def _impl(sess):
        query = (
            sess.query(StockAdjustment)
            .options(joinedload(StockAdjustment.product))
            .filter(StockAdjustment.timestamp >= cutoff)
        )
        if category is not None:
            query = query.filter(StockAdjustment.category == category)
        query = query.order_by(StockAdjustment.timestamp.desc(), StockAdjustment.id.desc())
        return [_adjustment_to_dict(adj) for adj in query.all()]

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)


def get_adjustment_stats(product_id: int, session=None) -> Dict[str, Any]:
    """
    Summarise a product's adjustments.

    Returns:
        Dict with keys:
        - product_id
        - total_adjustments: Number of entries
        - total_increase: Sum of positive differences
        - total_decrease: Sum of negative differences (as a positive number)
        - net_change: total_increase - total_decrease
        - by_category: {category: entry count}
        - last_adjustment: Timestamp of the newest entry (None if none)

    Raises:
        ProductNotFound: If the product doesn't exist
    """

    def _impl(sess):
        if sess.get(Product, product_id) is None:
            raise ProductNotFound(product_id)

        adjustments = (
            sess.query(StockAdjustment).filter(StockAdjustment.product_id == product_id).all()
        )

        total_increase = sum(a.difference for a in adjustments if a.difference > 0)
        total_decrease = -sum(a.difference for a in adjustments if a.difference < 0)
        by_category = {category: 0 for category in ADJUSTMENT_CATEGORIES}
        for adjustment in adjustments:
            by_category[adjustment.category] = by_category.get(adjustment.category, 0) + 1

        return {
            "product_id": product_id,
            "total_adjustments": len(adjustments),
            "total_increase": total_increase,
            "total_decrease": total_decrease,
            "net_change": total_increase - total_decrease,
            "by_category": by_category,
            "last_adjustment": max((a.timestamp for a in adjustments), default=None),
        }

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)


# =============================================================================
# Retention
# =============================================================================


def purge_old_adjustments(retention_days: Optional[int] = None, session=None) -> int:
    """
    Delete adjustment entries older than the retention window.

    This is the only sanctioned deletion of adjustments. It runs as a bulk
    delete, so the per-row immutability guards on StockAdjustment don't fire.

    Args:
        retention_days: Keep entries younger than this many days. Defaults
            to the configured adjustment retention.
        session: Optional SQLAlchemy session

    Returns:
        Number of entries deleted

    Raises:
        ValidationError: If retention_days is negative
        DatabaseError: If the database operation fails
    """
    if retention_days is None:
        retention_days = get_config().adjustment_retention_days
    is_valid, error = validate_quantity(retention_days, "Retention days", allow_zero=True)
    if not is_valid:
        raise ValidationError([error])

    cutoff = utc_now() - timedelta(days=retention_days)

    def _impl(sess):
        deleted = (
            sess.query(StockAdjustment)
            .filter(StockAdjustment.timestamp < cutoff)
            .delete(synchronize_session=False)
        )
        log_operation(
            logger,
            operation="purge_old_adjustments",
            outcome="success",
            retention_days=retention_days,
            deleted=deleted,
        )
        return deleted

    try:
        if session is not None:
            return _impl(session)
        with session_scope(write=True) as sess:
            return _impl(sess)
    except ServiceError:
        raise
    except Exception as e:
        raise DatabaseError("Failed to purge old adjustments", original_error=e)


# =============================================================================
# Manual correction
# =============================================================================


def set_stock(
    product_id: int,
    new_quantity: int,
    actor: Optional[str] = None,
    note: Optional[str] = None,
    session=None,
) -> Optional[StockAdjustment]:
    """
    Set a product's aggregate stock to an absolute value.

    Bypasses the batch ledger: the result may leave stock outside batches
    (or, if lowered below the batch total, require reconcile_stock()).
    Records one `correction` adjustment.

    Args:
        product_id: Product to correct
        new_quantity: New aggregate stock (whole number >= 0)
        actor: Who made the correction
        note: Reason for the correction
        session: Optional SQLAlchemy session

    Returns:
        The correction StockAdjustment, or None when the stock already
        equals new_quantity (nothing is written)

    Raises:
        ValidationError: If new_quantity or actor is invalid
        ProductNotFound: If the product doesn't exist
        DatabaseError: If the database operation fails
    """
    errors = [
        error
        for is_valid, error in (
            validate_quantity(new_quantity, "New quantity", allow_zero=True),
            validate_actor(actor),
        )
        if not is_valid
    ]
    if errors:
        raise ValidationError(errors)

    def _impl(sess):
        product = (
            sess.query(Product).filter(Product.id == product_id).with_for_update().first()
        )
        if product is None:
            raise ProductNotFound(product_id)

        previous = product.stock
        if previous == new_quantity:
            log_operation(
                logger,
                operation="set_stock",
                outcome="unchanged",
                level=logging.DEBUG,
                product_id=product_id,
            )
            return None

        product.stock = new_quantity
        adjustment = record_adjustment(
            product.id,
            ADJUSTMENT_CORRECTION,
            previous,
            new_quantity,
            note=note or "Manual stock correction",
            actor=actor,
            session=sess,
        )

        log_operation(
            logger,
            operation="set_stock",
            outcome="success",
            product_id=product_id,
            previous_stock=previous,
            new_stock=new_quantity,
        )
        return adjustment

    try:
        if session is not None:
            return _impl(session)
        with session_scope(write=True) as sess:
            return _impl(sess)
    except ServiceError:
        raise
    except Exception as e:
        raise DatabaseError(f"Failed to set stock for product {product_id}", original_error=e)
