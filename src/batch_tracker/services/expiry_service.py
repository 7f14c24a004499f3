"""
Expiry Service - read-only radar over the batch ledger.

Reports live batches (quantity > 0) that expire within a horizon, or have
already expired, joined with a short product summary. Nothing here writes.
The expiry bands are for presentation only; no engine logic depends on them.
"""

from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import joinedload

from batch_tracker.models import Batch
from batch_tracker.services.batch_service import FIFO_ORDER, batch_to_dict
from batch_tracker.services.database import session_scope
from batch_tracker.services.exceptions import ValidationError
from batch_tracker.utils.constants import (
    DEFAULT_EXPIRY_THRESHOLD_DAYS,
    ERROR_INVALID_NON_NEGATIVE,
    EXPIRY_BANDS,
)
from batch_tracker.utils.datetime_utils import today as current_date


def classify_expiry(days_until_expiry: int) -> Optional[str]:
    """
    Map days-until-expiry to a presentation band.

    Args:
        days_until_expiry: Whole days left (negative once expired)

    Returns:
        "critical" (<= 7), "urgent" (8-15), "caution" (16-30), or None
        beyond 30 days. Expired batches are critical.
    """
    for band, max_days in EXPIRY_BANDS:
        if days_until_expiry <= max_days:
            return band
    return None


def _radar_row(batch: Batch, reference: date) -> Dict[str, Any]:
    row = batch_to_dict(batch, reference)
    product = batch.product
    row["product"] = product.summary()
    row["product_title"] = product.title
    row["category"] = product.category
    row["band"] = classify_expiry(row["days_until_expiry"])
    return row


def get_expiring_batches(
    days_threshold: int = DEFAULT_EXPIRY_THRESHOLD_DAYS,
    today: Optional[date] = None,
    session=None,
) -> List[Dict[str, Any]]:
    """
    List live batches expiring within the next `days_threshold` days.

    Transaction boundary: Read-only operation.

    The window is inclusive at both ends: today <= expiry_date <=
    today + days_threshold.

    Args:
        days_threshold: Horizon in days (whole number >= 0)
        today: Reference date (defaults to the current date)
        session: Optional SQLAlchemy session

    Returns:
        List of batch dicts, soonest expiry first, each with:
        - batch_id, batch_code, product_id, quantity, expiry_date
        - days_until_expiry
        - product: {"id", "title", "category"}
        - product_title, category
        - band: classify_expiry(days_until_expiry)

    Raises:
        ValidationError: If days_threshold is not a whole number >= 0
    """
    if isinstance(days_threshold, bool) or not isinstance(days_threshold, int):
        raise ValidationError([f"days_threshold: {ERROR_INVALID_NON_NEGATIVE}"])
    if days_threshold < 0:
        raise ValidationError([f"days_threshold: {ERROR_INVALID_NON_NEGATIVE}"])

    reference = today or current_date()
    horizon = reference + timedelta(days=days_threshold)

    def _impl(sess):
        batches = (
            sess.query(Batch)
            .options(joinedload(Batch.product))
            .filter(
                Batch.quantity > 0,
                Batch.expiry_date >= reference,
                Batch.expiry_date <= horizon,
            )
            .order_by(*FIFO_ORDER)
            .all()
        )
        return [_radar_row(batch, reference) for batch in batches]

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)


def get_expired_batches(today: Optional[date] = None, session=None) -> List[Dict[str, Any]]:
    """
    List live batches whose expiry date is already past, oldest expiry first.

    These are candidates for batch_service.discard_batch().
    """
    reference = today or current_date()

    def _impl(sess):
        batches = (
            sess.query(Batch)
            .options(joinedload(Batch.product))
            .filter(Batch.quantity > 0, Batch.expiry_date < reference)
            .order_by(*FIFO_ORDER)
            .all()
        )
        return [_radar_row(batch, reference) for batch in batches]

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)
