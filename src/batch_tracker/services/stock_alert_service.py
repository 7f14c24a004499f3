"""
Stock Alert Service - low-stock detection with duplicate suppression.

check_low_stock() is a plain read. collect_low_stock_alerts() filters that
list through an AlertSuppressionCache supplied by the caller, so a product
is reported at most once per suppression window. The cache is an ordinary
object owned by whoever schedules the alerts (a CLI run, a scheduler job);
there is no module-level alert state.
"""

from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Hashable, List, Optional

from batch_tracker.models import Product
from batch_tracker.services.database import session_scope
from batch_tracker.services.exceptions import ValidationError
from batch_tracker.services.logging_utils import get_service_logger, log_operation
from batch_tracker.utils.config import get_config
from batch_tracker.utils.constants import DEFAULT_ALERT_SUPPRESSION_HOURS
from batch_tracker.utils.datetime_utils import utc_now
from batch_tracker.utils.validators import validate_quantity

logger = get_service_logger(__name__)


class AlertSuppressionCache:
    """
    Remembers when an alert was last sent for a key.

    Args:
        window: How long a sent alert suppresses repeats (default 24 hours)
        clock: Callable returning the current time (default utc_now)
    """

    def __init__(
        self,
        window: timedelta = timedelta(hours=DEFAULT_ALERT_SUPPRESSION_HOURS),
        clock: Callable[[], datetime] = utc_now,
    ):
        self.window = window
        self._clock = clock
        self._sent_at: Dict[Hashable, datetime] = {}

    def was_sent_recently(self, key: Hashable) -> bool:
        """True if an alert for key was marked within the window."""
        sent_at = self._sent_at.get(key)
        if sent_at is None:
            return False
        return self._clock() - sent_at < self.window

    def mark_sent(self, key: Hashable) -> None:
        self._sent_at[key] = self._clock()

    def prune(self) -> int:
        """Forget entries whose window has passed. Returns the number removed."""
        now = self._clock()
        expired = [key for key, sent_at in self._sent_at.items() if now - sent_at >= self.window]
        for key in expired:
            del self._sent_at[key]
        return len(expired)

    def clear(self) -> None:
        self._sent_at.clear()

    def __len__(self) -> int:
        return len(self._sent_at)


def check_low_stock(threshold: Optional[int] = None, session=None) -> List[Dict[str, Any]]:
    """
    List products whose aggregate stock is at or below threshold.

    Transaction boundary: Read-only operation.

    Args:
        threshold: Stock level to report at or below. Defaults to the
            configured low-stock threshold (2).
        session: Optional SQLAlchemy session

    Returns:
        List of dicts (product_id, title, category, stock, price, threshold),
        lowest stock first
    """
    if threshold is None:
        threshold = get_config().low_stock_threshold
    is_valid, error = validate_quantity(threshold, "Threshold", allow_zero=True)
    if not is_valid:
        raise ValidationError([error])

    def _impl(sess):
        products = (
            sess.query(Product)
            .filter(Product.stock <= threshold)
            .order_by(Product.stock.asc(), Product.id.asc())
            .all()
        )
        return [
            {
                "product_id": product.id,
                "title": product.title,
                "category": product.category,
                "stock": product.stock,
                "price": product.price,
                "threshold": threshold,
            }
            for product in products
        ]

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)


def collect_low_stock_alerts(
    cache: AlertSuppressionCache,
    threshold: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """
    Low-stock products that have not been alerted within the cache window.

    Every returned product is marked as sent in the cache; delivering the
    alert is the caller's job.

    Args:
        cache: Suppression cache owned by the caller
        threshold: Stock level (defaults to the configured threshold)

    Returns:
        The subset of check_low_stock() not suppressed by the cache
    """
    low_stock = check_low_stock(threshold)
    to_alert = [item for item in low_stock if not cache.was_sent_recently(item["product_id"])]
    for item in to_alert:
        cache.mark_sent(item["product_id"])

    log_operation(
        logger,
        operation="collect_low_stock_alerts",
        outcome="success",
        low_stock=len(low_stock),
        alerts=len(to_alert),
        suppressed=len(low_stock) - len(to_alert),
    )
    return to_alert
