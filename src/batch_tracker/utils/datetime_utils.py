"""Date and time helpers for timestamps and expiry arithmetic.

Usage:
    from batch_tracker.utils.datetime_utils import utc_now, days_until

    # For SQLAlchemy Column defaults
    timestamp = Column(DateTime, default=utc_now)

    # Days left before a batch expires
    remaining = days_until(batch.expiry_date)
"""

from datetime import date, datetime, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime.

    This is the replacement for the deprecated datetime.utcnow().
    """
    return datetime.now(timezone.utc)


def today() -> date:
    """Return the current local date.

    Expiry dates are calendar dates, so expiry comparisons use the local
    date rather than the UTC timestamp.
    """
    return date.today()


def days_until(target: date, reference: Optional[date] = None) -> int:
    """Number of whole days from reference (default: today) to target.

    Negative when target is already in the past.
    """
    reference = reference or today()
    return (target - reference).days


def days_from_now(days: int, reference: Optional[date] = None) -> date:
    """Date that lies `days` days after reference (default: today)."""
    reference = reference or today()
    return reference + timedelta(days=days)
