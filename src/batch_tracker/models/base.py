"""
Declarative base and shared columns for the inventory models.

Every table gets an integer key, a UUID for references from outside the
database, and created/updated timestamps. For batches, created_at is also
the FIFO tie-break between batches sharing an expiry date.
"""

import uuid as uuid_lib
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.orm import declarative_base

from batch_tracker.utils.datetime_utils import utc_now

Base = declarative_base()


def _new_uuid() -> str:
    return str(uuid_lib.uuid4())


def _json_value(value: Any) -> Any:
    """Dates as ISO strings, decimals (prices) as strings."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


class BaseModel(Base):
    """
    Abstract parent of Product, Batch and StockAdjustment.

    Columns:
        id: Integer primary key
        uuid: String UUID (SQLite has no native UUID type)
        created_at: Insert time (UTC)
        updated_at: Last update time (UTC)
    """

    __abstract__ = True

    id = Column(Integer, primary_key=True, autoincrement=True)
    uuid = Column(String(36), unique=True, nullable=False, default=_new_uuid, index=True)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        """Column values keyed by column name, JSON-friendly."""
        return {
            column.name: _json_value(getattr(self, column.name))
            for column in self.__table__.columns
        }
