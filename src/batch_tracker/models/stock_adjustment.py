"""
StockAdjustment model for the stock audit trail.

Every operation that changes a product's stock or batches writes exactly one
adjustment record. Records are immutable after creation - the retention
purge in adjustment_service is the only sanctioned deletion, and it runs as
a bulk delete that bypasses the ORM guards below.
"""

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    event,
)
from sqlalchemy.orm import relationship

from .base import BaseModel
from batch_tracker.utils.constants import ADJUSTMENT_CATEGORIES
from batch_tracker.utils.datetime_utils import utc_now


class StockAdjustment(BaseModel):
    """
    Immutable audit record for a stock-affecting event.

    Attributes:
        product_id: FK to the Product whose stock changed
        category: batch, consumption, correction or deletion
        quantity_before: Aggregate stock before the event
        quantity_after: Aggregate stock after the event
        difference: quantity_after - quantity_before (signed)
        note: Free text context (batch codes touched, reasons)
        actor: Identifier of the user or process responsible
        timestamp: When the event happened
    """

    __tablename__ = "stock_adjustments"

    product_id = Column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )

    category = Column(String(20), nullable=False)
    quantity_before = Column(Integer, nullable=False)
    quantity_after = Column(Integer, nullable=False)
    difference = Column(Integer, nullable=False)

    note = Column(Text, nullable=True)
    actor = Column(String(100), nullable=False)
    timestamp = Column(DateTime, nullable=False, default=utc_now)

    product = relationship("Product", back_populates="adjustments")

    __table_args__ = (
        CheckConstraint(
            "difference = quantity_after - quantity_before",
            name="ck_adjustment_difference_consistency",
        ),
        CheckConstraint(
            "category IN ({})".format(", ".join(f"'{c}'" for c in ADJUSTMENT_CATEGORIES)),
            name="ck_adjustment_category_valid",
        ),
        Index("idx_adjustment_product_timestamp", "product_id", "timestamp"),
        Index("idx_adjustment_timestamp", "timestamp"),
        Index("idx_adjustment_category", "category"),
    )

    def __repr__(self) -> str:
        return (
            f"StockAdjustment(id={self.id}, "
            f"product_id={self.product_id}, "
            f"category='{self.category}', "
            f"difference={self.difference:+d})"
        )

    def to_dict(self) -> dict:
        """Convert to the dictionary shape used by reports."""
        return {
            "id": self.id,
            "uuid": str(self.uuid) if self.uuid else None,
            "product_id": self.product_id,
            "product_title": self.product.title if self.product else None,
            "category": self.category,
            "quantity_before": self.quantity_before,
            "quantity_after": self.quantity_after,
            "difference": self.difference,
            "note": self.note,
            "actor": self.actor,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }


class ImmutableAdjustmentError(Exception):
    """Raised when code tries to modify or delete an adjustment through the ORM."""


@event.listens_for(StockAdjustment, "before_update")
def _block_adjustment_update(mapper, connection, target):
    raise ImmutableAdjustmentError(f"StockAdjustment {target.id} is immutable")


@event.listens_for(StockAdjustment, "before_delete")
def _block_adjustment_delete(mapper, connection, target):
    raise ImmutableAdjustmentError(
        f"StockAdjustment {target.id} cannot be deleted; use purge_old_adjustments()"
    )
