"""
Batch model for receipt-level inventory tracking.

Each batch is one receipt of a product with its own remaining quantity and
expiry date. Consumption draws from batches in expiry order (FIFO by expiry
date, oldest receipt first on ties).
"""

from datetime import date
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship, validates

from .base import BaseModel
from batch_tracker.utils.datetime_utils import days_until


class Batch(BaseModel):
    """
    Batch model representing one receipt of a product.

    Attributes:
        product_id: Foreign key to Product
        batch_code: Generated code, unique within the product's batch history
        sequence: Per-product sequence number embedded in batch_code
        quantity: Remaining units (0 means exhausted)
        expiry_date: Expiry date (immutable once set)

    Note:
        created_at (from BaseModel) is the FIFO tie-break between batches
        sharing an expiry date.
    """

    __tablename__ = "batches"

    product_id = Column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )

    batch_code = Column(String(64), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)
    quantity = Column(Integer, nullable=False)
    expiry_date = Column(Date, nullable=False)

    product = relationship("Product", back_populates="batches")

    __table_args__ = (
        UniqueConstraint("product_id", "batch_code", name="uq_batch_product_code"),
        CheckConstraint("quantity >= 0", name="ck_batch_quantity_non_negative"),
        CheckConstraint("sequence > 0", name="ck_batch_sequence_positive"),
        Index("idx_batch_product_expiry", "product_id", "expiry_date"),
        Index("idx_batch_expiry", "expiry_date"),
    )

    @validates("expiry_date")
    def _validate_expiry_date(self, _key: str, value: date) -> date:
        """Expiry date can be set once; later changes are rejected."""
        current = self.__dict__.get("expiry_date")
        if current is not None and value != current:
            raise ValueError(f"Batch {self.batch_code}: expiry_date is immutable")
        return value

    def __repr__(self) -> str:
        return (
            f"Batch(id={self.id}, "
            f"product_id={self.product_id}, "
            f"code='{self.batch_code}', "
            f"quantity={self.quantity})"
        )

    @property
    def is_exhausted(self) -> bool:
        """True when no units remain."""
        return self.quantity <= 0

    def days_until_expiry(self, reference: Optional[date] = None) -> int:
        """Days from reference (default: today) until expiry; negative once expired."""
        return days_until(self.expiry_date, reference)

    def is_expired(self, reference: Optional[date] = None) -> bool:
        """True when the expiry date lies before reference (default: today)."""
        return self.days_until_expiry(reference) < 0

    def take(self, quantity: int) -> int:
        """
        Remove up to `quantity` units from this batch.

        Args:
            quantity: Units wanted

        Returns:
            Units actually taken (less than requested when the batch runs out)
        """
        taken = min(quantity, self.quantity)
        self.quantity -= taken
        return taken

    def to_dict(self) -> dict:
        result = super().to_dict()
        result["days_until_expiry"] = self.days_until_expiry()
        return result
