"""
Product model for sellable perishable goods.

A product carries a denormalized aggregate `stock` that must equal the sum of
its live batch quantities. Products created before batch tracking existed
may hold untracked legacy stock on top of that sum.
"""

from sqlalchemy import CheckConstraint, Column, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from .base import BaseModel


class Product(BaseModel):
    """
    Product model representing one sellable item.

    Attributes:
        title: Display title (also the source of batch code prefixes)
        description: Optional long description
        price: Unit price
        unit: Unit of measure (kg, bottle, each, ...)
        category: Optional category used in reports
        stock: Aggregate on-hand quantity (service-managed only)
        initial_stock: Starting quantity snapshot taken at creation
        last_batch_sequence: Highest batch sequence number ever issued
    """

    __tablename__ = "products"

    title = Column(String(200), nullable=False, index=True)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    unit = Column(String(50), nullable=False)
    category = Column(String(100), nullable=True, index=True)

    # Aggregate stock (cache of the batch ledger)
    stock = Column(Integer, nullable=False, default=0)

    # Immutable snapshot for drift reporting; NULL for legacy rows
    initial_stock = Column(Integer, nullable=True)

    # Monotonic counter, never decremented, so batch codes are never reused
    last_batch_sequence = Column(Integer, nullable=False, default=0)

    batches = relationship(
        "Batch",
        back_populates="product",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    adjustments = relationship(
        "StockAdjustment",
        back_populates="product",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_product_stock_non_negative"),
        CheckConstraint("last_batch_sequence >= 0", name="ck_product_batch_sequence_non_negative"),
        Index("idx_product_stock", "stock"),
    )

    def __repr__(self) -> str:
        return f"Product(id={self.id}, title='{self.title}', stock={self.stock})"

    @property
    def tracked_stock(self) -> int:
        """Sum of live batch quantities currently loaded for this product."""
        return sum(batch.quantity for batch in self.batches if batch.quantity > 0)

    @property
    def stock_drift(self) -> int:
        """Difference between starting stock and current stock (0 for legacy rows)."""
        if self.initial_stock is None:
            return 0
        return self.initial_stock - self.stock

    def is_low_stock(self, threshold: int) -> bool:
        """Check if stock is at or below the given low-stock level."""
        return self.stock <= threshold

    def summary(self) -> dict:
        """Short product summary joined into batch and report rows."""
        return {
            "id": self.id,
            "title": self.title,
            "category": self.category,
        }

    def to_dict(self) -> dict:
        result = super().to_dict()
        result["stock_drift"] = self.stock_drift
        return result
