"""
Database models package.

This package contains all SQLAlchemy ORM models for the application.
"""

from .base import Base, BaseModel
from .product import Product
from .batch import Batch
from .stock_adjustment import ImmutableAdjustmentError, StockAdjustment

__all__ = [
    "Base",
    "BaseModel",
    "Product",
    "Batch",
    "StockAdjustment",
    "ImmutableAdjustmentError",
]
