"""Product Service - product lifecycle around the inventory engine.

This module provides business logic for managing products, the sellable
items whose stock is tracked in batches.

All functions are stateless and use session_scope() for transaction management.

Key Features:
- Product creation with starting stock (restocked as a first batch)
- Partial updates of descriptive fields
- `stock` and the batch counter are never writable from here; they are
  owned by batch_service, fifo_service and adjustment_service

Example Usage:
    >>> from batch_tracker.services import product_service
    >>> from decimal import Decimal
    >>>
    >>> product = product_service.create_product(
    ...     "Aceite de Oliva", Decimal("8.50"), "bottle", stock=12
    ... )
    >>> product.stock
    12
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from batch_tracker.models import Product
from batch_tracker.services import batch_service
from batch_tracker.services.database import session_scope
from batch_tracker.services.exceptions import (
    DatabaseError,
    ProductNotFound,
    ServiceError,
    ValidationError,
)
from batch_tracker.services.logging_utils import get_service_logger, log_operation
from batch_tracker.utils.config import get_config
from batch_tracker.utils.datetime_utils import days_from_now
from batch_tracker.utils.validators import (
    ENGINE_MANAGED_FIELDS,
    UPDATABLE_PRODUCT_FIELDS,
    sanitize_string,
    validate_actor,
    validate_expiry_date,
    validate_product_data,
    validate_quantity,
)

logger = get_service_logger(__name__)


def create_product(
    title: str,
    price: Any,
    unit: str,
    stock: int = 0,
    category: Optional[str] = None,
    expiry_date: Optional[date] = None,
    description: Optional[str] = None,
    actor: Optional[str] = None,
) -> Product:
    """Create a product and restock its starting quantity as a first batch.

    The product row is committed on its own (stock 0, initial_stock set to
    the starting quantity). The starting quantity is then added through
    batch_service.create_batch() in a separate transaction. If that restock
    fails the product is kept and the failure is logged.

    Args:
        title: Display title (also used for batch code prefixes)
        price: Unit price (>= 0)
        unit: Unit of measure
        stock: Starting quantity (whole number >= 0)
        category: Optional category
        expiry_date: Expiry of the starting stock. Defaults to today plus the
            configured shelf life (365 days).
        description: Optional long description
        actor: Who created the product (recorded on the restock adjustment)

    Returns:
        Product: The created product, re-read after the restock

    Raises:
        ValidationError: If product fields, stock, expiry_date or actor are invalid
        DatabaseError: If the product cannot be saved
    """
    data = {
        "title": sanitize_string(title),
        "price": price,
        "unit": sanitize_string(unit),
        "category": sanitize_string(category),
        "description": sanitize_string(description),
    }
    is_valid, errors = validate_product_data(data)

    is_valid, error = validate_quantity(stock, "Stock", allow_zero=True)
    if not is_valid:
        errors.append(error)

    is_valid, error = validate_actor(actor)
    if not is_valid:
        errors.append(error)

    if expiry_date is None:
        expiry_date = days_from_now(get_config().default_shelf_life_days)
    elif stock:
        is_valid, error = validate_expiry_date(expiry_date)
        if not is_valid:
            errors.append(error)

    if errors:
        log_operation(
            logger,
            operation="create_product",
            outcome="validation_failed",
            level=logging.WARNING,
            errors=errors,
        )
        raise ValidationError(errors)

    try:
        with session_scope(write=True) as session:
            product = Product(
                title=data["title"],
                price=Decimal(str(price)),
                unit=data["unit"],
                category=data["category"],
                description=data["description"],
                stock=0,
                initial_stock=stock,
                last_batch_sequence=0,
            )
            session.add(product)
            session.flush()
            product_id = product.id
    except Exception as e:
        raise DatabaseError(f"Failed to create product '{title}'", original_error=e)

    log_operation(logger, operation="create_product", outcome="success", product_id=product_id)

    if stock > 0:
        try:
            batch_service.create_batch(
                product_id,
                stock,
                expiry_date,
                actor=actor,
                note="Starting stock",
            )
        except ServiceError as e:
            log_operation(
                logger,
                operation="create_product",
                outcome="initial_restock_failed",
                level=logging.ERROR,
                product_id=product_id,
                error=str(e),
            )

    return get_product(product_id)


def get_product(product_id: int, session=None) -> Product:
    """Retrieve a product by ID.

    Raises:
        ProductNotFound: If product_id doesn't exist
    """

    def _impl(sess):
        product = sess.get(Product, product_id)
        if product is None:
            raise ProductNotFound(product_id)
        return product

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)


def get_all_products(category: Optional[str] = None) -> List[Product]:
    """List products ordered by title, optionally filtered by category."""
    with session_scope() as session:
        query = session.query(Product)
        if category:
            query = query.filter(Product.category == category)
        return query.order_by(Product.title).all()


def update_product(product_id: int, product_data: Dict[str, Any]) -> Product:
    """Update descriptive product fields.

    Args:
        product_id: Product identifier
        product_data: Dictionary with fields to update (partial update supported)
            - title, description, price, unit, category

    Returns:
        Product: Updated product

    Raises:
        ProductNotFound: If product_id doesn't exist
        ValidationError: If data is invalid, names an unknown field, or tries
            to write stock (use create_batch, consume_fifo or set_stock)
        DatabaseError: If database operation fails

    Note:
        A title change only affects batch codes generated afterwards.
    """
    managed = [field for field in product_data if field in ENGINE_MANAGED_FIELDS]
    if managed:
        raise ValidationError(
            [
                f"{field}: managed by the inventory engine; use create_batch, "
                "consume_fifo or set_stock"
                for field in managed
            ]
        )

    unknown = [field for field in product_data if field not in UPDATABLE_PRODUCT_FIELDS]
    if unknown:
        raise ValidationError([f"{field}: Unknown product field" for field in unknown])

    data = {
        key: sanitize_string(value) if isinstance(value, str) else value
        for key, value in product_data.items()
    }
    is_valid, errors = validate_product_data(data, partial=True)
    if not is_valid:
        raise ValidationError(errors)

    if "price" in data:
        data["price"] = Decimal(str(data["price"]))

    try:
        with session_scope(write=True) as session:
            product = session.get(Product, product_id)
            if product is None:
                raise ProductNotFound(product_id)

            for key, value in data.items():
                setattr(product, key, value)
            session.flush()

            log_operation(
                logger,
                operation="update_product",
                outcome="success",
                product_id=product_id,
                fields=sorted(data),
            )
            return product
    except ServiceError:
        raise
    except Exception as e:
        raise DatabaseError(f"Failed to update product {product_id}", original_error=e)
