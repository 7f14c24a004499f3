"""
Input validation functions for the Batch Tracker application.

This module provides validation functions for service inputs including:
- Quantity validation (whole units, positive or non-negative)
- Numeric validation (prices)
- Expiry date validation
- String validation (length, required fields)
- Product field validation

Each validator returns a (is_valid, error_message) tuple; the services
collect the messages and raise a single ValidationError.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Tuple

from .constants import (
    ERROR_EXPIRY_NOT_FUTURE,
    ERROR_INVALID_DATE,
    ERROR_INVALID_NON_NEGATIVE,
    ERROR_INVALID_NUMBER,
    ERROR_INVALID_POSITIVE,
    ERROR_INVALID_WHOLE_NUMBER,
    ERROR_REQUIRED_FIELD,
    MAX_ACTOR_LENGTH,
    MAX_CATEGORY_LENGTH,
    MAX_NOTES_LENGTH,
    MAX_TITLE_LENGTH,
    MAX_UNIT_LENGTH,
)
from .datetime_utils import today

# Fields a caller may change on an existing product
UPDATABLE_PRODUCT_FIELDS = ("title", "description", "price", "unit", "category")

# Fields owned by the inventory engine
ENGINE_MANAGED_FIELDS = ("stock", "initial_stock", "last_batch_sequence")


def validate_required_string(value: Optional[str], field_name: str = "Field") -> Tuple[bool, str]:
    """None, empty and whitespace-only strings fail."""
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return False, f"{field_name}: {ERROR_REQUIRED_FIELD}"
    return True, ""


def validate_string_length(
    value: Optional[str], max_length: int, field_name: str = "Field"
) -> Tuple[bool, str]:
    if value and len(value) > max_length:
        return False, f"{field_name}: Must be {max_length} characters or less"
    return True, ""


def validate_non_negative_number(value: Any, field_name: str = "Field") -> Tuple[bool, str]:
    """
    Validate that a value is a non-negative number (>= 0).

    Args:
        value: The value to validate (int, float, Decimal or numeric string)
        field_name: Name of the field for error messages

    Returns:
        Tuple of (is_valid, error_message)
    """
    if isinstance(value, bool):
        return False, f"{field_name}: {ERROR_INVALID_NUMBER}"
    try:
        num_value = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return False, f"{field_name}: {ERROR_INVALID_NUMBER}"
    if not num_value.is_finite():
        return False, f"{field_name}: {ERROR_INVALID_NUMBER}"
    if num_value < 0:
        return False, f"{field_name}: {ERROR_INVALID_NON_NEGATIVE}"
    return True, ""


def validate_quantity(
    value: Any, field_name: str = "Quantity", allow_zero: bool = False
) -> Tuple[bool, str]:
    """
    Validate a unit quantity: a whole number, > 0 (or >= 0 with allow_zero).

    Booleans and floats are rejected even when they look integral.

    Args:
        value: The value to validate
        field_name: Name of the field for error messages
        allow_zero: Accept 0 (absolute corrections, starting stock)

    Returns:
        Tuple of (is_valid, error_message)
    """
    if isinstance(value, bool) or not isinstance(value, int):
        return False, f"{field_name}: {ERROR_INVALID_WHOLE_NUMBER}"
    if allow_zero and value < 0:
        return False, f"{field_name}: {ERROR_INVALID_NON_NEGATIVE}"
    if not allow_zero and value <= 0:
        return False, f"{field_name}: {ERROR_INVALID_POSITIVE}"
    return True, ""


def validate_expiry_date(
    value: Any, field_name: str = "Expiry date", reference: Optional[date] = None
) -> Tuple[bool, str]:
    """
    Validate that an expiry date is given and lies strictly after today.

    Args:
        value: date (or datetime) to validate
        field_name: Name of the field for error messages
        reference: Date treated as today (defaults to the current date)

    Returns:
        Tuple of (is_valid, error_message)
    """
    if value is None:
        return False, f"{field_name}: {ERROR_REQUIRED_FIELD}"
    if isinstance(value, datetime):
        value = value.date()
    if not isinstance(value, date):
        return False, f"{field_name}: {ERROR_INVALID_DATE}"
    if value <= (reference or today()):
        return False, f"{field_name}: {ERROR_EXPIRY_NOT_FUTURE}"
    return True, ""


def validate_product_data(data: dict, partial: bool = False) -> Tuple[bool, list]:
    """
    Validate product fields.

    Args:
        data: Dictionary containing product fields
        partial: If True (updates), only validate fields present in data

    Returns:
        Tuple of (is_valid, list_of_errors)

    Required fields (unless partial):
        - title (str): Display title
        - price (Decimal/number): Unit price (>= 0)
        - unit (str): Unit of measure

    Optional fields:
        - description (str)
        - category (str)
    """
    errors = []

    if not partial or "title" in data:
        is_valid, error = validate_required_string(data.get("title"), "Title")
        if not is_valid:
            errors.append(error)
        else:
            is_valid, error = validate_string_length(data["title"], MAX_TITLE_LENGTH, "Title")
            if not is_valid:
                errors.append(error)

    if not partial or "price" in data:
        if data.get("price") is None:
            errors.append(f"Price: {ERROR_REQUIRED_FIELD}")
        else:
            is_valid, error = validate_non_negative_number(data["price"], "Price")
            if not is_valid:
                errors.append(error)

    if not partial or "unit" in data:
        is_valid, error = validate_required_string(data.get("unit"), "Unit")
        if not is_valid:
            errors.append(error)
        else:
            is_valid, error = validate_string_length(data["unit"], MAX_UNIT_LENGTH, "Unit")
            if not is_valid:
                errors.append(error)

    is_valid, error = validate_string_length(data.get("category"), MAX_CATEGORY_LENGTH, "Category")
    if not is_valid:
        errors.append(error)

    is_valid, error = validate_string_length(
        data.get("description"), MAX_NOTES_LENGTH, "Description"
    )
    if not is_valid:
        errors.append(error)

    return len(errors) == 0, errors


def sanitize_string(value: Optional[str]) -> Optional[str]:
    """Strip whitespace; blank strings become None."""
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


def validate_actor(value: Optional[str], field_name: str = "Actor") -> Tuple[bool, str]:
    """An omitted actor is valid (the system actor is recorded instead)."""
    return validate_string_length(sanitize_string(value), MAX_ACTOR_LENGTH, field_name)
