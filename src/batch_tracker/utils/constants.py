"""
Constants for the Batch Tracker application.

This module defines all system-wide constants including:
- Application metadata
- Adjustment categories
- Expiry alert bands
- Default policies (shelf life, retention, alert thresholds)
- Validation limits and error messages
"""

from typing import Dict, List, Tuple

# ============================================================================
# Application Metadata
# ============================================================================

APP_NAME = "Batch Tracker"
APP_VERSION = "0.1.0"

# ============================================================================
# Adjustment Categories
# ============================================================================

ADJUSTMENT_BATCH = "batch"  # Restock: a new batch was received
ADJUSTMENT_CONSUMPTION = "consumption"  # FIFO withdrawal (sale, manual use)
ADJUSTMENT_CORRECTION = "correction"  # Manual correction or reconciliation
ADJUSTMENT_DELETION = "deletion"  # Batch removed (empty or written off)

ADJUSTMENT_CATEGORIES: List[str] = [
    ADJUSTMENT_BATCH,
    ADJUSTMENT_CONSUMPTION,
    ADJUSTMENT_CORRECTION,
    ADJUSTMENT_DELETION,
]

# Actor recorded when the caller does not identify one
DEFAULT_ACTOR = "system"

# ============================================================================
# Expiry Bands (presentation only)
# ============================================================================

EXPIRY_BAND_CRITICAL = "critical"
EXPIRY_BAND_URGENT = "urgent"
EXPIRY_BAND_CAUTION = "caution"

# (band, max days until expiry) checked in order
EXPIRY_BANDS: List[Tuple[str, int]] = [
    (EXPIRY_BAND_CRITICAL, 7),
    (EXPIRY_BAND_URGENT, 15),
    (EXPIRY_BAND_CAUTION, 30),
]

DEFAULT_EXPIRY_THRESHOLD_DAYS = 7

# ============================================================================
# Default Policies
# ============================================================================

# Expiry applied to starting stock when a product is created without one
DEFAULT_SHELF_LIFE_DAYS = 365

# Adjustment entries older than this are eligible for purging
DEFAULT_ADJUSTMENT_RETENTION_DAYS = 365

# Window used by get_recent_adjustments()
DEFAULT_RECENT_ADJUSTMENT_DAYS = 30

# Products at or below this stock level are reported as low stock
DEFAULT_LOW_STOCK_THRESHOLD = 2

# Duplicate low-stock alerts are suppressed within this window
DEFAULT_ALERT_SUPPRESSION_HOURS = 24

# ============================================================================
# Batch Codes
# ============================================================================

BATCH_CODE_FALLBACK_PREFIX = "PROD"
BATCH_CODE_MAX_WORDS = 3
BATCH_CODE_DATE_FORMAT = "%d%m%Y"

# ============================================================================
# Validation Constants
# ============================================================================

MAX_TITLE_LENGTH = 200
MAX_CATEGORY_LENGTH = 100
MAX_UNIT_LENGTH = 50
MAX_ACTOR_LENGTH = 100
MAX_NOTES_LENGTH = 2000

# ============================================================================
# Database Constants
# ============================================================================

DATABASE_FILENAME = "batch_tracker.db"

TABLE_PRODUCT = "products"
TABLE_BATCH = "batches"
TABLE_STOCK_ADJUSTMENT = "stock_adjustments"

# ============================================================================
# Date/Time Formats
# ============================================================================

DATE_FORMAT = "%Y-%m-%d"
DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"

# ============================================================================
# Error Messages
# ============================================================================

ERROR_REQUIRED_FIELD = "This field is required"
ERROR_INVALID_POSITIVE = "Value must be greater than zero"
ERROR_INVALID_NON_NEGATIVE = "Value must be zero or greater"
ERROR_INVALID_NUMBER = "Must be a valid number"
ERROR_INVALID_WHOLE_NUMBER = "Must be a whole number of units"
ERROR_EXPIRY_NOT_FUTURE = "Must be a date after today"
ERROR_INVALID_DATE = "Must be a date"

# Human-readable labels used by the CLI
ADJUSTMENT_CATEGORY_LABELS: Dict[str, str] = {
    ADJUSTMENT_BATCH: "Restock",
    ADJUSTMENT_CONSUMPTION: "Consumption",
    ADJUSTMENT_CORRECTION: "Correction",
    ADJUSTMENT_DELETION: "Deletion",
}


# ============================================================================
# Helper Functions
# ============================================================================


def is_valid_adjustment_category(category: str) -> bool:
    """
    Check if an adjustment category is valid.

    Args:
        category: Category string to check

    Returns:
        True if category is one of ADJUSTMENT_CATEGORIES
    """
    return category in ADJUSTMENT_CATEGORIES
