"""Operation logging for the inventory services.

Every stock mutation and every refused request is logged as one record
named after the operation, e.g.:

    consume_fifo: success (product_id=12, quantity=8)
    consume_fifo: insufficient_stock (product_id=12, requested=8, available=3)

The key=value context also travels on the record through ``extra``.
"""

import logging
from typing import Any

LOGGER_NAMESPACE = "batch_tracker.services"


def get_service_logger(name: str) -> logging.Logger:
    """Logger under batch_tracker.services named after the module's last dotted part."""
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name.rsplit('.', 1)[-1]}")


def log_operation(
    logger: logging.Logger,
    operation: str,
    outcome: str,
    level: int = logging.INFO,
    **context: Any,
) -> None:
    """
    Emit "<operation>: <outcome> (k=v, ...)" at ``level``.

    Outcomes used by the services include "success", "insufficient_stock",
    "consistency_error" and "error". Context usually carries product_id,
    batch_id or batch_code, and quantity.
    """
    details = ", ".join(f"{key}={value}" for key, value in context.items())
    message = f"{operation}: {outcome} ({details})" if details else f"{operation}: {outcome}"
    logger.log(level, message, extra={"operation": operation, "outcome": outcome, **context})
