"""
Main entry point for Batch Tracker.

This module configures logging, reads the configuration and dispatches
to the inventory command-line interface.
"""

import logging
import sys
from typing import List, Optional

from batch_tracker.utils.config import get_config
from batch_tracker.utils.inventory_cli import build_parser, execute

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(verbose: bool = False) -> logging.Logger:
    """
    Attach a console handler to the application's logger namespace.

    Args:
        verbose: Log at DEBUG instead of WARNING

    Returns:
        The 'batch_tracker' logger
    """
    app_logger = logging.getLogger("batch_tracker")
    app_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)

    # Avoid duplicate handlers
    if not app_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        app_logger.addHandler(handler)

    return app_logger


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main application entry point.

    Parses the command line, sets up logging and runs the command.
    """
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    config = get_config()
    logging.getLogger(__name__).debug(
        f"Starting {config.app_name} v{config.app_version} ({config.environment})"
    )

    return execute(args)


if __name__ == "__main__":
    sys.exit(main())
