"""
Runtime settings for Batch Tracker.

Settings come from two places:
- The environment name (production or development), which decides where
  the default SQLite file lives
- BATCH_TRACKER_* variables, which can point at another database and
  tune the inventory policies (shelf life for starting stock, adjustment
  retention, low-stock threshold)

Settings are read once, when the process-wide Config is first requested.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from .constants import (
    APP_NAME,
    APP_VERSION,
    DATABASE_FILENAME,
    DEFAULT_ADJUSTMENT_RETENTION_DAYS,
    DEFAULT_LOW_STOCK_THRESHOLD,
    DEFAULT_SHELF_LIFE_DAYS,
)

logger = logging.getLogger(__name__)

ENV_ENVIRONMENT = "BATCH_TRACKER_ENV"
ENV_DATABASE_URL = "BATCH_TRACKER_DATABASE_URL"
ENV_SHELF_LIFE_DAYS = "BATCH_TRACKER_DEFAULT_SHELF_LIFE_DAYS"
ENV_RETENTION_DAYS = "BATCH_TRACKER_ADJUSTMENT_RETENTION_DAYS"
ENV_LOW_STOCK_THRESHOLD = "BATCH_TRACKER_LOW_STOCK_THRESHOLD"

DEVELOPMENT = "development"
PRODUCTION = "production"

# src/batch_tracker/utils/config.py -> repository root
_REPO_ROOT = Path(__file__).resolve().parents[3]


def _int_from_env(name: str, default: int) -> int:
    """Read a non-negative integer from the environment, falling back to default."""
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Ignoring {name}={raw!r}: not an integer, using {default}")
        return default
    if value < 0:
        logger.warning(f"Ignoring {name}={raw!r}: negative, using {default}")
        return default
    return value


def _data_dir_for(environment: str) -> Path:
    """Where the default SQLite file lives for an environment."""
    if environment == DEVELOPMENT:
        return _REPO_ROOT / "data"
    return Path.home() / "Documents" / "BatchTracker"


class Config:
    """
    Settings for one process: database location plus inventory policies.

    Args:
        environment: 'production' (database under ~/Documents) or
            'development' (database under the repository's data/ folder)
    """

    app_name = APP_NAME
    app_version = APP_VERSION

    def __init__(self, environment: str = PRODUCTION):
        self.environment = environment
        self._data_dir = _data_dir_for(environment)
        self._url_override = os.environ.get(ENV_DATABASE_URL) or None

        self._shelf_life_days = _int_from_env(ENV_SHELF_LIFE_DAYS, DEFAULT_SHELF_LIFE_DAYS)
        self._retention_days = _int_from_env(ENV_RETENTION_DAYS, DEFAULT_ADJUSTMENT_RETENTION_DAYS)
        self._low_stock_threshold = _int_from_env(
            ENV_LOW_STOCK_THRESHOLD, DEFAULT_LOW_STOCK_THRESHOLD
        )

    @property
    def is_development(self) -> bool:
        return self.environment == DEVELOPMENT

    @property
    def is_production(self) -> bool:
        return self.environment == PRODUCTION

    @property
    def database_path(self) -> Path:
        """The SQLite file used when no database URL is configured."""
        return self._data_dir / DATABASE_FILENAME

    @property
    def database_url(self) -> str:
        """BATCH_TRACKER_DATABASE_URL if set, else a sqlite:/// URL for database_path."""
        if self._url_override:
            return self._url_override
        return "sqlite:///" + self.database_path.as_posix()

    def database_exists(self) -> bool:
        """Whether the SQLite file is already there (assumed for explicit URLs)."""
        return bool(self._url_override) or self.database_path.exists()

    def ensure_directories(self) -> None:
        """Create the data folder for the default SQLite file."""
        if not self._url_override:
            self._data_dir.mkdir(parents=True, exist_ok=True)

    @property
    def default_shelf_life_days(self) -> int:
        """Days until expiry applied to starting stock without an explicit expiry."""
        return self._shelf_life_days

    @property
    def adjustment_retention_days(self) -> int:
        """Age in days after which adjustment entries may be purged."""
        return self._retention_days

    @property
    def low_stock_threshold(self) -> int:
        """Stock level at or below which a product is reported as low."""
        return self._low_stock_threshold

    def __repr__(self) -> str:
        return f"Config(environment={self.environment!r}, database_url={self.database_url!r})"


_config: Optional[Config] = None


def get_config(environment: Optional[str] = None) -> Config:
    """
    Return the process-wide Config, building it on the first call.

    The environment is fixed by the first call (argument, then
    BATCH_TRACKER_ENV, then production). Asking for a different one later
    logs a warning and returns the existing Config, so a running process
    never moves to another database.
    """
    global _config

    if _config is None:
        _config = Config(environment or os.environ.get(ENV_ENVIRONMENT, PRODUCTION))
    elif environment and environment != _config.environment:
        logger.warning(
            f"Config already built for {_config.environment!r}; "
            f"ignoring request for {environment!r}"
        )

    return _config


def reset_config():
    """Forget the process-wide Config so the next get_config() rereads the environment."""
    global _config
    _config = None


def get_database_url() -> str:
    return get_config().database_url
