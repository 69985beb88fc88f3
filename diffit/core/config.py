"""
Configuration management

Centralized settings using Pydantic BaseSettings for type-safe configuration
with environment variable support.
"""

import logging
import os
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


def get_data_dir() -> Path:
    """
    Get the diffit data directory (database, stored images)

    Priority order:
    1. DIFFIT_DATA_DIR environment variable (the same variable that
       overrides Settings.data_dir)
    2. Fallback: ~/.diffit

    Returns:
        Path to data directory
    """
    env_path = os.getenv("DIFFIT_DATA_DIR")
    if env_path:
        path = Path(env_path).expanduser().resolve()
        logger.debug(f"Using data directory from DIFFIT_DATA_DIR: {path}")
        return path

    return Path.home() / ".diffit"


class Settings(BaseSettings):
    """
    Application settings with environment variable support

    Settings can be overridden via environment variables:
    - DIFFIT_DATA_DIR=/srv/diffit
    - DIFFIT_DATABASE_PATH=/custom/path/diffit.db
    - DIFFIT_STORAGE_PATH=/srv/diffit/storage
    - DIFFIT_DIFF_THRESHOLD=0.05
    """

    data_dir: Path = Field(default_factory=get_data_dir)

    # Derived from data_dir when unset
    database_path: Path | None = None
    storage_path: Path | None = None

    # Comparison
    diff_threshold: float = 0.1  # Per-pixel fractional tolerance
    comparison_timeout_seconds: float = 30.0
    max_concurrent_comparisons: int = 4

    # Projects
    default_branch: str = "main"

    # Logging
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="DIFFIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    def __init__(self, **kwargs):
        """Initialize settings and derive storage locations from data_dir"""
        super().__init__(**kwargs)

        if self.database_path is None:
            self.database_path = self.data_dir / "diffit.db"
        if self.storage_path is None:
            self.storage_path = self.data_dir / "storage"

    @field_validator("diff_threshold")
    @classmethod
    def validate_threshold(cls, value: float) -> float:
        if not 0.0 <= value <= 1.0:
            raise ValueError("diff_threshold must be between 0 and 1")
        return value

    @field_validator("max_concurrent_comparisons")
    @classmethod
    def validate_concurrency(cls, value: int) -> int:
        if value < 1:
            raise ValueError("max_concurrent_comparisons must be at least 1")
        return value


# Singleton pattern for settings
_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get application settings (singleton)

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
