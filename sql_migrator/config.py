"""Configuration system for SQL Migrator."""

from pathlib import Path
from typing import Any

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings

from sql_migrator.core.migrator import DEFAULT_MIGRATIONS_TABLE
from sql_migrator.core.models import MigratorOptions
from sql_migrator.core.utils import is_valid_table_name

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseSettings):
    """SQL Migrator Configuration."""

    # Database
    database_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "SQL_MIGRATOR_DATABASE_URL",
            "DATABASE_URL",
        ),
        description="Database URL (sqlite:///path, sqlite::memory:, postgres://...)",
    )
    migrations_table: str = Field(
        default=DEFAULT_MIGRATIONS_TABLE,
        description="Bookkeeping table name, embedded directly into SQL",
    )

    # Migrations
    migrations_path: Path = Field(
        default=Path("./migrations"),
        description="Directory holding dated migration files",
    )

    # Consistency checks
    verify_checksums: bool = Field(
        default=True,
        description="Fail when applied checksums differ from local migrations",
    )
    verify_names: bool = Field(
        default=True,
        description="Fail when applied names differ from local migrations",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    log_json: bool = Field(
        default=False,
        description="Emit structured JSON log lines",
    )

    model_config = {
        "env_prefix": "SQL_MIGRATOR_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "populate_by_name": True,
    }

    @field_validator("migrations_table")
    @classmethod
    def validate_migrations_table(cls, v: str) -> str:
        if not is_valid_table_name(v):
            raise ValueError(f"Invalid migrations table name: {v!r}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return level

    def migrator_options(self) -> MigratorOptions:
        """Consistency checker options derived from these settings."""
        return MigratorOptions(
            verify_checksums=self.verify_checksums,
            verify_names=self.verify_names,
        )


# Settings singleton with dependency injection support
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the settings instance (lazy-loaded singleton).

    Returns:
        The Settings instance.

    Example:
        from sql_migrator.config import get_settings
        settings = get_settings()
        print(settings.database_url)
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def override_settings(new_settings: Settings) -> None:
    """Override the settings instance (for testing).

    Args:
        new_settings: The new Settings instance to use.
    """
    global _settings
    _settings = new_settings


def reset_settings() -> None:
    """Reset settings to None (forces reload on next get_settings call)."""
    global _settings
    _settings = None


def settings_from_overrides(**overrides: Any) -> Settings:
    """Build Settings from the environment, replacing non-None overrides.

    Used by the CLI so that command line flags take precedence over
    environment variables.
    """
    values = {key: value for key, value in overrides.items() if value is not None}
    return Settings(**values)
