"""SQL Migrator - Transactional, checksummed schema migrations for async SQL databases."""

__version__ = "0.1.0"

# Re-export core components for convenience
from sql_migrator.config import Settings, get_settings
from sql_migrator.core import (
    DEFAULT_MIGRATIONS_TABLE,
    AppliedMigration,
    ChecksumMismatchError,
    ConfigurationError,
    DatabaseError,
    Extensions,
    InvalidVersionError,
    # Migrations
    Migration,
    MigrationApplyError,
    MigrationContext,
    MigrationLoadError,
    MigrationRevertError,
    MigrationStatus,
    MigrationSummary,
    # Orchestration
    Migrator,
    # Errors
    MigratorError,
    MigratorOptions,
    MissingMigrationsError,
    NameMismatchError,
    NoMigrationsError,
    load_migrations,
    new_migration_files,
)

__all__ = [
    # Version info
    "__version__",
    # Configuration
    "Settings",
    "get_settings",
    # Errors
    "MigratorError",
    "DatabaseError",
    "ConfigurationError",
    "NoMigrationsError",
    "InvalidVersionError",
    "MissingMigrationsError",
    "MigrationApplyError",
    "MigrationRevertError",
    "NameMismatchError",
    "ChecksumMismatchError",
    "MigrationLoadError",
    # Models
    "AppliedMigration",
    "MigratorOptions",
    "MigrationStatus",
    "MigrationSummary",
    # Migrations
    "Migration",
    "Extensions",
    "MigrationContext",
    "load_migrations",
    "new_migration_files",
    # Orchestration
    "DEFAULT_MIGRATIONS_TABLE",
    "Migrator",
]
