"""Core components for SQL Migrator."""

from sql_migrator.core.checksum import ChecksumHasher, compute_checksum
from sql_migrator.core.consistency import ConsistencyChecker
from sql_migrator.core.context import MigrationContext
from sql_migrator.core.errors import (
    ChecksumMismatchError,
    ConfigurationError,
    DatabaseError,
    InvalidVersionError,
    MigrationApplyError,
    MigrationLoadError,
    MigrationRevertError,
    MigratorError,
    MissingMigrationsError,
    NameMismatchError,
    NoMigrationsError,
)
from sql_migrator.core.loader import load_migrations, new_migration_files
from sql_migrator.core.migration import Extensions, Migration, MigrationFn
from sql_migrator.core.migrator import DEFAULT_MIGRATIONS_TABLE, Migrator
from sql_migrator.core.models import (
    AppliedMigration,
    MigrationStatus,
    MigrationSummary,
    MigratorOptions,
)

__all__ = [
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
    "MigrationFn",
    "Extensions",
    "MigrationContext",
    "ChecksumHasher",
    "compute_checksum",
    "ConsistencyChecker",
    "load_migrations",
    "new_migration_files",
    # Orchestration
    "DEFAULT_MIGRATIONS_TABLE",
    "Migrator",
]
