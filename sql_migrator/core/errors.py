"""Custom exceptions for SQL Migrator."""

from __future__ import annotations


def format_checksum(checksum: bytes) -> str:
    """Render a checksum for error messages.

    Args:
        checksum: Raw checksum bytes.

    Returns:
        Hex string, or "<empty>" for an empty checksum.
    """
    return checksum.hex() if checksum else "<empty>"


class MigratorError(Exception):
    """Base exception for all migrator errors."""

    pass


class DatabaseError(MigratorError):
    """Raised when a database or driver operation fails.

    The driver exception is always chained as ``__cause__``.
    """

    pass


class ConfigurationError(MigratorError):
    """Raised when configuration is invalid."""

    pass


class NoMigrationsError(MigratorError):
    """Raised when an operation needs migrations but none are registered."""

    def __init__(self) -> None:
        super().__init__("there were no local migrations found")


class InvalidVersionError(MigratorError):
    """Raised when a target version is outside the registered range."""

    def __init__(self, version: int, min_version: int, max_version: int) -> None:
        self.version = version
        self.min_version = min_version
        self.max_version = max_version
        super().__init__(
            f"invalid version specified: {version} "
            f"(available versions: {min_version}-{max_version})"
        )


class MissingMigrationsError(MigratorError):
    """Raised when the database has more applied migrations than are registered.

    This usually means an older build is pointed at a newer database.
    """

    def __init__(self, local_count: int, db_count: int) -> None:
        self.local_count = local_count
        self.db_count = db_count
        super().__init__(
            f"missing migrations ({local_count} local, but {db_count} already applied)"
        )


class MigrationApplyError(MigratorError):
    """Raised when a migration's apply action fails."""

    def __init__(self, name: str, version: int, error: BaseException) -> None:
        self.name = name
        self.version = version
        self.error = error
        super().__init__(f"error applying migration {version} ({name}): {error}")


class MigrationRevertError(MigratorError):
    """Raised when a migration's revert action fails."""

    def __init__(self, name: str, version: int, error: BaseException) -> None:
        self.name = name
        self.version = version
        self.error = error
        super().__init__(f"error reverting migration {version} ({name}): {error}")


class NameMismatchError(MigratorError):
    """Raised when an applied migration was recorded under a different name."""

    def __init__(self, version: int, local_name: str, db_name: str) -> None:
        self.version = version
        self.local_name = local_name
        self.db_name = db_name
        super().__init__(
            f"expected migration {version} to be {local_name} "
            f"but it was applied as {db_name}"
        )


class ChecksumMismatchError(MigratorError):
    """Raised when a migration's SQL changed after it was applied."""

    def __init__(self, version: int, local_checksum: bytes, db_checksum: bytes) -> None:
        self.version = version
        self.local_checksum = local_checksum
        self.db_checksum = db_checksum
        super().__init__(
            f"invalid checksum for migration {version} "
            f"(local: {format_checksum(local_checksum)}, "
            f"database: {format_checksum(db_checksum)})"
        )


class MigrationLoadError(MigratorError):
    """Raised when a migrations directory cannot be turned into migrations."""

    pass
