"""Data models for SQL Migrator.

Bookkeeping rows and operation results are plain dataclasses; they are
created by the migrator and adapters and never mutated afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta


@dataclass(frozen=True)
class AppliedMigration:
    """A row of the bookkeeping table.

    Attributes:
        version: 1-based position of the migration in registration order.
        name: Migration name at the time it was applied.
        checksum: SHA-256 of the SQL text submitted by the apply action.
        execution_time: Wall-clock time spent applying the migration.
        applied_at: When the row was written (filled in by the backend).
    """

    version: int
    name: str
    checksum: bytes
    execution_time: timedelta = field(default_factory=timedelta)
    applied_at: datetime | None = None


@dataclass
class MigratorOptions:
    """Strictness toggles for the consistency checker.

    Attributes:
        verify_checksums: Fail when an applied migration's checksum changed.
        verify_names: Fail when an applied migration's name changed.
    """

    verify_checksums: bool = True
    verify_names: bool = True


@dataclass(frozen=True)
class MigrationSummary:
    """Summary of a migrate, revert or force operation.

    ``None`` means "no migrations applied".
    """

    old_version: int | None = None
    new_version: int | None = None

    @property
    def changed(self) -> bool:
        """Whether the operation moved the database to another version."""
        return self.old_version != self.new_version

    @property
    def applied_count(self) -> int:
        old, new = self.old_version or 0, self.new_version or 0
        return max(new - old, 0)

    @property
    def reverted_count(self) -> int:
        old, new = self.old_version or 0, self.new_version or 0
        return max(old - new, 0)


@dataclass(frozen=True)
class MigrationStatus:
    """Status of one version slot, combining local and applied information.

    Attributes:
        version: Migration version determined by registration order.
        name: Local name, or the recorded name if the migration is missing locally.
        reversible: Whether the local migration has a revert action.
        applied: The bookkeeping row, if the version is applied.
        missing_local: The database has this version but nothing is registered for it.
        checksum_ok: Whether the local checksum matches the recorded one.
    """

    version: int
    name: str
    reversible: bool
    applied: AppliedMigration | None
    missing_local: bool
    checksum_ok: bool

    @property
    def is_applied(self) -> bool:
        return self.applied is not None

    @property
    def is_valid(self) -> bool:
        """False for rows missing locally or with a checksum mismatch."""
        return not self.missing_local and self.checksum_ok
