"""Consistency checks between registered and applied migrations.

The checker compares the local migration list with the bookkeeping rows
before any mutation. Rows are assumed to form a contiguous 1..K range; the
checker relies on that invariant and does not repair gaps.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from sql_migrator.core.checksum import compute_checksum
from sql_migrator.core.errors import (
    ChecksumMismatchError,
    MissingMigrationsError,
    NameMismatchError,
)
from sql_migrator.core.models import AppliedMigration, MigratorOptions

if TYPE_CHECKING:
    from sql_migrator.core.migration import Extensions, Migration
    from sql_migrator.ports.backend import BackendTransaction

logger = logging.getLogger(__name__)


class ConsistencyChecker:
    """Validates local migrations against the database's applied rows.

    Rules, in order:
        1. The database must not have more rows than there are local
           migrations (always enforced).
        2. Names must match for every version present on both sides
           (``verify_names``).
        3. Checksums must match for every version present on both sides
           (``verify_checksums``).
    """

    def __init__(
        self,
        migrations: Sequence[Migration],
        options: MigratorOptions,
        extensions: Extensions,
    ) -> None:
        self._migrations = migrations
        self._options = options
        self._extensions = extensions

    def check_count(self, applied: Sequence[AppliedMigration]) -> None:
        """Raise MissingMigrationsError if the database is ahead of local."""
        if len(self._migrations) < len(applied):
            raise MissingMigrationsError(len(self._migrations), len(applied))

    def check_names(self, applied: Sequence[AppliedMigration]) -> None:
        """Raise NameMismatchError on the first differing name."""
        for version, (row, local) in enumerate(zip(applied, self._migrations), start=1):
            if row.name != local.name:
                raise NameMismatchError(version, local.name, row.name)

    def check(self, applied: Sequence[AppliedMigration]) -> None:
        """Run the count and (if enabled) name rules.

        Checksum verification needs a transaction and is done separately by
        :meth:`verify_checksums`.
        """
        self.check_count(applied)
        if self._options.verify_names:
            self.check_names(applied)

    async def checksum_results(
        self,
        applied: Sequence[AppliedMigration],
        tx: BackendTransaction,
    ) -> list[ChecksumMismatchError | None]:
        """Recompute checksums for every applied version.

        Returns one entry per applied row that has a local counterpart:
        None when the checksum matches, otherwise the mismatch error.

        Raises:
            MigrationApplyError: If a dry pass fails.
        """
        results: list[ChecksumMismatchError | None] = []
        for version, (row, local) in enumerate(zip(applied, self._migrations), start=1):
            checksum = await compute_checksum(local, version, tx, self._extensions)
            if checksum == row.checksum:
                results.append(None)
            else:
                logger.debug(f"Checksum mismatch for migration {version} ({local.name})")
                results.append(ChecksumMismatchError(version, checksum, row.checksum))
        return results

    async def verify_checksums(
        self,
        applied: Sequence[AppliedMigration],
        tx: BackendTransaction,
    ) -> None:
        """Raise the first ChecksumMismatchError, if any."""
        for error in await self.checksum_results(applied, tx):
            if error is not None:
                raise error
