"""Migration orchestration for SQL databases.

The :class:`Migrator` owns one backend connection and an ordered list of
:class:`~sql_migrator.core.migration.Migration` objects. A migration's
version is its 1-based registration position. The migrator holds no state
between calls: what is applied is read from the bookkeeping table at the
start of every operation.

Usage:
    from sql_migrator import Migration, Migrator

    async with await Migrator.connect("sqlite:///app.db") as migrator:
        migrator.add_migrations(load_migrations("migrations"))

        summary = await migrator.migrate_all()
        for status in await migrator.status():
            print(status.version, status.name, status.is_applied)

Every mutating operation runs inside a single transaction and holds the
backend's exclusion lock; any failure rolls the transaction back before the
error propagates. ``force_version`` is the exception: it clears the table
and re-inserts rows in two separate steps.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator, Iterable, Sequence
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from sql_migrator.core.checksum import ChecksumHasher, compute_checksum
from sql_migrator.core.consistency import ConsistencyChecker
from sql_migrator.core.context import MigrationContext
from sql_migrator.core.errors import (
    ChecksumMismatchError,
    ConfigurationError,
    DatabaseError,
    InvalidVersionError,
    MigrationApplyError,
    MigrationRevertError,
    NoMigrationsError,
)
from sql_migrator.core.migration import Extensions, Migration
from sql_migrator.core.models import (
    AppliedMigration,
    MigrationStatus,
    MigrationSummary,
    MigratorOptions,
)
from sql_migrator.core.tracing import TimingContext, operation_context
from sql_migrator.core.utils import format_duration, is_valid_table_name

if TYPE_CHECKING:
    from sql_migrator.ports.backend import BackendTransaction, MigrationBackend

logger = logging.getLogger(__name__)

# The default bookkeeping table used by all migrators.
DEFAULT_MIGRATIONS_TABLE = "_sqlx_migrations"


def _summary_version(count: int) -> int | None:
    return count if count > 0 else None


class Migrator:
    """Applies, reverts and inspects an ordered list of migrations.

    A Migrator must not be invoked re-entrantly from inside a migration body,
    and performs one operation at a time on its connection.

    Example:
        migrator = Migrator(backend)
        migrator.add_migrations([create_users, add_email])

        await migrator.migrate(2)
        await migrator.revert(2)
    """

    def __init__(
        self,
        backend: MigrationBackend,
        *,
        migrations: Iterable[Migration] = (),
        options: MigratorOptions | None = None,
        table: str = DEFAULT_MIGRATIONS_TABLE,
        extensions: Extensions | None = None,
    ) -> None:
        """Initialize the migrator.

        Args:
            backend: Connected backend adapter; the migrator takes ownership.
            migrations: Initial migrations, in version order.
            options: Consistency checker strictness.
            table: Bookkeeping table name (trusted, embedded into SQL).
            extensions: Extension data handed to every migration body.
        """
        self._backend = backend
        self._migrations: list[Migration] = list(migrations)
        self._options = options or MigratorOptions()
        self._table = DEFAULT_MIGRATIONS_TABLE
        self._extensions = extensions or Extensions()
        self.set_migrations_table(table)

    @classmethod
    async def connect(cls, url: str, **kwargs: Any) -> Migrator:
        """Open a backend for ``url`` and wrap it in a Migrator.

        Args:
            url: Database URL (``sqlite:///path``, ``postgres://...``).
            **kwargs: Passed to the Migrator constructor.

        Raises:
            ConfigurationError: If the URL scheme or table name is invalid.
                The backend is closed again in the latter case.
            DatabaseError: If the connection fails.
        """
        from sql_migrator.adapters import connect_backend

        backend = await connect_backend(url)
        try:
            return cls(backend, **kwargs)
        except Exception:
            await backend.close()
            raise

    async def close(self) -> None:
        await self._backend.close()

    async def __aenter__(self) -> Migrator:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    @property
    def backend(self) -> MigrationBackend:
        return self._backend

    @property
    def options(self) -> MigratorOptions:
        return self._options

    @property
    def migrations_table(self) -> str:
        return self._table

    @property
    def extensions(self) -> Extensions:
        return self._extensions

    def set_options(self, options: MigratorOptions) -> None:
        self._options = options

    def set_migrations_table(self, name: str) -> None:
        """Override the bookkeeping table name.

        Raises:
            ConfigurationError: If ``name`` is not a plain SQL identifier.
        """
        if not is_valid_table_name(name):
            raise ConfigurationError(f"Invalid migrations table name: {name!r}")
        self._table = name

    def add_migrations(self, migrations: Iterable[Migration]) -> None:
        """Append migrations; their versions follow the existing ones."""
        self._migrations.extend(migrations)

    def local_migrations(self) -> tuple[Migration, ...]:
        """All registered migrations in version order.

        To include applied migrations, use :meth:`status`.
        """
        return tuple(self._migrations)

    def version_of(self, name: str) -> int | None:
        """Version of the first registered migration called ``name``."""
        for version, migration in enumerate(self._migrations, start=1):
            if migration.name == name:
                return version
        return None

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def migrate(self, target_version: int) -> MigrationSummary:
        """Apply all migrations up to and including ``target_version``.

        Already applied migrations are skipped, so calling this twice with
        the same target applies nothing the second time.

        Raises:
            InvalidVersionError: If the target is outside ``[1, len(migrations)]``.
            MissingMigrationsError, NameMismatchError, ChecksumMismatchError:
                If local and applied migrations disagree.
            MigrationApplyError: If an apply action fails. Nothing is committed.
            DatabaseError: On connection or bookkeeping failure.
        """
        with operation_context("migrate", table=self._table):
            self._local_migration(target_version)
            await self._backend.ensure_table(self._table)

            async with self._locked():
                applied = await self._backend.list_applied(self._table)
                await self._check(applied)

                db_version = len(applied)
                recorded = {row.version: row for row in applied}

                async with self._transaction() as tx:
                    for version, migration in enumerate(self._migrations, start=1):
                        if version > target_version:
                            break
                        if version <= db_version:
                            continue
                        await self._apply(migration, version, tx, recorded.get(version))

                    logger.info("Committing changes")
                    await tx.commit()

            return MigrationSummary(
                old_version=_summary_version(db_version),
                new_version=max(target_version, db_version),
            )

    async def migrate_all(self) -> MigrationSummary:
        """Apply every registered migration.

        With no registered migrations this is a no-op that does not touch
        the database.
        """
        if not self._migrations:
            return MigrationSummary(old_version=None, new_version=None)
        return await self.migrate(len(self._migrations))

    async def revert(self, target_version: int) -> MigrationSummary:
        """Revert all applied migrations from ``target_version`` upwards.

        Migrations are reverted newest first. A migration without a revert
        action is not executed but its bookkeeping row is still deleted, so
        the schema it created stays in place.

        The summary's ``new_version`` is ``target_version - 1`` clamped to the
        number of applied rows, so reverting above the applied count reports
        no change.

        Raises:
            InvalidVersionError: If the target is outside ``[1, len(migrations)]``.
            MissingMigrationsError, NameMismatchError, ChecksumMismatchError:
                If local and applied migrations disagree.
            MigrationRevertError: If a revert action fails. Nothing is committed.
            DatabaseError: On connection or bookkeeping failure.
        """
        with operation_context("revert", table=self._table):
            self._local_migration(target_version)
            await self._backend.ensure_table(self._table)

            async with self._locked():
                applied = await self._backend.list_applied(self._table)
                await self._check(applied)

                db_version = len(applied)
                to_revert = [
                    (version, migration)
                    for version, migration in enumerate(self._migrations, start=1)
                    if target_version <= version <= db_version
                ]

                async with self._transaction() as tx:
                    for version, migration in reversed(to_revert):
                        await self._revert(migration, version, tx)

                    logger.info("Committing changes")
                    await tx.commit()

            return MigrationSummary(
                old_version=_summary_version(db_version),
                new_version=_summary_version(min(target_version - 1, db_version)),
            )

    async def revert_all(self) -> MigrationSummary:
        """Revert every applied migration."""
        return await self.revert(1)

    async def force_version(self, version: int) -> MigrationSummary:
        """Rewrite bookkeeping so that exactly ``version`` migrations are applied.

        No apply or revert action runs for real; only the dry-pass checksum
        of each migration is computed and stored, with zero execution time.
        ``version == 0`` clears the bookkeeping table.

        The table is cleared and re-filled in two separate steps. A crash in
        between leaves the table empty while the schema is unchanged, and
        the operation has to be run again.

        Raises:
            InvalidVersionError: If ``version`` is outside ``[0, len(migrations)]``.
            MissingMigrationsError: If the database is ahead of local migrations.
            MigrationApplyError: If a dry pass fails.
            DatabaseError: On connection or bookkeeping failure.
        """
        with operation_context("force_version", table=self._table):
            if version != 0:
                self._local_migration(version)
            await self._backend.ensure_table(self._table)

            async with self._locked():
                applied = await self._backend.list_applied(self._table)
                old_version = _summary_version(len(applied))

                if version == 0:
                    logger.warning(f"Clearing all rows from {self._table}")
                    await self._backend.clear_applied(self._table)
                    return MigrationSummary(old_version=old_version, new_version=None)

                self._checker().check_count(applied)

                logger.warning(f"Clearing {self._table} before forcing version {version}")
                await self._backend.clear_applied(self._table)

                async with self._transaction() as tx:
                    for mig_version, migration in enumerate(self._migrations[:version], start=1):
                        checksum = await compute_checksum(
                            migration, mig_version, tx, self._extensions
                        )
                        await self._backend.insert_applied(
                            self._table,
                            AppliedMigration(
                                version=mig_version,
                                name=migration.name,
                                checksum=checksum,
                                execution_time=timedelta(0),
                            ),
                            tx,
                        )
                        logger.info(
                            f"Migration {mig_version} ({migration.name}) forcibly set as applied"
                        )

                    logger.info("Committing changes")
                    await tx.commit()

            return MigrationSummary(old_version=old_version, new_version=version)

    async def verify(self) -> None:
        """Verify applied migrations against local ones.

        Checksums are always verified here; name verification follows
        ``options.verify_names``. Nothing is written.

        Raises:
            MissingMigrationsError, NameMismatchError, ChecksumMismatchError:
                The first inconsistency found.
            MigrationApplyError: If a dry pass fails.
            DatabaseError: On connection or bookkeeping failure.
        """
        with operation_context("verify", table=self._table):
            await self._backend.ensure_table(self._table)
            applied = await self._backend.list_applied(self._table)

            checker = self._checker()
            checker.check(applied)
            if applied:
                async with self._dry_run() as tx:
                    await checker.verify_checksums(applied, tx)

            logger.info(f"Verified {len(applied)} applied migration(s)")

    async def status(self) -> list[MigrationStatus]:
        """List every version slot with local and applied information.

        Checksums are compared regardless of options and reported per row
        instead of raising. Rows present only in the database are flagged
        ``missing_local``.

        Raises:
            MigrationApplyError: If a dry pass fails.
            DatabaseError: On connection or bookkeeping failure.
        """
        with operation_context("status", table=self._table):
            await self._backend.ensure_table(self._table)
            applied = await self._backend.list_applied(self._table)

            results: list[ChecksumMismatchError | None] = []
            if applied and self._migrations:
                async with self._dry_run() as tx:
                    results = await self._checker().checksum_results(applied, tx)

            statuses: list[MigrationStatus] = []
            for idx in range(max(len(self._migrations), len(applied))):
                local = self._migrations[idx] if idx < len(self._migrations) else None
                row = applied[idx] if idx < len(applied) else None
                checksum_ok = results[idx] is None if idx < len(results) else True

                if local is not None:
                    statuses.append(
                        MigrationStatus(
                            version=idx + 1,
                            name=local.name,
                            reversible=local.is_reversible,
                            applied=row,
                            missing_local=False,
                            checksum_ok=checksum_ok,
                        )
                    )
                elif row is not None:
                    statuses.append(
                        MigrationStatus(
                            version=row.version,
                            name=row.name,
                            reversible=False,
                            applied=row,
                            missing_local=True,
                            checksum_ok=checksum_ok,
                        )
                    )

            return statuses

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _local_migration(self, version: int) -> Migration:
        if not self._migrations:
            raise NoMigrationsError()
        if version < 1 or version > len(self._migrations):
            raise InvalidVersionError(version, 1, len(self._migrations))
        return self._migrations[version - 1]

    def _checker(self) -> ConsistencyChecker:
        return ConsistencyChecker(self._migrations, self._options, self._extensions)

    async def _check(self, applied: Sequence[AppliedMigration]) -> None:
        """Consistency check run before every mutating operation."""
        checker = self._checker()
        checker.check(applied)
        if self._options.verify_checksums and applied:
            async with self._dry_run() as tx:
                await checker.verify_checksums(applied, tx)

    async def _apply(
        self,
        migration: Migration,
        version: int,
        tx: BackendTransaction,
        recorded: AppliedMigration | None,
    ) -> None:
        logger.info(f"Applying migration {version} ({migration.name})")
        timing = TimingContext()
        start = time.perf_counter()

        with timing.measure("checksum"):
            checksum = await compute_checksum(migration, version, tx, self._extensions)

        ctx = MigrationContext(
            tx, ChecksumHasher(), hash_only=False, extensions=self._extensions
        )
        with timing.measure("apply"):
            try:
                await migration.up(ctx)
            except Exception as e:
                raise MigrationApplyError(migration.name, version, e) from e

        execution_time = timedelta(seconds=time.perf_counter() - start)

        if (
            self._options.verify_checksums
            and recorded is not None
            and recorded.checksum != checksum
        ):
            raise ChecksumMismatchError(version, checksum, recorded.checksum)

        await self._backend.insert_applied(
            self._table,
            AppliedMigration(
                version=version,
                name=migration.name,
                checksum=checksum,
                execution_time=execution_time,
            ),
            tx,
        )
        logger.info(
            f"Migration {version} ({migration.name}) applied "
            f"in {format_duration(execution_time)}"
        )
        logger.debug(f"Phase timings for migration {version}: {timing.timings}")

    async def _revert(
        self,
        migration: Migration,
        version: int,
        tx: BackendTransaction,
    ) -> None:
        logger.info(f"Reverting migration {version} ({migration.name})")
        start = time.perf_counter()

        if migration.down is None:
            logger.warning(
                f"No revert action for migration {version} ({migration.name}), "
                "removing its bookkeeping row only"
            )
        else:
            ctx = MigrationContext(
                tx, ChecksumHasher(), hash_only=False, extensions=self._extensions
            )
            try:
                await migration.down(ctx)
            except Exception as e:
                raise MigrationRevertError(migration.name, version, e) from e

        await self._backend.delete_applied(self._table, version, tx)

        execution_time = timedelta(seconds=time.perf_counter() - start)
        logger.info(
            f"Migration {version} ({migration.name}) reverted "
            f"in {format_duration(execution_time)}"
        )

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[BackendTransaction]:
        """Begin a transaction that is rolled back if the block raises.

        The block is responsible for committing.
        """
        tx = await self._backend.begin()
        try:
            yield tx
        except BaseException:
            await self._rollback_quietly(tx)
            raise

    @asynccontextmanager
    async def _dry_run(self) -> AsyncIterator[BackendTransaction]:
        """Transaction for checksum dry passes; always rolled back."""
        async with self._transaction() as tx:
            yield tx
            await tx.rollback()

    async def _rollback_quietly(self, tx: BackendTransaction) -> None:
        try:
            await tx.rollback()
        except DatabaseError as e:
            logger.warning(f"Rollback failed: {e}")

    @asynccontextmanager
    async def _locked(self) -> AsyncIterator[None]:
        """Hold the backend's exclusion lock for the duration of the block."""
        await self._backend.lock()
        try:
            yield
        except BaseException:
            try:
                await self._backend.unlock()
            except DatabaseError as e:
                logger.warning(f"Failed to release migration lock: {e}")
            raise
        await self._backend.unlock()
