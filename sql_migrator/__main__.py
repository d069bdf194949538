"""Entry point for the SQL Migrator command line tool."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Awaitable, Callable
from typing import NoReturn

from pydantic import ValidationError

from sql_migrator.config import Settings, settings_from_overrides
from sql_migrator.core.errors import ConfigurationError, MigratorError
from sql_migrator.core.loader import load_migrations, new_migration_files
from sql_migrator.core.logging import configure_logging
from sql_migrator.core.migrator import Migrator
from sql_migrator.core.models import MigrationStatus, MigrationSummary

logger = logging.getLogger(__name__)


# =============================================================================
# Helpers
# =============================================================================


def build_settings(args: argparse.Namespace) -> Settings:
    """Merge command line flags over environment settings.

    Raises:
        ConfigurationError: If a setting is invalid.
    """
    try:
        return settings_from_overrides(
            database_url=args.database_url,
            migrations_table=args.migrations_table,
            migrations_path=args.migrations_path,
            verify_checksums=False if args.no_verify_checksums else None,
            verify_names=False if args.no_verify_names else None,
            log_level="DEBUG" if args.verbose else None,
            log_json=True if args.json_logs else None,
        )
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def setup_logging(settings: Settings) -> None:
    configure_logging(level=settings.log_level, json_format=settings.log_json)


async def open_migrator(settings: Settings) -> Migrator:
    """Connect to the configured database and register local migrations."""
    if not settings.database_url:
        raise ConfigurationError(
            "No database URL given; use --database-url or set DATABASE_URL"
        )

    migrations = load_migrations(settings.migrations_path)
    return await Migrator.connect(
        settings.database_url,
        migrations=migrations,
        options=settings.migrator_options(),
        table=settings.migrations_table,
    )


def resolve_version(
    migrator: Migrator,
    name: str | None,
    version: int | None,
) -> int | None:
    """Turn ``--name``/``--version`` into a version number.

    Raises:
        ConfigurationError: If no registered migration has the given name.
    """
    if version is not None:
        return version
    if name is None:
        return None
    found = migrator.version_of(name)
    if found is None:
        raise ConfigurationError(f"Migration not found: {name}")
    return found


def print_summary(summary: MigrationSummary) -> None:
    print(f"Old version: {summary.old_version or '-'}")
    print(f"New version: {summary.new_version or '-'}")
    print(f"Applied migrations: {summary.applied_count}")
    print(f"Reverted migrations: {summary.reverted_count}")


def format_status(status: MigrationStatus) -> str:
    return (
        f"{status.version:>7}  {status.name:<40}  "
        f"{'x' if status.is_applied else '':^7}  "
        f"{'x' if status.is_valid else 'INVALID':^7}  "
        f"{'x' if status.reversible else '':^10}"
    )


def execute(
    args: argparse.Namespace,
    operation: Callable[[Migrator], Awaitable[int]],
) -> int:
    """Run ``operation`` against a freshly connected migrator.

    Returns:
        The operation's exit code, or 1 on any MigratorError.
    """
    try:
        settings = build_settings(args)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    setup_logging(settings)

    async def _run() -> int:
        migrator = await open_migrator(settings)
        async with migrator:
            return await operation(migrator)

    try:
        return asyncio.run(_run())
    except MigratorError as e:
        logger.error(f"{args.command} failed: {e}", exc_info=args.verbose)
        print(f"Error: {e}", file=sys.stderr)
        return 1


def require_force(args: argparse.Namespace) -> bool:
    if args.force:
        return True
    print(
        "Error: the --do-as-i-say or --force flag is required for this operation",
        file=sys.stderr,
    )
    return False


# =============================================================================
# Commands
# =============================================================================


def run_migrate(args: argparse.Namespace) -> int:
    """Apply migrations up to a version, or all of them.

    Args:
        args: Parsed command line arguments.

    Returns:
        Exit code (0 for success, 1 for error).
    """

    async def operation(migrator: Migrator) -> int:
        version = resolve_version(migrator, args.name, args.version)
        if version is None:
            summary = await migrator.migrate_all()
        else:
            summary = await migrator.migrate(version)
        print_summary(summary)
        return 0

    return execute(args, operation)


def run_revert(args: argparse.Namespace) -> int:
    """Revert migrations down to and including a version, or all of them.

    Args:
        args: Parsed command line arguments.

    Returns:
        Exit code (0 for success, 1 for error).
    """
    if not require_force(args):
        return 1

    async def operation(migrator: Migrator) -> int:
        version = resolve_version(migrator, args.name, args.version)
        if version is None:
            summary = await migrator.revert_all()
        else:
            summary = await migrator.revert(version)
        print_summary(summary)
        return 0

    return execute(args, operation)


def run_force(args: argparse.Namespace) -> int:
    """Stamp the bookkeeping table without running migrations.

    Args:
        args: Parsed command line arguments.

    Returns:
        Exit code (0 for success, 1 for error).
    """
    if not require_force(args):
        return 1

    async def operation(migrator: Migrator) -> int:
        version = resolve_version(migrator, args.name, args.version)
        if version is None:
            raise ConfigurationError("force requires --name or --version")
        summary = await migrator.force_version(version)
        print_summary(summary)
        return 0

    return execute(args, operation)


def run_verify(args: argparse.Namespace) -> int:
    """Verify applied migrations against local ones."""

    async def operation(migrator: Migrator) -> int:
        await migrator.verify()
        print("No issues found.")
        return 0

    return execute(args, operation)


def run_status(args: argparse.Namespace) -> int:
    """Print every version slot; exit 1 when any slot is invalid."""

    async def operation(migrator: Migrator) -> int:
        statuses = await migrator.status()
        print(f"{'Version':>7}  {'Name':<40}  {'Applied':^7}  {'Valid':^7}  {'Reversible':^10}")
        for status in statuses:
            print(format_status(status))
        return 0 if all(status.is_valid for status in statuses) else 1

    return execute(args, operation)


def run_new(args: argparse.Namespace) -> int:
    """Create the file(s) for a new migration.

    Args:
        args: Parsed command line arguments.

    Returns:
        Exit code (0 for success, 1 for error).
    """
    try:
        settings = build_settings(args)
        setup_logging(settings)
        created = new_migration_files(
            settings.migrations_path,
            args.migration_name,
            sql=not args.python,
            reversible=args.reversible,
        )
    except MigratorError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    for path in created:
        print(f"Created {path}")
    return 0


# =============================================================================
# Argument parsing
# =============================================================================


def _add_target_arguments(parser: argparse.ArgumentParser, required: bool = False) -> None:
    group = parser.add_mutually_exclusive_group(required=required)
    group.add_argument(
        "--name",
        default=None,
        help="Target the migration with the given name",
    )
    group.add_argument(
        "--version",
        type=int,
        default=None,
        help="Target the migration with the given version",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sql-migrator",
        description="Apply, revert and inspect SQL schema migrations",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="Database URL (default: SQL_MIGRATOR_DATABASE_URL or DATABASE_URL)",
    )
    parser.add_argument(
        "--migrations-table",
        default=None,
        help="Name of the bookkeeping table (default: _sqlx_migrations)",
    )
    parser.add_argument(
        "--migrations-path",
        default=None,
        help="Directory holding migration files (default: ./migrations)",
    )
    parser.add_argument(
        "--no-verify-checksums",
        action="store_true",
        help="Skip verifying checksums before migrating or reverting",
    )
    parser.add_argument(
        "--no-verify-names",
        "--no-verify-name",
        action="store_true",
        help="Skip verifying migration names",
    )
    parser.add_argument(
        "--do-as-i-say",
        "--force",
        dest="force",
        action="store_true",
        help="Confirm destructive operations (revert, force)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit logs as JSON lines",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        description="Available commands",
    )

    migrate_parser = subparsers.add_parser(
        "migrate",
        help="Apply all migrations, or up to a given migration",
    )
    _add_target_arguments(migrate_parser)

    revert_parser = subparsers.add_parser(
        "revert",
        help="Revert all migrations, or down to and including a given migration",
    )
    _add_target_arguments(revert_parser)

    force_parser = subparsers.add_parser(
        "force",
        help="Mark migrations up to a given one as applied without running them",
    )
    _add_target_arguments(force_parser, required=True)

    subparsers.add_parser(
        "verify",
        aliases=["check"],
        help="Verify applied migrations against local ones",
    )

    subparsers.add_parser(
        "status",
        aliases=["list"],
        help="List local and applied migrations",
    )

    new_parser = subparsers.add_parser(
        "new",
        aliases=["add"],
        help="Create a new migration",
    )
    new_parser.add_argument(
        "migration_name",
        help="Name of the migration (letters, digits and underscores)",
    )
    new_parser.add_argument(
        "-r",
        "--reversible",
        action="store_true",
        help="Also create a revert file",
    )
    new_parser.add_argument(
        "--python",
        action="store_true",
        help="Create Python migration files instead of SQL",
    )

    return parser


COMMANDS: dict[str, Callable[[argparse.Namespace], int]] = {
    "migrate": run_migrate,
    "revert": run_revert,
    "force": run_force,
    "verify": run_verify,
    "check": run_verify,
    "status": run_status,
    "list": run_status,
    "new": run_new,
    "add": run_new,
}


def main(argv: list[str] | None = None) -> NoReturn:
    """Main entry point with subcommand support."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    sys.exit(COMMANDS[args.command](args))


if __name__ == "__main__":
    main()
