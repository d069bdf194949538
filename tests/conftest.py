"""Pytest fixtures for SQL Migrator tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Generator
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio

from sql_migrator.adapters.sqlite_backend import SqliteBackend
from sql_migrator.config import Settings, override_settings, reset_settings
from sql_migrator.core.context import MigrationContext
from sql_migrator.core.errors import DatabaseError
from sql_migrator.core.migration import Extensions, Migration
from sql_migrator.core.migrator import Migrator
from sql_migrator.core.models import AppliedMigration

# ---------------------------------------------------------------------------
# Basic fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Provide a temporary SQLite database file path."""
    return tmp_path / "test.db"


@pytest.fixture
def test_settings(tmp_path: Path, db_path: Path) -> Generator[Settings, None, None]:
    """Provide settings pointing at temporary storage."""
    settings = Settings(
        database_url=f"sqlite:///{db_path}",
        migrations_path=tmp_path / "migrations",
        log_level="DEBUG",
    )
    override_settings(settings)
    yield settings
    reset_settings()


@pytest_asyncio.fixture
async def sqlite_backend(db_path: Path) -> AsyncGenerator[SqliteBackend, None]:
    """Provide a connected SQLite backend on a temporary file."""
    backend = await SqliteBackend.connect(db_path)
    yield backend
    await backend.close()


# ---------------------------------------------------------------------------
# Sample migrations
# ---------------------------------------------------------------------------


class EventLog:
    """Records which migration actions ran for real, in order."""

    def __init__(self) -> None:
        self.events: list[str] = []

    def record(self, event: str) -> None:
        self.events.append(event)


def make_migration(
    name: str,
    up_sql: str,
    down_sql: str | None = None,
) -> Migration:
    """Build a migration that logs real (non dry-run) executions.

    The event log is looked up from the context's extensions, so the same
    migration can be used with or without one.
    """

    async def up(ctx: MigrationContext) -> None:
        await ctx.execute(up_sql)
        log = ctx.get(EventLog)
        if log is not None and not ctx.hash_only:
            log.record(f"up:{name}")

    migration = Migration(name, up)
    if down_sql is None:
        return migration

    async def down(ctx: MigrationContext) -> None:
        await ctx.execute(down_sql)
        log = ctx.get(EventLog)
        if log is not None:
            log.record(f"down:{name}")

    return migration.reversible(down)


@pytest.fixture
def event_log() -> EventLog:
    return EventLog()


@pytest.fixture
def abc_migrations() -> list[Migration]:
    """A (reversible), B (reversible), C (not reversible)."""
    return [
        make_migration("a", "CREATE TABLE a (id INTEGER PRIMARY KEY)", "DROP TABLE a"),
        make_migration("b", "CREATE TABLE b (id INTEGER PRIMARY KEY)", "DROP TABLE b"),
        make_migration("c", "CREATE TABLE c (id INTEGER PRIMARY KEY)"),
    ]


@pytest.fixture
def reversible_migrations() -> list[Migration]:
    """Three fully reversible migrations."""
    return [
        make_migration(
            "create_users",
            "CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT NOT NULL)",
            "DROP TABLE users",
        ),
        make_migration(
            "create_tags",
            "CREATE TABLE tags (id INTEGER PRIMARY KEY, label TEXT UNIQUE)",
            "DROP TABLE tags",
        ),
        make_migration(
            "create_posts",
            "CREATE TABLE posts (id INTEGER PRIMARY KEY, user_id INTEGER);"
            "CREATE INDEX idx_posts_user ON posts (user_id);",
            "DROP INDEX idx_posts_user; DROP TABLE posts;",
        ),
    ]


@pytest_asyncio.fixture
async def sqlite_migrator(
    sqlite_backend: SqliteBackend,
    abc_migrations: list[Migration],
    event_log: EventLog,
) -> Migrator:
    """Migrator over a temporary SQLite database with A, B, C registered."""
    return Migrator(
        sqlite_backend,
        migrations=abc_migrations,
        extensions=Extensions(event_log),
    )


async def sqlite_tables(backend: SqliteBackend) -> set[str]:
    """Names of user tables in a SQLite database."""
    rows = await backend.connection.execute_fetchall(
        "SELECT name FROM sqlite_master WHERE type = 'table'"
    )
    return {row[0] for row in rows}


# ---------------------------------------------------------------------------
# In-memory recording backend
# ---------------------------------------------------------------------------


class RecordingTransaction:
    """Transaction that stages bookkeeping changes until commit."""

    def __init__(self, backend: RecordingBackend) -> None:
        self._backend = backend
        self.rows: list[AppliedMigration] = list(backend.rows)
        self.statements: list[str] = []

    async def _run(self, sql: str) -> None:
        self._backend.calls.append("execute")
        if self._backend.fail_on is not None and self._backend.fail_on in sql:
            raise DatabaseError(f"statement failed: {sql}")
        self.statements.append(sql)

    async def execute(self, sql: str, *args: Any) -> None:
        await self._run(sql)

    async def execute_many(self, sql: str, args: Any) -> None:
        await self._run(sql)

    async def fetch_all(self, sql: str, *args: Any) -> list[Any]:
        await self._run(sql)
        return [("row",)]

    async def fetch_one(self, sql: str, *args: Any) -> Any:
        await self._run(sql)
        return ("row",)

    async def prepare(self, sql: str, *args: Any) -> Any:
        await self._run(sql)
        return "prepared"

    async def commit(self) -> None:
        self._backend.calls.append("commit")
        self._backend.rows = sorted(self.rows, key=lambda row: row.version)
        self._backend.committed.extend(self.statements)

    async def rollback(self) -> None:
        self._backend.calls.append("rollback")


class RecordingBackend:
    """MigrationBackend fake that records every call in order.

    ``calls`` lists backend-level operations; ``committed`` lists statements
    from committed transactions only.
    """

    dialect = "recording"

    def __init__(self, rows: list[AppliedMigration] | None = None) -> None:
        self.rows: list[AppliedMigration] = list(rows or [])
        self.calls: list[str] = []
        self.committed: list[str] = []
        self.fail_on: str | None = None
        self.fail_unlock = False
        self.tables: list[str] = []
        self.closed = False

    async def ensure_table(self, table_name: str) -> None:
        self.calls.append("ensure_table")
        self.tables.append(table_name)

    async def lock(self) -> None:
        self.calls.append("lock")

    async def unlock(self) -> None:
        self.calls.append("unlock")
        if self.fail_unlock:
            raise DatabaseError("unlock failed")

    async def list_applied(self, table_name: str) -> list[AppliedMigration]:
        self.calls.append("list_applied")
        return list(self.rows)

    async def insert_applied(
        self,
        table_name: str,
        migration: AppliedMigration,
        tx: RecordingTransaction,
    ) -> None:
        self.calls.append(f"insert:{migration.version}")
        tx.rows.append(migration)

    async def delete_applied(
        self,
        table_name: str,
        version: int,
        tx: RecordingTransaction,
    ) -> None:
        self.calls.append(f"delete:{version}")
        tx.rows = [row for row in tx.rows if row.version != version]

    async def clear_applied(self, table_name: str) -> None:
        self.calls.append("clear")
        self.rows = []

    async def begin(self) -> RecordingTransaction:
        self.calls.append("begin")
        return RecordingTransaction(self)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def recording_backend() -> RecordingBackend:
    return RecordingBackend()
