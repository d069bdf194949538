"""SQLite backend adapter built on aiosqlite.

The connection is opened in autocommit mode (``isolation_level=None``) and
transactions are driven with explicit ``BEGIN``/``COMMIT``/``ROLLBACK`` so
that DDL issued by migrations is transactional too.

SQLite has no advisory locks. ``lock()``/``unlock()`` are no-ops, which is
only safe when a single process writes to the database file at a time.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import AsyncIterator, Iterable, Sequence
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import aiosqlite

from sql_migrator.core.errors import ConfigurationError, DatabaseError
from sql_migrator.core.models import AppliedMigration
from sql_migrator.core.utils import (
    from_unix_timestamp,
    nanos_to_timedelta,
    timedelta_to_nanos,
    utc_now,
)

logger = logging.getLogger(__name__)

MEMORY_DATABASE = ":memory:"


def database_from_url(url: str) -> str:
    """Extract the database path from a SQLite URL.

    Accepted forms: ``sqlite::memory:``, ``sqlite://:memory:``,
    ``sqlite:///relative.db``, ``sqlite:////absolute/path.db`` and
    ``sqlite:path.db``. A query string is ignored.

    Raises:
        ConfigurationError: If the URL is not a SQLite URL.
    """
    if not url.startswith("sqlite:"):
        raise ConfigurationError(f"Not a SQLite URL: {url}")

    rest = url[len("sqlite:"):].split("?", 1)[0]
    if rest in (MEMORY_DATABASE, "//" + MEMORY_DATABASE, "///" + MEMORY_DATABASE):
        return MEMORY_DATABASE
    if rest.startswith("///"):
        rest = rest[3:]
    elif rest.startswith("//"):
        rest = rest[2:]
    if not rest:
        raise ConfigurationError(f"SQLite URL has no database path: {url}")
    return rest


def split_statements(script: str) -> list[str]:
    """Split a SQL script into complete statements.

    Uses ``sqlite3.complete_statement`` so semicolons inside string literals
    and trigger bodies do not end a statement.
    """
    statements: list[str] = []
    buffer: list[str] = []
    for char in script:
        buffer.append(char)
        if char == ";":
            candidate = "".join(buffer)
            if sqlite3.complete_statement(candidate):
                statements.append(candidate.strip())
                buffer = []
    remainder = "".join(buffer).strip()
    if remainder:
        statements.append(remainder)
    return statements


def null_bindings(sql: str) -> tuple[None, ...] | dict[str, None]:
    """NULL bindings for every placeholder in ``sql``.

    String literals, quoted identifiers and comments are skipped. ``?NNN``
    raises the positional count to NNN. Named placeholders (``:name``,
    ``@name``, ``$name``) produce a mapping instead of a tuple.
    """
    highest = 0
    names: dict[str, None] = {}
    i, n = 0, len(sql)
    while i < n:
        char = sql[i]
        if char in "'\"`[":
            end = sql.find("]" if char == "[" else char, i + 1)
            i = n if end == -1 else end + 1
        elif sql.startswith("--", i):
            end = sql.find("\n", i)
            i = n if end == -1 else end + 1
        elif sql.startswith("/*", i):
            end = sql.find("*/", i + 2)
            i = n if end == -1 else end + 2
        elif char == "?":
            j = i + 1
            while j < n and sql[j].isdigit():
                j += 1
            highest = max(highest, int(sql[i + 1:j])) if j > i + 1 else highest + 1
            i = j
        elif (
            char in ":@$"
            and i + 1 < n
            and (sql[i + 1].isalpha() or sql[i + 1] == "_")
            and (i == 0 or not (sql[i - 1].isalnum() or sql[i - 1] == "_"))
        ):
            j = i + 1
            while j < n and (sql[j].isalnum() or sql[j] == "_"):
                j += 1
            names[sql[i + 1:j]] = None
            i = j
        else:
            i += 1
    if names:
        return names
    return (None,) * highest


@asynccontextmanager
async def _wrap_errors(action: str) -> AsyncIterator[None]:
    """Translate driver errors into DatabaseError."""
    try:
        yield
    except (sqlite3.Error, ValueError, OSError) as e:
        raise DatabaseError(f"Failed to {action}: {e}") from e


class SqliteTransaction:
    """Transaction on an aiosqlite connection."""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def execute(self, sql: str, *args: Any) -> int:
        """Run ``sql`` and return its row count.

        Without arguments ``sql`` may hold several statements; the row count
        is then -1 unless there was exactly one.
        """
        async with _wrap_errors("execute statement"):
            if not args:
                # executescript() may COMMIT the open transaction on some
                # Python versions, so scripts are run statement by statement.
                statements = split_statements(sql)
                rowcount = -1
                for statement in statements:
                    cursor = await self._conn.execute(statement)
                    rowcount = cursor.rowcount
                    await cursor.close()
                return rowcount if len(statements) == 1 else -1
            cursor = await self._conn.execute(sql, args)
            try:
                return cursor.rowcount
            finally:
                await cursor.close()

    async def execute_many(self, sql: str, args: Iterable[Sequence[Any]]) -> None:
        async with _wrap_errors("execute statement batch"):
            await self._conn.executemany(sql, [tuple(row) for row in args])

    async def fetch_all(self, sql: str, *args: Any) -> list[Any]:
        async with _wrap_errors("fetch rows"):
            return list(await self._conn.execute_fetchall(sql, args))

    async def fetch_one(self, sql: str, *args: Any) -> Any | None:
        async with _wrap_errors("fetch row"):
            async with self._conn.execute(sql, args) as cursor:
                return await cursor.fetchone()

    async def prepare(self, sql: str, *args: Any) -> Any:
        # sqlite3 has no standalone prepare; EXPLAIN compiles the statement
        # without running it, but still needs a value for every placeholder.
        bindings = args if args else null_bindings(sql)
        async with _wrap_errors("prepare statement"):
            return list(await self._conn.execute_fetchall(f"EXPLAIN {sql}", bindings))

    async def commit(self) -> None:
        async with _wrap_errors("commit transaction"):
            await self._conn.execute("COMMIT")

    async def rollback(self) -> None:
        async with _wrap_errors("roll back transaction"):
            if self._conn.in_transaction:
                await self._conn.execute("ROLLBACK")


class SqliteBackend:
    """MigrationBackend implementation for SQLite."""

    dialect = "sqlite"

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    @classmethod
    async def connect(cls, url_or_path: str | Path) -> SqliteBackend:
        """Open a SQLite database from a URL or a filesystem path."""
        if isinstance(url_or_path, str) and url_or_path.startswith("sqlite:"):
            database = database_from_url(url_or_path)
        else:
            database = str(url_or_path)

        async with _wrap_errors(f"open SQLite database {Path(database).name}"):
            conn = await aiosqlite.connect(database, isolation_level=None)
        logger.debug(f"Opened SQLite database {Path(database).name}")
        return cls(conn)

    @property
    def connection(self) -> aiosqlite.Connection:
        return self._conn

    async def ensure_table(self, table_name: str) -> None:
        async with _wrap_errors(f"create migrations table {table_name}"):
            await self._conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {table_name} (
                    version BIGINT PRIMARY KEY,
                    name TEXT NOT NULL,
                    applied_at INTEGER NOT NULL,
                    checksum BLOB NOT NULL,
                    execution_time BIGINT NOT NULL
                )
                """
            )

    async def lock(self) -> None:
        pass

    async def unlock(self) -> None:
        pass

    async def list_applied(self, table_name: str) -> list[AppliedMigration]:
        async with _wrap_errors(f"list applied migrations from {table_name}"):
            rows = await self._conn.execute_fetchall(
                f"""
                SELECT version, name, checksum, execution_time, applied_at
                FROM {table_name}
                ORDER BY version
                """
            )
        return [
            AppliedMigration(
                version=int(row[0]),
                name=row[1],
                checksum=bytes(row[2]),
                execution_time=nanos_to_timedelta(int(row[3])),
                applied_at=from_unix_timestamp(row[4]),
            )
            for row in rows
        ]

    async def insert_applied(
        self,
        table_name: str,
        migration: AppliedMigration,
        tx: SqliteTransaction,
    ) -> None:
        logger.debug(f"Recording migration {migration.version} in {table_name}")
        await tx.execute(
            f"""
            INSERT INTO {table_name} (version, name, checksum, execution_time, applied_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            migration.version,
            migration.name,
            migration.checksum,
            timedelta_to_nanos(migration.execution_time),
            int(utc_now().timestamp()),
        )

    async def delete_applied(
        self,
        table_name: str,
        version: int,
        tx: SqliteTransaction,
    ) -> None:
        logger.debug(f"Removing migration {version} from {table_name}")
        await tx.execute(f"DELETE FROM {table_name} WHERE version = ?", version)

    async def clear_applied(self, table_name: str) -> None:
        # SQLite has no TRUNCATE.
        async with _wrap_errors(f"clear {table_name}"):
            await self._conn.execute(f"DELETE FROM {table_name}")

    async def begin(self) -> SqliteTransaction:
        async with _wrap_errors("begin transaction"):
            await self._conn.execute("BEGIN")
        return SqliteTransaction(self._conn)

    async def close(self) -> None:
        async with _wrap_errors("close SQLite database"):
            await self._conn.close()
