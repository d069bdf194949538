"""Postgres backend adapter built on asyncpg.

Cross-process exclusion uses a session-level advisory lock keyed by a hash
of the current database name. The lock lives outside transaction scope: if
the process dies while holding it, Postgres releases it when the session
ends, but a pooled or proxied session that outlives the process keeps it
until ``pg_advisory_unlock`` is called for the same key.
"""

from __future__ import annotations

import logging
import zlib
from collections.abc import AsyncIterator, Iterable, Sequence
from contextlib import asynccontextmanager
from typing import Any

import asyncpg

from sql_migrator.core.errors import DatabaseError
from sql_migrator.core.models import AppliedMigration
from sql_migrator.core.utils import nanos_to_timedelta, timedelta_to_nanos

logger = logging.getLogger(__name__)

# Multiplier for the advisory lock key; keeps keys distinct from locks other
# tools derive from the same CRC.
LOCK_ID_SALT = 0x20871D5F


def generate_lock_id(database_name: str) -> int:
    """Derive a stable bigint advisory lock key from a database name."""
    return LOCK_ID_SALT * zlib.crc32(database_name.encode("utf-8"))


@asynccontextmanager
async def _wrap_errors(action: str) -> AsyncIterator[None]:
    """Translate driver errors into DatabaseError."""
    try:
        yield
    except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
        raise DatabaseError(f"Failed to {action}: {e}") from e


class PostgresTransaction:
    """Transaction on an asyncpg connection."""

    def __init__(self, conn: asyncpg.Connection, transaction: Any) -> None:
        self._conn = conn
        self._transaction = transaction

    async def execute(self, sql: str, *args: Any) -> str:
        async with _wrap_errors("execute statement"):
            return await self._conn.execute(sql, *args)

    async def execute_many(self, sql: str, args: Iterable[Sequence[Any]]) -> None:
        async with _wrap_errors("execute statement batch"):
            await self._conn.executemany(sql, [tuple(row) for row in args])

    async def fetch_all(self, sql: str, *args: Any) -> list[Any]:
        async with _wrap_errors("fetch rows"):
            return list(await self._conn.fetch(sql, *args))

    async def fetch_one(self, sql: str, *args: Any) -> Any | None:
        async with _wrap_errors("fetch row"):
            return await self._conn.fetchrow(sql, *args)

    async def prepare(self, sql: str, *args: Any) -> Any:
        # Parameter types are inferred by the server; bindings are not needed.
        async with _wrap_errors("prepare statement"):
            return await self._conn.prepare(sql)

    async def commit(self) -> None:
        async with _wrap_errors("commit transaction"):
            await self._transaction.commit()

    async def rollback(self) -> None:
        async with _wrap_errors("roll back transaction"):
            await self._transaction.rollback()


class PostgresBackend:
    """MigrationBackend implementation for Postgres."""

    dialect = "postgres"

    def __init__(self, conn: asyncpg.Connection) -> None:
        self._conn = conn
        self._lock_id: int | None = None

    @classmethod
    async def connect(cls, url: str) -> PostgresBackend:
        async with _wrap_errors("connect to Postgres"):
            conn = await asyncpg.connect(url)
        logger.debug("Connected to Postgres")
        return cls(conn)

    @property
    def connection(self) -> asyncpg.Connection:
        return self._conn

    async def _current_lock_id(self) -> int:
        if self._lock_id is None:
            async with _wrap_errors("read current database name"):
                database_name = await self._conn.fetchval("SELECT current_database()")
            self._lock_id = generate_lock_id(database_name)
        return self._lock_id

    async def ensure_table(self, table_name: str) -> None:
        async with _wrap_errors(f"create migrations table {table_name}"):
            await self._conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {table_name} (
                    version BIGINT PRIMARY KEY,
                    name TEXT NOT NULL,
                    applied_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                    checksum BYTEA NOT NULL,
                    execution_time BIGINT NOT NULL
                )
                """
            )

    async def lock(self) -> None:
        lock_id = await self._current_lock_id()
        logger.debug(f"Acquiring advisory lock {lock_id}")
        # Blocks until the lock is acquired.
        async with _wrap_errors("acquire advisory lock"):
            await self._conn.execute("SELECT pg_advisory_lock($1)", lock_id)

    async def unlock(self) -> None:
        lock_id = await self._current_lock_id()
        logger.debug(f"Releasing advisory lock {lock_id}")
        async with _wrap_errors("release advisory lock"):
            await self._conn.execute("SELECT pg_advisory_unlock($1)", lock_id)

    async def list_applied(self, table_name: str) -> list[AppliedMigration]:
        async with _wrap_errors(f"list applied migrations from {table_name}"):
            rows = await self._conn.fetch(
                f"""
                SELECT version, name, checksum, execution_time, applied_at
                FROM {table_name}
                ORDER BY version
                """
            )
        return [
            AppliedMigration(
                version=int(row["version"]),
                name=row["name"],
                checksum=bytes(row["checksum"]),
                execution_time=nanos_to_timedelta(int(row["execution_time"])),
                applied_at=row["applied_at"],
            )
            for row in rows
        ]

    async def insert_applied(
        self,
        table_name: str,
        migration: AppliedMigration,
        tx: PostgresTransaction,
    ) -> None:
        logger.debug(f"Recording migration {migration.version} in {table_name}")
        await tx.execute(
            f"""
            INSERT INTO {table_name} (version, name, checksum, execution_time)
            VALUES ($1, $2, $3, $4)
            """,
            migration.version,
            migration.name,
            migration.checksum,
            timedelta_to_nanos(migration.execution_time),
        )

    async def delete_applied(
        self,
        table_name: str,
        version: int,
        tx: PostgresTransaction,
    ) -> None:
        logger.debug(f"Removing migration {version} from {table_name}")
        await tx.execute(f"DELETE FROM {table_name} WHERE version = $1", version)

    async def clear_applied(self, table_name: str) -> None:
        async with _wrap_errors(f"clear {table_name}"):
            await self._conn.execute(f"TRUNCATE {table_name}")

    async def begin(self) -> PostgresTransaction:
        transaction = self._conn.transaction()
        async with _wrap_errors("begin transaction"):
            await transaction.start()
        return PostgresTransaction(self._conn, transaction)

    async def close(self) -> None:
        async with _wrap_errors("close Postgres connection"):
            await self._conn.close()
