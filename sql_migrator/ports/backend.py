"""Protocol interfaces for database backends.

The migrator depends only on these protocols. Each supported database has
one adapter in ``sql_migrator.adapters`` that implements both of them on
top of a single live connection.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any, Protocol

from sql_migrator.core.models import AppliedMigration


class BackendTransaction(Protocol):
    """An open transaction on the backend's connection.

    All statement methods raise ``DatabaseError`` on driver failure.
    Placeholders follow the driver's own syntax (``?`` for SQLite,
    ``$1`` for Postgres).
    """

    async def execute(self, sql: str, *args: Any) -> Any:
        """Execute a statement.

        Without arguments, ``sql`` may contain several statements.

        Returns:
            A driver-specific status value (row count or command tag).
        """
        ...

    async def execute_many(self, sql: str, args: Iterable[Sequence[Any]]) -> None:
        """Execute one statement once per argument tuple."""
        ...

    async def fetch_all(self, sql: str, *args: Any) -> list[Any]:
        """Run a query and return every row."""
        ...

    async def fetch_one(self, sql: str, *args: Any) -> Any | None:
        """Run a query and return the first row, or None."""
        ...

    async def prepare(self, sql: str, *args: Any) -> Any:
        """Prepare (and describe) a statement without running it.

        ``args`` are optional sample bindings for the placeholders; adapters
        that need bindings to compile a statement supply NULLs otherwise.
        """
        ...

    async def commit(self) -> None:
        ...

    async def rollback(self) -> None:
        ...


class MigrationBackend(Protocol):
    """Bookkeeping operations for one database kind.

    ``table_name`` is embedded directly into SQL and must come from trusted
    configuration, never from user input.
    """

    dialect: str

    async def ensure_table(self, table_name: str) -> None:
        """Create the bookkeeping table if it does not exist."""
        ...

    async def lock(self) -> None:
        """Acquire the database-scoped exclusion lock.

        Blocks until the lock is available. Backends without a native lock
        may implement this as a no-op only for single-writer databases.
        """
        ...

    async def unlock(self) -> None:
        """Release the lock taken by :meth:`lock`."""
        ...

    async def list_applied(self, table_name: str) -> list[AppliedMigration]:
        """Return applied migrations ordered by ascending version."""
        ...

    async def insert_applied(
        self,
        table_name: str,
        migration: AppliedMigration,
        tx: BackendTransaction,
    ) -> None:
        """Insert a bookkeeping row inside ``tx``."""
        ...

    async def delete_applied(
        self,
        table_name: str,
        version: int,
        tx: BackendTransaction,
    ) -> None:
        """Delete the bookkeeping row for ``version`` inside ``tx``."""
        ...

    async def clear_applied(self, table_name: str) -> None:
        """Delete every bookkeeping row (outside any migration transaction)."""
        ...

    async def begin(self) -> BackendTransaction:
        """Start a transaction on the backend's connection."""
        ...

    async def close(self) -> None:
        """Close the underlying connection."""
        ...
