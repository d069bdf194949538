"""Execution context handed to migration bodies.

Every statement a migration body submits goes through a
:class:`MigrationContext`. The context feeds the SQL text into a checksum
hasher and, unless it is in hash-only mode, forwards the statement to the
operation's open transaction.

Example:
    async def create_users(ctx: MigrationContext) -> None:
        await ctx.execute("CREATE TABLE users (id INTEGER PRIMARY KEY)")

        settings = ctx.get(AppSettings)
        if settings is not None:
            await ctx.execute(
                "INSERT INTO users (id) VALUES (?)", settings.admin_id
            )
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, Any, TypeVar

if TYPE_CHECKING:
    from sql_migrator.core.checksum import ChecksumHasher
    from sql_migrator.core.migration import Extensions
    from sql_migrator.ports.backend import BackendTransaction

T = TypeVar("T")


class MigrationContext:
    """Statement executor bound to one transaction and one hasher.

    In hash-only mode (the dry pass used for checksums) statements are
    hashed but never sent: ``execute`` returns None, fetches return empty
    results and ``prepare`` returns None.
    """

    def __init__(
        self,
        tx: BackendTransaction,
        hasher: ChecksumHasher,
        *,
        hash_only: bool,
        extensions: Extensions,
    ) -> None:
        self._tx = tx
        self._hasher = hasher
        self._hash_only = hash_only
        self._extensions = extensions

    @property
    def hash_only(self) -> bool:
        """True during the checksum dry pass."""
        return self._hash_only

    @property
    def extensions(self) -> Extensions:
        return self._extensions

    def get(self, key: type[T]) -> T | None:
        """Look up an extension by type."""
        return self._extensions.get(key)

    async def execute(self, sql: str, *args: Any) -> Any:
        self._hasher.update(sql)
        if self._hash_only:
            return None
        return await self._tx.execute(sql, *args)

    async def execute_many(self, sql: str, args: Iterable[Sequence[Any]]) -> None:
        self._hasher.update(sql)
        if self._hash_only:
            return
        await self._tx.execute_many(sql, args)

    async def fetch_all(self, sql: str, *args: Any) -> list[Any]:
        self._hasher.update(sql)
        if self._hash_only:
            return []
        return await self._tx.fetch_all(sql, *args)

    async def fetch_one(self, sql: str, *args: Any) -> Any | None:
        self._hasher.update(sql)
        if self._hash_only:
            return None
        return await self._tx.fetch_one(sql, *args)

    async def prepare(self, sql: str, *args: Any) -> Any:
        self._hasher.update(sql)
        if self._hash_only:
            return None
        return await self._tx.prepare(sql, *args)

    def __repr__(self) -> str:
        return (
            f"MigrationContext(hash_only={self._hash_only}, "
            f"extensions={self._extensions!r})"
        )
