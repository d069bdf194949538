"""Migration units and extension data.

A :class:`Migration` is an immutable named pair of an apply action and an
optional revert action. Its version is not stored on the object: it is the
1-based position at which the migration is registered with a ``Migrator``.

Example:
    async def up(ctx):
        await ctx.execute("CREATE TABLE example (id INTEGER)")

    async def down(ctx):
        await ctx.execute("DROP TABLE example")

    migration = Migration("initial", up).reversible(down)
"""

from __future__ import annotations

import dataclasses
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, TypeVar

if TYPE_CHECKING:
    from sql_migrator.core.context import MigrationContext

T = TypeVar("T")

MigrationFn = Callable[["MigrationContext"], Awaitable[None]]


class Extensions:
    """Immutable, type-keyed side channel available to migration bodies.

    Values are keyed by their concrete type; lookups fall back to the first
    value that is an instance of the requested type.

    Example:
        extensions = Extensions(AppSettings(admin_id=1))
        migrator = Migrator(backend, extensions=extensions)

        # inside a migration body
        settings = ctx.get(AppSettings)
    """

    __slots__ = ("_values",)

    def __init__(self, *values: Any) -> None:
        self._values: MappingProxyType[type, Any] = MappingProxyType(
            {type(value): value for value in values}
        )

    def get(self, key: type[T]) -> T | None:
        if key in self._values:
            return self._values[key]
        for candidate in self._values.values():
            if isinstance(candidate, key):
                return candidate
        return None

    def with_values(self, *values: Any) -> Extensions:
        """Return a new Extensions with ``values`` added or replaced."""
        return Extensions(*self._values.values(), *values)

    def __contains__(self, key: type) -> bool:
        return self.get(key) is not None

    def __iter__(self) -> Iterator[Any]:
        return iter(self._values.values())

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        names = ", ".join(t.__name__ for t in self._values)
        return f"Extensions({names})"


@dataclass(frozen=True)
class Migration:
    """A named, ordered, optionally reversible unit of schema change.

    Equality compares names only. Name uniqueness across a registered set is
    the caller's responsibility.

    Attributes:
        name: Migration name, recorded in the bookkeeping table.
        up: Async apply action taking a MigrationContext.
        down: Async revert action, or None if the migration is not reversible.
    """

    name: str
    up: MigrationFn = dataclasses.field(compare=False)
    down: MigrationFn | None = dataclasses.field(default=None, compare=False)

    def reversible(self, down: MigrationFn) -> Migration:
        """Return a copy of this migration with a revert action."""
        return dataclasses.replace(self, down=down)

    # Alias kept for callers that prefer the other spelling.
    revertible = reversible

    @property
    def is_reversible(self) -> bool:
        return self.down is not None

    @classmethod
    def from_sql(cls, name: str, up_sql: str, down_sql: str | None = None) -> Migration:
        """Build a migration whose actions each execute one SQL script."""

        async def up(ctx: MigrationContext) -> None:
            await ctx.execute(up_sql)

        if down_sql is None:
            return cls(name, up)

        async def down(ctx: MigrationContext) -> None:
            await ctx.execute(down_sql)

        return cls(name, up, down)
