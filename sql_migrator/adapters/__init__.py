"""Backend adapters for SQL Migrator.

Drivers are imported lazily so that only the driver for the requested
database has to be importable.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sql_migrator.core.errors import ConfigurationError

if TYPE_CHECKING:
    from sql_migrator.ports.backend import MigrationBackend

SQLITE_SCHEMES = ("sqlite",)
POSTGRES_SCHEMES = ("postgres", "postgresql")


def url_scheme(url: str) -> str:
    """Return the lowercase scheme of a database URL (``postgresql+asyncpg`` -> ``postgresql``)."""
    scheme, sep, _ = url.partition(":")
    if not sep or not scheme:
        raise ConfigurationError("Database URL has no scheme")
    return scheme.split("+", 1)[0].lower()


async def connect_backend(url: str) -> MigrationBackend:
    """Open the backend adapter matching the URL scheme.

    Raises:
        ConfigurationError: If the scheme is not supported.
        DatabaseError: If the connection fails.
    """
    scheme = url_scheme(url)

    if scheme in SQLITE_SCHEMES:
        from sql_migrator.adapters.sqlite_backend import SqliteBackend

        return await SqliteBackend.connect(url)

    if scheme in POSTGRES_SCHEMES:
        from sql_migrator.adapters.postgres_backend import PostgresBackend

        # asyncpg does not understand driver suffixes such as "+asyncpg".
        _, _, rest = url.partition(":")
        return await PostgresBackend.connect(f"{scheme}:{rest}")

    raise ConfigurationError(f"Unsupported database scheme: {scheme}")


__all__ = [
    "POSTGRES_SCHEMES",
    "SQLITE_SCHEMES",
    "connect_backend",
    "url_scheme",
]
