"""Checksum computation for migrations.

A migration's checksum is the SHA-256 of the SQL text its apply action
submits. The text is collected by running the action once against a
:class:`~sql_migrator.core.context.MigrationContext` in hash-only mode, so
nothing reaches the database and the result does not depend on its data.

Known limitation: an apply action that branches on rows it reads sees empty
results during the dry pass, so its checksum can differ from the statements
a real run submits.
"""

from __future__ import annotations

import hashlib
from typing import TYPE_CHECKING

from sql_migrator.core.context import MigrationContext
from sql_migrator.core.errors import MigrationApplyError

if TYPE_CHECKING:
    from sql_migrator.core.migration import Extensions, Migration
    from sql_migrator.ports.backend import BackendTransaction


class ChecksumHasher:
    """Write-only SHA-256 accumulator for submitted SQL text."""

    def __init__(self) -> None:
        self._hash = hashlib.sha256()
        self._statements = 0

    def update(self, sql: str) -> None:
        """Feed one statement's text into the hash."""
        self._hash.update(sql.encode("utf-8"))
        self._statements += 1

    @property
    def statements(self) -> int:
        """Number of statements hashed so far."""
        return self._statements

    def finalize(self) -> bytes:
        return self._hash.digest()


async def compute_checksum(
    migration: Migration,
    version: int,
    tx: BackendTransaction,
    extensions: Extensions,
) -> bytes:
    """Dry-run a migration's apply action and return its checksum.

    Args:
        migration: Migration whose apply action is hashed.
        version: Version of the migration, used in error reports.
        tx: Open transaction the context is bound to. No statements are sent.
        extensions: Extension data handed to the migration body.

    Returns:
        The 32-byte SHA-256 digest.

    Raises:
        MigrationApplyError: If the apply action raises during the dry pass.
    """
    hasher = ChecksumHasher()
    ctx = MigrationContext(tx, hasher, hash_only=True, extensions=extensions)
    try:
        await migration.up(ctx)
    except Exception as e:
        raise MigrationApplyError(migration.name, version, e) from e
    return hasher.finalize()
