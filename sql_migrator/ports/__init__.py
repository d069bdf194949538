"""Port interfaces for SQL Migrator."""

from sql_migrator.ports.backend import BackendTransaction, MigrationBackend

__all__ = [
    "BackendTransaction",
    "MigrationBackend",
]
