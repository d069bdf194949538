"""Unit tests for backend adapter helpers."""

from __future__ import annotations

import zlib

import pytest

from sql_migrator.adapters import connect_backend, url_scheme
from sql_migrator.adapters.postgres_backend import LOCK_ID_SALT, generate_lock_id
from sql_migrator.adapters.sqlite_backend import (
    SqliteBackend,
    database_from_url,
    null_bindings,
    split_statements,
)
from sql_migrator.core.errors import ConfigurationError, DatabaseError

pytestmark = pytest.mark.unit


class TestUrlScheme:
    """Tests for URL scheme detection."""

    @pytest.mark.parametrize(
        ("url", "scheme"),
        [
            ("sqlite:///app.db", "sqlite"),
            ("sqlite::memory:", "sqlite"),
            ("postgres://localhost/app", "postgres"),
            ("postgresql+asyncpg://localhost/app", "postgresql"),
            ("POSTGRESQL://localhost/app", "postgresql"),
        ],
    )
    def test_schemes(self, url: str, scheme: str) -> None:
        assert url_scheme(url) == scheme

    def test_missing_scheme(self) -> None:
        with pytest.raises(ConfigurationError):
            url_scheme("app.db")

    @pytest.mark.asyncio
    async def test_unsupported_scheme(self) -> None:
        with pytest.raises(ConfigurationError, match="mysql"):
            await connect_backend("mysql://localhost/app")


class TestSqliteUrls:
    """Tests for SQLite URL parsing."""

    @pytest.mark.parametrize(
        ("url", "database"),
        [
            ("sqlite::memory:", ":memory:"),
            ("sqlite://:memory:", ":memory:"),
            ("sqlite:///app.db", "app.db"),
            ("sqlite:///data/app.db?mode=rwc", "data/app.db"),
            ("sqlite:////var/lib/app.db", "/var/lib/app.db"),
            ("sqlite:app.db", "app.db"),
        ],
    )
    def test_database_from_url(self, url: str, database: str) -> None:
        assert database_from_url(url) == database

    @pytest.mark.parametrize("url", ["postgres://localhost/app", "sqlite://", "sqlite:"])
    def test_invalid_urls(self, url: str) -> None:
        with pytest.raises(ConfigurationError):
            database_from_url(url)


class TestSplitStatements:
    """Tests for SQL script splitting."""

    def test_splits_on_semicolons(self) -> None:
        script = "CREATE TABLE a (id INT);\nCREATE TABLE b (id INT);"

        assert split_statements(script) == [
            "CREATE TABLE a (id INT);",
            "CREATE TABLE b (id INT);",
        ]

    def test_keeps_semicolons_in_literals(self) -> None:
        script = "INSERT INTO t VALUES ('a;b'); SELECT 1;"

        assert split_statements(script) == ["INSERT INTO t VALUES ('a;b');", "SELECT 1;"]

    def test_keeps_trigger_bodies_together(self) -> None:
        trigger = (
            "CREATE TRIGGER t_ins AFTER INSERT ON t BEGIN "
            "UPDATE t SET n = n + 1; "
            "END;"
        )

        assert split_statements(trigger + " SELECT 1;") == [trigger, "SELECT 1;"]

    def test_trailing_statement_without_semicolon(self) -> None:
        assert split_statements("SELECT 1; SELECT 2") == ["SELECT 1;", "SELECT 2"]

    def test_blank_script(self) -> None:
        assert split_statements("  \n ") == []


class TestNullBindings:
    """Tests for placeholder binding generation."""

    @pytest.mark.parametrize(
        ("sql", "bindings"),
        [
            ("SELECT 1", ()),
            ("INSERT INTO t (a, b) VALUES (?, ?)", (None, None)),
            ("SELECT ?3, ?1", (None, None, None)),
            ("SELECT ?2, ?", (None, None, None)),
            ("SELECT '?', \"col?\", [x?] -- ?\n, ? /* ? */", (None,)),
        ],
    )
    def test_positional(self, sql: str, bindings: tuple[None, ...]) -> None:
        assert null_bindings(sql) == bindings

    def test_named(self) -> None:
        sql = "UPDATE t SET a = :a, b = @b WHERE id = $id AND c = ':skip'"

        assert null_bindings(sql) == {"a": None, "b": None, "id": None}


class TestLockId:
    """Tests for the Postgres advisory lock key."""

    def test_matches_salted_crc32(self) -> None:
        assert generate_lock_id("app") == LOCK_ID_SALT * zlib.crc32(b"app")

    def test_stable_and_distinct(self) -> None:
        assert generate_lock_id("app") == generate_lock_id("app")
        assert generate_lock_id("app") != generate_lock_id("other")


class TestSqliteBackend:
    """Tests for the SQLite adapter against an in-memory database."""

    @pytest.mark.asyncio
    async def test_memory_url(self) -> None:
        backend = await connect_backend("sqlite::memory:")
        try:
            assert isinstance(backend, SqliteBackend)
            await backend.ensure_table("_sqlx_migrations")
            await backend.ensure_table("_sqlx_migrations")
            assert await backend.list_applied("_sqlx_migrations") == []
        finally:
            await backend.close()

    @pytest.mark.asyncio
    async def test_driver_errors_are_wrapped(self) -> None:
        backend = await SqliteBackend.connect(":memory:")
        try:
            tx = await backend.begin()
            with pytest.raises(DatabaseError) as exc_info:
                await tx.execute("CREATE TABLE broken (")
            await tx.rollback()

            assert exc_info.value.__cause__ is not None
        finally:
            await backend.close()

    @pytest.mark.asyncio
    async def test_rollback_discards_statements(self) -> None:
        backend = await SqliteBackend.connect(":memory:")
        try:
            tx = await backend.begin()
            await tx.execute("CREATE TABLE t (id INTEGER); INSERT INTO t VALUES (1);")
            assert await tx.fetch_one("SELECT COUNT(*) FROM t") == (1,)
            await tx.rollback()

            tx = await backend.begin()
            rows = await tx.fetch_all(
                "SELECT name FROM sqlite_master WHERE type = ? AND name = ?", "table", "t"
            )
            await tx.rollback()
            assert rows == []
        finally:
            await backend.close()

    @pytest.mark.asyncio
    async def test_parameterized_execute_returns_rowcount(self) -> None:
        backend = await SqliteBackend.connect(":memory:")
        try:
            tx = await backend.begin()
            await tx.execute("CREATE TABLE t (id INTEGER)")
            await tx.execute_many("INSERT INTO t VALUES (?)", [(1,), (2,), (3,)])
            assert await tx.execute("DELETE FROM t WHERE id > ?", 1) == 2
            assert await tx.prepare("SELECT id FROM t")
            await tx.commit()
        finally:
            await backend.close()

    @pytest.mark.asyncio
    async def test_single_statement_returns_rowcount(self) -> None:
        backend = await SqliteBackend.connect(":memory:")
        try:
            tx = await backend.begin()
            await tx.execute("CREATE TABLE t (id INTEGER); INSERT INTO t VALUES (1);")
            await tx.execute("INSERT INTO t VALUES (2)")

            assert await tx.execute("UPDATE t SET id = id + 10") == 2
            assert await tx.execute("DELETE FROM t; SELECT 1;") == -1
            await tx.rollback()
        finally:
            await backend.close()

    @pytest.mark.asyncio
    async def test_prepare_parameterized_statements(self) -> None:
        backend = await SqliteBackend.connect(":memory:")
        try:
            tx = await backend.begin()
            await tx.execute("CREATE TABLE t (id INTEGER, name TEXT)")

            assert await tx.prepare("INSERT INTO t (id, name) VALUES (?, ?)")
            assert await tx.prepare("SELECT name FROM t WHERE id = :id")
            assert await tx.prepare("SELECT name FROM t WHERE id = ?", 1)
            assert await tx.fetch_all("SELECT * FROM t") == []
            await tx.rollback()
        finally:
            await backend.close()
