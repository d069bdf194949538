"""Unit tests for the migration directory loader."""

from __future__ import annotations

import hashlib
from pathlib import Path

import pytest

from sql_migrator.core.checksum import ChecksumHasher
from sql_migrator.core.context import MigrationContext
from sql_migrator.core.errors import MigrationLoadError
from sql_migrator.core.loader import (
    MigrationFile,
    load_migrations,
    new_migration_files,
    scan_migration_files,
)
from sql_migrator.core.migration import Extensions
from tests.conftest import RecordingBackend, RecordingTransaction

pytestmark = pytest.mark.unit


def write(path: Path, name: str, content: str = "") -> Path:
    file_path = path / name
    file_path.write_text(content, encoding="utf-8")
    return file_path


def recording_context() -> tuple[MigrationContext, RecordingTransaction]:
    tx = RecordingTransaction(RecordingBackend())
    ctx = MigrationContext(tx, ChecksumHasher(), hash_only=False, extensions=Extensions())
    return ctx, tx


class TestMigrationFile:
    """Tests for file name parsing."""

    def test_parses_migrate_file(self) -> None:
        parsed = MigrationFile.parse(Path("20211215161742_initial_migration.migrate.sql"))

        assert parsed is not None
        assert parsed.date == "20211215161742"
        assert parsed.name == "initial_migration"
        assert parsed.kind == "migrate"
        assert parsed.source == "sql"

    def test_parses_revert_python_file(self) -> None:
        parsed = MigrationFile.parse(Path("20211215162220_plush_sharks.revert.py"))

        assert parsed is not None
        assert parsed.kind == "revert"
        assert parsed.source == "py"

    @pytest.mark.parametrize(
        "name",
        [
            "README.md",
            "2021_short_date.migrate.sql",
            "20211215161742_bad-name.migrate.sql",
            "20211215161742_name.up.sql",
            "20211215161742_name.migrate.rs",
        ],
    )
    def test_ignores_other_files(self, name: str) -> None:
        assert MigrationFile.parse(Path(name)) is None


class TestLoadMigrations:
    """Tests for load_migrations."""

    def test_orders_by_date_and_pairs_reverts(self, tmp_path: Path) -> None:
        write(tmp_path, "20240201000000_second.migrate.sql", "CREATE TABLE b (id INT)")
        write(tmp_path, "20240101000000_first.migrate.sql", "CREATE TABLE a (id INT)")
        write(tmp_path, "20240101000000_first.revert.sql", "DROP TABLE a")
        write(tmp_path, "notes.txt", "ignored")

        migrations = load_migrations(tmp_path)

        assert [m.name for m in migrations] == ["first", "second"]
        assert migrations[0].is_reversible is True
        assert migrations[1].is_reversible is False

    @pytest.mark.asyncio
    async def test_sql_files_execute_their_script(self, tmp_path: Path) -> None:
        script = "CREATE TABLE a (id INT);\nCREATE INDEX idx_a ON a (id);\n"
        write(tmp_path, "20240101000000_first.migrate.sql", script)

        [migration] = load_migrations(tmp_path)
        ctx, tx = recording_context()
        await migration.up(ctx)

        assert tx.statements == [script]

    @pytest.mark.asyncio
    async def test_sql_checksum_is_file_content(self, tmp_path: Path) -> None:
        """The checksum of a SQL migration is the hash of its file."""
        script = "CREATE TABLE a (id INT);"
        write(tmp_path, "20240101000000_first.migrate.sql", script)

        [migration] = load_migrations(tmp_path)
        hasher = ChecksumHasher()
        await migration.up(
            MigrationContext(
                RecordingTransaction(RecordingBackend()),
                hasher,
                hash_only=True,
                extensions=Extensions(),
            )
        )

        assert hasher.finalize() == hashlib.sha256(script.encode()).digest()

    @pytest.mark.asyncio
    async def test_python_files_use_named_functions(self, tmp_path: Path) -> None:
        write(
            tmp_path,
            "20240101000000_seed.migrate.py",
            "async def seed(ctx):\n    await ctx.execute('INSERT INTO t VALUES (1)')\n",
        )
        write(
            tmp_path,
            "20240101000000_seed.revert.py",
            "async def revert_seed(ctx):\n    await ctx.execute('DELETE FROM t')\n",
        )

        [migration] = load_migrations(tmp_path)
        ctx, tx = recording_context()
        await migration.up(ctx)
        assert migration.down is not None
        await migration.down(ctx)

        assert tx.statements == ["INSERT INTO t VALUES (1)", "DELETE FROM t"]

    @pytest.mark.asyncio
    async def test_python_files_fall_back_to_generic_names(self, tmp_path: Path) -> None:
        write(
            tmp_path,
            "20240101000000_seed.migrate.py",
            "async def migrate(ctx):\n    await ctx.execute('SELECT 1')\n",
        )

        [migration] = load_migrations(tmp_path)
        ctx, tx = recording_context()
        await migration.up(ctx)

        assert tx.statements == ["SELECT 1"]

    def test_python_function_must_be_async(self, tmp_path: Path) -> None:
        write(tmp_path, "20240101000000_seed.migrate.py", "def seed(ctx):\n    pass\n")

        with pytest.raises(MigrationLoadError, match="async function"):
            load_migrations(tmp_path)

    def test_python_file_without_function(self, tmp_path: Path) -> None:
        write(tmp_path, "20240101000000_seed.migrate.py", "VALUE = 1\n")

        with pytest.raises(MigrationLoadError, match="expected an async function"):
            load_migrations(tmp_path)

    def test_python_import_error_is_wrapped(self, tmp_path: Path) -> None:
        write(tmp_path, "20240101000000_seed.migrate.py", "raise RuntimeError('broken')\n")

        with pytest.raises(MigrationLoadError, match="broken"):
            load_migrations(tmp_path)

    def test_duplicate_migration_names(self, tmp_path: Path) -> None:
        write(tmp_path, "20240101000000_same.migrate.sql", "SELECT 1")
        write(tmp_path, "20240102000000_same.migrate.sql", "SELECT 2")

        with pytest.raises(MigrationLoadError, match="Duplicate"):
            load_migrations(tmp_path)

    def test_revert_without_migrate(self, tmp_path: Path) -> None:
        write(tmp_path, "20240101000000_orphan.revert.sql", "DROP TABLE a")

        with pytest.raises(MigrationLoadError, match="orphan"):
            load_migrations(tmp_path)

    def test_missing_directory(self, tmp_path: Path) -> None:
        with pytest.raises(MigrationLoadError):
            load_migrations(tmp_path / "missing")

    def test_empty_directory(self, tmp_path: Path) -> None:
        assert load_migrations(tmp_path) == []


class TestNewMigrationFiles:
    """Tests for new_migration_files."""

    def test_creates_sql_migration(self, tmp_path: Path) -> None:
        target = tmp_path / "migrations"

        [created] = new_migration_files(target, "create_users")

        assert created.parent == target
        assert created.name.endswith("_create_users.migrate.sql")
        assert MigrationFile.parse(created) is not None
        assert "create_users" in created.read_text(encoding="utf-8")

    def test_creates_reversible_python_pair(self, tmp_path: Path) -> None:
        created = new_migration_files(tmp_path, "seed", sql=False, reversible=True)

        assert [p.name.split("_", 1)[1] for p in created] == [
            "seed.migrate.py",
            "seed.revert.py",
        ]
        assert "async def seed(ctx: MigrationContext)" in created[0].read_text(encoding="utf-8")
        assert "async def revert_seed(" in created[1].read_text(encoding="utf-8")

    def test_scaffolded_files_load(self, tmp_path: Path) -> None:
        new_migration_files(tmp_path, "seed", sql=False, reversible=True)
        new_migration_files(tmp_path, "other", reversible=True)

        names = {m.name for m in load_migrations(tmp_path)}

        assert names == {"seed", "other"}
        assert len(scan_migration_files(tmp_path)) == 4

    @pytest.mark.parametrize("name", ["", "has space", "1starts_with_digit", "dash-name"])
    def test_rejects_invalid_names(self, tmp_path: Path, name: str) -> None:
        with pytest.raises(MigrationLoadError, match="Invalid migration name"):
            new_migration_files(tmp_path, name)

    def test_rejects_existing_name(self, tmp_path: Path) -> None:
        new_migration_files(tmp_path, "create_users")

        with pytest.raises(MigrationLoadError, match="already exists"):
            new_migration_files(tmp_path, "create_users")
