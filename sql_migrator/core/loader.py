"""Load migrations from a directory of dated files.

Files are named ``<YYYYMMDDHHMMSS>_<name>.migrate.<ext>`` and, for
reversible migrations, ``<YYYYMMDDHHMMSS>_<name>.revert.<ext>`` where
``ext`` is ``sql`` or ``py``. Migrations are ordered by their date prefix,
then name; other files are ignored.

A ``.sql`` file is executed as one script. A ``.py`` file must define an
``async def`` taking a MigrationContext, named after the migration
(``revert_<name>`` for revert files) or simply ``migrate`` / ``revert``.

Example layout:
    migrations/
        20240115103000_create_users.migrate.sql
        20240115103000_create_users.revert.sql
        20240201090000_backfill_emails.migrate.py
"""

from __future__ import annotations

import importlib.util
import inspect
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from types import ModuleType

from sql_migrator.core.context import MigrationContext
from sql_migrator.core.errors import MigrationLoadError
from sql_migrator.core.migration import Migration, MigrationFn
from sql_migrator.core.utils import utc_now

logger = logging.getLogger(__name__)

MIGRATION_FILE_RE = re.compile(
    r"^(?P<date>\d{14})_(?P<name>[A-Za-z_][A-Za-z0-9_]*)\.(?P<kind>migrate|revert)\.(?P<source>sql|py)$",
    re.IGNORECASE,
)

NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

DATE_FORMAT = "%Y%m%d%H%M%S"


@dataclass(frozen=True)
class MigrationFile:
    """A parsed migration file name."""

    path: Path
    date: str
    name: str
    kind: str
    source: str

    @classmethod
    def parse(cls, path: Path) -> MigrationFile | None:
        match = MIGRATION_FILE_RE.match(path.name)
        if match is None:
            return None
        return cls(
            path=path,
            date=match.group("date"),
            name=match.group("name"),
            kind=match.group("kind").lower(),
            source=match.group("source").lower(),
        )


def scan_migration_files(path: Path) -> list[MigrationFile]:
    """List migration files in ``path`` sorted by date, then name."""
    if not path.is_dir():
        raise MigrationLoadError(f"Migrations path is not a directory: {path}")

    files = []
    for entry in path.iterdir():
        if not entry.is_file():
            continue
        parsed = MigrationFile.parse(entry)
        if parsed is None:
            logger.debug(f"Ignoring non-migration file {entry.name}")
            continue
        files.append(parsed)

    files.sort(key=lambda f: (f.date, f.name, f.kind))
    return files


def _sql_action(path: Path) -> MigrationFn:
    sql = path.read_text(encoding="utf-8")

    async def action(ctx: MigrationContext) -> None:
        await ctx.execute(sql)

    return action


def _import_file(path: Path) -> ModuleType:
    module_name = f"sql_migrator_migrations.{path.stem.replace('.', '_')}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise MigrationLoadError(f"Cannot import migration file {path.name}")
    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        raise MigrationLoadError(f"Failed to import migration file {path.name}: {e}") from e
    return module


def _python_action(file: MigrationFile) -> MigrationFn:
    module = _import_file(file.path)
    if file.kind == "migrate":
        candidates = (file.name, "migrate")
    else:
        candidates = (f"revert_{file.name}", "revert")

    for attr in candidates:
        action = getattr(module, attr, None)
        if action is None:
            continue
        if not inspect.iscoroutinefunction(action):
            raise MigrationLoadError(
                f"{file.path.name}: {attr} must be an async function"
            )
        return action

    raise MigrationLoadError(
        f"{file.path.name}: expected an async function named "
        f"{' or '.join(candidates)}"
    )


def _action(file: MigrationFile) -> MigrationFn:
    if file.source == "sql":
        return _sql_action(file.path)
    return _python_action(file)


def load_migrations(path: str | Path) -> list[Migration]:
    """Build migrations from a directory, in version order.

    Raises:
        MigrationLoadError: If the directory is missing, a migration has two
            migrate or two revert files, or a revert file has no migrate file.
    """
    path = Path(path)
    ups: dict[str, MigrationFile] = {}
    downs: dict[str, MigrationFile] = {}

    for file in scan_migration_files(path):
        target = ups if file.kind == "migrate" else downs
        if file.name in target:
            raise MigrationLoadError(f"Duplicate {file.kind} migration for {file.name}")
        target[file.name] = file

    orphans = sorted(set(downs) - set(ups))
    if orphans:
        raise MigrationLoadError(
            f"Revert migration without a migrate file: {', '.join(orphans)}"
        )

    migrations = []
    for name, up_file in sorted(ups.items(), key=lambda item: (item[1].date, item[0])):
        migration = Migration(name, _action(up_file))
        down_file = downs.get(name)
        if down_file is not None:
            migration = migration.reversible(_action(down_file))
        migrations.append(migration)

    logger.info(f"Loaded {len(migrations)} migration(s) from {path}")
    return migrations


_SQL_TEMPLATE = "-- {kind} migration {name}, created at {created}.\n"

_PY_TEMPLATE = '''"""{title} migration {name}, created at {created}."""

from sql_migrator import MigrationContext


async def {func}(ctx: MigrationContext) -> None:
    await ctx.execute("")
'''


def new_migration_files(
    path: str | Path,
    name: str,
    *,
    sql: bool = True,
    reversible: bool = False,
) -> list[Path]:
    """Create the file(s) for a new migration dated now.

    Args:
        path: Migrations directory (created if missing).
        name: Migration name; must be an identifier and unique in ``path``.
        sql: Create ``.sql`` files instead of ``.py`` files.
        reversible: Also create a revert file.

    Returns:
        Paths of the created files.

    Raises:
        MigrationLoadError: If the name is invalid or already used.
    """
    path = Path(path)
    if not NAME_RE.match(name):
        raise MigrationLoadError(f"Invalid migration name: {name!r}")

    path.mkdir(parents=True, exist_ok=True)
    if any(f.name == name for f in scan_migration_files(path)):
        raise MigrationLoadError(f"Migration {name} already exists")

    now = utc_now()
    date = now.strftime(DATE_FORMAT)
    created = now.isoformat(timespec="seconds")
    ext = "sql" if sql else "py"
    kinds = ["migrate", "revert"] if reversible else ["migrate"]

    created_files = []
    for kind in kinds:
        file_path = path / f"{date}_{name}.{kind}.{ext}"
        if sql:
            content = _SQL_TEMPLATE.format(kind=kind.capitalize(), name=name, created=created)
        else:
            func = name if kind == "migrate" else f"revert_{name}"
            content = _PY_TEMPLATE.format(
                title=kind.capitalize(), name=name, created=created, func=func
            )
        file_path.write_text(content, encoding="utf-8")
        created_files.append(file_path)
        logger.info(f"Created {file_path.name}")

    return created_files
