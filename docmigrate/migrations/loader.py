"""
Discovery of migration files on disk.

A migration file is named ``NNN_name.py`` and defines two coroutine
functions, ``up(db, prefix)`` and ``down(db, prefix)``, plus an optional
module-level ``description`` string. The version comes from the filename.
"""

import importlib.util
import inspect
import os
import re
from pathlib import Path
from typing import Union

from docmigrate.core.exceptions import MigrationLoadError
from docmigrate.log.logging import logger
from docmigrate.migrations.models import Migration, MigrationSet

MIGRATION_FILENAME = re.compile(r"^(\d+)_(.+)\.py$")


def load_migration_file(file_path: Union[str, Path]) -> Migration:
    """
    Load a migration from a Python file.

    Args:
        file_path: Path to the migration file.

    Returns:
        The declared migration.

    Raises:
        MigrationLoadError: Bad filename, import failure, or missing up/down.
    """
    file_path = str(file_path)
    filename = os.path.basename(file_path)

    match = MIGRATION_FILENAME.match(filename)
    if not match:
        raise MigrationLoadError(f"Invalid migration filename: {filename}")

    version = int(match.group(1))
    name = match.group(2)

    spec = importlib.util.spec_from_file_location(f"docmigrate_migration_{version}", file_path)
    if spec is None or spec.loader is None:
        raise MigrationLoadError(f"Cannot import migration file: {filename}")

    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        raise MigrationLoadError(f"Error loading migration {filename}: {e}") from e

    for func_name in ("up", "down"):
        func = getattr(module, func_name, None)
        if func is None or not inspect.iscoroutinefunction(func):
            raise MigrationLoadError(
                f"Migration {filename} must define async function {func_name}(db, prefix)"
            )

    return Migration(
        version=version,
        name=name,
        up=module.up,
        down=module.down,
        description=getattr(module, "description", f"Migration {version}"),
        file_path=file_path,
    )


def discover_migrations(migrations_dir: Union[str, Path]) -> MigrationSet:
    """
    Discover all migration files in a directory.

    Files starting with ``_`` are ignored; other ``.py`` files that do not
    follow the naming pattern are skipped with a warning.

    Returns:
        The declared migrations, root included, sorted by version.
    """
    migrations_dir = str(migrations_dir)
    migrations = []

    if not os.path.isdir(migrations_dir):
        logger.warning(
            "Migrations directory not found: {path}",
            path=migrations_dir,
            event_type="migrations_dir_missing",
        )
        return MigrationSet()

    for filename in sorted(os.listdir(migrations_dir)):
        if not filename.endswith(".py") or filename.startswith("_"):
            continue
        if not MIGRATION_FILENAME.match(filename):
            logger.warning(
                "Skipping invalid migration filename: {filename}",
                filename=filename,
                event_type="migration_skip",
            )
            continue
        migrations.append(load_migration_file(os.path.join(migrations_dir, filename)))

    migration_set = MigrationSet(migrations)

    logger.info(
        "Discovered {count} migrations",
        event_type="migrations_discovered",
        count=len(migrations),
    )
    return migration_set


def next_version(migrations_dir: Union[str, Path]) -> int:
    """Version number for a new migration file in ``migrations_dir``."""
    versions = []
    if os.path.isdir(migrations_dir):
        for filename in os.listdir(migrations_dir):
            match = MIGRATION_FILENAME.match(filename)
            if match:
                versions.append(int(match.group(1)))
    return max(versions, default=0) + 1
