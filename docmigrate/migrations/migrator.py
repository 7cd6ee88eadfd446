"""
Migrator: applies and rolls back migrations against the ledger.
"""

import asyncio
import re
import time
from typing import Any, Awaitable, Callable, Iterable, Optional, Sequence, Union

from motor.motor_asyncio import AsyncIOMotorDatabase

from docmigrate.core.exceptions import (
    CommandRequiredError,
    InvalidVersionFormatError,
    LedgerAlreadyInitializedError,
    MigrationExecutionError,
    MigrationsAbsentError,
    NoMigrationsError,
    TargetVersionNotFoundError,
    UnexpectedCommandError,
    VersionNumberRequiredError,
)
from docmigrate.log.logging import logger
from docmigrate.migrations.ledger import LedgerStore, MongoLedgerStore, ledger_collection_name
from docmigrate.migrations.models import (
    INT64_MAX,
    INT64_MIN,
    NO_VERSION,
    ROOT_VERSION,
    Migration,
    MigrationSet,
    MigrationStatusReport,
    VersionChange,
)
from docmigrate.migrations.reconciler import correlate, merge

VERSION_ARGUMENT = re.compile(r"[+-]?[0-9]+")


def parse_version(args: Sequence[str], required: bool = False) -> Optional[int]:
    """
    Parse the optional version argument of a command.

    Args:
        args: Arguments following the command name; only the first is used.
        required: Whether a missing argument is an error.

    Returns:
        The version, or None when absent and not required.

    Raises:
        VersionNumberRequiredError: Missing but required.
        InvalidVersionFormatError: Not a signed 64-bit decimal integer.
    """
    if not args:
        if required:
            raise VersionNumberRequiredError()
        return None

    raw = args[0]
    if not isinstance(raw, str) or not VERSION_ARGUMENT.fullmatch(raw):
        raise InvalidVersionFormatError(raw)

    version = int(raw, 10)
    if not INT64_MIN <= version <= INT64_MAX:
        raise InvalidVersionFormatError(raw)
    return version


class Migrator:
    """
    Manages and executes database migrations.

    Features:
    - Reconciles declared migrations with the applied ledger history
    - Applies migrations up to a target version, rolls back one at a time
    - Resets to the root migration, refusing when the ledger has drifted
    - Forces the ledger to a declared version without running migrations

    The ledger is the only state; every step is recorded as soon as it
    completes so an interrupted command can be resumed by running it again.
    """

    def __init__(
        self,
        migrations: Union[MigrationSet, Iterable[Migration]],
        store: LedgerStore,
        db: Any,
        prefix: str,
    ):
        """
        Initialize the migrator.

        Args:
            migrations: Declared migrations; wrapped in a MigrationSet if needed.
            store: Ledger store recording applied migrations.
            db: Target database handed to every up/down body.
            prefix: Namespace prefix handed to every up/down body.
        """
        if not isinstance(migrations, MigrationSet):
            migrations = MigrationSet(migrations)
        self._migrations = migrations
        self._store = store
        self._db = db
        self._prefix = prefix

    @classmethod
    def for_database(
        cls,
        db: AsyncIOMotorDatabase,
        migrations: Union[MigrationSet, Iterable[Migration]],
        prefix: str,
    ) -> "Migrator":
        """Build a migrator whose ledger is ``<prefix>_migrations`` in ``db``."""
        store = MongoLedgerStore(db, ledger_collection_name(prefix))
        return cls(migrations, store, db, prefix)

    @property
    def migrations(self) -> MigrationSet:
        return self._migrations

    @property
    def store(self) -> LedgerStore:
        return self._store

    async def run(self, args: Sequence[str]) -> VersionChange:
        """
        Interpret a command and its optional version argument.

        Raises:
            CommandRequiredError: ``args`` is empty.
            UnexpectedCommandError: Unknown command name.
        """
        if not args:
            raise CommandRequiredError()

        command, rest = args[0], args[1:]

        if command == "init":
            return await self.init()
        if command == "up":
            return await self.up(parse_version(rest, required=False))
        if command == "down":
            return await self.down()
        if command == "reset":
            return await self.reset()
        if command == "version":
            return await self.version()
        if command == "set_version":
            return await self.set_version(parse_version(rest, required=True))

        raise UnexpectedCommandError(command)

    async def init(self) -> VersionChange:
        """
        Create the ledger collection and record the root migration.

        Raises:
            LedgerAlreadyInitializedError: The root record already exists.
        """
        if await self._store.ensure_collection():
            await self._store.create_version_index()

        if await self._store.find_one(version=ROOT_VERSION) is not None:
            raise LedgerAlreadyInitializedError(self._store.name)

        latest = await self._store.latest()
        old_version = latest.version if latest else NO_VERSION

        await self._store.insert_one(self._migrations.root.to_record())

        logger.info(
            "Migrations ledger initialized: {collection}",
            event_type="migration_initialized",
            collection=self._store.name,
        )
        return VersionChange(old_version, max(old_version, ROOT_VERSION))

    async def up(self, target: Optional[int] = None) -> VersionChange:
        """
        Apply pending migrations up to ``target`` (the latest when None).

        Raises:
            MigrationExecutionError: An up body failed. Earlier migrations stay
                recorded; ``new_version`` is the version that failed.
        """
        history = await self._store.history()
        old_version = new_version = history[-1].version if history else NO_VERSION

        plan = merge(history, list(self._migrations), target)
        pending = [entry for entry in plan if not entry.applied]

        for entry in pending:
            new_version = entry.version
            await self._run_step(self._apply(entry.item, old_version, new_version))

        if not pending:
            logger.info(
                "No pending migrations to apply",
                event_type="migration_none",
                version=old_version,
            )
        return VersionChange(old_version, new_version)

    async def down(self) -> VersionChange:
        """
        Roll back the most recently applied migration.

        At the root this is a no-op.

        Raises:
            NoMigrationsError: The ledger is empty.
            MigrationsAbsentError: The latest record has no declared migration.
            MigrationExecutionError: The down body failed; nothing was purged.
        """
        latest = await self._store.latest()
        if latest is None:
            raise NoMigrationsError()

        old_version = new_version = latest.version

        index = self._migrations.index_of(latest.version)
        if index is None:
            raise MigrationsAbsentError(latest)

        if index == 0:
            logger.info(
                "Already at the root migration, nothing to roll back",
                event_type="migration_none",
                version=old_version,
            )
            return VersionChange(old_version, new_version)

        migration = self._migrations[index]
        new_version = self._migrations[index - 1].version

        await self._run_step(self._rollback(migration, latest.id, old_version, new_version))

        return VersionChange(old_version, new_version)

    async def reset(self) -> VersionChange:
        """
        Roll back every applied migration, highest first, down to the root.

        The root record is never purged.

        Raises:
            MigrationsAbsentError: Some applied record is not declared. Nothing
                is rolled back in that case.
            MigrationExecutionError: A down body failed; migrations above it
                are already rolled back.
        """
        history = await self._store.history()
        if not history:
            return VersionChange(NO_VERSION, NO_VERSION)

        old_version = new_version = history[-1].version

        try:
            correlated = correlate(history, list(self._migrations))
        except MigrationsAbsentError as e:
            logger.error(
                "Reset aborted, applied migration {version} is not declared",
                event_type="migration_absent",
                version=e.record.version,
            )
            e.old_version = e.new_version = old_version
            raise

        for i in range(len(correlated) - 1, -1, -1):
            migration = correlated[i]
            new_version = correlated[i - 1].version if i > 0 else migration.version

            await self._run_step(self._rollback(migration, None, old_version, new_version))

        return VersionChange(old_version, new_version)

    async def version(self) -> VersionChange:
        """
        Report the highest applied version.

        Raises:
            NoMigrationsError: The ledger is empty.
        """
        latest = await self._store.latest()
        if latest is None:
            raise NoMigrationsError()
        return VersionChange(latest.version, latest.version)

    async def set_version(self, target: int) -> VersionChange:
        """
        Force the ledger to ``target`` without running any migration.

        Every existing record is purged, then records for all declared
        migrations from the root up to ``target`` are inserted in one call.

        Raises:
            TargetVersionNotFoundError: ``target`` is not declared.
        """
        stamped = self._migrations.up_to(target)
        if not stamped:
            raise TargetVersionNotFoundError(target)

        latest = await self._store.latest()
        old_version = latest.version if latest else NO_VERSION
        if old_version == target:
            return VersionChange(old_version, old_version)

        records = [record async for record in self._store.find()]
        for record in records:
            await self._store.purge(record.id)

        await self._store.insert_many(m.to_record() for m in stamped)

        logger.warning(
            "Ledger version forced from {old_version} to {new_version}",
            event_type="migration_version_set",
            old_version=old_version,
            new_version=target,
            purged=len(records),
        )
        return VersionChange(old_version, target)

    async def status(self) -> MigrationStatusReport:
        """
        Compare the ledger with the declared migrations.

        Returns:
            Applied records, migrations ``up`` would apply, and applied
            records with no declaration.
        """
        history = await self._store.history()
        plan = merge(history, list(self._migrations))

        return MigrationStatusReport(
            current_version=history[-1].version if history else NO_VERSION,
            latest_version=self._migrations.latest.version,
            applied=history,
            pending=[entry.item for entry in plan if not entry.applied],
            unknown=[r for r in history if r.version not in self._migrations],
        )

    async def _run_step(self, step: Awaitable[None]) -> None:
        """
        Run one migrate-and-record step to completion.

        Cancellation is honoured between steps only: if the caller is
        cancelled mid-step, the step still finishes before the cancellation
        propagates, so the ledger always matches the migrations that ran.
        """
        task = asyncio.ensure_future(step)
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            await asyncio.wait([task])
            error = None if task.cancelled() else task.exception()
            if error is not None:
                logger.error(
                    "Migration step failed after cancellation: {error}",
                    event_type="migration_cancelled_failure",
                    error=str(error),
                    old_version=getattr(error, "old_version", None),
                    new_version=getattr(error, "new_version", None),
                )
            raise

    async def _apply(self, migration: Migration, old_version: int, new_version: int) -> None:
        await self._execute(migration, "up", old_version, new_version)
        await self._store.insert_one(migration.to_record())

    async def _rollback(
        self,
        migration: Migration,
        record_id: Any,
        old_version: int,
        new_version: int,
    ) -> None:
        await self._execute(migration, "down", old_version, new_version)

        if migration.version == ROOT_VERSION:
            return

        if record_id is None:
            record = await self._store.find_one(version=migration.version)
            if record is None:
                raise NoMigrationsError(old_version, new_version)
            record_id = record.id
        await self._store.purge(record_id)

    async def _execute(
        self,
        migration: Migration,
        direction: str,
        old_version: int,
        new_version: int,
    ) -> None:
        """Run the up or down body of ``migration``, wrapping failures."""
        func: Callable[[Any, str], Awaitable[None]] = getattr(migration, direction)

        logger.info(
            "{action} migration {version}: {name}",
            action="Applying" if direction == "up" else "Rolling back",
            event_type="migration_applying" if direction == "up" else "migration_rolling_back",
            version=migration.version,
            name=migration.name,
        )

        start_time = time.time()
        try:
            await func(self._db, self._prefix)
        except Exception as e:
            logger.error(
                "Migration {version} {direction} failed: {error}",
                event_type="migration_failed",
                version=migration.version,
                direction=direction,
                error=str(e),
            )
            raise MigrationExecutionError(
                migration.version, direction, e, old_version, new_version
            ) from e

        execution_time_ms = int((time.time() - start_time) * 1000)
        logger.info(
            "Migration {version} {direction} completed in {execution_time_ms}ms",
            event_type="migration_applied" if direction == "up" else "migration_rolled_back",
            version=migration.version,
            direction=direction,
            execution_time_ms=execution_time_ms,
        )
