"""
Migration data models and the declared migration catalog.
"""

from bisect import bisect_left
from dataclasses import dataclass, field
from typing import Any, Callable, Coroutine, Iterable, Iterator, NamedTuple, Optional, Union

from docmigrate.core.exceptions import DuplicateMigrationError, InvalidMigrationError

ApplyFunc = Callable[[Any, str], Coroutine[Any, Any, None]]

# Version reported when the ledger holds no records at all.
NO_VERSION = -1

ROOT_VERSION = 0
ROOT_NAME = "-"

# Versions are stored as BSON int64.
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


async def noop(db: Any, prefix: str) -> None:
    """Up/down body of the root migration."""
    return None


@dataclass(frozen=True)
class Migration:
    """
    Represents a declared database migration.

    Attributes:
        version: Unique version number, the sole ordering key.
        name: Human-readable name of the migration.
        up: Async function ``(db, prefix)`` applying the migration.
        down: Async function ``(db, prefix)`` rolling the migration back.
        description: Detailed description of what the migration does.
        file_path: Path to the migration file, if loaded from disk.
    """

    version: int
    name: str
    up: ApplyFunc = noop
    down: ApplyFunc = noop
    description: str = ""
    file_path: str = ""

    def to_record(self) -> "MigrationRecord":
        """Build the ledger record stored once this migration is applied."""
        return MigrationRecord(version=self.version, name=self.name)


ROOT_MIGRATION = Migration(
    version=ROOT_VERSION,
    name=ROOT_NAME,
    description="Root migration, marks an initialized ledger",
)


@dataclass
class MigrationRecord:
    """
    Record of an applied migration stored in the ledger.

    Attributes:
        version: Migration version number.
        name: Migration name.
        id: Document identifier assigned by the store on insert.
    """

    version: int
    name: str
    id: Optional[Any] = field(default=None, compare=False)

    def to_dict(self) -> dict:
        """Convert to dictionary for MongoDB storage."""
        doc = {"version": self.version, "name": self.name}
        if self.id is not None:
            doc["_id"] = self.id
        return doc

    @classmethod
    def from_dict(cls, data: dict) -> "MigrationRecord":
        """Create from MongoDB document."""
        return cls(
            version=data["version"],
            name=data.get("name", ""),
            id=data.get("_id"),
        )


class PlanEntry(NamedTuple):
    """One step of a merge plan: a declared migration or an applied record."""

    item: Union[Migration, MigrationRecord]
    applied: bool

    @property
    def version(self) -> int:
        return self.item.version

    @property
    def name(self) -> str:
        return self.item.name


class VersionChange(NamedTuple):
    """Ledger version before and after a command."""

    old_version: int
    new_version: int


@dataclass
class MigrationStatusReport:
    """Snapshot of the ledger compared to the declared migrations."""

    current_version: int
    latest_version: int
    applied: list[MigrationRecord]
    pending: list[Migration]
    unknown: list[MigrationRecord]

    def to_dict(self) -> dict:
        return {
            "current_version": self.current_version,
            "latest_version": self.latest_version,
            "applied_count": len(self.applied),
            "pending_count": len(self.pending),
            "applied": [{"version": r.version, "name": r.name} for r in self.applied],
            "pending": [
                {"version": m.version, "name": m.name, "description": m.description}
                for m in self.pending
            ],
            "unknown": [{"version": r.version, "name": r.name} for r in self.unknown],
        }


class MigrationSet:
    """
    Immutable, version-sorted catalog of declared migrations.

    The root migration (version 0) is always present as the first element;
    declaring another migration with version 0 is a duplicate.
    """

    def __init__(self, migrations: Iterable[Migration] = ()):
        items = [ROOT_MIGRATION]
        for migration in migrations:
            if not isinstance(migration.version, int) or isinstance(migration.version, bool):
                raise InvalidMigrationError(
                    f"Migration version must be an integer: {migration.version!r}"
                )
            if migration.version < ROOT_VERSION:
                raise InvalidMigrationError(
                    f"Migration version must not be negative: {migration.version}"
                )
            if migration.version > INT64_MAX:
                raise InvalidMigrationError(
                    f"Migration version exceeds the 64-bit range: {migration.version}"
                )
            items.append(migration)

        items.sort(key=lambda m: m.version)
        for previous, current in zip(items, items[1:]):
            if previous.version == current.version:
                raise DuplicateMigrationError(current.version)

        self._migrations: tuple[Migration, ...] = tuple(items)
        self._versions: list[int] = [m.version for m in items]

    def __iter__(self) -> Iterator[Migration]:
        return iter(self._migrations)

    def __len__(self) -> int:
        return len(self._migrations)

    def __getitem__(self, index: int) -> Migration:
        return self._migrations[index]

    def __contains__(self, version: object) -> bool:
        return self.index_of(version) is not None  # type: ignore[arg-type]

    def __repr__(self) -> str:
        return f"MigrationSet(versions={self._versions!r})"

    @property
    def root(self) -> Migration:
        return self._migrations[0]

    @property
    def latest(self) -> Migration:
        return self._migrations[-1]

    @property
    def versions(self) -> list[int]:
        return list(self._versions)

    def index_of(self, version: int) -> Optional[int]:
        """Position of the migration with ``version``, or None."""
        i = bisect_left(self._versions, version)
        if i < len(self._versions) and self._versions[i] == version:
            return i
        return None

    def get(self, version: int) -> Optional[Migration]:
        i = self.index_of(version)
        return self._migrations[i] if i is not None else None

    def previous(self, version: int) -> Optional[Migration]:
        """Declared migration immediately below ``version``."""
        i = bisect_left(self._versions, version)
        return self._migrations[i - 1] if i > 0 else None

    def up_to(self, version: int) -> list[Migration]:
        """Migrations from the root up to and including ``version``."""
        i = self.index_of(version)
        if i is None:
            return []
        return list(self._migrations[: i + 1])
