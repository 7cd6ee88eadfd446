import pytest

from docmigrate.core.exceptions import LedgerStoreError
from docmigrate.migrations.ledger import ASCENDING, DESCENDING, LedgerStore
from docmigrate.migrations.migrator import Migrator
from docmigrate.migrations.models import ROOT_NAME, Migration, MigrationRecord

TEST_PREFIX = "test"


class InMemoryLedgerStore(LedgerStore):
    """LedgerStore keeping records in a dict keyed by document id."""

    def __init__(self, records=(), exists=None, name=None):
        self._name = name or f"{TEST_PREFIX}_migrations"
        self.documents: dict[int, MigrationRecord] = {}
        self.exists = bool(records) if exists is None else exists
        self.indexed = False
        self.purged: list[int] = []
        self.bulk_inserts = 0
        self._next_id = 1
        for record in records:
            self._add(record)

    @property
    def name(self) -> str:
        return self._name

    @property
    def versions(self) -> list[int]:
        return sorted(record.version for record in self.documents.values())

    def _add(self, record: MigrationRecord) -> int:
        record_id = self._next_id
        self._next_id += 1
        self.documents[record_id] = MigrationRecord(record.version, record.name, record_id)
        record.id = record_id
        return record_id

    async def ensure_collection(self) -> bool:
        if self.exists:
            return False
        self.exists = True
        return True

    async def create_version_index(self) -> None:
        self.indexed = True

    async def find(self, version=None, version_gt=None, sort=ASCENDING, limit=0):
        records = sorted(
            self.documents.values(), key=lambda r: r.version, reverse=sort == DESCENDING
        )
        if version is not None:
            records = [r for r in records if r.version == version]
        elif version_gt is not None:
            records = [r for r in records if r.version > version_gt]
        if limit:
            records = records[:limit]
        for record in records:
            yield MigrationRecord(record.version, record.name, record.id)

    async def insert_one(self, record):
        self.exists = True
        return self._add(record)

    async def insert_many(self, records):
        self.exists = True
        self.bulk_inserts += 1
        return [self._add(record) for record in records]

    async def purge(self, record_id):
        if record_id not in self.documents:
            raise LedgerStoreError(f"Ledger record not found: {record_id}")
        del self.documents[record_id]
        self.purged.append(record_id)


@pytest.fixture
def calls():
    """Ordered log of (direction, version) for every up/down body invoked."""
    return []


@pytest.fixture
def make_migrations(calls):
    """Factory building declared migrations whose bodies record into ``calls``."""

    def _make(*versions, fail_up=(), fail_down=()):
        def body(direction, version, fail):
            async def _body(db, prefix):
                calls.append((direction, version))
                if fail:
                    raise RuntimeError(f"{direction} {version} exploded")

            return _body

        return [
            Migration(
                version=v,
                name=f"migration_{v}",
                up=body("up", v, v in fail_up),
                down=body("down", v, v in fail_down),
            )
            for v in versions
        ]

    return _make


@pytest.fixture
def make_store():
    """Factory building an in-memory ledger holding records for ``versions``."""

    def _make(*versions, exists=None, name=None):
        records = [
            MigrationRecord(version=v, name=ROOT_NAME if v == 0 else f"migration_{v}")
            for v in versions
        ]
        return InMemoryLedgerStore(records, exists=exists, name=name)

    return _make


@pytest.fixture
def make_migrator():
    """Factory wiring declared migrations and a store into a Migrator."""

    def _make(migrations, store):
        return Migrator(migrations, store, db=object(), prefix=TEST_PREFIX)

    return _make
