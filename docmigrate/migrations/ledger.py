"""
Ledger store: persistence of applied migration records.

The Migrator only talks to the ``LedgerStore`` interface. ``MongoLedgerStore``
implements it on top of a motor database; tests use an in-memory store.
"""

from abc import ABC, abstractmethod
from contextlib import aclosing
from typing import Any, AsyncIterator, Iterable, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import CollectionInvalid, PyMongoError

from docmigrate.core.exceptions import LedgerStoreError
from docmigrate.log.logging import logger
from docmigrate.migrations.models import MigrationRecord

LEDGER_SUFFIX = "_migrations"
VERSION_INDEX = "idx_version"

__all__ = [
    "ASCENDING",
    "DESCENDING",
    "LedgerStore",
    "MongoLedgerStore",
    "ledger_collection_name",
]


def ledger_collection_name(prefix: str) -> str:
    """Name of the ledger collection for a namespace prefix."""
    return f"{prefix}{LEDGER_SUFFIX}"


class LedgerStore(ABC):
    """
    Capabilities the Migrator needs from the document store.

    Each call either fully succeeds or raises ``LedgerStoreError`` with no
    visible effect. Queries only ever filter on ``version``.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Ledger identifier, used in logs and errors."""

    @abstractmethod
    async def ensure_collection(self) -> bool:
        """Create the ledger if absent. Returns True when it was created."""

    @abstractmethod
    async def create_version_index(self) -> None:
        """Create the index on the ``version`` field."""

    @abstractmethod
    def find(
        self,
        version: Optional[int] = None,
        version_gt: Optional[int] = None,
        sort: int = ASCENDING,
        limit: int = 0,
    ) -> AsyncIterator[MigrationRecord]:
        """
        Iterate over ledger records.

        Args:
            version: Only records with exactly this version.
            version_gt: Only records with a version greater than this.
            sort: ``ASCENDING`` or ``DESCENDING`` by version.
            limit: Maximum number of records, 0 for no limit.
        """

    @abstractmethod
    async def insert_one(self, record: MigrationRecord) -> Any:
        """Insert a record and return its assigned id."""

    @abstractmethod
    async def insert_many(self, records: Iterable[MigrationRecord]) -> list[Any]:
        """Insert several records in one call and return their ids."""

    @abstractmethod
    async def purge(self, record_id: Any) -> None:
        """Hard-delete a record, including any history the store keeps."""

    async def find_one(
        self,
        version: Optional[int] = None,
        version_gt: Optional[int] = None,
        sort: int = ASCENDING,
    ) -> Optional[MigrationRecord]:
        """First record matching the filter, or None."""
        async with aclosing(
            self.find(version=version, version_gt=version_gt, sort=sort, limit=1)
        ) as records:
            async for record in records:
                return record
        return None

    async def history(self) -> list[MigrationRecord]:
        """All records with a non-negative version, ascending."""
        return [record async for record in self.find(version_gt=-1, sort=ASCENDING)]

    async def latest(self) -> Optional[MigrationRecord]:
        """The record with the highest version, or None when empty."""
        return await self.find_one(version_gt=-1, sort=DESCENDING)


class MongoLedgerStore(LedgerStore):
    """
    Ledger stored as one document per applied migration in a MongoDB collection.

    Documents have the layout ``{_id, version, name}``. MongoDB keeps no
    revision history, so purging is a plain ``delete_one``.
    """

    def __init__(self, db: AsyncIOMotorDatabase, collection_name: str):
        """
        Initialize the ledger store.

        Args:
            db: MongoDB database instance.
            collection_name: Name of the ledger collection.
        """
        self._db = db
        self._collection_name = collection_name
        self._collection = db[collection_name]

    @property
    def name(self) -> str:
        return self._collection_name

    def _failure(self, action: str, error: PyMongoError) -> LedgerStoreError:
        logger.error(
            "Ledger {action} failed on {collection}: {error}",
            event_type="ledger_error",
            collection=self._collection_name,
            action=action,
            error=str(error),
        )
        return LedgerStoreError(f"Ledger {action} failed: {error}")

    async def ensure_collection(self) -> bool:
        try:
            existing = await self._db.list_collection_names()
            if self._collection_name in existing:
                return False
            await self._db.create_collection(self._collection_name)
        except CollectionInvalid:
            # created concurrently between the listing and the create
            return False
        except PyMongoError as e:
            raise self._failure("create collection", e) from e

        logger.info(
            "Created ledger collection {collection}",
            event_type="ledger_created",
            collection=self._collection_name,
        )
        return True

    async def create_version_index(self) -> None:
        try:
            await self._collection.create_index(
                [("version", ASCENDING)], name=VERSION_INDEX, unique=True
            )
        except PyMongoError as e:
            raise self._failure("create index", e) from e

    @staticmethod
    def _build_filter(version: Optional[int], version_gt: Optional[int]) -> dict:
        query: dict = {}
        if version is not None:
            query["version"] = version
        elif version_gt is not None:
            query["version"] = {"$gt": version_gt}
        return query

    async def find(
        self,
        version: Optional[int] = None,
        version_gt: Optional[int] = None,
        sort: int = ASCENDING,
        limit: int = 0,
    ) -> AsyncIterator[MigrationRecord]:
        cursor = self._collection.find(self._build_filter(version, version_gt)).sort(
            "version", sort
        )
        if limit:
            cursor = cursor.limit(limit)

        try:
            async for doc in cursor:
                yield MigrationRecord.from_dict(doc)
        except PyMongoError as e:
            raise self._failure("query", e) from e

    async def insert_one(self, record: MigrationRecord) -> Any:
        try:
            result = await self._collection.insert_one(record.to_dict())
        except PyMongoError as e:
            raise self._failure("insert", e) from e
        record.id = result.inserted_id
        return result.inserted_id

    async def insert_many(self, records: Iterable[MigrationRecord]) -> list[Any]:
        records = list(records)
        if not records:
            return []
        try:
            result = await self._collection.insert_many(
                [record.to_dict() for record in records], ordered=True
            )
        except PyMongoError as e:
            raise self._failure("bulk insert", e) from e
        for record, inserted_id in zip(records, result.inserted_ids):
            record.id = inserted_id
        return list(result.inserted_ids)

    async def purge(self, record_id: Any) -> None:
        try:
            result = await self._collection.delete_one({"_id": record_id})
        except PyMongoError as e:
            raise self._failure("purge", e) from e
        if result.deleted_count == 0:
            raise LedgerStoreError(f"Ledger record not found: {record_id}")
