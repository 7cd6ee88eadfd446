"""Tests for the MongoDB ledger store."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import CollectionInvalid, OperationFailure

from docmigrate.core.exceptions import LedgerStoreError
from docmigrate.migrations.ledger import MongoLedgerStore, ledger_collection_name
from docmigrate.migrations.models import MigrationRecord

COLLECTION = "app_migrations"


class FakeCursor:
    """Async iterator standing in for a motor cursor."""

    def __init__(self, docs, error=None):
        self.docs = docs
        self.index = 0
        self.error = error
        self.limited_to = None

    def limit(self, count):
        self.limited_to = count
        self.docs = self.docs[:count]
        return self

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self.error is not None:
            raise self.error
        if self.index >= len(self.docs):
            raise StopAsyncIteration
        doc = self.docs[self.index]
        self.index += 1
        return doc


@pytest.fixture
def mock_db():
    """Create a mock MongoDB database with a single ledger collection."""
    db = MagicMock()
    collection = MagicMock()
    db.__getitem__ = MagicMock(return_value=collection)
    return db, collection


def set_cursor(collection, cursor):
    collection.find.return_value.sort.return_value = cursor
    return cursor


class TestLedgerCollection:
    """Tests for collection and index creation."""

    def test_collection_name(self):
        assert ledger_collection_name("app") == COLLECTION

    def test_uses_named_collection(self, mock_db):
        db, collection = mock_db
        store = MongoLedgerStore(db, COLLECTION)

        db.__getitem__.assert_called_with(COLLECTION)
        assert store.name == COLLECTION

    @pytest.mark.asyncio
    async def test_ensure_collection_creates_when_absent(self, mock_db):
        db, _ = mock_db
        db.list_collection_names = AsyncMock(return_value=["other"])
        db.create_collection = AsyncMock()

        created = await MongoLedgerStore(db, COLLECTION).ensure_collection()

        assert created is True
        db.create_collection.assert_awaited_once_with(COLLECTION)

    @pytest.mark.asyncio
    async def test_ensure_collection_name_with_braces(self, mock_db):
        db, _ = mock_db
        db.list_collection_names = AsyncMock(return_value=[])
        db.create_collection = AsyncMock()
        name = ledger_collection_name("tenant{eu}")

        assert await MongoLedgerStore(db, name).ensure_collection() is True
        db.create_collection.assert_awaited_once_with("tenant{eu}_migrations")

    @pytest.mark.asyncio
    async def test_ensure_collection_existing(self, mock_db):
        db, _ = mock_db
        db.list_collection_names = AsyncMock(return_value=[COLLECTION])
        db.create_collection = AsyncMock()

        created = await MongoLedgerStore(db, COLLECTION).ensure_collection()

        assert created is False
        db.create_collection.assert_not_called()

    @pytest.mark.asyncio
    async def test_ensure_collection_created_concurrently(self, mock_db):
        db, _ = mock_db
        db.list_collection_names = AsyncMock(return_value=[])
        db.create_collection = AsyncMock(side_effect=CollectionInvalid("exists"))

        assert await MongoLedgerStore(db, COLLECTION).ensure_collection() is False

    @pytest.mark.asyncio
    async def test_ensure_collection_failure(self, mock_db):
        db, _ = mock_db
        db.list_collection_names = AsyncMock(side_effect=OperationFailure("not authorized"))

        with pytest.raises(LedgerStoreError) as exc_info:
            await MongoLedgerStore(db, COLLECTION).ensure_collection()

        assert isinstance(exc_info.value.__cause__, OperationFailure)

    @pytest.mark.asyncio
    async def test_create_version_index(self, mock_db):
        db, collection = mock_db
        collection.create_index = AsyncMock()

        await MongoLedgerStore(db, COLLECTION).create_version_index()

        collection.create_index.assert_awaited_once_with(
            [("version", ASCENDING)], name="idx_version", unique=True
        )


class TestLedgerQueries:
    """Tests for reading ledger records."""

    @pytest.mark.asyncio
    async def test_history_filters_and_sorts_ascending(self, mock_db):
        db, collection = mock_db
        ids = [ObjectId(), ObjectId()]
        set_cursor(
            collection,
            FakeCursor(
                [
                    {"_id": ids[0], "version": 0, "name": "-"},
                    {"_id": ids[1], "version": 1, "name": "users_index"},
                ]
            ),
        )

        history = await MongoLedgerStore(db, COLLECTION).history()

        collection.find.assert_called_once_with({"version": {"$gt": -1}})
        collection.find.return_value.sort.assert_called_once_with("version", ASCENDING)
        assert [r.version for r in history] == [0, 1]
        assert [r.id for r in history] == ids

    @pytest.mark.asyncio
    async def test_latest_sorts_descending_with_limit(self, mock_db):
        db, collection = mock_db
        cursor = set_cursor(
            collection,
            FakeCursor([{"_id": 3, "version": 3, "name": "c"}, {"_id": 2, "version": 2, "name": "b"}]),
        )

        latest = await MongoLedgerStore(db, COLLECTION).latest()

        collection.find.return_value.sort.assert_called_once_with("version", DESCENDING)
        assert cursor.limited_to == 1
        assert latest == MigrationRecord(3, "c")

    @pytest.mark.asyncio
    async def test_find_one_by_version(self, mock_db):
        db, collection = mock_db
        set_cursor(collection, FakeCursor([]))

        record = await MongoLedgerStore(db, COLLECTION).find_one(version=0)

        collection.find.assert_called_once_with({"version": 0})
        assert record is None

    @pytest.mark.asyncio
    async def test_find_without_filter(self, mock_db):
        db, collection = mock_db
        set_cursor(collection, FakeCursor([{"_id": 1, "version": -5, "name": "odd"}]))

        records = [r async for r in MongoLedgerStore(db, COLLECTION).find()]

        collection.find.assert_called_once_with({})
        assert [r.version for r in records] == [-5]

    @pytest.mark.asyncio
    async def test_query_failure(self, mock_db):
        db, collection = mock_db
        set_cursor(collection, FakeCursor([], error=OperationFailure("boom")))

        with pytest.raises(LedgerStoreError):
            await MongoLedgerStore(db, COLLECTION).history()


class TestLedgerWrites:
    """Tests for inserting and purging ledger records."""

    @pytest.mark.asyncio
    async def test_insert_one_assigns_id(self, mock_db):
        db, collection = mock_db
        oid = ObjectId()
        collection.insert_one = AsyncMock(return_value=MagicMock(inserted_id=oid))
        record = MigrationRecord(version=2, name="backfill")

        result = await MongoLedgerStore(db, COLLECTION).insert_one(record)

        collection.insert_one.assert_awaited_once_with({"version": 2, "name": "backfill"})
        assert result == oid
        assert record.id == oid

    @pytest.mark.asyncio
    async def test_insert_many(self, mock_db):
        db, collection = mock_db
        ids = [ObjectId(), ObjectId()]
        collection.insert_many = AsyncMock(return_value=MagicMock(inserted_ids=ids))
        records = [MigrationRecord(0, "-"), MigrationRecord(1, "one")]

        result = await MongoLedgerStore(db, COLLECTION).insert_many(records)

        collection.insert_many.assert_awaited_once_with(
            [{"version": 0, "name": "-"}, {"version": 1, "name": "one"}], ordered=True
        )
        assert result == ids
        assert [r.id for r in records] == ids

    @pytest.mark.asyncio
    async def test_insert_many_empty(self, mock_db):
        db, collection = mock_db
        collection.insert_many = AsyncMock()

        assert await MongoLedgerStore(db, COLLECTION).insert_many([]) == []
        collection.insert_many.assert_not_called()

    @pytest.mark.asyncio
    async def test_insert_failure(self, mock_db):
        db, collection = mock_db
        collection.insert_one = AsyncMock(side_effect=OperationFailure("duplicate key"))

        with pytest.raises(LedgerStoreError):
            await MongoLedgerStore(db, COLLECTION).insert_one(MigrationRecord(1, "one"))

    @pytest.mark.asyncio
    async def test_purge_deletes_document(self, mock_db):
        db, collection = mock_db
        oid = ObjectId()
        collection.delete_one = AsyncMock(return_value=MagicMock(deleted_count=1))

        await MongoLedgerStore(db, COLLECTION).purge(oid)

        collection.delete_one.assert_awaited_once_with({"_id": oid})

    @pytest.mark.asyncio
    async def test_purge_missing_document(self, mock_db):
        db, collection = mock_db
        collection.delete_one = AsyncMock(return_value=MagicMock(deleted_count=0))

        with pytest.raises(LedgerStoreError):
            await MongoLedgerStore(db, COLLECTION).purge(ObjectId())
