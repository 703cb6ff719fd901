"""
MongoDB record store with a lazily established, process-wide connection.

The first caller starts connecting; every caller that arrives while the
connection is being established awaits the same in-flight task, so N
concurrent early callers open one client, not N. A failed attempt is
forgotten so the next call starts a fresh connection instead of
replaying the failure.
"""

import asyncio
from typing import Any, Mapping, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import ConnectionFailure, DuplicateKeyError, PyMongoError

from order_portal.core.config import Settings, get_settings
from order_portal.core.logging import get_logger
from order_portal.core.timeutils import utcnow
from order_portal.store.base import (
    DuplicateRecordError,
    Filter,
    Record,
    RecordStore,
    SortSpec,
    StoreError,
    StoreUnavailableError,
    new_record_id,
)

logger = get_logger(__name__)


def _to_document(record: Mapping[str, Any]) -> dict[str, Any]:
    document = dict(record)
    document["_id"] = document.pop("id")
    return document


def _to_record(document: Optional[Mapping[str, Any]]) -> Optional[Record]:
    if document is None:
        return None
    record = dict(document)
    record["id"] = str(record.pop("_id"))
    return record


def _to_query(query: Optional[Filter]) -> dict[str, Any]:
    translated = dict(query or {})
    if "id" in translated:
        translated["_id"] = translated.pop("id")
    return translated


class MongoStore(RecordStore):
    """
    Record store on a MongoDB database accessed through Motor.

    Attributes:
        settings: Application settings supplying URL, database and timeouts
    """

    name = "mongo"

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._client: Optional[AsyncIOMotorClient] = None
        self._database: Optional[AsyncIOMotorDatabase] = None
        self._connecting: Optional[asyncio.Task] = None

    @staticmethod
    def _sanitize_url(url: str) -> str:
        """Strip credentials from a connection URL for logging."""
        if "@" in url:
            protocol, rest = url.split("://", 1)
            _, host_part = rest.rsplit("@", 1)
            return f"{protocol}://***@{host_part}"
        return url

    async def _connect(self) -> AsyncIOMotorDatabase:
        settings = self.settings
        client = AsyncIOMotorClient(
            settings.mongodb_url,
            serverSelectionTimeoutMS=settings.mongodb_server_selection_timeout_ms,
            connectTimeoutMS=settings.mongodb_connect_timeout_ms,
            maxPoolSize=settings.mongodb_max_pool_size,
            minPoolSize=settings.mongodb_min_pool_size,
            tz_aware=True,
        )
        try:
            await client.admin.command("ping")
            database = client[settings.mongodb_database]
            await self._create_indexes(database)
        except PyMongoError:
            client.close()
            raise

        self._client = client
        logger.info(
            "Connected to MongoDB",
            url=self._sanitize_url(settings.mongodb_url),
            database=settings.mongodb_database,
        )
        return database

    @staticmethod
    async def _create_indexes(database: AsyncIOMotorDatabase) -> None:
        orders = database["orders"]
        await orders.create_index("orderNumber", unique=True, name="orderNumber_unique")
        await orders.create_index(
            [("customer", ASCENDING), ("createdAt", DESCENDING)],
            name="customer_createdAt",
        )
        await orders.create_index(
            [("status", ASCENDING), ("createdAt", DESCENDING)],
            name="status_createdAt",
        )
        await orders.create_index("items.product", name="items_product")

    async def _get_database(self) -> AsyncIOMotorDatabase:
        if self._database is not None:
            return self._database

        if self._connecting is None:
            self._connecting = asyncio.ensure_future(self._connect())
        task = self._connecting

        try:
            database = await asyncio.shield(task)
        except PyMongoError as e:
            if self._connecting is task:
                self._connecting = None
            logger.error(
                "MongoDB connection failed",
                url=self._sanitize_url(self.settings.mongodb_url),
                error=str(e),
                error_type=type(e).__name__,
            )
            raise StoreUnavailableError(
                "MongoDB is unreachable", error=str(e)
            ) from e

        self._database = database
        return database

    async def _reset(self) -> None:
        """Drop the cached connection so the next call reconnects."""
        client, self._client = self._client, None
        self._database = None
        self._connecting = None
        if client is not None:
            client.close()

    async def _translate(self, error: PyMongoError, operation: str, collection: str) -> StoreError:
        if isinstance(error, DuplicateKeyError):
            return DuplicateRecordError(
                "Duplicate value for unique field",
                collection=collection,
                error=str(error),
            )
        if isinstance(error, ConnectionFailure):
            await self._reset()
            logger.warning(
                "MongoDB operation lost its connection",
                operation=operation,
                collection=collection,
                error=str(error),
            )
            return StoreUnavailableError(
                "MongoDB is unreachable", operation=operation, error=str(error)
            )
        logger.error(
            "MongoDB operation failed",
            operation=operation,
            collection=collection,
            error=str(error),
            error_type=type(error).__name__,
        )
        return StoreError("MongoDB operation failed", operation=operation, error=str(error))

    async def get(self, collection: str, record_id: str) -> Optional[Record]:
        database = await self._get_database()
        try:
            document = await database[collection].find_one({"_id": record_id})
        except PyMongoError as e:
            raise await self._translate(e, "get", collection) from e
        return _to_record(document)

    async def find(
        self,
        collection: str,
        query: Optional[Filter] = None,
        sort: Optional[SortSpec] = None,
        limit: Optional[int] = None,
        skip: int = 0,
    ) -> list[Record]:
        database = await self._get_database()
        try:
            cursor = database[collection].find(_to_query(query))
            if sort:
                cursor = cursor.sort(
                    [("_id" if field == "id" else field, direction) for field, direction in sort]
                )
            if skip:
                cursor = cursor.skip(skip)
            if limit:
                cursor = cursor.limit(limit)
            documents = await cursor.to_list(length=None)
        except PyMongoError as e:
            raise await self._translate(e, "find", collection) from e
        return [_to_record(document) for document in documents]

    async def insert(self, collection: str, record: Record) -> Record:
        database = await self._get_database()
        stored = dict(record)
        if not stored.get("id"):
            stored["id"] = new_record_id()
        if stored.get("createdAt") is None:
            stored["createdAt"] = utcnow()
        stored["updatedAt"] = stored["createdAt"]

        try:
            await database[collection].insert_one(_to_document(stored))
        except PyMongoError as e:
            raise await self._translate(e, "insert", collection) from e
        return stored

    async def update(
        self,
        collection: str,
        record_id: str,
        patch: Mapping[str, Any],
        push: Optional[Mapping[str, Any]] = None,
        match: Optional[Filter] = None,
    ) -> Optional[Record]:
        database = await self._get_database()
        changes: dict[str, Any] = {
            "$set": {
                **{field: value for field, value in patch.items() if field != "id"},
                "updatedAt": utcnow(),
            }
        }
        if push:
            changes["$push"] = dict(push)

        try:
            document = await database[collection].find_one_and_update(
                {**_to_query(match), "_id": record_id},
                changes,
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            raise await self._translate(e, "update", collection) from e
        return _to_record(document)

    async def count(self, collection: str, query: Optional[Filter] = None) -> int:
        database = await self._get_database()
        try:
            return await database[collection].count_documents(_to_query(query))
        except PyMongoError as e:
            raise await self._translate(e, "count", collection) from e

    async def close(self) -> None:
        if self._client is not None:
            logger.info("Disconnected from MongoDB")
        await self._reset()
