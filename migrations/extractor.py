import logging
from typing import Any

from bson.errors import BSONError
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError

from db.config import settings
from migrations.exceptions import ExtractionError
from migrations.records import RawRecord
from migrations.retry import call_with_retry, is_transient_source_error

logger = logging.getLogger(__name__)


class MongoSource:
    """Source document store backed by motor."""

    def __init__(self, mongo_uri: str | None = None, database: str | None = None, max_pool_size: int | None = None):
        self.mongo_uri = mongo_uri or settings.mongo_uri
        self.database_name = database or settings.mongo_database
        self.max_pool_size = max_pool_size or settings.mongo_max_pool_size
        self._client: AsyncIOMotorClient | None = None

    @property
    def database(self):
        if self._client is None:
            self._client = AsyncIOMotorClient(self.mongo_uri, maxPoolSize=self.max_pool_size)
        if self.database_name:
            return self._client[self.database_name]
        return self._client.get_default_database()

    async def list_collections(self) -> list[str]:
        return sorted(await self.database.list_collection_names())

    async def read_all(self, name: str, limit: int | None = None) -> list[dict[str, Any]]:
        cursor = self.database[name].find({})
        if limit:
            cursor = cursor.limit(limit)
        return await cursor.to_list(length=None)

    async def count(self, name: str) -> int:
        return await self.database[name].count_documents({})

    def close(self):
        if self._client is not None:
            self._client.close()
            self._client = None


def _document_id(document: dict[str, Any]) -> str | None:
    value = document.get("_id", document.get("id"))
    if value is None:
        return None
    return str(value)


def to_raw_record(document: Any) -> RawRecord:
    if not isinstance(document, dict):
        return RawRecord(source_id=None, fields=document)
    fields = {key: value for key, value in document.items() if key != "_id"}
    return RawRecord(source_id=_document_id(document), fields=fields)


class Extractor:
    def __init__(self, source, sample_size: int | None = None):
        self.source = source
        self.sample_size = sample_size

    async def extract(self, source_collection: str) -> list[RawRecord]:
        """Read the whole collection; transport failures surface as ExtractionError."""
        try:
            documents = await call_with_retry(
                self.source.read_all,
                source_collection,
                limit=self.sample_size,
                is_transient=is_transient_source_error,
            )
        except (PyMongoError, BSONError, OSError, TimeoutError) as e:
            logger.error(f"❌ Failed to read {source_collection}: {e}")
            raise ExtractionError(source_collection, str(e)) from e

        records = [to_raw_record(document) for document in documents]
        logger.info(f"📥 Read {len(records):,} documents from {source_collection}")
        return records
