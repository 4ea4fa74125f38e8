from datetime import datetime, timedelta, timezone
from typing import Optional

from pymongo import ASCENDING
from pymongo.collection import Collection

from ..config import Settings
from ..models.artifacts import CatalogRecord
from ..utils.errors import StorageAccessError
from ..utils.logging import logger
from ..utils.mongo import MongoDBManager


class CatalogService:
    """Metadata records for produced PDFs, each valid for a fixed TTL.

    Expiry is enforced twice: MongoDB's TTL monitor removes documents once
    ``createdAt`` is older than the TTL, and every lookup filters on the same
    bound so a document the monitor has not reached yet is never returned.
    """

    def __init__(self, settings: Settings, mongo: Optional[MongoDBManager] = None,
                 collection: Optional[Collection] = None) -> None:
        self.ttl_seconds = settings.RECORD_TTL_SECONDS
        self.enabled = settings.CATALOG_ENABLED
        self.mongo = mongo
        self._collection = collection

    @property
    def collection(self) -> Collection:
        if self._collection is not None:
            return self._collection
        if self.mongo is not None and self.mongo.collection is not None:
            return self.mongo.collection
        raise StorageAccessError(resource="catalog", reason="not_connected")

    @property
    def available(self) -> bool:
        if not self.enabled:
            return False
        return self._collection is not None or (self.mongo is not None and self.mongo.is_connected)

    def ensure_indexes(self) -> None:
        self.collection.create_index(
            [("createdAt", ASCENDING)],
            name="createdAt_ttl",
            expireAfterSeconds=self.ttl_seconds,
        )
        self.collection.create_index([("generatedId", ASCENDING)], name="generatedId_unique", unique=True)
        logger.log_step("catalog_indexes_ready", {"ttl_seconds": self.ttl_seconds})

    def record(self, original_name: str, generated_id: str, pdf_relative_path: str) -> Optional[str]:
        """Persist a record for a finished PDF.

        Returns the new record id, or None when the write failed. The PDF is
        already durable at this point, so a catalog failure is only a warning.
        """
        if not self.enabled:
            return None

        record = CatalogRecord(
            originalName=original_name,
            generatedId=generated_id,
            pdfPath=pdf_relative_path,
            createdAt=datetime.now(timezone.utc),
            ttlSeconds=self.ttl_seconds,
        )
        try:
            result = self.collection.insert_one(record.to_document())
        except Exception as exc:
            logger.log_warning("catalog_record_failed", {
                "generated_id": generated_id,
                "error": str(exc)
            })
            return None

        record_id = str(result.inserted_id)
        logger.log_step("catalog_record_saved", {
            "record_id": record_id,
            "generated_id": generated_id,
            "expires_at": record.expires_at.isoformat()
        })
        return record_id

    def lookup(self, generated_id: str, now: Optional[datetime] = None) -> Optional[CatalogRecord]:
        now = now or datetime.now(timezone.utc)
        document = self.collection.find_one({
            "generatedId": generated_id,
            "createdAt": {"$gte": now - timedelta(seconds=self.ttl_seconds)},
        })
        if document is None:
            return None

        record = CatalogRecord.from_document(document)
        if record.is_expired(now):
            return None
        return record

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(timezone.utc)
        result = self.collection.delete_many({
            "createdAt": {"$lt": now - timedelta(seconds=self.ttl_seconds)},
        })
        return result.deleted_count

    def delete(self, generated_id: str) -> bool:
        result = self.collection.delete_one({"generatedId": generated_id})
        return result.deleted_count > 0
