from typing import Optional

from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.database import Database

from .logging import logger
from ..config import Settings


class MongoDBManager:
    """MongoDB manager for the conversion catalog"""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.client: Optional[MongoClient] = None
        self.db: Optional[Database] = None
        self.collection: Optional[Collection] = None

    def connect(self) -> Collection:
        """Connect to MongoDB and return the catalog collection"""
        try:
            uri = self.settings.MONGODB_URI
            database_name = self.settings.DATABASE_NAME
            collection_name = self.settings.COLLECTION_NAME

            logger.log_step("mongodb_connection", {
                "database": database_name,
                "collection": collection_name
            })

            self.client = MongoClient(uri, serverSelectionTimeoutMS=self.settings.MONGO_TIMEOUT_MS)
            self.db = self.client[database_name]
            self.collection = self.db[collection_name]

            # Test connection
            self.client.admin.command('ping')

            logger.log_step("mongodb_connected", {"status": "success"})
            return self.collection

        except Exception as e:
            logger.log_error("mongodb_connection_failed", {"error": str(e)})
            self.close()
            raise

    @property
    def is_connected(self) -> bool:
        return self.collection is not None

    def close(self):
        """Close MongoDB connection"""
        if self.client:
            self.client.close()
            logger.log_step("mongodb_connection_closed")
        self.client = None
        self.db = None
        self.collection = None
