import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from onlyif_messaging.config import Settings


logger = logging.getLogger(__name__)


class MongoConnection:

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._client: Optional[AsyncIOMotorClient] = None

    async def connect(self) -> AsyncIOMotorDatabase:
        if self._client is None:
            self._client = AsyncIOMotorClient(
                self._settings.mongo_url,
                tz_aware=True,
                serverSelectionTimeoutMS=self._settings.mongo_timeout_ms,
            )
            logger.info("Connected to MongoDB database %s", self._settings.mongo_db_name)
        return self._client[self._settings.mongo_db_name]

    async def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
            logger.info("Closed MongoDB connection")

