import logging
from typing import AsyncIterator, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from happyinline.config import MONGODB_DB, MONGODB_URL

logger = logging.getLogger(__name__)

_client: Optional[AsyncIOMotorClient] = None


async def connect_to_mongo() -> None:
    global _client
    if _client is None:
        _client = AsyncIOMotorClient(MONGODB_URL, tz_aware=True)
        logger.info("Connected to MongoDB database %s", MONGODB_DB)


async def close_mongo_connection() -> None:
    global _client
    if _client is not None:
        _client.close()
        _client = None
        logger.info("MongoDB connection closed")


def get_database() -> AsyncIOMotorDatabase:
    if _client is None:
        raise RuntimeError("MongoDB client is not connected")
    return _client[MONGODB_DB]


async def mongo_db_dependency() -> AsyncIterator[AsyncIOMotorDatabase]:
    yield get_database()
