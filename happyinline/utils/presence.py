import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from happyinline.config import PRESENCE_TTL_SECONDS, REDIS_URL

logger = logging.getLogger(__name__)


class NoopPresence:

    enabled = False

    async def set_online(self, user_id: str, ttl_seconds: int = PRESENCE_TTL_SECONDS) -> None:
        return

    async def set_offline(self, user_id: str) -> None:
        return

    async def get_status(self, user_id: str) -> Dict[str, Any]:
        return {"user_id": user_id, "online": False, "last_seen": None}


class RedisPresence:
    """Online flag as a key with a TTL; refreshed by heartbeats, expires on its own."""

    enabled = True

    def __init__(self, client: "redis.Redis") -> None:
        self._redis = client

    async def set_online(self, user_id: str, ttl_seconds: int = PRESENCE_TTL_SECONDS) -> None:
        try:
            await self._redis.set(f"presence:{user_id}", "online", ex=ttl_seconds)
        except RedisError:
            logger.warning("Could not mark %s online", user_id, exc_info=True)

    async def set_offline(self, user_id: str) -> None:
        try:
            await self._redis.delete(f"presence:{user_id}")
            await self._redis.set(f"last_seen:{user_id}", datetime.now(timezone.utc).isoformat())
        except RedisError:
            logger.warning("Could not mark %s offline", user_id, exc_info=True)

    async def get_status(self, user_id: str) -> Dict[str, Any]:
        online = False
        last_seen: Optional[str] = None
        try:
            ttl = await self._redis.ttl(f"presence:{user_id}")
            online = bool(ttl and ttl > 0)
            raw = await self._redis.get(f"last_seen:{user_id}")
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8")
            last_seen = raw
        except RedisError:
            logger.warning("Presence lookup failed for %s; reporting offline", user_id, exc_info=True)
            online = False
        return {"user_id": user_id, "online": online, "last_seen": last_seen}


_presence = None


async def get_presence():
    global _presence
    if _presence is not None:
        return _presence
    if not REDIS_URL:
        _presence = NoopPresence()
        return _presence
    _presence = RedisPresence(redis.from_url(REDIS_URL))
    return _presence
