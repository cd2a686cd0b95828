from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from happyinline.models.device import DeviceDocument, PushPlatform


class DeviceRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["devices"]

    async def register(self, user_id: str, platform: PushPlatform, token: str) -> DeviceDocument:
        now = datetime.now(timezone.utc)
        await self.collection.update_one(
            {"user_id": user_id, "platform": platform, "token": token},
            {"$set": {"last_seen_at": now}},
            upsert=True,
        )
        return {"user_id": user_id, "platform": platform, "token": token}

    async def remove(self, user_id: str, token: str) -> bool:
        result = await self.collection.delete_many({"user_id": user_id, "token": token})
        return bool(result.deleted_count)

    async def get_tokens(self, user_id: str, platform: Optional[PushPlatform] = None) -> List[DeviceDocument]:
        query: Dict[str, Any] = {"user_id": user_id}
        if platform:
            query["platform"] = platform
        cur = self.collection.find(query)
        return await cur.to_list(length=100)
