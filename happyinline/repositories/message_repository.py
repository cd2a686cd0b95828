from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from happyinline.models.message import MessageDocument


def _normalize(doc: Dict[str, Any]) -> MessageDocument:
    doc["id"] = str(doc.pop("_id"))
    return doc


class MessageRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["messages"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index(
            [("conversation_id", ASCENDING), ("created_at", DESCENDING), ("_id", DESCENDING)]
        )

    async def save_message(
        self,
        conversation_id: str,
        sender_id: str,
        content: str,
        attachment_url: Optional[str] = None,
    ) -> MessageDocument:
        now = datetime.now(timezone.utc)
        doc: Dict[str, Any] = {
            "conversation_id": conversation_id,
            "sender_id": sender_id,
            "content": content,
            "attachment_url": attachment_url,
            "created_at": now,
            "is_delivered": True,
            "delivered_at": now,
            "is_read": False,
            "read_at": None,
            "is_deleted": False,
        }
        result = await self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        return _normalize(doc)

    async def get_recent_messages(self, conversation_id: str, limit: int = 20) -> List[MessageDocument]:
        """Newest-first; an empty conversation gives an empty list."""
        cur = (
            self.collection.find({"conversation_id": conversation_id, "is_deleted": False})
            .sort([("created_at", DESCENDING), ("_id", DESCENDING)])
            .limit(limit)
        )
        items = await cur.to_list(length=limit)
        return [_normalize(it) for it in items]

    async def get_conversation_messages(
        self,
        conversation_id: str,
        limit: int = 50,
        cursor: Optional[str] = None,
    ) -> Tuple[List[MessageDocument], Optional[str]]:
        query: Dict[str, Any] = {"conversation_id": conversation_id, "is_deleted": False}
        sort = [("created_at", DESCENDING), ("_id", DESCENDING)]
        if cursor:
            # cursor format: ts_ms:oid
            try:
                ts_str, oid_hex = cursor.split(":", 1)
                ts = datetime.fromtimestamp(int(ts_str) / 1000.0, tz=timezone.utc)
                query["$or"] = [
                    {"created_at": {"$lt": ts}},
                    {"created_at": ts, "_id": {"$lt": ObjectId(oid_hex)}},
                ]
            except (ValueError, InvalidId):
                raise ValueError("Malformed cursor")
        cur = self.collection.find(query).sort(sort).limit(limit)
        items = [_normalize(it) for it in await cur.to_list(length=limit)]
        next_cursor = None
        if len(items) == limit:
            last = items[-1]
            last_ts = int(last["created_at"].timestamp() * 1000)
            next_cursor = f"{last_ts}:{last['id']}"
        # ascending chronological order for the UI
        return list(reversed(items)), next_cursor

    async def mark_read_for_reader(self, conversation_id: str, reader_id: str) -> int:
        result = await self.collection.update_many(
            {"conversation_id": conversation_id, "sender_id": {"$ne": reader_id}, "is_read": False},
            {"$set": {"is_read": True, "read_at": datetime.now(timezone.utc)}},
        )
        return result.modified_count or 0
