from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from happyinline.models.conversation import ConversationDocument


def _to_object_id(value: str) -> Optional[ObjectId]:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def _normalize(doc: Dict[str, Any]) -> ConversationDocument:
    doc["id"] = str(doc.pop("_id"))
    return doc


class ConversationRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["conversations"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("participants", ASCENDING), ("shop_id", ASCENDING)])
        await self.collection.create_index([("last_message_at", DESCENDING)])

    async def get_or_create_one_to_one(self, user_a: str, user_b: str, shop_id: Optional[str] = None) -> ConversationDocument:
        participants = sorted([user_a, user_b])
        existing = await self.collection.find_one({"participants": participants, "shop_id": shop_id})
        if existing:
            return _normalize(existing)
        now = datetime.now(timezone.utc)
        doc: Dict[str, Any] = {
            "participants": participants,
            "shop_id": shop_id,
            "created_at": now,
            "last_message_at": now,
            "last_message_preview": None,
            "unread_counters": {user_a: 0, user_b: 0},
            "is_archived": False,
        }
        result = await self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        return _normalize(doc)

    async def get_by_id(self, conversation_id: str) -> Optional[ConversationDocument]:
        oid = _to_object_id(conversation_id)
        if oid is None:
            return None
        doc = await self.collection.find_one({"_id": oid})
        return _normalize(doc) if doc else None

    async def update_on_new_message(self, conversation_id: str, preview: str, receiver_id: Optional[str]) -> None:
        update: Dict[str, Any] = {
            "$set": {
                "last_message_at": datetime.now(timezone.utc),
                "last_message_preview": preview,
            },
        }
        if receiver_id:
            update["$inc"] = {f"unread_counters.{receiver_id}": 1}
        await self.collection.update_one({"_id": _to_object_id(conversation_id)}, update)

    async def reset_unread(self, conversation_id: str, user_id: str) -> None:
        await self.collection.update_one(
            {"_id": _to_object_id(conversation_id)},
            {"$set": {f"unread_counters.{user_id}": 0}},
        )

    async def list_for_user(self, user_id: str, limit: int = 20, cursor: Optional[str] = None) -> Tuple[List[ConversationDocument], Optional[str]]:
        query: Dict[str, Any] = {"participants": user_id, "is_archived": {"$ne": True}}
        sort = [("last_message_at", DESCENDING), ("_id", DESCENDING)]
        if cursor:
            # Cursor format: timestamp_ms:object_id_hex
            try:
                ts_str, oid_hex = cursor.split(":", 1)
                ts = datetime.fromtimestamp(int(ts_str) / 1000.0, tz=timezone.utc)
                query["$or"] = [
                    {"last_message_at": {"$lt": ts}},
                    {"last_message_at": ts, "_id": {"$lt": ObjectId(oid_hex)}},
                ]
            except (ValueError, InvalidId):
                raise ValueError("Malformed cursor")

        cursor_db = self.collection.find(query).sort(sort).limit(limit)
        items = [_normalize(it) for it in await cursor_db.to_list(length=limit)]
        next_cursor = None
        if len(items) == limit:
            last = items[-1]
            last_ts = int(last["last_message_at"].timestamp() * 1000)
            next_cursor = f"{last_ts}:{last['id']}"
        return items, next_cursor
