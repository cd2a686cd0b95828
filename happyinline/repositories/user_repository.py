from typing import Any, Dict, Iterable, List, Optional, Union

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from happyinline.models.user import ProfileDocument

PUBLIC_FIELDS = {"name": 1, "email": 1, "profile_picture_url": 1}


def _id_candidates(user_id: str) -> List[Union[str, ObjectId]]:
    # ids come from the auth backend's `sub` claim and are opaque strings
    candidates: List[Union[str, ObjectId]] = [user_id]
    if ObjectId.is_valid(user_id):
        candidates.append(ObjectId(user_id))
    return candidates


def _public(doc: Dict[str, Any]) -> ProfileDocument:
    return {
        "id": str(doc["_id"]),
        "name": doc.get("name"),
        "email": doc.get("email"),
        "profile_picture_url": doc.get("profile_picture_url"),
    }


class UserRepository:
    """Read-only access to the profiles owned by the auth backend."""

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._collection = db.get_collection("profiles")

    async def get_user_by_id(self, user_id: str) -> Optional[ProfileDocument]:
        if not user_id:
            return None
        doc = await self._collection.find_one({"_id": {"$in": _id_candidates(user_id)}}, PUBLIC_FIELDS)
        return _public(doc) if doc else None

    async def get_users_by_ids(self, user_ids: Iterable[str]) -> List[ProfileDocument]:
        ids = [user_id for user_id in user_ids if user_id]
        candidates = [c for user_id in ids for c in _id_candidates(user_id)]
        cur = self._collection.find({"_id": {"$in": candidates}}, PUBLIC_FIELDS)
        return [_public(doc) for doc in await cur.to_list(length=len(ids) or 1)]
