from typing import List, Optional, Union

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from happyinline.models.shop import ShopDocument


def _id_candidates(shop_id: str) -> List[Union[str, ObjectId]]:
    candidates: List[Union[str, ObjectId]] = [shop_id]
    if ObjectId.is_valid(shop_id):
        candidates.append(ObjectId(shop_id))
    return candidates


class ShopRepository:
    """Read-only lookup of the shops a conversation can be scoped to."""

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._collection = db.get_collection("shops")

    async def get_shop_summary(self, shop_id: str) -> Optional[ShopDocument]:
        if not shop_id:
            return None
        doc = await self._collection.find_one({"_id": {"$in": _id_candidates(shop_id)}}, {"name": 1})
        if doc is None:
            return None
        return {"id": str(doc["_id"]), "name": doc.get("name") or ""}
