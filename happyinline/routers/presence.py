from fastapi import APIRouter, Depends

from happyinline.utils.dependencies import get_current_user
from happyinline.utils.presence import get_presence


router = APIRouter(prefix="/presence", tags=["chat"])


@router.get("/{user_id}")
async def presence(user_id: str, current_user: dict = Depends(get_current_user)):
    """
    Online status of a user. Without Redis everyone reads as offline.
    """
    store = await get_presence()
    return await store.get_status(user_id)
