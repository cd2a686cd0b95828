from fastapi import APIRouter, Depends, HTTPException

from happyinline.repositories.device_repository import DeviceRepository
from happyinline.routers.deps import get_device_repository
from happyinline.schemas.chat import DeviceRegistration
from happyinline.utils.dependencies import get_current_user


router = APIRouter(prefix="/devices", tags=["push"])


@router.post("/register")
async def register_device(payload: DeviceRegistration, current_user: dict = Depends(get_current_user), repo: DeviceRepository = Depends(get_device_repository)):
    doc = await repo.register(current_user["_id"], payload.platform, payload.token)
    return {"ok": True, "device": {"platform": doc["platform"], "token": doc["token"]}}


@router.delete("/{token}")
async def remove_device(token: str, current_user: dict = Depends(get_current_user), repo: DeviceRepository = Depends(get_device_repository)):
    removed = await repo.remove(current_user["_id"], token)
    if not removed:
        raise HTTPException(status_code=404, detail="Device not registered")
    return {"ok": True}
