from fastapi import Depends, HTTPException, status

from happyinline.database.connection import mongo_db_dependency
from happyinline.repositories.conversation_repository import ConversationRepository
from happyinline.repositories.device_repository import DeviceRepository
from happyinline.repositories.message_repository import MessageRepository
from happyinline.repositories.shop_repository import ShopRepository
from happyinline.repositories.user_repository import UserRepository
from happyinline.services.chat_service import ChatService
from happyinline.services.notification_service import NotificationService


def get_chat_service(db = Depends(mongo_db_dependency)) -> ChatService:
    return ChatService(
        MessageRepository(db),
        ConversationRepository(db),
        UserRepository(db),
        ShopRepository(db),
        NotificationService(DeviceRepository(db)),
    )


def get_device_repository(db = Depends(mongo_db_dependency)) -> DeviceRepository:
    return DeviceRepository(db)


def http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, LookupError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, PermissionError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
