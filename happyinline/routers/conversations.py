from typing import Optional

from fastapi import APIRouter, Depends, Query

from happyinline.routers.deps import get_chat_service, http_error
from happyinline.schemas.chat import ConversationCreate, ConversationPublic, MessagePublic
from happyinline.services.chat_service import ChatService
from happyinline.utils.dependencies import get_current_user


router = APIRouter(prefix="/conversations", tags=["chat"])


@router.get("")
async def list_conversations(limit: int = Query(20, ge=1, le=100), cursor: Optional[str] = None, current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    try:
        items, next_cursor = await service.list_conversations(current_user["_id"], limit=limit, cursor=cursor)
    except ValueError as exc:
        raise http_error(exc)
    return {"items": [ConversationPublic(**it) for it in items], "next_cursor": next_cursor}


@router.post("", response_model=ConversationPublic)
async def open_conversation(body: ConversationCreate, current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    try:
        return await service.get_or_create_conversation(current_user["_id"], body.other_user_id, body.shop_id)
    except ValueError as exc:
        raise http_error(exc)


@router.get("/{conversation_id}", response_model=ConversationPublic)
async def get_conversation(conversation_id: str, current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    try:
        return await service.get_conversation_details(conversation_id, current_user["_id"])
    except (LookupError, PermissionError) as exc:
        raise http_error(exc)


@router.get("/{conversation_id}/messages")
async def list_messages(conversation_id: str, limit: int = Query(50, ge=1, le=200), cursor: Optional[str] = None, current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    try:
        messages, next_cursor = await service.get_history(conversation_id, current_user["_id"], limit=limit, cursor=cursor)
    except (LookupError, PermissionError, ValueError) as exc:
        raise http_error(exc)
    return {"items": [MessagePublic(**m) for m in messages], "next_cursor": next_cursor}


@router.post("/{conversation_id}/read")
async def mark_read(conversation_id: str, current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    try:
        count = await service.mark_conversation_as_read(conversation_id, current_user["_id"])
    except (LookupError, PermissionError) as exc:
        raise http_error(exc)
    return {"updated": count}
