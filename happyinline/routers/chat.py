import asyncio
import json
import logging

import jwt
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from pydantic import ValidationError

from happyinline.config import PRESENCE_HEARTBEAT_SECONDS
from happyinline.routers.deps import get_chat_service, http_error
from happyinline.schemas.chat import MessageCreate, MessagePublic
from happyinline.services.chat_service import ChatService
from happyinline.utils.dependencies import get_current_user
from happyinline.utils.message_feed import subscribe_to_messages
from happyinline.utils.presence import get_presence
from happyinline.utils.security import decode_access_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/messages", tags=["chat"])


def _frame(kind: str, message: dict) -> dict:
    return {"type": kind, "message": jsonable_encoder(MessagePublic(**message))}


@router.post("", response_model=MessagePublic)
async def send_message(body: MessageCreate, current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    try:
        await service.require_participant(body.conversation_id, current_user["_id"])
        return await service.send_message(body.conversation_id, current_user["_id"], body.content, body.attachment_url)
    except (LookupError, PermissionError, ValueError) as exc:
        raise http_error(exc)


@router.websocket("/ws/{conversation_id}")
async def conversation_feed(websocket: WebSocket, conversation_id: str, service: ChatService = Depends(get_chat_service)):
    # token comes as ?token=... since browsers cannot set headers on a WS handshake
    token = websocket.query_params.get("token")
    if not token:
        await websocket.close(code=4401)
        return
    try:
        user_id = decode_access_token(token)["sub"]
    except jwt.InvalidTokenError:
        await websocket.close(code=4401)
        return
    try:
        await service.require_participant(conversation_id, user_id)
    except (LookupError, PermissionError):
        await websocket.close(code=4403)
        return

    await websocket.accept()
    presence = await get_presence()

    async def _presence_heartbeat():
        while True:
            await presence.set_online(user_id)
            await asyncio.sleep(PRESENCE_HEARTBEAT_SECONDS)

    async def _push(message: dict) -> None:
        await websocket.send_json(_frame("message", message))

    heartbeat_task = asyncio.create_task(_presence_heartbeat())
    subscription = subscribe_to_messages(conversation_id, _push, service.get_recent_messages)
    logger.info("User %s opened feed for conversation %s", user_id, conversation_id)
    try:
        while True:
            data = await websocket.receive_text()
            try:
                msg = json.loads(data)
            except json.JSONDecodeError:
                await websocket.send_json({"type": "error", "detail": "Invalid JSON"})
                continue
            if not isinstance(msg, dict):
                await websocket.send_json({"type": "error", "detail": "Invalid message payload"})
                continue
            try:
                payload = MessageCreate.model_validate({**msg, "conversation_id": conversation_id})
            except ValidationError:
                await websocket.send_json({"type": "error", "detail": "Invalid message payload"})
                continue
            try:
                saved = await service.send_message(conversation_id, user_id, payload.content, payload.attachment_url)
            except ValueError as exc:
                await websocket.send_json({"type": "error", "detail": str(exc)})
                continue
            await websocket.send_json(_frame("ack", saved))
    except WebSocketDisconnect:
        logger.info("User %s left feed for conversation %s", user_id, conversation_id)
    finally:
        subscription.cancel()
        heartbeat_task.cancel()
        await presence.set_offline(user_id)
