import logging
from typing import Any, Dict, Optional

from happyinline.repositories.device_repository import DeviceRepository
from happyinline.utils.notifications import get_push

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 50


def truncate_preview(text: str, length: int = PREVIEW_LENGTH) -> str:
    return text[:length] + "..." if len(text) > length else text


class NotificationService:
    """Server-side push dispatch. Every method reports failure in its result instead of raising."""

    def __init__(self, device_repo: DeviceRepository) -> None:
        self._device_repo = device_repo

    async def send_server_push_notification(
        self,
        notification_type: str,
        recipient_user_id: str,
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        try:
            push = await get_push()
            if not push.enabled:
                return {"success": False, "sent": 0, "error": "push disabled"}
            devices = await self._device_repo.get_tokens(recipient_user_id, platform="fcm")
            tokens = [d["token"] for d in devices]
            if not tokens:
                logger.debug("No push devices for user %s", recipient_user_id)
                return {"success": False, "sent": 0, "error": "no devices"}
            # FCM data payload values must be strings
            payload = {k: str(v) for k, v in (data or {}).items() if v is not None}
            payload["type"] = notification_type
            sent = await push.send_fcm(tokens, title, body, payload)
        except Exception as exc:
            logger.error("Error sending %s push to %s: %s", notification_type, recipient_user_id, exc)
            return {"success": False, "sent": 0, "error": str(exc)}
        logger.info("Sent %s push to %s (%d/%d devices)", notification_type, recipient_user_id, sent, len(tokens))
        return {"success": sent > 0, "sent": sent, "error": None}

    async def send_message_notification(
        self,
        recipient_user_id: str,
        sender_name: str,
        message_preview: str,
        conversation_id: str,
    ) -> Dict[str, Any]:
        return await self.send_server_push_notification(
            "new_message",
            recipient_user_id,
            title=f"New message from {sender_name}",
            body=truncate_preview(message_preview),
            data={"conversation_id": conversation_id},
        )
