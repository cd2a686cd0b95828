import asyncio
import logging
from typing import Any, Dict, List, Optional, Set

from happyinline.repositories.conversation_repository import ConversationRepository
from happyinline.repositories.message_repository import MessageRepository
from happyinline.repositories.shop_repository import ShopRepository
from happyinline.repositories.user_repository import UserRepository
from happyinline.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

CONVERSATION_PREVIEW_LENGTH = 200

# strong references to fire-and-forget notification tasks
_notification_tasks: Set[asyncio.Task] = set()


async def drain_notifications(timeout: float = 5.0) -> None:
    """Give pending notification tasks a chance to finish, e.g. on shutdown."""
    if not _notification_tasks:
        return
    _, pending = await asyncio.wait(set(_notification_tasks), timeout=timeout)
    for task in pending:
        task.cancel()
    if pending:
        logger.warning("Dropped %d pending notification task(s) on shutdown", len(pending))


class ChatService:

    def __init__(
        self,
        message_repo: MessageRepository,
        conversation_repo: ConversationRepository,
        user_repo: UserRepository,
        shop_repo: ShopRepository,
        notifier: NotificationService,
    ) -> None:
        self._message_repo = message_repo
        self._conversation_repo = conversation_repo
        self._user_repo = user_repo
        self._shop_repo = shop_repo
        self._notifier = notifier

    async def get_or_create_conversation(self, user_id: str, other_user_id: str, shop_id: Optional[str] = None) -> Dict[str, Any]:
        if user_id == other_user_id:
            raise ValueError("Cannot start a conversation with yourself")
        return await self._conversation_repo.get_or_create_one_to_one(user_id, other_user_id, shop_id)

    async def require_participant(self, conversation_id: str, user_id: str) -> Dict[str, Any]:
        conversation = await self._conversation_repo.get_by_id(conversation_id)
        if conversation is None:
            raise LookupError("Conversation not found")
        if user_id not in conversation.get("participants", []):
            raise PermissionError("Not a participant of this conversation")
        return conversation

    async def get_conversation_details(self, conversation_id: str, user_id: str) -> Dict[str, Any]:
        conversation = await self.require_participant(conversation_id, user_id)
        participants = conversation.get("participants", [])
        profiles = {p["id"]: p for p in await self._user_repo.get_users_by_ids(participants)}
        # unknown profiles still show up with their id
        conversation["participant_profiles"] = [profiles.get(pid, {"id": pid}) for pid in participants]
        shop_id = conversation.get("shop_id")
        conversation["shop"] = await self._shop_repo.get_shop_summary(shop_id) if shop_id else None
        return conversation

    async def list_conversations(self, user_id: str, limit: int = 20, cursor: Optional[str] = None):
        return await self._conversation_repo.list_for_user(user_id, limit=limit, cursor=cursor)

    async def get_history(self, conversation_id: str, user_id: str, limit: int = 50, cursor: Optional[str] = None):
        await self.require_participant(conversation_id, user_id)
        return await self._message_repo.get_conversation_messages(conversation_id, limit=limit, cursor=cursor)

    async def get_recent_messages(self, conversation_id: str, limit: int) -> List[Dict[str, Any]]:
        return await self._message_repo.get_recent_messages(conversation_id, limit)

    async def mark_conversation_as_read(self, conversation_id: str, user_id: str) -> int:
        await self.require_participant(conversation_id, user_id)
        modified = await self._message_repo.mark_read_for_reader(conversation_id, user_id)
        await self._conversation_repo.reset_unread(conversation_id, user_id)
        return modified

    async def send_message(
        self,
        conversation_id: str,
        sender_id: str,
        content: str,
        attachment_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        text = (content or "").strip()
        if not text:
            raise ValueError("Message content cannot be empty")
        saved = await self._message_repo.save_message(
            conversation_id=conversation_id,
            sender_id=sender_id,
            content=text,
            attachment_url=attachment_url,
        )

        # the message is stored; nothing below may fail the send
        recipient_id = None
        try:
            conversation = await self._conversation_repo.get_by_id(conversation_id)
            participants = conversation.get("participants", []) if conversation else []
            recipient_id = next((p for p in participants if p != sender_id), None)
            await self._conversation_repo.update_on_new_message(
                conversation_id, text[:CONVERSATION_PREVIEW_LENGTH], recipient_id
            )
        except Exception:
            logger.exception("Could not update conversation %s after message %s", conversation_id, saved["id"])

        if recipient_id:
            task = asyncio.create_task(self._notify_recipient(recipient_id, sender_id, text, conversation_id))
            _notification_tasks.add(task)
            task.add_done_callback(_notification_tasks.discard)
        return saved

    async def _notify_recipient(self, recipient_id: str, sender_id: str, text: str, conversation_id: str) -> None:
        try:
            sender = await self._user_repo.get_user_by_id(sender_id)
            sender_name = (sender or {}).get("name") or "Someone"
            result = await self._notifier.send_message_notification(
                recipient_user_id=recipient_id,
                sender_name=sender_name,
                message_preview=text,
                conversation_id=conversation_id,
            )
            if not result.get("success"):
                logger.info("Message notification to %s not delivered: %s", recipient_id, result.get("error"))
        except Exception:
            logger.exception("Message notification to %s failed", recipient_id)
