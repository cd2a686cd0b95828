import os
import time
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

# configuration is read at import time
os.environ["JWT_SECRET"] = "test-secret-key-that-is-long-enough-for-hs256"
os.environ["JWT_AUDIENCE"] = "authenticated"
os.environ["MESSAGE_POLL_INTERVAL_SECONDS"] = "0.05"
os.environ.pop("REDIS_URL", None)
os.environ.pop("FCM_SERVICE_ACCOUNT_FILE", None)
os.environ.pop("FCM_PROJECT_ID", None)

import jwt
import pytest

from happyinline.services.chat_service import ChatService

BASE_TIME = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)
CONVERSATION_ID = "65a0f0f0f0f0f0f0f0f0f0f0"
ALICE = "65a0a11ce0000000000000a1"
BOB = "65a0b0b00000000000000b0b"
SHOP_ID = "65a05000000000000000005a"


def make_message(message_id, minute=0, sender_id=BOB, conversation_id=CONVERSATION_ID):
    return {
        "id": str(message_id),
        "conversation_id": conversation_id,
        "sender_id": sender_id,
        "content": f"message {message_id}",
        "attachment_url": None,
        "created_at": BASE_TIME + timedelta(minutes=minute),
        "is_delivered": True,
        "is_read": False,
        "is_deleted": False,
    }


def make_conversation(participants=(ALICE, BOB), conversation_id=CONVERSATION_ID):
    return {
        "id": conversation_id,
        "participants": sorted(participants),
        "shop_id": None,
        "created_at": BASE_TIME,
        "last_message_at": BASE_TIME,
        "last_message_preview": None,
        "unread_counters": {p: 0 for p in participants},
        "is_archived": False,
    }


def make_token(sub=ALICE, expires_in=300):
    now = int(time.time())
    return jwt.encode(
        {"sub": sub, "aud": "authenticated", "iat": now, "exp": now + expires_in},
        os.environ["JWT_SECRET"],
        algorithm="HS256",
    )


@pytest.fixture
def message_repo():
    repo = MagicMock()
    repo.save_message = AsyncMock(side_effect=lambda **kw: {**make_message("new-1", sender_id=kw["sender_id"]), "content": kw["content"]})
    repo.get_recent_messages = AsyncMock(return_value=[])
    repo.get_conversation_messages = AsyncMock(return_value=([], None))
    repo.mark_read_for_reader = AsyncMock(return_value=0)
    return repo


@pytest.fixture
def conversation_repo():
    repo = MagicMock()
    repo.get_by_id = AsyncMock(return_value=make_conversation())
    repo.get_or_create_one_to_one = AsyncMock(return_value=make_conversation())
    repo.update_on_new_message = AsyncMock()
    repo.reset_unread = AsyncMock()
    repo.list_for_user = AsyncMock(return_value=([make_conversation()], None))
    return repo


@pytest.fixture
def user_repo():
    repo = MagicMock()
    repo.get_user_by_id = AsyncMock(return_value={"id": ALICE, "name": "Alice", "email": "alice@example.com", "profile_picture_url": None})
    repo.get_users_by_ids = AsyncMock(return_value=[
        {"id": ALICE, "name": "Alice", "email": "alice@example.com", "profile_picture_url": None},
    ])
    return repo


@pytest.fixture
def shop_repo():
    repo = MagicMock()
    repo.get_shop_summary = AsyncMock(return_value={"id": SHOP_ID, "name": "Fade Factory"})
    return repo


@pytest.fixture
def notifier():
    service = MagicMock()
    service.send_message_notification = AsyncMock(return_value={"success": True, "sent": 1, "error": None})
    return service


@pytest.fixture
def chat_service(message_repo, conversation_repo, user_repo, shop_repo, notifier):
    return ChatService(message_repo, conversation_repo, user_repo, shop_repo, notifier)


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {make_token()}"}
