from datetime import datetime
from typing import List, Optional, TypedDict


class ConversationDocument(TypedDict, total=False):
    id: str
    # sorted pair, so (a, b) and (b, a) resolve to the same conversation
    participants: List[str]
    shop_id: Optional[str]
    created_at: datetime
    last_message_at: datetime
    last_message_preview: Optional[str]
    # per-user unread counters (user_id -> count)
    unread_counters: dict[str, int]
    is_archived: bool
