from datetime import datetime
from typing import Optional, TypedDict


class MessageDocument(TypedDict, total=False):
    id: str
    conversation_id: str
    sender_id: str
    content: str
    attachment_url: Optional[str]
    created_at: datetime
    # delivery states
    is_delivered: bool
    delivered_at: Optional[datetime]
    is_read: bool
    read_at: Optional[datetime]
    is_deleted: bool
