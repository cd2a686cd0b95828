from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class ConversationCreate(BaseModel):

    other_user_id: str = Field(min_length=1)
    shop_id: Optional[str] = None


class MessageCreate(BaseModel):

    conversation_id: str = Field(min_length=1)
    content: str = Field(min_length=1, max_length=4000)
    attachment_url: Optional[str] = None


class MessagePublic(BaseModel):

    id: str
    conversation_id: str
    sender_id: str
    content: str
    attachment_url: Optional[str] = None
    created_at: datetime
    is_delivered: bool = False
    is_read: bool = False


class ParticipantProfile(BaseModel):

    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    profile_picture_url: Optional[str] = None


class ShopSummary(BaseModel):

    id: str
    name: str


class ConversationPublic(BaseModel):

    id: str
    participants: List[str]
    shop_id: Optional[str] = None
    last_message_at: datetime
    last_message_preview: Optional[str] = None
    unread_counters: dict[str, int] = Field(default_factory=dict)
    participant_profiles: Optional[List[ParticipantProfile]] = None
    shop: Optional[ShopSummary] = None


class DeviceRegistration(BaseModel):

    platform: Literal["fcm", "webpush"]
    token: str = Field(min_length=1)
