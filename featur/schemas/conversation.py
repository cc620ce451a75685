from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional

from featur.schemas.user import ProfileResponse

class ConversationCreate(BaseModel):
    user_id: str = Field(min_length=1)
    other_user_id: str = Field(min_length=1)

class ConversationResponse(BaseModel):
    id: str
    participant_ids: list[str]
    last_message: Optional[str] = None
    last_message_at: Optional[datetime] = None
    unread_count: dict[str, int]
    is_group_chat: bool = False
    group_name: Optional[str] = None
    created_at: Optional[datetime] = None

class ConversationResolveResponse(BaseModel):
    created: bool
    conversation: ConversationResponse

class ConversationListItem(ConversationResponse):
    participant_profiles: dict[str, ProfileResponse] = {}

class MessageCreate(BaseModel):
    sender_id: str = Field(min_length=1)
    recipient_id: str = Field(min_length=1)
    content: str
    media_url: Optional[str] = None

class MessageResponse(BaseModel):
    id: str
    conversation_id: str
    sender_id: str
    recipient_id: str
    content: str
    media_url: Optional[str] = None
    sent_at: Optional[datetime] = None
    read_at: Optional[datetime] = None

class MessageSendResponse(BaseModel):
    message: MessageResponse
    conversation_synced: bool
    match_marked: bool

class MarkReadRequest(BaseModel):
    user_id: str = Field(min_length=1)

class MarkReadResponse(BaseModel):
    conversation_id: str
    messages_marked: int
