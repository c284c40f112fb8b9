from pydantic import BaseModel
from uuid import UUID
from datetime import datetime
from typing import Any, Optional


class ConversationCreate(BaseModel):
    other_user_id: UUID


class ConversationCreated(BaseModel):
    conversation_id: UUID


class LastMessage(BaseModel):
    content: str
    created_at: datetime


class ConversationSummary(BaseModel):
    id: UUID
    other_user_id: UUID
    other_user_name: str
    other_user_avatar: Optional[str] = None
    last_message: Optional[LastMessage] = None
    updated_at: Optional[datetime] = None


class MessageCreate(BaseModel):
    # Length is checked by the service so empty/oversized text maps to 400.
    content: Any = None


class MessageResponse(BaseModel):
    id: UUID
    conversation_id: UUID
    sender_id: UUID
    content: str
    created_at: datetime
    read_at: Optional[datetime] = None
    scam_warning: Optional[dict] = None

    model_config = {"from_attributes": True}


class UnreadCountResponse(BaseModel):
    count: int
