from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ChatRoomRead(BaseModel):
    id: UUID
    business_id: UUID
    owner_id: UUID
    member_id: UUID
    connection_request_id: Optional[UUID] = None
    created_at: datetime
    last_message_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ChatMessageCreate(BaseModel):
    content: str = Field(min_length=1, max_length=4000)
    type: Literal["text", "file_link"] = "text"


class ChatMessageRead(BaseModel):
    id: UUID
    room_id: UUID
    sender_id: UUID
    content: str
    type: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
