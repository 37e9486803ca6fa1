from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ConnectionRequestCreate(BaseModel):
    business_id: UUID
    message: Optional[str] = Field(default=None, max_length=2000)


class ConnectionRequestRead(BaseModel):
    id: UUID
    business_id: UUID
    requester_id: UUID
    business_owner_id: UUID
    message: Optional[str] = None
    status: str
    created_at: datetime
    decided_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ConnectionRequestCreated(BaseModel):
    id: UUID
    status: str


class DecisionRequest(BaseModel):
    decision: Literal["accept", "reject"]


class DecisionResult(BaseModel):
    """Outcome of a decision. room_id is set for accepted requests once provisioned."""

    request_id: UUID
    status: str
    room_id: Optional[UUID] = None
    notification_id: Optional[UUID] = None
