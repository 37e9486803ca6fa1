from pydantic import BaseModel, ConfigDict, Field
from uuid import UUID
from datetime import datetime
from typing import Optional


class BusinessBase(BaseModel):
    name: str
    category: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = Field(default=None, min_length=2, max_length=2)


class BusinessCreate(BusinessBase):
    pass


class BusinessRead(BusinessBase):
    id: UUID
    owner_id: UUID
    status: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ListingModeration(BaseModel):
    approve: bool
