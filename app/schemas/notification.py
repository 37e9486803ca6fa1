"""Notification schemas.

The data column's shape depends on type; each type has its own payload model
and NotificationPayload is the discriminated union over them. Rows whose type
has no payload model (written by other systems) still load, with data left as
a plain dict.
"""

from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

CHAT_MESSAGE = "chat_message"
CONNECTION_REQUEST_ACCEPTED = "connection_request_accepted"
CONNECTION_REQUEST_DECLINED = "connection_request_declined"
LISTING_APPROVED = "listing_approved"
LISTING_REJECTED = "listing_rejected"
REPORT_CLEARED = "report_cleared"
OFFER_ACCEPTED = "offer_accepted"
OFFER_DECLINED = "offer_declined"


class ConnectionAcceptedData(BaseModel):
    type: Literal["connection_request_accepted"] = CONNECTION_REQUEST_ACCEPTED
    business_id: UUID
    business_name: str
    request_id: UUID
    room_id: Optional[UUID] = None


class ConnectionDeclinedData(BaseModel):
    type: Literal["connection_request_declined"] = CONNECTION_REQUEST_DECLINED
    business_id: UUID
    business_name: str
    request_id: UUID


class ChatMessageData(BaseModel):
    type: Literal["chat_message"] = CHAT_MESSAGE
    room_id: UUID
    sender_id: UUID
    message_id: UUID
    business_id: Optional[UUID] = None


class ListingApprovedData(BaseModel):
    type: Literal["listing_approved"] = LISTING_APPROVED
    business_id: UUID
    business_name: str


class ListingRejectedData(BaseModel):
    type: Literal["listing_rejected"] = LISTING_REJECTED
    business_id: UUID
    business_name: str


class ReportClearedData(BaseModel):
    type: Literal["report_cleared"] = REPORT_CLEARED
    business_id: UUID
    report_id: Optional[UUID] = None


class OfferAcceptedData(BaseModel):
    type: Literal["offer_accepted"] = OFFER_ACCEPTED
    offer_id: UUID
    business_id: Optional[UUID] = None


class OfferDeclinedData(BaseModel):
    type: Literal["offer_declined"] = OFFER_DECLINED
    offer_id: UUID
    business_id: Optional[UUID] = None


NotificationPayload = Annotated[
    Union[
        ConnectionAcceptedData,
        ConnectionDeclinedData,
        ChatMessageData,
        ListingApprovedData,
        ListingRejectedData,
        ReportClearedData,
        OfferAcceptedData,
        OfferDeclinedData,
    ],
    Field(discriminator="type"),
]

_payload_adapter = TypeAdapter(NotificationPayload)

KNOWN_TYPES = frozenset({
    CHAT_MESSAGE,
    CONNECTION_REQUEST_ACCEPTED,
    CONNECTION_REQUEST_DECLINED,
    LISTING_APPROVED,
    LISTING_REJECTED,
    REPORT_CLEARED,
    OFFER_ACCEPTED,
    OFFER_DECLINED,
})


def payload_to_data(payload: BaseModel) -> dict:
    """Serialize a payload for the JSON data column (type lives in its own column)."""
    return payload.model_dump(mode="json", exclude={"type"}, exclude_none=True)


def parse_payload(notification_type: str, data: dict | None) -> Optional[BaseModel]:
    """Load the typed payload for a row, or None for unknown types or malformed data."""
    if notification_type not in KNOWN_TYPES:
        return None
    try:
        return _payload_adapter.validate_python({**(data or {}), "type": notification_type})
    except ValidationError:
        return None


class NotificationRead(BaseModel):
    id: UUID
    user_id: UUID
    type: str
    title: str
    message: str
    data: dict[str, Any] = {}
    read: bool
    emailed: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class NotificationGroupRead(BaseModel):
    """Chat notifications from one sender in one room, collapsed into one feed entry."""

    sender_id: Optional[UUID] = None
    room_id: Optional[UUID] = None
    latest: NotificationRead
    count: int
    unread_count: int
    notification_ids: list[UUID]


class NotificationFeedRead(BaseModel):
    groups: list[NotificationGroupRead]
    items: list[NotificationRead]
    unread_count: int


class NotificationReadUpdate(BaseModel):
    read: bool = True


class NotificationReadResult(BaseModel):
    id: UUID
    read: bool
    unread_delta: int


class NotificationBatchResult(BaseModel):
    affected: int
