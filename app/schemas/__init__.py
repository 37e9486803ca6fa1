from app.schemas.business import BusinessCreate, BusinessRead, ListingModeration
from app.schemas.connection_request import (
    ConnectionRequestCreate,
    ConnectionRequestCreated,
    ConnectionRequestRead,
    DecisionRequest,
    DecisionResult,
)
from app.schemas.chat import ChatRoomRead, ChatMessageCreate, ChatMessageRead
from app.schemas.notification import (
    NotificationRead,
    NotificationGroupRead,
    NotificationFeedRead,
    NotificationReadUpdate,
    NotificationReadResult,
    NotificationBatchResult,
)

__all__ = [
    "BusinessCreate",
    "BusinessRead",
    "ListingModeration",
    "ConnectionRequestCreate",
    "ConnectionRequestCreated",
    "ConnectionRequestRead",
    "DecisionRequest",
    "DecisionResult",
    "ChatRoomRead",
    "ChatMessageCreate",
    "ChatMessageRead",
    "NotificationRead",
    "NotificationGroupRead",
    "NotificationFeedRead",
    "NotificationReadUpdate",
    "NotificationReadResult",
    "NotificationBatchResult",
]
