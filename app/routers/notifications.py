import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from app.core.auth import get_current_user
from app.db.session import get_db
from app.models.user import User
from app.schemas.notification import (
    NotificationBatchResult,
    NotificationFeedRead,
    NotificationGroupRead,
    NotificationRead,
    NotificationReadResult,
    NotificationReadUpdate,
)
from app.services import notifications
from app.services.notification_feed import NotificationIndex

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/notifications", tags=["notifications"])


def feed_to_response(index: NotificationIndex) -> NotificationFeedRead:
    groups = [
        NotificationGroupRead(
            sender_id=group.sender_id,
            room_id=group.room_id,
            latest=NotificationRead.model_validate(group.latest.as_dict()),
            count=group.count,
            unread_count=group.unread_count,
            notification_ids=group.notification_ids,
        )
        for group in index.groups()
    ]
    items = [NotificationRead.model_validate(entry.as_dict()) for entry in index.items()]
    return NotificationFeedRead(groups=groups, items=items, unread_count=index.unread_count)


@router.get("", response_model=NotificationFeedRead)
def get_feed(
    limit: Optional[int] = Query(None, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    The current user's notification feed.
    chat_message notifications are grouped per (sender, room); other types are listed individually.
    """
    return feed_to_response(notifications.feed(db, current_user, limit))


@router.patch("/{notification_id}", response_model=NotificationReadResult)
def set_read(
    notification_id: UUID,
    body: NotificationReadUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Mark one notification read or unread. unread_delta is what the client applies to its counter."""
    delta = notifications.mark_read(db, current_user, notification_id, body.read)
    return NotificationReadResult(id=notification_id, read=body.read, unread_delta=delta)


@router.delete("/{notification_id}", status_code=204)
def delete_notification(
    notification_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    notifications.delete(db, current_user, notification_id)
    return Response(status_code=204)


@router.post("/rooms/{room_id}/read", response_model=NotificationBatchResult)
def mark_room_read(
    room_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Mark every chat notification for a room read, e.g. when the conversation is opened."""
    return NotificationBatchResult(affected=notifications.mark_room_read(db, current_user, room_id))


@router.delete("/groups/{sender_id}/{room_id}", response_model=NotificationBatchResult)
def delete_group(
    sender_id: UUID,
    room_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Delete a collapsed chat group: every notification from sender_id in room_id."""
    return NotificationBatchResult(affected=notifications.delete_group(db, current_user, sender_id, room_id))
