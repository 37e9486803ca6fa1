"""Notification writes and recipient-scoped feed operations."""

import logging
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import DeliveryError, NotFoundError, TransientStoreError
from app.db.retry import with_retry
from app.models.notification import Notification
from app.models.user import User
from app.schemas.notification import CHAT_MESSAGE, parse_payload, payload_to_data
from app.services.mailer import send_email
from app.services.notification_feed import NotificationIndex

logger = logging.getLogger(__name__)


def build_notification(recipient_id: UUID, payload: BaseModel, title: str, message: str) -> Notification:
    """Create (but do not add) a notification row for a typed payload."""
    return Notification(
        user_id=recipient_id,
        type=payload.type,
        title=title,
        message=message,
        data=payload_to_data(payload),
        read=False,
        emailed=False,
    )


def emit(
    db: Session,
    *,
    recipient_id: UUID,
    payload: BaseModel,
    title: str,
    message: str,
    commit: bool = True,
) -> Notification:
    """
    Insert exactly one notification for a side-effecting event.

    With commit=False the row is only flushed so the caller can commit it together
    with its own bookkeeping. Store failures roll back and raise DeliveryError.
    """
    notification = build_notification(recipient_id, payload, title, message)
    try:
        db.add(notification)
        if commit:
            db.commit()
            db.refresh(notification)
        else:
            db.flush()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Notification insert failed: type=%s recipient=%s error=%s", payload.type, recipient_id, e)
        raise DeliveryError(f"Could not deliver {payload.type} notification") from e

    logger.info("Notification emitted: id=%s type=%s recipient=%s", notification.id, notification.type, recipient_id)
    return notification


def email_notification(db: Session, notification: Notification, recipient: User | None) -> bool:
    """Send the notification by email and record it; failures never undo the notification."""
    if recipient is None:
        return False
    sent = send_email(
        recipient.email,
        subject=notification.title,
        html=f"<p>{notification.message}</p>",
    )
    if not sent:
        return False
    try:
        notification.emailed = True
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("Could not record emailed flag: notification=%s error=%s", notification.id, e)
    return True


def _commit(db: Session, operation: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Notification %s failed: error=%s", operation, e)
        raise TransientStoreError(f"Store unavailable during notification {operation}") from e


def _load_own(db: Session, principal: User, notification_id: UUID) -> Notification:
    notification = with_retry(
        lambda: db.query(Notification)
        .filter(Notification.id == notification_id, Notification.user_id == principal.id)
        .first(),
        operation="notification lookup",
        on_retry=db.rollback,
    )
    if notification is None:
        raise NotFoundError("Notification not found")
    return notification


def fetch_notifications(db: Session, principal: User, limit: int | None = None) -> list[Notification]:
    limit = limit or settings.notification_feed_limit
    return with_retry(
        lambda: db.query(Notification)
        .filter(Notification.user_id == principal.id)
        .order_by(Notification.created_at.desc())
        .limit(limit)
        .all(),
        operation="notification fetch",
        on_retry=db.rollback,
    )


def feed(db: Session, principal: User, limit: int | None = None) -> NotificationIndex:
    """
    Grouped feed for the principal (chat grouped by sender+room, the rest individually).

    Only the newest ``limit`` rows (``notification_feed_limit`` by default) are
    indexed, so group counts, notification_ids and unread_count describe that
    window, not the whole history. delete_group and mark_room_read act on every
    matching row, including ones older than the window.
    """
    rows = fetch_notifications(db, principal, limit)
    index = NotificationIndex(rows)
    logger.debug(
        "Built notification feed: user=%s rows=%d groups=%d unread=%d",
        principal.id,
        len(rows),
        len(index.groups()),
        index.unread_count,
    )
    return index


def mark_read(db: Session, principal: User, notification_id: UUID, read: bool = True) -> int:
    """
    Toggle read on one of the principal's notifications.

    Returns:
        Unread counter delta: -1 when marked read, +1 when marked unread, 0 if unchanged.
    """
    notification = _load_own(db, principal, notification_id)
    if notification.read == read:
        return 0
    notification.read = read
    _commit(db, "read update")
    return -1 if read else 1


def _own_chat_notifications(db: Session, principal: User) -> list[Notification]:
    return with_retry(
        lambda: db.query(Notification)
        .filter(Notification.user_id == principal.id, Notification.type == CHAT_MESSAGE)
        .all(),
        operation="chat notification fetch",
        on_retry=db.rollback,
    )


def _in_room(notification: Notification, room_id: UUID) -> bool:
    payload = parse_payload(notification.type, notification.data)
    return payload is not None and payload.room_id == room_id


def mark_room_read(db: Session, principal: User, room_id: UUID) -> int:
    """Mark every unread chat notification for a room read (principal opened the room)."""
    changed = 0
    for notification in _own_chat_notifications(db, principal):
        if not notification.read and _in_room(notification, room_id):
            notification.read = True
            changed += 1
    if changed:
        _commit(db, "room read")
        logger.info("Marked %d chat notification(s) read: user=%s room=%s", changed, principal.id, room_id)
    return changed


def delete(db: Session, principal: User, notification_id: UUID) -> None:
    notification = _load_own(db, principal, notification_id)
    db.delete(notification)
    _commit(db, "delete")


def delete_group(db: Session, principal: User, sender_id: UUID, room_id: UUID) -> int:
    """Delete every notification in a (sender, room) chat group, not just the newest."""
    deleted = 0
    for notification in _own_chat_notifications(db, principal):
        payload = parse_payload(notification.type, notification.data)
        if payload is not None and payload.room_id == room_id and payload.sender_id == sender_id:
            db.delete(notification)
            deleted += 1
    if not deleted:
        raise NotFoundError("Notification group not found")
    _commit(db, "group delete")
    logger.info("Deleted notification group: user=%s sender=%s room=%s rows=%d", principal.id, sender_id, room_id, deleted)
    return deleted
