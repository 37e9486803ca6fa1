"""Ordered message exchange within a chat room.

send() only writes; live delivery to open viewers happens through the
realtime bus subscription on chat_messages filtered by room_id.
"""

import logging
from typing import Callable, Optional
from urllib.parse import urlparse
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import DeliveryError, NotFoundError
from app.db.retry import with_retry
from app.models.chat_message import ChatMessage, MESSAGE_FILE_LINK, MESSAGE_TEXT
from app.models.chat_room import ChatRoom
from app.models.timestamps import as_aware
from app.models.user import User
from app.realtime.bus import INSERT, RealtimeBus, RowChange, Subscription, bus as default_bus
from app.schemas.notification import ChatMessageData
from app.services.notifications import build_notification

logger = logging.getLogger(__name__)

MESSAGE_TYPES = (MESSAGE_TEXT, MESSAGE_FILE_LINK)
PREVIEW_LENGTH = 100


def get_room_for_participant(db: Session, principal: User, room_id: UUID) -> ChatRoom:
    room = with_retry(
        lambda: db.query(ChatRoom).filter(ChatRoom.id == room_id).first(),
        operation="room lookup",
        on_retry=db.rollback,
    )
    if room is None or not room.has_participant(principal.id):
        raise NotFoundError("Chat room not found")
    return room


def list_rooms(db: Session, principal: User) -> list[ChatRoom]:
    """Rooms the principal participates in, most recent activity first."""
    rooms = with_retry(
        lambda: db.query(ChatRoom)
        .filter((ChatRoom.owner_id == principal.id) | (ChatRoom.member_id == principal.id))
        .all(),
        operation="room list",
        on_retry=db.rollback,
    )
    return sorted(rooms, key=lambda r: as_aware(r.last_message_at or r.created_at), reverse=True)


def _validate_content(content: str, message_type: str) -> str:
    if message_type not in MESSAGE_TYPES:
        raise ValueError(f"Unknown message type: {message_type!r}")
    content = (content or "").strip()
    if not content:
        raise ValueError("Message content must be non-empty")
    if message_type == MESSAGE_FILE_LINK:
        parsed = urlparse(content)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("File links must be http(s) URLs")
    return content


def _preview(content: str, message_type: str) -> str:
    if message_type == MESSAGE_FILE_LINK:
        return "Sent you a file link."
    if len(content) <= PREVIEW_LENGTH:
        return content
    return content[:PREVIEW_LENGTH].rstrip() + "…"


def send(
    db: Session,
    principal: User,
    room_id: UUID,
    content: str,
    message_type: str = MESSAGE_TEXT,
) -> ChatMessage:
    """
    Append a message to a room the principal participates in.

    The message, the room's last_message_at and the recipient's chat_message
    notification are written in one transaction. Nothing is retried: on failure
    DeliveryError is raised and the caller keeps the draft.

    Raises:
        ValueError: empty content, unknown type, or a file link that is not a URL.
        NotFoundError: room missing or principal not a participant.
        DeliveryError: the store rejected the write.
    """
    content = _validate_content(content, message_type)
    room = get_room_for_participant(db, principal, room_id)
    recipient_id = room.counterpart_of(principal.id)

    message = ChatMessage(room_id=room.id, sender_id=principal.id, content=content, type=message_type)
    try:
        db.add(message)
        db.flush()
        room.last_message_at = message.created_at
        db.add(
            build_notification(
                recipient_id,
                ChatMessageData(
                    room_id=room.id,
                    sender_id=principal.id,
                    message_id=message.id,
                    business_id=room.business_id,
                ),
                title="New message",
                message=_preview(content, message_type),
            )
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Message send failed: room=%s sender=%s error=%s", room_id, principal.id, e)
        raise DeliveryError("Message could not be sent. Please try again.") from e

    db.refresh(message)
    logger.info("Message sent: id=%s room=%s sender=%s type=%s", message.id, room_id, principal.id, message_type)
    return message


def history(db: Session, principal: User, room_id: UUID) -> list[ChatMessage]:
    """All messages in the room, oldest first. Idempotent read; retried on transient failures."""
    get_room_for_participant(db, principal, room_id)
    return with_retry(
        lambda: db.query(ChatMessage)
        .filter(ChatMessage.room_id == room_id)
        .order_by(ChatMessage.created_at.asc(), ChatMessage.id.asc())
        .all(),
        operation="message history",
        on_retry=db.rollback,
    )


def subscribe(
    room_id: UUID,
    on_message: Callable[[dict], None],
    realtime: Optional[RealtimeBus] = None,
    channel: Optional[str] = None,
) -> Subscription:
    """
    Receive each new message row for the room as it commits.

    Delivery is at-least-once and in commit order; consumers must de-duplicate
    by message id. The returned handle must be closed exactly once on teardown.
    """
    realtime = realtime or default_bus

    def _on_change(change: RowChange) -> None:
        on_message(change.row)

    return realtime.subscribe(
        "chat_messages",
        _on_change,
        filters={"room_id": room_id},
        events=(INSERT,),
        channel=channel,
    )
