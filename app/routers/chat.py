"""Chat rooms between a business owner and an accepted requester.

Messages are persisted; live delivery goes through the realtime WebSocket
(/realtime/ws), so POST only writes and returns the stored message.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.auth import get_current_user
from app.db.session import get_db
from app.models.user import User
from app.schemas.chat import ChatMessageCreate, ChatMessageRead, ChatRoomRead
from app.services import message_channel
from app.services.room_provisioner import open_room_for_request

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/chat", tags=["chat"])


@router.get("/rooms", response_model=list[ChatRoomRead])
def list_rooms(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Rooms the current user participates in, most recent activity first."""
    return message_channel.list_rooms(db, current_user)


@router.post("/rooms/from-request/{request_id}", response_model=ChatRoomRead)
def open_room(
    request_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Get the room for an accepted connection request, creating it if missing.
    Idempotent: repeated or concurrent calls return the same room.
    """
    return open_room_for_request(db, current_user, request_id)


@router.get("/rooms/{room_id}/messages", response_model=list[ChatMessageRead])
def get_history(
    room_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return message_channel.history(db, current_user, room_id)


@router.post("/rooms/{room_id}/messages", response_model=ChatMessageRead, status_code=201)
def post_message(
    room_id: UUID,
    body: ChatMessageCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Send a message. The other participant gets a chat_message notification.
    On 502 delivery_failed nothing was stored and the client should keep its draft.
    """
    logger.info("Chat send: room=%s user=%s len=%d", room_id, current_user.id, len(body.content))
    return message_channel.send(db, current_user, room_id, body.content, body.type)
