"""Provision the single chat room for an accepted (business, member) pair."""

import logging
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import InvalidStateError, NotFoundError
from app.db.retry import with_retry
from app.models.chat_room import ChatRoom
from app.models.connection_request import ConnectionRequest, STATUS_ACCEPTED
from app.models.user import User

logger = logging.getLogger(__name__)


def find_room(db: Session, business_id: UUID, member_id: UUID) -> ChatRoom | None:
    return (
        db.query(ChatRoom)
        .filter(ChatRoom.business_id == business_id, ChatRoom.member_id == member_id)
        .first()
    )


def provision_room(
    db: Session,
    business_id: UUID,
    owner_id: UUID,
    member_id: UUID,
    request_id: UUID | None,
) -> UUID:
    """
    Return the room for (business_id, member_id), creating it if none exists.

    Idempotent: repeated or concurrent calls for the same pair return the same id.
    The insert commits on its own, so losing the race on the
    uq_chat_rooms_business_member constraint only rolls back the insert and is
    treated as "already exists": the winner's row is fetched and returned.
    Transient store failures propagate (OperationalError) for the caller to retry.
    """
    existing = find_room(db, business_id, member_id)
    if existing is not None:
        logger.info("Chat room already provisioned: room=%s business=%s member=%s", existing.id, business_id, member_id)
        return existing.id

    room = ChatRoom(
        business_id=business_id,
        owner_id=owner_id,
        member_id=member_id,
        connection_request_id=request_id,
    )
    try:
        db.add(room)
        db.commit()
    except IntegrityError:
        db.rollback()
        winner = find_room(db, business_id, member_id)
        if winner is None:
            raise
        logger.info("Chat room created concurrently; reusing room=%s business=%s member=%s", winner.id, business_id, member_id)
        return winner.id

    logger.info(
        "Chat room provisioned: room=%s business=%s owner=%s member=%s request=%s",
        room.id,
        business_id,
        owner_id,
        member_id,
        request_id,
    )
    return room.id


def open_room_for_request(db: Session, principal: User, request_id: UUID) -> ChatRoom:
    """
    Open the conversation for an accepted request, provisioning it if it is missing.

    Either participant may call this; it is how the owner retries after a
    provisioning failure, and it is always safe to repeat.
    """
    request = with_retry(
        lambda: db.query(ConnectionRequest).filter(ConnectionRequest.id == request_id).first(),
        operation="connection request lookup",
        on_retry=db.rollback,
    )
    if request is None or principal.id not in (request.business_owner_id, request.requester_id):
        raise NotFoundError("Connection request not found")
    if request.status != STATUS_ACCEPTED:
        raise InvalidStateError(f"Connection request is {request.status}, not accepted")

    business_id, owner_id, member_id = request.business_id, request.business_owner_id, request.requester_id
    room_id = with_retry(
        lambda: provision_room(db, business_id, owner_id, member_id, request_id),
        operation="room provisioning",
        on_retry=db.rollback,
    )
    return db.get(ChatRoom, room_id)
