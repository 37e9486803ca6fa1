"""Two-party conversation rooms created from accepted connection requests."""

import uuid
from sqlalchemy import Column, DateTime, ForeignKey, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.db.base import Base
from app.models.timestamps import utcnow


class ChatRoom(Base):
    """
    At most one room per (business_id, member_id), enforced by a unique constraint.
    Rooms are never deleted or re-parented to another request.
    """

    __tablename__ = "chat_rooms"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_id = Column(UUID(as_uuid=True), ForeignKey("businesses.id"), nullable=False, index=True)
    owner_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    member_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    connection_request_id = Column(UUID(as_uuid=True), ForeignKey("connection_requests.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    last_message_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    business = relationship("Business", back_populates="chat_rooms")
    messages = relationship("ChatMessage", back_populates="room", order_by="ChatMessage.created_at")

    __table_args__ = (
        UniqueConstraint("business_id", "member_id", name="uq_chat_rooms_business_member"),
    )

    def has_participant(self, user_id) -> bool:
        return user_id in (self.owner_id, self.member_id)

    def counterpart_of(self, user_id):
        return self.member_id if user_id == self.owner_id else self.owner_id
