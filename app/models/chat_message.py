"""Append-only messages inside a chat room."""

import uuid
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Index, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.db.base import Base
from app.models.timestamps import utcnow

MESSAGE_TEXT = "text"
MESSAGE_FILE_LINK = "file_link"


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    room_id = Column(UUID(as_uuid=True), ForeignKey("chat_rooms.id"), nullable=False, index=True)
    sender_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    content = Column(Text, nullable=False)
    type = Column(String(16), nullable=False, default=MESSAGE_TEXT)  # "text" | "file_link"
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    # Relationships
    room = relationship("ChatRoom", back_populates="messages")

    __table_args__ = (
        Index("ix_chat_messages_room_created", "room_id", "created_at"),
    )
