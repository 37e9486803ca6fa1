import uuid
from sqlalchemy import Column, String, DateTime, ForeignKey, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.db.base import Base

LISTING_PENDING = "pending"
LISTING_APPROVED = "approved"
LISTING_REJECTED = "rejected"


class Business(Base):
    __tablename__ = "businesses"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String, nullable=False, index=True)
    category = Column(String, nullable=True)
    city = Column(String, nullable=True)
    province = Column(String(2), nullable=True)  # two-letter code, e.g. "QC"
    status = Column(String(16), nullable=False, default=LISTING_PENDING)  # pending | approved | rejected
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    owner = relationship("User", back_populates="businesses")
    connection_requests = relationship("ConnectionRequest", back_populates="business")
    chat_rooms = relationship("ChatRoom", back_populates="business")
