import uuid
from sqlalchemy import Column, String, Boolean, DateTime, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String, unique=True, nullable=True, index=True)
    # External auth: 1:1 with Supabase auth.users (JWT sub). String in model for SQLite compat; migration uses UUID on PostgreSQL.
    external_auth_provider = Column(String, nullable=True)  # e.g. "google", "email"
    external_auth_uid = Column(
        String(36),
        unique=True,
        nullable=False,
        index=True,
        name="external_auth_uid",
    )
    is_admin = Column(Boolean, nullable=False, default=False, server_default="false")
    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    businesses = relationship("Business", back_populates="owner")
    notifications = relationship("Notification", back_populates="user", cascade="all, delete-orphan")
