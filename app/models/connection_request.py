"""Connection requests from a viewer to a business owner."""

import uuid
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, CheckConstraint, Index, func, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.db.base import Base
from app.models.timestamps import utcnow

STATUS_PENDING = "pending"
STATUS_ACCEPTED = "accepted"
STATUS_REJECTED = "rejected"


class ConnectionRequest(Base):
    """
    A proposal to open a private conversation with a business owner.

    status moves pending -> accepted or pending -> rejected exactly once.
    Accepted rows are kept as an audit record; rejected rows are deleted once the
    requester has been notified. decision_notified_at is set in the same
    transaction as the decision notification so the post-decision side effects
    can be resumed without notifying twice.
    """

    __tablename__ = "connection_requests"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_id = Column(UUID(as_uuid=True), ForeignKey("businesses.id"), nullable=False, index=True)
    requester_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    business_owner_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    message = Column(Text, nullable=True)
    status = Column(String(16), nullable=False, default=STATUS_PENDING)  # pending | accepted | rejected
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    decided_at = Column(DateTime(timezone=True), nullable=True)
    decision_notified_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    business = relationship("Business", back_populates="connection_requests")

    __table_args__ = (
        CheckConstraint("requester_id != business_owner_id", name="ck_connection_requests_not_self"),
        Index("ix_connection_requests_owner_status", "business_owner_id", "status"),
        # At most one pending request per (business, requester)
        Index(
            "uq_connection_requests_pending",
            "business_id",
            "requester_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )
