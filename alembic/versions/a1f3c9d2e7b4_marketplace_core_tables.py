"""marketplace core tables: users, businesses, connection_requests, chat_rooms, chat_messages, notifications

Revision ID: a1f3c9d2e7b4
Revises:
Create Date: 2026-10-19

Creates the connection-request, chat and notification tables. chat_rooms has a
unique (business_id, member_id) constraint so concurrent provisioning for the
same pair resolves to one room. users.external_auth_uid is UUID on PostgreSQL
(String(36) in the model for SQLite tests).
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision: str = "a1f3c9d2e7b4"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _uuid_pk() -> sa.Column:
    return sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), nullable=False)


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False)


def upgrade() -> None:
    op.create_table(
        "users",
        _uuid_pk(),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("external_auth_provider", sa.String(), nullable=True),
        sa.Column("external_auth_uid", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("is_admin", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
        sa.UniqueConstraint("external_auth_uid", name="uq_users_external_auth_uid"),
    )

    op.create_table(
        "businesses",
        _uuid_pk(),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("category", sa.String(), nullable=True),
        sa.Column("city", sa.String(), nullable=True),
        sa.Column("province", sa.String(2), nullable=True),
        sa.Column("status", sa.String(16), server_default="pending", nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["owner_id"], ["users.id"]),
    )
    op.create_index("ix_businesses_owner_id", "businesses", ["owner_id"], unique=False)
    op.create_index("ix_businesses_name", "businesses", ["name"], unique=False)

    op.create_table(
        "connection_requests",
        _uuid_pk(),
        sa.Column("business_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("requester_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("business_owner_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("status", sa.String(16), server_default="pending", nullable=False),
        _created_at(),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("decision_notified_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["business_id"], ["businesses.id"]),
        sa.ForeignKeyConstraint(["requester_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["business_owner_id"], ["users.id"]),
        sa.CheckConstraint("requester_id != business_owner_id", name="ck_connection_requests_not_self"),
        sa.CheckConstraint(
            "status IN ('pending', 'accepted', 'rejected')",
            name="ck_connection_requests_status",
        ),
    )
    op.create_index("ix_connection_requests_business_id", "connection_requests", ["business_id"], unique=False)
    op.create_index("ix_connection_requests_requester_id", "connection_requests", ["requester_id"], unique=False)
    op.create_index(
        "ix_connection_requests_business_owner_id", "connection_requests", ["business_owner_id"], unique=False
    )
    op.create_index(
        "ix_connection_requests_owner_status",
        "connection_requests",
        ["business_owner_id", "status"],
        unique=False,
    )

    op.create_table(
        "chat_rooms",
        _uuid_pk(),
        sa.Column("business_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("member_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("connection_request_id", postgresql.UUID(as_uuid=True), nullable=True),
        _created_at(),
        sa.Column("last_message_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["business_id"], ["businesses.id"]),
        sa.ForeignKeyConstraint(["owner_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["member_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["connection_request_id"], ["connection_requests.id"]),
        sa.UniqueConstraint("business_id", "member_id", name="uq_chat_rooms_business_member"),
    )
    op.create_index("ix_chat_rooms_business_id", "chat_rooms", ["business_id"], unique=False)
    op.create_index("ix_chat_rooms_owner_id", "chat_rooms", ["owner_id"], unique=False)
    op.create_index("ix_chat_rooms_member_id", "chat_rooms", ["member_id"], unique=False)

    op.create_table(
        "chat_messages",
        _uuid_pk(),
        sa.Column("room_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("sender_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("type", sa.String(16), server_default="text", nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["room_id"], ["chat_rooms.id"]),
        sa.ForeignKeyConstraint(["sender_id"], ["users.id"]),
    )
    op.create_index("ix_chat_messages_room_id", "chat_messages", ["room_id"], unique=False)
    op.create_index("ix_chat_messages_room_created", "chat_messages", ["room_id", "created_at"], unique=False)

    op.create_table(
        "notifications",
        _uuid_pk(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("type", sa.String(64), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("data", postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column("read", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("emailed", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"], unique=False)
    op.create_index("ix_notifications_user_created", "notifications", ["user_id", "created_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_notifications_user_created", table_name="notifications")
    op.drop_index("ix_notifications_user_id", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_chat_messages_room_created", table_name="chat_messages")
    op.drop_index("ix_chat_messages_room_id", table_name="chat_messages")
    op.drop_table("chat_messages")
    op.drop_index("ix_chat_rooms_member_id", table_name="chat_rooms")
    op.drop_index("ix_chat_rooms_owner_id", table_name="chat_rooms")
    op.drop_index("ix_chat_rooms_business_id", table_name="chat_rooms")
    op.drop_table("chat_rooms")
    op.drop_index("ix_connection_requests_owner_status", table_name="connection_requests")
    op.drop_index("ix_connection_requests_business_owner_id", table_name="connection_requests")
    op.drop_index("ix_connection_requests_requester_id", table_name="connection_requests")
    op.drop_index("ix_connection_requests_business_id", table_name="connection_requests")
    op.drop_table("connection_requests")
    op.drop_index("ix_businesses_name", table_name="businesses")
    op.drop_index("ix_businesses_owner_id", table_name="businesses")
    op.drop_table("businesses")
    op.drop_table("users")
