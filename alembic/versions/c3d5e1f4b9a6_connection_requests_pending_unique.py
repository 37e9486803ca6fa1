"""connection_requests: one pending request per business and requester

Revision ID: c3d5e1f4b9a6
Revises: b2e4d0f3a8c5
Create Date: 2026-10-19

Two concurrent create calls for the same pair could both pass the pending
check and insert. The partial unique index makes the second insert fail so
the API can return the request that won.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "c3d5e1f4b9a6"
down_revision: Union[str, None] = "b2e4d0f3a8c5"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_index(
        "uq_connection_requests_pending",
        "connection_requests",
        ["business_id", "requester_id"],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
    )


def downgrade() -> None:
    op.drop_index("uq_connection_requests_pending", table_name="connection_requests")
