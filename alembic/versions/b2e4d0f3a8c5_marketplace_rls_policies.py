"""marketplace: RLS policies for authenticated clients

Revision ID: b2e4d0f3a8c5
Revises: a1f3c9d2e7b4
Create Date: 2026-10-19

Enables RLS on the connection-request, chat and notification tables so a
client holding a Supabase JWT (anon key + JWT) only sees its own rows:
requests it sent or received, rooms it participates in and their messages,
and notifications addressed to it. The API connects with the service role and
is not affected.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "b2e4d0f3a8c5"
down_revision: Union[str, None] = "a1f3c9d2e7b4"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# users.id of the caller, resolved from the JWT sub
CURRENT_USER = "(SELECT u.id FROM public.users u WHERE u.external_auth_uid = auth.uid())"

# (table, policy name, statement)
POLICIES = (
    (
        "connection_requests",
        "connection_requests_select_party",
        f"""
        CREATE POLICY connection_requests_select_party
        ON public.connection_requests
        FOR SELECT
        TO authenticated
        USING (requester_id = {CURRENT_USER} OR business_owner_id = {CURRENT_USER})
        """,
    ),
    (
        "connection_requests",
        "connection_requests_insert_requester",
        f"""
        CREATE POLICY connection_requests_insert_requester
        ON public.connection_requests
        FOR INSERT
        TO authenticated
        WITH CHECK (requester_id = {CURRENT_USER} AND business_owner_id <> requester_id)
        """,
    ),
    (
        "chat_rooms",
        "chat_rooms_select_participant",
        f"""
        CREATE POLICY chat_rooms_select_participant
        ON public.chat_rooms
        FOR SELECT
        TO authenticated
        USING (owner_id = {CURRENT_USER} OR member_id = {CURRENT_USER})
        """,
    ),
    (
        "chat_messages",
        "chat_messages_select_participant",
        f"""
        CREATE POLICY chat_messages_select_participant
        ON public.chat_messages
        FOR SELECT
        TO authenticated
        USING (EXISTS (
            SELECT 1 FROM public.chat_rooms r
            WHERE r.id = chat_messages.room_id
              AND (r.owner_id = {CURRENT_USER} OR r.member_id = {CURRENT_USER})
        ))
        """,
    ),
    (
        "chat_messages",
        "chat_messages_insert_participant",
        f"""
        CREATE POLICY chat_messages_insert_participant
        ON public.chat_messages
        FOR INSERT
        TO authenticated
        WITH CHECK (
            sender_id = {CURRENT_USER}
            AND EXISTS (
                SELECT 1 FROM public.chat_rooms r
                WHERE r.id = chat_messages.room_id
                  AND (r.owner_id = sender_id OR r.member_id = sender_id)
            )
        )
        """,
    ),
    (
        "notifications",
        "notifications_select_own",
        f"""
        CREATE POLICY notifications_select_own
        ON public.notifications
        FOR SELECT
        TO authenticated
        USING (user_id = {CURRENT_USER})
        """,
    ),
    (
        "notifications",
        "notifications_update_own",
        f"""
        CREATE POLICY notifications_update_own
        ON public.notifications
        FOR UPDATE
        TO authenticated
        USING (user_id = {CURRENT_USER})
        WITH CHECK (user_id = {CURRENT_USER})
        """,
    ),
    (
        "notifications",
        "notifications_delete_own",
        f"""
        CREATE POLICY notifications_delete_own
        ON public.notifications
        FOR DELETE
        TO authenticated
        USING (user_id = {CURRENT_USER})
        """,
    ),
)

TABLES = ("connection_requests", "chat_rooms", "chat_messages", "notifications")


def upgrade() -> None:
    conn = op.get_bind()
    for table in TABLES:
        conn.execute(sa.text(f"ALTER TABLE public.{table} ENABLE ROW LEVEL SECURITY"))
    # Drop our policies if they exist so we can re-run safely.
    for table, name, _ in POLICIES:
        conn.execute(sa.text(f'DROP POLICY IF EXISTS "{name}" ON public.{table}'))
    for _, _, statement in POLICIES:
        conn.execute(sa.text(statement))


def downgrade() -> None:
    conn = op.get_bind()
    for table, name, _ in POLICIES:
        conn.execute(sa.text(f'DROP POLICY IF EXISTS "{name}" ON public.{table}'))
    # Do not disable RLS; other systems may rely on it.
