"""Feed the realtime bus from SQLAlchemy unit-of-work events.

Changes are collected after each flush and published only once the
transaction commits; a rollback of the outer transaction drops them.
Bulk UPDATE/DELETE statements bypass the unit of work, so callers that use
them stage the change explicitly with stage_change().
"""

import logging

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from app.realtime.bus import DELETE, INSERT, UPDATE, RowChange, bus

logger = logging.getLogger(__name__)

WATCHED_TABLES = frozenset({"connection_requests", "chat_rooms", "chat_messages", "notifications"})
_PENDING_KEY = "realtime_pending_changes"


def row_snapshot(obj) -> dict:
    """Column values currently loaded on an ORM instance (never triggers a lazy load)."""
    state = inspect(obj)
    loaded = state.dict
    row = {attr.key: loaded.get(attr.key) for attr in state.mapper.column_attrs}
    if state.identity:
        for col, value in zip(state.mapper.primary_key, state.identity):
            row.setdefault(col.key, value)
            if row[col.key] is None:
                row[col.key] = value
    return row


def stage_change(session: Session, change: RowChange) -> None:
    session.info.setdefault(_PENDING_KEY, []).append(change)


def _table_of(obj) -> str | None:
    table = getattr(obj, "__tablename__", None)
    return table if table in WATCHED_TABLES else None


@event.listens_for(Session, "after_flush")
def _collect_changes(session, flush_context):
    for obj in session.new:
        table = _table_of(obj)
        if table:
            stage_change(session, RowChange(table, INSERT, row_snapshot(obj)))
    for obj in session.dirty:
        table = _table_of(obj)
        if table and session.is_modified(obj, include_collections=False):
            stage_change(session, RowChange(table, UPDATE, row_snapshot(obj)))
    for obj in session.deleted:
        table = _table_of(obj)
        if table:
            stage_change(session, RowChange(table, DELETE, row_snapshot(obj)))


@event.listens_for(Session, "after_commit")
def _publish_changes(session):
    changes = session.info.pop(_PENDING_KEY, [])
    if changes:
        logger.debug("Publishing %d realtime change(s)", len(changes))
        bus.publish(changes)


@event.listens_for(Session, "after_soft_rollback")
def _drop_changes(session, previous_transaction):
    if previous_transaction.nested:
        return
    dropped = session.info.pop(_PENDING_KEY, [])
    if dropped:
        logger.debug("Dropped %d realtime change(s) on rollback", len(dropped))
