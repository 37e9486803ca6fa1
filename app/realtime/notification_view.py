"""Client-side notification panel state kept current from the realtime bus."""

import logging
import threading
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.models.user import User
from app.realtime.bus import DELETE, INSERT, UPDATE, RealtimeBus, RowChange, Subscription, bus as default_bus
from app.services import notifications
from app.services.notification_feed import NotificationIndex

logger = logging.getLogger(__name__)


class NotificationFeedView:
    """
    Grouped notification feed for one recipient.

    The baseline comes from notifications.feed(); afterwards inserts, updates and
    deletes for the recipient are merged into the index without refetching.
    """

    def __init__(self, db: Session, principal: User, realtime: Optional[RealtimeBus] = None):
        self.db = db
        self.principal = principal
        self.index = NotificationIndex()
        self._realtime = realtime or default_bus
        self._subscription: Optional[Subscription] = None
        self._buffer: Optional[list[RowChange]] = None
        self._lock = threading.Lock()

    @property
    def unread_count(self) -> int:
        return self.index.unread_count

    def open(self) -> "NotificationFeedView":
        if self._subscription is not None:
            raise RuntimeError("Notification view is already open")
        with self._lock:
            self._buffer = []
        self._subscription = self._realtime.subscribe(
            "notifications",
            self._on_change,
            filters={"user_id": self.principal.id},
            events=(INSERT, UPDATE, DELETE),
            channel=f"notifications:{self.principal.id}",
        )
        try:
            baseline = notifications.feed(self.db, self.principal)
        except Exception:
            self.close()
            raise
        with self._lock:
            self.index = baseline
            buffered, self._buffer = self._buffer, None
            for change in buffered:
                self._apply(change)
        return self

    def _on_change(self, change: RowChange) -> None:
        with self._lock:
            if self._buffer is not None:
                self._buffer.append(change)
                return
            self._apply(change)

    def _apply(self, change: RowChange) -> None:
        if change.operation == DELETE:
            self.index.remove(change.row.get("id"))
        elif change.operation == UPDATE:
            self.index.update(change.row)
        else:
            self.index.add(change.row)

    def mark_read(self, notification_id: UUID, read: bool = True) -> int:
        """Toggle one notification; returns the unread delta applied to the counter."""
        delta = notifications.mark_read(self.db, self.principal, notification_id, read)
        with self._lock:
            self.index.mark(notification_id, read)
        return delta

    def mark_room_read(self, room_id: UUID) -> int:
        return notifications.mark_room_read(self.db, self.principal, room_id)

    def delete(self, notification_id: UUID) -> None:
        notifications.delete(self.db, self.principal, notification_id)
        with self._lock:
            self.index.remove(notification_id)

    def delete_group(self, sender_id: UUID, room_id: UUID) -> int:
        deleted = notifications.delete_group(self.db, self.principal, sender_id, room_id)
        with self._lock:
            self.index.remove_group(sender_id, room_id)
        return deleted

    def close(self) -> None:
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            subscription.close()

    def __enter__(self) -> "NotificationFeedView":
        if self._subscription is None:
            self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
