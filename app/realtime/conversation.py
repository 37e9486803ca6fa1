"""Client-side state for an open conversation.

Holds the ordered message view for one room, the unsent draft and the
scroll/unread state. Live rows from the bus are merged by message id, so
duplicate delivery and the echo of our own sends are harmless.
"""

import bisect
import logging
import threading
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.models.chat_message import MESSAGE_TEXT
from app.models.timestamps import as_aware
from app.models.user import User
from app.realtime.bus import RealtimeBus, Subscription
from app.services import message_channel

logger = logging.getLogger(__name__)

_FIELDS = ("id", "room_id", "sender_id", "content", "type", "created_at")


def _as_row(message: Any) -> dict:
    if isinstance(message, dict):
        row = {key: message.get(key) for key in _FIELDS}
    else:
        row = {key: getattr(message, key, None) for key in _FIELDS}
    row["created_at"] = as_aware(row["created_at"])
    return row


def _sort_key(row: dict) -> tuple:
    return (row["created_at"], str(row["id"]))


class ConversationView:
    """
    Ordered, de-duplicated view of one room for one participant.

    Unread contract: a message from the other participant increments
    unread_count while the viewer is not at the bottom; at the bottom it does
    not, and the view auto-scrolls instead (counted in autoscrolls).
    """

    def __init__(self, db: Session, principal: User, room_id: UUID, realtime: Optional[RealtimeBus] = None):
        self.db = db
        self.principal = principal
        self.room_id = room_id
        self.draft = ""
        self.at_bottom = True
        self.unread_count = 0
        self.autoscrolls = 0
        self._realtime = realtime
        self._rows: list[dict] = []
        self._keys: list[tuple] = []
        self._ids: set[str] = set()
        self._subscription: Optional[Subscription] = None
        self._buffer: Optional[list[dict]] = None
        self._lock = threading.Lock()

    @property
    def messages(self) -> list[dict]:
        with self._lock:
            return list(self._rows)

    @property
    def is_open(self) -> bool:
        return self._subscription is not None

    def open(self) -> "ConversationView":
        """
        Load history as the baseline, then layer live events on top.

        The subscription is opened first and buffers events while history loads,
        so nothing committed in between is lost; the replay is de-duplicated by id.
        """
        if self._subscription is not None:
            raise RuntimeError("Conversation view is already open")

        with self._lock:
            self._buffer = []
        self._subscription = message_channel.subscribe(
            self.room_id,
            self._on_row,
            realtime=self._realtime,
            channel=f"room:{self.room_id}:{self.principal.id}",
        )
        try:
            baseline = message_channel.history(self.db, self.principal, self.room_id)
        except Exception:
            self.close()
            raise

        with self._lock:
            for message in baseline:
                self._merge(_as_row(message), live=False)
            buffered, self._buffer = self._buffer, None
            for row in buffered:
                self._merge(row, live=True)
        logger.debug("Conversation opened: room=%s user=%s messages=%d", self.room_id, self.principal.id, len(self._rows))
        return self

    def _on_row(self, row: dict) -> None:
        row = _as_row(row)
        with self._lock:
            if self._buffer is not None:
                self._buffer.append(row)
                return
            self._merge(row, live=True)

    def _merge(self, row: dict, live: bool) -> bool:
        message_id = str(row["id"])
        if message_id in self._ids:
            return False
        key = _sort_key(row)
        position = bisect.bisect_right(self._keys, key)
        self._keys.insert(position, key)
        self._rows.insert(position, row)
        self._ids.add(message_id)

        if live:
            from_other = str(row["sender_id"]) != str(self.principal.id)
            if self.at_bottom:
                self.autoscrolls += 1
            elif from_other:
                self.unread_count += 1
        return True

    def set_at_bottom(self, at_bottom: bool) -> None:
        with self._lock:
            self.at_bottom = at_bottom
            if at_bottom:
                self.unread_count = 0

    def submit(self, message_type: str = MESSAGE_TEXT) -> Optional[dict]:
        """
        Send the current draft.

        The draft is cleared while sending and restored if the send fails, so
        the user's text is never lost. Blank drafts are ignored.
        """
        drafted = self.draft
        if not drafted.strip():
            return None
        self.draft = ""
        try:
            message = message_channel.send(self.db, self.principal, self.room_id, drafted, message_type)
        except Exception:
            self.draft = drafted
            logger.warning("Send failed; draft restored: room=%s user=%s", self.room_id, self.principal.id)
            raise

        row = _as_row(message)
        with self._lock:
            if self._merge(row, live=False):
                self.autoscrolls += 1
            self.at_bottom = True
            self.unread_count = 0
        return row

    def close(self) -> None:
        """Unsubscribe exactly once; later calls do nothing."""
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            subscription.close()
            logger.debug("Conversation closed: room=%s user=%s", self.room_id, self.principal.id)

    def __enter__(self) -> "ConversationView":
        if self._subscription is None:
            self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
