"""Incrementally maintained notification feed.

chat_message notifications are collapsed into one group per (sender_id, room_id);
every other type is listed individually. The index is updated per event
(add / remove / mark) instead of being rebuilt from the flat list, and keeps the
recipient's unread counter in step with it.

Invariant: the member counts of all groups add up to the number of chat_message
notifications held, since each id lives in exactly one place.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Optional

from app.models.timestamps import as_aware
from app.schemas.notification import CHAT_MESSAGE

GroupKey = tuple[Optional[str], Optional[str]]


def _str_or_none(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _coerce_datetime(value: Any) -> datetime:
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return as_aware(value)


@dataclass
class FeedEntry:
    """A notification as held by the feed; built from an ORM row or a realtime row dict."""

    id: str
    user_id: Optional[str]
    type: str
    title: str
    message: str
    data: dict
    read: bool
    emailed: bool
    created_at: datetime

    @classmethod
    def from_row(cls, row: Any) -> "FeedEntry":
        get = row.get if isinstance(row, dict) else (lambda key, default=None: getattr(row, key, default))
        return cls(
            id=str(get("id")),
            user_id=_str_or_none(get("user_id")),
            type=get("type") or "",
            title=get("title") or "",
            message=get("message") or "",
            data=dict(get("data") or {}),
            read=bool(get("read", False)),
            emailed=bool(get("emailed", False)),
            created_at=_coerce_datetime(get("created_at")),
        )

    @property
    def is_chat(self) -> bool:
        return self.type == CHAT_MESSAGE

    @property
    def group_key(self) -> GroupKey:
        return (_str_or_none(self.data.get("sender_id")), _str_or_none(self.data.get("room_id")))

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "data": self.data,
            "read": self.read,
            "emailed": self.emailed,
            "created_at": self.created_at,
        }


@dataclass
class NotificationGroup:
    sender_id: Optional[str]
    room_id: Optional[str]
    members: dict[str, FeedEntry] = field(default_factory=dict)
    latest: Optional[FeedEntry] = None
    unread_count: int = 0

    @property
    def count(self) -> int:
        return len(self.members)

    @property
    def notification_ids(self) -> list[str]:
        return [e.id for e in sorted(self.members.values(), key=lambda e: e.created_at, reverse=True)]

    def _add(self, entry: FeedEntry) -> None:
        self.members[entry.id] = entry
        if self.latest is None or entry.created_at >= self.latest.created_at:
            self.latest = entry
        if not entry.read:
            self.unread_count += 1

    def _remove(self, entry_id: str) -> FeedEntry:
        entry = self.members.pop(entry_id)
        if not entry.read:
            self.unread_count -= 1
        if self.latest is not None and self.latest.id == entry_id:
            self.latest = max(self.members.values(), key=lambda e: e.created_at, default=None)
        return entry


class NotificationIndex:
    """Grouped feed for one recipient."""

    def __init__(self, entries: Iterable[Any] = ()):
        self._groups: dict[GroupKey, NotificationGroup] = {}
        self._items: dict[str, FeedEntry] = {}
        # notification id -> group key, or None for ungrouped items
        self._locations: dict[str, Optional[GroupKey]] = {}
        self.unread_count = 0
        for entry in entries:
            self.add(entry)

    def __contains__(self, notification_id: Any) -> bool:
        return str(notification_id) in self._locations

    def __len__(self) -> int:
        return len(self._locations)

    def get(self, notification_id: Any) -> Optional[FeedEntry]:
        key = str(notification_id)
        if key not in self._locations:
            return None
        location = self._locations[key]
        if location is None:
            return self._items[key]
        return self._groups[location].members[key]

    def add(self, row: Any) -> int:
        """
        Insert a notification, or apply it as an update when the id is already held.

        Returns:
            Change to the unread counter (+1 for a new unread row).
        """
        entry = row if isinstance(row, FeedEntry) else FeedEntry.from_row(row)
        if entry.id in self._locations:
            return self.update(entry)

        if entry.is_chat:
            key = entry.group_key
            group = self._groups.get(key)
            if group is None:
                group = self._groups[key] = NotificationGroup(sender_id=key[0], room_id=key[1])
            group._add(entry)
            self._locations[entry.id] = key
        else:
            self._items[entry.id] = entry
            self._locations[entry.id] = None

        delta = 0 if entry.read else 1
        self.unread_count += delta
        return delta

    def update(self, row: Any) -> int:
        """Replace a held notification (e.g. read toggled elsewhere). Unknown ids are added."""
        entry = row if isinstance(row, FeedEntry) else FeedEntry.from_row(row)
        if entry.id not in self._locations:
            return self.add(entry)
        before = self.unread_count
        self.remove(entry.id)
        self.add(entry)
        return self.unread_count - before

    def remove(self, notification_id: Any) -> Optional[FeedEntry]:
        key = str(notification_id)
        if key not in self._locations:
            return None
        location = self._locations.pop(key)
        if location is None:
            entry = self._items.pop(key)
        else:
            group = self._groups[location]
            entry = group._remove(key)
            if not group.members:
                del self._groups[location]
        if not entry.read:
            self.unread_count -= 1
        return entry

    def mark(self, notification_id: Any, read: bool) -> int:
        """Toggle read on one row; returns the unread delta (-1, 0 or +1)."""
        entry = self.get(notification_id)
        if entry is None or entry.read == read:
            return 0
        location = self._locations[entry.id]
        entry.read = read
        delta = -1 if read else 1
        if location is not None:
            self._groups[location].unread_count += delta
        self.unread_count += delta
        return delta

    def group(self, sender_id: Any, room_id: Any) -> Optional[NotificationGroup]:
        return self._groups.get((_str_or_none(sender_id), _str_or_none(room_id)))

    def remove_group(self, sender_id: Any, room_id: Any) -> list[FeedEntry]:
        group = self.group(sender_id, room_id)
        if group is None:
            return []
        return [self.remove(entry_id) for entry_id in list(group.members)]

    def groups(self) -> list[NotificationGroup]:
        """Chat groups, newest representative first."""
        return sorted(self._groups.values(), key=lambda g: g.latest.created_at, reverse=True)

    def items(self) -> list[FeedEntry]:
        """Non-chat notifications, newest first."""
        return sorted(self._items.values(), key=lambda e: e.created_at, reverse=True)

    def chat_count(self) -> int:
        return sum(g.count for g in self._groups.values())
