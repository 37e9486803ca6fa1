"""In-process realtime bus delivering row-change events to subscribers.

Subscriptions are explicit handles: whoever opens one owns it and must call
close() (or use it as a context manager). Delivery is serialized across the
bus, so each subscription sees events in the order transactions committed.
Opening a subscription under a channel name that is still live closes the old
one first, so a logical channel never has two live subscriptions.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional

logger = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"
ALL_EVENTS = (INSERT, UPDATE, DELETE)


@dataclass(frozen=True)
class RowChange:
    """One committed row change: table name, operation and the row's column values."""

    table: str
    operation: str
    row: dict = field(default_factory=dict)


def _normalize(value: Any) -> str | None:
    return None if value is None else str(value)


class Subscription:
    """Live subscription to one table, filtered by column equality."""

    def __init__(
        self,
        bus: "RealtimeBus",
        table: str,
        filters: dict[str, Any],
        events: Iterable[str],
        callback: Callable[[RowChange], None],
        channel: Optional[str] = None,
    ):
        self._bus = bus
        self.table = table
        self.filters = {k: _normalize(v) for k, v in (filters or {}).items()}
        self.events = frozenset(events)
        self.channel = channel
        self._callback = callback
        self._closed = False
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    def matches(self, change: RowChange) -> bool:
        if change.table != self.table or change.operation not in self.events:
            return False
        return all(_normalize(change.row.get(col)) == value for col, value in self.filters.items())

    def deliver(self, change: RowChange) -> None:
        with self._lock:
            if self._closed:
                return
        # Called without the lock held; the callback may close this subscription
        self._callback(change)

    def close(self) -> None:
        """Unsubscribe. Safe to call more than once; only the first call detaches."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._bus._detach(self)
        logger.debug("Realtime subscription closed: table=%s channel=%s", self.table, self.channel)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class RealtimeBus:
    """Publish/subscribe keyed by table + equality filter."""

    def __init__(self):
        self._lock = threading.RLock()
        self._publish_lock = threading.Lock()
        self._local = threading.local()
        self._subscriptions: list[Subscription] = []
        self._channels: dict[str, Subscription] = {}

    def subscribe(
        self,
        table: str,
        callback: Callable[[RowChange], None],
        filters: dict[str, Any] | None = None,
        events: Iterable[str] = (INSERT,),
        channel: Optional[str] = None,
    ) -> Subscription:
        """
        Open a subscription.

        Args:
            table: Table name to watch (e.g. "chat_messages").
            callback: Called with each matching RowChange, in commit order.
            filters: Column equality filter, e.g. {"room_id": room_id}.
            events: Operations to receive (INSERT, UPDATE, DELETE).
            channel: Optional logical channel name. A live subscription already
                holding the name is closed before the new one is registered.

        Returns:
            The Subscription handle; the caller owns it and must close it.
        """
        unknown = set(events) - set(ALL_EVENTS)
        if unknown:
            raise ValueError(f"Unknown realtime event types: {sorted(unknown)}")

        if channel is not None:
            with self._lock:
                previous = self._channels.get(channel)
            if previous is not None:
                logger.info("Replacing live realtime subscription on channel %s", channel)
                previous.close()

        subscription = Subscription(self, table, filters or {}, events, callback, channel)
        with self._lock:
            self._subscriptions.append(subscription)
            if channel is not None:
                self._channels[channel] = subscription
        logger.debug(
            "Realtime subscription opened: table=%s filters=%s channel=%s",
            table,
            subscription.filters,
            channel,
        )
        return subscription

    def _detach(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)
            if subscription.channel is not None and self._channels.get(subscription.channel) is subscription:
                del self._channels[subscription.channel]

    def close_all(self) -> int:
        """Close every live subscription (shutdown). Returns how many were closed."""
        with self._lock:
            live = list(self._subscriptions)
        for subscription in live:
            subscription.close()
        return len(live)

    def active_count(self, table: str | None = None) -> int:
        with self._lock:
            return sum(1 for s in self._subscriptions if table is None or s.table == table)

    def publish(self, changes: Iterable[RowChange]) -> None:
        """
        Deliver committed changes to every matching subscription.

        A callback that publishes again (e.g. it commits a session) does not
        re-enter delivery: its changes are queued and delivered after the
        current batch, on the same thread.
        """
        changes = list(changes)
        if not changes:
            return
        pending = getattr(self._local, "pending", None)
        if pending is not None:
            pending.extend(changes)
            return

        pending = self._local.pending = list(changes)
        try:
            with self._publish_lock:
                while pending:
                    self._deliver(pending.pop(0))
        finally:
            self._local.pending = None

    def _deliver(self, change: RowChange) -> None:
        with self._lock:
            targets = [s for s in self._subscriptions if s.matches(change)]
        for subscription in targets:
            try:
                subscription.deliver(change)
            except Exception:
                # One failing consumer must not block delivery to the others
                logger.exception(
                    "Realtime callback failed: table=%s operation=%s channel=%s",
                    change.table,
                    change.operation,
                    subscription.channel,
                )


bus = RealtimeBus()
