from app.realtime import store_events  # noqa: F401  registers commit hooks
from app.realtime.bus import RealtimeBus, RowChange, Subscription, bus

__all__ = ["RealtimeBus", "RowChange", "Subscription", "bus"]
