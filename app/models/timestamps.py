from datetime import datetime, timezone


def utcnow() -> datetime:
    """Client-side creation time; microsecond precision keeps per-room ordering stable on SQLite."""
    return datetime.now(timezone.utc)


def as_aware(value: datetime | None) -> datetime | None:
    """SQLite returns naive datetimes; treat them as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
