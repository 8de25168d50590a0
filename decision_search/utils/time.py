"""UTC datetime utilities.

All timestamps in this package are timezone-aware UTC. SQLite hands
``DateTime(timezone=True)`` columns back as naive values, so anything read
from the database goes through :func:`ensure_utc` before it is compared.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Return the current UTC time as an aware datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
