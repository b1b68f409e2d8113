"""Timezone helpers; SQLite hands back naive datetimes that are UTC by convention."""

from datetime import UTC, datetime, timedelta
from typing import Optional


def utc_now() -> datetime:
    """Return current UTC time with timezone info attached."""
    return datetime.now(UTC)


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes, leave aware ones untouched."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def seconds_from_now(seconds: float, now: Optional[datetime] = None) -> datetime:
    return (now or utc_now()) + timedelta(seconds=seconds)
