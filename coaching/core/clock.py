"""Injectable wall-clock. Window checks and periodic scans never call datetime.now directly."""

from datetime import datetime, timezone
from typing import Callable
from zoneinfo import ZoneInfo

from coaching.core.config import settings

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_clock() -> Clock:
    """FastAPI dependency; tests override it with a fixed clock."""
    return utcnow


def ensure_aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes for DateTime(timezone=True) columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def to_center_time(value: datetime) -> datetime:
    """Convert an instant to the center's local wall-clock time."""
    return ensure_aware(value).astimezone(ZoneInfo(settings.center_timezone))
