# time helpers: timestamps are stored as utc iso strings, calendar days are
# evaluated in the reference timezone

from datetime import datetime, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo

from journey.config import settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(dt: datetime) -> str:
    """serialize an aware datetime the way documents store it"""
    return dt.astimezone(timezone.utc).isoformat()


def parse_timestamp(value: Any) -> Optional[datetime]:
    """parse a stored timestamp (iso string or datetime) into an aware utc datetime.
    returns none for missing or unparseable values."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if dt.tzinfo is None:
        # motor hands back naive utc datetimes
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def reference_timezone(name: Optional[str] = None) -> ZoneInfo:
    return ZoneInfo(name or settings.REFERENCE_TIMEZONE)
