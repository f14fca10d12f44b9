from datetime import datetime, date, timezone as dt_timezone, tzinfo
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from medibot.core.config import settings


def get_zoneinfo(tz_name: Optional[str] = None) -> Optional[tzinfo]:
    """
    Resolve a timezone by IANA name, falling back to settings.DEFAULT_TIMEZONE.
    Returns None when neither resolves, meaning "process-local time".
    """
    for name in (tz_name, settings.DEFAULT_TIMEZONE):
        if not name:
            continue
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            continue
    return None


def is_valid_timezone(tz_name: str) -> bool:
    try:
        ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def now_in(tz: Optional[tzinfo] = None) -> datetime:
    """Aware 'now' in the given zone, or in the process-local zone when tz is None."""
    if tz is None:
        return datetime.now().astimezone()
    return datetime.now(tz)


def to_utc_aware(dt: datetime | None) -> datetime | None:
    """
    Normalize any datetime to UTC-aware (tzinfo=UTC).
    - Aware datetimes are converted to UTC
    - Naive datetimes are assumed UTC and tz attached
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=dt_timezone.utc)
    return dt.astimezone(dt_timezone.utc)


def normalize_timestamp(value: Any) -> Optional[datetime]:
    """
    Collapse the timestamp shapes found in stored documents into a UTC-aware datetime.

    Accepts datetimes (including Firestore DatetimeWithNanoseconds), dates,
    ISO-8601 strings (with or without a trailing Z), epoch seconds or
    milliseconds, and serialized Timestamp maps ({"seconds", "nanoseconds"}
    or {"_seconds", "_nanoseconds"}). Anything else yields None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return to_utc_aware(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=dt_timezone.utc)
    if isinstance(value, (int, float)):
        # Values this large can only be milliseconds
        seconds = value / 1000.0 if abs(value) >= 1e11 else float(value)
        return datetime.fromtimestamp(seconds, tz=dt_timezone.utc)
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        try:
            return to_utc_aware(datetime.fromisoformat(raw.replace("Z", "+00:00")))
        except ValueError:
            return None
    if isinstance(value, dict):
        seconds = value.get("seconds", value.get("_seconds"))
        nanos = value.get("nanoseconds", value.get("_nanoseconds", 0)) or 0
        if isinstance(seconds, (int, float)):
            return datetime.fromtimestamp(seconds + nanos / 1e9, tz=dt_timezone.utc)
        return None
    return None


def parse_date(value: Any) -> Optional[date]:
    """Parse a calendar date stored as 'YYYY-MM-DD' (or any timestamp shape)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    normalized = normalize_timestamp(value)
    return normalized.date() if normalized else None
