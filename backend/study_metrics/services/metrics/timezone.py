"""
Timezone Resolution for Local Calendar Days

Maps IANA zone names and instants to UTC offsets and local-day boundaries.
All local-day math is relative to the user's zone, never the server's.

Unknown or malformed zone names degrade to a fixed fallback offset
(settings.FALLBACK_UTC_OFFSET_MINUTES, UTC+9) instead of failing; use
is_valid_timezone() to detect and log the degradation.

Usage:
    from study_metrics.services.metrics.timezone import local_day_bounds_utc

    start, end = local_day_bounds_utc("2024-01-15", "Asia/Tokyo")
    # start = 2024-01-14T15:00Z, end = 2024-01-15T15:00Z
"""

import re
from collections.abc import Iterator
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from functools import lru_cache
from typing import Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from study_metrics.config import settings
from study_metrics.errors import ValidationError
from study_metrics.services.metrics.events import ensure_utc

DATE_PATTERN = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")

DateLike = Union[date, str]


@lru_cache(maxsize=256)
def _load_zone(zone: Optional[str]) -> Optional[ZoneInfo]:
    if not zone:
        return None
    try:
        return ZoneInfo(zone)
    except (ZoneInfoNotFoundError, ValueError, TypeError, OSError):
        return None


def is_valid_timezone(zone: Optional[str]) -> bool:
    """Return True if ``zone`` names a known IANA timezone."""
    return _load_zone(zone) is not None


def resolve_tzinfo(zone: Optional[str]) -> tzinfo:
    """
    Resolve a zone name to a tzinfo.

    Falls back to a fixed offset of settings.FALLBACK_UTC_OFFSET_MINUTES
    when the name is unknown.
    """
    resolved = _load_zone(zone)
    if resolved is not None:
        return resolved
    return timezone(timedelta(minutes=settings.FALLBACK_UTC_OFFSET_MINUTES))


def resolve_offset_minutes(zone: Optional[str], instant: datetime) -> int:
    """
    Get the UTC offset of ``zone`` at ``instant``, in minutes.

    The offset depends on the instant so DST transitions are respected.
    Positive values are east of UTC ("Asia/Tokyo" -> 540).

    Args:
        zone: IANA zone name.
        instant: Point in time; naive values are taken as UTC.

    Returns:
        Offset in minutes, or the fallback offset for an unknown zone.
    """
    local = ensure_utc(instant).astimezone(resolve_tzinfo(zone))
    offset = local.utcoffset() or timedelta(0)
    return int(offset.total_seconds() // 60)


def parse_date_string(value: str, field: str = "date") -> date:
    """
    Parse a strict "YYYY-MM-DD" string.

    Raises:
        ValidationError: If the format is wrong or the date does not exist.
    """
    if not isinstance(value, str) or not DATE_PATTERN.fullmatch(value):
        raise ValidationError(
            f"Invalid date format for '{field}'. Use YYYY-MM-DD",
            details={"constraint": "date_format", "field": field, "value": value},
        )
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise ValidationError(
            f"Invalid calendar date for '{field}': {value}",
            details={"constraint": "calendar_date", "field": field, "value": value},
        ) from e


def coerce_date(value: DateLike) -> date:
    if isinstance(value, date):
        return value
    return parse_date_string(value)


def local_day_bounds_utc(day: DateLike, zone: Optional[str]) -> tuple[datetime, datetime]:
    """
    Get the UTC instants bounding a local calendar day.

    Returns ``[start, end)``: local 00:00:00.000 of ``day`` and local
    midnight of the following day, both converted to UTC. Each midnight is
    resolved with the offset in force at that midnight, so a DST change
    yields a 23 or 25 hour day. Equivalent to
    ``UTC(y, m, d) - offset_minutes`` for fixed-offset zones, including
    non-whole-hour offsets.

    Args:
        day: Local calendar date (date or "YYYY-MM-DD").
        zone: IANA zone name.

    Returns:
        tuple[datetime, datetime]: Aware UTC start (inclusive) and end (exclusive).
    """
    local_date = coerce_date(day)
    tz = resolve_tzinfo(zone)
    start = datetime.combine(local_date, time.min, tzinfo=tz)
    end = datetime.combine(local_date + timedelta(days=1), time.min, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def instant_to_local_date_string(instant: datetime, offset_minutes: int) -> str:
    """
    Get the local "YYYY-MM-DD" of ``instant`` under a fixed offset.

    The offset must be the one in force at ``instant``; callers resolve
    it per instant with resolve_offset_minutes().
    """
    shifted = ensure_utc(instant) + timedelta(minutes=offset_minutes)
    return shifted.date().isoformat()


def local_date_for_instant(instant: datetime, zone: Optional[str]) -> str:
    """Get the local "YYYY-MM-DD" of ``instant`` in ``zone``."""
    return instant_to_local_date_string(instant, resolve_offset_minutes(zone, instant))


def local_today(zone: Optional[str], now: datetime) -> date:
    """Get the user's local calendar date at instant ``now``."""
    return ensure_utc(now).astimezone(resolve_tzinfo(zone)).date()


def iter_dates(start_day: date, end_day: date) -> Iterator[date]:
    """Yield every date from ``start_day`` to ``end_day`` inclusive."""
    current = start_day
    while current <= end_day:
        yield current
        current += timedelta(days=1)
