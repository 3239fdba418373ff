from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

_logger = logging.getLogger(__name__)


def now_utc() -> datetime:
    """Return the current time as an aware UTC datetime."""

    return datetime.now(tz=timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Convert a datetime to UTC, assuming naive values are already in UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_iso_to_utc(value: str) -> datetime:
    """Parse an ISO 8601 string and normalize it to UTC."""

    candidate = value.strip()
    if not candidate:
        raise ValueError("Empty datetime string")
    normalized = candidate.replace("Z", "+00:00")
    parsed = datetime.fromisoformat(normalized)
    return ensure_utc(parsed)


def elapsed_ms(start: datetime, end: datetime) -> int:
    return int((ensure_utc(end) - ensure_utc(start)) / timedelta(milliseconds=1))


def resolve_zone(name: str | None) -> ZoneInfo | timezone:
    """Look up an IANA zone, degrading to UTC for unknown names."""

    if not name:
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        _logger.warning("Unknown timezone %r, falling back to UTC", name)
        return timezone.utc


def local_hour(name: str | None, instant: datetime) -> int:
    return ensure_utc(instant).astimezone(resolve_zone(name)).hour


def local_date(name: str | None, instant: datetime) -> date:
    return ensure_utc(instant).astimezone(resolve_zone(name)).date()


def date_key(value: date) -> str:
    return value.isoformat()


def month_key(value: date) -> str:
    return f"{value.year}-{value.month:02d}"
