from __future__ import annotations

import re
from datetime import UTC, datetime
from zoneinfo import ZoneInfo

COMPACT_TIME_PATTERN = re.compile(r"(\d{4})(\d{2})(\d{2})-(\d{2})(\d{2})", re.ASCII)


def parse_compact_time(value: str, fallback: datetime, tz: ZoneInfo) -> datetime:
    """Parse ``YYYYMMDD-HHMM`` as local time in ``tz``.

    Anything that does not match, or that ``datetime`` rejects (month 13,
    hour 24, ...), yields ``fallback`` unchanged.
    """
    match = COMPACT_TIME_PATTERN.fullmatch(value or "")
    if not match:
        return fallback
    year, month, day, hour, minute = (int(part) for part in match.groups())
    try:
        return datetime(year, month, day, hour, minute, 0, tzinfo=tz)
    except ValueError:
        return fallback


def format_utc(value: datetime) -> str:
    utc = value.astimezone(UTC)
    return (
        f"{utc.year:04d}{utc.month:02d}{utc.day:02d}"
        f"T{utc.hour:02d}{utc.minute:02d}{utc.second:02d}Z"
    )
