from __future__ import annotations

import calendar
import time
from datetime import datetime, timezone
from typing import Any

from dateutil import parser


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime_utc(value: Any) -> datetime | None:
    """Coerce API strings, feedparser tuples and datetimes to aware UTC.

    Anything unparseable, and the zero timestamp some APIs use for
    "unknown", becomes ``None``.
    """
    if isinstance(value, datetime):
        return to_utc(value)
    if isinstance(value, time.struct_time):
        return datetime.fromtimestamp(calendar.timegm(value), tz=timezone.utc)
    if isinstance(value, str):
        return _parse_text(value)
    return None


def _parse_text(value: str) -> datetime | None:
    text = value.strip()
    if not text:
        return None
    try:
        parsed = to_utc(parser.parse(text))
    except (ValueError, TypeError, OverflowError):
        return None
    # "0001-01-01T00:00:00Z"
    if parsed.year <= 1:
        return None
    return parsed


def format_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return to_utc(value).isoformat()


def format_datetime(value: datetime | None) -> str:
    if value is None:
        return "unknown"
    return to_utc(value).strftime("%Y-%m-%d %H:%M UTC")
