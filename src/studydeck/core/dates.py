"""Calendar date keys without timezone drift.

A date key is the ``YYYY-MM-DD`` calendar date of an instant *as seen in the
user's local zone*. Splitting a UTC timestamp on ``T`` is wrong: an evening
deadline in Toronto is already the next day in UTC.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, tzinfo
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from studydeck.config.settings import settings


DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def local_zone() -> Optional[tzinfo]:
    """Configured local zone, or None for the host's zone."""
    name = settings.local_timezone.strip()
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError:
        return None


def parse_instant(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time(12, 0))
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None
    if DATE_ONLY_RE.match(text):
        try:
            return datetime.combine(date.fromisoformat(text), time(12, 0))
        except ValueError:
            return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def date_key(value: Any, tz: Optional[tzinfo] = None) -> Optional[str]:
    """Return the local calendar date of ``value`` as ``YYYY-MM-DD``.

    Accepts datetimes, dates and ISO-8601 strings. Aware instants are moved
    into ``tz`` (or the configured/host local zone) first; naive values are
    already local wall time. Anything unparsable gives None.
    """
    if isinstance(value, str) and DATE_ONLY_RE.match(value.strip()):
        try:
            return date.fromisoformat(value.strip()).isoformat()
        except ValueError:
            return None
    if isinstance(value, date) and not isinstance(value, datetime):
        return value.isoformat()

    instant = parse_instant(value)
    if instant is None:
        return None
    if instant.tzinfo is not None:
        zone = tz or local_zone()
        instant = instant.astimezone(zone) if zone is not None else instant.astimezone()
    return instant.date().isoformat()


def local_noon(key: str, tz: Optional[tzinfo] = None) -> datetime:
    """Noon on the given date key; noon keeps the day stable under any offset."""
    day = date.fromisoformat(key)
    return datetime.combine(day, time(12, 0), tzinfo=tz)


def days_remaining(key: str, today: Optional[date] = None) -> str:
    due = date.fromisoformat(key)
    today = today or date.today()
    diff = (due - today).days
    if diff < 0:
        return "Overdue"
    if diff == 0:
        return "Today"
    if diff == 1:
        return "Tomorrow"
    return f"In {diff} days"


def academic_week(key: str, term_start: date) -> int:
    """1-based teaching week of ``key``; 0 before the term starts."""
    target = date.fromisoformat(key)
    if target < term_start:
        return 0
    return (target - term_start).days // 7 + 1
