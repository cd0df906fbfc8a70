"""
Calendar helpers for the Team Console core.

Days are ISO ``YYYY-MM-DD`` strings and months ``YYYY-MM`` strings, both in
the viewer's local calendar. Conversion to ``date`` objects happens only at
the edges; stores and windows keep the string form so that keys sort
chronologically.
"""
import re
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import InvalidArgument

_DAY_RE = re.compile(r'^\d{4}-\d{2}-\d{2}$')
_MONTH_RE = re.compile(r'^\d{4}-\d{2}$')


def parse_day(value) -> date:
    """Parse an ISO day string (or pass a ``date`` through)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not _DAY_RE.match(value):
        raise InvalidArgument(f"Invalid date {value!r}, expected YYYY-MM-DD")
    try:
        return datetime.strptime(value, '%Y-%m-%d').date()
    except ValueError:
        raise InvalidArgument(f"Invalid date {value!r}, expected YYYY-MM-DD")


def normalize_day(value) -> str:
    return parse_day(value).isoformat()


def parse_month(value) -> tuple:
    """Parse ``YYYY-MM`` into ``(year, month)``."""
    if isinstance(value, date):
        return value.year, value.month
    if not isinstance(value, str) or not _MONTH_RE.match(value):
        raise InvalidArgument(f"Invalid month {value!r}, expected YYYY-MM")
    year, month = int(value[:4]), int(value[5:7])
    if not 1 <= month <= 12:
        raise InvalidArgument(f"Invalid month {value!r}, expected YYYY-MM")
    return year, month


def normalize_month(value) -> str:
    year, month = parse_month(value)
    return f"{year:04d}-{month:02d}"


def month_of(day) -> str:
    d = parse_day(day)
    return f"{d.year:04d}-{d.month:02d}"


def add_months(month: str, delta: int) -> str:
    """Shift a ``YYYY-MM`` month by ``delta`` months (negative goes back)."""
    year, mon = parse_month(month)
    index = year * 12 + (mon - 1) + delta
    return f"{index // 12:04d}-{index % 12 + 1:02d}"


def add_days(day, delta: int) -> str:
    return (parse_day(day) + timedelta(days=delta)).isoformat()


def week_start(day) -> str:
    """Monday of the week containing ``day``."""
    d = parse_day(day)
    return (d - timedelta(days=d.weekday())).isoformat()


def resolve_tz(name: Optional[str]) -> Optional[tzinfo]:
    """Resolve a zone name; ``None``/``""``/``local`` mean the system zone."""
    if not name or name.strip().lower() in ('local', 'system'):
        return None
    if name.strip().upper() in ('UTC', 'Z', 'GMT'):
        return timezone.utc
    try:
        return ZoneInfo(name.strip())
    except (ZoneInfoNotFoundError, ValueError):
        raise InvalidArgument(f"Unknown time zone {name!r}")


def local_today(tz_name: Optional[str] = None) -> date:
    """Today in the viewer's local calendar, never the UTC date."""
    tz = resolve_tz(tz_name)
    if tz is None:
        return datetime.now().astimezone().date()
    return datetime.now(tz).date()


def current_month(today: Optional[date] = None, tz_name: Optional[str] = None) -> str:
    d = today or local_today(tz_name)
    return f"{d.year:04d}-{d.month:02d}"
