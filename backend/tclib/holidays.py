"""
Holiday overlay: a read-only calendar of named dates.

Civil holidays recur every year on the stored month/day; all others match
their exact date only. The overlay decorates the planning grid and never
implies or overrides an assignment.
"""
import logging
from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence

from .dates import normalize_day, parse_day
from .errors import InvalidConfig
from .models import Holiday

_logger = logging.getLogger(__name__)


def matches(holiday: Holiday, day: str) -> bool:
    if holiday.recurring:
        return holiday.date[5:10] == day[5:10]
    return holiday.date == day


def is_holiday(day, holidays: Sequence[Holiday], strict: bool = False) -> Optional[Holiday]:
    """First configured holiday matching ``day``, or None.

    With ``strict=True`` a date matched by several holidays raises
    InvalidConfig instead of silently picking the first.
    """
    iso = normalize_day(day)
    found = [h for h in holidays if matches(h, iso)]
    if not found:
        return None
    if len(found) > 1:
        if strict:
            raise InvalidConfig(
                f"{iso} matches {len(found)} holidays: " + ", ".join(h.name for h in found)
            )
        _logger.debug("%s matches %d holidays, using %r", iso, len(found), found[0].name)
    return found[0]


def holidays_in_year(year: int, holidays: Iterable[Holiday]) -> List[Dict]:
    """Expand civil holidays into ``year``; keep fixed ones dated in ``year``."""
    result = []
    year_str = f"{year:04d}"
    for h in holidays:
        if h.recurring:
            try:
                adjusted = date(year, int(h.date[5:7]), int(h.date[8:10])).isoformat()
            except ValueError:
                # Feb 29 civil holiday in a non-leap year
                continue
            result.append({**h.to_dict(), 'date': adjusted, 'recurring': True})
        elif h.date.startswith(year_str):
            result.append({**h.to_dict(), 'recurring': False})
    result.sort(key=lambda x: x['date'])
    return result


def overlay(days: Iterable[str], holidays: Sequence[Holiday]) -> Dict[str, Optional[Dict]]:
    """``{day: holiday dict or None}`` for a window of days."""
    out = {}
    for d in days:
        h = is_holiday(d, holidays)
        out[d] = h.to_dict() if h else None
    return out


def upcoming(today, holidays: Sequence[Holiday], limit: int = 3) -> List[Dict]:
    """Next ``limit`` holiday occurrences on or after ``today``."""
    start = parse_day(today)
    candidates = holidays_in_year(start.year, holidays) + holidays_in_year(start.year + 1, holidays)
    iso = start.isoformat()
    future = [c for c in candidates if c['date'] >= iso]
    future.sort(key=lambda x: x['date'])
    return future[:limit]


def find_ambiguous(holidays: Sequence[Holiday]) -> Dict[str, List[str]]:
    """Month/day keys claimed by more than one holiday.

    Fixed holidays are keyed by full date, civil ones by ``MM-DD``; a fixed
    holiday falling on a civil holiday's month/day is reported under the
    fixed date.
    """
    by_key: Dict[str, List[str]] = defaultdict(list)
    civil = [h for h in holidays if h.recurring]
    for h in civil:
        by_key[h.date[5:10]].append(h.name)
    for h in holidays:
        if h.recurring:
            continue
        names = [c.name for c in civil if c.date[5:10] == h.date[5:10]]
        by_key[h.date].extend(names + [h.name])
    return {k: v for k, v in by_key.items() if len(v) > 1}
