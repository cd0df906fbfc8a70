"""
Windowed navigation over calendar units.

Month windows back the bonus history pivot: they are anchored on the later
of "this month" and the newest month holding data, and page backwards in
steps of the window size until the earliest month holding data is visible.

Day windows back the planning grid: ``[start, start + N)``, paged by N days,
with no anchoring to data.
"""
import math
from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Optional, Sequence

from .dates import add_days, add_months, current_month, normalize_day, normalize_month, parse_month, week_start
from .errors import InvalidArgument

MONTH_WINDOW_SIZES = (3, 6, 9, 12)
DAY_WINDOW_SIZES = (7, 14, 30)


def _month_index(month: str) -> int:
    year, mon = parse_month(month)
    return year * 12 + (mon - 1)


def _check_size(size) -> int:
    if isinstance(size, bool) or not isinstance(size, int) or size < 1:
        raise InvalidArgument(f"Window size must be a positive integer, got {size!r}")
    return size


# ── Month grid ─────────────────────────────────────────────────

def month_anchor(today_month: str, record_months: Iterable[str] = ()) -> str:
    """max(current month, latest month present in records)."""
    months = [normalize_month(m) for m in record_months]
    anchor = normalize_month(today_month)
    if months and max(months) > anchor:
        anchor = max(months)
    return anchor


def earliest_month(today_month: str, record_months: Iterable[str] = ()) -> str:
    """Earliest month present in records; the current month when there are none."""
    months = [normalize_month(m) for m in record_months]
    return min(months) if months else normalize_month(today_month)


def compute_month_window(anchor: str, size: int, offset: int = 0) -> List[str]:
    """``size`` consecutive months ending at ``anchor - offset*size``, oldest first."""
    _check_size(size)
    if offset < 0:
        offset = 0
    newest = add_months(normalize_month(anchor), -offset * size)
    return [add_months(newest, -i) for i in range(size)][::-1]


def has_newer(offset: int) -> bool:
    return offset > 0


def has_older(window: Sequence[str], earliest: str) -> bool:
    return bool(window) and window[0] > normalize_month(earliest)


def max_month_offset(anchor: str, earliest: str, size: int) -> int:
    """Largest offset still reachable by paging older from offset 0."""
    _check_size(size)
    gap = _month_index(anchor) - _month_index(earliest) - size + 1
    return max(0, math.ceil(gap / size))


class MonthCursor:
    """Ephemeral paging state over a month axis.

    The cursor holds only (size, offset); anchor and earliest bound are
    recomputed from the record months it was given.
    """

    def __init__(self, record_months: Iterable[str] = (), size: int = 3, offset: int = 0,
                 today: Optional[date] = None, today_month: Optional[str] = None):
        self.today_month = normalize_month(today_month) if today_month else current_month(today)
        self.record_months = sorted({normalize_month(m) for m in record_months})
        self.size = _check_size(size)
        self.offset = 0
        self.offset = self._clamp(offset)

    @property
    def anchor(self) -> str:
        return month_anchor(self.today_month, self.record_months)

    @property
    def earliest(self) -> str:
        return earliest_month(self.today_month, self.record_months)

    def _clamp(self, offset: int) -> int:
        if offset is None or offset < 0:
            return 0
        return min(int(offset), max_month_offset(self.anchor, self.earliest, self.size))

    @property
    def months(self) -> List[str]:
        return compute_month_window(self.anchor, self.size, self.offset)

    def has_newer(self) -> bool:
        return has_newer(self.offset)

    def has_older(self) -> bool:
        return has_older(self.months, self.earliest)

    def page_older(self) -> bool:
        """Move one page back in time. Returns False (no-op) at the boundary."""
        if not self.has_older():
            return False
        self.offset += 1
        return True

    def page_newer(self) -> bool:
        if not self.has_newer():
            return False
        self.offset -= 1
        return True

    def set_size(self, size: int) -> None:
        """Changing granularity always re-anchors to the most recent page."""
        self.size = _check_size(size)
        self.offset = 0

    def to_dict(self) -> dict:
        return {
            'months': self.months,
            'size': self.size,
            'offset': self.offset,
            'anchor': self.anchor,
            'earliest': self.earliest,
            'has_older': self.has_older(),
            'has_newer': self.has_newer(),
        }


# ── Day grid ───────────────────────────────────────────────────

def compute_day_window(start, size: int) -> List[str]:
    _check_size(size)
    first = normalize_day(start)
    return [add_days(first, i) for i in range(size)]


class DayCursor:
    """``[start, start + size)``, paged by exactly ``size`` days."""

    def __init__(self, start=None, size: int = 7, today: Optional[date] = None):
        if start is None:
            start = week_start(today or date.today())
        self.start = normalize_day(start)
        self.size = _check_size(size)

    @property
    def days(self) -> List[str]:
        return compute_day_window(self.start, self.size)

    @property
    def end(self) -> str:
        """Exclusive upper bound."""
        return add_days(self.start, self.size)

    def page_forward(self) -> None:
        self.start = add_days(self.start, self.size)

    def page_back(self) -> None:
        self.start = add_days(self.start, -self.size)

    def set_size(self, size: int) -> None:
        self.size = _check_size(size)

    def to_dict(self) -> dict:
        return {
            'start': self.start,
            'end': self.end,
            'size': self.size,
            'days': self.days,
            'previous_start': add_days(self.start, -self.size),
            'next_start': self.end,
        }


# ── Row pagination ─────────────────────────────────────────────

@dataclass(frozen=True)
class Page:
    items: list
    page: int
    total_pages: int
    total: int
    start_item: int
    end_item: int

    def to_dict(self) -> dict:
        return {
            'items': self.items,
            'page': self.page,
            'total_pages': self.total_pages,
            'total': self.total,
            'start_item': self.start_item,
            'end_item': self.end_item,
        }


def paginate(items: Sequence, per_page: Optional[int] = None, page: int = 1) -> Page:
    """Slice ``items`` for display. ``per_page=None`` shows everything.

    Out-of-range pages clamp to the first/last page.
    """
    items = list(items)
    total = len(items)
    if per_page is None:
        return Page(items, 1, 1, total, 1 if total else 0, total)
    _check_size(per_page)
    total_pages = max(1, math.ceil(total / per_page))
    page = min(max(1, page), total_pages)
    lo = (page - 1) * per_page
    chunk = items[lo:lo + per_page]
    return Page(chunk, page, total_pages, total, lo + 1 if chunk else 0, lo + len(chunk))
