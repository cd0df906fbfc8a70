"""
Monthly bonus scores and the bonus history pivot.

Scores are a sparse (subject, month) → amount mapping keyed
``"<subjectId>_<YYYY-MM>"``. A score of 0 is the same as no score and
removes the key.
"""
import logging
from datetime import date
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from .dates import current_month, normalize_month
from .errors import InvalidArgument
from .models import Group, Subject, Viewer
from .storage import KeyValueStore, MemoryStore
from .visibility import visible_subjects
from .window import MonthCursor

_logger = logging.getLogger(__name__)


def make_key(subject_id, month) -> str:
    try:
        sid = int(subject_id)
    except (TypeError, ValueError):
        raise InvalidArgument(f"Invalid subject id {subject_id!r}")
    return f"{sid}_{normalize_month(month)}"


def _amount(value) -> Optional[float]:
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        raise InvalidArgument(f"Invalid bonus amount {value!r}")
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise InvalidArgument(f"Invalid bonus amount {value!r}")
    if amount != amount:  # NaN
        raise InvalidArgument("Bonus amount must be a number")
    return int(amount) if amount.is_integer() else amount


class BonusBook:
    def __init__(self, backend: Optional[KeyValueStore] = None):
        self.backend = backend if backend is not None else MemoryStore()

    def get(self, subject_id, month) -> Optional[float]:
        return self.backend.get(make_key(subject_id, month))

    def set(self, subject_id, month, amount, today: Optional[date] = None) -> Optional[float]:
        """Store a score. ``today`` enables the "no future months" guard."""
        key = make_key(subject_id, month)
        if today is not None and normalize_month(month) > current_month(today):
            raise InvalidArgument(f"Cannot score future month {normalize_month(month)}")
        value = _amount(amount)
        if not value:
            self.backend.delete(key)
            return None
        self.backend.set(key, value)
        _logger.debug("Bonus %s = %s", key, value)
        return value

    def entries(self) -> Iterator[Tuple[int, str, float]]:
        for key, amount in self.backend.items():
            raw_id, _, month = key.partition('_')
            try:
                yield int(raw_id), normalize_month(month), amount
            except (ValueError, InvalidArgument):
                _logger.warning("Skipping malformed bonus key %r", key)

    def months(self) -> List[str]:
        return sorted({m for _, m, _ in self.entries()})

    def subjects_with_scores(self) -> set:
        return {sid for sid, _, _ in self.entries()}

    def clear_subject(self, subject_id) -> int:
        sid = int(subject_id)
        keys = [f"{s}_{m}" for s, m, _ in self.entries() if s == sid]
        for key in keys:
            self.backend.delete(key)
        return len(keys)

    def cursor(self, size: int = 3, offset: int = 0, today: Optional[date] = None) -> MonthCursor:
        return MonthCursor(self.months(), size=size, offset=offset, today=today)

    def history(self, subjects: Iterable[Subject], cursor: MonthCursor,
                name_filter: str = '') -> List[Dict]:
        """Pivot rows for subjects holding at least one score.

        Exited subjects stay in the history; callers pass the already
        scope-filtered subject list.
        """
        months = cursor.months
        scored = self.subjects_with_scores()
        needle = name_filter.strip().lower()
        by_subject: Dict[int, Dict[str, float]] = {}
        for sid, month, amount in self.entries():
            by_subject.setdefault(sid, {})[month] = amount
        rows = []
        for subject in subjects:
            if subject.id not in scored:
                continue
            if needle and needle not in subject.first_name.lower() and needle not in subject.last_name.lower():
                continue
            scores = by_subject.get(subject.id, {})
            rows.append({
                'employee_id': subject.id,
                'name': subject.full_name,
                'matricule': subject.matricule,
                'category': subject.category,
                'scores': {m: scores.get(m) for m in months},
            })
        rows.sort(key=lambda r: r['name'].lower())
        return rows


def eligible_subjects(subjects: Iterable[Subject], viewer: Viewer, groups: Iterable[Group],
                      group_filter: Optional[int] = None, search: str = '',
                      group_by_category: bool = True) -> List[Subject]:
    """Active bonus-eligible subjects the viewer may score."""
    needle = search.strip().lower()
    result = [
        s for s in visible_subjects(subjects, viewer, groups, group_filter=group_filter)
        if s.is_bonus_eligible and (
            not needle
            or needle in s.first_name.lower()
            or needle in s.last_name.lower()
            or needle in s.matricule.lower()
        )
    ]
    if group_by_category:
        result.sort(key=lambda s: (s.category.lower(), s.first_name.lower()))
    else:
        result.sort(key=lambda s: s.first_name.lower())
    return result
