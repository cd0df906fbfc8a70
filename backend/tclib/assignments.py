"""
Sparse (subject, day) → label store for the shift planning grid.

Keys are serialized as ``"<subjectId>_<YYYY-MM-DD>"`` so the backing store
stays a flat key-value mapping. A missing key means "unassigned"; writing
``None`` or an empty label removes the key instead of storing a blank.
"""
import logging
from typing import Iterable, Iterator, List, Optional, Tuple

from .dates import add_days, normalize_day
from .errors import InvalidArgument
from .storage import KeyValueStore, MemoryStore

_logger = logging.getLogger(__name__)


def make_key(subject_id, day) -> str:
    return f"{_subject_id(subject_id)}_{normalize_day(day)}"


def split_key(key: str) -> Tuple[int, str]:
    """Inverse of :func:`make_key`. Raises InvalidArgument on malformed keys."""
    if not isinstance(key, str) or '_' not in key:
        raise InvalidArgument(f"Malformed assignment key {key!r}")
    raw_id, _, raw_day = key.partition('_')
    return _subject_id(raw_id), normalize_day(raw_day)


def _subject_id(value) -> int:
    if isinstance(value, bool):
        raise InvalidArgument(f"Invalid subject id {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidArgument(f"Invalid subject id {value!r}")


def normalize_label(label: Optional[str]) -> Optional[str]:
    """Empty and whitespace-only labels mean "clear"."""
    if label is None:
        return None
    if not isinstance(label, str):
        raise InvalidArgument(f"Label must be a string, got {type(label).__name__}")
    return label if label.strip() else None


class AssignmentStore:
    """Read/write access to planning cells over any :class:`KeyValueStore`."""

    def __init__(self, backend: Optional[KeyValueStore] = None):
        self.backend = backend if backend is not None else MemoryStore()

    def get(self, subject_id, day) -> Optional[str]:
        value = self.backend.get(make_key(subject_id, day))
        return value or None

    def set(self, subject_id, day, label: Optional[str]) -> Optional[str]:
        """Assign ``label`` to the cell, or clear it. Returns the stored label."""
        key = make_key(subject_id, day)
        value = normalize_label(label)
        if value is None:
            if self.backend.delete(key):
                _logger.debug("Cleared cell %s", key)
            return None
        if self.backend.get(key) != value:
            self.backend.set(key, value)
            _logger.debug("Assigned %s = %r", key, value)
        return value

    def clear(self, subject_id, day) -> bool:
        """Remove the cell. Returns True if something was assigned."""
        return self.backend.delete(make_key(subject_id, day))

    def entries(self, subject_ids: Optional[Iterable[int]] = None,
                start: Optional[str] = None, end: Optional[str] = None,
                ) -> Iterator[Tuple[int, str, str]]:
        """Yield ``(subject_id, day, label)`` for stored cells.

        ``start``/``end`` bound the day range half-open: ``start <= day < end``.
        Keys that do not parse are skipped with a warning.
        """
        wanted = {_subject_id(s) for s in subject_ids} if subject_ids is not None else None
        lo = normalize_day(start) if start else None
        hi = normalize_day(end) if end else None
        for key, label in self.backend.items():
            try:
                sid, day = split_key(key)
            except InvalidArgument:
                _logger.warning("Skipping malformed planning key %r", key)
                continue
            if not label:
                continue
            if wanted is not None and sid not in wanted:
                continue
            if lo is not None and day < lo:
                continue
            if hi is not None and day >= hi:
                continue
            yield sid, day, label

    def grid(self, subject_ids: Iterable[int], days: List[str]) -> dict:
        """``{subject_id: {day: label|None}}`` for every requested cell."""
        ids = [_subject_id(s) for s in subject_ids]
        result = {sid: {d: None for d in days} for sid in ids}
        if not days:
            return result
        for sid, day, label in self.entries(ids, min(days), add_days(max(days), 1)):
            if day in result[sid]:
                result[sid][day] = label
        return result

    def days_with_data(self) -> List[str]:
        return sorted({day for _, day, _ in self.entries()})

    def earliest(self) -> Optional[str]:
        days = self.days_with_data()
        return days[0] if days else None

    def latest(self) -> Optional[str]:
        days = self.days_with_data()
        return days[-1] if days else None

    def clear_subject(self, subject_id) -> int:
        """Drop every cell of a removed subject. Returns the number removed."""
        sid = _subject_id(subject_id)
        keys = [make_key(s, d) for s, d, _ in self.entries([sid])]
        for key in keys:
            self.backend.delete(key)
        if keys:
            _logger.info("Removed %d planning cells of subject %d", len(keys), sid)
        return len(keys)
