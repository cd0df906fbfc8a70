"""Append-only audit log of console actions, newest entry first."""
import logging
from datetime import datetime
from typing import Dict, List, Optional

from .dates import parse_day
from .storage import KeyValueStore, MemoryStore

_logger = logging.getLogger(__name__)

MAX_ENTRIES = 1000
_KEY = 'entries'


class AuditLog:
    def __init__(self, backend: Optional[KeyValueStore] = None):
        self.backend = backend if backend is not None else MemoryStore()

    def entries(self) -> List[Dict]:
        return list(self.backend.get(_KEY, []))

    def add(self, action: str, details: str = '', user: str = 'system') -> Dict:
        entries = self.entries()
        next_id = max((e.get('id', 0) for e in entries), default=0) + 1
        entry = {
            'id': next_id,
            'timestamp': datetime.now().isoformat(timespec='seconds'),
            'action': action,
            'details': details,
            'user': user,
        }
        entries.insert(0, entry)
        # Keep newest MAX_ENTRIES
        self.backend.set(_KEY, entries[:MAX_ENTRIES])
        _logger.debug("Audit %s by %s: %s", action, user, details)
        return entry

    def actions(self) -> List[str]:
        return sorted({e.get('action', '') for e in self.entries()})

    def users(self) -> List[str]:
        return sorted({e.get('user', '') for e in self.entries()})

    def filter(self, search: str = '', action: Optional[str] = None, user: Optional[str] = None,
               start: Optional[str] = None, end: Optional[str] = None) -> List[Dict]:
        """Case-insensitive search over action/details/user plus exact filters.

        ``start``/``end`` are inclusive ISO days compared on the entry's date.
        """
        needle = search.strip().lower()
        lo = parse_day(start).isoformat() if start else None
        hi = parse_day(end).isoformat() if end else None
        result = []
        for e in self.entries():
            if needle and not any(needle in str(e.get(k, '')).lower() for k in ('action', 'details', 'user')):
                continue
            if action and e.get('action') != action:
                continue
            if user and e.get('user') != user:
                continue
            day = e.get('timestamp', '')[:10]
            if lo and day < lo:
                continue
            if hi and day > hi:
                continue
            result.append(e)
        return result
