"""
Key-value backing stores for the Team Console.

The core algorithms only need ``get``/``set``/``delete`` by key, so the
backend is swappable:

  • MemoryStore   – plain dict, used by tests and by callers that persist
                    elsewhere.
  • JsonFileStore – one JSON object per file, written under an exclusive
                    fcntl lock and re-read only when the file's mtime moves.

No transactional guarantee beyond per-key atomicity: concurrent writers to
the same key are last-write-wins.
"""
import fcntl
import json
import logging
import os
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional, Tuple

_logger = logging.getLogger(__name__)

# ── Global cross-request JSON cache ─────────────────────────────
# Maps file path → (mtime, data)
_GLOBAL_JSON_CACHE: Dict[str, Tuple[float, Dict[str, Any]]] = {}


class KeyValueStore:
    """Minimal repository interface consumed by the core."""

    def get(self, key: str, default: Any = None) -> Any:
        raise NotImplementedError

    def set(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> bool:
        """Remove ``key``. Returns True if it existed."""
        raise NotImplementedError

    def items(self) -> Iterator[Tuple[str, Any]]:
        raise NotImplementedError

    def keys(self, prefix: str = '') -> list:
        return [k for k, _ in self.items() if k.startswith(prefix)]

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return sum(1 for _ in self.items())


class MemoryStore(KeyValueStore):
    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = dict(initial or {})

    def get(self, key, default=None):
        return self._data.get(key, default)

    def set(self, key, value):
        self._data[key] = value

    def delete(self, key):
        return self._data.pop(key, None) is not None

    def items(self):
        return iter(list(self._data.items()))


class JsonFileStore(KeyValueStore):
    """A JSON object on disk, one key per top-level property."""

    def __init__(self, path: str):
        self.path = path

    # ── reading ─────────────────────────────────────────────────
    def _load(self) -> Dict[str, Any]:
        """Read the file, using a global mtime-based cache.

        A missing file is an empty store. A corrupt file is logged and
        treated as empty rather than taking every request down with it.
        """
        try:
            mtime = os.path.getmtime(self.path)
        except OSError:
            return {}
        cached = _GLOBAL_JSON_CACHE.get(self.path)
        if cached is not None and cached[0] == mtime:
            return cached[1]
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            _logger.error("Corrupt store %s: %s", self.path, e)
            data = {}
        if not isinstance(data, dict):
            _logger.error("Store %s does not hold a JSON object", self.path)
            data = {}
        _GLOBAL_JSON_CACHE[self.path] = (mtime, data)
        return data

    def _invalidate_cache(self) -> None:
        _GLOBAL_JSON_CACHE.pop(self.path, None)

    # ── writing ─────────────────────────────────────────────────
    @contextmanager
    def _locked(self):
        """Hold an exclusive lock on a sidecar ``.lock`` file."""
        os.makedirs(os.path.dirname(os.path.abspath(self.path)), exist_ok=True)
        with open(self.path + '.lock', 'a') as lock:
            fcntl.flock(lock.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock.fileno(), fcntl.LOCK_UN)

    def _mutate(self, fn) -> Any:
        with self._locked():
            # Re-read inside the lock so a concurrent writer's key survives.
            self._invalidate_cache()
            data = dict(self._load())
            result = fn(data)
            tmp = self.path + '.tmp'
            with open(tmp, 'w', encoding='utf-8') as f:
                json.dump(data, f, ensure_ascii=False, indent=2, sort_keys=True)
            os.replace(tmp, self.path)
            self._invalidate_cache()
        return result

    # ── KeyValueStore ───────────────────────────────────────────
    def get(self, key, default=None):
        return self._load().get(key, default)

    def set(self, key, value):
        def _apply(data):
            data[key] = value
        self._mutate(_apply)

    def delete(self, key):
        if key not in self._load():
            return False

        def _apply(data):
            return data.pop(key, None) is not None
        return self._mutate(_apply)

    def items(self):
        return iter(list(self._load().items()))
