"""
Shared dependencies for the Team Console API.
Logging, sessions, role checks and the database factory used by all routers.
"""
import os
import logging
import logging.handlers
import time as _time
import traceback

from fastapi import HTTPException, Header, Depends, Request
from typing import Optional
from tclib.database import ConsoleDatabase
from tclib.models import Viewer
from slowapi import Limiter
from slowapi.util import get_remote_address

# ── Structured JSON Logging setup ───────────────────────────────
import json as _json
from datetime import datetime as _dt, timezone as _tz

class _JsonFormatter(logging.Formatter):
    """Emit log records as single-line JSON objects."""
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": _dt.fromtimestamp(record.created, tz=_tz.utc).strftime('%Y-%m-%dT%H:%M:%S.') + f"{int(record.msecs):03d}Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return _json.dumps(entry, ensure_ascii=False)

_log_file = os.environ.get('TC_LOG_FILE', '/tmp/tc-api.log')
_handler = logging.handlers.RotatingFileHandler(
    _log_file, maxBytes=10 * 1024 * 1024, backupCount=3
)
_handler.setFormatter(_JsonFormatter())

_logger = logging.getLogger('tcapi')
_log_level_str = os.environ.get('TC_LOG_LEVEL', 'INFO').upper()
_log_level = getattr(logging, _log_level_str, logging.INFO)
_logger.setLevel(_log_level)
_logger.addHandler(_handler)
_stderr_handler = logging.StreamHandler()
_stderr_handler.setFormatter(_JsonFormatter())
_logger.addHandler(_stderr_handler)

# Core library logs go to the same handlers
_core_logger = logging.getLogger('tclib')
_core_logger.setLevel(_log_level)
_core_logger.addHandler(_handler)
_core_logger.addHandler(_stderr_handler)

TC_LOG_FILE = _log_file

# ── Rate Limiter ─────────────────────────────────────────────────
limiter = Limiter(key_func=get_remote_address, default_limits=["200/minute"])

# ── Session store ────────────────────────────────────────────────
# NOTE: In-process dict, not shared between workers.
_sessions: dict[str, dict] = {}

_TOKEN_EXPIRE_HOURS = float(os.environ.get('TOKEN_EXPIRE_HOURS', '8'))
_MAX_SESSIONS_PER_USER = int(os.environ.get('MAX_SESSIONS_PER_USER', '10'))

# Brute-force tracking
_failed_logins: dict[str, list] = {}
_LOCKOUT_WINDOW = 15 * 60
_LOCKOUT_MAX = 5

# Role hierarchy. Managers write like editors but only inside their team,
# which the routers check per employee.
_ROLE_LEVEL = {'viewer': 1, 'manager': 2, 'editor': 2, 'admin': 3}

_DEV_MODE_ACTIVE = os.environ.get('TC_DEV_MODE', '').lower() in ('1', 'true', 'yes')
_DEV_TOKEN = "__dev_mode__"
_DEV_USER = {"id": 0, "name": "Developer", "role": "admin", "active": True, "email": "", "employee_id": None}


def _is_token_valid(token: str) -> bool:
    """Return True if the token exists and has not expired."""
    if token == _DEV_TOKEN and not _DEV_MODE_ACTIVE:
        return False
    session = _sessions.get(token)
    if not session:
        return False
    expires_at = session.get('expires_at')
    if expires_at is not None and _time.time() > expires_at:
        del _sessions[token]
        return False
    return True


def get_current_user(
    request: Request,
    x_auth_token: Optional[str] = Header(None),
) -> Optional[dict]:
    """Return user dict for the given token, or None.

    Falls back to ?token= for SSE connections where EventSource cannot set
    custom headers.
    """
    token = x_auth_token or request.query_params.get('token')
    if token and _is_token_valid(token):
        return _sessions[token]
    return None


def require_auth(user: Optional[dict] = Depends(get_current_user)) -> dict:
    """Dependency: requires any authenticated user."""
    if user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user


def require_role(min_role: str):
    """Factory: returns a dependency that requires at least min_role."""
    def _dep(user: Optional[dict] = Depends(get_current_user)) -> dict:
        if user is None:
            raise HTTPException(status_code=401, detail="Not authenticated")
        user_level = _ROLE_LEVEL.get(user.get('role', ''), 0)
        required_level = _ROLE_LEVEL.get(min_role, 3)
        if user_level < required_level:
            raise HTTPException(
                status_code=403,
                detail=f"Role '{min_role}' or higher required (current: '{user.get('role')}')"
            )
        return user
    return _dep


def require_admin(user: Optional[dict] = Depends(get_current_user)) -> dict:
    """Dependency: requires admin role."""
    if user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    if user.get('role') != 'admin':
        raise HTTPException(status_code=403, detail="Admin role required")
    return user


def require_writer(user: Optional[dict] = Depends(get_current_user)) -> dict:
    """Dependency: requires a role that may write (editor, manager or admin)."""
    if user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    if _ROLE_LEVEL.get(user.get('role', ''), 0) < 2:
        raise HTTPException(status_code=403, detail="Write access required")
    return user


def require_editor(user: Optional[dict] = Depends(get_current_user)) -> dict:
    """Dependency: requires an unscoped writer (editor or admin)."""
    if user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    if user.get('role') not in ('editor', 'admin'):
        raise HTTPException(status_code=403, detail="Editor or admin role required")
    return user


def current_viewer(user: dict) -> Viewer:
    return Viewer.from_dict(user)


def get_db() -> ConsoleDatabase:
    """Build the database facade over the current DATA_PATH from main module."""
    import api.main as _main
    return ConsoleDatabase(_main.DATA_PATH, tz_name=_main.TIMEZONE)


def invalidate_sessions_for_user(user_id: int) -> int:
    """Remove all active sessions for a given user ID. Returns count removed."""
    to_remove = [tok for tok, s in _sessions.items() if s.get('id') == user_id]
    for tok in to_remove:
        del _sessions[tok]
    return len(to_remove)


def trim_sessions_for_user(user_id: int) -> int:
    """Drop the oldest sessions of a user beyond _MAX_SESSIONS_PER_USER - 1."""
    owned = sorted(
        ((tok, s) for tok, s in _sessions.items() if s.get('id') == user_id),
        key=lambda item: item[1].get('expires_at') or 0,
    )
    excess = len(owned) - (_MAX_SESSIONS_PER_USER - 1)
    removed = 0
    for tok, _ in owned[:max(0, excess)]:
        _sessions.pop(tok, None)
        removed += 1
    return removed


def purge_expired_sessions() -> int:
    """Remove all expired sessions from the in-memory store. Returns count removed."""
    now = _time.time()
    to_remove = [
        tok for tok, s in list(_sessions.items())
        if s.get('expires_at') is not None and now > s['expires_at']
    ]
    for tok in to_remove:
        _sessions.pop(tok, None)
    return len(to_remove)


def purge_stale_failed_logins() -> int:
    """Remove username entries whose timestamps have all expired. Returns count removed."""
    now = _time.time()
    stale = [
        uname for uname, timestamps in list(_failed_logins.items())
        if not any(now - t < _LOCKOUT_WINDOW for t in timestamps)
    ]
    for uname in stale:
        _failed_logins.pop(uname, None)
    return len(stale)


def _sanitize_500(e: Exception, context: str = '') -> HTTPException:
    """Log full exception, return sanitized 500."""
    _logger.error(
        "500 error context=%s type=%s msg=%s trace=%s",
        context, type(e).__name__, str(e),
        traceback.format_exc().splitlines()[-1],
    )
    return HTTPException(
        status_code=500,
        detail="Internal server error. Please try again.",
    )
