"""Auth and user management router."""
import time as _time
import secrets
from fastapi import APIRouter, HTTPException, Header, Depends, Request
from pydantic import BaseModel, field_validator
from typing import Optional
from tclib.errors import InvalidArgument
from tclib.models import ROLES
from ..dependencies import (
    get_db, require_auth, require_admin, _sanitize_500, _logger, _sessions, _failed_logins,
    _LOCKOUT_WINDOW, _LOCKOUT_MAX, _TOKEN_EXPIRE_HOURS, limiter, invalidate_sessions_for_user,
    trim_sessions_for_user,
)

router = APIRouter()


def _check_role(v):
    if v is not None and v not in ROLES:
        raise ValueError(f"role must be one of {', '.join(ROLES)}")
    return v


class UserCreate(BaseModel):
    name: str
    password: str
    role: str = 'viewer'
    email: str = ''
    employee_id: Optional[int] = None

    @field_validator('name', 'password')
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError('must not be empty')
        return v

    @field_validator('role')
    @classmethod
    def known_role(cls, v):
        return _check_role(v)


class UserUpdate(BaseModel):
    name: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None
    email: Optional[str] = None
    active: Optional[bool] = None
    employee_id: Optional[int] = None

    @field_validator('role')
    @classmethod
    def known_role(cls, v):
        return _check_role(v)


class LoginBody(BaseModel):
    username: str
    password: str


@router.get("/api/users", tags=["Users"], summary="List users", description="Return all console users. Requires admin role.")
def get_users(_admin: dict = Depends(require_admin)):
    return get_db().get_users()


@router.post("/api/users", tags=["Users"], summary="Create user")
def create_user(body: UserCreate, _admin: dict = Depends(require_admin)):
    try:
        result = get_db().create_user(body.model_dump(), user=_admin.get('name', 'system'))
        _logger.warning(
            "AUDIT USER_CREATE | admin=%s new_user=%s role=%s",
            _admin.get('name'), body.name, body.role
        )
        return {"ok": True, "record": result}
    except InvalidArgument:
        raise
    except ValueError as e:
        if str(e).startswith('DUPLICATE:USERNAME:'):
            raise HTTPException(status_code=409, detail=f"User name '{body.name}' already exists")
        raise _sanitize_500(e, 'create_user')
    except Exception as e:
        raise _sanitize_500(e, 'create_user')


@router.put("/api/users/{user_id}", tags=["Users"], summary="Update user")
def update_user(user_id: int, body: UserUpdate, _admin: dict = Depends(require_admin)):
    data = {k: v for k, v in body.model_dump().items() if v is not None}
    try:
        result = get_db().update_user(user_id, data, user=_admin.get('name', 'system'))
    except KeyError:
        raise HTTPException(status_code=404, detail=f"User ID {user_id} not found")
    # Role or password changes take effect on the next login
    removed = 0
    if {'role', 'password', 'active', 'employee_id'} & data.keys():
        removed = invalidate_sessions_for_user(user_id)
    _logger.warning(
        "AUDIT USER_UPDATE | admin=%s target_id=%d fields=%s sessions_revoked=%d",
        _admin.get('name'), user_id, sorted(k for k in data if k != 'password'), removed
    )
    return {"ok": True, "record": result}


@router.delete("/api/users/{user_id}", tags=["Users"], summary="Delete user")
def delete_user(user_id: int, _admin: dict = Depends(require_admin)):
    if user_id == _admin.get('id'):
        raise HTTPException(status_code=400, detail="Cannot delete your own account")
    count = get_db().delete_user(user_id, user=_admin.get('name', 'system'))
    if count == 0:
        raise HTTPException(status_code=404, detail=f"User ID {user_id} not found")
    removed = invalidate_sessions_for_user(user_id)
    _logger.warning(
        "AUDIT USER_DELETE | admin=%s target_id=%d sessions_revoked=%d",
        _admin.get('name'), user_id, removed
    )
    return {"ok": True, "deleted": count}


@router.post("/api/auth/login", tags=["Auth"], summary="Login", description="Authenticate with username and password. Returns a session token valid for TOKEN_EXPIRE_HOURS (default 8).")
@limiter.limit("5/minute")
def login(request: Request, body: LoginBody):
    client_ip = request.client.host if request.client else 'unknown'
    now = _time.time()
    username = body.username

    # ── Brute-force check ──────────────────────────────────────
    timestamps = [t for t in _failed_logins.get(username, []) if now - t < _LOCKOUT_WINDOW]
    _failed_logins[username] = timestamps
    if len(timestamps) >= _LOCKOUT_MAX:
        _logger.warning(
            "AUTH LOCKOUT | ip=%s username=%s attempts=%d", client_ip, username, len(timestamps)
        )
        raise HTTPException(status_code=429, detail="Too many failed attempts. Please wait 15 minutes.")

    user = get_db().verify_user_password(username, body.password)
    if user is None:
        _failed_logins[username] = timestamps + [now]
        _logger.warning("AUTH LOGIN_FAIL | ip=%s username=%s", client_ip, username)
        raise HTTPException(status_code=401, detail="Invalid user name or password")

    _failed_logins.pop(username, None)
    _logger.info("AUTH LOGIN_OK | ip=%s username=%s", client_ip, username)

    trim_sessions_for_user(user['id'])
    token = secrets.token_hex(32)
    expires_at = now + _TOKEN_EXPIRE_HOURS * 3600
    _sessions[token] = {**user, 'expires_at': expires_at}
    return {
        "ok": True,
        "token": token,
        "user": user,
        "expires_at": expires_at,
    }


@router.post("/api/auth/logout", tags=["Auth"], summary="Logout", description="Invalidate the current session token.")
def logout(x_auth_token: Optional[str] = Header(None)):
    if x_auth_token and x_auth_token in _sessions:
        del _sessions[x_auth_token]
    return {"ok": True}


@router.get("/api/auth/me", tags=["Auth"], summary="Current user")
def me(user: dict = Depends(require_auth)):
    return {k: v for k, v in user.items() if k != 'expires_at'}
