"""FastAPI application for the Team Console."""
import os
import sys
import time as _startup_time_module
from contextlib import asynccontextmanager
from dotenv import load_dotenv

_APP_START_TIME = _startup_time_module.time()

# Load .env file if present
load_dotenv(os.path.join(os.path.dirname(__file__), '..', '.env'))

# Add parent dir to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from fastapi import FastAPI, Request  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402
from fastapi.responses import JSONResponse  # noqa: E402
from fastapi.exceptions import RequestValidationError  # noqa: E402
from slowapi import _rate_limit_exceeded_handler  # noqa: E402
from slowapi.errors import RateLimitExceeded  # noqa: E402

from tclib.errors import InvalidArgument, InvalidConfig  # noqa: E402

# ── Import shared dependencies ──────────────────────────────────
# Re-exported so tests can do `from api.main import _sessions`
from .dependencies import (  # noqa: E402
    _sessions,
    _DEV_MODE_ACTIVE,
    _DEV_TOKEN,
    _DEV_USER,
    _is_token_valid,
    get_current_user,
    require_auth,
    require_admin,
    require_writer,
    require_editor,
    get_db,
    _logger,
    limiter,
    purge_expired_sessions,
    purge_stale_failed_logins,
)

# ── Dev-mode session ────────────────────────────────────────────
# Only active when TC_DEV_MODE=true
if _DEV_MODE_ACTIVE:
    _sessions[_DEV_TOKEN] = {**_DEV_USER, 'expires_at': None}
    _logger.warning("DEV MODE ACTIVE: dev token enabled (TC_DEV_MODE=true). Do not use in production!")

# ── Config ──────────────────────────────────────────────────────
DATA_PATH = os.environ.get(
    'TC_DATA_PATH',
    os.path.join(os.path.dirname(__file__), '..', '..', 'data')
)
DATA_PATH = os.path.normpath(DATA_PATH)

TIMEZONE = os.environ.get('TC_TIMEZONE') or None

_ADMIN_PASSWORD = os.environ.get('TC_ADMIN_PASSWORD', 'admin')

_raw_origins = os.environ.get('ALLOWED_ORIGINS', '')
ALLOWED_ORIGINS = (
    [o.strip() for o in _raw_origins.split(',') if o.strip()]
    or ['http://localhost:5173', 'http://localhost:8000']
)

_OPENAPI_TAGS = [
    {"name": "Health", "description": "System health and version info"},
    {"name": "Auth", "description": "Authentication: login and logout"},
    {"name": "Users", "description": "Console user management (admin only)"},
    {"name": "Planning", "description": "Per-day shift assignments"},
    {"name": "Dashboard", "description": "Presence summary for a day"},
    {"name": "Bonus", "description": "Monthly bonus scores and history"},
    {"name": "Master Data", "description": "Employees, teams, settings and holidays"},
    {"name": "Trainings", "description": "Training sessions and attendance"},
    {"name": "Audit", "description": "Audit log of console actions"},
    {"name": "Events", "description": "Server-sent change notifications"},
]


async def _periodic_cleanup():
    """Background task: purge expired sessions and stale failed-login entries every 5 minutes."""
    import asyncio
    while True:
        await asyncio.sleep(300)
        try:
            sess = purge_expired_sessions()
            logins = purge_stale_failed_logins()
            if sess or logins:
                _logger.debug("Periodic cleanup: removed %d expired sessions, %d stale lockout entries", sess, logins)
        except Exception as _exc:  # pragma: no cover
            _logger.warning("Periodic cleanup error: %s", _exc)


@asynccontextmanager
async def lifespan(app: FastAPI):
    import asyncio
    os.makedirs(DATA_PATH, exist_ok=True)
    if get_db().ensure_admin(_ADMIN_PASSWORD):
        _logger.warning("AUDIT BOOTSTRAP | created initial admin user in %s", DATA_PATH)
    cleanup_task = asyncio.create_task(_periodic_cleanup())
    yield
    cleanup_task.cancel()
    _logger.info("Team Console API shutting down")


_API_VERSION = "1.0.0"

app = FastAPI(
    lifespan=lifespan,
    title="Team Console API",
    description=(
        "REST API for team planning, presence, bonus scoring and trainings.\n\n"
        "## Authentication\n"
        "Most endpoints require an `x-auth-token` header obtained from `POST /api/auth/login`.\n\n"
        "## Roles\n"
        "- **viewer** – read-only access to everyone\n"
        "- **manager** – reads and writes restricted to the team they lead\n"
        "- **editor** – writes planning, bonuses and trainings\n"
        "- **admin** – full access including users and settings\n"
    ),
    version=_API_VERSION,
    openapi_tags=_OPENAPI_TAGS,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type", "x-auth-token", "Authorization"],
)


@app.middleware("http")
async def security_headers_middleware(request: Request, call_next):
    """Add security headers to all responses."""
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    response.headers["Content-Security-Policy"] = (
        "default-src 'self'; "
        "img-src 'self' data:; "
        "connect-src 'self'; "
        "frame-ancestors 'none';"
    )
    response.headers["Cross-Origin-Opener-Policy"] = "same-origin"
    if os.environ.get('TC_HSTS', '').lower() in ('1', 'true', 'yes'):
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Collapse pydantic validation errors into one readable detail string."""
    _TYPE_MSGS = {
        "missing": "Field required",
        "int_parsing": "Must be an integer",
        "float_parsing": "Must be a number",
        "bool_parsing": "Must be true or false",
        "string_too_short": "Too short",
        "string_too_long": "Too long",
        "type_error": "Wrong type",
    }
    errors = []
    for e in exc.errors():
        field = ".".join(str(loc) for loc in e.get("loc", []) if loc not in ("body", "query", "path"))
        etype = e.get("type", "")
        msg = _TYPE_MSGS.get(etype, e.get("msg", "Invalid value"))
        errors.append(f"{field}: {msg}" if field else msg)
    detail = "; ".join(errors) if errors else "Invalid input"
    return JSONResponse(status_code=422, content={"detail": detail})


@app.exception_handler(InvalidArgument)
async def invalid_argument_handler(request: Request, exc: InvalidArgument):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(InvalidConfig)
async def invalid_config_handler(request: Request, exc: InvalidConfig):
    _logger.warning("Invalid configuration on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch unhandled exceptions, log with details, return sanitized 500."""
    import traceback
    _logger.error(
        "Unhandled exception: %s %s | %s | %s",
        request.method, request.url.path,
        type(exc).__name__,
        traceback.format_exc().splitlines()[-1],
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error. Please try again."},
    )


# ── Public paths (no auth required) ────────────────────────────
_PUBLIC_PATHS = {'/api/auth/login', '/api/auth/logout', '/api', '/api/health', '/api/version'}


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    """Log every request as structured JSON with timing info and request-ID."""
    import time as _t
    import uuid as _uuid
    import json as _json_mod
    req_id = _uuid.uuid4().hex[:8]
    start = _t.time()
    response = await call_next(request)
    duration_ms = round((_t.time() - start) * 1000)
    token = request.headers.get('x-auth-token') or request.query_params.get('token')
    user = _sessions.get(token, {}).get('name', '-') if token else '-'
    entry = {
        "req_id": req_id,
        "method": request.method,
        "path": request.url.path,
        "status": response.status_code,
        "duration_ms": duration_ms,
        "user": user,
    }
    _logger.info(_json_mod.dumps(entry, ensure_ascii=False))
    response.headers["X-Request-ID"] = req_id
    return response


@app.middleware("http")
async def auth_middleware(request: Request, call_next):
    """Require authentication for all /api/* endpoints except public ones."""
    path = request.url.path
    method = request.method
    client_ip = request.client.host if request.client else 'unknown'

    if path in _PUBLIC_PATHS or not path.startswith('/api/'):
        return await call_next(request)
    token = request.headers.get('x-auth-token') or request.query_params.get('token')
    if not token or not _is_token_valid(token):
        _logger.warning("AUTH 401 | ip=%s method=%s path=%s", client_ip, method, path)
        return JSONResponse(status_code=401, content={"detail": "Not authenticated"})
    response = await call_next(request)
    if response.status_code == 403:
        _logger.warning(
            "AUTH 403 | ip=%s method=%s path=%s user=%s",
            client_ip, method, path, _sessions.get(token, {}).get('name', '?')
        )
    return response


# ── Include routers ─────────────────────────────────────────────
from .routers import auth, schedule, dashboard, bonus, master_data, training, audit, events  # noqa: E402

app.include_router(auth.router)
app.include_router(schedule.router)
app.include_router(dashboard.router)
app.include_router(bonus.router)
app.include_router(master_data.router)
app.include_router(training.router)
app.include_router(audit.router)
app.include_router(events.router)


# ── Routes ──────────────────────────────────────────────────────

@app.get(
    "/api/health",
    tags=["Health"],
    summary="Health check",
    description="Returns service status, API version, uptime and store state. Public.",
)
def health():
    import time as _t
    db_status = "connected"
    try:
        get_db().get_stats()
    except Exception as e:
        _logger.warning("Health check store error: %s", e)
        db_status = "error"
    return {
        "status": "ok",
        "version": _API_VERSION,
        "uptime_seconds": round(_t.time() - _APP_START_TIME, 1),
        "db": {"status": db_status},
    }


@app.get("/api/version", tags=["Health"], summary="API version")
def version():
    """Return current API version, public."""
    return {"version": _API_VERSION, "service": "Team Console API"}


@app.get("/api", tags=["Health"], summary="API root", include_in_schema=False)
def root():
    return {"service": "Team Console API", "version": _API_VERSION, "backend": "json"}


@app.get("/api/stats", tags=["Health"], summary="Store statistics")
def get_stats():
    return get_db().get_stats()
