"""Audit log router."""
from fastapi import APIRouter, Query, Depends
from typing import Optional
from tclib.window import paginate
from ..dependencies import get_db, require_role

router = APIRouter()


@router.get("/api/audit", tags=["Audit"], summary="Audit log", description="Newest first. `search` matches action, details and user; `start`/`end` bound the entry day inclusively.")
def get_audit(
    search: str = Query('', max_length=200),
    action: Optional[str] = Query(None),
    user: Optional[str] = Query(None),
    start: Optional[str] = Query(None),
    end: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    per_page: Optional[int] = Query(50, ge=1, le=1000),
    _admin: dict = Depends(require_role('admin')),
):
    log = get_db().audit
    rows = log.filter(search=search, action=action, user=user, start=start, end=end)
    result = paginate(rows, per_page, page).to_dict()
    result['actions'] = log.actions()
    result['users'] = log.users()
    return result
