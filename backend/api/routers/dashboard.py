"""Dashboard router: presence summary for one day."""
from fastapi import APIRouter, Query, Depends
from typing import Optional
from ..dependencies import get_db, require_auth, current_viewer

router = APIRouter()


@router.get("/api/dashboard", tags=["Dashboard"], summary="Presence summary", description="Present, absent and unassigned employees for a day (default today), the distribution per label and a per-team recap.")
def get_dashboard(
    date: Optional[str] = Query(None, description="Day (YYYY-MM-DD), defaults to today"),
    user: dict = Depends(require_auth),
):
    db = get_db()
    summary = db.dashboard(current_viewer(user), date)
    summary['upcoming_holidays'] = db.upcoming_holidays()
    return summary
