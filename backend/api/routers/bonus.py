"""Bonus router: monthly score sheet, score updates and the history pivot."""
from fastapi import APIRouter, HTTPException, Query, Depends
from pydantic import BaseModel, Field, field_validator
from typing import Optional, Union
from tclib.dates import normalize_month
from tclib.errors import InvalidArgument
from tclib.window import MONTH_WINDOW_SIZES
from ..dependencies import get_db, require_auth, require_writer, current_viewer, _logger
from .events import broadcast

router = APIRouter()


class BonusUpdate(BaseModel):
    employee_id: int = Field(..., gt=0)
    month: str
    amount: Optional[Union[int, float]] = Field(None, ge=0)

    @field_validator('month')
    @classmethod
    def valid_month(cls, v: str) -> str:
        try:
            return normalize_month(v)
        except InvalidArgument:
            raise ValueError('month must be YYYY-MM')


@router.get("/api/bonus", tags=["Bonus"], summary="Monthly score sheet", description="Bonus-eligible active employees visible to the caller with their score for the month. Future months are returned locked.")
def get_bonus_sheet(
    month: Optional[str] = Query(None, description="Month (YYYY-MM), defaults to the current month"),
    group_id: Optional[int] = Query(None),
    search: str = Query('', max_length=100),
    group_by_category: bool = Query(True),
    user: dict = Depends(require_auth),
):
    db = get_db()
    month = normalize_month(month) if month else db.today().strftime('%Y-%m')
    return db.bonus_sheet(current_viewer(user), month, group_id=group_id,
                          search=search, group_by_category=group_by_category)


@router.put("/api/bonus", tags=["Bonus"], summary="Set a score", description="A zero or empty amount removes the score.")
def put_bonus(body: BonusUpdate, user: dict = Depends(require_writer)):
    db = get_db()
    viewer = current_viewer(user)
    subject = db.get_employee(body.employee_id)
    if subject is None:
        raise HTTPException(status_code=404, detail=f"Employee ID {body.employee_id} not found")
    if not subject.is_bonus_eligible:
        raise HTTPException(status_code=400, detail="Employee is not bonus eligible")
    if not db.can_edit(viewer, body.employee_id):
        _logger.warning("AUDIT BONUS_DENIED | user=%s employee=%d", viewer.name, body.employee_id)
        raise HTTPException(status_code=403, detail="Employee outside your team")
    stored = db.set_bonus(body.employee_id, body.month, body.amount, user=viewer.name)
    broadcast("bonus_changed", {"employee_id": body.employee_id, "month": body.month, "amount": stored})
    return {"ok": True, "employee_id": body.employee_id, "month": body.month, "amount": stored}


@router.get("/api/bonus/history", tags=["Bonus"], summary="Bonus history pivot", description="Scores per employee over a month window anchored on the later of this month and the newest scored month. `offset` pages back in steps of `size` months.")
def get_bonus_history(
    size: int = Query(3, description="Months per page (3, 6, 9 or 12)"),
    offset: int = Query(0, ge=0),
    search: str = Query('', max_length=100),
    user: dict = Depends(require_auth),
):
    if size not in MONTH_WINDOW_SIZES:
        raise HTTPException(status_code=400, detail=f"size must be one of {', '.join(map(str, MONTH_WINDOW_SIZES))}")
    return get_db().bonus_history(current_viewer(user), size=size, offset=offset, name_filter=search)
