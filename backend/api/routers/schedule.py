"""Planning grid router: day windows, single cells and label classification."""
from fastapi import APIRouter, HTTPException, Query, Depends
from pydantic import BaseModel, Field, field_validator
from typing import Optional
from tclib.dates import parse_day
from tclib.errors import InvalidArgument
from tclib.window import DAY_WINDOW_SIZES
from ..dependencies import get_db, require_auth, require_writer, current_viewer, _logger
from .events import broadcast

router = APIRouter()


class PlanningCell(BaseModel):
    employee_id: int = Field(..., gt=0)
    date: str
    label: Optional[str] = Field(None, max_length=100)

    @field_validator('date')
    @classmethod
    def valid_date(cls, v: str) -> str:
        try:
            return parse_day(v).isoformat()
        except InvalidArgument:
            raise ValueError('date must be YYYY-MM-DD')


@router.get("/api/planning", tags=["Planning"], summary="Planning window", description="Return the day-window grid for the employees visible to the caller, with cell status, display attributes and the holiday overlay.")
def get_planning(
    start: Optional[str] = Query(None, description="First day (YYYY-MM-DD); defaults to Monday of the current week"),
    days: int = Query(7, description="Window size in days (7, 14 or 30)"),
    group_id: Optional[int] = Query(None, description="Filter by team ID"),
    search: str = Query('', max_length=100),
    user: dict = Depends(require_auth),
):
    if days not in DAY_WINDOW_SIZES:
        raise HTTPException(status_code=400, detail=f"days must be one of {', '.join(map(str, DAY_WINDOW_SIZES))}")
    return get_db().planning_window(current_viewer(user), start=start, days=days,
                                    group_id=group_id, search=search)


@router.get("/api/planning/classify", tags=["Planning"], summary="Classify a label")
def classify_label(label: Optional[str] = Query(None, max_length=100)):
    db = get_db()
    return {"label": label, "state": db.classify_status(label).value}


def _visible_or_404(db, viewer, employee_id: int):
    subject = db.get_employee(employee_id)
    if subject is None or subject.id not in {s.id for s in db.visible_subjects(viewer, include_exited=True)}:
        raise HTTPException(status_code=404, detail=f"Employee ID {employee_id} not found")
    return subject


@router.get("/api/planning/{employee_id}/{date}", tags=["Planning"], summary="Read one cell")
def get_cell(employee_id: int, date: str, user: dict = Depends(require_auth)):
    db = get_db()
    _visible_or_404(db, current_viewer(user), employee_id)
    label = db.read_assignment(employee_id, date)
    holiday = db.is_holiday(date)
    return {
        "employee_id": employee_id,
        "date": parse_day(date).isoformat(),
        "label": label,
        "state": db.classify_status(label).value,
        "holiday": holiday.to_dict() if holiday else None,
    }


def _write(employee_id: int, date: str, label: Optional[str], user: dict) -> dict:
    db = get_db()
    viewer = current_viewer(user)
    if db.get_employee(employee_id) is None:
        raise HTTPException(status_code=404, detail=f"Employee ID {employee_id} not found")
    if not db.can_edit(viewer, employee_id):
        _logger.warning("AUDIT PLANNING_DENIED | user=%s employee=%d", viewer.name, employee_id)
        raise HTTPException(status_code=403, detail="Employee outside your team")
    stored = db.write_assignment(employee_id, date, label, user=viewer.name)
    day = parse_day(date).isoformat()
    broadcast("planning_changed", {"employee_id": employee_id, "date": day, "label": stored})
    return {"ok": True, "employee_id": employee_id, "date": day, "label": stored,
            "state": db.classify_status(stored).value}


@router.put("/api/planning", tags=["Planning"], summary="Assign or clear a cell", description="An empty or missing label clears the cell.")
def put_cell(body: PlanningCell, user: dict = Depends(require_writer)):
    return _write(body.employee_id, body.date, body.label, user)


@router.delete("/api/planning/{employee_id}/{date}", tags=["Planning"], summary="Clear a cell")
def delete_cell(employee_id: int, date: str, user: dict = Depends(require_writer)):
    return _write(employee_id, date, None, user)
