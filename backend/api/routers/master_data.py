"""Master data router: employees, teams, settings and holidays."""
from fastapi import APIRouter, HTTPException, Query, Depends
from pydantic import BaseModel, Field, field_validator
from typing import Any, List, Optional
from tclib.dates import parse_day
from tclib.errors import InvalidArgument
from ..dependencies import get_db, require_auth, require_admin, current_viewer, _logger

router = APIRouter()


def _optional_day(v: Optional[str]) -> Optional[str]:
    if v in (None, ''):
        return None
    try:
        return parse_day(v).isoformat()
    except InvalidArgument:
        raise ValueError('must be YYYY-MM-DD')


class EmployeeCreate(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field('', max_length=100)
    matricule: str = Field('', max_length=50)
    category: str = Field('', max_length=100)
    assignment: str = Field('', max_length=100)
    team_id: Optional[int] = None
    team_function: str = Field('', max_length=100)
    is_bonus_eligible: bool = False
    birth_date: Optional[str] = None
    entry_date: Optional[str] = None
    exit_date: Optional[str] = None

    @field_validator('birth_date', 'entry_date', 'exit_date')
    @classmethod
    def valid_dates(cls, v):
        return _optional_day(v)


class EmployeeUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    matricule: Optional[str] = Field(None, max_length=50)
    category: Optional[str] = Field(None, max_length=100)
    assignment: Optional[str] = Field(None, max_length=100)
    team_id: Optional[int] = None
    team_function: Optional[str] = Field(None, max_length=100)
    is_bonus_eligible: Optional[bool] = None
    birth_date: Optional[str] = None
    entry_date: Optional[str] = None
    exit_date: Optional[str] = None

    @field_validator('birth_date', 'entry_date', 'exit_date')
    @classmethod
    def valid_dates(cls, v):
        return _optional_day(v)


class TeamBody(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    leader_id: Optional[int] = None
    members: List[int] = []


class TeamUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    leader_id: Optional[int] = None
    members: Optional[List[int]] = None


class SettingBody(BaseModel):
    value: Any


# ── Employees ────────────────────────────────────────────────

@router.get("/api/employees", tags=["Master Data"], summary="List visible employees")
def get_employees(
    include_exited: bool = Query(False),
    group_id: Optional[int] = Query(None),
    user: dict = Depends(require_auth),
):
    db = get_db()
    subjects = db.visible_subjects(current_viewer(user), include_exited=include_exited, group_id=group_id)
    return [s.to_dict() for s in subjects]


@router.get("/api/employees/{emp_id}", tags=["Master Data"], summary="Get employee")
def get_employee(emp_id: int, user: dict = Depends(require_auth)):
    db = get_db()
    visible = db.visible_subjects(current_viewer(user), include_exited=True)
    for s in visible:
        if s.id == emp_id:
            return s.to_dict()
    raise HTTPException(status_code=404, detail=f"Employee ID {emp_id} not found")


@router.post("/api/employees", tags=["Master Data"], summary="Create employee")
def create_employee(body: EmployeeCreate, _admin: dict = Depends(require_admin)):
    db = get_db()
    if body.team_id is not None and db.get_team(body.team_id) is None:
        raise HTTPException(status_code=404, detail=f"Team ID {body.team_id} not found")
    subject = db.create_employee(body.model_dump(), user=_admin.get('name', 'system'))
    return {"ok": True, "record": subject.to_dict()}


@router.put("/api/employees/{emp_id}", tags=["Master Data"], summary="Update employee")
def update_employee(emp_id: int, body: EmployeeUpdate, _admin: dict = Depends(require_admin)):
    data = body.model_dump(exclude_unset=True)
    try:
        subject = get_db().update_employee(emp_id, data, user=_admin.get('name', 'system'))
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Employee ID {emp_id} not found")
    return {"ok": True, "record": subject.to_dict()}


@router.delete("/api/employees/{emp_id}", tags=["Master Data"], summary="Delete employee", description="Also removes the employee's planning cells, bonus scores and team links.")
def delete_employee(emp_id: int, _admin: dict = Depends(require_admin)):
    count = get_db().delete_employee(emp_id, user=_admin.get('name', 'system'))
    if count == 0:
        raise HTTPException(status_code=404, detail=f"Employee ID {emp_id} not found")
    _logger.warning("AUDIT EMPLOYEE_DELETE | admin=%s target_id=%d", _admin.get('name'), emp_id)
    return {"ok": True, "deleted": count}


# ── Teams ────────────────────────────────────────────────────

@router.get("/api/teams", tags=["Master Data"], summary="List teams")
def get_teams(user: dict = Depends(require_auth)):
    db = get_db()
    scope = db.scope(current_viewer(user))
    teams = db.get_teams()
    if scope.empty:
        return []
    if scope.locked:
        teams = [t for t in teams if t.id == scope.group_id]
    return [t.to_dict() for t in teams]


@router.post("/api/teams", tags=["Master Data"], summary="Create team")
def create_team(body: TeamBody, _admin: dict = Depends(require_admin)):
    group = get_db().create_team(body.model_dump(), user=_admin.get('name', 'system'))
    return {"ok": True, "record": group.to_dict()}


@router.put("/api/teams/{team_id}", tags=["Master Data"], summary="Update team")
def update_team(team_id: int, body: TeamUpdate, _admin: dict = Depends(require_admin)):
    data = body.model_dump(exclude_unset=True)
    try:
        group = get_db().update_team(team_id, data, user=_admin.get('name', 'system'))
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Team ID {team_id} not found")
    return {"ok": True, "record": group.to_dict()}


@router.delete("/api/teams/{team_id}", tags=["Master Data"], summary="Delete team")
def delete_team(team_id: int, _admin: dict = Depends(require_admin)):
    count = get_db().delete_team(team_id, user=_admin.get('name', 'system'))
    if count == 0:
        raise HTTPException(status_code=404, detail=f"Team ID {team_id} not found")
    return {"ok": True, "deleted": count}


# ── Settings ─────────────────────────────────────────────────

@router.get("/api/settings", tags=["Master Data"], summary="Get settings", description="Catalogs (shifts, absence types), holidays and display preferences.")
def get_settings():
    return get_db().get_settings()


@router.put("/api/settings/{key}", tags=["Master Data"], summary="Update one setting")
def put_setting(key: str, body: SettingBody, _admin: dict = Depends(require_admin)):
    settings = get_db().update_setting(key, body.value, user=_admin.get('name', 'system'))
    _logger.warning("AUDIT SETTINGS_UPDATE | admin=%s key=%s", _admin.get('name'), key)
    return {"ok": True, "settings": settings}


# ── Holidays ─────────────────────────────────────────────────

@router.get("/api/holidays", tags=["Master Data"], summary="List holidays", description="With `year`, civil holidays are expanded into that year.")
def get_holidays(year: Optional[int] = Query(None, ge=1900, le=2200)):
    return get_db().get_holidays(year)


@router.get("/api/holidays/check", tags=["Master Data"], summary="Holiday on a day")
def check_holiday(
    date: str = Query(..., description="Day (YYYY-MM-DD)"),
    strict: bool = Query(False, description="Fail when several holidays match the day"),
):
    holiday = get_db().is_holiday(date, strict=strict)
    return {
        "date": parse_day(date).isoformat(),
        "is_holiday": holiday is not None,
        "holiday": holiday.to_dict() if holiday else None,
    }


@router.get("/api/holidays/conflicts", tags=["Master Data"], summary="Ambiguous holiday dates")
def holiday_conflicts(_admin: dict = Depends(require_admin)):
    return get_db().holiday_conflicts()
