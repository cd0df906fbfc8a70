"""Trainings router: sessions, lifecycle steps, participants and attendance."""
from fastapi import APIRouter, HTTPException, Query, Depends
from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from tclib.dates import parse_day
from tclib.errors import InvalidArgument
from tclib.training import STATUS_ORDER, attendees
from ..dependencies import get_db, require_auth, require_editor, require_writer, current_viewer
from .events import broadcast

router = APIRouter()


class TrainingBody(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field('', max_length=2000)
    start_date: str
    end_date: str
    session_count: int = Field(1, ge=1)
    target_team_ids: List[int] = Field(..., min_length=1)

    @field_validator('start_date', 'end_date')
    @classmethod
    def valid_dates(cls, v: str) -> str:
        try:
            return parse_day(v).isoformat()
        except InvalidArgument:
            raise ValueError('must be YYYY-MM-DD')


class ParticipantsBody(BaseModel):
    employee_ids: List[int]


class AttendanceBody(BaseModel):
    present_ids: List[int]


def _or_404(tr, training_id: int):
    if tr is None:
        raise HTTPException(status_code=404, detail=f"Training ID {training_id} not found")
    return tr


@router.get("/api/trainings", tags=["Trainings"], summary="List trainings")
def get_trainings(status: Optional[str] = Query(None, description=" | ".join(STATUS_ORDER))):
    return [t.to_dict() for t in get_db().get_trainings(status)]


@router.get("/api/trainings/attendees", tags=["Trainings"], summary="Completed trainings per employee", description="Archived trainings each employee attended, optionally bounded by a date range.")
def get_attendees(
    start: Optional[str] = Query(None),
    end: Optional[str] = Query(None),
    user: dict = Depends(require_auth),
):
    db = get_db()
    visible = {s.id for s in db.visible_subjects(current_viewer(user), include_exited=True)}
    result = attendees(db.get_trainings(), start, end)
    return {str(emp_id): rows for emp_id, rows in result.items() if emp_id in visible}


@router.get("/api/trainings/{training_id}", tags=["Trainings"], summary="Get training")
def get_training(training_id: int):
    return _or_404(get_db().get_training(training_id), training_id).to_dict()


@router.post("/api/trainings", tags=["Trainings"], summary="Create training")
def create_training(body: TrainingBody, user: dict = Depends(require_editor)):
    tr = get_db().create_training(body.model_dump(), user=user.get('name', 'system'))
    broadcast("training_changed", {"id": tr.id, "status": tr.status})
    return {"ok": True, "record": tr.to_dict()}


@router.put("/api/trainings/{training_id}", tags=["Trainings"], summary="Update training")
def update_training(training_id: int, body: TrainingBody, user: dict = Depends(require_editor)):
    try:
        tr = get_db().update_training(training_id, body.model_dump(), user=user.get('name', 'system'))
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Training ID {training_id} not found")
    broadcast("training_changed", {"id": tr.id, "status": tr.status})
    return {"ok": True, "record": tr.to_dict()}


@router.delete("/api/trainings/{training_id}", tags=["Trainings"], summary="Delete training")
def delete_training(training_id: int, user: dict = Depends(require_editor)):
    if get_db().delete_training(training_id, user=user.get('name', 'system')) == 0:
        raise HTTPException(status_code=404, detail=f"Training ID {training_id} not found")
    broadcast("training_changed", {"id": training_id, "status": None})
    return {"ok": True, "deleted": 1}


def _step(training_id: int, forward: bool, user: dict) -> dict:
    try:
        tr = get_db().step_training(training_id, forward=forward, user=user.get('name', 'system'))
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Training ID {training_id} not found")
    broadcast("training_changed", {"id": tr.id, "status": tr.status})
    return {"ok": True, "record": tr.to_dict()}


@router.post("/api/trainings/{training_id}/advance", tags=["Trainings"], summary="Next status")
def advance_training(training_id: int, user: dict = Depends(require_editor)):
    return _step(training_id, True, user)


@router.post("/api/trainings/{training_id}/revert", tags=["Trainings"], summary="Previous status", description="Going back to `planned` clears the participant list.")
def revert_training(training_id: int, user: dict = Depends(require_editor)):
    return _step(training_id, False, user)


@router.get("/api/trainings/{training_id}/candidates", tags=["Trainings"], summary="Eligible participants")
def get_candidates(training_id: int, user: dict = Depends(require_auth)):
    try:
        subjects = get_db().training_candidates(training_id, current_viewer(user))
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Training ID {training_id} not found")
    return [{"id": s.id, "name": s.full_name, "matricule": s.matricule,
             "category": s.category, "team_id": s.team_id} for s in subjects]


@router.put("/api/trainings/{training_id}/participants", tags=["Trainings"], summary="Set participants", description="Callers may only add or remove their own candidates; other current participants are kept. Allowed while the training is in progress.")
def put_participants(training_id: int, body: ParticipantsBody, user: dict = Depends(require_writer)):
    try:
        tr = get_db().set_training_participants(training_id, body.employee_ids, viewer=current_viewer(user),
                                                user=user.get('name', 'system'))
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Training ID {training_id} not found")
    broadcast("training_changed", {"id": tr.id, "status": tr.status})
    return {"ok": True, "record": tr.to_dict()}


@router.put("/api/trainings/{training_id}/attendance", tags=["Trainings"], summary="Record attendance", description="Allowed once the training is validated.")
def put_attendance(training_id: int, body: AttendanceBody, user: dict = Depends(require_editor)):
    try:
        tr = get_db().set_training_attendance(training_id, body.present_ids, user=user.get('name', 'system'))
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Training ID {training_id} not found")
    broadcast("training_changed", {"id": tr.id, "status": tr.status})
    return {"ok": True, "record": tr.to_dict()}
