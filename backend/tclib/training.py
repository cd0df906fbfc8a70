"""
Training lifecycle: planned → in_progress → validated → archived.

Steps move one status at a time in either direction. Going back to
``planned`` drops the participant list. Participants are picked while a
training is in progress and attendance is recorded once it is validated.
"""
from dataclasses import dataclass, field, asdict, replace
from typing import Dict, Iterable, List, Optional

from .dates import parse_day
from .errors import InvalidArgument
from .models import Group, Subject, Viewer
from .visibility import visible_subjects

STATUS_ORDER = ('planned', 'in_progress', 'validated', 'archived')
ALL_TEAMS = 0


@dataclass(frozen=True)
class Participant:
    employee_id: int
    present: bool = False


@dataclass(frozen=True)
class Training:
    id: int
    title: str
    description: str = ''
    start_date: str = ''
    end_date: str = ''
    session_count: int = 1
    target_team_ids: tuple = ()
    status: str = 'planned'
    participants: tuple = field(default_factory=tuple)

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['target_team_ids'] = list(self.target_team_ids)
        data['participants'] = [asdict(p) for p in self.participants]
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'Training':
        status = data.get('status', 'planned')
        if status not in STATUS_ORDER:
            raise InvalidArgument(f"Unknown training status {status!r}")
        return cls(
            id=int(data['id']),
            title=data.get('title', ''),
            description=data.get('description', ''),
            start_date=data.get('start_date', ''),
            end_date=data.get('end_date', ''),
            session_count=int(data.get('session_count', 1)),
            target_team_ids=tuple(int(t) for t in data.get('target_team_ids', [])),
            status=status,
            participants=tuple(
                Participant(int(p['employee_id']), bool(p.get('present', False)))
                for p in data.get('participants', [])
            ),
        )


def validate(training: Training) -> Training:
    if not training.title.strip():
        raise InvalidArgument("Training title must not be empty")
    start = parse_day(training.start_date)
    end = parse_day(training.end_date)
    if start > end:
        raise InvalidArgument("Start date must be before end date")
    if not training.target_team_ids:
        raise InvalidArgument("Select at least one target team")
    if training.session_count < 1:
        raise InvalidArgument("Session count must be at least 1")
    return training


def advance(training: Training) -> Training:
    """Next status; archived trainings stay archived."""
    idx = STATUS_ORDER.index(training.status)
    if idx == len(STATUS_ORDER) - 1:
        return training
    return replace(training, status=STATUS_ORDER[idx + 1])


def revert(training: Training) -> Training:
    idx = STATUS_ORDER.index(training.status)
    if idx == 0:
        return training
    previous = STATUS_ORDER[idx - 1]
    if previous == 'planned':
        return replace(training, status=previous, participants=())
    return replace(training, status=previous)


def set_participants(training: Training, employee_ids: Iterable[int]) -> Training:
    """Replace the participant list, keeping known attendance flags.

    Participants are only chosen while the training is in progress.
    """
    if training.status != 'in_progress':
        raise InvalidArgument("Participants can only be changed while a training is in progress")
    known = {p.employee_id: p.present for p in training.participants}
    seen = []
    for emp_id in employee_ids:
        emp_id = int(emp_id)
        if emp_id not in seen:
            seen.append(emp_id)
    return replace(
        training,
        participants=tuple(Participant(e, known.get(e, False)) for e in seen),
    )


def merge_participants(training: Training, requested: Iterable[int], editable: Iterable[int]) -> List[int]:
    """Participant ids after a caller limited to ``editable`` submits ``requested``.

    Adding anyone outside ``editable`` is rejected. Current participants
    outside it stay on the list whether or not they were submitted.
    """
    current = [p.employee_id for p in training.participants]
    allowed = {int(e) for e in editable}
    wanted = []
    for emp_id in requested:
        emp_id = int(emp_id)
        if emp_id not in wanted:
            wanted.append(emp_id)
    rejected = sorted(e for e in wanted if e not in current and e not in allowed)
    if rejected:
        raise InvalidArgument(f"Not eligible for this training: {rejected}")
    return wanted + [e for e in current if e not in allowed and e not in wanted]


def set_attendance(training: Training, present_ids: Iterable[int]) -> Training:
    if training.status != 'validated':
        raise InvalidArgument("Attendance can only be recorded on a validated training")
    present = {int(e) for e in present_ids}
    return replace(
        training,
        participants=tuple(Participant(p.employee_id, p.employee_id in present)
                           for p in training.participants),
    )


def targets(training: Training, team_id: Optional[int]) -> bool:
    if ALL_TEAMS in training.target_team_ids:
        return True
    return team_id is not None and team_id in training.target_team_ids


def eligible_participants(training: Training, subjects: Iterable[Subject],
                          viewer: Viewer, groups: Iterable[Group]) -> List[Subject]:
    """Active subjects in targeted teams that the viewer may see."""
    pool = visible_subjects(subjects, viewer, groups)
    result = [s for s in pool if targets(training, s.team_id)]
    result.sort(key=lambda s: (s.category.lower(), s.full_name.lower()))
    return result


def by_status(trainings: Iterable[Training], status: str) -> List[Training]:
    if status not in STATUS_ORDER:
        raise InvalidArgument(f"Unknown training status {status!r}")
    return [t for t in trainings if t.status == status]


def attendees(trainings: Iterable[Training], start: Optional[str] = None,
              end: Optional[str] = None) -> Dict[int, List[Dict]]:
    """Archived trainings attended, per employee, within an optional date range."""
    lo = parse_day(start).isoformat() if start else None
    hi = parse_day(end).isoformat() if end else None
    result: Dict[int, List[Dict]] = {}
    for t in trainings:
        if t.status != 'archived':
            continue
        if lo and t.end_date < lo:
            continue
        if hi and t.start_date > hi:
            continue
        for p in t.participants:
            if p.present:
                result.setdefault(p.employee_id, []).append(
                    {'id': t.id, 'title': t.title, 'start_date': t.start_date, 'end_date': t.end_date}
                )
    return result
