"""Typed records shared by the Team Console core and the API layer."""
from dataclasses import dataclass, field, asdict
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional

from .dates import parse_day

ROLES = ('admin', 'editor', 'viewer', 'manager')
UNRESTRICTED_ROLES = ('admin', 'editor', 'viewer')
SCOPED_ROLES = ('manager',)

# Day-off labels: always count as an absence even without a catalog entry.
DAY_OFF_LABELS = ('Repos', 'day-off')

NEUTRAL_COLOR = '#9ca3af'


class HolidayKind(str, Enum):
    CIVIL = 'civil'
    RELIGIOUS = 'religious'


@dataclass
class Subject:
    id: int
    first_name: str = ''
    last_name: str = ''
    matricule: str = ''
    category: str = ''
    assignment: str = ''
    team_id: Optional[int] = None
    team_function: str = ''
    is_bonus_eligible: bool = False
    birth_date: Optional[str] = None
    entry_date: Optional[str] = None
    exit_date: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def is_active(self, on: Optional[date] = None) -> bool:
        """Without a query date any exit date ends eligibility; with one,
        the subject is active strictly before the exit day."""
        if not self.exit_date:
            return True
        if on is None:
            return False
        return parse_day(on) < parse_day(self.exit_date)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Subject':
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        known['id'] = int(known['id'])
        if known.get('team_id') in ('', None):
            known['team_id'] = None
        else:
            known['team_id'] = int(known['team_id'])
        return cls(**known)


@dataclass
class Group:
    id: int
    name: str = ''
    leader_id: Optional[int] = None
    members: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Group':
        leader = data.get('leader_id')
        return cls(
            id=int(data['id']),
            name=data.get('name', ''),
            leader_id=int(leader) if leader not in ('', None) else None,
            members=[int(m) for m in data.get('members', [])],
        )


@dataclass
class Viewer:
    id: int
    name: str = ''
    role: str = 'viewer'
    email: str = ''
    active: bool = True
    employee_id: Optional[int] = None

    @property
    def is_scoped(self) -> bool:
        return self.role in SCOPED_ROLES

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Viewer':
        emp = data.get('employee_id')
        return cls(
            id=int(data['id']),
            name=data.get('name', ''),
            role=data.get('role', 'viewer'),
            email=data.get('email', ''),
            active=bool(data.get('active', True)),
            employee_id=int(emp) if emp not in ('', None) else None,
        )


@dataclass(frozen=True)
class ShiftDef:
    name: str
    start: str = ''
    end: str = ''
    color: str = NEUTRAL_COLOR


@dataclass(frozen=True)
class AbsenceType:
    name: str
    color: str = NEUTRAL_COLOR


@dataclass(frozen=True)
class Holiday:
    date: str
    name: str = ''
    type: HolidayKind = HolidayKind.RELIGIOUS

    @property
    def recurring(self) -> bool:
        return self.type == HolidayKind.CIVIL

    def to_dict(self) -> Dict[str, Any]:
        return {'date': self.date, 'name': self.name, 'type': self.type.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Holiday':
        kind = data.get('type') or HolidayKind.RELIGIOUS.value
        return cls(
            date=parse_day(data['date']).isoformat(),
            name=data.get('name', ''),
            type=HolidayKind(kind),
        )


@dataclass(frozen=True)
class Catalogs:
    """Read-only snapshot of the configured shift and absence catalogs."""
    shifts: tuple = ()
    absences: tuple = ()

    @classmethod
    def from_settings(cls, settings: Dict[str, Any]) -> 'Catalogs':
        shifts = tuple(
            ShiftDef(
                name=s['name'],
                start=s.get('start', ''),
                end=s.get('end', ''),
                color=s.get('color') or NEUTRAL_COLOR,
            )
            for s in settings.get('shifts', []) if s.get('name')
        )
        absences = tuple(
            AbsenceType(name=a['name'], color=a.get('color') or NEUTRAL_COLOR)
            for a in settings.get('absence_types', []) if a.get('name')
        )
        return cls(shifts=shifts, absences=absences)
