"""
High-level data access for the Team Console.

Each collection lives in its own key-value store (one JSON file per
collection on disk, or plain dicts in memory). The directories, catalogs and
holiday list are loaded as snapshots on every call and handed to the pure
core functions; nothing here caches state beyond what the stores do.
"""
import hashlib
import hmac
import logging
import os
import secrets
from datetime import date
from typing import Any, Dict, List, Optional

from . import training as _training
from .assignments import AssignmentStore
from .audit import AuditLog
from .bonus import BonusBook, eligible_subjects
from .classifier import PresenceState, classify, resolve_display
from .dashboard import day_summary
from .dates import current_month, local_today, normalize_day, normalize_month, parse_day
from .errors import InvalidArgument
from .holidays import find_ambiguous, holidays_in_year, is_holiday, overlay, upcoming
from .models import ROLES, Catalogs, Group, Holiday, Subject, Viewer
from .storage import JsonFileStore, KeyValueStore, MemoryStore
from .visibility import can_edit_subject, resolve_scope, visible_subjects
from .window import DayCursor

_logger = logging.getLogger(__name__)

_COLLECTIONS = ('employees', 'teams', 'users', 'settings', 'planning', 'bonuses', 'trainings', 'audit')

DEFAULT_SETTINGS: Dict[str, Any] = {
    'categories': [],
    'assignments': [],
    'shifts': [],
    'absence_types': [],
    'holidays': [],
    'date_format': 'DD/MM/YYYY',
    'language': 'fr',
}

_PBKDF2_ROUNDS = 120_000


class ConsoleDatabase:
    def __init__(self, db_path: Optional[str] = None, stores: Optional[Dict[str, KeyValueStore]] = None,
                 tz_name: Optional[str] = None):
        self.db_path = db_path
        self.tz_name = tz_name
        if stores is None:
            if db_path is None:
                raise ValueError("db_path or stores required")
            stores = {name: JsonFileStore(os.path.join(db_path, f"{name}.json")) for name in _COLLECTIONS}
        self._stores = stores
        self.planning = AssignmentStore(stores['planning'])
        self.bonuses = BonusBook(stores['bonuses'])
        self.audit = AuditLog(stores['audit'])

    @classmethod
    def in_memory(cls, tz_name: Optional[str] = None) -> 'ConsoleDatabase':
        return cls(stores={name: MemoryStore() for name in _COLLECTIONS}, tz_name=tz_name)

    def today(self) -> date:
        return local_today(self.tz_name)

    # ── Helpers ────────────────────────────────────────────────
    def _next_id(self, collection: str) -> int:
        ids = [int(k) for k in self._stores[collection].keys() if k.isdigit()]
        return max(ids, default=0) + 1

    def log_action(self, user: str, action: str, details: str = '') -> Dict:
        return self.audit.add(action, details, user)

    # ── Settings / catalogs ────────────────────────────────────
    def get_settings(self) -> Dict[str, Any]:
        store = self._stores['settings']
        result = dict(DEFAULT_SETTINGS)
        for key, value in store.items():
            result[key] = value
        return result

    def update_setting(self, key: str, value: Any, user: str = 'system') -> Dict[str, Any]:
        if key not in DEFAULT_SETTINGS:
            raise InvalidArgument(f"Unknown setting {key!r}")
        if isinstance(DEFAULT_SETTINGS[key], list) and not isinstance(value, list):
            raise InvalidArgument(f"Setting {key!r} must be a list")
        if key == 'holidays':
            try:
                value = [Holiday.from_dict(h).to_dict() for h in value]
            except (KeyError, TypeError, ValueError) as e:
                raise InvalidArgument(f"Invalid holiday entry: {e}")
        elif key in ('shifts', 'absence_types'):
            if any(not isinstance(e, dict) or not str(e.get('name', '')).strip() for e in value):
                raise InvalidArgument(f"Every {key} entry needs a name")
        self._stores['settings'].set(key, value)
        self.log_action(user, 'UPDATE_SETTINGS', f"Changed setting {key}")
        return self.get_settings()

    def catalogs(self) -> Catalogs:
        return Catalogs.from_settings(self.get_settings())

    def holidays(self) -> List[Holiday]:
        result = []
        for raw in self.get_settings().get('holidays', []):
            try:
                result.append(Holiday.from_dict(raw))
            except (InvalidArgument, KeyError, ValueError) as e:
                _logger.warning("Ignoring malformed holiday %r: %s", raw, e)
        return result

    def is_holiday(self, day, strict: bool = False) -> Optional[Holiday]:
        return is_holiday(day, self.holidays(), strict=strict)

    def get_holidays(self, year: Optional[int] = None) -> List[Dict]:
        if year is None:
            return [h.to_dict() for h in self.holidays()]
        return holidays_in_year(year, self.holidays())

    def upcoming_holidays(self, limit: int = 3) -> List[Dict]:
        return upcoming(self.today(), self.holidays(), limit)

    def holiday_conflicts(self) -> Dict[str, List[str]]:
        return find_ambiguous(self.holidays())

    # ── Employees ──────────────────────────────────────────────
    def get_employees(self) -> List[Subject]:
        rows = [Subject.from_dict(v) for _, v in self._stores['employees'].items()]
        rows.sort(key=lambda s: (s.first_name.lower(), s.last_name.lower(), s.id))
        return rows

    def get_employee(self, emp_id: int) -> Optional[Subject]:
        raw = self._stores['employees'].get(str(emp_id))
        return Subject.from_dict(raw) if raw else None

    @staticmethod
    def _check_employee_dates(subject: Subject) -> None:
        birth = parse_day(subject.birth_date) if subject.birth_date else None
        entry = parse_day(subject.entry_date) if subject.entry_date else None
        exit_ = parse_day(subject.exit_date) if subject.exit_date else None
        if birth and entry and entry < birth:
            raise InvalidArgument("Entry date cannot be before birth date")
        if birth and exit_ and exit_ < birth:
            raise InvalidArgument("Exit date cannot be before birth date")
        if entry and exit_ and exit_ < entry:
            raise InvalidArgument("Exit date cannot be before entry date")

    def create_employee(self, data: Dict, user: str = 'system') -> Subject:
        subject = Subject.from_dict({**data, 'id': self._next_id('employees')})
        self._check_employee_dates(subject)
        self._stores['employees'].set(str(subject.id), subject.to_dict())
        if subject.team_id is not None:
            self._add_member(subject.team_id, subject.id)
        self.log_action(user, 'CREATE_EMPLOYEE', f"Added employee {subject.full_name}")
        return subject

    def update_employee(self, emp_id: int, data: Dict, user: str = 'system') -> Subject:
        current = self.get_employee(emp_id)
        if current is None:
            raise KeyError(emp_id)
        merged = Subject.from_dict({**current.to_dict(), **data, 'id': emp_id})
        self._check_employee_dates(merged)
        self._stores['employees'].set(str(emp_id), merged.to_dict())
        if merged.team_id != current.team_id:
            if current.team_id is not None:
                self._remove_member(current.team_id, emp_id)
            if merged.team_id is not None:
                self._add_member(merged.team_id, emp_id)
        if data.get('exit_date'):
            self.log_action(user, 'EMPLOYEE_EXIT', f"Set exit date for ID {emp_id} to {data['exit_date']}")
        elif data.get('entry_date'):
            self.log_action(user, 'EMPLOYEE_ENTRY', f"Set entry date for ID {emp_id} to {data['entry_date']}")
        else:
            self.log_action(user, 'UPDATE_EMPLOYEE', f"Updated employee ID {emp_id}")
        return merged

    def delete_employee(self, emp_id: int, user: str = 'system') -> int:
        """Remove an employee with their planning cells, scores and team links."""
        subject = self.get_employee(emp_id)
        if subject is None:
            return 0
        self._stores['employees'].delete(str(emp_id))
        for group in self.get_teams():
            changed = False
            if emp_id in group.members:
                group.members = [m for m in group.members if m != emp_id]
                changed = True
            if group.leader_id == emp_id:
                group.leader_id = None
                changed = True
            if changed:
                self._stores['teams'].set(str(group.id), group.to_dict())
        cells = self.planning.clear_subject(emp_id)
        scores = self.bonuses.clear_subject(emp_id)
        self.log_action(user, 'DELETE_EMPLOYEE', f"Deleted employee {subject.full_name} ({emp_id})")
        _logger.info("Deleted employee %d (%d cells, %d scores)", emp_id, cells, scores)
        return 1

    # ── Teams ──────────────────────────────────────────────────
    def get_teams(self) -> List[Group]:
        rows = [Group.from_dict(v) for _, v in self._stores['teams'].items()]
        rows.sort(key=lambda g: (g.name.lower(), g.id))
        return rows

    def get_team(self, team_id: int) -> Optional[Group]:
        raw = self._stores['teams'].get(str(team_id))
        return Group.from_dict(raw) if raw else None

    def _set_employee_team(self, emp_id: int, team_id: Optional[int]) -> None:
        raw = self._stores['employees'].get(str(emp_id))
        if raw is not None:
            self._stores['employees'].set(str(emp_id), {**raw, 'team_id': team_id})

    def _add_member(self, team_id: int, emp_id: int) -> None:
        group = self.get_team(team_id)
        if group is not None and emp_id not in group.members:
            group.members.append(emp_id)
            self._stores['teams'].set(str(team_id), group.to_dict())

    def _remove_member(self, team_id: int, emp_id: int) -> None:
        group = self.get_team(team_id)
        if group is not None and emp_id in group.members:
            group.members = [m for m in group.members if m != emp_id]
            self._stores['teams'].set(str(team_id), group.to_dict())

    def create_team(self, data: Dict, user: str = 'system') -> Group:
        group = Group.from_dict({**data, 'id': self._next_id('teams')})
        self._stores['teams'].set(str(group.id), group.to_dict())
        for emp_id in group.members:
            self._set_employee_team(emp_id, group.id)
        self.log_action(user, 'CREATE_TEAM', f"Created team {group.name}")
        return group

    def update_team(self, team_id: int, data: Dict, user: str = 'system') -> Group:
        """Update a team; a new member list moves employees in and out."""
        current = self.get_team(team_id)
        if current is None:
            raise KeyError(team_id)
        merged = Group.from_dict({**current.to_dict(), **data, 'id': team_id})
        self._stores['teams'].set(str(team_id), merged.to_dict())
        if 'members' in data:
            for emp_id in set(current.members) - set(merged.members):
                self._set_employee_team(emp_id, None)
            for emp_id in set(merged.members) - set(current.members):
                self._set_employee_team(emp_id, team_id)
        self.log_action(user, 'UPDATE_TEAM', f"Updated team {current.name} details/members")
        return merged

    def delete_team(self, team_id: int, user: str = 'system') -> int:
        group = self.get_team(team_id)
        if group is None:
            return 0
        self._stores['teams'].delete(str(team_id))
        for subject in self.get_employees():
            if subject.team_id == team_id:
                self._set_employee_team(subject.id, None)
        self.log_action(user, 'DELETE_TEAM', f"Deleted team {group.name}")
        return 1

    # ── Users ──────────────────────────────────────────────────
    @staticmethod
    def _hash_password(password: str, salt: Optional[str] = None) -> str:
        salt = salt or secrets.token_hex(16)
        digest = hashlib.pbkdf2_hmac('sha256', password.encode('utf-8'), bytes.fromhex(salt), _PBKDF2_ROUNDS)
        return f"{salt}${digest.hex()}"

    @staticmethod
    def _public_user(raw: Dict) -> Dict:
        return {k: v for k, v in raw.items() if k != 'password_hash'}

    def get_users(self) -> List[Dict]:
        rows = [self._public_user(v) for _, v in self._stores['users'].items()]
        rows.sort(key=lambda u: u.get('id', 0))
        return rows

    def get_viewer(self, user_id: int) -> Optional[Viewer]:
        raw = self._stores['users'].get(str(user_id))
        return Viewer.from_dict(raw) if raw else None

    def create_user(self, data: Dict, user: str = 'system') -> Dict:
        name = (data.get('name') or '').strip()
        if not name:
            raise InvalidArgument("User name must not be empty")
        if data.get('role', 'viewer') not in ROLES:
            raise InvalidArgument(f"Unknown role {data.get('role')!r}")
        if any(u.get('name', '').lower() == name.lower() for u in self.get_users()):
            raise ValueError(f"DUPLICATE:USERNAME:{name}")
        viewer = Viewer.from_dict({**data, 'id': self._next_id('users'), 'name': name})
        record = viewer.to_dict()
        if data.get('password'):
            record['password_hash'] = self._hash_password(data['password'])
        self._stores['users'].set(str(viewer.id), record)
        self.log_action(user, 'CREATE_USER', f"Created user {name}")
        return self._public_user(record)

    def update_user(self, user_id: int, data: Dict, user: str = 'system') -> Dict:
        raw = self._stores['users'].get(str(user_id))
        if raw is None:
            raise KeyError(user_id)
        if 'role' in data and data['role'] not in ROLES:
            raise InvalidArgument(f"Unknown role {data['role']!r}")
        record = {**raw, **{k: v for k, v in data.items() if k != 'password'}, 'id': user_id}
        if data.get('password'):
            record['password_hash'] = self._hash_password(data['password'])
        self._stores['users'].set(str(user_id), record)
        self.log_action(user, 'UPDATE_USER', f"Updated user ID {user_id}")
        return self._public_user(record)

    def delete_user(self, user_id: int, user: str = 'system') -> int:
        if not self._stores['users'].delete(str(user_id)):
            return 0
        self.log_action(user, 'DELETE_USER', f"Deleted user ID {user_id}")
        return 1

    def verify_user_password(self, name: str, password: str) -> Optional[Dict]:
        """Verify username+password, return the public user dict or None."""
        for _, raw in self._stores['users'].items():
            if raw.get('name', '').strip().lower() != name.strip().lower():
                continue
            if not raw.get('active', True):
                return None
            stored = raw.get('password_hash', '')
            if '$' not in stored:
                return None
            salt, _ = stored.split('$', 1)
            if hmac.compare_digest(self._hash_password(password, salt), stored):
                return self._public_user(raw)
            return None
        return None

    def ensure_admin(self, password: str) -> Optional[Dict]:
        """Create an ``admin`` user when the user store is empty."""
        if self.get_users():
            return None
        created = self.create_user({'name': 'admin', 'role': 'admin', 'password': password})
        _logger.info("Created bootstrap admin user")
        return created

    # ── Visibility ─────────────────────────────────────────────
    def visible_subjects(self, viewer: Viewer, include_exited: bool = False,
                         group_id: Optional[int] = None, on=None) -> List[Subject]:
        return visible_subjects(self.get_employees(), viewer, self.get_teams(),
                                include_exited=include_exited, on=on, group_filter=group_id)

    def scope(self, viewer: Viewer, group_id: Optional[int] = None):
        return resolve_scope(viewer, self.get_teams(), group_id)

    def can_edit(self, viewer: Viewer, emp_id: int) -> bool:
        subject = self.get_employee(emp_id)
        return subject is not None and can_edit_subject(viewer, subject, self.get_teams())

    # ── Planning ───────────────────────────────────────────────
    def read_assignment(self, emp_id: int, day) -> Optional[str]:
        return self.planning.get(emp_id, day)

    def write_assignment(self, emp_id: int, day, label: Optional[str], user: str = 'system') -> Optional[str]:
        before = self.planning.get(emp_id, day)
        stored = self.planning.set(emp_id, day, label)
        if stored != before:
            self.log_action(user, 'UPDATE_PLANNING',
                            f"Shift change for Emp {emp_id} on {normalize_day(day)}: {before or '-'} -> {stored or '-'}")
        return stored

    def classify_status(self, label: Optional[str]) -> PresenceState:
        return classify(label, self.catalogs())

    def planning_window(self, viewer: Viewer, start=None, days: int = 7,
                        group_id: Optional[int] = None, search: str = '') -> Dict:
        """Day-window grid for the subjects visible to ``viewer``."""
        cursor = DayCursor(start, days, today=self.today())
        scope = self.scope(viewer, group_id)
        subjects = self.visible_subjects(viewer, group_id=group_id)
        needle = search.strip().lower()
        if needle:
            subjects = [s for s in subjects if needle in s.first_name.lower()
                        or needle in s.last_name.lower() or needle in s.matricule.lower()]
        catalogs = self.catalogs()
        grid = self.planning.grid([s.id for s in subjects], cursor.days)
        rows = []
        for s in subjects:
            cells = {}
            for d, label in grid[s.id].items():
                cells[d] = {
                    'label': label,
                    'state': classify(label, catalogs).value,
                    'display': resolve_display(label, catalogs).to_dict() if label else None,
                }
            rows.append({'employee_id': s.id, 'name': s.full_name, 'matricule': s.matricule,
                         'team_id': s.team_id, 'cells': cells})
        return {
            'window': cursor.to_dict(),
            'scope': {'group_id': scope.group_id, 'locked': scope.locked},
            'holidays': overlay(cursor.days, self.holidays()),
            'bounds': {'earliest': self.planning.earliest(), 'latest': self.planning.latest()},
            'rows': rows,
        }

    def dashboard(self, viewer: Viewer, day=None) -> Dict:
        iso = normalize_day(day) if day else self.today().isoformat()
        subjects = self.visible_subjects(viewer, include_exited=True)
        scope = self.scope(viewer)
        teams = self.get_teams()
        if scope.group_id is not None:
            teams = [t for t in teams if t.id == scope.group_id]
        elif scope.empty:
            teams = []
        return day_summary(iso, subjects, teams, self.planning, self.catalogs(), self.holidays())

    # ── Bonus ──────────────────────────────────────────────────
    def set_bonus(self, emp_id: int, month: str, amount, user: str = 'system') -> Optional[float]:
        stored = self.bonuses.set(emp_id, month, amount, today=self.today())
        self.log_action(user, 'UPDATE_BONUS', f"Bonus update for Emp {emp_id} ({month}): {stored or 0}")
        return stored

    def bonus_sheet(self, viewer: Viewer, month: str, group_id: Optional[int] = None,
                    search: str = '', group_by_category: bool = True) -> Dict:
        subjects = eligible_subjects(self.get_employees(), viewer, self.get_teams(),
                                     group_filter=group_id, search=search,
                                     group_by_category=group_by_category)
        month = normalize_month(month)
        scope = self.scope(viewer, group_id)
        return {
            'month': month,
            'locked': month > current_month(self.today()),
            'scope': {'group_id': scope.group_id, 'locked': scope.locked},
            'rows': [
                {'employee_id': s.id, 'name': s.full_name, 'matricule': s.matricule,
                 'category': s.category, 'amount': self.bonuses.get(s.id, month)}
                for s in subjects
            ],
        }

    def bonus_history(self, viewer: Viewer, size: int = 3, offset: int = 0,
                      name_filter: str = '') -> Dict:
        cursor = self.bonuses.cursor(size=size, offset=offset, today=self.today())
        subjects = self.visible_subjects(viewer, include_exited=True)
        return {
            **cursor.to_dict(),
            'rows': self.bonuses.history(subjects, cursor, name_filter=name_filter),
        }

    # ── Trainings ──────────────────────────────────────────────
    def get_trainings(self, status: Optional[str] = None) -> List[_training.Training]:
        rows = [_training.Training.from_dict(v) for _, v in self._stores['trainings'].items()]
        rows.sort(key=lambda t: (t.start_date, t.id))
        if status:
            rows = _training.by_status(rows, status)
        return rows

    def get_training(self, training_id: int) -> Optional[_training.Training]:
        raw = self._stores['trainings'].get(str(training_id))
        return _training.Training.from_dict(raw) if raw else None

    def _save_training(self, tr: _training.Training) -> _training.Training:
        self._stores['trainings'].set(str(tr.id), tr.to_dict())
        return tr

    def create_training(self, data: Dict, user: str = 'system') -> _training.Training:
        tr = _training.Training.from_dict({**data, 'id': self._next_id('trainings'),
                                           'status': 'planned', 'participants': []})
        _training.validate(tr)
        self.log_action(user, 'CREATE_TRAINING', f"Created training {tr.title}")
        return self._save_training(tr)

    def update_training(self, training_id: int, data: Dict, user: str = 'system') -> _training.Training:
        current = self.get_training(training_id)
        if current is None:
            raise KeyError(training_id)
        editable = {k: v for k, v in data.items() if k not in ('id', 'status', 'participants')}
        tr = _training.Training.from_dict({**current.to_dict(), **editable})
        _training.validate(tr)
        self.log_action(user, 'UPDATE_TRAINING', f"Updated training {tr.title}")
        return self._save_training(tr)

    def step_training(self, training_id: int, forward: bool = True, user: str = 'system') -> _training.Training:
        current = self.get_training(training_id)
        if current is None:
            raise KeyError(training_id)
        tr = _training.advance(current) if forward else _training.revert(current)
        if tr.status != current.status:
            self.log_action(user, 'UPDATE_TRAINING',
                            f"Training {tr.title}: {current.status} -> {tr.status}")
        return self._save_training(tr)

    def set_training_participants(self, training_id: int, employee_ids: List[int],
                                  viewer: Optional[Viewer] = None, user: str = 'system') -> _training.Training:
        """Replace the participants; with a ``viewer``, only their candidates change."""
        current = self.get_training(training_id)
        if current is None:
            raise KeyError(training_id)
        if viewer is not None:
            editable = {s.id for s in _training.eligible_participants(
                current, self.get_employees(), viewer, self.get_teams())}
            editable |= {s.id for s in self.visible_subjects(viewer, include_exited=True)
                         if s.id in {p.employee_id for p in current.participants}}
            employee_ids = _training.merge_participants(current, employee_ids, editable)
        tr = _training.set_participants(current, employee_ids)
        self.log_action(user, 'TRAINING_PARTICIPANTS',
                        f"Participants for {tr.title}: {len(tr.participants)}")
        return self._save_training(tr)

    def set_training_attendance(self, training_id: int, present_ids: List[int],
                                user: str = 'system') -> _training.Training:
        current = self.get_training(training_id)
        if current is None:
            raise KeyError(training_id)
        tr = _training.set_attendance(current, present_ids)
        self.log_action(user, 'TRAINING_ATTENDANCE',
                        f"Attendance for {tr.title}: {sum(p.present for p in tr.participants)} present")
        return self._save_training(tr)

    def training_candidates(self, training_id: int, viewer: Viewer) -> List[Subject]:
        current = self.get_training(training_id)
        if current is None:
            raise KeyError(training_id)
        return _training.eligible_participants(current, self.get_employees(), viewer, self.get_teams())

    def delete_training(self, training_id: int, user: str = 'system') -> int:
        current = self.get_training(training_id)
        if current is None:
            return 0
        self._stores['trainings'].delete(str(training_id))
        self.log_action(user, 'DELETE_TRAINING', f"Deleted training {current.title}")
        return 1

    # ── Stats ──────────────────────────────────────────────────
    def get_stats(self) -> Dict[str, int]:
        return {
            'employees': len(self._stores['employees']),
            'teams': len(self._stores['teams']),
            'users': len(self._stores['users']),
            'planning_cells': len(self._stores['planning']),
            'bonuses': len(self._stores['bonuses']),
            'trainings': len(self._stores['trainings']),
        }
