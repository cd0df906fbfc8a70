"""
Shared test fixtures for the Team Console backend tests.
"""
import os
import sys
import secrets
import pytest

# ── Python path setup ──────────────────────────────────────────────────────────
_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)


# ── Seed data ──────────────────────────────────────────────────────────────────

SETTINGS = {
    'shifts': [
        {'name': 'Matin', 'start': '06:00', 'end': '14:00', 'color': '#fde68a'},
        {'name': 'Soir', 'start': '14:00', 'end': '22:00', 'color': '#1e3a8a'},
    ],
    'absence_types': [
        {'name': 'Congé', 'color': '#f87171'},
        {'name': 'Maladie', 'color': '#a78bfa'},
    ],
    'holidays': [
        {'date': '2024-01-01', 'name': "Jour de l'an", 'type': 'civil'},
        {'date': '2024-04-10', 'name': 'Aïd el-Fitr', 'type': 'religious'},
    ],
}


def seed(db):
    """Two teams, five employees, catalogs and holidays.

    Team 1 "Accueil" is led by employee 1 and holds employees 1-3 (3 left on
    2024-02-01). Team 2 "Cuisine" is led by employee 4 and holds 4-5; employee
    5 is not bonus eligible.
    """
    for key, value in SETTINGS.items():
        db.update_setting(key, value)
    db.create_team({'name': 'Accueil'})
    db.create_team({'name': 'Cuisine'})
    db.create_employee({'first_name': 'Alice', 'last_name': 'Martin', 'matricule': 'A001',
                        'category': 'Agent', 'team_id': 1, 'is_bonus_eligible': True})
    db.create_employee({'first_name': 'Bruno', 'last_name': 'Petit', 'matricule': 'A002',
                        'category': 'Agent', 'team_id': 1, 'is_bonus_eligible': True})
    db.create_employee({'first_name': 'Chloé', 'last_name': 'Durand', 'matricule': 'A003',
                        'category': 'Agent', 'team_id': 1, 'is_bonus_eligible': True,
                        'entry_date': '2020-05-01', 'exit_date': '2024-02-01'})
    db.create_employee({'first_name': 'David', 'last_name': 'Roux', 'matricule': 'C001',
                        'category': 'Cuisinier', 'team_id': 2, 'is_bonus_eligible': True})
    db.create_employee({'first_name': 'Emma', 'last_name': 'Blanc', 'matricule': 'C002',
                        'category': 'Plongeur', 'team_id': 2, 'is_bonus_eligible': False})
    db.update_team(1, {'leader_id': 1})
    db.update_team(2, {'leader_id': 4})
    return db


# ── Mock user factories ────────────────────────────────────────────────────────

def _mock_admin():
    return {'id': 1, 'name': 'admin', 'role': 'admin', 'active': True, 'employee_id': None}

def _mock_editor():
    return {'id': 2, 'name': 'editor', 'role': 'editor', 'active': True, 'employee_id': None}

def _mock_viewer():
    return {'id': 3, 'name': 'viewer', 'role': 'viewer', 'active': True, 'employee_id': None}

def _mock_manager():
    return {'id': 4, 'name': 'alice', 'role': 'manager', 'active': True, 'employee_id': 1}

def _mock_orphan_manager():
    return {'id': 5, 'name': 'orphan', 'role': 'manager', 'active': True, 'employee_id': 2}


def _inject_token(user: dict) -> str:
    """Inject a session token for ``user`` into _sessions and return it."""
    from api.main import _sessions
    tok = secrets.token_hex(16)
    _sessions[tok] = {**user, 'expires_at': None}
    return tok


def _h(token: str) -> dict:
    return {'X-Auth-Token': token}


# ── Core fixtures ──────────────────────────────────────────────────────────────

@pytest.fixture
def mem_db():
    """Seeded in-memory database."""
    from tclib.database import ConsoleDatabase
    return seed(ConsoleDatabase.in_memory())


@pytest.fixture
def data_path(tmp_path, monkeypatch):
    """Function-scoped: fresh data directory, patched into api.main."""
    path = str(tmp_path / "data")
    os.makedirs(path)
    import api.main as main_module
    monkeypatch.setattr(main_module, 'DATA_PATH', path)
    monkeypatch.setenv('TC_DATA_PATH', path)
    return path


@pytest.fixture
def file_db(data_path):
    """Seeded JSON-file database in the patched data directory."""
    from tclib.database import ConsoleDatabase
    return seed(ConsoleDatabase(data_path))


@pytest.fixture
def app(file_db):
    from api.main import app as _app
    return _app


@pytest.fixture(autouse=True)
def _reset_rate_limits():
    from api.dependencies import limiter, _failed_logins
    limiter.reset()
    _failed_logins.clear()
    yield


def _client_for(app, user_fn):
    from starlette.testclient import TestClient
    from api.main import _sessions
    tok = _inject_token(user_fn())
    with TestClient(app, raise_server_exceptions=False) as c:
        c.headers['X-Auth-Token'] = tok
        yield c
    _sessions.pop(tok, None)


@pytest.fixture
def admin_client(app):
    yield from _client_for(app, _mock_admin)


@pytest.fixture
def editor_client(app):
    yield from _client_for(app, _mock_editor)


@pytest.fixture
def viewer_client(app):
    yield from _client_for(app, _mock_viewer)


@pytest.fixture
def manager_client(app):
    """Manager linked to employee 1, leader of team 1."""
    yield from _client_for(app, _mock_manager)


@pytest.fixture
def orphan_manager_client(app):
    """Manager whose linked employee leads no team."""
    yield from _client_for(app, _mock_orphan_manager)


@pytest.fixture
def anon_client(app):
    from starlette.testclient import TestClient
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c
