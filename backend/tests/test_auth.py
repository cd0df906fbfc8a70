"""Tests for login, logout, sessions and user management."""
import time

import pytest
from starlette.testclient import TestClient

from conftest import _h, _inject_token, _mock_viewer


class TestLogin:
    def test_bootstrap_admin_can_login(self, anon_client):
        res = anon_client.post('/api/auth/login', json={'username': 'admin', 'password': 'admin'})
        assert res.status_code == 200
        body = res.json()
        assert body['user']['role'] == 'admin'
        assert 'password_hash' not in body['user']
        me = anon_client.get('/api/auth/me', headers=_h(body['token']))
        assert me.status_code == 200 and me.json()['name'] == 'admin'

    def test_wrong_password(self, anon_client):
        res = anon_client.post('/api/auth/login', json={'username': 'admin', 'password': 'nope'})
        assert res.status_code == 401
        assert 'detail' in res.json()

    def test_lockout_after_repeated_failures(self, anon_client):
        from api.dependencies import _LOCKOUT_MAX, _failed_logins
        _failed_logins['admin'] = [time.time()] * _LOCKOUT_MAX
        res = anon_client.post('/api/auth/login', json={'username': 'admin', 'password': 'admin'})
        assert res.status_code == 429

    def test_missing_fields_is_422(self, anon_client):
        res = anon_client.post('/api/auth/login', json={'username': 'admin'})
        assert res.status_code == 422
        assert 'password' in res.json()['detail']

    def test_logout_invalidates_token(self, anon_client):
        tok = anon_client.post('/api/auth/login', json={'username': 'admin', 'password': 'admin'}).json()['token']
        assert anon_client.post('/api/auth/logout', headers=_h(tok)).json() == {'ok': True}
        assert anon_client.get('/api/auth/me', headers=_h(tok)).status_code == 401


class TestSessions:
    def test_no_token_is_401(self, anon_client):
        assert anon_client.get('/api/planning').status_code == 401

    def test_expired_token(self, anon_client):
        from api.main import _sessions
        _sessions['expired_tok'] = {**_mock_viewer(), 'expires_at': time.time() - 1}
        assert anon_client.get('/api/employees', headers=_h('expired_tok')).status_code == 401
        assert 'expired_tok' not in _sessions

    def test_token_query_param(self, anon_client):
        tok = _inject_token(_mock_viewer())
        assert anon_client.get(f'/api/auth/me?token={tok}').status_code == 200

    def test_dev_token_rejected_unless_dev_mode(self, anon_client, monkeypatch):
        import api.dependencies as deps
        monkeypatch.setattr(deps, '_DEV_MODE_ACTIVE', False)
        deps._sessions['__dev_mode__'] = {**deps._DEV_USER, 'expires_at': None}
        try:
            assert anon_client.get('/api/auth/me', headers=_h('__dev_mode__')).status_code == 401
            monkeypatch.setattr(deps, '_DEV_MODE_ACTIVE', True)
            res = anon_client.get('/api/auth/me', headers=_h('__dev_mode__'))
            assert res.status_code == 200 and res.json()['role'] == 'admin'
        finally:
            deps._sessions.pop('__dev_mode__', None)

    def test_public_endpoints(self, anon_client):
        assert anon_client.get('/api/health').json()['status'] == 'ok'
        assert anon_client.get('/api/version').json()['service'] == 'Team Console API'

    def test_security_headers(self, anon_client):
        res = anon_client.get('/api/health')
        assert res.headers['X-Frame-Options'] == 'DENY'
        assert len(res.headers['X-Request-ID']) == 8


class TestUserManagement:
    def test_admin_creates_user_who_can_login(self, admin_client, anon_client):
        res = admin_client.post('/api/users', json={'name': 'alice', 'password': 'pw', 'role': 'manager', 'employee_id': 1})
        assert res.status_code == 200
        login = anon_client.post('/api/auth/login', json={'username': 'alice', 'password': 'pw'})
        assert login.status_code == 200
        assert login.json()['user']['employee_id'] == 1

    def test_duplicate_user_409(self, admin_client):
        admin_client.post('/api/users', json={'name': 'bob', 'password': 'pw'})
        assert admin_client.post('/api/users', json={'name': 'Bob', 'password': 'pw'}).status_code == 409

    def test_bad_role_422(self, admin_client):
        res = admin_client.post('/api/users', json={'name': 'x', 'password': 'pw', 'role': 'root'})
        assert res.status_code == 422

    def test_role_change_revokes_sessions(self, admin_client, anon_client):
        created = admin_client.post('/api/users', json={'name': 'carl', 'password': 'pw'}).json()['record']
        tok = anon_client.post('/api/auth/login', json={'username': 'carl', 'password': 'pw'}).json()['token']
        admin_client.put(f"/api/users/{created['id']}", json={'role': 'editor'})
        assert anon_client.get('/api/auth/me', headers=_h(tok)).status_code == 401

    def test_update_missing_user_404(self, admin_client):
        assert admin_client.put('/api/users/999', json={'email': 'x@y.z'}).status_code == 404

    def test_non_admin_forbidden(self, editor_client):
        assert editor_client.get('/api/users').status_code == 403
