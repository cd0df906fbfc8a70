"""Tests for the training routes."""
import pytest

BODY = {'title': 'Hygiène HACCP', 'start_date': '2024-03-04', 'end_date': '2024-03-05',
        'session_count': 2, 'target_team_ids': [2]}


@pytest.fixture
def training_id(editor_client):
    return editor_client.post('/api/trainings', json=BODY).json()['record']['id']


class TestTrainings:
    def test_create_and_list(self, editor_client, training_id):
        rows = editor_client.get('/api/trainings').json()
        assert rows[0]['id'] == training_id and rows[0]['status'] == 'planned'
        assert editor_client.get('/api/trainings?status=archived').json() == []

    def test_invalid_body(self, editor_client):
        assert editor_client.post('/api/trainings', json={**BODY, 'target_team_ids': []}).status_code == 422
        assert editor_client.post('/api/trainings', json={**BODY, 'end_date': '2024-03-01'}).status_code == 400

    def test_viewer_cannot_create(self, viewer_client):
        assert viewer_client.post('/api/trainings', json=BODY).status_code == 403

    def test_lifecycle(self, editor_client, training_id):
        base = f'/api/trainings/{training_id}'
        assert editor_client.put(f'{base}/participants', json={'employee_ids': [4]}).status_code == 400
        assert editor_client.put(f'{base}/attendance', json={'present_ids': [4]}).status_code == 400
        assert editor_client.post(f'{base}/advance').json()['record']['status'] == 'in_progress'
        res = editor_client.put(f'{base}/participants', json={'employee_ids': [4, 5]})
        assert [p['employee_id'] for p in res.json()['record']['participants']] == [4, 5]
        assert editor_client.put(f'{base}/attendance', json={'present_ids': [5]}).status_code == 400
        assert editor_client.post(f'{base}/advance').json()['record']['status'] == 'validated'
        assert editor_client.put(f'{base}/participants', json={'employee_ids': [4]}).status_code == 400
        res = editor_client.put(f'{base}/attendance', json={'present_ids': [5]})
        assert [p['present'] for p in res.json()['record']['participants']] == [False, True]
        editor_client.post(f'{base}/revert')
        res = editor_client.post(f'{base}/revert')
        assert res.json()['record']['participants'] == []

    def test_ineligible_participant(self, editor_client, training_id):
        editor_client.post(f'/api/trainings/{training_id}/advance')
        res = editor_client.put(f'/api/trainings/{training_id}/participants', json={'employee_ids': [1]})
        assert res.status_code == 400

    def test_candidates_respect_manager_scope(self, manager_client, editor_client):
        tid = editor_client.post('/api/trainings', json={**BODY, 'target_team_ids': [0]}).json()['record']['id']
        ids = [c['id'] for c in manager_client.get(f'/api/trainings/{tid}/candidates').json()]
        assert ids == [1, 2]

    def test_attendees_report(self, editor_client, training_id):
        base = f'/api/trainings/{training_id}'
        editor_client.post(f'{base}/advance')
        editor_client.put(f'{base}/participants', json={'employee_ids': [4]})
        editor_client.post(f'{base}/advance')
        editor_client.put(f'{base}/attendance', json={'present_ids': [4]})
        editor_client.post(f'{base}/advance')
        report = editor_client.get('/api/trainings/attendees').json()
        assert list(report) == ['4']

    def test_missing_training(self, editor_client):
        assert editor_client.get('/api/trainings/77').status_code == 404
        assert editor_client.post('/api/trainings/77/advance').status_code == 404
        assert editor_client.delete('/api/trainings/77').status_code == 404


class TestManagerTrainings:
    @pytest.fixture
    def open_training(self, editor_client):
        tid = editor_client.post('/api/trainings', json={**BODY, 'target_team_ids': [0]}).json()['record']['id']
        editor_client.post(f'/api/trainings/{tid}/advance')
        editor_client.put(f'/api/trainings/{tid}/participants', json={'employee_ids': [1, 4]})
        return tid

    def _participants(self, res):
        return [p['employee_id'] for p in res.json()['record']['participants']]

    def test_manager_keeps_other_team_participants(self, manager_client, open_training):
        url = f'/api/trainings/{open_training}/participants'
        res = manager_client.put(url, json={'employee_ids': [1, 2, 4]})
        assert res.status_code == 200
        assert self._participants(res) == [1, 2, 4]
        res = manager_client.put(url, json={'employee_ids': [1, 2]})
        assert self._participants(res) == [1, 2, 4]
        res = manager_client.put(url, json={'employee_ids': []})
        assert self._participants(res) == [4]

    def test_manager_cannot_add_other_team(self, manager_client, open_training):
        res = manager_client.put(f'/api/trainings/{open_training}/participants', json={'employee_ids': [1, 5]})
        assert res.status_code == 400
        assert '[5]' in res.json()['detail']

    def test_participant_change_is_audited(self, manager_client, admin_client, open_training):
        manager_client.put(f'/api/trainings/{open_training}/participants', json={'employee_ids': [2]})
        actions = [e['action'] for e in admin_client.get('/api/audit').json()['items']]
        assert actions[0] == 'TRAINING_PARTICIPANTS'

    @pytest.mark.parametrize('method,suffix,body', [
        ('post', '/advance', None),
        ('post', '/revert', None),
        ('delete', '', None),
        ('put', '', BODY),
        ('put', '/attendance', {'present_ids': [1]}),
    ])
    def test_manager_cannot_manage_training(self, manager_client, open_training, method, suffix, body):
        url = f'/api/trainings/{open_training}{suffix}'
        kwargs = {'json': body} if body is not None else {}
        assert getattr(manager_client, method)(url, **kwargs).status_code == 403

    def test_manager_cannot_create(self, manager_client):
        assert manager_client.post('/api/trainings', json=BODY).status_code == 403

    def test_viewer_cannot_set_participants(self, viewer_client, open_training):
        res = viewer_client.put(f'/api/trainings/{open_training}/participants', json={'employee_ids': [1]})
        assert res.status_code == 403
