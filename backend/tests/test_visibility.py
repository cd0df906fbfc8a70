"""Tests for role-scoped visibility."""
import pytest

from tclib.models import Group, Subject, Viewer
from tclib.visibility import can_edit_subject, managed_group, resolve_scope, visible_subjects


@pytest.fixture
def groups():
    return [Group(1, 'Accueil', leader_id=10, members=[10, 11]), Group(2, 'Cuisine', leader_id=20, members=[20, 21])]


@pytest.fixture
def subjects():
    return [
        Subject(10, 'Alice', team_id=1),
        Subject(11, 'Bruno', team_id=1, exit_date='2024-02-01'),
        Subject(20, 'David', team_id=2),
        Subject(21, 'Emma', team_id=2),
        Subject(30, 'Farid'),
    ]


class TestScope:
    @pytest.mark.parametrize('role', ['admin', 'editor', 'viewer'])
    def test_unrestricted_roles_see_everyone_active(self, subjects, groups, role):
        ids = [s.id for s in visible_subjects(subjects, Viewer(1, role=role), groups)]
        assert ids == [10, 20, 21, 30]

    def test_unrestricted_group_filter(self, subjects, groups):
        ids = [s.id for s in visible_subjects(subjects, Viewer(1, role='admin'), groups, group_filter=2)]
        assert ids == [20, 21]

    def test_manager_sees_own_team_only(self, subjects, groups):
        mgr = Viewer(2, role='manager', employee_id=20)
        assert [s.id for s in visible_subjects(subjects, mgr, groups)] == [20, 21]

    def test_manager_cannot_widen_with_filter(self, subjects, groups):
        mgr = Viewer(2, role='manager', employee_id=20)
        scope = resolve_scope(mgr, groups, requested_group=1)
        assert scope.group_id == 2 and scope.locked
        assert [s.id for s in visible_subjects(subjects, mgr, groups, group_filter=1)] == [20, 21]

    def test_manager_without_group_sees_nothing(self, subjects, groups):
        mgr = Viewer(3, role='manager', employee_id=21)
        assert managed_group(mgr, groups) is None
        assert visible_subjects(subjects, mgr, groups) == []

    def test_manager_without_linked_employee_sees_nothing(self, subjects, groups):
        assert visible_subjects(subjects, Viewer(3, role='manager'), groups) == []

    def test_unknown_role_denied(self, subjects, groups):
        assert visible_subjects(subjects, Viewer(4, role='superuser'), groups) == []


class TestExited:
    def test_include_exited(self, subjects, groups):
        ids = [s.id for s in visible_subjects(subjects, Viewer(1, role='admin'), groups, include_exited=True)]
        assert 11 in ids

    def test_active_before_exit_day(self, subjects, groups):
        admin = Viewer(1, role='admin')
        assert 11 in [s.id for s in visible_subjects(subjects, admin, groups, on='2024-01-31')]
        assert 11 not in [s.id for s in visible_subjects(subjects, admin, groups, on='2024-02-01')]


class TestCanEdit:
    def test_editor_edits_anyone(self, subjects, groups):
        assert can_edit_subject(Viewer(1, role='editor'), subjects[3], groups)

    def test_viewer_never_edits(self, subjects, groups):
        assert not can_edit_subject(Viewer(1, role='viewer'), subjects[0], groups)

    def test_manager_edits_own_team(self, subjects, groups):
        mgr = Viewer(2, role='manager', employee_id=10)
        assert can_edit_subject(mgr, subjects[0], groups)
        assert not can_edit_subject(mgr, subjects[2], groups)

    def test_inactive_viewer(self, subjects, groups):
        assert not can_edit_subject(Viewer(1, role='admin', active=False), subjects[0], groups)
