"""Tests for the audit log."""
from tclib.audit import MAX_ENTRIES, AuditLog


class TestAuditLog:
    def test_newest_first_and_ids(self):
        log = AuditLog()
        log.add('UPDATE_PLANNING', 'first', 'alice')
        log.add('UPDATE_BONUS', 'second', 'bruno')
        rows = log.entries()
        assert [r['details'] for r in rows] == ['second', 'first']
        assert [r['id'] for r in rows] == [2, 1]

    def test_capped(self):
        log = AuditLog()
        for i in range(MAX_ENTRIES + 5):
            log.add('X', str(i))
        rows = log.entries()
        assert len(rows) == MAX_ENTRIES
        assert rows[0]['details'] == str(MAX_ENTRIES + 4)

    def test_filters(self):
        log = AuditLog()
        log.add('UPDATE_PLANNING', 'Shift change for Emp 1', 'alice')
        log.add('UPDATE_BONUS', 'Bonus update for Emp 2', 'bruno')
        assert len(log.filter(search='emp')) == 2
        assert [e['user'] for e in log.filter(action='UPDATE_BONUS')] == ['bruno']
        assert [e['action'] for e in log.filter(user='alice')] == ['UPDATE_PLANNING']
        assert log.filter(start='2999-01-01') == []
        assert log.actions() == ['UPDATE_BONUS', 'UPDATE_PLANNING']
        assert log.users() == ['alice', 'bruno']
