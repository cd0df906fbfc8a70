"""Tests for the sparse planning store."""
import pytest

from tclib.assignments import AssignmentStore, make_key, normalize_label, split_key
from tclib.errors import InvalidArgument
from tclib.storage import MemoryStore


@pytest.fixture
def store():
    return AssignmentStore(MemoryStore())


class TestKeys:
    def test_make_and_split(self):
        assert make_key(7, '2024-03-05') == '7_2024-03-05'
        assert split_key('7_2024-03-05') == (7, '2024-03-05')

    def test_bool_subject_rejected(self):
        with pytest.raises(InvalidArgument):
            make_key(True, '2024-03-05')

    @pytest.mark.parametrize('key', ['nounderscore', 'x_2024-01-01', '3_2024-1-1'])
    def test_malformed_keys(self, key):
        with pytest.raises(InvalidArgument):
            split_key(key)

    def test_normalize_label(self):
        assert normalize_label('  ') is None
        assert normalize_label('Matin') == 'Matin'
        with pytest.raises(InvalidArgument):
            normalize_label(42)


class TestReadWrite:
    def test_unassigned_cell_is_none(self, store):
        assert store.get(1, '2024-03-01') is None

    def test_write_then_read(self, store):
        store.set(1, '2024-03-01', 'Matin')
        assert store.get(1, '2024-03-01') == 'Matin'

    def test_idempotent_write(self, store):
        """Writing the same label twice leaves one key with that label."""
        store.set(1, '2024-03-01', 'Matin')
        store.set(1, '2024-03-01', 'Matin')
        assert dict(store.backend.items()) == {'1_2024-03-01': 'Matin'}

    @pytest.mark.parametrize('empty', ['', None, '   '])
    def test_clear_removes_key(self, store, empty):
        """Empty string and None both clear the cell; no blank is stored."""
        store.set(1, '2024-03-01', 'Soir')
        assert store.set(1, '2024-03-01', empty) is None
        assert '1_2024-03-01' not in store.backend
        assert len(store.backend) == 0

    def test_clear_unassigned_is_noop(self, store):
        assert store.clear(1, '2024-03-01') is False

    def test_unknown_label_is_stored_verbatim(self, store):
        store.set(2, '2024-03-01', 'XYZ-unregistered')
        assert store.get(2, '2024-03-01') == 'XYZ-unregistered'

    def test_malformed_day_rejected(self, store):
        with pytest.raises(InvalidArgument):
            store.set(1, '01/03/2024', 'Matin')

    def test_last_write_wins(self, store):
        store.set(1, '2024-03-01', 'Matin')
        store.set(1, '2024-03-01', 'Congé')
        assert store.get(1, '2024-03-01') == 'Congé'


class TestQueries:
    def _fill(self, store):
        store.set(1, '2024-02-28', 'Matin')
        store.set(1, '2024-03-01', 'Soir')
        store.set(2, '2024-03-02', 'Congé')
        store.set(12, '2024-03-03', 'Matin')

    def test_entries_half_open_range(self, store):
        self._fill(store)
        rows = list(store.entries(start='2024-03-01', end='2024-03-03'))
        assert sorted(rows) == [(1, '2024-03-01', 'Soir'), (2, '2024-03-02', 'Congé')]

    def test_entries_subject_filter_is_exact(self, store):
        """Subject 1 does not pick up subject 12's cells."""
        self._fill(store)
        assert {sid for sid, _, _ in store.entries([1])} == {1}

    def test_entries_skip_malformed_keys(self, store):
        self._fill(store)
        store.backend.set('garbage', 'Matin')
        assert len(list(store.entries())) == 4

    def test_grid_fills_gaps_with_none(self, store):
        self._fill(store)
        grid = store.grid([1, 2], ['2024-03-01', '2024-03-02'])
        assert grid == {
            1: {'2024-03-01': 'Soir', '2024-03-02': None},
            2: {'2024-03-01': None, '2024-03-02': 'Congé'},
        }

    def test_bounds(self, store):
        assert store.earliest() is None
        self._fill(store)
        assert store.earliest() == '2024-02-28'
        assert store.latest() == '2024-03-03'

    def test_clear_subject(self, store):
        self._fill(store)
        assert store.clear_subject(1) == 2
        assert store.get(12, '2024-03-03') == 'Matin'
