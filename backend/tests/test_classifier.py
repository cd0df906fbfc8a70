"""Tests for presence classification and label display."""
import pytest

from tclib.classifier import MatchKind, PresenceState, classify, lookup, resolve_display
from tclib.color_utils import hex_to_rgb, is_light_color, normalize_hex, with_alpha
from tclib.models import Catalogs


@pytest.fixture
def catalogs():
    return Catalogs.from_settings({
        'shifts': [
            {'name': 'Matin', 'start': '06:00', 'end': '14:00', 'color': '#fde68a'},
            {'name': 'Nuit', 'color': '#1e1b4b'},
        ],
        'absence_types': [{'name': 'Congé', 'color': '#f87171'}, {'name': ''}],
    })


class TestClassify:
    @pytest.mark.parametrize('label', [None, '', '   '])
    def test_empty_is_unassigned(self, catalogs, label):
        assert classify(label, catalogs) == PresenceState.UNASSIGNED

    def test_absence_catalog(self, catalogs):
        assert classify('Congé', catalogs) == PresenceState.ABSENT

    def test_day_off_is_absent_without_catalog(self):
        assert classify('Repos', Catalogs()) == PresenceState.ABSENT

    def test_day_off_sentinel_is_absent(self, catalogs):
        assert classify('day-off', catalogs) == PresenceState.ABSENT
        assert classify('day-off', Catalogs()) == PresenceState.ABSENT

    def test_shift_is_present(self, catalogs):
        assert classify('Matin', catalogs) == PresenceState.PRESENT

    def test_unknown_label_is_present(self, catalogs):
        assert classify('XYZ-unregistered', catalogs) == PresenceState.PRESENT

    @pytest.mark.parametrize('label', ['Matin', 'Congé', 'Repos', 'anything', '', None, 'congé'])
    def test_total(self, catalogs, label):
        assert classify(label, catalogs) in set(PresenceState)

    def test_match_is_case_sensitive(self, catalogs):
        assert classify('congé', catalogs) == PresenceState.PRESENT


class TestDisplay:
    def test_shift_display(self, catalogs):
        d = resolve_display('Matin', catalogs)
        assert d.kind == MatchKind.SHIFT
        assert d.color == '#FDE68A'
        assert d.light is True
        assert d.time_range == '06:00-14:00'

    def test_dark_shift_has_light_text(self, catalogs):
        d = resolve_display('Nuit', catalogs)
        assert d.light is False
        assert d.time_range is None

    def test_absence_display(self, catalogs):
        assert lookup('Congé', catalogs).kind == MatchKind.ABSENCE
        assert resolve_display('Congé', catalogs).to_dict()['kind'] == 'absence'

    def test_unknown_label_gets_neutral_color(self, catalogs):
        d = resolve_display('Deleted shift', catalogs)
        assert d.kind == MatchKind.UNKNOWN
        assert d.color == '#9CA3AF'
        assert d.label == 'Deleted shift'

    def test_blank_catalog_entries_dropped(self, catalogs):
        assert [a.name for a in catalogs.absences] == ['Congé']


class TestColorUtils:
    def test_normalize_short_hex(self):
        assert normalize_hex('#abc') == '#AABBCC'
        assert normalize_hex('fde68a') == '#FDE68A'

    def test_invalid_falls_back(self):
        assert normalize_hex('red') == '#9CA3AF'
        assert normalize_hex(None) == '#9CA3AF'

    def test_rgb(self):
        assert hex_to_rgb('#FF8000') == (255, 128, 0)

    def test_light_detection(self):
        assert is_light_color('#FFFFFF') is True
        assert is_light_color('#000000') is False

    def test_alpha(self):
        assert with_alpha('#abc', 0x1F) == '#AABBCC1F'
        assert with_alpha('#000000', 999) == '#000000FF'
