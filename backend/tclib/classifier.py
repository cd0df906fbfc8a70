"""
Presence classification and display attributes for planning labels.

Labels are matched against the catalogs at read time only, so a label whose
catalog entry was deleted still classifies and renders: it is treated as
worked time and drawn in the neutral color.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from .color_utils import is_light_color, normalize_hex, with_alpha
from .models import DAY_OFF_LABELS, NEUTRAL_COLOR, AbsenceType, Catalogs, ShiftDef

# Cell background tint (~12%) over the label color.
_TINT_ALPHA = 0x1F


class PresenceState(str, Enum):
    PRESENT = 'present'
    ABSENT = 'absent'
    UNASSIGNED = 'unassigned'


class MatchKind(str, Enum):
    SHIFT = 'shift'
    ABSENCE = 'absence'
    UNKNOWN = 'unknown'


@dataclass(frozen=True)
class CatalogMatch:
    """Tagged result of a catalog lookup. ``entry`` is None for UNKNOWN."""
    kind: MatchKind
    entry: Optional[Union[ShiftDef, AbsenceType]] = None


@dataclass(frozen=True)
class LabelDisplay:
    label: str
    kind: MatchKind
    color: str
    light: bool
    start: Optional[str] = None
    end: Optional[str] = None

    @property
    def time_range(self) -> Optional[str]:
        if self.start and self.end:
            return f"{self.start}-{self.end}"
        return None

    def to_dict(self) -> dict:
        return {
            'label': self.label,
            'kind': self.kind.value,
            'color': self.color,
            'light': self.light,
            'background': with_alpha(self.color, _TINT_ALPHA),
            'start': self.start,
            'end': self.end,
            'time_range': self.time_range,
        }


def lookup(label: Optional[str], catalogs: Catalogs) -> CatalogMatch:
    """Shift catalog first, then absence catalog, by exact name."""
    if label:
        for shift in catalogs.shifts:
            if shift.name == label:
                return CatalogMatch(MatchKind.SHIFT, shift)
        for absence in catalogs.absences:
            if absence.name == label:
                return CatalogMatch(MatchKind.ABSENCE, absence)
    return CatalogMatch(MatchKind.UNKNOWN)


def is_absence_label(label: Optional[str], catalogs: Catalogs) -> bool:
    if not label:
        return False
    if label in DAY_OFF_LABELS:
        return True
    return any(a.name == label for a in catalogs.absences)


def classify(label: Optional[str], catalogs: Catalogs) -> PresenceState:
    if not label or not label.strip():
        return PresenceState.UNASSIGNED
    if is_absence_label(label, catalogs):
        return PresenceState.ABSENT
    # Unknown labels count as worked time, not absence.
    return PresenceState.PRESENT


def resolve_display(label: Optional[str], catalogs: Catalogs) -> LabelDisplay:
    match = lookup(label, catalogs)
    if match.kind == MatchKind.SHIFT:
        color = normalize_hex(match.entry.color)
        return LabelDisplay(
            label=label, kind=match.kind, color=color, light=is_light_color(color),
            start=match.entry.start or None, end=match.entry.end or None,
        )
    if match.kind == MatchKind.ABSENCE:
        color = normalize_hex(match.entry.color)
        return LabelDisplay(label=label, kind=match.kind, color=color, light=is_light_color(color))
    color = normalize_hex(NEUTRAL_COLOR)
    return LabelDisplay(label=label or '', kind=MatchKind.UNKNOWN, color=color, light=is_light_color(color))
