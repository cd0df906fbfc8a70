"""Presence summary for one day: who works, who is off, per-team recap."""
from collections import defaultdict
from typing import Dict, Iterable, List, Sequence

from .assignments import AssignmentStore
from .classifier import PresenceState, classify, resolve_display
from .dates import normalize_day
from .holidays import is_holiday
from .models import Catalogs, Group, Holiday, Subject


def _brief(subject: Subject) -> Dict:
    return {
        'id': subject.id,
        'name': subject.full_name,
        'matricule': subject.matricule,
        'team_id': subject.team_id,
        'category': subject.category,
    }


def day_summary(day, subjects: Iterable[Subject], groups: Iterable[Group],
                store: AssignmentStore, catalogs: Catalogs,
                holidays: Sequence[Holiday] = ()) -> Dict:
    """Headcount view of ``day`` over the subjects still employed that day.

    Unknown labels count as present. Subjects with no label are reported
    separately from absences.
    """
    iso = normalize_day(day)
    active = [s for s in subjects if s.is_active(iso)]
    buckets: Dict[PresenceState, List[Dict]] = {state: [] for state in PresenceState}
    by_label: Dict[str, List[Dict]] = defaultdict(list)
    labels: Dict[int, str] = {}

    for subject in active:
        label = store.get(subject.id, iso)
        state = classify(label, catalogs)
        entry = _brief(subject)
        buckets[state].append(entry)
        if label:
            labels[subject.id] = label
            by_label[label].append(entry)

    distribution = []
    for label, members in by_label.items():
        display = resolve_display(label, catalogs)
        distribution.append({
            **display.to_dict(),
            'state': classify(label, catalogs).value,
            'count': len(members),
            'employees': members,
        })
    distribution.sort(key=lambda x: (-x['count'], x['label']))

    shift_names = [s.name for s in catalogs.shifts]
    teams = []
    for group in groups:
        members = [s for s in active if s.team_id == group.id]
        counts = {name: 0 for name in shift_names}
        others = 0
        for m in members:
            label = labels.get(m.id)
            if label in counts:
                counts[label] += 1
            else:
                others += 1
        teams.append({
            'id': group.id,
            'name': group.name,
            'total': len(members),
            'shifts': counts,
            'others': others,
        })

    holiday = is_holiday(iso, holidays)
    present = buckets[PresenceState.PRESENT]
    absent = buckets[PresenceState.ABSENT]
    unassigned = buckets[PresenceState.UNASSIGNED]
    return {
        'date': iso,
        'holiday': holiday.to_dict() if holiday else None,
        'total': len(active),
        'present': present,
        'absent': absent,
        'unassigned': unassigned,
        'counts': {
            'present': len(present),
            'absent': len(absent),
            'unassigned': len(unassigned),
        },
        'by_label': distribution,
        'teams': teams,
    }
