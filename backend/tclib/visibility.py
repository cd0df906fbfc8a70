"""
Role-scoped visibility of subjects.

Admins, editors and viewers see every subject. A manager sees only the team
they lead, resolved through the team's designated leader; a manager who
leads no team sees nothing.
"""
import logging
from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Optional

from .models import ROLES, UNRESTRICTED_ROLES, Group, Subject, Viewer

_logger = logging.getLogger(__name__)

WRITE_ROLES = ('admin', 'editor')


@dataclass(frozen=True)
class ScopeResolution:
    """Effective group filter for a viewer.

    ``locked`` means the UI must show the filter read-only on ``group_id``.
    ``empty`` means the viewer is scoped but resolves to no group at all.
    """
    group_id: Optional[int]
    locked: bool = False
    empty: bool = False


def managed_group(viewer: Viewer, groups: Iterable[Group]) -> Optional[Group]:
    """The group whose leader is the viewer's linked subject, if any."""
    if viewer.employee_id is None:
        return None
    for group in groups:
        if group.leader_id is not None and group.leader_id == viewer.employee_id:
            return group
    return None


def resolve_scope(viewer: Viewer, groups: Iterable[Group],
                  requested_group: Optional[int] = None) -> ScopeResolution:
    if viewer.role not in ROLES:
        _logger.warning("Unknown role %r for viewer %s, denying", viewer.role, viewer.id)
        return ScopeResolution(group_id=None, locked=True, empty=True)
    if viewer.role in UNRESTRICTED_ROLES:
        return ScopeResolution(group_id=requested_group)
    group = managed_group(viewer, groups)
    if group is None:
        return ScopeResolution(group_id=None, locked=True, empty=True)
    if requested_group is not None and requested_group != group.id:
        _logger.debug("Viewer %s requested group %s, forced to %s",
                      viewer.id, requested_group, group.id)
    return ScopeResolution(group_id=group.id, locked=True)


def visible_subjects(subjects: Iterable[Subject], viewer: Viewer, groups: Iterable[Group],
                     include_exited: bool = False, on: Optional[date] = None,
                     group_filter: Optional[int] = None) -> List[Subject]:
    """Subjects the viewer may see, in input order.

    ``on`` switches the exit check from "has any exit date" to "exited on or
    before this day".
    """
    scope = resolve_scope(viewer, list(groups), group_filter)
    if scope.empty:
        return []
    result = []
    for subject in subjects:
        if scope.group_id is not None and subject.team_id != scope.group_id:
            continue
        if not include_exited and not subject.is_active(on):
            continue
        result.append(subject)
    return result


def can_edit_subject(viewer: Viewer, subject: Subject, groups: Iterable[Group]) -> bool:
    if not viewer.active:
        return False
    if viewer.role in WRITE_ROLES:
        return True
    if viewer.is_scoped:
        group = managed_group(viewer, groups)
        return group is not None and subject.team_id == group.id
    return False
