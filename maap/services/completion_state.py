"""
Completion state machine for dual-party check-ins.

Pure functions, no database access.  Two independent flags (employee side,
manager side) map to one of four named states; each state plus the viewer's
role yields two display decisions:

    viewer_display_mode             show_open_fields while the viewer's own side
                                    is open, show_complete_summary once it is
                                    complete (the side stays editable)
    other_participant_display_mode  whether the *other* side has completed

Usage:
    from maap.services.completion_state import ViewerRole, completion_state

    state = completion_state(employee_completed=True, manager_completed=False)
    viewer_display_mode(state, ViewerRole.MANAGER)  # -> SHOW_OPEN_FIELDS
"""

from __future__ import annotations

from enum import Enum


class ViewerRole(str, Enum):
    """Who is editing a check-in.  Every non-employee viewer edits as manager."""
    EMPLOYEE = "employee"
    MANAGER = "manager"


class OverviewRole(str, Enum):
    """Display-only role for the finalization overview page."""
    EMPLOYEE = "employee"
    MANAGER = "manager"
    READONLY = "readonly"


class CompletionState(str, Enum):
    BOTH_OPEN = "both_open"
    EMPLOYEE_COMPLETE_MANAGER_OPEN = "employee_complete_manager_open"
    MANAGER_COMPLETE_EMPLOYEE_OPEN = "manager_complete_employee_open"
    BOTH_COMPLETE = "both_complete"


class ViewerDisplayMode(str, Enum):
    SHOW_OPEN_FIELDS = "show_open_fields"
    SHOW_COMPLETE_SUMMARY = "show_complete_summary"


class OtherParticipantDisplayMode(str, Enum):
    SHOW_OTHER_PARTICIPANT_IS_COMPLETE = "show_other_participant_is_complete"
    SHOW_OTHER_PARTICIPANT_IS_INCOMPLETE = "show_other_participant_is_incomplete"


def completion_state(employee_completed: bool, manager_completed: bool) -> CompletionState:
    if employee_completed and manager_completed:
        return CompletionState.BOTH_COMPLETE
    if employee_completed:
        return CompletionState.EMPLOYEE_COMPLETE_MANAGER_OPEN
    if manager_completed:
        return CompletionState.MANAGER_COMPLETE_EMPLOYEE_OPEN
    return CompletionState.BOTH_OPEN


def employee_side_complete(state: CompletionState) -> bool:
    return state in (CompletionState.EMPLOYEE_COMPLETE_MANAGER_OPEN, CompletionState.BOTH_COMPLETE)


def manager_side_complete(state: CompletionState) -> bool:
    return state in (CompletionState.MANAGER_COMPLETE_EMPLOYEE_OPEN, CompletionState.BOTH_COMPLETE)


def _own_and_other_complete(state: CompletionState, role: ViewerRole) -> tuple[bool, bool]:
    if role == ViewerRole.EMPLOYEE:
        return employee_side_complete(state), manager_side_complete(state)
    if role == ViewerRole.MANAGER:
        return manager_side_complete(state), employee_side_complete(state)
    raise ValueError(f"Unknown viewer role: {role!r}")


def viewer_display_mode(state: CompletionState, role: ViewerRole) -> ViewerDisplayMode:
    own_complete, _ = _own_and_other_complete(state, role)
    if own_complete:
        return ViewerDisplayMode.SHOW_COMPLETE_SUMMARY
    return ViewerDisplayMode.SHOW_OPEN_FIELDS


def other_participant_display_mode(
    state: CompletionState, role: ViewerRole,
) -> OtherParticipantDisplayMode:
    _, other_complete = _own_and_other_complete(state, role)
    if other_complete:
        return OtherParticipantDisplayMode.SHOW_OTHER_PARTICIPANT_IS_COMPLETE
    return OtherParticipantDisplayMode.SHOW_OTHER_PARTICIPANT_IS_INCOMPLETE


def notification_state(state: CompletionState) -> str:
    """Short label used in notification payloads: employee_only | manager_only | both_complete | none."""
    if state == CompletionState.BOTH_COMPLETE:
        return "both_complete"
    if state == CompletionState.EMPLOYEE_COMPLETE_MANAGER_OPEN:
        return "employee_only"
    if state == CompletionState.MANAGER_COMPLETE_EMPLOYEE_OPEN:
        return "manager_only"
    return "none"
