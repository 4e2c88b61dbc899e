"""
Completion state machine — pure function tests.

Covers every (employee_completed, manager_completed, role) combination:
four states x two roles x two display decisions = sixteen outcomes.
"""

import pytest

from maap.services.completion_state import (
    CompletionState,
    OtherParticipantDisplayMode,
    ViewerDisplayMode,
    ViewerRole,
    completion_state,
    notification_state,
    other_participant_display_mode,
    viewer_display_mode,
)

OPEN = ViewerDisplayMode.SHOW_OPEN_FIELDS
SUMMARY = ViewerDisplayMode.SHOW_COMPLETE_SUMMARY
OTHER_DONE = OtherParticipantDisplayMode.SHOW_OTHER_PARTICIPANT_IS_COMPLETE
OTHER_OPEN = OtherParticipantDisplayMode.SHOW_OTHER_PARTICIPANT_IS_INCOMPLETE


@pytest.mark.parametrize(
    "employee_done, manager_done, expected",
    [
        (False, False, CompletionState.BOTH_OPEN),
        (True, False, CompletionState.EMPLOYEE_COMPLETE_MANAGER_OPEN),
        (False, True, CompletionState.MANAGER_COMPLETE_EMPLOYEE_OPEN),
        (True, True, CompletionState.BOTH_COMPLETE),
    ],
)
def test_completion_state(employee_done, manager_done, expected):
    assert completion_state(employee_done, manager_done) == expected


@pytest.mark.parametrize(
    "state, role, viewer_mode, other_mode",
    [
        (CompletionState.BOTH_OPEN, ViewerRole.EMPLOYEE, OPEN, OTHER_OPEN),
        (CompletionState.BOTH_OPEN, ViewerRole.MANAGER, OPEN, OTHER_OPEN),
        (CompletionState.EMPLOYEE_COMPLETE_MANAGER_OPEN, ViewerRole.EMPLOYEE, SUMMARY, OTHER_OPEN),
        (CompletionState.EMPLOYEE_COMPLETE_MANAGER_OPEN, ViewerRole.MANAGER, OPEN, OTHER_DONE),
        (CompletionState.MANAGER_COMPLETE_EMPLOYEE_OPEN, ViewerRole.EMPLOYEE, OPEN, OTHER_DONE),
        (CompletionState.MANAGER_COMPLETE_EMPLOYEE_OPEN, ViewerRole.MANAGER, SUMMARY, OTHER_OPEN),
        (CompletionState.BOTH_COMPLETE, ViewerRole.EMPLOYEE, SUMMARY, OTHER_DONE),
        (CompletionState.BOTH_COMPLETE, ViewerRole.MANAGER, SUMMARY, OTHER_DONE),
    ],
)
def test_display_modes_for_every_state_and_role(state, role, viewer_mode, other_mode):
    assert viewer_display_mode(state, role) == viewer_mode
    assert other_participant_display_mode(state, role) == other_mode


def test_string_role_values_are_accepted():
    assert viewer_display_mode(CompletionState.BOTH_COMPLETE, "manager") == SUMMARY


def test_unknown_role_raises():
    with pytest.raises(ValueError):
        viewer_display_mode(CompletionState.BOTH_OPEN, "observer")


@pytest.mark.parametrize(
    "state, label",
    [
        (CompletionState.BOTH_OPEN, "none"),
        (CompletionState.EMPLOYEE_COMPLETE_MANAGER_OPEN, "employee_only"),
        (CompletionState.MANAGER_COMPLETE_EMPLOYEE_OPEN, "manager_only"),
        (CompletionState.BOTH_COMPLETE, "both_complete"),
    ],
)
def test_notification_state_labels(state, label):
    assert notification_state(state) == label
