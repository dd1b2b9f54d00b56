"""
Task status state machine and assignment rule.
"""

from datetime import datetime, timedelta, timezone

import pytest

from taskgate.engine import state_machine
from taskgate.engine.errors import InvalidStateTransition, ValidationFailure
from taskgate.models import Task, TaskStatus

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

EXPECTED = {
    (TaskStatus.TODO, TaskStatus.IN_PROGRESS),
    (TaskStatus.TODO, TaskStatus.IN_REVIEW),
    (TaskStatus.TODO, TaskStatus.COMPLETED),
    (TaskStatus.TODO, TaskStatus.CANCELLED),
    (TaskStatus.IN_PROGRESS, TaskStatus.TODO),
    (TaskStatus.IN_PROGRESS, TaskStatus.IN_REVIEW),
    (TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED),
    (TaskStatus.IN_PROGRESS, TaskStatus.CANCELLED),
    (TaskStatus.IN_REVIEW, TaskStatus.TODO),
    (TaskStatus.IN_REVIEW, TaskStatus.IN_PROGRESS),
    (TaskStatus.IN_REVIEW, TaskStatus.COMPLETED),
    (TaskStatus.IN_REVIEW, TaskStatus.CANCELLED),
    (TaskStatus.COMPLETED, TaskStatus.TODO),
    (TaskStatus.COMPLETED, TaskStatus.IN_PROGRESS),
    (TaskStatus.COMPLETED, TaskStatus.IN_REVIEW),
    (TaskStatus.CANCELLED, TaskStatus.TODO),
    (TaskStatus.CANCELLED, TaskStatus.IN_PROGRESS),
    (TaskStatus.CANCELLED, TaskStatus.IN_REVIEW),
}


def _task(status: TaskStatus, completed_at=None) -> Task:
    return Task(
        id=1,
        tenant_id=1,
        title="Write report",
        status=status,
        created_by_id=1,
        completed_at=completed_at,
        created_at=NOW,
        updated_at=NOW,
    )


def test_transition_table_matches_every_pair():
    """Every ordered pair of statuses is either allowed or rejected as listed."""
    for current in TaskStatus:
        for requested in TaskStatus:
            expected = (current, requested) in EXPECTED
            assert state_machine.can_transition(current, requested) is expected
            if expected:
                state_machine.transition(current, requested)
            else:
                with pytest.raises(InvalidStateTransition):
                    state_machine.transition(current, requested)


@pytest.mark.parametrize("status", list(TaskStatus))
def test_self_transition_rejected(status):
    with pytest.raises(InvalidStateTransition) as exc_info:
        state_machine.transition(status, status)

    assert exc_info.value.message == f"Task is already in {status.value} status"
    assert exc_info.value.field == "status"


def test_completed_and_cancelled_do_not_cross():
    """A completed task has to be reopened before it can be cancelled."""
    with pytest.raises(InvalidStateTransition) as exc_info:
        state_machine.transition(TaskStatus.COMPLETED, TaskStatus.CANCELLED)

    message = exc_info.value.message
    assert message.startswith("Cannot transition from COMPLETED to CANCELLED")
    assert "TODO, IN_PROGRESS, IN_REVIEW" in message
    assert exc_info.value.code == "INVALID_STATE_TRANSITION"

    assert not state_machine.can_transition(TaskStatus.CANCELLED, TaskStatus.COMPLETED)


def test_invalid_transition_is_a_validation_failure():
    with pytest.raises(ValidationFailure):
        state_machine.transition(TaskStatus.CANCELLED, TaskStatus.COMPLETED)


def test_apply_stamps_completed_at():
    task = _task(TaskStatus.IN_PROGRESS)

    completed = state_machine.apply(task, TaskStatus.COMPLETED, NOW)

    assert completed.status == TaskStatus.COMPLETED
    assert completed.completed_at == NOW
    # Original value is untouched
    assert task.status == TaskStatus.IN_PROGRESS


def test_apply_clears_completed_at_on_reopen():
    task = _task(TaskStatus.COMPLETED, completed_at=NOW - timedelta(days=2))

    reopened = state_machine.apply(task, TaskStatus.TODO, NOW)

    assert reopened.status == TaskStatus.TODO
    assert reopened.completed_at is None


def test_completed_at_kept_while_staying_completed():
    earlier = NOW - timedelta(hours=5)
    assert state_machine.completed_at_for(TaskStatus.COMPLETED, earlier, NOW) == earlier
    assert state_machine.completed_at_for(TaskStatus.COMPLETED, None, NOW) == NOW
    assert state_machine.completed_at_for(TaskStatus.IN_REVIEW, earlier, NOW) is None


@pytest.mark.parametrize("status", [TaskStatus.COMPLETED, TaskStatus.CANCELLED])
def test_closed_tasks_cannot_be_assigned(status):
    with pytest.raises(ValidationFailure) as exc_info:
        state_machine.ensure_assignable(status, assignee_active=True)

    assert exc_info.value.message == f"Cannot assign task in {status.value} status"
    assert exc_info.value.field == "assignedToId"


def test_inactive_assignee_rejected():
    with pytest.raises(ValidationFailure) as exc_info:
        state_machine.ensure_assignable(TaskStatus.TODO, assignee_active=False)

    assert exc_info.value.message == "Cannot assign task to inactive user"


def test_closed_status_checked_before_assignee():
    """A closed task reports the status problem even for an inactive assignee."""
    with pytest.raises(ValidationFailure) as exc_info:
        state_machine.ensure_assignable(TaskStatus.CANCELLED, assignee_active=False)

    assert "CANCELLED" in exc_info.value.message


@pytest.mark.parametrize(
    "status", [TaskStatus.TODO, TaskStatus.IN_PROGRESS, TaskStatus.IN_REVIEW]
)
def test_open_tasks_accept_active_assignee(status):
    state_machine.ensure_assignable(status, assignee_active=True)

