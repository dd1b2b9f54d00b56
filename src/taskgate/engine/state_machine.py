"""Task status state machine and the assignment rule."""

from datetime import datetime
from typing import Optional

from taskgate.engine.errors import InvalidStateTransition, ValidationFailure
from taskgate.models.enums import TaskStatus
from taskgate.models.task import Task

# Ordered so error messages list transitions deterministically.
# COMPLETED and CANCELLED cannot move into each other: reopen first.
ALLOWED_TRANSITIONS: dict[TaskStatus, tuple[TaskStatus, ...]] = {
    TaskStatus.TODO: (
        TaskStatus.IN_PROGRESS,
        TaskStatus.IN_REVIEW,
        TaskStatus.COMPLETED,
        TaskStatus.CANCELLED,
    ),
    TaskStatus.IN_PROGRESS: (
        TaskStatus.TODO,
        TaskStatus.IN_REVIEW,
        TaskStatus.COMPLETED,
        TaskStatus.CANCELLED,
    ),
    TaskStatus.IN_REVIEW: (
        TaskStatus.TODO,
        TaskStatus.IN_PROGRESS,
        TaskStatus.COMPLETED,
        TaskStatus.CANCELLED,
    ),
    TaskStatus.COMPLETED: (
        TaskStatus.TODO,
        TaskStatus.IN_PROGRESS,
        TaskStatus.IN_REVIEW,
    ),
    TaskStatus.CANCELLED: (
        TaskStatus.TODO,
        TaskStatus.IN_PROGRESS,
        TaskStatus.IN_REVIEW,
    ),
}


def allowed_transitions(current: TaskStatus) -> tuple[TaskStatus, ...]:
    return ALLOWED_TRANSITIONS.get(current, ())


def can_transition(current: TaskStatus, requested: TaskStatus) -> bool:
    return requested in allowed_transitions(current)


def transition(current: TaskStatus, requested: TaskStatus) -> None:
    """Raise InvalidStateTransition unless ``current -> requested`` is allowed.

    Self-transitions are always rejected.
    """
    if not can_transition(current, requested):
        raise InvalidStateTransition(
            current.value,
            requested.value,
            [status.value for status in allowed_transitions(current)],
        )


def completed_at_for(
    status: TaskStatus,
    previous: Optional[datetime],
    now: datetime,
) -> Optional[datetime]:
    """completed_at for a task landing on ``status``.

    Keeps an existing timestamp when the task stays completed, stamps ``now``
    when it becomes completed, and clears it otherwise.
    """
    if status != TaskStatus.COMPLETED:
        return None
    return previous or now


def apply(task: Task, requested: TaskStatus, now: datetime) -> Task:
    """Validate the transition and return the updated task value."""
    transition(task.status, requested)
    return task.model_copy(
        update={
            "status": requested,
            "completed_at": completed_at_for(requested, task.completed_at, now),
        }
    )


def ensure_open(status: TaskStatus) -> None:
    """Completed and cancelled tasks cannot be (re)assigned."""
    if status.is_closed():
        raise ValidationFailure(
            f"Cannot assign task in {status.value} status", field="assignedToId"
        )


def ensure_assignable(status: TaskStatus, assignee_active: bool) -> None:
    """Closed tasks cannot be assigned, and only to active users.

    Unassignment is not subject to this rule.
    """
    ensure_open(status)
    if not assignee_active:
        raise ValidationFailure("Cannot assign task to inactive user", field="assignedToId")
