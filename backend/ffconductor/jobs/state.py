"""
State transition validation for conversion tasks.

Task lifecycle: PENDING → RUNNING → COMPLETED | FAILED | CANCELLED
A pending task may also be cancelled without ever running. Crash recovery
only fails tasks left RUNNING, so there is no PENDING → FAILED edge.

INVARIANT: Terminal states (COMPLETED, FAILED, CANCELLED) are immutable.
"""

from typing import FrozenSet, Set, Tuple

from .models import TaskStatus
from .errors import InvalidStateTransitionError


TERMINAL_STATES: FrozenSet[TaskStatus] = frozenset({
    TaskStatus.COMPLETED,
    TaskStatus.FAILED,
    TaskStatus.CANCELLED,
})


_TASK_TRANSITIONS: Set[Tuple[TaskStatus, TaskStatus]] = {
    # Starting
    (TaskStatus.PENDING, TaskStatus.RUNNING),

    # Cancelled before launch
    (TaskStatus.PENDING, TaskStatus.CANCELLED),

    # Outcomes
    (TaskStatus.RUNNING, TaskStatus.COMPLETED),
    (TaskStatus.RUNNING, TaskStatus.FAILED),
    (TaskStatus.RUNNING, TaskStatus.CANCELLED),
}


def is_terminal(status: TaskStatus) -> bool:
    """True for COMPLETED, FAILED and CANCELLED."""
    return status in TERMINAL_STATES


def can_transition(from_status: TaskStatus, to_status: TaskStatus) -> bool:
    """
    Check if a task state transition is legal.

    Args:
        from_status: Current task status
        to_status: Target task status

    Returns:
        True if the transition is allowed, False otherwise
    """
    if is_terminal(from_status):
        return False
    return (from_status, to_status) in _TASK_TRANSITIONS


def validate_transition(from_status: TaskStatus, to_status: TaskStatus) -> None:
    """
    Raises:
        InvalidStateTransitionError: If the transition is illegal
    """
    if not can_transition(from_status, to_status):
        raise InvalidStateTransitionError("task", from_status.value, to_status.value)
