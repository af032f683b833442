"""Lifecycle states of a single URL audit."""

from collections.abc import Mapping
from enum import StrEnum


class TaskState(StrEnum):
    """State of an audit task.

    ``PENDING -> NAVIGATING -> {REDIRECT_SKIPPED | ANALYZING -> COMPLETED |
    ERROR -> RETRY_WAIT -> NAVIGATING | CRASHED}``, with ``ERROR -> FAILED``
    once retries are exhausted. ``CANCELLED`` marks URLs never dispatched.
    """

    PENDING = "pending"
    NAVIGATING = "navigating"
    ANALYZING = "analyzing"
    REDIRECT_SKIPPED = "redirect_skipped"
    COMPLETED = "completed"
    ERROR = "error"
    RETRY_WAIT = "retry_wait"
    CRASHED = "crashed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TRANSITIONS: Mapping[TaskState, frozenset[TaskState]] = {
    # ERROR/CRASHED from PENDING and RETRY_WAIT cover page creation failures.
    TaskState.PENDING: frozenset(
        {
            TaskState.NAVIGATING,
            TaskState.ERROR,
            TaskState.CRASHED,
            TaskState.CANCELLED,
        }
    ),
    TaskState.NAVIGATING: frozenset(
        {
            TaskState.REDIRECT_SKIPPED,
            TaskState.ANALYZING,
            TaskState.ERROR,
            TaskState.CRASHED,
        }
    ),
    TaskState.ANALYZING: frozenset(
        {TaskState.COMPLETED, TaskState.ERROR, TaskState.CRASHED}
    ),
    TaskState.ERROR: frozenset({TaskState.RETRY_WAIT, TaskState.FAILED}),
    TaskState.RETRY_WAIT: frozenset(
        {TaskState.NAVIGATING, TaskState.ERROR, TaskState.CRASHED}
    ),
    TaskState.REDIRECT_SKIPPED: frozenset(),
    TaskState.COMPLETED: frozenset(),
    TaskState.CRASHED: frozenset(),
    TaskState.FAILED: frozenset(),
    TaskState.CANCELLED: frozenset(),
}

TERMINAL_STATES = frozenset(state for state, nxt in TRANSITIONS.items() if not nxt)
ACTIVE_STATES = frozenset({TaskState.NAVIGATING, TaskState.ANALYZING})
SKIPPED_STATES = frozenset({TaskState.REDIRECT_SKIPPED, TaskState.CANCELLED})
