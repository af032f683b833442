"""Audit tasks, their terminal outcomes and run progress."""

from collections.abc import Callable
from dataclasses import dataclass, field

from site_audit.errors import InvalidTransitionError
from site_audit.models.result import AccessibilityResult, RedirectInfo
from site_audit.models.state import TERMINAL_STATES, TRANSITIONS, TaskState

type TransitionListener = Callable[["AuditTask", TaskState, TaskState], None]


@dataclass(kw_only=True)
class AuditTask:
    """One URL moving through the audit state machine."""

    url: str
    index: int
    attempt: int = 0
    state: TaskState = TaskState.PENDING
    listener: TransitionListener | None = field(default=None, repr=False)

    def transition(self, new_state: TaskState) -> None:
        """Move to ``new_state``, rejecting transitions the lifecycle forbids."""
        old_state = self.state
        if new_state not in TRANSITIONS[old_state]:
            raise InvalidTransitionError(
                f"{self.url}: cannot move from {old_state} to {new_state}"
            )
        self.state = new_state
        if self.listener is not None:
            self.listener(self, old_state, new_state)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES


@dataclass(frozen=True, kw_only=True)
class TaskOutcome:
    """Terminal record of a task, handed to the aggregator.

    ``duration_ms`` sums the wall time of every attempt, retries included.
    """

    url: str
    index: int
    state: TaskState
    attempts: int
    duration_ms: float
    result: AccessibilityResult | None = None
    error: str | None = None
    redirect: RedirectInfo | None = None

    def to_result(self) -> AccessibilityResult:
        """Materialise the per-page result recorded in the run summary.

        Analysed pages keep their analyzer output; failed, crashed and skipped
        pages get a synthetic result. Task-level duration and attempts always
        replace the per-attempt values.
        """
        if self.result is not None:
            return self.result.model_copy(
                update={
                    "state": self.state,
                    "duration_ms": self.duration_ms,
                    "attempts": self.attempts,
                }
            )

        errors: tuple[str, ...] = ()
        if self.error and self.state in {TaskState.FAILED, TaskState.CRASHED}:
            errors = (self.error,)
        return AccessibilityResult.from_findings(
            self.url,
            errors=errors,
            state=self.state,
            passed=False,
            duration_ms=self.duration_ms,
            attempts=self.attempts,
            redirect=self.redirect,
        )

    @classmethod
    def cancelled(cls, task: AuditTask) -> "TaskOutcome":
        """Outcome for a task that was never dispatched."""
        return cls(
            url=task.url,
            index=task.index,
            state=TaskState.CANCELLED,
            attempts=task.attempt,
            duration_ms=0.0,
            error="Audit cancelled before dispatch",
        )


@dataclass(frozen=True, kw_only=True)
class ProgressStats:
    """Cumulative counts reported after every terminal transition."""

    total_pages: int
    completed_pages: int
    failed_pages: int

    @property
    def finished_pages(self) -> int:
        return self.completed_pages + self.failed_pages
