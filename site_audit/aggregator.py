"""Builds the run summary from terminal task outcomes."""

import logging
from collections.abc import Iterable
from typing import Literal

from site_audit.models.result import AccessibilityResult, TestSummary
from site_audit.models.state import TaskState
from site_audit.models.task import TaskOutcome

log = logging.getLogger(__name__)

type PageStatus = Literal["passed", "failed", "crashed", "skipped"]


def page_status(result: AccessibilityResult) -> PageStatus:
    """Classify a page for the summary counters."""
    match result.state:
        case TaskState.COMPLETED:
            return "failed" if result.errors else "passed"
        case TaskState.FAILED:
            return "failed"
        case TaskState.CRASHED:
            return "crashed"
        case TaskState.REDIRECT_SKIPPED | TaskState.CANCELLED:
            return "skipped"
        case _:
            raise ValueError(f"{result.url} is not in a terminal state: {result.state}")


def build_summary(outcomes: Iterable[TaskOutcome]) -> TestSummary:
    """Aggregate outcomes into a summary whose results follow input order."""
    results = [outcome.to_result() for outcome in sorted(outcomes, key=_by_index)]

    counts: dict[PageStatus, int] = {
        "passed": 0,
        "failed": 0,
        "crashed": 0,
        "skipped": 0,
    }
    total_errors = 0
    total_warnings = 0
    total_duration_ms = 0.0
    for result in results:
        counts[page_status(result)] += 1
        total_errors += result.error_count
        total_warnings += result.warning_count
        total_duration_ms += result.duration_ms

    summary = TestSummary(
        total_pages=len(results),
        tested_pages=counts["passed"] + counts["failed"] + counts["crashed"],
        passed_pages=counts["passed"],
        failed_pages=counts["failed"],
        crashed_pages=counts["crashed"],
        skipped_pages=counts["skipped"],
        total_errors=total_errors,
        total_warnings=total_warnings,
        total_duration_ms=total_duration_ms,
        results=tuple(results),
    )
    log.info(
        "Summary: %d page(s), %d passed, %d failed, %d crashed, %d skipped",
        summary.total_pages,
        summary.passed_pages,
        summary.failed_pages,
        summary.crashed_pages,
        summary.skipped_pages,
    )
    return summary


def _by_index(outcome: TaskOutcome) -> int:
    return outcome.index
