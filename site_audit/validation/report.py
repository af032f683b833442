"""Consistency checks for per-page results and the run summary."""

import json
import logging
import math
from collections.abc import Mapping, Sequence
from typing import Any, Literal

from pydantic import Field

from site_audit.errors import ValidationMismatch
from site_audit.models.base import Model
from site_audit.models.result import AccessibilityResult, TestSummary
from site_audit.models.state import SKIPPED_STATES, TaskState

log = logging.getLogger(__name__)

PERFORMANCE_TIMINGS = (
    "load_time_ms",
    "dom_content_loaded_ms",
    "first_paint_ms",
    "first_contentful_paint_ms",
    "largest_contentful_paint_ms",
)
VALID_GRADES = frozenset("ABCDF")


class ValidationIssue(Model):
    """A hard inconsistency. ``expected``/``actual`` are set for aggregates."""

    field: str
    message: str
    severity: Literal["critical", "error"] = "error"
    expected: Any = None
    actual: Any = None
    context: Mapping[str, Any] = Field(default_factory=dict)


class ValidationWarning(Model):
    field: str
    message: str
    suggestion: str | None = None


class ValidationStats(Model):
    total_pages: int
    valid_pages: int
    pages_with_errors: int
    pages_with_warnings: int


class ValidationReport(Model):
    """Outcome of a validation pass."""

    valid: bool
    issues: tuple[ValidationIssue, ...] = ()
    warnings: tuple[ValidationWarning, ...] = ()
    stats: ValidationStats

    def raise_for_mismatch(self) -> None:
        """Raise if any issue was found.

        Raises:
            ValidationMismatch: Listing the offending fields

        """
        if not self.valid:
            raise ValidationMismatch([issue.field for issue in self.issues])


class ReportValidator:
    """Recomputes what the summary claims and reports every disagreement.

    Reports are descriptive: nothing here changes the data or the run's
    success unless the caller asks for :meth:`ValidationReport.raise_for_mismatch`.
    """

    def validate_audit_results(
        self, results: Sequence[AccessibilityResult]
    ) -> ValidationReport:
        issues: list[ValidationIssue] = []
        warnings: list[ValidationWarning] = []
        valid_pages = 0
        pages_with_warnings = 0

        for index, result in enumerate(results):
            page_issues, page_warnings = self._check_page(index, result)
            issues.extend(page_issues)
            warnings.extend(page_warnings)
            if not page_issues:
                valid_pages += 1
            if page_warnings:
                pages_with_warnings += 1

        return ValidationReport(
            valid=not issues,
            issues=tuple(issues),
            warnings=tuple(warnings),
            stats=ValidationStats(
                total_pages=len(results),
                valid_pages=valid_pages,
                pages_with_errors=len(results) - valid_pages,
                pages_with_warnings=pages_with_warnings,
            ),
        )

    def _check_page(
        self, index: int, result: AccessibilityResult
    ) -> tuple[list[ValidationIssue], list[ValidationWarning]]:
        prefix = f"results[{index}]"
        issues: list[ValidationIssue] = []
        warnings: list[ValidationWarning] = []

        if not result.url:
            issues.append(
                ValidationIssue(
                    field=f"{prefix}.url",
                    message="URL is required",
                    severity="critical",
                )
            )

        for name in (
            "duration_ms",
            "attempts",
            "images_without_alt",
            "buttons_without_label",
            "headings_count",
        ):
            value = getattr(result, name)
            if value < 0:
                issues.append(
                    ValidationIssue(
                        field=f"{prefix}.{name}",
                        message=f"{name} must not be negative",
                        actual=value,
                    )
                )

        for name, count, items in (
            ("error_count", result.error_count, result.errors),
            ("warning_count", result.warning_count, result.warnings),
        ):
            if count != len(items):
                issues.append(
                    ValidationIssue(
                        field=f"{prefix}.{name}",
                        message=f"{name} does not match the recorded list",
                        expected=len(items),
                        actual=count,
                    )
                )

        if result.pa11y_score is not None and not 0 <= result.pa11y_score <= 100:
            issues.append(
                ValidationIssue(
                    field=f"{prefix}.pa11y_score",
                    message="pa11y_score must be between 0 and 100",
                    actual=result.pa11y_score,
                )
            )

        if (metrics := result.performance_metrics) is not None:
            for name in PERFORMANCE_TIMINGS:
                value = getattr(metrics, name)
                if value < 0:
                    issues.append(
                        ValidationIssue(
                            field=f"{prefix}.performance_metrics.{name}",
                            message=f"Performance metric '{name}' must not be negative",
                            actual=value,
                        )
                    )
            score = metrics.performance_score
            if score is not None and not 0 <= score <= 100:
                issues.append(
                    ValidationIssue(
                        field=f"{prefix}.performance_metrics.performance_score",
                        message="performance_score must be between 0 and 100",
                        actual=score,
                    )
                )
            grade = metrics.performance_grade
            if grade is not None and grade not in VALID_GRADES:
                issues.append(
                    ValidationIssue(
                        field=f"{prefix}.performance_metrics.performance_grade",
                        message="performance_grade must be A, B, C, D, or F",
                        actual=grade,
                    )
                )

        if result.passed and (
            result.state is TaskState.CRASHED or result.state in SKIPPED_STATES
        ):
            issues.append(
                ValidationIssue(
                    field=f"{prefix}.passed",
                    message=f"A {result.state} page cannot be passed",
                    context={"state": str(result.state)},
                )
            )

        if result.state is TaskState.COMPLETED and not result.title:
            warnings.append(
                ValidationWarning(
                    field=f"{prefix}.title",
                    message="Page title is missing",
                    suggestion="Page might not have loaded correctly",
                )
            )
        for key, reason in result.analyzer_failures.items():
            warnings.append(
                ValidationWarning(
                    field=f"{prefix}.{key}",
                    message=f"Analyzer {key} failed: {reason}",
                )
            )

        return issues, warnings

    def validate_test_summary(self, summary: TestSummary) -> ValidationReport:
        """Recompute every aggregate from ``summary.results`` and compare."""
        results = summary.results
        passed = sum(
            1 for r in results if r.state is TaskState.COMPLETED and not r.errors
        )
        failed = sum(
            1
            for r in results
            if r.state is TaskState.FAILED
            or (r.state is TaskState.COMPLETED and r.errors)
        )
        crashed = sum(1 for r in results if r.state is TaskState.CRASHED)
        skipped = sum(1 for r in results if r.state in SKIPPED_STATES)

        expected: dict[str, int | float] = {
            "total_pages": len(results),
            "tested_pages": passed + failed + crashed,
            "passed_pages": passed,
            "failed_pages": failed,
            "crashed_pages": crashed,
            "skipped_pages": skipped,
            "total_errors": sum(r.error_count for r in results),
            "total_warnings": sum(r.warning_count for r in results),
            "total_duration_ms": math.fsum(r.duration_ms for r in results),
        }

        issues: list[ValidationIssue] = []
        for name, value in expected.items():
            actual = getattr(summary, name)
            if name == "total_duration_ms":
                matches = math.isclose(actual, value, rel_tol=1e-9, abs_tol=1e-6)
            else:
                matches = actual == value
            if not matches:
                issues.append(
                    ValidationIssue(
                        field=f"summary.{name}",
                        message=f"{name} does not match the per-page results",
                        severity="critical",
                        expected=value,
                        actual=actual,
                    )
                )

        if summary.tested_pages != (
            summary.passed_pages + summary.failed_pages + summary.crashed_pages
        ):
            issues.append(
                ValidationIssue(
                    field="summary.tested_pages",
                    message="tested_pages is not passed + failed + crashed",
                    severity="critical",
                    expected=summary.passed_pages
                    + summary.failed_pages
                    + summary.crashed_pages,
                    actual=summary.tested_pages,
                )
            )
        if summary.total_pages != summary.tested_pages + summary.skipped_pages:
            issues.append(
                ValidationIssue(
                    field="summary.total_pages",
                    message="total_pages is not tested + skipped",
                    severity="critical",
                    expected=summary.tested_pages + summary.skipped_pages,
                    actual=summary.total_pages,
                )
            )

        page_report = self.validate_audit_results(results)
        all_issues = issues + list(page_report.issues)
        return ValidationReport(
            valid=not all_issues,
            issues=tuple(all_issues),
            warnings=page_report.warnings,
            stats=page_report.stats,
        )

    def generate_report(self, validation: ValidationReport) -> str:
        """Render a validation report as plain text."""
        stats = validation.stats
        lines = [
            "=" * 80,
            "Audit Data Validation Report",
            "=" * 80,
            f"Status: {'✅ VALID' if validation.valid else '❌ INVALID'}",
            "",
            "Statistics:",
            f"  Total Pages: {stats.total_pages}",
            f"  Valid Pages: {stats.valid_pages}",
            f"  Pages with Errors: {stats.pages_with_errors}",
            f"  Pages with Warnings: {stats.pages_with_warnings}",
        ]

        if validation.issues:
            lines += ["", f"Issues ({len(validation.issues)}):"]
            for number, issue in enumerate(validation.issues, 1):
                lines.append(
                    f"  {number}. [{issue.severity.upper()}] {issue.field}: "
                    f"{issue.message}"
                )
                if issue.expected is not None or issue.actual is not None:
                    lines.append(
                        f"     expected={issue.expected!r} actual={issue.actual!r}"
                    )
                if issue.context:
                    lines.append(f"     Context: {json.dumps(dict(issue.context))}")

        if validation.warnings:
            lines += ["", f"Warnings ({len(validation.warnings)}):"]
            for number, warning in enumerate(validation.warnings, 1):
                lines.append(f"  {number}. {warning.field}: {warning.message}")
                if warning.suggestion:
                    lines.append(f"     Suggestion: {warning.suggestion}")

        lines.append("=" * 80)
        return "\n".join(lines)

    def log_validation(self, validation: ValidationReport) -> None:
        level = logging.INFO if validation.valid else logging.WARNING
        for line in self.generate_report(validation).splitlines():
            log.log(level, "%s", line)
