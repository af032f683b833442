"""Data completeness scoring and independent re-aggregation of audit results."""

import logging
import math
from collections import Counter
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from functools import reduce
from typing import Any

from site_audit.models.base import Model
from site_audit.models.options import AnalyzerFlag, TestOptions
from site_audit.models.result import AccessibilityResult, TestSummary
from site_audit.models.state import TaskState

log = logging.getLogger(__name__)

CRITICAL_FIELDS = ("url", "title", "duration_ms", "errors", "warnings", "passed")

OPTION_FIELDS: Mapping[AnalyzerFlag, tuple[str, ...]] = {
    "use_pa11y": ("pa11y_score", "pa11y_issues"),
    "collect_performance_metrics": (
        "performance_metrics",
        "performance_metrics.load_time_ms",
        "performance_metrics.first_contentful_paint_ms",
        "performance_metrics.largest_contentful_paint_ms",
        "performance_metrics.performance_score",
        "performance_metrics.performance_grade",
    ),
    "include_seo_analysis": ("seo",),
    "include_social_analysis": ("social",),
    "include_technical_seo": ("technical_seo",),
    "include_security_headers": ("security_headers",),
    "include_structured_data": ("structured_data",),
    "include_mobile_friendliness": ("mobile_friendliness",),
}


def expected_fields(options: TestOptions) -> tuple[str, ...]:
    """Fields every analysed page should carry under ``options``."""
    fields = list(CRITICAL_FIELDS)
    for flag, names in OPTION_FIELDS.items():
        if options.is_enabled(flag):
            fields.extend(names)
    return tuple(fields)


def field_value(result: AccessibilityResult, path: str) -> Any:
    """Resolve a dotted field path, returning ``None`` past a missing link."""
    value: Any = result
    for part in path.split("."):
        if value is None:
            return None
        value = getattr(value, part, None)
    return value


def _is_present(value: Any) -> bool:
    return value is not None and value != ""


def _image_alt_issues(result: AccessibilityResult) -> int:
    return sum(1 for issue in result.pa11y_issues or () if issue.code == "image-alt")


class CompletenessReport(Model):
    page_url: str
    is_complete: bool
    score: float
    missing_fields: tuple[str, ...]
    present_fields: tuple[str, ...]
    recommendations: tuple[str, ...]


class BatchCompletenessReport(Model):
    """Completeness across the analysed pages of a run."""

    overall_score: float
    total_pages: int
    analysed_pages: int
    complete_pages: int
    incomplete_pages: int
    missing_field_counts: Mapping[str, int]
    pages_needing_attention: tuple[CompletenessReport, ...]
    page_reports: tuple[CompletenessReport, ...]

    def render(self) -> str:
        lines = [
            "=" * 80,
            "Data Completeness Report",
            "=" * 80,
            f"Overall Score: {self.overall_score:.1f}%",
            f"Analysed Pages: {self.analysed_pages} of {self.total_pages}",
            f"Complete Pages: {self.complete_pages}",
            f"Incomplete Pages: {self.incomplete_pages}",
        ]
        if self.missing_field_counts:
            lines += ["", "Common Missing Fields:"]
            ranked = sorted(
                self.missing_field_counts.items(), key=lambda item: (-item[1], item[0])
            )
            for name, count in ranked[:10]:
                lines.append(f"  - {name}: {count} page(s)")
        if self.pages_needing_attention:
            lines += ["", "Pages Needing Attention:"]
            for report in self.pages_needing_attention:
                lines.append(f"  {report.page_url} ({report.score:.1f}%)")
                lines.extend(f"    -> {rec}" for rec in report.recommendations[:2])
        lines.append("=" * 80)
        return "\n".join(lines)


@dataclass(frozen=True, kw_only=True)
class AggregationCheck:
    field: str
    expected: float
    actual: float

    @property
    def correct(self) -> bool:
        if isinstance(self.expected, float) or isinstance(self.actual, float):
            return math.isclose(self.expected, self.actual, abs_tol=1e-6)
        return self.expected == self.actual


@dataclass(frozen=True, kw_only=True)
class DataCompletenessChecker:
    """Scores result completeness against the fields the options promise.

    Checks are pure: running them twice on the same data yields equal reports.
    """

    options: TestOptions
    attention_threshold: float = 80.0

    def check_page_completeness(self, result: AccessibilityResult) -> CompletenessReport:
        expected = expected_fields(self.options)
        present = tuple(f for f in expected if _is_present(field_value(result, f)))
        missing = tuple(f for f in expected if f not in present)

        recommendations = tuple(
            f"Critical field missing: {name}"
            if name in CRITICAL_FIELDS
            else f"Expected field missing: {name}"
            for name in missing
        )
        return CompletenessReport(
            page_url=result.url,
            is_complete=not missing,
            score=round(len(present) / len(expected) * 100, 1),
            missing_fields=missing,
            present_fields=present,
            recommendations=recommendations,
        )

    def generate_batch_report(
        self, results: Sequence[AccessibilityResult]
    ) -> BatchCompletenessReport:
        """Score the analysed pages; failed, crashed and skipped ones are excluded."""
        analysed = [r for r in results if r.state is TaskState.COMPLETED]
        reports = [self.check_page_completeness(r) for r in analysed]

        missing_counts: Counter[str] = Counter()
        for report in reports:
            missing_counts.update(report.missing_fields)

        overall = (
            round(math.fsum(r.score for r in reports) / len(reports), 1)
            if reports
            else 0.0
        )
        complete = sum(1 for r in reports if r.is_complete)
        attention = sorted(
            (r for r in reports if r.score < self.attention_threshold),
            key=lambda r: r.score,
        )
        return BatchCompletenessReport(
            overall_score=overall,
            total_pages=len(results),
            analysed_pages=len(analysed),
            complete_pages=complete,
            incomplete_pages=len(reports) - complete,
            missing_field_counts=dict(missing_counts),
            pages_needing_attention=tuple(attention),
            page_reports=tuple(reports),
        )

    def verify_aggregations(
        self,
        results: Sequence[AccessibilityResult],
        summary: TestSummary | None = None,
    ) -> Sequence[AggregationCheck]:
        """Recompute aggregates from raw page data and compare.

        With a summary, its counters are the ``actual`` side and the error and
        warning totals are the sums of the per-page counters. Without one, the
        per-page counters are checked against the per-page lists. Missing alt
        text is only compared on pages where both the content and pa11y
        analyzers produced data.
        """
        states = Counter(r.state for r in results)
        completed_with_errors = reduce(
            lambda n, r: n + (r.state is TaskState.COMPLETED and len(r.errors) > 0),
            results,
            0,
        )
        error_count = reduce(lambda n, r: n + r.error_count, results, 0)
        warning_count = reduce(lambda n, r: n + r.warning_count, results, 0)
        duration = reduce(lambda n, r: n + r.duration_ms, results, 0.0)

        checks: list[AggregationCheck] = []
        if summary is not None:
            passed = states[TaskState.COMPLETED] - completed_with_errors
            failed = states[TaskState.FAILED] + completed_with_errors
            crashed = states[TaskState.CRASHED]
            skipped = states[TaskState.REDIRECT_SKIPPED] + states[TaskState.CANCELLED]
            for name, value in (
                ("total_pages", states.total()),
                ("tested_pages", passed + failed + crashed),
                ("passed_pages", passed),
                ("failed_pages", failed),
                ("crashed_pages", crashed),
                ("skipped_pages", skipped),
                ("total_errors", error_count),
                ("total_warnings", warning_count),
            ):
                checks.append(
                    AggregationCheck(
                        field=name, expected=value, actual=getattr(summary, name)
                    )
                )
            checks.append(
                AggregationCheck(
                    field="total_duration_ms",
                    expected=duration,
                    actual=summary.total_duration_ms,
                )
            )
        else:
            checks.append(
                AggregationCheck(
                    field="total_errors",
                    expected=reduce(lambda n, r: n + len(r.errors), results, 0),
                    actual=error_count,
                )
            )
            checks.append(
                AggregationCheck(
                    field="total_warnings",
                    expected=reduce(lambda n, r: n + len(r.warnings), results, 0),
                    actual=warning_count,
                )
            )

        with_issues = [
            r
            for r in results
            if r.pa11y_issues is not None
            and not r.analyzer_failures.keys() & {"content", "pa11y"}
        ]
        checks.append(
            AggregationCheck(
                field="images_without_alt",
                expected=reduce(lambda n, r: n + r.images_without_alt, with_issues, 0),
                actual=reduce(lambda n, r: n + _image_alt_issues(r), with_issues, 0),
            )
        )

        analysed = states[TaskState.COMPLETED]
        for flag, names in OPTION_FIELDS.items():
            if not self.options.is_enabled(flag):
                continue
            top_level = names[0]
            covered = reduce(
                lambda n, r, name=top_level: n
                + (r.state is TaskState.COMPLETED and field_value(r, name) is not None),
                results,
                0,
            )
            checks.append(
                AggregationCheck(
                    field=f"coverage.{top_level}", expected=analysed, actual=covered
                )
            )

        for check in checks:
            if not check.correct:
                log.warning(
                    "Aggregation mismatch for %s: expected %s, got %s",
                    check.field,
                    check.expected,
                    check.actual,
                )
        return checks
