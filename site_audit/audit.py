"""End-to-end audit run: schedule, aggregate, validate, diagnose."""

import logging
from collections.abc import Sequence
from contextlib import AsyncExitStack
from dataclasses import dataclass

from site_audit.aggregator import build_summary
from site_audit.debugger import DebugConfig, DebugSession, PerformanceReport
from site_audit.models.options import TestOptions
from site_audit.models.result import TestSummary
from site_audit.page import PageFactory, PageHandle
from site_audit.pipeline import AnalyzerPipeline
from site_audit.pool import PoolStats
from site_audit.scheduler import AuditScheduler
from site_audit.validation.completeness import (
    AggregationCheck,
    BatchCompletenessReport,
    DataCompletenessChecker,
)
from site_audit.validation.report import ReportValidator, ValidationReport

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class AuditRun:
    """Summary of a run plus everything the checkers found about it."""

    summary: TestSummary
    validation: ValidationReport
    completeness: BatchCompletenessReport
    aggregation_checks: Sequence[AggregationCheck]
    performance: PerformanceReport | None = None
    peak_concurrency: int = 0
    pool_stats: PoolStats | None = None

    @property
    def trustworthy(self) -> bool:
        """Whether both checkers agree the summary matches the page data.

        Analyzer coverage gaps are reported but do not make a summary wrong.
        """
        return self.validation.valid and all(
            check.correct
            for check in self.aggregation_checks
            if not check.field.startswith("coverage.")
        )


async def run_audit[PageT: PageHandle](
    urls: Sequence[str],
    options: TestOptions,
    *,
    page_factory: PageFactory[PageT],
    pipeline: AnalyzerPipeline | None = None,
    debug: DebugConfig | None = None,
) -> AuditRun:
    """Audit ``urls`` and cross-check the resulting summary.

    Args:
        urls: Pages to audit, in dispatch order
        options: Run options
        page_factory: Source of browser pages
        pipeline: Analyzers to run; defaults to every registered analyzer
        debug: Enables a diagnostic session when given

    Returns:
        The summary with validation, completeness and performance reports

    """
    scheduler = AuditScheduler(
        page_factory=page_factory,
        pipeline=pipeline or AnalyzerPipeline.from_entry_points(),
        options=options,
    )

    async with AsyncExitStack() as stack:
        session: DebugSession | None = None
        if debug is not None:
            session = await stack.enter_async_context(
                DebugSession(config=debug, progress=scheduler.progress)
            )
        outcomes = await scheduler.run(urls)

    summary = build_summary(outcomes)

    validator = ReportValidator()
    validation = validator.validate_test_summary(summary)
    validator.log_validation(validation)

    checker = DataCompletenessChecker(options=options)
    completeness = checker.generate_batch_report(summary.results)
    aggregation_checks = checker.verify_aggregations(summary.results, summary)
    log.info(
        "Data completeness: %.1f%% over %d analysed page(s)",
        completeness.overall_score,
        completeness.analysed_pages,
    )

    performance = None
    if session is not None:
        performance = session.generate_performance_report(summary)
        if session.config.save_debug_data:
            session.save_audit_debug_data(summary)

    return AuditRun(
        summary=summary,
        validation=validation,
        completeness=completeness,
        aggregation_checks=aggregation_checks,
        performance=performance,
        peak_concurrency=scheduler.peak_active,
        pool_stats=scheduler.pool_stats,
    )
