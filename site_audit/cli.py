"""CLI entry point for site audits."""

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from site_audit.aggregator import page_status
from site_audit.analyzers.loading import AnalyzerNotFoundError
from site_audit.audit import AuditRun, run_audit
from site_audit.browser import PlaywrightPageFactory
from site_audit.config import AuditConfig, load_audit_config
from site_audit.debugger import DebugConfig
from site_audit.models.options import TestOptions
from site_audit.models.result import TestSummary
from site_audit.pipeline import AnalyzerPipeline
from site_audit.sitemap import SitemapError, discover_urls, filter_urls
from site_audit.validation.completeness import DataCompletenessChecker
from site_audit.validation.report import ReportValidator

STATUS_SYMBOLS = {
    "passed": "✅",
    "failed": "❌",
    "crashed": "💥",
    "skipped": "⏭️",
}

ANALYZER_SWITCHES = {
    "seo": "include_seo_analysis",
    "social": "include_social_analysis",
    "technical_seo": "include_technical_seo",
    "security_headers": "include_security_headers",
    "structured_data": "include_structured_data",
    "mobile": "include_mobile_friendliness",
}


def log_results_summary(log: logging.Logger, summary: TestSummary) -> None:
    """Log a formatted summary of page results."""
    log.info("=" * 80)
    log.info("Audit Results Summary:")
    log.info("=" * 80)

    for result in summary.results:
        status = page_status(result)
        log.info(
            "%s %s: %s (%d error(s), %d warning(s), %.2fs, %d attempt(s))",
            STATUS_SYMBOLS[status],
            result.url,
            status,
            result.error_count,
            result.warning_count,
            result.duration_ms / 1000,
            result.attempts,
        )
        if result.redirect:
            log.info("  Redirected to: %s", result.redirect.final_url)
        for error in result.errors[:3]:
            log.info("  Error: %s", error)


def format_output(run: AuditRun) -> dict[str, Any]:
    """Format an audit run for JSON output."""
    summary = run.summary
    return {
        "total": summary.total_pages,
        "tested": summary.tested_pages,
        "passed": summary.passed_pages,
        "failed": summary.failed_pages,
        "crashed": summary.crashed_pages,
        "skipped": summary.skipped_pages,
        "errors": summary.total_errors,
        "warnings": summary.total_warnings,
        "duration_ms": summary.total_duration_ms,
        "validation": {
            "valid": run.validation.valid,
            "trustworthy": run.trustworthy,
            "issues": [
                issue.model_dump(mode="json") for issue in run.validation.issues
            ],
        },
        "completeness": {
            "score": run.completeness.overall_score,
            "complete_pages": run.completeness.complete_pages,
            "missing_fields": dict(run.completeness.missing_field_counts),
        },
        "results": [
            {
                "url": result.url,
                "status": page_status(result),
                "state": str(result.state),
                "errors": result.error_count,
                "warnings": result.warning_count,
                "duration_ms": result.duration_ms,
                "attempts": result.attempts,
                "redirect": result.redirect.final_url if result.redirect else None,
            }
            for result in summary.results
        ],
    }


def build_options(base: TestOptions, overrides: Mapping[str, Any]) -> TestOptions:
    """Apply CLI overrides on top of configured options, revalidating them.

    Event callbacks are not serialized and carry over unchanged.
    """
    data = base.model_dump()
    data.update({key: value for key, value in overrides.items() if value is not None})
    return TestOptions.model_validate(data).model_copy(
        update={"event_callbacks": base.event_callbacks}
    )


async def collect_urls(config: AuditConfig, options: TestOptions) -> Sequence[str]:
    """Merge configured URLs with sitemap discoveries, deduplicated in order."""
    urls = list(config.urls)
    if config.sitemap:
        urls.extend(await discover_urls(config.sitemap))
    urls = list(filter_urls(urls, options.filter_patterns, options.include_patterns))
    return tuple(dict.fromkeys(urls))


async def run(
    urls: Sequence[str] = (),
    sitemap: str | None = None,
    config_path: Path | None = None,
    overrides: Mapping[str, Any] | None = None,
    debug_dir: Path | None = None,
    output_path: Path | None = None,
    strict: bool = False,
    headless: bool = True,
    browser_type: str = "chromium",
    analyzer_keys: Sequence[str] | None = None,
) -> int:
    """Run an audit and return exit code."""
    log = logging.getLogger("site_audit")

    config = await load_audit_config(config_path) if config_path else AuditConfig()
    if urls or sitemap:
        config = config.model_copy(
            update={
                "urls": config.urls + tuple(urls),
                "sitemap": sitemap or config.sitemap,
            }
        )
    options = build_options(config.options, overrides or {})

    try:
        pipeline = AnalyzerPipeline.from_entry_points(
            analyzer_keys or config.analyzers
        )
    except AnalyzerNotFoundError as exc:
        log.error("%s", exc)
        return 1

    debug = config.debug
    if debug_dir is not None:
        debug = DebugConfig.model_validate(
            debug.model_dump() | {"output_dir": debug_dir, "save_debug_data": True}
        )

    try:
        targets = await collect_urls(config, options)
    except SitemapError as exc:
        log.error("Sitemap discovery failed: %s", exc)
        return 1

    if not targets:
        log.info("No URLs to audit")
        print(json.dumps({"total": 0, "results": []}))
        return 0

    log.info("Auditing %d URL(s)...", len(targets))
    async with PlaywrightPageFactory.launch(
        browser_type=browser_type, headless=headless
    ) as page_factory:
        audit = await run_audit(
            targets, options, page_factory=page_factory, pipeline=pipeline, debug=debug
        )

    log_results_summary(log, audit.summary)
    if audit.performance is not None:
        for line in audit.performance.render().splitlines():
            log.info("%s", line)

    if output_path is not None:
        output_path.write_text(audit.summary.model_dump_json(indent=2))
        log.info("Summary written to %s", output_path)

    print(json.dumps(format_output(audit), indent=2))

    if strict and not audit.trustworthy:
        log.error("Audit data failed validation (strict mode)")
        return 2

    summary = audit.summary
    return 1 if summary.failed_pages or summary.crashed_pages else 0


def run_validate(summary_path: Path) -> int:
    """Re-validate a saved summary and return exit code."""
    log = logging.getLogger("site_audit")

    try:
        data = json.loads(summary_path.read_text())
    except (OSError, json.JSONDecodeError) as exc:
        log.error("Cannot read summary %s: %s", summary_path, exc)
        return 1
    if isinstance(data, dict) and "summary" in data:
        data = data["summary"]

    try:
        summary = TestSummary.model_validate(data)
    except ValidationError as exc:
        log.error("Invalid summary schema in %s: %s", summary_path, exc)
        return 1

    validator = ReportValidator()
    validation = validator.validate_test_summary(summary)
    validator.log_validation(validation)
    checks = DataCompletenessChecker(options=TestOptions()).verify_aggregations(
        summary.results, summary
    )
    mismatched = [
        check
        for check in checks
        if not check.correct and not check.field.startswith("coverage.")
    ]

    print(
        json.dumps(
            {
                "valid": validation.valid and not mismatched,
                "issues": [
                    issue.model_dump(mode="json") for issue in validation.issues
                ],
                "mismatched_aggregations": [
                    {
                        "field": check.field,
                        "expected": check.expected,
                        "actual": check.actual,
                    }
                    for check in mismatched
                ],
            },
            indent=2,
        )
    )
    return 0 if validation.valid and not mismatched else 1


def _add_audit_parser(subparsers: Any) -> None:
    parser = subparsers.add_parser("audit", help="Audit pages in a headless browser")
    parser.add_argument(
        "--url", dest="urls", action="append", default=[], help="Page to audit"
    )
    parser.add_argument("--sitemap", help="Sitemap URL or file to discover pages")
    parser.add_argument("--config", type=Path, help="Path to a YAML audit config")
    parser.add_argument("--max-pages", type=int, help="Audit at most N pages")
    parser.add_argument("--max-concurrent", type=int, help="Pages audited at once")
    parser.add_argument("--max-retries", type=int, help="Retries per page")
    parser.add_argument("--timeout", type=float, help="Seconds per attempt")
    parser.add_argument(
        "--no-skip-redirects",
        dest="skip_redirects",
        action="store_const",
        const=False,
        help="Audit redirected pages instead of skipping them",
    )
    parser.add_argument(
        "--no-pa11y",
        dest="use_pa11y",
        action="store_const",
        const=False,
        help="Disable accessibility rule checks",
    )
    parser.add_argument(
        "--no-performance",
        dest="collect_performance_metrics",
        action="store_const",
        const=False,
        help="Disable performance metrics",
    )
    for name, option in ANALYZER_SWITCHES.items():
        parser.add_argument(
            f"--{name.replace('_', '-')}",
            dest=option,
            action="store_const",
            const=True,
            help=f"Enable the {name.replace('_', ' ')} analyzer",
        )
    parser.add_argument(
        "--analyzer",
        dest="analyzer_keys",
        action="append",
        help="Load only this analyzer (repeatable); defaults to all registered",
    )
    parser.add_argument(
        "--exclude",
        dest="filter_patterns",
        action="append",
        help="Skip URLs containing this substring",
    )
    parser.add_argument(
        "--include",
        dest="include_patterns",
        action="append",
        help="Only audit URLs containing this substring",
    )
    parser.add_argument("--debug-dir", type=Path, help="Write debug data here")
    parser.add_argument("--output", type=Path, help="Write the full summary JSON here")
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Exit with code 2 when the audit data fails validation",
    )
    parser.add_argument(
        "--no-headless",
        dest="headless",
        action="store_false",
        help="Show the browser window",
    )
    parser.add_argument(
        "--browser",
        default="chromium",
        choices=("chromium", "firefox", "webkit"),
        help="Browser engine",
    )


OVERRIDE_KEYS = (
    "max_pages",
    "max_concurrent",
    "max_retries",
    "timeout",
    "skip_redirects",
    "use_pa11y",
    "collect_performance_metrics",
    *ANALYZER_SWITCHES.values(),
    "filter_patterns",
    "include_patterns",
)


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Audit web pages for quality issues")
    subparsers = parser.add_subparsers(dest="command", required=True)
    _add_audit_parser(subparsers)
    validate = subparsers.add_parser(
        "validate", help="Re-validate a saved audit summary"
    )
    validate.add_argument("summary", type=Path, help="Path to a summary JSON file")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    if args.command == "validate":
        sys.exit(run_validate(args.summary))

    exit_code = asyncio.run(
        run(
            urls=args.urls,
            sitemap=args.sitemap,
            config_path=args.config,
            overrides={key: getattr(args, key) for key in OVERRIDE_KEYS},
            debug_dir=args.debug_dir,
            output_path=args.output,
            strict=args.strict,
            headless=args.headless,
            browser_type=args.browser,
            analyzer_keys=args.analyzer_keys,
        )
    )
    sys.exit(exit_code)


if __name__ == "__main__":  # pragma: no cover
    main()
