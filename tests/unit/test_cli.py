"""Tests for CLI module."""

import json
import logging
from collections.abc import Awaitable, Callable, Sequence
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, Mock, patch

import pytest

from site_audit.aggregator import build_summary
from site_audit.audit import AuditRun, run_audit
from site_audit.cli import (
    build_options,
    collect_urls,
    format_output,
    log_results_summary,
    main,
    run,
    run_validate,
)
from site_audit.config import AuditConfig
from site_audit.errors import NavigationError
from site_audit.models.options import EventCallbacks, TestOptions
from site_audit.models.result import RedirectInfo
from site_audit.models.state import TaskState
from site_audit.models.task import TaskOutcome
from site_audit.pipeline import AnalyzerPipeline
from site_audit.sitemap import SitemapError
from site_audit.testing.factories import TaskOutcomeFactory
from site_audit.testing.fakes import FakePageFactory, PageStep, StaticAnalyzer
from site_audit.validation.completeness import DataCompletenessChecker
from site_audit.validation.report import ReportValidator

BASE_URL = "https://example.com"

type AuditFunction = Callable[..., Awaitable[AuditRun]]

QUICK = {"use_pa11y": False, "collect_performance_metrics": False, "max_retries": 0}


def make_run(outcomes: Sequence[TaskOutcome], **tamper: int) -> AuditRun:
    """Build an audit run, optionally with tampered summary counters."""
    summary = build_summary(outcomes).model_copy(update=tamper)
    checker = DataCompletenessChecker(options=TestOptions())
    return AuditRun(
        summary=summary,
        validation=ReportValidator().validate_test_summary(summary),
        completeness=checker.generate_batch_report(summary.results),
        aggregation_checks=checker.verify_aggregations(summary.results, summary),
    )


def test_log_results_summary(caplog: pytest.LogCaptureFixture) -> None:
    """Logs one line per page with its status symbol."""
    run_ = make_run(
        [
            TaskOutcomeFactory.build(index=0, url=f"{BASE_URL}/a", attempts=2),
            TaskOutcomeFactory.build(
                index=1,
                url=f"{BASE_URL}/b",
                state=TaskState.FAILED,
                error="Navigation failed",
                duration_ms=2500.0,
            ),
            TaskOutcomeFactory.build(
                index=2,
                url=f"{BASE_URL}/c",
                state=TaskState.REDIRECT_SKIPPED,
                redirect=RedirectInfo(
                    original_url=f"{BASE_URL}/c", final_url=f"{BASE_URL}/d"
                ),
            ),
        ]
    )

    with caplog.at_level(logging.INFO):
        log_results_summary(logging.getLogger(), run_.summary)

    assert "Audit Results Summary:" in caplog.text
    assert f"❌ {BASE_URL}/b: failed (1 error(s), 0 warning(s), 2.50s" in caplog.text
    assert "Error: Navigation failed" in caplog.text
    assert f"⏭️ {BASE_URL}/c: skipped" in caplog.text
    assert f"Redirected to: {BASE_URL}/d" in caplog.text


def test_format_output_counts_and_results() -> None:
    """Formats totals, checks and per-page rows."""
    run_ = make_run(
        [
            TaskOutcomeFactory.build(index=0, url=f"{BASE_URL}/a"),
            TaskOutcomeFactory.build(
                index=1, url=f"{BASE_URL}/b", state=TaskState.CRASHED, error="gone"
            ),
        ]
    )

    output = format_output(run_)

    assert output["total"] == 2
    assert output["tested"] == 2
    assert output["crashed"] == 1
    assert output["validation"] == {"valid": True, "trustworthy": True, "issues": []}
    assert [row["url"] for row in output["results"]] == [
        f"{BASE_URL}/a",
        f"{BASE_URL}/b",
    ]
    assert output["results"][1]["status"] == "crashed"
    assert output["results"][1]["state"] == "crashed"
    json.dumps(output)


def test_build_options_ignores_unset_overrides() -> None:
    """None values keep configured options."""
    base = TestOptions(max_concurrent=5, include_seo_analysis=True)

    options = build_options(base, {"max_concurrent": None, "timeout": 12.5})

    assert options.max_concurrent == 5
    assert options.timeout == 12.5
    assert options.include_seo_analysis is True


def test_build_options_revalidates() -> None:
    """Invalid overrides are rejected."""
    with pytest.raises(ValueError, match="max_concurrent"):
        build_options(TestOptions(), {"max_concurrent": 0})


def test_build_options_keeps_event_callbacks() -> None:
    """Callbacks on the base options survive the override round."""
    callbacks = EventCallbacks(on_url_started=Mock())
    base = TestOptions(event_callbacks=callbacks)

    options = build_options(base, {"timeout": 12.5})

    assert options.event_callbacks is callbacks
    assert options.timeout == 12.5


async def test_collect_urls_merges_sitemap() -> None:
    """Config URLs come first, sitemap URLs follow, filtered and deduplicated."""
    config = AuditConfig(
        urls=(f"{BASE_URL}/", f"{BASE_URL}/admin"),
        sitemap=f"{BASE_URL}/sitemap.xml",
    )
    options = TestOptions(filter_patterns=("/admin",))

    with patch(
        "site_audit.cli.discover_urls",
        new_callable=AsyncMock,
        return_value=(f"{BASE_URL}/", f"{BASE_URL}/about"),
    ) as mock_discover:
        urls = await collect_urls(config, options)

    assert urls == (f"{BASE_URL}/", f"{BASE_URL}/about")
    mock_discover.assert_awaited_once_with(f"{BASE_URL}/sitemap.xml")


class TestRun:
    """Tests for run function."""

    @pytest.fixture
    def page_factory(self) -> FakePageFactory:
        """Create fake page factory."""
        return FakePageFactory()

    @pytest.fixture
    def mock_launcher(self, page_factory: FakePageFactory) -> Mock:
        """Create mock browser launcher yielding the fake factory."""
        cm = AsyncMock()
        cm.__aenter__.return_value = page_factory
        cm.__aexit__.return_value = None
        launcher = Mock()
        launcher.launch = Mock(return_value=cm)
        return launcher

    @pytest.fixture
    def audit(self) -> AuditFunction:
        """run_audit with a static pipeline in place of the resolved one."""
        static = AnalyzerPipeline(analyzers=[StaticAnalyzer()])

        async def audit(*args: Any, **kwargs: Any) -> AuditRun:
            return await run_audit(*args, **(kwargs | {"pipeline": static}))

        return audit

    async def test_returns_zero_when_no_urls(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Returns 0 and prints empty results when nothing is configured."""
        exit_code = await run()

        assert exit_code == 0
        assert json.loads(capsys.readouterr().out) == {"total": 0, "results": []}

    async def test_returns_zero_when_all_pages_pass(
        self,
        mock_launcher: Mock,
        audit: AuditFunction,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """Returns 0 and prints the formatted summary."""
        with (
            patch("site_audit.cli.PlaywrightPageFactory", mock_launcher),
            patch("site_audit.cli.run_audit", audit),
        ):
            exit_code = await run(
                urls=[f"{BASE_URL}/a", f"{BASE_URL}/b"],
                overrides=QUICK,
                browser_type="firefox",
            )

        assert exit_code == 0
        output = json.loads(capsys.readouterr().out)
        assert output["passed"] == 2
        assert output["validation"]["trustworthy"] is True
        mock_launcher.launch.assert_called_once_with(
            browser_type="firefox", headless=True
        )

    async def test_returns_one_when_page_fails(
        self,
        mock_launcher: Mock,
        audit: AuditFunction,
        page_factory: FakePageFactory,
    ) -> None:
        """Returns 1 when any page fails."""
        url = f"{BASE_URL}/down"
        page_factory.scripts = {url: [PageStep(error=NavigationError(url, "refused"))]}

        with (
            patch("site_audit.cli.PlaywrightPageFactory", mock_launcher),
            patch("site_audit.cli.run_audit", audit),
        ):
            exit_code = await run(urls=[url], overrides=QUICK)

        assert exit_code == 1

    async def test_returns_two_in_strict_mode_on_bad_data(
        self, mock_launcher: Mock
    ) -> None:
        """Strict mode fails runs whose summary does not match its pages."""
        tampered = make_run([TaskOutcomeFactory.build(index=0)], passed_pages=3)

        with (
            patch("site_audit.cli.PlaywrightPageFactory", mock_launcher),
            patch(
                "site_audit.cli.run_audit",
                new_callable=AsyncMock,
                return_value=tampered,
            ),
        ):
            exit_code = await run(urls=[f"{BASE_URL}/"], strict=True)

        assert exit_code == 2

    async def test_writes_summary_and_debug_data(
        self, mock_launcher: Mock, audit: AuditFunction, tmp_path: Path
    ) -> None:
        """Output and debug directories receive their files."""
        output = tmp_path / "summary.json"

        with (
            patch("site_audit.cli.PlaywrightPageFactory", mock_launcher),
            patch("site_audit.cli.run_audit", audit),
        ):
            exit_code = await run(
                urls=[f"{BASE_URL}/a"],
                overrides=QUICK,
                debug_dir=tmp_path / "debug",
                output_path=output,
            )

        assert exit_code == 0
        assert json.loads(output.read_text())["total_pages"] == 1
        assert (tmp_path / "debug" / "audit-debug.json").exists()

    async def test_returns_one_when_sitemap_fails(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Sitemap errors abort the run."""
        with patch(
            "site_audit.cli.discover_urls",
            new_callable=AsyncMock,
            side_effect=SitemapError("Cannot fetch sitemap"),
        ):
            exit_code = await run(sitemap=f"{BASE_URL}/sitemap.xml")

        assert exit_code == 1
        assert "Sitemap discovery failed" in caplog.text

    async def test_loads_only_selected_analyzers(self, mock_launcher: Mock) -> None:
        """Analyzer keys restrict the pipeline handed to the audit."""
        finished = make_run([TaskOutcomeFactory.build(index=0)])

        with (
            patch("site_audit.cli.PlaywrightPageFactory", mock_launcher),
            patch(
                "site_audit.cli.run_audit",
                new_callable=AsyncMock,
                return_value=finished,
            ) as audit,
        ):
            exit_code = await run(
                urls=[f"{BASE_URL}/"], analyzer_keys=["security-headers", "content"]
            )

        assert exit_code == 0
        pipeline = audit.await_args.kwargs["pipeline"]
        assert [a.key for a in pipeline.analyzers] == ["content", "security-headers"]

    async def test_returns_one_for_unknown_analyzer(
        self, mock_launcher: Mock, caplog: pytest.LogCaptureFixture
    ) -> None:
        """An unknown analyzer key aborts before the browser starts."""
        with patch("site_audit.cli.PlaywrightPageFactory", mock_launcher):
            exit_code = await run(urls=[f"{BASE_URL}/"], analyzer_keys=["lighthouse"])

        assert exit_code == 1
        assert "Analyzer 'lighthouse' not found" in caplog.text
        mock_launcher.launch.assert_not_called()


class TestRunValidate:
    """Tests for run_validate function."""

    def test_accepts_consistent_summary(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Returns 0 for a summary matching its pages."""
        path = tmp_path / "summary.json"
        outcomes = [TaskOutcomeFactory.build(index=i) for i in range(2)]
        summary = make_run(outcomes).summary
        path.write_text(summary.model_dump_json())

        assert run_validate(path) == 0
        assert json.loads(capsys.readouterr().out)["valid"] is True

    def test_reads_debug_file(self, tmp_path: Path) -> None:
        """Accepts debug files wrapping the summary."""
        path = tmp_path / "audit-debug.json"
        summary = make_run([TaskOutcomeFactory.build(index=0)]).summary
        path.write_text(json.dumps({"summary": summary.model_dump(mode="json")}))

        assert run_validate(path) == 0

    def test_rejects_tampered_summary(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Returns 1 and lists mismatched aggregates."""
        path = tmp_path / "summary.json"
        summary = make_run([TaskOutcomeFactory.build(index=0)], total_pages=4).summary
        path.write_text(summary.model_dump_json())

        assert run_validate(path) == 1
        output = json.loads(capsys.readouterr().out)
        assert output["valid"] is False
        assert "total_pages" in {
            check["field"] for check in output["mismatched_aggregations"]
        }

    @pytest.mark.parametrize("content", ["{not json", '{"total_pages": "many"}'])
    def test_rejects_unreadable_files(self, tmp_path: Path, content: str) -> None:
        """Returns 1 for malformed JSON or schema errors."""
        path = tmp_path / "summary.json"
        path.write_text(content)

        assert run_validate(path) == 1


class TestMain:
    """Tests for the argument parser."""

    def test_passes_arguments_to_run(self) -> None:
        """Maps flags onto run arguments and option overrides."""
        argv = [
            "site-audit",
            "audit",
            "--url",
            f"{BASE_URL}/a",
            "--url",
            f"{BASE_URL}/b",
            "--max-concurrent",
            "2",
            "--no-pa11y",
            "--seo",
            "--exclude",
            "/admin",
            "--analyzer",
            "content",
            "--strict",
        ]

        with (
            patch("sys.argv", argv),
            patch("site_audit.cli.run", new_callable=AsyncMock, return_value=0) as mock,
            pytest.raises(SystemExit) as exc_info,
        ):
            main()

        assert exc_info.value.code == 0
        kwargs = mock.await_args.kwargs
        assert kwargs["urls"] == [f"{BASE_URL}/a", f"{BASE_URL}/b"]
        assert kwargs["strict"] is True
        assert kwargs["analyzer_keys"] == ["content"]
        overrides = kwargs["overrides"]
        assert overrides["max_concurrent"] == 2
        assert overrides["use_pa11y"] is False
        assert overrides["include_seo_analysis"] is True
        assert overrides["filter_patterns"] == ["/admin"]
        assert overrides["max_retries"] is None
        assert overrides["include_mobile_friendliness"] is None

    def test_validate_command(self, tmp_path: Path) -> None:
        """Dispatches the validate subcommand."""
        path = tmp_path / "summary.json"

        with (
            patch("sys.argv", ["site-audit", "validate", str(path)]),
            patch("site_audit.cli.run_validate", return_value=1) as mock,
            pytest.raises(SystemExit) as exc_info,
        ):
            main()

        assert exc_info.value.code == 1
        mock.assert_called_once_with(path)
