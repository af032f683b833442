"""Per-page audit results and the run summary."""

from collections.abc import Mapping, Sequence
from typing import Any, Literal

from pydantic import Field

from site_audit.models.base import Model
from site_audit.models.state import TaskState

type PerformanceGrade = Literal["A", "B", "C", "D", "F"]


class AccessibilityIssue(Model):
    """A single rule violation found on a page."""

    code: str
    message: str
    type: Literal["error", "warning", "notice"]
    selector: str | None = None
    context: str | None = None


class PerformanceMetrics(Model):
    """Navigation and paint timings collected in the browser."""

    load_time_ms: float
    dom_content_loaded_ms: float
    first_paint_ms: float
    first_contentful_paint_ms: float
    largest_contentful_paint_ms: float
    time_to_first_byte_ms: float | None = None
    cumulative_layout_shift: float | None = None
    performance_score: float | None = None
    performance_grade: PerformanceGrade | None = None


class SeoMetrics(Model):
    """On-page SEO signals."""

    title: str
    title_length: int
    meta_description: str | None
    meta_description_length: int
    h1_count: int
    word_count: int


class SocialTags(Model):
    """Open Graph and Twitter card metadata."""

    open_graph: Mapping[str, str] = Field(default_factory=dict)
    twitter_card: Mapping[str, str] = Field(default_factory=dict)


class TechnicalSeo(Model):
    """Crawlability and indexing signals."""

    canonical_url: str | None
    robots: str | None
    lang: str | None
    hreflang: tuple[str, ...] = ()


class SecurityHeaders(Model):
    """Security headers present on the main document response."""

    https: bool
    present: tuple[str, ...]
    missing: tuple[str, ...]
    score: float


class StructuredData(Model):
    """JSON-LD blocks embedded in the page."""

    json_ld_count: int
    types: tuple[str, ...]
    invalid_blocks: int


class MobileFriendliness(Model):
    """Viewport and layout checks for small screens."""

    has_viewport_meta: bool
    viewport: str | None
    horizontal_scroll: bool
    small_tap_targets: int
    score: float


class RedirectInfo(Model):
    """Where a redirected URL ended up."""

    original_url: str
    final_url: str
    status: int | None = None


class AccessibilityResult(Model):
    """Merged output of every enabled analyzer for one URL.

    Analyzer fields are optional: each is populated only when the option that
    enables the analyzer is set and the analyzer succeeded.
    """

    url: str
    title: str = ""
    state: TaskState = TaskState.COMPLETED
    passed: bool = False
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    error_count: int = 0
    warning_count: int = 0
    duration_ms: float = 0.0
    attempts: int = 1
    images_without_alt: int = 0
    buttons_without_label: int = 0
    headings_count: int = 0
    redirect: RedirectInfo | None = None
    analyzer_failures: Mapping[str, str] = Field(default_factory=dict)

    pa11y_score: float | None = None
    pa11y_issues: tuple[AccessibilityIssue, ...] | None = None
    performance_metrics: PerformanceMetrics | None = None
    seo: SeoMetrics | None = None
    social: SocialTags | None = None
    technical_seo: TechnicalSeo | None = None
    security_headers: SecurityHeaders | None = None
    structured_data: StructuredData | None = None
    mobile_friendliness: MobileFriendliness | None = None

    @classmethod
    def from_findings(
        cls,
        url: str,
        *,
        errors: Sequence[str] = (),
        warnings: Sequence[str] = (),
        **fields: Any,
    ) -> "AccessibilityResult":
        """Build a result whose counters match its error and warning lists."""
        return cls(
            url=url,
            errors=tuple(errors),
            warnings=tuple(warnings),
            error_count=len(errors),
            warning_count=len(warnings),
            **fields,
        )


class TestSummary(Model):
    """Run-level aggregate, built once all tasks reached a terminal state."""

    __test__ = False

    total_pages: int
    tested_pages: int
    passed_pages: int
    failed_pages: int
    crashed_pages: int
    skipped_pages: int
    total_errors: int
    total_warnings: int
    total_duration_ms: float
    results: tuple[AccessibilityResult, ...] = ()
