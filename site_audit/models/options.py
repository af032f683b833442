"""Options controlling an audit run."""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

from pydantic import Field

from site_audit.models.base import Model
from site_audit.models.result import AccessibilityResult
from site_audit.models.task import ProgressStats

type AnalyzerFlag = Literal[
    "collect_performance_metrics",
    "use_pa11y",
    "include_seo_analysis",
    "include_social_analysis",
    "include_technical_seo",
    "include_security_headers",
    "include_structured_data",
    "include_mobile_friendliness",
]


@dataclass(frozen=True, kw_only=True)
class EventCallbacks:
    """Optional lifecycle handlers, invoked on the event loop thread.

    ``on_url_completed`` receives completed and redirect-skipped pages;
    ``on_url_failed`` receives pages that exhausted their retries or crashed.
    """

    on_url_started: Callable[[str], None] | None = None
    on_url_completed: Callable[[str, AccessibilityResult, float, int], None] | None = (
        None
    )
    on_url_failed: Callable[[str, str, float, int], None] | None = None
    on_progress_update: Callable[[ProgressStats], None] | None = None
    on_queue_empty: Callable[[], None] | None = None


class TestOptions(Model):
    """Configuration for an audit run.

    Durations are in seconds. Analyzer flags switch individual analyzers on;
    each enabled flag implies the matching field in every completed result.
    """

    __test__ = False

    max_pages: int | None = Field(
        default=None, ge=1, description="Audit at most this many URLs"
    )
    timeout: float = Field(
        default=30.0, gt=0, description="Budget for one attempt (navigate + analyze)"
    )
    max_concurrent: int = Field(
        default=3, ge=1, description="Pages audited simultaneously"
    )
    max_retries: int = Field(
        default=3, ge=0, description="Retries after the first failed attempt"
    )
    retry_delay: float = Field(
        default=0.0, ge=0, description="Wait before the first retry"
    )
    retry_backoff: float = Field(
        default=1.0, ge=1.0, description="Multiplier applied to each further retry"
    )
    wait_until: Literal["domcontentloaded", "load", "networkidle"] = (
        "domcontentloaded"
    )
    skip_redirects: bool = Field(
        default=True, description="Record redirected URLs as skipped"
    )

    collect_performance_metrics: bool = True
    use_pa11y: bool = True
    include_seo_analysis: bool = False
    include_social_analysis: bool = False
    include_technical_seo: bool = False
    include_security_headers: bool = False
    include_structured_data: bool = False
    include_mobile_friendliness: bool = False

    filter_patterns: tuple[str, ...] = Field(
        default=(), description="Drop URLs containing any of these substrings"
    )
    include_patterns: tuple[str, ...] = Field(
        default=(), description="Keep only URLs containing one of these substrings"
    )

    event_callbacks: EventCallbacks = Field(
        default_factory=EventCallbacks, exclude=True
    )

    def is_enabled(self, flag: AnalyzerFlag | None) -> bool:
        """Return whether an analyzer gated by ``flag`` should run."""
        return flag is None or bool(getattr(self, flag))

    def retry_wait(self, attempt: int) -> float:
        """Seconds to wait before retrying after ``attempt`` failed attempts."""
        return self.retry_delay * self.retry_backoff ** max(attempt - 1, 0)
