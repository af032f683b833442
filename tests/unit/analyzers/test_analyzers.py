"""Tests for the built-in analyzers."""

from typing import Any
from unittest.mock import AsyncMock, Mock

import pytest

from site_audit.analyzers.accessibility import accessibility_analyzer, score_issues
from site_audit.analyzers.content import (
    content_analyzer,
    seo_analyzer,
    social_analyzer,
    technical_seo_analyzer,
)
from site_audit.analyzers.mobile import mobile_analyzer
from site_audit.analyzers.performance import grade_for, performance_analyzer
from site_audit.analyzers.security import security_headers_analyzer
from site_audit.analyzers.structured_data import iter_types, structured_data_analyzer
from site_audit.models.options import TestOptions
from site_audit.models.result import AccessibilityIssue

URL = "https://example.com/"


def make_page(data: Any = None, headers: dict[str, str] | None = None) -> Mock:
    """Create a page mock whose evaluate returns ``data``."""
    page = Mock()
    page.evaluate = AsyncMock(return_value=data)
    page.response_headers = headers or {}
    page.crashed = False
    return page


async def test_content_analyzer_counts_elements() -> None:
    """Reports unlabeled images and buttons and missing headings."""
    page = make_page(
        {
            "title": "Home",
            "imagesWithoutAlt": 2,
            "buttonsWithoutLabel": 1,
            "headingsCount": 0,
        }
    )

    result = await content_analyzer.analyze(page, URL, TestOptions())

    assert result.fields == {
        "title": "Home",
        "images_without_alt": 2,
        "buttons_without_label": 1,
        "headings_count": 0,
    }
    assert result.errors == ["No headings found"]
    assert result.warnings == [
        "2 images without alt attribute",
        "1 buttons without aria-label",
    ]


async def test_accessibility_analyzer_splits_issues() -> None:
    """Turns rule violations into errors, warnings and a score."""
    page = make_page(
        [
            {
                "code": "image-alt",
                "type": "error",
                "message": "Images must have alternate text",
                "selector": "img.hero",
                "context": "<img class='hero'>",
            },
            {
                "code": "link-name",
                "type": "warning",
                "message": "Links must have discernible text",
                "selector": None,
                "context": None,
            },
        ]
    )

    result = await accessibility_analyzer.analyze(page, URL, TestOptions())

    assert result.errors == ["image-alt: Images must have alternate text"]
    assert result.warnings == ["link-name: Links must have discernible text"]
    assert result.fields["pa11y_score"] == 88.0
    assert len(result.fields["pa11y_issues"]) == 2


def test_score_issues_is_bounded() -> None:
    """Scores never drop below zero."""
    issues = tuple(
        AccessibilityIssue(code="label", message="m", type="error") for _ in range(20)
    )

    assert score_issues(issues) == 0.0
    assert score_issues(()) == 100.0


async def test_performance_analyzer_scores_and_grades() -> None:
    """Builds metrics, falls back to FCP for LCP and flags poor values."""
    page = make_page(
        {
            "loadTime": 3200,
            "domContentLoaded": 1500,
            "timeToFirstByte": 200,
            "firstPaint": 900,
            "firstContentfulPaint": 3500,
            "largestContentfulPaint": None,
            "cumulativeLayoutShift": 0.01,
        }
    )

    result = await performance_analyzer.analyze(page, URL, TestOptions())

    metrics = result.fields["performance_metrics"]
    assert metrics.largest_contentful_paint_ms == 3500
    assert metrics.performance_score == 57.5
    assert metrics.performance_grade == "C"
    assert result.warnings == [
        "Performance: first_contentful_paint_ms is 3500 (poor > 3000)"
    ]


@pytest.mark.parametrize(
    ("score", "grade"), [(100, "A"), (90, "A"), (80, "B"), (50, "C"), (30, "D"), (5, "F")]
)
def test_grade_for(score: float, grade: str) -> None:
    """Maps scores to letter grades."""
    assert grade_for(score) == grade


async def test_seo_analyzer_flags_missing_description() -> None:
    """Warns on missing meta description and unexpected h1 count."""
    page = make_page(
        {"title": "Home", "metaDescription": None, "h1Count": 2, "wordCount": 120}
    )

    result = await seo_analyzer.analyze(page, URL, TestOptions())

    seo = result.fields["seo"]
    assert seo.title_length == 4
    assert seo.meta_description_length == 0
    assert result.warnings == [
        "SEO: meta description is missing",
        "SEO: expected one h1, found 2",
    ]


async def test_social_analyzer_lists_missing_tags() -> None:
    """Warns about each missing Open Graph and Twitter tag."""
    page = make_page(
        {"openGraph": {"og:title": "Home"}, "twitterCard": {"twitter:card": "summary"}}
    )

    result = await social_analyzer.analyze(page, URL, TestOptions())

    assert result.warnings == [
        "Social: missing og:description",
        "Social: missing og:image",
    ]


async def test_technical_seo_analyzer_detects_noindex() -> None:
    """Warns on noindex pages without a canonical link."""
    page = make_page(
        {"canonical": None, "robots": "NOINDEX, follow", "lang": "en", "hreflang": []}
    )

    result = await technical_seo_analyzer.analyze(page, URL, TestOptions())

    assert result.fields["technical_seo"].lang == "en"
    assert result.warnings == [
        "Technical SEO: no canonical link",
        "Technical SEO: page is marked noindex",
    ]


async def test_security_headers_analyzer_scores_present_headers() -> None:
    """Scores the share of expected headers present, case-insensitively."""
    page = make_page(
        headers={
            "Strict-Transport-Security": "max-age=63072000",
            "X-Content-Type-Options": "nosniff",
            "X-Frame-Options": "DENY",
        }
    )

    result = await security_headers_analyzer.analyze(page, URL, TestOptions())

    headers = result.fields["security_headers"]
    assert headers.https is True
    assert headers.score == 50.0
    assert headers.missing == (
        "content-security-policy",
        "referrer-policy",
        "permissions-policy",
    )
    assert len(result.warnings) == 3


async def test_structured_data_analyzer_counts_invalid_blocks() -> None:
    """Collects types across blocks and reports unparsable JSON-LD."""
    page = make_page(
        [
            '{"@context": "https://schema.org", "@type": "Organization"}',
            '{"@graph": [{"@type": ["WebSite", "Organization"]}]}',
            "{not json",
        ]
    )

    result = await structured_data_analyzer.analyze(page, URL, TestOptions())

    data = result.fields["structured_data"]
    assert data.json_ld_count == 3
    assert data.types == ("Organization", "WebSite")
    assert data.invalid_blocks == 1
    assert result.errors == ["Structured data: 1 invalid JSON-LD block(s)"]


def test_iter_types_ignores_non_string_types() -> None:
    """Skips malformed @type values."""
    assert list(iter_types({"@type": 3, "@graph": [{"@type": "Event"}]})) == ["Event"]


async def test_mobile_analyzer_penalises_missing_viewport() -> None:
    """Deducts for missing viewport, overflow and small tap targets."""
    page = make_page(
        {"viewport": None, "horizontalScroll": True, "smallTapTargets": 3}
    )

    result = await mobile_analyzer.analyze(page, URL, TestOptions())

    mobile = result.fields["mobile_friendliness"]
    assert mobile.has_viewport_meta is False
    assert mobile.score == 24.0
    assert len(result.warnings) == 3


async def test_mobile_analyzer_accepts_responsive_viewport() -> None:
    """A device-width viewport with no issues scores 100."""
    page = make_page(
        {
            "viewport": "width = device-width, initial-scale=1",
            "horizontalScroll": False,
            "smallTapTargets": 0,
        }
    )

    result = await mobile_analyzer.analyze(page, URL, TestOptions())

    assert result.fields["mobile_friendliness"].score == 100.0
    assert result.warnings == []
