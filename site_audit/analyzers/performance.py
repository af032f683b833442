"""Navigation timing and Core Web Vitals collection."""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, ClassVar

from site_audit.analyzers.base import AnalysisResult, Analyzer
from site_audit.models.options import TestOptions
from site_audit.models.result import PerformanceGrade, PerformanceMetrics
from site_audit.page import PageHandle

TIMING_SCRIPT = """() => {
  const nav = performance.getEntriesByType("navigation")[0];
  const paints = Object.fromEntries(
    performance.getEntriesByType("paint").map((p) => [p.name, p.startTime])
  );
  const lcp = performance.getEntriesByType("largest-contentful-paint").pop();
  const cls = performance.getEntriesByType("layout-shift")
    .reduce((sum, e) => sum + (e.hadRecentInput ? 0 : e.value), 0);
  return {
    loadTime: nav ? Math.max(0, nav.loadEventEnd - nav.startTime) : 0,
    domContentLoaded: nav ? Math.max(0, nav.domContentLoadedEventEnd - nav.startTime) : 0,
    timeToFirstByte: nav ? Math.max(0, nav.responseStart - nav.requestStart) : null,
    firstPaint: paints["first-paint"] || 0,
    firstContentfulPaint: paints["first-contentful-paint"] || 0,
    largestContentfulPaint: lcp ? lcp.startTime : null,
    cumulativeLayoutShift: cls,
  };
}"""

# (good, poor, weight): past "poor" a metric costs its full weight,
# between "good" and "poor" it costs half.
THRESHOLDS: Mapping[str, tuple[float, float, float]] = {
    "largest_contentful_paint_ms": (2500, 4000, 35),
    "first_contentful_paint_ms": (1800, 3000, 25),
    "cumulative_layout_shift": (0.1, 0.25, 25),
    "time_to_first_byte_ms": (800, 1800, 15),
}

GRADES: tuple[tuple[float, PerformanceGrade], ...] = (
    (90, "A"),
    (75, "B"),
    (50, "C"),
    (25, "D"),
)


def grade_for(score: float) -> PerformanceGrade:
    for floor, grade in GRADES:
        if score >= floor:
            return grade
    return "F"


def score_metrics(values: Mapping[str, float | None]) -> float:
    """Score 0-100 from Web Vitals thresholds; unknown metrics are not penalised."""
    score = 100.0
    for name, (good, poor, weight) in THRESHOLDS.items():
        value = values.get(name)
        if value is None or value <= good:
            continue
        score -= weight if value > poor else weight / 2
    return max(score, 0.0)


@dataclass(frozen=True, kw_only=True)
class PerformanceAnalyzer(Analyzer):
    key: ClassVar[str] = "performance"
    option = "collect_performance_metrics"
    fields: ClassVar[tuple[str, ...]] = ("performance_metrics",)

    async def analyze(
        self, page: PageHandle, url: str, options: TestOptions
    ) -> AnalysisResult:
        data: Mapping[str, Any] = await page.evaluate(TIMING_SCRIPT)
        fcp = float(data["firstContentfulPaint"])
        # LCP entries are only buffered when an observer ran; fall back to FCP.
        lcp = data["largestContentfulPaint"]
        values: dict[str, float | None] = {
            "load_time_ms": float(data["loadTime"]),
            "dom_content_loaded_ms": float(data["domContentLoaded"]),
            "first_paint_ms": float(data["firstPaint"]),
            "first_contentful_paint_ms": fcp,
            "largest_contentful_paint_ms": float(lcp) if lcp is not None else fcp,
            "time_to_first_byte_ms": data["timeToFirstByte"],
            "cumulative_layout_shift": data["cumulativeLayoutShift"],
        }
        score = score_metrics(values)
        metrics = PerformanceMetrics(
            **values,
            performance_score=score,
            performance_grade=grade_for(score),
        )

        warnings: list[str] = []
        for name, (_, poor, _) in THRESHOLDS.items():
            value = values[name]
            if value is not None and value > poor:
                warnings.append(f"Performance: {name} is {value:g} (poor > {poor:g})")
        return AnalysisResult(fields={"performance_metrics": metrics}, warnings=warnings)


performance_analyzer = PerformanceAnalyzer()
