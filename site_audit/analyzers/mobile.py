"""Mobile-friendliness heuristics."""

from dataclasses import dataclass
from typing import ClassVar

from site_audit.analyzers.base import AnalysisResult, Analyzer
from site_audit.models.options import TestOptions
from site_audit.models.result import MobileFriendliness
from site_audit.page import PageHandle

MIN_TAP_TARGET_PX = 44

MOBILE_SCRIPT = f"""() => {{
  const viewport = document.querySelector('meta[name="viewport"]');
  const targets = Array.from(document.querySelectorAll("a[href], button, input, select"))
    .filter((el) => {{
      const r = el.getBoundingClientRect();
      return r.width > 0 && r.height > 0
        && (r.width < {MIN_TAP_TARGET_PX} || r.height < {MIN_TAP_TARGET_PX});
    }});
  return {{
    viewport: viewport ? viewport.getAttribute("content") : null,
    horizontalScroll: document.documentElement.scrollWidth > window.innerWidth,
    smallTapTargets: targets.length,
  }};
}}"""


@dataclass(frozen=True, kw_only=True)
class MobileFriendlinessAnalyzer(Analyzer):
    key: ClassVar[str] = "mobile"
    option = "include_mobile_friendliness"
    fields: ClassVar[tuple[str, ...]] = ("mobile_friendliness",)

    async def analyze(
        self, page: PageHandle, url: str, options: TestOptions
    ) -> AnalysisResult:
        data = await page.evaluate(MOBILE_SCRIPT)
        viewport = data["viewport"]
        has_viewport = bool(viewport) and "width=device-width" in viewport.replace(
            " ", ""
        )
        small_targets = int(data["smallTapTargets"])

        score = 100.0
        warnings: list[str] = []
        if not has_viewport:
            score -= 40
            warnings.append("Mobile: no responsive viewport meta tag")
        if data["horizontalScroll"]:
            score -= 30
            warnings.append("Mobile: content is wider than the viewport")
        if small_targets:
            score -= min(30, small_targets * 2)
            warnings.append(f"Mobile: {small_targets} tap targets smaller than 44px")

        result = MobileFriendliness(
            has_viewport_meta=has_viewport,
            viewport=viewport,
            horizontal_scroll=bool(data["horizontalScroll"]),
            small_tap_targets=small_targets,
            score=max(score, 0.0),
        )
        return AnalysisResult(
            fields={"mobile_friendliness": result}, warnings=warnings
        )


mobile_analyzer = MobileFriendlinessAnalyzer()
