"""Rule-based accessibility checks evaluated in the page (pa11y-style issues)."""

from dataclasses import dataclass
from typing import ClassVar

from site_audit.analyzers.base import AnalysisResult, Analyzer
from site_audit.models.options import TestOptions
from site_audit.models.result import AccessibilityIssue
from site_audit.page import PageHandle

ERROR_PENALTY = 10
WARNING_PENALTY = 2

RULES_SCRIPT = """() => {
  const issues = [];
  const describe = (el) => {
    if (el.id) return `#${el.id}`;
    const cls = (el.getAttribute("class") || "").trim().split(/\\s+/)[0];
    return el.tagName.toLowerCase() + (cls ? `.${cls}` : "");
  };
  const add = (code, type, message, el) => issues.push({
    code, type, message,
    selector: el ? describe(el) : null,
    context: el ? el.outerHTML.slice(0, 120) : null,
  });

  if (!document.documentElement.getAttribute("lang")) {
    add("html-has-lang", "error", "The html element must have a lang attribute", null);
  }
  if (!document.title.trim()) {
    add("document-title", "error", "Documents must have a title element", null);
  }
  document.querySelectorAll("img:not([alt])").forEach((el) =>
    add("image-alt", "error", "Images must have alternate text", el));
  document.querySelectorAll(
    "input:not([type=hidden]):not([type=submit]):not([type=button]), select, textarea"
  ).forEach((el) => {
    const labelled = el.getAttribute("aria-label") || el.getAttribute("aria-labelledby")
      || (el.id && document.querySelector(`label[for="${CSS.escape(el.id)}"]`))
      || el.closest("label");
    if (!labelled) add("label", "error", "Form elements must have labels", el);
  });
  document.querySelectorAll("a[href]").forEach((el) => {
    if (!el.textContent.trim() && !el.getAttribute("aria-label")
        && !el.querySelector("img[alt]:not([alt=''])")) {
      add("link-name", "warning", "Links must have discernible text", el);
    }
  });
  const seen = new Set();
  document.querySelectorAll("[id]").forEach((el) => {
    if (seen.has(el.id)) add("duplicate-id", "warning", `Duplicate id "${el.id}"`, el);
    seen.add(el.id);
  });
  return issues;
}"""


def score_issues(issues: tuple[AccessibilityIssue, ...]) -> float:
    """Score 0-100: each error costs 10 points, other issues 2."""
    errors = sum(1 for issue in issues if issue.type == "error")
    others = len(issues) - errors
    return float(max(0, 100 - errors * ERROR_PENALTY - others * WARNING_PENALTY))


@dataclass(frozen=True, kw_only=True)
class AccessibilityRulesAnalyzer(Analyzer):
    key: ClassVar[str] = "pa11y"
    option = "use_pa11y"
    fields: ClassVar[tuple[str, ...]] = ("pa11y_issues", "pa11y_score")

    async def analyze(
        self, page: PageHandle, url: str, options: TestOptions
    ) -> AnalysisResult:
        raw_issues = await page.evaluate(RULES_SCRIPT)
        issues = tuple(AccessibilityIssue.model_validate(raw) for raw in raw_issues)

        errors = [f"{i.code}: {i.message}" for i in issues if i.type == "error"]
        warnings = [f"{i.code}: {i.message}" for i in issues if i.type != "error"]
        return AnalysisResult(
            fields={"pa11y_issues": issues, "pa11y_score": score_issues(issues)},
            errors=errors,
            warnings=warnings,
        )


accessibility_analyzer = AccessibilityRulesAnalyzer()
