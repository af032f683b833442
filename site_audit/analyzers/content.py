"""Document content, SEO, social and crawlability analyzers."""

from dataclasses import dataclass
from typing import ClassVar

from site_audit.analyzers.base import AnalysisResult, Analyzer
from site_audit.models.options import TestOptions
from site_audit.models.result import SeoMetrics, SocialTags, TechnicalSeo
from site_audit.page import PageHandle

TITLE_MAX_LENGTH = 60
DESCRIPTION_MAX_LENGTH = 160

CONTENT_SCRIPT = """() => ({
  title: document.title || "",
  imagesWithoutAlt: document.querySelectorAll("img:not([alt])").length,
  buttonsWithoutLabel: Array.from(
    document.querySelectorAll("button:not([aria-label])")
  ).filter((b) => !b.textContent.trim()).length,
  headingsCount: document.querySelectorAll("h1, h2, h3, h4, h5, h6").length,
})"""

SEO_SCRIPT = """() => {
  const description = document.querySelector('meta[name="description"]');
  const text = document.body ? document.body.innerText || "" : "";
  return {
    title: document.title || "",
    metaDescription: description ? description.getAttribute("content") : null,
    h1Count: document.querySelectorAll("h1").length,
    wordCount: text.split(/\\s+/).filter(Boolean).length,
  };
}"""

SOCIAL_SCRIPT = """() => {
  const collect = (selector, attr) => Object.fromEntries(
    Array.from(document.querySelectorAll(selector))
      .map((m) => [m.getAttribute(attr), m.getAttribute("content") || ""])
  );
  return {
    openGraph: collect('meta[property^="og:"]', "property"),
    twitterCard: collect('meta[name^="twitter:"]', "name"),
  };
}"""

TECHNICAL_SEO_SCRIPT = """() => {
  const canonical = document.querySelector('link[rel="canonical"]');
  const robots = document.querySelector('meta[name="robots"]');
  return {
    canonical: canonical ? canonical.href : null,
    robots: robots ? robots.getAttribute("content") : null,
    lang: document.documentElement.getAttribute("lang"),
    hreflang: Array.from(document.querySelectorAll('link[rel="alternate"][hreflang]'))
      .map((l) => l.getAttribute("hreflang")),
  };
}"""

REQUIRED_OPEN_GRAPH = ("og:title", "og:description", "og:image")


@dataclass(frozen=True, kw_only=True)
class ContentAnalyzer(Analyzer):
    """Title, headings and unlabeled images and buttons; always runs."""

    key: ClassVar[str] = "content"
    fields: ClassVar[tuple[str, ...]] = (
        "title",
        "images_without_alt",
        "buttons_without_label",
        "headings_count",
    )

    async def analyze(
        self, page: PageHandle, url: str, options: TestOptions
    ) -> AnalysisResult:
        data = await page.evaluate(CONTENT_SCRIPT)
        images = int(data["imagesWithoutAlt"])
        buttons = int(data["buttonsWithoutLabel"])
        headings = int(data["headingsCount"])

        errors: list[str] = []
        warnings: list[str] = []
        if images:
            warnings.append(f"{images} images without alt attribute")
        if buttons:
            warnings.append(f"{buttons} buttons without aria-label")
        if headings == 0:
            errors.append("No headings found")

        return AnalysisResult(
            fields={
                "title": data["title"],
                "images_without_alt": images,
                "buttons_without_label": buttons,
                "headings_count": headings,
            },
            errors=errors,
            warnings=warnings,
        )


@dataclass(frozen=True, kw_only=True)
class SeoAnalyzer(Analyzer):
    key: ClassVar[str] = "seo"
    option = "include_seo_analysis"
    fields: ClassVar[tuple[str, ...]] = ("seo",)

    async def analyze(
        self, page: PageHandle, url: str, options: TestOptions
    ) -> AnalysisResult:
        data = await page.evaluate(SEO_SCRIPT)
        description = data["metaDescription"]
        metrics = SeoMetrics(
            title=data["title"],
            title_length=len(data["title"]),
            meta_description=description,
            meta_description_length=len(description or ""),
            h1_count=int(data["h1Count"]),
            word_count=int(data["wordCount"]),
        )

        warnings: list[str] = []
        if not metrics.title:
            warnings.append("SEO: page has no title")
        elif metrics.title_length > TITLE_MAX_LENGTH:
            warnings.append(
                f"SEO: title is {metrics.title_length} characters "
                f"(max {TITLE_MAX_LENGTH})"
            )
        if not description:
            warnings.append("SEO: meta description is missing")
        elif metrics.meta_description_length > DESCRIPTION_MAX_LENGTH:
            warnings.append(
                f"SEO: meta description is {metrics.meta_description_length} "
                f"characters (max {DESCRIPTION_MAX_LENGTH})"
            )
        if metrics.h1_count != 1:
            warnings.append(f"SEO: expected one h1, found {metrics.h1_count}")

        return AnalysisResult(fields={"seo": metrics}, warnings=warnings)


@dataclass(frozen=True, kw_only=True)
class SocialAnalyzer(Analyzer):
    key: ClassVar[str] = "social"
    option = "include_social_analysis"
    fields: ClassVar[tuple[str, ...]] = ("social",)

    async def analyze(
        self, page: PageHandle, url: str, options: TestOptions
    ) -> AnalysisResult:
        data = await page.evaluate(SOCIAL_SCRIPT)
        tags = SocialTags(open_graph=data["openGraph"], twitter_card=data["twitterCard"])
        warnings = [
            f"Social: missing {prop}"
            for prop in REQUIRED_OPEN_GRAPH
            if not tags.open_graph.get(prop)
        ]
        if "twitter:card" not in tags.twitter_card:
            warnings.append("Social: missing twitter:card")
        return AnalysisResult(fields={"social": tags}, warnings=warnings)


@dataclass(frozen=True, kw_only=True)
class TechnicalSeoAnalyzer(Analyzer):
    key: ClassVar[str] = "technical-seo"
    option = "include_technical_seo"
    fields: ClassVar[tuple[str, ...]] = ("technical_seo",)

    async def analyze(
        self, page: PageHandle, url: str, options: TestOptions
    ) -> AnalysisResult:
        data = await page.evaluate(TECHNICAL_SEO_SCRIPT)
        technical = TechnicalSeo(
            canonical_url=data["canonical"],
            robots=data["robots"],
            lang=data["lang"],
            hreflang=tuple(data["hreflang"]),
        )

        warnings: list[str] = []
        if technical.canonical_url is None:
            warnings.append("Technical SEO: no canonical link")
        if technical.robots and "noindex" in technical.robots.lower():
            warnings.append("Technical SEO: page is marked noindex")
        if not technical.lang:
            warnings.append("Technical SEO: html lang attribute is missing")
        return AnalysisResult(fields={"technical_seo": technical}, warnings=warnings)


content_analyzer = ContentAnalyzer()
seo_analyzer = SeoAnalyzer()
social_analyzer = SocialAnalyzer()
technical_seo_analyzer = TechnicalSeoAnalyzer()
