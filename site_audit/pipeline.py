"""Runs the enabled analyzers against a loaded page and merges their output."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from site_audit.analyzers.base import Analyzer
from site_audit.analyzers.loading import load_analyzers
from site_audit.errors import AnalyzerError, BrowserCrash
from site_audit.models.options import TestOptions
from site_audit.models.result import AccessibilityResult
from site_audit.page import PageHandle

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class AnalyzerPipeline:
    """Ordered set of analyzers; runs the subset enabled by the options."""

    analyzers: Sequence[Analyzer]

    @classmethod
    def from_entry_points(
        cls, keys: Sequence[str] | None = None
    ) -> "AnalyzerPipeline":
        """Pipeline of the registered analyzers, restricted to ``keys`` if given."""
        return cls(analyzers=load_analyzers(keys))

    def enabled_for(self, options: TestOptions) -> Sequence[Analyzer]:
        return [a for a in self.analyzers if a.enabled(options)]

    async def run(
        self, page: PageHandle, url: str, options: TestOptions
    ) -> AccessibilityResult:
        """Analyze a page, degrading gracefully when single analyzers fail.

        A failing analyzer leaves its fields unset and is recorded in
        ``analyzer_failures``.

        Raises:
            BrowserCrash: If the page crashed during analysis
            AnalyzerError: If every enabled analyzer failed

        """
        enabled = self.enabled_for(options)
        fields: dict[str, Any] = {}
        errors: list[str] = []
        warnings: list[str] = []
        failures: dict[str, str] = {}

        for analyzer in enabled:
            try:
                contribution = await analyzer.analyze(page, url, options)
            except BrowserCrash:
                raise
            except Exception as exc:
                if page.crashed:
                    raise BrowserCrash(
                        f"Page crashed during {analyzer.key} analysis of {url}"
                    ) from exc
                reason = str(exc) or type(exc).__name__
                log.warning("Analyzer %s failed for %s: %s", analyzer.key, url, reason)
                failures[analyzer.key] = reason
                warnings.append(f"{analyzer.key} analysis failed: {reason}")
                continue

            fields.update(contribution.fields)
            errors.extend(contribution.errors)
            warnings.extend(contribution.warnings)

        if enabled and len(failures) == len(enabled):
            raise AnalyzerError(url, f"all {len(enabled)} analyzer(s) failed")

        log.debug(
            "Analyzed %s with %d analyzer(s): %d error(s), %d warning(s)",
            url,
            len(enabled),
            len(errors),
            len(warnings),
        )
        return AccessibilityResult.from_findings(
            url,
            errors=errors,
            warnings=warnings,
            passed=not errors,
            analyzer_failures=failures,
            **fields,
        )
