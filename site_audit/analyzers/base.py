"""Abstract base class for page analyzers."""

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, ClassVar

from site_audit.models.options import AnalyzerFlag, TestOptions
from site_audit.page import PageHandle


@dataclass(frozen=True, kw_only=True)
class AnalysisResult:
    """Contribution of one analyzer to a page's merged result.

    ``fields`` maps ``AccessibilityResult`` field names to values.
    """

    fields: Mapping[str, Any] = field(default_factory=dict)
    errors: Sequence[str] = ()
    warnings: Sequence[str] = ()


@dataclass(frozen=True, kw_only=True)
class Analyzer(ABC):
    """Abstract base for page analyzers.

    Subclasses declare the result fields they own and the option flag that
    enables them (``None`` means the analyzer always runs).
    """

    key: ClassVar[str]
    option: ClassVar[AnalyzerFlag | None] = None
    fields: ClassVar[Sequence[str]] = ()

    @abstractmethod
    async def analyze(
        self,
        page: PageHandle,
        url: str,
        options: TestOptions,
    ) -> AnalysisResult:
        """Analyze a loaded page.

        Args:
            page: Page already navigated to ``url``
            url: The audited URL
            options: Options of the current run

        Returns:
            Fields, errors and warnings to merge into the page result

        """

    def enabled(self, options: TestOptions) -> bool:
        return options.is_enabled(self.option)
