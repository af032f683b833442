"""JSON-LD structured data extraction."""

import json
import logging
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any, ClassVar

from site_audit.analyzers.base import AnalysisResult, Analyzer
from site_audit.models.options import TestOptions
from site_audit.models.result import StructuredData
from site_audit.page import PageHandle

log = logging.getLogger(__name__)

JSON_LD_SCRIPT = """() => Array.from(
  document.querySelectorAll('script[type="application/ld+json"]')
).map((s) => s.textContent || "")"""


def iter_types(node: Any) -> Iterator[str]:
    """Yield every ``@type`` in a JSON-LD document, following ``@graph``."""
    if isinstance(node, list):
        for item in node:
            yield from iter_types(item)
        return
    if not isinstance(node, dict):
        return
    declared = node.get("@type")
    if isinstance(declared, str):
        yield declared
    elif isinstance(declared, list):
        yield from (t for t in declared if isinstance(t, str))
    yield from iter_types(node.get("@graph", []))


@dataclass(frozen=True, kw_only=True)
class StructuredDataAnalyzer(Analyzer):
    key: ClassVar[str] = "structured-data"
    option = "include_structured_data"
    fields: ClassVar[tuple[str, ...]] = ("structured_data",)

    async def analyze(
        self, page: PageHandle, url: str, options: TestOptions
    ) -> AnalysisResult:
        blocks: list[str] = await page.evaluate(JSON_LD_SCRIPT)
        types: list[str] = []
        invalid = 0
        for block in blocks:
            try:
                document = json.loads(block)
            except json.JSONDecodeError as exc:
                log.debug("Invalid JSON-LD block on %s: %s", url, exc)
                invalid += 1
                continue
            types.extend(iter_types(document))

        data = StructuredData(
            json_ld_count=len(blocks),
            types=tuple(dict.fromkeys(types)),
            invalid_blocks=invalid,
        )
        warnings: list[str] = []
        errors: list[str] = []
        if not blocks:
            warnings.append("Structured data: no JSON-LD found")
        if invalid:
            errors.append(f"Structured data: {invalid} invalid JSON-LD block(s)")
        return AnalysisResult(
            fields={"structured_data": data}, errors=errors, warnings=warnings
        )


structured_data_analyzer = StructuredDataAnalyzer()
