"""Security header checks on the main document response."""

from dataclasses import dataclass
from typing import ClassVar
from urllib.parse import urlsplit

from site_audit.analyzers.base import AnalysisResult, Analyzer
from site_audit.models.options import TestOptions
from site_audit.models.result import SecurityHeaders
from site_audit.page import PageHandle

EXPECTED_HEADERS = (
    "strict-transport-security",
    "content-security-policy",
    "x-content-type-options",
    "x-frame-options",
    "referrer-policy",
    "permissions-policy",
)


@dataclass(frozen=True, kw_only=True)
class SecurityHeadersAnalyzer(Analyzer):
    key: ClassVar[str] = "security-headers"
    option = "include_security_headers"
    fields: ClassVar[tuple[str, ...]] = ("security_headers",)

    async def analyze(
        self, page: PageHandle, url: str, options: TestOptions
    ) -> AnalysisResult:
        received = {name.lower() for name in page.response_headers}
        present = tuple(h for h in EXPECTED_HEADERS if h in received)
        missing = tuple(h for h in EXPECTED_HEADERS if h not in received)
        https = urlsplit(url).scheme == "https"

        headers = SecurityHeaders(
            https=https,
            present=present,
            missing=missing,
            score=round(len(present) / len(EXPECTED_HEADERS) * 100, 1),
        )
        warnings = [f"Security: missing {name} header" for name in missing]
        if not https:
            warnings.append("Security: page is not served over HTTPS")
        return AnalysisResult(fields={"security_headers": headers}, warnings=warnings)


security_headers_analyzer = SecurityHeadersAnalyzer()
