"""Exception hierarchy for audit runs."""

from collections.abc import Sequence
from pathlib import Path


class AuditError(Exception):
    """Base class for all audit errors."""


class NavigationError(AuditError):
    """Raised when a page cannot be loaded (network, DNS, timeout)."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Navigation to {url} failed: {reason}")
        self.url = url
        self.reason = reason


class AnalyzerError(AuditError):
    """Raised when the analyzer pipeline cannot produce a result for a page."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Analysis of {url} failed: {reason}")
        self.url = url
        self.reason = reason


class BrowserCrash(AuditError):
    """Raised when the browser process or page target crashed.

    Never retried: the task is recorded as crashed immediately.
    """


class InvalidTransitionError(AuditError):
    """Raised when a task is moved to a state not reachable from its current one."""


class PoolClosedError(AuditError):
    """Raised when acquiring a page from a closed pool."""


class ValidationMismatch(AuditError):
    """Raised on request when aggregates disagree with per-page data."""

    def __init__(self, fields: Sequence[str]) -> None:
        super().__init__(f"Audit data failed validation: {', '.join(fields)}")
        self.fields = tuple(fields)


class PersistenceError(AuditError):
    """Raised when debug data cannot be written."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Failed to write {path}: {reason}")
        self.path = path
        self.reason = reason
