"""Contract between the audit core and the browser automation layer."""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal, Protocol
from urllib.parse import urlsplit

type WaitUntil = Literal["domcontentloaded", "load", "networkidle"]


@dataclass(frozen=True, kw_only=True)
class Navigation:
    """Where a navigation settled."""

    requested_url: str
    final_url: str
    status: int | None = None


class PageHandle(Protocol):
    """A browser page exclusively owned by one worker for one attempt."""

    @property
    def crashed(self) -> bool:
        """Whether the page target or its browser process died."""

    @property
    def response_headers(self) -> Mapping[str, str]:
        """Headers of the last main document response."""

    async def goto(
        self, url: str, *, timeout: float, wait_until: WaitUntil
    ) -> Navigation:
        """Navigate and return where the page settled.

        Raises:
            NavigationError: If the page could not be loaded
            BrowserCrash: If the browser died during navigation

        """

    async def title(self) -> str:
        """Return the document title."""

    async def evaluate(self, expression: str) -> Any:
        """Evaluate a JavaScript expression in the page."""


class PageFactory[PageT](Protocol):
    """Creates and disposes page handles for a pool."""

    async def create(self) -> PageT:
        """Open a fresh page with its own browsing context."""

    async def dispose(self, page: PageT) -> None:
        """Close a page and its browsing context."""


def _origin_and_path(url: str) -> tuple[str, str, str]:
    parts = urlsplit(url)
    return parts.scheme.lower(), parts.netloc.lower(), parts.path or "/"


def is_redirect(requested_url: str, final_url: str) -> bool:
    """Return whether navigation settled on a different origin or path.

    Query strings and fragments are ignored.
    """
    return _origin_and_path(requested_url) != _origin_and_path(final_url)
