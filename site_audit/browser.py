"""Playwright-backed page handles."""

import logging
from collections.abc import AsyncGenerator, Mapping, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Literal

from playwright.async_api import Browser, BrowserContext, Page, Response
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from site_audit.errors import BrowserCrash, NavigationError
from site_audit.page import Navigation, WaitUntil

log = logging.getLogger(__name__)

type BrowserType = Literal["chromium", "firefox", "webkit"]

LAUNCH_ARGS: Sequence[str] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
)

CRASH_MARKERS = ("target crashed", "browser has been closed", "browser closed")


class PlaywrightPage:
    """A page in its own browser context."""

    def __init__(self, context: BrowserContext, page: Page) -> None:
        self.context = context
        self.page = page
        self._crashed = False
        self._response_headers: Mapping[str, str] = {}
        page.on("crash", self._on_crash)

    @property
    def crashed(self) -> bool:
        browser = self.context.browser
        return self._crashed or (browser is not None and not browser.is_connected())

    @property
    def response_headers(self) -> Mapping[str, str]:
        return self._response_headers

    def _on_crash(self, page: Page) -> None:
        log.error("Page target crashed while on %s", page.url)
        self._crashed = True

    async def goto(
        self, url: str, *, timeout: float, wait_until: WaitUntil
    ) -> Navigation:
        redirect_status: int | None = None

        def on_response(response: Response) -> None:
            nonlocal redirect_status
            is_redirect_status = 300 <= response.status < 400
            if is_redirect_status and response.request.is_navigation_request():
                redirect_status = response.status

        self.page.on("response", on_response)
        try:
            response = await self.page.goto(
                url, timeout=timeout * 1000, wait_until=wait_until
            )
        except PlaywrightTimeoutError as exc:
            raise NavigationError(url, f"timed out after {timeout:.1f}s") from exc
        except PlaywrightError as exc:
            raise self._translate(url, exc) from exc
        finally:
            self.page.remove_listener("response", on_response)

        if response is None:
            return Navigation(requested_url=url, final_url=self.page.url)

        self._response_headers = await response.all_headers()
        return Navigation(
            requested_url=url,
            final_url=self.page.url,
            status=redirect_status or response.status,
        )

    async def title(self) -> str:
        return await self.page.title()

    async def evaluate(self, expression: str) -> Any:
        try:
            return await self.page.evaluate(expression)
        except PlaywrightError as exc:
            if self.crashed:
                raise BrowserCrash(f"Page crashed during evaluation: {exc}") from exc
            raise

    def _translate(self, url: str, exc: PlaywrightError) -> Exception:
        message = str(exc)
        if self.crashed or any(marker in message.lower() for marker in CRASH_MARKERS):
            return BrowserCrash(f"Browser crashed while loading {url}: {message}")
        return NavigationError(url, message.splitlines()[0] if message else "error")


@dataclass(frozen=True, kw_only=True)
class PlaywrightPageFactory:
    """Opens isolated pages on a shared browser process."""

    browser: Browser = field(repr=False)
    ignore_https_errors: bool = True
    user_agent: str | None = None

    @classmethod
    @asynccontextmanager
    async def launch(
        cls,
        *,
        browser_type: BrowserType = "chromium",
        headless: bool = True,
        user_agent: str | None = None,
    ) -> AsyncGenerator["PlaywrightPageFactory", None]:
        """Start a browser for the lifetime of the block."""
        async with async_playwright() as playwright:
            launcher = getattr(playwright, browser_type)
            log.info("Launching %s (headless=%s)", browser_type, headless)
            browser = await launcher.launch(headless=headless, args=list(LAUNCH_ARGS))
            try:
                yield cls(browser=browser, user_agent=user_agent)
            finally:
                await browser.close()

    async def create(self) -> PlaywrightPage:
        if not self.browser.is_connected():
            raise BrowserCrash("Browser process is no longer connected")
        context = await self.browser.new_context(
            ignore_https_errors=self.ignore_https_errors,
            user_agent=self.user_agent,
        )
        page = await context.new_page()
        return PlaywrightPage(context, page)

    async def dispose(self, page: PlaywrightPage) -> None:
        if self.browser.is_connected():
            await page.context.close()
