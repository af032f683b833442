"""Executes a single URL audit: navigation, redirect handling, analysis, retries."""

import asyncio
import logging
import time
from dataclasses import dataclass

from site_audit.errors import BrowserCrash
from site_audit.models.options import TestOptions
from site_audit.models.result import AccessibilityResult, RedirectInfo
from site_audit.models.state import TaskState
from site_audit.models.task import AuditTask, TaskOutcome
from site_audit.page import PageHandle, is_redirect
from site_audit.pipeline import AnalyzerPipeline
from site_audit.pool import PagePool

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class AuditWorker[PageT: PageHandle]:
    """Drives one task to a terminal state.

    Every failed attempt recycles its page handle; the next attempt runs on a
    fresh one. Browser crashes are terminal and never retried.
    """

    pool: PagePool[PageT]
    pipeline: AnalyzerPipeline
    options: TestOptions

    async def run(self, task: AuditTask) -> TaskOutcome:
        """Audit ``task.url`` until it completes, is skipped, fails or crashes."""
        elapsed_ms = 0.0
        max_attempts = self.options.max_retries + 1

        while True:
            task.attempt += 1
            started = time.perf_counter()
            try:
                outcome = await self._attempt(task)
            except BrowserCrash as exc:
                elapsed_ms += _since(started)
                log.error("Browser crashed auditing %s: %s", task.url, exc)
                task.transition(TaskState.CRASHED)
                return self._finish(task, elapsed_ms, error=str(exc))
            except Exception as exc:
                elapsed_ms += _since(started)
                error = _describe(exc, self.options.timeout)
                task.transition(TaskState.ERROR)
                if task.attempt >= max_attempts:
                    log.warning(
                        "Giving up on %s after %d attempt(s): %s",
                        task.url,
                        task.attempt,
                        error,
                    )
                    task.transition(TaskState.FAILED)
                    return self._finish(task, elapsed_ms, error=error)

                delay = self.options.retry_wait(task.attempt)
                log.info(
                    "Attempt %d/%d for %s failed (%s), retrying in %.1fs",
                    task.attempt,
                    max_attempts,
                    task.url,
                    error,
                    delay,
                )
                task.transition(TaskState.RETRY_WAIT)
                if delay > 0:
                    await asyncio.sleep(delay)
                continue

            elapsed_ms += _since(started)
            if isinstance(outcome, RedirectInfo):
                return self._finish(task, elapsed_ms, redirect=outcome)
            return self._finish(task, elapsed_ms, result=outcome)

    async def _attempt(self, task: AuditTask) -> AccessibilityResult | RedirectInfo:
        async with self.pool.lease() as page:
            task.transition(TaskState.NAVIGATING)
            async with asyncio.timeout(self.options.timeout):
                navigation = await page.goto(
                    task.url,
                    timeout=self.options.timeout,
                    wait_until=self.options.wait_until,
                )
                if page.crashed:
                    raise BrowserCrash(f"Page crashed while loading {task.url}")

                if self.options.skip_redirects and is_redirect(
                    task.url, navigation.final_url
                ):
                    log.info(
                        "Skipping %s: redirected to %s", task.url, navigation.final_url
                    )
                    task.transition(TaskState.REDIRECT_SKIPPED)
                    return RedirectInfo(
                        original_url=task.url,
                        final_url=navigation.final_url,
                        status=navigation.status,
                    )

                task.transition(TaskState.ANALYZING)
                result = await self.pipeline.run(page, task.url, self.options)

        task.transition(TaskState.COMPLETED)
        return result

    def _finish(
        self,
        task: AuditTask,
        elapsed_ms: float,
        *,
        result: AccessibilityResult | None = None,
        redirect: RedirectInfo | None = None,
        error: str | None = None,
    ) -> TaskOutcome:
        return TaskOutcome(
            url=task.url,
            index=task.index,
            state=task.state,
            attempts=task.attempt,
            duration_ms=elapsed_ms,
            result=result,
            redirect=redirect,
            error=error,
        )


def _since(started: float) -> float:
    return (time.perf_counter() - started) * 1000


def _describe(exc: Exception, timeout: float) -> str:
    if isinstance(exc, TimeoutError):
        return f"Attempt timed out after {timeout:.1f}s"
    return str(exc) or type(exc).__name__
