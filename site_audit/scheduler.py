"""Bounded-concurrency scheduling of URL audits."""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from site_audit.models.options import TestOptions
from site_audit.models.state import ACTIVE_STATES, TaskState
from site_audit.models.task import AuditTask, ProgressStats, TaskOutcome
from site_audit.page import PageFactory, PageHandle
from site_audit.pipeline import AnalyzerPipeline
from site_audit.pool import PagePool, PoolStats
from site_audit.worker import AuditWorker

log = logging.getLogger(__name__)

COMPLETED_STATES = frozenset({TaskState.COMPLETED, TaskState.REDIRECT_SKIPPED})
FAILED_STATES = frozenset({TaskState.FAILED, TaskState.CRASHED})


def select_urls(urls: Sequence[str], max_pages: int | None) -> Sequence[str]:
    """Apply the ``max_pages`` cap, keeping input order."""
    if max_pages is None or len(urls) <= max_pages:
        return tuple(urls)
    log.info("Limiting audit to the first %d of %d URL(s)", max_pages, len(urls))
    return tuple(urls[:max_pages])


@dataclass(kw_only=True)
class AuditScheduler[PageT: PageHandle]:
    """Feeds URLs to a fixed number of worker loops in input order.

    A single scheduler runs a single batch. Callbacks from
    ``options.event_callbacks`` fire on the event loop; a failing callback is
    logged and otherwise ignored.
    """

    page_factory: PageFactory[PageT]
    pipeline: AnalyzerPipeline
    options: TestOptions

    peak_active: int = field(default=0, init=False)
    pool_stats: PoolStats | None = field(default=None, init=False)
    _active: int = field(default=0, init=False)
    _total: int = field(default=0, init=False)
    _completed: int = field(default=0, init=False)
    _failed: int = field(default=0, init=False)
    _cancelled: asyncio.Event = field(default_factory=asyncio.Event, init=False)

    @property
    def active(self) -> int:
        """Tasks currently navigating or analyzing."""
        return self._active

    def progress(self) -> ProgressStats:
        return ProgressStats(
            total_pages=self._total,
            completed_pages=self._completed,
            failed_pages=self._failed,
        )

    def cancel(self) -> None:
        """Stop dispatching; tasks already running finish normally."""
        if not self._cancelled.is_set():
            log.info("Audit cancelled, no further URLs will be dispatched")
        self._cancelled.set()

    async def run(self, urls: Sequence[str]) -> Sequence[TaskOutcome]:
        """Audit every URL and return one outcome per URL, in input order.

        Args:
            urls: URLs to audit; truncated to ``options.max_pages``

        Returns:
            Terminal outcomes sorted by input index

        """
        selected = select_urls(urls, self.options.max_pages)
        self._total = len(selected)
        if not selected:
            log.info("No URLs to audit")
            self._notify("on_queue_empty")
            return []

        tasks = [
            AuditTask(url=url, index=index, listener=self._on_transition)
            for index, url in enumerate(selected)
        ]
        queue: asyncio.Queue[AuditTask] = asyncio.Queue()
        for task in tasks:
            queue.put_nowait(task)

        outcomes: dict[int, TaskOutcome] = {}
        loop_count = min(self.options.max_concurrent, len(tasks))
        log.info(
            "Auditing %d URL(s) with %d concurrent worker(s)", len(tasks), loop_count
        )

        async with PagePool(self.page_factory, self.options.max_concurrent) as pool:
            worker = AuditWorker(
                pool=pool, pipeline=self.pipeline, options=self.options
            )
            loops = [
                self._worker_loop(worker, queue, outcomes) for _ in range(loop_count)
            ]
            results = await asyncio.gather(*loops, return_exceptions=True)
            self.pool_stats = pool.stats()

        for result in results:
            if isinstance(result, Exception):
                log.error("Worker loop failed: %s", result, exc_info=result)

        for task in tasks:
            if task.index not in outcomes:
                outcomes[task.index] = self._unfinished(task)

        self._notify("on_queue_empty")
        log.info(
            "Audit finished: %d completed, %d failed, peak concurrency %d",
            self._completed,
            self._failed,
            self.peak_active,
        )
        return [outcomes[index] for index in sorted(outcomes)]

    async def _worker_loop(
        self,
        worker: AuditWorker[PageT],
        queue: asyncio.Queue[AuditTask],
        outcomes: dict[int, TaskOutcome],
    ) -> None:
        while not self._cancelled.is_set():
            try:
                task = queue.get_nowait()
            except asyncio.QueueEmpty:
                return

            self._notify("on_url_started", task.url)
            outcome = await worker.run(task)
            outcomes[task.index] = outcome
            self._record(outcome)
            queue.task_done()

    def _record(self, outcome: TaskOutcome) -> None:
        if outcome.state in COMPLETED_STATES:
            self._completed += 1
            self._notify(
                "on_url_completed",
                outcome.url,
                outcome.to_result(),
                outcome.duration_ms,
                outcome.attempts,
            )
        elif outcome.state in FAILED_STATES:
            self._failed += 1
            self._notify(
                "on_url_failed",
                outcome.url,
                outcome.error or "Unknown error",
                outcome.duration_ms,
                outcome.attempts,
            )
        self._notify("on_progress_update", self.progress())

    def _unfinished(self, task: AuditTask) -> TaskOutcome:
        if task.state is TaskState.PENDING:
            task.transition(TaskState.CANCELLED)
            return TaskOutcome.cancelled(task)
        log.error("Task for %s stopped in state %s", task.url, task.state)
        return TaskOutcome(
            url=task.url,
            index=task.index,
            state=TaskState.FAILED,
            attempts=task.attempt,
            duration_ms=0.0,
            error=f"Audit stopped while {task.state}",
        )

    def _on_transition(
        self, task: AuditTask, old_state: TaskState, new_state: TaskState
    ) -> None:
        was_active = old_state in ACTIVE_STATES
        is_active = new_state in ACTIVE_STATES
        if is_active and not was_active:
            self._active += 1
            self.peak_active = max(self.peak_active, self._active)
        elif was_active and not is_active:
            self._active -= 1
        log.debug("%s: %s -> %s", task.url, old_state, new_state)

    def _notify(self, name: str, *args: Any) -> None:
        handler = getattr(self.options.event_callbacks, name)
        if handler is None:
            return
        try:
            handler(*args)
        except Exception:
            log.exception("Callback %s raised", name)
