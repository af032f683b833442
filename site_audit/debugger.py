"""Diagnostic snapshots of a running audit: progress, memory, persistence."""

import asyncio
import json
import logging
import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from types import TracebackType
from typing import Any, Literal, Self

import psutil
from pydantic import Field

from site_audit.errors import PersistenceError
from site_audit.models.base import Model
from site_audit.models.result import TestSummary
from site_audit.models.task import ProgressStats

log = logging.getLogger(__name__)

SNAPSHOTS_FILE = "debug-snapshots.json"
AUDIT_DEBUG_FILE = "audit-debug.json"
MEMORY_REARM_RATIO = 0.9
TREND_TOLERANCE_PERCENT = 10.0

type ProgressSource = Callable[[], ProgressStats]
type MemorySampler = Callable[[], float]
type Trend = Literal["slowing_down", "speeding_up", "stable", "insufficient_data"]


def process_memory_mb() -> float:
    """Resident set size of the current process in MiB."""
    return psutil.Process().memory_info().rss / (1024 * 1024)


class DebugConfig(Model):
    enable_snapshots: bool = True
    snapshot_interval: float = Field(default=5.0, gt=0, description="Seconds")
    save_debug_data: bool = False
    output_dir: Path = Path("debug-output")
    log_memory_warnings: bool = True
    memory_warning_threshold_mb: float = Field(default=512.0, gt=0)


class DebugSnapshot(Model):
    timestamp: datetime
    total_pages: int
    completed_pages: int
    failed_pages: int
    memory_mb: float
    elapsed_seconds: float
    average_page_seconds: float
    estimated_remaining_seconds: float


class PerformanceReport(Model):
    """Derived timing and memory statistics for a session."""

    snapshots: int
    elapsed_seconds: float
    finished_pages: int
    average_task_duration_ms: float
    throughput_pages_per_minute: float
    average_memory_mb: float
    peak_memory_mb: float
    trend: Trend
    trend_percent: float | None = None

    def render(self) -> str:
        lines = [
            "=" * 80,
            "Audit Performance Report",
            "=" * 80,
            f"Snapshots: {self.snapshots}",
            f"Elapsed: {self.elapsed_seconds:.1f}s",
            f"Finished Pages: {self.finished_pages}",
            f"Average Task Duration: {self.average_task_duration_ms:.0f}ms",
            f"Throughput: {self.throughput_pages_per_minute:.1f} pages/min",
            f"Memory: average {self.average_memory_mb:.0f} MB, "
            f"peak {self.peak_memory_mb:.0f} MB",
        ]
        match self.trend:
            case "slowing_down":
                lines.append(f"Trend: slowing down ({self.trend_percent:.0f}% slower)")
            case "speeding_up":
                lines.append(f"Trend: speeding up ({-self.trend_percent:.0f}% faster)")
            case "stable":
                lines.append("Trend: stable")
            case _:
                lines.append("Trend: not enough snapshots")
        lines.append("=" * 80)
        return "\n".join(lines)


def _trend(snapshots: Sequence[DebugSnapshot]) -> tuple[Trend, float | None]:
    timed = [s.average_page_seconds for s in snapshots if s.average_page_seconds > 0]
    if len(timed) < 4:
        return "insufficient_data", None
    half = len(timed) // 2
    first = math.fsum(timed[:half]) / half
    second = math.fsum(timed[half:]) / (len(timed) - half)
    percent = (second - first) / first * 100
    if percent > TREND_TOLERANCE_PERCENT:
        return "slowing_down", percent
    if percent < -TREND_TOLERANCE_PERCENT:
        return "speeding_up", percent
    return "stable", percent


@dataclass(kw_only=True)
class DebugSession:
    """Samples a run on a timer and persists what it saw.

    The session is owned by the caller; use it as an async context manager
    or pair :meth:`start` with :meth:`end_session` so the timer never outlives
    the run.
    """

    config: DebugConfig
    progress: ProgressSource | None = None
    memory_sampler: MemorySampler = process_memory_mb

    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    ended_at: datetime | None = None
    snapshots: list[DebugSnapshot] = field(default_factory=list)
    _timer: asyncio.Task[None] | None = field(default=None, init=False, repr=False)
    _memory_warned: bool = field(default=False, init=False)

    def start(self) -> None:
        if self.config.enable_snapshots and self.progress is not None:
            self._timer = asyncio.create_task(self._snapshot_loop())
        log.debug("Debug session started at %s", self.started_at.isoformat())

    async def _snapshot_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.snapshot_interval)
            self._sample_safely()

    def _sample_safely(self) -> None:
        try:
            self._sample_progress()
        except Exception:
            log.exception("Debug snapshot failed")

    def _sample_progress(self) -> DebugSnapshot | None:
        if self.progress is None:
            return None
        stats = self.progress()
        return self.take_snapshot(
            stats.total_pages, stats.completed_pages, stats.failed_pages
        )

    def take_snapshot(self, total: int, completed: int, failed: int) -> DebugSnapshot:
        now = datetime.now(UTC)
        elapsed = (now - self.started_at).total_seconds()
        finished = completed + failed
        average = elapsed / finished if finished else 0.0
        snapshot = DebugSnapshot(
            timestamp=now,
            total_pages=total,
            completed_pages=completed,
            failed_pages=failed,
            memory_mb=self.memory_sampler(),
            elapsed_seconds=elapsed,
            average_page_seconds=average,
            estimated_remaining_seconds=max(total - finished, 0) * average,
        )
        self.snapshots.append(snapshot)
        log.debug(
            "Progress %d/%d (%d failed), %.0f MB",
            finished,
            total,
            failed,
            snapshot.memory_mb,
        )
        if self.config.log_memory_warnings:
            self._check_memory(snapshot.memory_mb)
        return snapshot

    def _check_memory(self, memory_mb: float) -> None:
        threshold = self.config.memory_warning_threshold_mb
        if memory_mb > threshold and not self._memory_warned:
            self._memory_warned = True
            log.warning(
                "High memory usage: %.0f MB (threshold %.0f MB)", memory_mb, threshold
            )
        elif memory_mb < threshold * MEMORY_REARM_RATIO:
            self._memory_warned = False

    async def end_session(self) -> None:
        """Stop the timer, take a final snapshot and persist snapshots if enabled.

        Sampling failures are logged and never end the run.
        """
        if self.ended_at is not None:
            return
        if self._timer is not None:
            self._timer.cancel()
            try:
                await self._timer
            except asyncio.CancelledError:
                pass
            except Exception:
                log.exception("Debug snapshot timer failed")
            self._timer = None

        self._sample_safely()
        self.ended_at = datetime.now(UTC)
        log.debug(
            "Debug session ended after %.1fs with %d snapshot(s)",
            (self.ended_at - self.started_at).total_seconds(),
            len(self.snapshots),
        )
        if self.config.save_debug_data:
            self._write_json(
                SNAPSHOTS_FILE,
                [s.model_dump(mode="json") for s in self.snapshots],
            )

    def generate_performance_report(
        self, summary: TestSummary | None = None
    ) -> PerformanceReport:
        end = self.ended_at or datetime.now(UTC)
        elapsed = (end - self.started_at).total_seconds()
        last = self.snapshots[-1] if self.snapshots else None

        if summary is not None:
            finished = summary.tested_pages
            durations = [r.duration_ms for r in summary.results if r.attempts > 0]
            average_ms = math.fsum(durations) / len(durations) if durations else 0.0
        else:
            finished = last.completed_pages + last.failed_pages if last else 0
            average_ms = elapsed * 1000 / finished if finished else 0.0

        memory = [s.memory_mb for s in self.snapshots]
        trend, percent = _trend(self.snapshots)
        return PerformanceReport(
            snapshots=len(self.snapshots),
            elapsed_seconds=elapsed,
            finished_pages=finished,
            average_task_duration_ms=average_ms,
            throughput_pages_per_minute=finished / elapsed * 60 if elapsed > 0 else 0.0,
            average_memory_mb=math.fsum(memory) / len(memory) if memory else 0.0,
            peak_memory_mb=max(memory, default=0.0),
            trend=trend,
            trend_percent=percent,
        )

    def save_audit_debug_data(self, summary: TestSummary) -> Path | None:
        """Write the summary with session metadata; returns ``None`` on failure."""
        payload = {
            "session": {
                "started_at": self.started_at.isoformat(),
                "ended_at": self.ended_at.isoformat() if self.ended_at else None,
                "snapshots": len(self.snapshots),
            },
            "performance": self.generate_performance_report(summary).model_dump(
                mode="json"
            ),
            "summary": summary.model_dump(mode="json"),
        }
        return self._write_json(AUDIT_DEBUG_FILE, payload)

    def _write_json(self, filename: str, payload: Any) -> Path | None:
        path = self.config.output_dir / filename
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError as exc:
            error = PersistenceError(path, str(exc))
            log.warning("%s", error, exc_info=exc)
            return None
        log.info("Debug data written to %s", path)
        return path

    async def __aenter__(self) -> Self:
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.end_session()


def start_session(
    config: DebugConfig, progress: ProgressSource | None = None
) -> DebugSession:
    """Create and start a session; the caller must end it."""
    session = DebugSession(config=config, progress=progress)
    session.start()
    return session
