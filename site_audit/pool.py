"""Fixed-size pool of browser page handles."""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from types import TracebackType
from typing import Self

from site_audit.errors import PoolClosedError
from site_audit.page import PageFactory

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class PoolStats:
    """Point-in-time pool counters."""

    size: int
    created: int
    reused: int
    discarded: int
    in_use: int
    idle: int


class PagePool[PageT]:
    """Bounded set of page handles, sized to the run's concurrency.

    Handles are created lazily. A handle returned with ``recycle=True`` is
    disposed, and the freed slot gets a fresh handle on the next acquire.
    """

    def __init__(self, factory: PageFactory[PageT], size: int) -> None:
        if size < 1:
            raise ValueError(f"Pool size must be at least 1, got {size}")
        self._factory = factory
        self._size = size
        self._slots = asyncio.Semaphore(size)
        self._idle: list[PageT] = []
        self._in_use = 0
        self._created = 0
        self._reused = 0
        self._discarded = 0
        self._closed = False

    @property
    def size(self) -> int:
        return self._size

    @property
    def closed(self) -> bool:
        return self._closed

    def stats(self) -> PoolStats:
        return PoolStats(
            size=self._size,
            created=self._created,
            reused=self._reused,
            discarded=self._discarded,
            in_use=self._in_use,
            idle=len(self._idle),
        )

    async def acquire(self) -> PageT:
        """Take a handle, waiting for a free slot when all are in use."""
        if self._closed:
            raise PoolClosedError("Cannot acquire a page from a closed pool")

        await self._slots.acquire()
        try:
            if self._closed:
                raise PoolClosedError("Pool closed while waiting for a page")
            if self._idle:
                page = self._idle.pop()
                self._reused += 1
            else:
                page = await self._factory.create()
                self._created += 1
                log.debug("Created page handle (%d/%d)", self._created, self._size)
        except BaseException:
            self._slots.release()
            raise

        self._in_use += 1
        return page

    async def release(self, page: PageT, *, recycle: bool = False) -> None:
        """Return a handle; ``recycle`` discards it instead of reusing it."""
        self._in_use -= 1
        try:
            if recycle or self._closed:
                if recycle:
                    self._discarded += 1
                await self._dispose(page)
            else:
                self._idle.append(page)
        finally:
            self._slots.release()

    @asynccontextmanager
    async def lease(self) -> AsyncGenerator[PageT, None]:
        """Hold a handle for the duration of the block.

        The handle is always released; it is recycled when the block raises,
        including on cancellation and timeouts.
        """
        page = await self.acquire()
        try:
            yield page
        except BaseException:
            await self.release(page, recycle=True)
            raise
        else:
            await self.release(page)

    async def warm_up(self, count: int) -> None:
        """Pre-create up to ``count`` idle handles."""
        missing = min(count, self._size) - len(self._idle) - self._in_use
        for _ in range(max(missing, 0)):
            self._idle.append(await self._factory.create())
            self._created += 1
        log.info("Page pool warmed up with %d handle(s)", len(self._idle))

    async def close(self) -> None:
        """Dispose idle handles; handles still leased are disposed on release."""
        if self._closed:
            return
        self._closed = True
        idle, self._idle = self._idle, []
        await asyncio.gather(*(self._dispose(page) for page in idle))
        log.debug("Page pool closed (%s)", self.stats())

    async def _dispose(self, page: PageT) -> None:
        try:
            await self._factory.dispose(page)
        except Exception:
            log.warning("Failed to dispose page handle", exc_info=True)

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()
