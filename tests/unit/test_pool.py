"""Tests for the page pool."""

import asyncio

import pytest

from site_audit.errors import PoolClosedError
from site_audit.pool import PagePool
from site_audit.testing.fakes import FakePage, FakePageFactory


@pytest.fixture
def factory() -> FakePageFactory:
    """Create fake page factory."""
    return FakePageFactory()


def test_rejects_empty_pool(factory: FakePageFactory) -> None:
    """Pool size must be positive."""
    with pytest.raises(ValueError, match="at least 1"):
        PagePool(factory, 0)


async def test_creates_lazily_and_reuses(factory: FakePageFactory) -> None:
    """Creates handles on demand and hands released ones out again."""
    pool = PagePool(factory, 2)
    assert factory.created == 0

    first = await pool.acquire()
    await pool.release(first)
    second = await pool.acquire()

    assert second is first
    stats = pool.stats()
    assert stats.created == 1
    assert stats.reused == 1
    assert stats.in_use == 1


async def test_recycle_discards_handle(factory: FakePageFactory) -> None:
    """A recycled handle is disposed and replaced on the next acquire."""
    pool = PagePool(factory, 1)

    first = await pool.acquire()
    await pool.release(first, recycle=True)
    second = await pool.acquire()

    assert second is not first
    assert factory.disposed == 1
    assert pool.stats().discarded == 1


async def test_acquire_waits_when_exhausted(factory: FakePageFactory) -> None:
    """Acquire suspends until a handle is released."""
    pool = PagePool(factory, 1)
    held = await pool.acquire()

    waiter = asyncio.create_task(pool.acquire())
    await asyncio.sleep(0)
    assert not waiter.done()

    await pool.release(held)
    page = await asyncio.wait_for(waiter, timeout=1)

    assert page is held


async def test_lease_recycles_on_error(factory: FakePageFactory) -> None:
    """Leased handles are recycled when the block raises."""
    pool = PagePool(factory, 1)

    with pytest.raises(RuntimeError):
        async with pool.lease():
            raise RuntimeError("boom")

    assert pool.stats().discarded == 1
    assert pool.stats().in_use == 0


async def test_lease_returns_handle_on_success(factory: FakePageFactory) -> None:
    """Leased handles go back to the idle set after a clean exit."""
    pool = PagePool(factory, 1)

    async with pool.lease() as page:
        assert isinstance(page, FakePage)

    stats = pool.stats()
    assert stats.idle == 1
    assert stats.discarded == 0


async def test_failed_create_frees_slot() -> None:
    """A failing factory does not leak a pool slot."""
    factory = FakePageFactory(fail_create=RuntimeError("no browser"))
    pool = PagePool(factory, 1)

    for _ in range(2):
        with pytest.raises(RuntimeError, match="no browser"):
            await pool.acquire()

    assert pool.stats().in_use == 0


async def test_close_disposes_idle_and_rejects_acquire(
    factory: FakePageFactory,
) -> None:
    """Closing disposes idle handles and further acquires fail."""
    pool = PagePool(factory, 3)
    await pool.warm_up(2)

    await pool.close()

    assert factory.disposed == 2
    assert pool.closed
    with pytest.raises(PoolClosedError):
        await pool.acquire()


async def test_release_after_close_disposes(factory: FakePageFactory) -> None:
    """Handles returned after close are disposed instead of kept."""
    pool = PagePool(factory, 1)
    page = await pool.acquire()
    await pool.close()

    await pool.release(page)

    assert factory.disposed == 1
    assert pool.stats().idle == 0
