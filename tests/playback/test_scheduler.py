import asyncio

import pytest

from services.scheduler import TaskScheduler


@pytest.fixture
async def scheduler():
    scheduler = TaskScheduler()
    scheduler.start()
    yield scheduler
    scheduler.shutdown()


async def test_callback_fires_once(scheduler):
    calls = []
    task = scheduler.schedule(0.05, calls.append, "fired")
    assert task.pending

    await asyncio.sleep(0.3)
    assert calls == ["fired"]
    assert task.fired and not task.pending
    assert scheduler.pending_count() == 0


async def test_coroutine_callback_awaited(scheduler):
    done = asyncio.Event()

    async def callback():
        done.set()

    scheduler.schedule(0.01, callback)
    await asyncio.wait_for(done.wait(), timeout=1.0)


async def test_cancelled_task_never_fires(scheduler):
    calls = []
    task = scheduler.schedule(0.05, calls.append, "fired")
    assert task.cancel()
    assert not task.cancel()

    await asyncio.sleep(0.2)
    assert calls == []
    assert task.cancelled


async def test_cancel_all(scheduler):
    calls = []
    for i in range(3):
        scheduler.schedule(0.05, calls.append, i)
    assert scheduler.pending_count() == 3

    assert scheduler.cancel_all() == 3
    await asyncio.sleep(0.2)
    assert calls == []


async def test_shutdown_reported_immediately():
    scheduler = TaskScheduler()
    scheduler.start()
    scheduler.start()
    assert scheduler.running

    calls = []
    scheduler.schedule(0.05, calls.append, "late")
    scheduler.shutdown()
    assert not scheduler.running
    assert scheduler.pending_count() == 0

    # The underlying AsyncIOScheduler may stop on a later loop iteration
    for _ in range(5):
        await asyncio.sleep(0)
    assert not scheduler._scheduler.running
    await asyncio.sleep(0.2)
    assert calls == []

    scheduler.shutdown()
