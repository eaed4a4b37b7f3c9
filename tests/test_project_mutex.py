"""Tests for the per-project write mutex."""

import asyncio

import pytest

from storyreel.services.project_mutex import ProjectMutex


async def test_same_project_is_serialized():
    mutex = ProjectMutex()
    events: list[str] = []

    async def writer(name: str, delay: float):
        async with mutex.hold("o", "p"):
            events.append(f"{name}+")
            await asyncio.sleep(delay)
            events.append(f"{name}-")

    await asyncio.gather(writer("a", 0.05), writer("b", 0.01), writer("c", 0))
    assert events == ["a+", "a-", "b+", "b-", "c+", "c-"]
    assert len(mutex) == 0


async def test_different_projects_run_concurrently():
    mutex = ProjectMutex()
    inside = asyncio.Event()
    release = asyncio.Event()

    async def holder():
        async with mutex.hold("o", "p1"):
            inside.set()
            await release.wait()

    task = asyncio.create_task(holder())
    await inside.wait()

    # p2 (and another owner's p1) are not blocked by p1
    await asyncio.wait_for(_noop(mutex, "o", "p2"), 1)
    await asyncio.wait_for(_noop(mutex, "other", "p1"), 1)
    assert mutex.is_locked("o", "p1")

    release.set()
    await task
    assert not mutex.is_locked("o", "p1")


async def _noop(mutex: ProjectMutex, owner: str, project: str) -> str:
    async def work():
        return "done"

    return await mutex.run(owner, project, work)


async def test_run_returns_value_and_releases_on_error():
    mutex = ProjectMutex()

    async def boom():
        raise RuntimeError("save failed")

    with pytest.raises(RuntimeError):
        await mutex.run("o", "p", boom)
    assert await _noop(mutex, "o", "p") == "done"
    assert len(mutex) == 0


async def test_cancelled_waiter_does_not_let_successor_overtake():
    mutex = ProjectMutex()
    events: list[str] = []
    release = asyncio.Event()

    async def first():
        async with mutex.hold("o", "p"):
            events.append("first+")
            await release.wait()
            events.append("first-")

    async def waiter():
        async with mutex.hold("o", "p"):
            events.append("waiter")

    async def third():
        async with mutex.hold("o", "p"):
            events.append("third")

    t1 = asyncio.create_task(first())
    await asyncio.sleep(0)
    t2 = asyncio.create_task(waiter())
    await asyncio.sleep(0)
    t3 = asyncio.create_task(third())
    await asyncio.sleep(0.01)

    t2.cancel()
    await asyncio.sleep(0.01)
    assert events == ["first+"]

    release.set()
    await asyncio.gather(t1, t3)
    assert events == ["first+", "first-", "third"]
    assert t2.cancelled()
    assert len(mutex) == 0
