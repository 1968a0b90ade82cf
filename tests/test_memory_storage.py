import asyncio

import pytest

from background_jobs.core.exceptions import InvalidTransitionError
from background_jobs.tasks.memory import InMemoryStorage, ReadWriteLock


@pytest.mark.asyncio
async def test_readers_share_the_lock():
    """Test that concurrent readers do not block each other."""
    lock = ReadWriteLock()
    inside = 0
    peak = 0

    async def reader():
        nonlocal inside, peak
        async with lock.read():
            inside += 1
            peak = max(peak, inside)
            await asyncio.sleep(0.01)
            inside -= 1

    await asyncio.gather(*(reader() for _ in range(3)))
    assert peak == 3


@pytest.mark.asyncio
async def test_writer_excludes_readers():
    """Test that a writer runs alone."""
    lock = ReadWriteLock()
    events: list[str] = []

    async def writer():
        async with lock.write():
            events.append("write-start")
            await asyncio.sleep(0.01)
            events.append("write-end")

    async def reader():
        await asyncio.sleep(0)
        async with lock.read():
            events.append("read")

    await asyncio.gather(writer(), reader())
    assert events == ["write-start", "write-end", "read"]


@pytest.mark.asyncio
async def test_ids_are_uuids(memory_storage):
    """Test that in-memory ids are UUID strings."""
    task = await memory_storage.enqueue("noop", {})
    assert len(task.id) == 36
    assert task.id.count("-") == 4


@pytest.mark.asyncio
async def test_concurrent_claims_have_one_winner(memory_storage):
    """Test that racing claims on one task produce exactly one success."""
    task = await memory_storage.enqueue("noop", {})

    results = await asyncio.gather(
        *(memory_storage.mark_processing(task.id) for _ in range(10)),
        return_exceptions=True,
    )

    assert sum(not isinstance(r, Exception) for r in results) == 1
    assert sum(isinstance(r, InvalidTransitionError) for r in results) == 9
    assert (await memory_storage.get_task(task.id)).attempts == 1


@pytest.mark.asyncio
async def test_default_clock_is_utc():
    """Test that storage without an injected clock stamps aware UTC times."""
    storage = InMemoryStorage()
    task = await storage.enqueue("noop", {})

    assert task.created_at.tzinfo is not None
    assert task.created_at.utcoffset().total_seconds() == 0
