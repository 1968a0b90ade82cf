"""Storage contract tests, run against the in-memory and durable backends."""

from datetime import timedelta

import pytest

from background_jobs.core.exceptions import InvalidTransitionError, TaskNotFoundError
from background_jobs.tasks.models import TaskStatus


@pytest.mark.asyncio
async def test_enqueue_creates_pending_task(storage, clock):
    """Test that enqueue stores a pending task with zero attempts."""
    task = await storage.enqueue("email_registration", {"to": "a@example.com"})

    assert task.id
    assert task.task_type == "email_registration"
    assert task.payload == {"to": "a@example.com"}
    assert task.status == TaskStatus.PENDING
    assert task.attempts == 0
    assert task.max_attempts == 3
    assert task.error is None
    assert task.scheduled_for is None
    assert task.started_at is None
    assert task.completed_at is None
    assert task.created_at == clock.now
    assert task.updated_at == clock.now


@pytest.mark.asyncio
async def test_enqueue_assigns_unique_ids(storage):
    """Test that every enqueue gets its own id."""
    ids = {(await storage.enqueue("noop", {})).id for _ in range(5)}
    assert len(ids) == 5


@pytest.mark.asyncio
async def test_payload_is_stored_as_given(storage):
    """Test nested JSON payloads come back unchanged."""
    payload = {
        "to": "user@example.com",
        "name": "Ada",
        "verification_url": "https://example.com/verify?token=abc",
        "tags": ["welcome", 1, None, True],
        "meta": {"attempt": 1.5},
    }
    task = await storage.enqueue("email_registration", payload)

    loaded = await storage.get_task(task.id)
    assert loaded.payload == payload


@pytest.mark.asyncio
async def test_find_pending_returns_oldest_first(storage, clock):
    """Test FIFO ordering by created_at."""
    first = await storage.enqueue("noop", {"n": 1})
    clock.advance(1)
    second = await storage.enqueue("noop", {"n": 2})
    clock.advance(1)
    third = await storage.enqueue("noop", {"n": 3})

    pending = await storage.find_pending(10)
    assert [task.id for task in pending] == [first.id, second.id, third.id]


@pytest.mark.asyncio
async def test_find_pending_keeps_insertion_order_on_equal_timestamps(storage):
    """Test that tasks created at the same instant keep enqueue order."""
    created = [await storage.enqueue("noop", {"n": n}) for n in range(4)]

    pending = await storage.find_pending(10)
    assert [task.id for task in pending] == [task.id for task in created]


@pytest.mark.asyncio
async def test_find_pending_respects_limit(storage, clock):
    """Test that find_pending never returns more than the limit."""
    for n in range(5):
        await storage.enqueue("noop", {"n": n})
        clock.advance(1)

    pending = await storage.find_pending(2)
    assert [task.payload["n"] for task in pending] == [0, 1]


@pytest.mark.asyncio
@pytest.mark.parametrize("limit", [0, -1])
async def test_find_pending_rejects_non_positive_limit(storage, limit):
    """Test that both backends refuse a limit below one."""
    await storage.enqueue("noop", {})

    with pytest.raises(ValueError, match="limit must be at least 1"):
        await storage.find_pending(limit)


@pytest.mark.asyncio
async def test_scheduled_task_hidden_until_due(storage, clock):
    """Test that a future scheduled_for keeps the task out of the ready set."""
    task = await storage.enqueue(
        "noop", {}, scheduled_for=clock.now + timedelta(seconds=30)
    )

    assert await storage.find_pending(10) == []

    clock.advance(29)
    assert await storage.find_pending(10) == []

    clock.advance(1)
    pending = await storage.find_pending(10)
    assert [t.id for t in pending] == [task.id]


@pytest.mark.asyncio
async def test_past_scheduled_task_is_ready(storage, clock):
    """Test that scheduled_for in the past is immediately ready."""
    task = await storage.enqueue(
        "noop", {}, scheduled_for=clock.now - timedelta(minutes=5)
    )

    pending = await storage.find_pending(10)
    assert [t.id for t in pending] == [task.id]


@pytest.mark.asyncio
async def test_mark_processing_claims_task(storage, clock):
    """Test claiming moves the task to processing and counts the attempt."""
    task = await storage.enqueue("noop", {})
    clock.advance(5)

    claimed = await storage.mark_processing(task.id)

    assert claimed.status == TaskStatus.PROCESSING
    assert claimed.attempts == 1
    assert claimed.started_at == clock.now
    assert claimed.updated_at == clock.now
    assert claimed.created_at == task.created_at
    assert await storage.find_pending(10) == []


@pytest.mark.asyncio
async def test_second_claim_is_rejected(storage):
    """Test that only one claim of a pending task succeeds."""
    task = await storage.enqueue("noop", {})
    await storage.mark_processing(task.id)

    with pytest.raises(InvalidTransitionError) as exc_info:
        await storage.mark_processing(task.id)

    assert exc_info.value.current == TaskStatus.PROCESSING.value
    assert exc_info.value.status_code == 409
    assert (await storage.get_task(task.id)).attempts == 1


@pytest.mark.asyncio
async def test_mark_completed(storage, clock):
    """Test completing a processing task."""
    task = await storage.enqueue("noop", {})
    await storage.mark_processing(task.id)
    clock.advance(2)

    completed = await storage.mark_completed(task.id)

    assert completed.status == TaskStatus.COMPLETED
    assert completed.completed_at == clock.now
    assert completed.attempts == 1
    assert completed.is_terminal()


@pytest.mark.asyncio
async def test_mark_completed_requires_processing(storage):
    """Test that a pending task cannot be completed without a claim."""
    task = await storage.enqueue("noop", {})

    with pytest.raises(InvalidTransitionError):
        await storage.mark_completed(task.id)

    assert (await storage.get_task(task.id)).status == TaskStatus.PENDING


@pytest.mark.asyncio
async def test_retry_until_max_attempts(storage):
    """Test that failures return the task to pending until attempts run out."""
    task = await storage.enqueue("noop", {}, max_attempts=3)

    for attempt in (1, 2):
        await storage.mark_processing(task.id)
        failed = await storage.mark_failed(task.id, f"boom {attempt}")
        assert failed.status == TaskStatus.PENDING
        assert failed.attempts == attempt
        assert failed.error == f"boom {attempt}"
        assert [t.id for t in await storage.find_pending(10)] == [task.id]

    await storage.mark_processing(task.id)
    failed = await storage.mark_failed(task.id, "boom 3")

    assert failed.status == TaskStatus.FAILED
    assert failed.attempts == 3
    assert failed.error == "boom 3"
    assert failed.is_terminal()
    assert await storage.find_pending(10) == []


@pytest.mark.asyncio
async def test_single_attempt_fails_permanently(storage):
    """Test that max_attempts=1 fails on the first error."""
    task = await storage.enqueue("noop", {}, max_attempts=1)
    await storage.mark_processing(task.id)

    failed = await storage.mark_failed(task.id, "nope")
    assert failed.status == TaskStatus.FAILED
    assert failed.attempts == 1


@pytest.mark.asyncio
async def test_mark_failed_with_retry_at_delays_task(storage, clock):
    """Test that retry_at hides a retried task until it is due."""
    task = await storage.enqueue("noop", {})
    await storage.mark_processing(task.id)
    retry_at = clock.now + timedelta(seconds=10)

    failed = await storage.mark_failed(task.id, "later", retry_at=retry_at)

    assert failed.status == TaskStatus.PENDING
    assert failed.scheduled_for == retry_at
    assert await storage.find_pending(10) == []

    clock.advance(10)
    assert [t.id for t in await storage.find_pending(10)] == [task.id]


@pytest.mark.asyncio
async def test_retry_at_ignored_for_permanent_failure(storage, clock):
    """Test that a terminally failed task keeps its scheduled_for."""
    task = await storage.enqueue("noop", {}, max_attempts=1)
    await storage.mark_processing(task.id)

    failed = await storage.mark_failed(
        task.id, "done", retry_at=clock.now + timedelta(hours=1)
    )

    assert failed.status == TaskStatus.FAILED
    assert failed.scheduled_for is None


@pytest.mark.asyncio
@pytest.mark.parametrize("outcome", ["completed", "failed"])
async def test_terminal_tasks_never_change(storage, outcome):
    """Test that every transition out of a terminal status is rejected."""
    task = await storage.enqueue("noop", {}, max_attempts=1)
    await storage.mark_processing(task.id)
    if outcome == "completed":
        await storage.mark_completed(task.id)
    else:
        await storage.mark_failed(task.id, "final")
    before = await storage.get_task(task.id)

    with pytest.raises(InvalidTransitionError):
        await storage.mark_processing(task.id)
    with pytest.raises(InvalidTransitionError):
        await storage.mark_completed(task.id)
    with pytest.raises(InvalidTransitionError):
        await storage.mark_failed(task.id, "again")

    assert await storage.get_task(task.id) == before


@pytest.mark.asyncio
async def test_unknown_task_id(storage):
    """Test lookups and transitions on an id that was never issued."""
    await storage.enqueue("noop", {})
    unknown = "999999"

    assert await storage.get_task(unknown) is None
    with pytest.raises(TaskNotFoundError):
        await storage.mark_processing(unknown)
    with pytest.raises(TaskNotFoundError):
        await storage.mark_completed(unknown)
    with pytest.raises(TaskNotFoundError):
        await storage.mark_failed(unknown, "error")


@pytest.mark.asyncio
async def test_malformed_task_id_is_unknown(storage):
    """Test that ids of the wrong shape behave like unknown ids."""
    assert await storage.get_task("not-a-task-id") is None
    with pytest.raises(TaskNotFoundError) as exc_info:
        await storage.mark_processing("not-a-task-id")
    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_count_by_status(storage):
    """Test per-status task counts."""
    assert await storage.count_by_status() == {}

    done = await storage.enqueue("noop", {})
    running = await storage.enqueue("noop", {})
    await storage.enqueue("noop", {})
    await storage.mark_processing(done.id)
    await storage.mark_completed(done.id)
    await storage.mark_processing(running.id)

    assert await storage.count_by_status() == {
        "pending": 1,
        "processing": 1,
        "completed": 1,
    }


@pytest.mark.asyncio
async def test_returned_records_are_snapshots(storage):
    """Test that mutating a returned record does not touch stored state."""
    task = await storage.enqueue("noop", {"key": "value"})
    task.payload["key"] = "changed"
    task.status = TaskStatus.COMPLETED

    stored = await storage.get_task(task.id)
    assert stored.payload == {"key": "value"}
    assert stored.status == TaskStatus.PENDING
