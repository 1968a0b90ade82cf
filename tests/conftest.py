from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from background_jobs.main import create_app
from background_jobs.tasks.durable import DurableStorage
from background_jobs.tasks.memory import InMemoryStorage
from background_jobs.tasks.queue import TaskQueue
from background_jobs.tasks.storage import TaskStorage


class FakeClock:
    """Controllable UTC clock for storage and scheduler tests."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class RecordingProcessor:
    """Processor that records calls and optionally fails."""

    def __init__(
        self,
        task_type: str = "email_registration",
        fail_with: Exception | None = None,
        schedule: str | None = None,
    ):
        self.task_type = task_type
        self.schedule = schedule
        self.fail_with = fail_with
        self.calls: list[tuple[str, Any]] = []

    async def process(self, task_id: str, payload: Any) -> None:
        self.calls.append((task_id, payload))
        if self.fail_with is not None:
            raise self.fail_with


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Shared in-memory SQLite database for the durable backend."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    factory = async_sessionmaker(engine, expire_on_commit=False)
    yield factory
    await engine.dispose()


@pytest.fixture
def memory_storage(clock: FakeClock) -> InMemoryStorage:
    return InMemoryStorage(clock=clock)


@pytest.fixture
async def durable_storage(session_factory, clock: FakeClock) -> DurableStorage:
    storage = DurableStorage(session_factory, clock=clock)
    await storage.create_schema()
    return storage


@pytest.fixture(params=["memory", "durable"])
async def storage(request, clock: FakeClock, session_factory) -> TaskStorage:
    """Every storage contract test runs against both backends."""
    if request.param == "memory":
        return InMemoryStorage(clock=clock)
    durable = DurableStorage(session_factory, clock=clock)
    await durable.create_schema()
    return durable


@pytest.fixture
def queue(storage: TaskStorage) -> TaskQueue:
    return TaskQueue(storage)


@pytest.fixture
def memory_queue(memory_storage: InMemoryStorage) -> TaskQueue:
    return TaskQueue(memory_storage)


@pytest.fixture
async def async_client(memory_queue: TaskQueue) -> AsyncGenerator[AsyncClient, None]:
    """Admin API client bound to an in-memory queue."""
    app = create_app(queue=memory_queue)
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac
