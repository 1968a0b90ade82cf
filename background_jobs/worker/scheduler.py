"""
Cron-driven task production.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable, Iterator
from datetime import datetime

from croniter import croniter

from background_jobs.config.logging import get_logger
from background_jobs.core.registries import TaskProcessor
from background_jobs.tasks.queue import TaskQueue
from background_jobs.tasks.storage import Clock, utcnow

logger = get_logger(__name__)

EnqueueCallback = Callable[[], Awaitable[object]]


class CronScheduler:
    """
    Sleeps until each fire time of a cron expression and invokes a callback.

    Six- and seven-field expressions lead with seconds (sec min hour day month
    weekday [year]); plain five-field crontab lines fire on the minute.
    Callback errors are logged and the sequence continues.
    """

    def __init__(
        self,
        expression: str,
        enqueue: EnqueueCallback,
        clock: Clock | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._seconds_first = len(expression.split()) in (6, 7)
        if not croniter.is_valid(
            expression, second_at_beginning=self._seconds_first
        ):
            raise ValueError(f"Invalid cron schedule expression: {expression}")
        self.expression = expression
        self.enqueue = enqueue
        self.clock = clock or utcnow
        self._sleep = sleep

    def iter_fire_times(self, start: datetime | None = None) -> Iterator[datetime]:
        """Upcoming fire times strictly after ``start``."""
        schedule = croniter(
            self.expression,
            start or self.clock(),
            second_at_beginning=self._seconds_first,
        )
        while True:
            yield schedule.get_next(datetime)

    async def run(self, max_fires: int | None = None) -> None:
        """Fire forever, or ``max_fires`` times when given."""
        fired = 0
        for fire_at in self.iter_fire_times():
            delay = (fire_at - self.clock()).total_seconds()
            await self._sleep(max(0.0, delay))

            try:
                await self.enqueue()
            except Exception:
                logger.exception(
                    "Scheduled enqueue failed",
                    expression=self.expression,
                    fire_at=fire_at.isoformat(),
                )

            fired += 1
            if max_fires is not None and fired >= max_fires:
                return


def spawn_scheduler(
    schedule_expression: str | None, enqueue: EnqueueCallback
) -> asyncio.Task | None:
    """
    Start a scheduler task on the running loop.

    Returns None when there is no expression, or when it is invalid (logged).
    """
    if not schedule_expression:
        return None

    try:
        scheduler = CronScheduler(schedule_expression, enqueue)
    except ValueError:
        logger.error(
            "Invalid cron schedule expression", expression=schedule_expression
        )
        return None

    return asyncio.create_task(
        scheduler.run(), name=f"scheduler:{schedule_expression}"
    )


def spawn_processor_schedulers(
    processors: Iterable[TaskProcessor], queue: TaskQueue
) -> list[asyncio.Task]:
    """One scheduler per processor with a schedule, enqueueing its own task type."""
    tasks = []
    for processor in processors:
        task_type = processor.task_type

        async def enqueue(task_type: str = task_type) -> None:
            await queue.enqueue(task_type, {})

        task = spawn_scheduler(getattr(processor, "schedule", None), enqueue)
        if task is not None:
            logger.info(
                "Scheduled recurring task",
                task_type=task_type,
                schedule=processor.schedule,
            )
            tasks.append(task)
    return tasks
