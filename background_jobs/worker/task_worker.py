"""
Polling task worker.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from datetime import datetime

from background_jobs.config.logging import get_logger
from background_jobs.core.exceptions import (
    InvalidTransitionError,
    ProcessingError,
    ProcessorNotFoundError,
    TaskQueueError,
)
from background_jobs.core.registries import ProcessorRegistry, TaskProcessor
from background_jobs.tasks.queue import TaskQueue
from background_jobs.tasks.schemas import TaskRecord
from background_jobs.worker.backoff import IdleBackoff, RetryPolicy
from background_jobs.worker.config import WorkerConfig
from background_jobs.worker.metrics import WorkerMetrics

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class TaskWorker:
    """
    Sequential batch worker.

    Pulls up to ``batch_size`` ready tasks per poll and runs them one at a
    time in ``created_at`` order. Build instances with ``TaskWorkerBuilder``;
    the processor registry is frozen once the worker exists.
    """

    def __init__(
        self,
        queue: TaskQueue,
        processors: ProcessorRegistry,
        batch_size: int = 10,
        poll_interval: float = 1.0,
        max_backoff: float = 60.0,
        task_timeout: float | None = None,
        metrics: WorkerMetrics | None = None,
        retry_policy: RetryPolicy | None = None,
        sleep: Sleep | None = None,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        processors.freeze()
        self.queue = queue
        self.processors = processors
        self.batch_size = batch_size
        self.poll_interval = poll_interval
        self.task_timeout = task_timeout
        self.metrics = metrics
        self.retry_policy = retry_policy or RetryPolicy()
        self.backoff = IdleBackoff(
            base=poll_interval, maximum=max_backoff, floor=min(1.0, max_backoff)
        )
        self._sleep = sleep or self._wait_for_stop
        self._stop_event = asyncio.Event()

    @property
    def registered_task_types(self) -> list[str]:
        return self.processors.list()

    def stop(self) -> None:
        """Request shutdown once the in-flight task (if any) has finished."""
        self._stop_event.set()

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    async def run(self) -> None:
        """Poll and process until ``stop()`` is called."""
        logger.info(
            "Task worker started",
            batch_size=self.batch_size,
            poll_interval=self.poll_interval,
            processors=self.registered_task_types,
        )

        while not self.stopping:
            try:
                processed = await self.run_once()
            except TaskQueueError as e:
                logger.error("Error processing task batch", error=str(e))
                processed = 0
            except Exception:
                logger.exception("Unexpected error processing task batch")
                processed = 0

            if processed > 0:
                # Tasks are flowing, poll again right away
                self.backoff.reset()
                continue

            if self.stopping:
                break
            await self._sleep(self.backoff.next_delay())

        logger.info("Task worker stopped")

    async def run_once(self) -> int:
        """
        Process a single batch.

        Returns:
            Number of tasks fetched from storage

        Raises:
            TaskQueueError: if fetching the batch fails
        """
        tasks = await self.queue.find_pending(self.batch_size)

        for task in tasks:
            if self.stopping:
                break
            try:
                await self._process_task(task)
            except TaskQueueError as e:
                logger.error(
                    "Failed to process task",
                    task_id=task.id,
                    task_type=task.task_type,
                    error=str(e),
                )

        return len(tasks)

    async def _process_task(self, task: TaskRecord) -> None:
        task_logger = logger.bind(task_id=task.id, task_type=task.task_type)
        task_type = task.task_type

        if self.metrics:
            self.metrics.record_invocation(task_type)
            lag = (self.queue.storage.clock() - task.created_at).total_seconds()
            self.metrics.record_processing_lag(task_type, max(0.0, lag))

        try:
            claimed = await self.queue.mark_processing(task.id)
        except InvalidTransitionError:
            task_logger.info("Task already claimed elsewhere, skipping")
            return

        task_logger.debug("Processing task", attempt=claimed.attempts)
        started = time.perf_counter()
        error: str | None = None

        try:
            processor = self.processors.lookup(task_type)
            if processor is None:
                raise ProcessorNotFoundError(task_type)
            await self._execute(processor, claimed)
        except asyncio.CancelledError:
            task_logger.warning("Task processing cancelled")
            await self.queue.mark_failed(
                claimed.id, "Task processing cancelled", self._retry_at(claimed)
            )
            raise
        except Exception as e:
            error = str(e) or e.__class__.__name__
            task_logger.warning("Task processing failed", error=error)
        finally:
            if self.metrics:
                self.metrics.record_duration(task_type, time.perf_counter() - started)

        if error is None:
            await self.queue.mark_completed(claimed.id)
            if self.metrics:
                self.metrics.record_completed(task_type)
            task_logger.debug("Task completed")
        else:
            updated = await self.queue.mark_failed(
                claimed.id, error, self._retry_at(claimed)
            )
            if self.metrics:
                self.metrics.record_failed(task_type)
            if updated.is_terminal():
                task_logger.error(
                    "Task failed permanently",
                    attempts=updated.attempts,
                    max_attempts=updated.max_attempts,
                )

    async def _execute(self, processor: TaskProcessor, task: TaskRecord) -> None:
        if self.task_timeout is None:
            await processor.process(task.id, task.payload)
            return

        try:
            await asyncio.wait_for(
                processor.process(task.id, task.payload), self.task_timeout
            )
        except asyncio.TimeoutError as e:
            raise ProcessingError(
                f"Task timed out after {self.task_timeout}s",
                {"task_id": task.id, "timeout": self.task_timeout},
            ) from e

    def _retry_at(self, task: TaskRecord) -> datetime | None:
        if not task.can_retry():
            return None
        return self.retry_policy.retry_at(task.attempts, self.queue.storage.clock())

    async def _wait_for_stop(self, seconds: float) -> None:
        """Sleep that returns early when the worker is stopped."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass


class TaskWorkerBuilder:
    """Accumulates worker configuration before freezing it into a TaskWorker."""

    def __init__(self, queue: TaskQueue):
        self._queue = queue
        self._processors = ProcessorRegistry()
        self._batch_size = 10
        self._poll_interval = 1.0
        self._max_backoff = 60.0
        self._task_timeout: float | None = None
        self._metrics: WorkerMetrics | None = None
        self._retry_policy: RetryPolicy | None = None
        self._sleep: Sleep | None = None

    def with_config(self, config: WorkerConfig) -> "TaskWorkerBuilder":
        self._batch_size = config.batch_size
        self._poll_interval = config.poll_interval
        self._max_backoff = config.max_backoff
        self._task_timeout = config.task_timeout
        self._retry_policy = RetryPolicy(
            base=config.retry_backoff_base,
            maximum=config.retry_backoff_max,
            jitter=config.retry_jitter,
        )
        return self

    def with_batch_size(self, batch_size: int) -> "TaskWorkerBuilder":
        self._batch_size = batch_size
        return self

    def with_poll_interval(self, poll_interval: float) -> "TaskWorkerBuilder":
        self._poll_interval = poll_interval
        return self

    def with_max_backoff(self, max_backoff: float) -> "TaskWorkerBuilder":
        self._max_backoff = max_backoff
        return self

    def with_task_timeout(self, task_timeout: float | None) -> "TaskWorkerBuilder":
        self._task_timeout = task_timeout
        return self

    def with_metrics(self, metrics: WorkerMetrics) -> "TaskWorkerBuilder":
        self._metrics = metrics
        return self

    def with_retry_policy(self, retry_policy: RetryPolicy) -> "TaskWorkerBuilder":
        self._retry_policy = retry_policy
        return self

    def with_sleep(self, sleep: Sleep) -> "TaskWorkerBuilder":
        self._sleep = sleep
        return self

    def register_processor(self, processor: TaskProcessor) -> "TaskWorkerBuilder":
        self._processors.register_processor(processor)
        return self

    def registered_task_types(self) -> list[str]:
        return self._processors.list()

    def scheduled_processors(self) -> list[TaskProcessor]:
        return self._processors.scheduled()

    def build(self) -> TaskWorker:
        """Freeze the accumulated registry into an immutable worker."""
        registry = ProcessorRegistry()
        for name in self._processors.list():
            registry.register(name, self._processors.get(name))

        return TaskWorker(
            self._queue,
            registry,
            batch_size=self._batch_size,
            poll_interval=self._poll_interval,
            max_backoff=self._max_backoff,
            task_timeout=self._task_timeout,
            metrics=self._metrics,
            retry_policy=self._retry_policy,
            sleep=self._sleep,
        )
