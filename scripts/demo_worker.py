#!/usr/bin/env python3
"""
Demo script showcasing the task queue end to end with in-memory storage.
Run with: python scripts/demo_worker.py
"""

import asyncio
from datetime import timedelta
from typing import Any

from background_jobs.config.logging import setup_logging
from background_jobs.config.settings import Settings, StorageBackend
from background_jobs.tasks.queue import TaskQueue
from background_jobs.tasks.schemas import Task
from background_jobs.tasks.storage import utcnow
from background_jobs.worker.config import WorkerConfig
from background_jobs.worker.metrics import WorkerMetrics
from background_jobs.worker.runtime import build_storage, build_worker


class EmailRegistrationTask(Task):
    task_type = "email_registration"

    to: str
    name: str
    verification_url: str


class EmailRegistrationProcessor:
    """Pretends to send a verification email; fails for example.org."""

    task_type = "email_registration"
    schedule = None

    async def process(self, task_id: str, payload: Any) -> None:
        task = EmailRegistrationTask.model_validate(payload)
        if task.to.endswith("@example.org"):
            raise RuntimeError(f"Mailbox unavailable: {task.to}")
        print(f"   📧 [{task_id[:8]}] Sent verification link to {task.name} <{task.to}>")


async def demo_queue_and_worker():
    """Demonstrate enqueue, processing, retries and metrics."""
    print("⚙️ WORKER DEMO")
    print("=" * 50)

    settings = Settings(storage_backend=StorageBackend.MEMORY, debug=False)
    setup_logging(settings)
    queue = TaskQueue(build_storage(settings))

    await queue.enqueue_task(
        EmailRegistrationTask(
            to="ada@example.com", name="Ada", verification_url="https://example.com/v/1"
        )
    )
    await queue.enqueue_task(
        EmailRegistrationTask(
            to="bob@example.org", name="Bob", verification_url="https://example.com/v/2"
        ),
        max_attempts=2,
    )
    await queue.enqueue_task(
        EmailRegistrationTask(
            to="eve@example.com", name="Eve", verification_url="https://example.com/v/3"
        ),
        scheduled_for=utcnow() + timedelta(hours=1),
    )
    print(f"✅ Enqueued 3 tasks: {await queue.count_by_status()}")

    metrics = WorkerMetrics(settings.metrics_namespace)
    worker = build_worker(
        queue, [EmailRegistrationProcessor()], WorkerConfig.from_settings(settings), metrics
    )

    for poll in range(1, 4):
        processed = await worker.run_once()
        print(f"✅ Poll {poll}: {processed} task(s) processed")

    print(f"✅ Final counts: {await queue.count_by_status()}")

    body, _ = metrics.render()
    print("\n📈 Metrics excerpt:")
    for line in body.decode().splitlines():
        if line.startswith(f"{settings.metrics_namespace}_tasks_"):
            print(f"   {line}")

    print()


if __name__ == "__main__":
    asyncio.run(demo_queue_and_worker())
