from fastapi import FastAPI, HTTPException

from background_jobs.config.logging import setup_logging
from background_jobs.config.settings import settings
from background_jobs.core.exceptions import (
    RequestContextMiddleware,
    TaskQueueError,
    general_exception_handler,
    http_exception_handler,
    task_queue_exception_handler,
)
from background_jobs.healthz import router as health_router
from background_jobs.tasks.queue import TaskQueue
from background_jobs.tasks.routes import router as tasks_router


def create_app(queue: TaskQueue | None = None) -> FastAPI:
    """Create and configure the admin API application."""

    # Initialize structured logging
    setup_logging()

    app = FastAPI(
        title=settings.app_name,
        description="Durable background task queue",
        version=settings.version,
        debug=settings.debug,
        openapi_url="/v1/openapi.json" if settings.debug else None,
        docs_url="/v1/docs" if settings.debug else None,
        redoc_url="/v1/redoc" if settings.debug else None,
    )

    # Storage is resolved lazily from settings when no queue is injected
    app.state.queue = queue

    app.add_middleware(RequestContextMiddleware)

    app.add_exception_handler(TaskQueueError, task_queue_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    app.include_router(health_router, prefix="/v1", tags=["health"])
    app.include_router(tasks_router, prefix="/v1")

    return app


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "background_jobs.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
