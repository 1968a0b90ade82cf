from typing import Any, Generic, Protocol, TypeVar

# Base registry implementation
T = TypeVar("T")


class Registry(Generic[T]):
    """Generic registry for pluggable implementations."""

    def __init__(self, name: str):
        self.name = name
        self._implementations: dict[str, T] = {}
        self._frozen = False

    def register(self, name: str, implementation: T) -> None:
        """Register an implementation with a given name."""
        if self._frozen:
            raise RuntimeError(
                f"Cannot register '{name}' in {self.name.lower()} registry: "
                "registry is frozen"
            )
        self._implementations[name] = implementation

    def get(self, name: str) -> T:
        """Get an implementation by name."""
        if name not in self._implementations:
            raise KeyError(
                f"No {self.name.lower()} implementation registered with name: {name}"
            )
        return self._implementations[name]

    def list(self) -> list[str]:
        """List all registered implementation names."""
        return list(self._implementations.keys())

    def freeze(self) -> None:
        """Freeze the registry to prevent further modifications."""
        self._frozen = True

    def is_frozen(self) -> bool:
        """Check if the registry is frozen."""
        return self._frozen


# Processor Registry - background task handlers
class TaskProcessor(Protocol):
    """
    Protocol for processors that execute background tasks.

    ``task_type`` routes queued records to the processor. ``schedule`` is an
    optional cron expression; when set, the worker runtime enqueues a task of
    this type on every fire time.
    """

    task_type: str
    schedule: str | None

    async def process(self, task_id: str, payload: Any) -> None:
        """
        Execute one task.

        Args:
            task_id: Identifier of the claimed task record
            payload: Opaque JSON-compatible payload stored at enqueue time

        Raises:
            Exception: any exception marks the attempt as failed
        """
        ...


class ProcessorRegistry(Registry[TaskProcessor]):
    """Registry mapping task types to exactly one processor (last one wins)."""

    def __init__(self):
        super().__init__("Processor")

    def register_processor(self, processor: TaskProcessor) -> None:
        """Register a processor under its own task type."""
        self.register(processor.task_type, processor)

    def lookup(self, task_type: str) -> TaskProcessor | None:
        """Return the processor for a task type, or None if nothing handles it."""
        return self._implementations.get(task_type)

    def scheduled(self) -> list[TaskProcessor]:
        """Processors that expose a cron schedule."""
        return [
            processor
            for processor in self._implementations.values()
            if getattr(processor, "schedule", None)
        ]
