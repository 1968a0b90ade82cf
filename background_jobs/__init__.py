"""
Durable background task queue.

Producers enqueue typed tasks through ``TaskQueue``; a polling
``TaskWorker`` claims ready tasks from storage and routes each one to the
processor registered for its type.
"""

__version__ = "1.0.0"
