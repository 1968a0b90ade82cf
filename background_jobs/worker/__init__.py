"""
Worker infrastructure for background task processing.

This package provides:
- A polling worker with idle backoff and bounded retries
- Cron schedulers that enqueue recurring tasks
- Prometheus metrics served next to the worker
"""
