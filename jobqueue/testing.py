"""Helpers for testing code that dispatches jobs."""
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from .dispatching import _override
from .logger import DEFAULT_LOGGER_NAME, QueueLogger


class FakeDispatcher:
    """Records every add() call instead of queueing anything."""

    def __init__(self, result: bool = True):
        self.result = result
        self.calls: List[Dict[str, Any]] = []

    def add(self, task, payload=None, queue="default", priority=5, delay=None, options=None) -> bool:
        self.calls.append({
            "task": task,
            "payload": payload,
            "queue": queue,
            "priority": priority,
            "delay": delay,
            "options": dict(options or {}),
        })
        return self.result

    def dispatched(self, task: Optional[str] = None) -> List[Dict[str, Any]]:
        return [c for c in self.calls if task is None or c["task"] == task]


@contextmanager
def override_dispatcher(dispatcher=None) -> Iterator[Any]:
    """Route every dispatch in this context to `dispatcher` (a new FakeDispatcher by default)."""
    dispatcher = dispatcher if dispatcher is not None else FakeDispatcher()
    token = _override.set(dispatcher)
    try:
        yield dispatcher
    finally:
        _override.reset(token)


class MemoryQueueLogger(QueueLogger):
    """QueueLogger that also keeps every entry and metric in lists for assertions."""

    def __init__(self):
        super().__init__(logging.getLogger(DEFAULT_LOGGER_NAME))
        self.entries: List[Dict[str, Any]] = []
        self.metrics: List[Dict[str, Any]] = []

    def log(self, level, message, context=None, job_id=None, queue=None, task=None):
        self.entries.append({
            "level": logging.getLevelName(level).lower(),
            "message": message,
            "context": dict(context or {}),
            "job_id": job_id,
            "queue": queue,
            "task": task,
        })
        super().log(level, message, context, job_id, queue, task)

    def log_job_metrics(self, job_id, queue, task, duration_seconds, attempt):
        self.metrics.append({
            "job_id": job_id,
            "queue": queue,
            "task": task,
            "duration": duration_seconds,
            "attempt": attempt,
        })
        super().log_job_metrics(job_id, queue, task, duration_seconds, attempt)

    def messages(self, level: Optional[str] = None) -> List[str]:
        return [e["message"] for e in self.entries if level is None or e["level"] == level]
