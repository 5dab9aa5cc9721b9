import logging
import time
from typing import Any, Dict, Optional

from .contracts import QueueLoggerProtocol
from .models import JobRecord, decode_payload
from .resolver import JobResolver, TaskRef, task_name_of

logger = logging.getLogger(__name__)

PAYLOAD_SUMMARY_LIMIT = 200


def summarize_payload(payload) -> str:
    text = repr(payload)
    if len(text) > PAYLOAD_SUMMARY_LIMIT:
        text = text[:PAYLOAD_SUMMARY_LIMIT] + "..."
    return text


class JobExecutor:
    """
    Runs a single job. Holds no per-job state, so one executor can be
    shared by every sweep and by synchronous dispatch.
    """

    def __init__(self, resolver: Optional[JobResolver] = None,
                 queue_logger: Optional[QueueLoggerProtocol] = None):
        self.resolver = resolver or JobResolver()
        self.queue_logger = queue_logger

    def execute(self, job: JobRecord) -> float:
        """
        Decode, resolve and run `job`. Returns the duration in seconds.
        Any failure propagates; retry vs. terminal failure is the store's call.
        """
        attempt = job.attempts + 1
        self._debug(
            "Starting job execution",
            {"attempt": attempt, "max_attempts": job.max_attempts},
            job,
        )

        payload = decode_payload(job.payload)
        instance = self.resolver.resolve(job.task)

        started = time.perf_counter()
        instance.handle(payload)
        duration = time.perf_counter() - started

        if self.queue_logger is not None:
            self.queue_logger.log_job_metrics(job.id, job.queue, job.task, duration, attempt)
        return duration

    def execute_sync(self, task: TaskRef, payload: Optional[Dict[str, Any]] = None) -> bool:
        """Run a job in-process right now. Never raises; failures are logged and return False."""
        name = task if isinstance(task, str) else task_name_of(task)
        try:
            instance = self.resolver.resolve(task)
            instance.handle(decode_payload(payload))
            return True
        except Exception as e:
            self._error(
                f"Failed to execute job '{name}' synchronously: {e}",
                {
                    "task": name,
                    "payload": summarize_payload(payload),
                    "exception": type(e).__name__,
                },
                task=name,
            )
            return False

    def _debug(self, message: str, context: Dict[str, Any], job: JobRecord):
        if self.queue_logger is not None:
            self.queue_logger.debug(message, context, job.id, job.queue, job.task)

    def _error(self, message: str, context: Dict[str, Any], task: Optional[str] = None):
        if self.queue_logger is None:
            logger.error("%s %s", message, context)
            return
        self.queue_logger.error(message, context, None, None, task)
