import json
import logging
from typing import Any, Dict, Optional

DEFAULT_LOGGER_NAME = "jobqueue.queue"


class QueueLogger:
    """
    Default logger collaborator for stores and the executor.

    Messages go to a stdlib logger as "[Queue] message {context}", with
    job_id / queue / task attached as record attributes so handlers can
    filter or format on them.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._logger = logger or logging.getLogger(DEFAULT_LOGGER_NAME)

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def log(self, level: int, message: str, context: Optional[Dict[str, Any]] = None,
            job_id: Optional[int] = None, queue: Optional[str] = None, task: Optional[str] = None):
        if not self._logger.isEnabledFor(level):
            return
        try:
            self._logger.log(
                level,
                self.format_message(message, context),
                extra={"job_id": job_id, "queue": queue, "task": task},
            )
        except Exception as e:  # a broken handler must not fail the job
            logging.getLogger(__name__).warning("Queue log write failed: %s", e)

    @staticmethod
    def format_message(message: str, context: Optional[Dict[str, Any]] = None) -> str:
        suffix = f" {json.dumps(context, default=str, sort_keys=True)}" if context else ""
        return f"[Queue] {message}{suffix}"

    def debug(self, message, context=None, job_id=None, queue=None, task=None):
        self.log(logging.DEBUG, message, context, job_id, queue, task)

    def info(self, message, context=None, job_id=None, queue=None, task=None):
        self.log(logging.INFO, message, context, job_id, queue, task)

    def warning(self, message, context=None, job_id=None, queue=None, task=None):
        self.log(logging.WARNING, message, context, job_id, queue, task)

    def error(self, message, context=None, job_id=None, queue=None, task=None):
        self.log(logging.ERROR, message, context, job_id, queue, task)

    def log_job_metrics(self, job_id: int, queue: str, task: str, duration_seconds: float, attempt: int):
        self.info(
            "Job execution completed",
            {"duration": f"{duration_seconds:.3f}s", "attempt": attempt},
            job_id, queue, task,
        )
