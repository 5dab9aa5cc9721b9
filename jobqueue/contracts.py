from typing import Any, Dict, Optional, Protocol, runtime_checkable


@runtime_checkable
class JobDispatcher(Protocol):
    """Anything that accepts new job records: a queue store, the manager, or a test double."""

    def add(self, task: str, payload: Optional[Dict[str, Any]] = None, queue: str = "default",
            priority: int = 5, delay: Optional[int] = None,
            options: Optional[Dict[str, Any]] = None) -> bool:
        ...


class QueueLoggerProtocol(Protocol):
    def debug(self, message: str, context: Optional[Dict[str, Any]] = None, job_id: Optional[int] = None,
              queue: Optional[str] = None, task: Optional[str] = None) -> None:
        ...

    def info(self, message: str, context: Optional[Dict[str, Any]] = None, job_id: Optional[int] = None,
             queue: Optional[str] = None, task: Optional[str] = None) -> None:
        ...

    def warning(self, message: str, context: Optional[Dict[str, Any]] = None, job_id: Optional[int] = None,
                queue: Optional[str] = None, task: Optional[str] = None) -> None:
        ...

    def error(self, message: str, context: Optional[Dict[str, Any]] = None, job_id: Optional[int] = None,
              queue: Optional[str] = None, task: Optional[str] = None) -> None:
        ...

    def log_job_metrics(self, job_id: int, queue: str, task: str, duration_seconds: float,
                        attempt: int) -> None:
        ...
