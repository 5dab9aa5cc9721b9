from typing import Any, Dict, List, Optional

from .config import QueueConfig
from .contracts import QueueLoggerProtocol
from .executor import JobExecutor
from .logger import QueueLogger
from .models import DEFAULT_QUEUE, JobRecord
from .resolver import JobResolver, TaskRef
from .sqlite_store import SQLiteQueueStore
from .store import InMemoryQueueStore, QueueStore


class QueueManager:
    """
    Single operational surface over one queue store, used by the CLI,
    workers and admin code. Every method delegates to the store.

    When constructed with ``enabled=False`` nothing is queued: ``add``
    runs the job in-process through the executor instead.
    """

    def __init__(self, store: QueueStore, executor: Optional[JobExecutor] = None, enabled: bool = True):
        self._store = store
        self._executor = executor
        self.enabled = enabled

    @property
    def store(self) -> QueueStore:
        return self._store

    @property
    def executor(self) -> JobExecutor:
        return self._executor if self._executor is not None else self._store.executor

    # ---------- Dispatch ----------
    def add(self, task: TaskRef, payload: Optional[Dict[str, Any]] = None, queue: str = DEFAULT_QUEUE,
            priority: int = 5, delay: Optional[int] = None,
            options: Optional[Dict[str, Any]] = None) -> bool:
        if not self.enabled:
            return self.execute_sync(task, payload)
        return self._store.add(task, payload, queue, priority, delay, options)

    def execute_sync(self, task: TaskRef, payload: Optional[Dict[str, Any]] = None) -> bool:
        return self.executor.execute_sync(task, payload or {})

    # ---------- Processing ----------
    def process(self, queue: Optional[str] = None) -> None:
        self._store.process(queue)

    def process_jobs(self, queue: Optional[str] = None) -> None:
        self.process(queue)

    def process_batch(self, batch_size: int = 10, queue: Optional[str] = None,
                      max_execution_time: float = 55) -> Dict[str, Any]:
        return self._store.process_batch(batch_size, queue, max_execution_time)

    # ---------- Introspection ----------
    def get_stats(self, queue: Optional[str] = None) -> Dict[str, int]:
        return self._store.get_stats(queue)

    def list_jobs(self, status: Optional[str] = None, queue: Optional[str] = None) -> List[JobRecord]:
        return self._store.list_jobs(status, queue)

    def get_job(self, job_id: int) -> Optional[JobRecord]:
        return self._store.get_job(job_id)

    # ---------- Failed jobs ----------
    def get_failed_jobs(self, limit: int = 50, offset: int = 0) -> List[JobRecord]:
        return self._store.get_failed_jobs(limit, offset)

    def get_failed_job(self, job_id: int) -> Optional[JobRecord]:
        return self._store.get_failed_job(job_id)

    def retry_failed_job(self, job_id: int) -> bool:
        return self._store.retry_failed_job(job_id)

    def retry_all_failed_jobs(self, queue: Optional[str] = None) -> int:
        return self._store.retry_all_failed_jobs(queue)

    # ---------- Maintenance ----------
    def purge_old_jobs(self, older_than_days: float = 7) -> int:
        return self._store.purge_old_jobs(older_than_days)

    def purge_failed_jobs(self, queue: Optional[str] = None) -> int:
        return self._store.purge_failed_jobs(queue)

    def cleanup(self, older_than_days: Optional[float] = None) -> int:
        return self._store.cleanup(older_than_days)

    def release_stuck_jobs(self) -> int:
        return self._store.release_stuck_jobs()

    def close(self) -> None:
        self._store.close()


def create_store(config: QueueConfig, executor: Optional[JobExecutor] = None,
                 queue_logger: Optional[QueueLoggerProtocol] = None, **kwargs) -> QueueStore:
    queue_logger = queue_logger or QueueLogger()
    executor = executor or JobExecutor(JobResolver(), queue_logger)
    common = dict(
        executor=executor,
        queue_logger=queue_logger,
        job_timeout=config.job_timeout,
        retry_jitter=config.retry_jitter,
        jitter_percent=config.jitter_percent,
        **kwargs
    )
    if config.driver == "sqlite":
        return SQLiteQueueStore(config.database, config.table, **common)
    return InMemoryQueueStore(**common)


def create_manager(config: Optional[QueueConfig] = None, executor: Optional[JobExecutor] = None,
                   queue_logger: Optional[QueueLoggerProtocol] = None, **kwargs) -> QueueManager:
    config = config or QueueConfig()
    store = create_store(config, executor, queue_logger, **kwargs)
    return QueueManager(store, executor, enabled=config.enabled)
