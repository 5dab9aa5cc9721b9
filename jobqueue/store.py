import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Mapping, Optional

from .contracts import QueueLoggerProtocol
from .exceptions import JobContractError, JobResolutionError, JobTimeoutError, StorageError
from .executor import JobExecutor
from .logger import QueueLogger
from .models import (
    DEFAULT_QUEUE, TERMINAL_STATUSES,
    JobOptions, JobRecord, JobStatus, clamp_priority, empty_stats, encode_payload, non_negative_int,
)
from .resolver import JobResolver, TaskRef, task_name_of
from .retry import DEFAULT_JITTER_PERCENT, calculate_delay, format_delay

SECONDS_PER_DAY = 86400


class QueueStore(ABC):
    """
    Authoritative collection of job records.

    Subclasses provide storage primitives (insert, claim, mark_*); the sweep,
    retry and failure policy shared by every driver lives here.
    """

    def __init__(self, executor: Optional[JobExecutor] = None,
                 queue_logger: Optional[QueueLoggerProtocol] = None,
                 clock: Callable[[], float] = time.time,
                 job_timeout: int = 300,
                 retry_jitter: bool = True,
                 jitter_percent: float = DEFAULT_JITTER_PERCENT):
        self.queue_logger = queue_logger or QueueLogger()
        self.executor = executor or JobExecutor(JobResolver(), self.queue_logger)
        self.clock = clock
        self.job_timeout = job_timeout
        self.retry_jitter = retry_jitter
        self.jitter_percent = jitter_percent

    # ---------- Dispatch ----------
    def add(self, task: TaskRef, payload: Optional[Dict[str, Any]] = None, queue: str = DEFAULT_QUEUE,
            priority: int = 5, delay: Optional[int] = None,
            options: Optional[Dict[str, Any]] = None) -> bool:
        task_name = task if isinstance(task, str) else task_name_of(task)
        queue = queue or DEFAULT_QUEUE
        now = self.clock()
        delay = non_negative_int(delay or 0, 0)
        status = JobStatus.DELAYED if delay > 0 else JobStatus.PENDING
        if payload is not None and not isinstance(payload, Mapping):
            self.queue_logger.warning(
                "Job payload is not a mapping; storing an empty payload",
                {"type": type(payload).__name__}, None, queue, task_name,
            )
            payload = {}

        try:
            job_options = JobOptions.from_mapping(options, self._option_defaults())
            job_id = self._insert(
                task=task_name,
                payload=encode_payload(payload),
                queue=queue,
                priority=clamp_priority(priority),
                status=status,
                available_at=now + delay,
                options=job_options,
                now=now,
            )
        except StorageError as e:
            self.queue_logger.error(
                f"Failed to add job to queue: {e}", {"task": task_name, "queue": queue}, None, queue, task_name,
            )
            return False

        self.queue_logger.debug(
            "Job added to queue",
            {"priority": clamp_priority(priority), "delay": delay, "status": status.value},
            job_id, queue, task_name,
        )
        return True

    # ---------- Sweeps ----------
    def process(self, queue: Optional[str] = None) -> None:
        """One synchronous sweep over every record eligible right now, highest priority first."""
        self.release_delayed_jobs()
        now = self.clock()
        for job_id in self._eligible_ids(queue, now):
            job = self._claim(job_id, self.clock())
            if job is None:
                continue  # claimed elsewhere since the snapshot
            self._run(job)

    def process_batch(self, batch_size: int = 10, queue: Optional[str] = None,
                      max_execution_time: float = 55) -> Dict[str, Any]:
        started = time.monotonic()
        processed = successful = failed = 0

        self.queue_logger.info("Starting batch processing", {
            "batch_size": batch_size,
            "queue": queue or "all",
            "max_time": max_execution_time,
        })
        self.release_delayed_jobs()

        while processed < batch_size:
            if time.monotonic() - started >= max_execution_time:
                self.queue_logger.warning("Batch processing stopped: time limit reached")
                break

            job = self._claim_next(queue, self.clock())
            if job is None:
                self.queue_logger.debug("No more jobs available")
                break

            if self._run(job):
                successful += 1
            else:
                failed += 1
            processed += 1

        execution_time = round(time.monotonic() - started, 3)
        self.queue_logger.info("Batch completed", {
            "processed": processed,
            "successful": successful,
            "failed": failed,
            "execution_time": f"{execution_time}s",
        })
        return {
            "processed": processed,
            "successful": successful,
            "failed": failed,
            "execution_time": execution_time,
        }

    def _run(self, job: JobRecord) -> bool:
        try:
            self.executor.execute(job)
        except (JobResolutionError, JobContractError) as e:
            # terminal, never retried
            self.queue_logger.error(
                f"Job could not be resolved: {e}", {"exception": type(e).__name__},
                job.id, job.queue, job.task,
            )
            self._fail(job, e, job.attempts + 1)
            return False
        except Exception as e:
            self._handle_failure(job, e)
            return False

        self._mark_completed(job, self.clock())
        self.queue_logger.info(f"Job {job.id} completed successfully", {"queue": job.queue},
                               job.id, job.queue, job.task)
        return True

    def _handle_failure(self, job: JobRecord, exc: BaseException) -> None:
        attempts = job.attempts + 1
        max_attempts = job.max_attempts

        self.queue_logger.error(
            f"Job failed: {exc}",
            {
                "attempt": attempts,
                "max_attempts": max_attempts,
                "exception": type(exc).__name__,
            },
            job.id, job.queue, job.task,
        )

        if attempts >= max_attempts:
            self._fail(job, exc, attempts)
            return

        now = self.clock()
        delay = calculate_delay(job.options.backoff_strategy, job.options.retry_delay, attempts,
                                self.retry_jitter, self.jitter_percent)
        self._mark_retry(job, attempts, now + delay, now)
        self.queue_logger.info(
            f"Job scheduled for retry in {format_delay(delay)}",
            {"attempt": attempts, "max_attempts": max_attempts, "delay": delay},
            job.id, job.queue, job.task,
        )

    def _fail(self, job: JobRecord, exc: BaseException, attempts: int) -> None:
        self._mark_failed(job, attempts, f"{type(exc).__name__}: {exc}", self.clock())
        self.queue_logger.warning(
            f"Job moved to failed after {attempts} attempt(s)",
            {"exception": str(exc)},
            job.id, job.queue, job.task,
        )

    # ---------- Maintenance ----------
    def release_stuck_jobs(self, now: Optional[float] = None) -> int:
        """Count processing records older than job_timeout as a failed attempt."""
        now = self.clock() if now is None else now
        released = 0
        for job in self._stuck_jobs(now - self.job_timeout):
            self._handle_failure(job, JobTimeoutError(f"Job exceeded job_timeout of {self.job_timeout}s"))
            released += 1
        if released:
            self.queue_logger.info(f"Released {released} stuck job(s)", {"job_timeout": self.job_timeout})
        return released

    def _purge_threshold(self, older_than_days: float) -> float:
        return self.clock() - float(older_than_days) * SECONDS_PER_DAY

    # ---------- Driver primitives ----------
    def _option_defaults(self) -> JobOptions:
        return JobOptions()

    @abstractmethod
    def _insert(self, *, task: str, payload: str, queue: str, priority: int, status: JobStatus,
                available_at: float, options: JobOptions, now: float) -> int: ...

    @abstractmethod
    def _eligible_ids(self, queue: Optional[str], now: float) -> List[int]: ...

    @abstractmethod
    def _claim(self, job_id: int, now: float) -> Optional[JobRecord]: ...

    @abstractmethod
    def _claim_next(self, queue: Optional[str], now: float) -> Optional[JobRecord]: ...

    @abstractmethod
    def _mark_completed(self, job: JobRecord, now: float) -> None: ...

    @abstractmethod
    def _mark_retry(self, job: JobRecord, attempts: int, available_at: float, now: float) -> None: ...

    @abstractmethod
    def _mark_failed(self, job: JobRecord, attempts: int, error: str, now: float) -> None: ...

    @abstractmethod
    def _stuck_jobs(self, claimed_before: float) -> List[JobRecord]: ...

    @abstractmethod
    def release_delayed_jobs(self) -> int: ...

    # ---------- Introspection / operator actions ----------
    @abstractmethod
    def get_stats(self, queue: Optional[str] = None) -> Dict[str, int]: ...

    @abstractmethod
    def list_jobs(self, status: Optional[str] = None, queue: Optional[str] = None) -> List[JobRecord]: ...

    @abstractmethod
    def get_job(self, job_id: int) -> Optional[JobRecord]: ...

    @abstractmethod
    def get_failed_jobs(self, limit: int = 50, offset: int = 0) -> List[JobRecord]: ...

    @abstractmethod
    def get_failed_job(self, job_id: int) -> Optional[JobRecord]: ...

    @abstractmethod
    def retry_failed_job(self, job_id: int) -> bool: ...

    @abstractmethod
    def retry_all_failed_jobs(self, queue: Optional[str] = None) -> int: ...

    @abstractmethod
    def purge_old_jobs(self, older_than_days: float = 7) -> int: ...

    @abstractmethod
    def purge_failed_jobs(self, queue: Optional[str] = None) -> int: ...

    @abstractmethod
    def cleanup(self, older_than_days: Optional[float] = None) -> int: ...

    def all(self) -> List[JobRecord]:
        return self.list_jobs()

    def close(self) -> None:
        pass


class InMemoryQueueStore(QueueStore):
    """
    Reference driver. Single-threaded: no locking, never share an instance
    across threads or processes.
    """

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._jobs: Dict[int, JobRecord] = {}
        self._next_id = 1

    def _insert(self, *, task, payload, queue, priority, status, available_at, options, now):
        job_id = self._next_id
        self._next_id += 1
        self._jobs[job_id] = JobRecord(
            id=job_id,
            task=task,
            payload=payload,
            queue=queue,
            priority=priority,
            status=status,
            available_at=available_at,
            options=options,
            created_at=now,
            updated_at=now,
        )
        return job_id

    def _select(self, queue: Optional[str], now: float) -> List[JobRecord]:
        eligible = [
            job for job in self._jobs.values()
            if job.is_eligible(now) and (queue is None or job.queue == queue)
        ]
        return sorted(eligible, key=lambda job: (-job.priority, job.id))

    def _eligible_ids(self, queue, now):
        return [job.id for job in self._select(queue, now)]

    def _claim(self, job_id, now):
        job = self._jobs.get(job_id)
        if job is None or not job.is_eligible(now):
            return None
        job.transition(JobStatus.PROCESSING, now)
        job.claimed_at = now
        return job

    def _claim_next(self, queue, now):
        candidates = self._select(queue, now)
        if not candidates:
            return None
        return self._claim(candidates[0].id, now)

    def _mark_completed(self, job, now):
        job.attempts += 1
        job.claimed_at = None
        job.transition(JobStatus.COMPLETED, now)

    def _mark_retry(self, job, attempts, available_at, now):
        job.attempts = attempts
        job.available_at = available_at
        job.exception = None
        job.claimed_at = None
        job.transition(JobStatus.PENDING, now)

    def _mark_failed(self, job, attempts, error, now):
        job.attempts = attempts
        job.exception = error
        job.claimed_at = None
        job.transition(JobStatus.FAILED, now)

    def _stuck_jobs(self, claimed_before):
        return [
            job for job in self._jobs.values()
            if job.status is JobStatus.PROCESSING and job.claimed_at is not None
            and job.claimed_at <= claimed_before
        ]

    def release_delayed_jobs(self) -> int:
        now = self.clock()
        released = 0
        for job in self._jobs.values():
            if job.status is JobStatus.DELAYED and job.available_at <= now:
                job.transition(JobStatus.PENDING, now)
                released += 1
        return released

    def get_stats(self, queue=None):
        stats = empty_stats()
        for job in self._jobs.values():
            if queue is None or job.queue == queue:
                stats[job.status.value] += 1
        return stats

    def list_jobs(self, status=None, queue=None):
        wanted = JobStatus(status) if status else None
        return [
            job for job in self._jobs.values()
            if (wanted is None or job.status is wanted) and (queue is None or job.queue == queue)
        ]

    def get_job(self, job_id):
        return self._jobs.get(job_id)

    def get_failed_jobs(self, limit=50, offset=0):
        failed = sorted(
            (job for job in self._jobs.values() if job.status is JobStatus.FAILED),
            key=lambda job: (job.updated_at, job.id),
            reverse=True,
        )
        return failed[max(0, offset):max(0, offset) + max(0, limit)]

    def get_failed_job(self, job_id):
        job = self._jobs.get(job_id)
        if job is None or job.status is not JobStatus.FAILED:
            return None
        return job

    def retry_failed_job(self, job_id):
        job = self.get_failed_job(job_id)
        if job is None:
            return False
        now = self.clock()
        job.transition(JobStatus.PENDING, now)
        job.attempts = 0
        job.exception = None
        job.available_at = now
        return True

    def retry_all_failed_jobs(self, queue=None):
        ids = [job.id for job in self.list_jobs(JobStatus.FAILED.value, queue)]
        return sum(1 for job_id in ids if self.retry_failed_job(job_id))

    def _remove(self, predicate) -> int:
        doomed = [job_id for job_id, job in self._jobs.items() if predicate(job)]
        for job_id in doomed:
            del self._jobs[job_id]
        return len(doomed)

    def purge_old_jobs(self, older_than_days=7):
        threshold = self._purge_threshold(older_than_days)
        return self._remove(lambda job: job.status in TERMINAL_STATUSES and job.updated_at < threshold)

    def purge_failed_jobs(self, queue=None):
        return self._remove(
            lambda job: job.status is JobStatus.FAILED and (queue is None or job.queue == queue)
        )

    def cleanup(self, older_than_days=None):
        if older_than_days is None:
            return self._remove(lambda job: job.status in TERMINAL_STATUSES)
        return self.purge_old_jobs(older_than_days)
