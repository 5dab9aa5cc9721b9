import sqlite3
from contextlib import contextmanager
from typing import Optional

from . import repository
from .config import options_from_config, sanitize_table_name
from .db import DEFAULT_DB_FILE, connect_db, init_db
from .exceptions import StorageError
from .models import JobStatus
from .store import QueueStore


class SQLiteQueueStore(QueueStore):
    """
    Durable driver. Claims are conditional updates, so several worker
    processes (or threads, each with its own store) can sweep one database.
    A store owns one connection: do not share an instance across threads.
    """

    def __init__(self, path: str = DEFAULT_DB_FILE, table: str = "jobs",
                 conn: Optional[sqlite3.Connection] = None, **kwargs):
        super().__init__(**kwargs)
        self.path = path
        self.table = sanitize_table_name(table)
        self.conn = conn or connect_db(path, self.table)
        init_db(self.conn)

    @contextmanager
    def _storage(self, action: str):
        try:
            yield
        except sqlite3.Error as e:
            raise StorageError(f"DB error while {action}: {e}")

    def _record(self, row):
        return repository.row_to_record(row) if row is not None else None

    # ---------- Config ----------
    def get_config(self):
        with self._storage("reading config"):
            return repository.get_config(self.conn)

    def set_config(self, key: str, value: str):
        with self._storage("writing config"):
            repository.set_config(self.conn, key, value)

    def _option_defaults(self):
        return options_from_config(self.get_config())

    # ---------- Primitives ----------
    def _insert(self, *, task, payload, queue, priority, status, available_at, options, now):
        with self._storage("inserting job"):
            return repository.insert_job(
                self.conn, self.table,
                task=task, payload=payload, queue=queue, priority=priority, status=status.value,
                options=options, now=now, available_at=available_at,
            )

    def _eligible_ids(self, queue, now):
        with self._storage("selecting jobs"):
            return repository.eligible_ids(self.conn, self.table, queue, now)

    def _claim(self, job_id, now):
        with self._storage("claiming job"):
            return self._record(repository.claim_job(self.conn, self.table, job_id, now))

    def _claim_next(self, queue, now):
        with self._storage("claiming job"):
            return self._record(repository.claim_next(self.conn, self.table, queue, now))

    def _mark_completed(self, job, now):
        with self._storage("completing job"):
            updated = repository.complete(self.conn, self.table, job.id, job.claimed_at, now)
        self._check_claim(job, updated)

    def _mark_retry(self, job, attempts, available_at, now):
        with self._storage("scheduling retry"):
            updated = repository.schedule_retry(
                self.conn, self.table, job.id, job.claimed_at, attempts, available_at, now,
            )
        self._check_claim(job, updated)

    def _mark_failed(self, job, attempts, error, now):
        with self._storage("failing job"):
            updated = repository.mark_failed(self.conn, self.table, job.id, job.claimed_at, attempts, error, now)
        self._check_claim(job, updated)

    def _check_claim(self, job, updated: bool):
        if not updated:
            self.queue_logger.warning(
                "Job outcome discarded: the record is no longer held by this claim",
                {"claimed_at": job.claimed_at}, job.id, job.queue, job.task,
            )

    def _stuck_jobs(self, claimed_before):
        with self._storage("finding stuck jobs"):
            rows = repository.stuck_jobs(self.conn, self.table, claimed_before)
        return [repository.row_to_record(r) for r in rows]

    def release_delayed_jobs(self):
        with self._storage("releasing delayed jobs"):
            return repository.release_delayed(self.conn, self.table, self.clock())

    # ---------- Queries ----------
    def get_stats(self, queue=None):
        with self._storage("counting jobs"):
            return repository.counts(self.conn, self.table, queue)

    def list_jobs(self, status=None, queue=None):
        if status:
            status = JobStatus(status).value
        with self._storage("listing jobs"):
            rows = repository.list_jobs(self.conn, self.table, status, queue)
        return [repository.row_to_record(r) for r in rows]

    def get_job(self, job_id):
        with self._storage("reading job"):
            return self._record(repository.get_job(self.conn, self.table, job_id))

    # ---------- Failed jobs ----------
    def get_failed_jobs(self, limit=50, offset=0):
        with self._storage("listing failed jobs"):
            rows = repository.failed_jobs(self.conn, self.table, limit, offset)
        return [repository.row_to_record(r) for r in rows]

    def get_failed_job(self, job_id):
        job = self.get_job(job_id)
        if job is None or job.status is not JobStatus.FAILED:
            return None
        return job

    def retry_failed_job(self, job_id):
        with self._storage("retrying failed job"):
            return repository.retry_failed(self.conn, self.table, job_id, self.clock())

    def retry_all_failed_jobs(self, queue=None):
        with self._storage("retrying failed jobs"):
            retried = repository.retry_all_failed(self.conn, self.table, queue, self.clock())
        self.queue_logger.info(f"Retried {retried} failed jobs", {"queue": queue or "all"})
        return retried

    # ---------- Maintenance ----------
    def purge_old_jobs(self, older_than_days=7):
        with self._storage("purging old jobs"):
            purged = repository.purge_terminal(self.conn, self.table, self._purge_threshold(older_than_days))
        self.queue_logger.info(f"Purged {purged} old jobs", {"older_than_days": older_than_days})
        return purged

    def purge_failed_jobs(self, queue=None):
        with self._storage("purging failed jobs"):
            purged = repository.purge_failed(self.conn, self.table, queue)
        self.queue_logger.info(f"Purged {purged} failed jobs", {"queue": queue or "all"})
        return purged

    def cleanup(self, older_than_days=None):
        threshold = None if older_than_days is None else self._purge_threshold(older_than_days)
        with self._storage("cleaning up jobs"):
            return repository.purge_terminal(self.conn, self.table, threshold)

    def close(self):
        self.conn.close()
