import json
import sqlite3
from typing import Dict, List, Optional, Tuple

from .config import validate_config_value
from .models import JobOptions, JobRecord, JobStatus, empty_stats
from .utils import epoch_from_iso, iso_from_epoch

MAX_ERROR_LENGTH = 1000
CLAIM_RETRIES = 5


# ---------- Config ----------
def get_config(conn) -> Dict[str, str]:
    cur = conn.execute("SELECT key, value FROM config")
    return {r["key"]: r["value"] for r in cur.fetchall()}


def set_config(conn, key: str, value: str):
    value = validate_config_value(key, value)
    with conn:
        conn.execute(
            "INSERT INTO config(key,value) VALUES(?,?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value",
            (key, value),
        )


# ---------- Rows ----------
def row_to_record(row: sqlite3.Row) -> JobRecord:
    return JobRecord(
        id=row["id"],
        task=row["task"],
        payload=row["payload"],
        queue=row["queue"],
        priority=row["priority"],
        status=JobStatus(row["status"]),
        available_at=epoch_from_iso(row["available_at"]),
        attempts=row["attempts"],
        options=JobOptions(
            max_attempts=row["max_attempts"],
            timeout=row["timeout"],
            backoff_strategy=row["backoff_strategy"],
            retry_delay=row["retry_delay"],
            tags=json.loads(row["tags"] or "[]"),
        ),
        exception=row["exception"],
        created_at=epoch_from_iso(row["created_at"]),
        updated_at=epoch_from_iso(row["updated_at"]),
        claimed_at=epoch_from_iso(row["claimed_at"]),
    )


def _queue_filter(queue: Optional[str], params: list) -> str:
    if queue is None:
        return ""
    params.append(queue)
    return " AND queue=?"


# ---------- Jobs: enqueue / claim / complete / retry ----------
def insert_job(conn, table: str, *, task: str, payload: str, queue: str, priority: int, status: str,
               options: JobOptions, now: float, available_at: float) -> int:
    ts = iso_from_epoch(now)
    with conn:
        cur = conn.execute(
            f"""INSERT INTO {table}
               (task, payload, queue, priority, status, attempts, max_attempts, timeout,
                backoff_strategy, retry_delay, tags, created_at, updated_at, available_at)
               VALUES (?, ?, ?, ?, ?, 0, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (task, payload, queue, priority, status, options.max_attempts, options.timeout,
             options.backoff_strategy, options.retry_delay, json.dumps(options.tags),
             ts, ts, iso_from_epoch(available_at)),
        )
    return cur.lastrowid


def eligible_ids(conn, table: str, queue: Optional[str], now: float) -> List[int]:
    params = [iso_from_epoch(now)]
    where = _queue_filter(queue, params)
    rows = conn.execute(
        f"""SELECT id FROM {table}
           WHERE status IN ('pending','delayed') AND available_at <= ?{where}
           ORDER BY priority DESC, id ASC""",
        params,
    ).fetchall()
    return [r["id"] for r in rows]


def claim_job(conn, table: str, job_id: int, now: float) -> Optional[sqlite3.Row]:
    """Conditional update: only one caller can move a given row to processing."""
    ts = iso_from_epoch(now)
    with conn:
        updated = conn.execute(
            f"""UPDATE {table} SET status='processing', claimed_at=?, updated_at=?
               WHERE id=? AND status IN ('pending','delayed') AND available_at <= ?""",
            (ts, ts, job_id, ts),
        )
        if updated.rowcount != 1:
            return None
        return conn.execute(f"SELECT * FROM {table} WHERE id=?", (job_id,)).fetchone()


def claim_next(conn, table: str, queue: Optional[str], now: float) -> Optional[sqlite3.Row]:
    for _ in range(CLAIM_RETRIES):
        params = [iso_from_epoch(now)]
        where = _queue_filter(queue, params)
        row = conn.execute(
            f"""SELECT id FROM {table}
               WHERE status IN ('pending','delayed') AND available_at <= ?{where}
               ORDER BY priority DESC, id ASC
               LIMIT 1""",
            params,
        ).fetchone()
        if not row:
            return None
        claimed = claim_job(conn, table, row["id"], now)
        if claimed is not None:
            return claimed
    return None


def _claim_guard(claimed_at: Optional[float]) -> Tuple[str, list]:
    """WHERE fragment matching only the claim that produced the record."""
    if claimed_at is None:
        return " AND claimed_at IS NULL", []
    return " AND claimed_at=?", [iso_from_epoch(claimed_at)]


def complete(conn, table: str, job_id: int, claimed_at: Optional[float], now: float) -> bool:
    guard, guard_params = _claim_guard(claimed_at)
    with conn:
        res = conn.execute(
            f"""UPDATE {table}
               SET status='completed', attempts=attempts+1, claimed_at=NULL, exception=NULL, updated_at=?
               WHERE id=? AND status='processing'{guard}""",
            [iso_from_epoch(now), job_id, *guard_params],
        )
    return res.rowcount == 1


def schedule_retry(conn, table: str, job_id: int, claimed_at: Optional[float], attempts: int,
                   available_at: float, now: float) -> bool:
    guard, guard_params = _claim_guard(claimed_at)
    with conn:
        res = conn.execute(
            f"""UPDATE {table}
               SET status='pending', attempts=?, available_at=?, exception=NULL, claimed_at=NULL, updated_at=?
               WHERE id=? AND status='processing'{guard}""",
            [attempts, iso_from_epoch(available_at), iso_from_epoch(now), job_id, *guard_params],
        )
    return res.rowcount == 1


def mark_failed(conn, table: str, job_id: int, claimed_at: Optional[float], attempts: int,
                error: str, now: float) -> bool:
    guard, guard_params = _claim_guard(claimed_at)
    with conn:
        res = conn.execute(
            f"""UPDATE {table}
               SET status='failed', attempts=?, exception=?, claimed_at=NULL, updated_at=?
               WHERE id=? AND status='processing'{guard}""",
            [attempts, error[:MAX_ERROR_LENGTH], iso_from_epoch(now), job_id, *guard_params],
        )
    return res.rowcount == 1


def release_delayed(conn, table: str, now: float) -> int:
    ts = iso_from_epoch(now)
    with conn:
        res = conn.execute(
            f"UPDATE {table} SET status='pending', updated_at=? WHERE status='delayed' AND available_at <= ?",
            (ts, ts),
        )
    return res.rowcount


def stuck_jobs(conn, table: str, claimed_before: float) -> List[sqlite3.Row]:
    return conn.execute(
        f"""SELECT * FROM {table}
           WHERE status='processing' AND claimed_at IS NOT NULL AND claimed_at <= ?
           ORDER BY id ASC""",
        (iso_from_epoch(claimed_before),),
    ).fetchall()


# ---------- Queries ----------
def list_jobs(conn, table: str, status: Optional[str] = None, queue: Optional[str] = None) -> List[sqlite3.Row]:
    params: list = []
    where = "WHERE 1=1"
    if status:
        where += " AND status=?"
        params.append(status)
    where += _queue_filter(queue, params)
    return conn.execute(f"SELECT * FROM {table} {where} ORDER BY id ASC", params).fetchall()


def get_job(conn, table: str, job_id: int) -> Optional[sqlite3.Row]:
    return conn.execute(f"SELECT * FROM {table} WHERE id=?", (job_id,)).fetchone()


def counts(conn, table: str, queue: Optional[str] = None) -> Dict[str, int]:
    out = empty_stats()
    params: list = []
    where = "WHERE 1=1" + _queue_filter(queue, params)
    rows = conn.execute(
        f"SELECT status, COUNT(1) AS c FROM {table} {where} GROUP BY status", params,
    ).fetchall()
    for r in rows:
        if r["status"] in out:
            out[r["status"]] = r["c"]
    return out


# ---------- Failed jobs ----------
def failed_jobs(conn, table: str, limit: int = 50, offset: int = 0) -> List[sqlite3.Row]:
    return conn.execute(
        f"SELECT * FROM {table} WHERE status='failed' ORDER BY updated_at DESC, id DESC LIMIT ? OFFSET ?",
        (max(0, limit), max(0, offset)),
    ).fetchall()


def retry_failed(conn, table: str, job_id: int, now: float) -> bool:
    ts = iso_from_epoch(now)
    with conn:
        res = conn.execute(
            f"""UPDATE {table}
               SET status='pending', attempts=0, exception=NULL, available_at=?, claimed_at=NULL, updated_at=?
               WHERE id=? AND status='failed'""",
            (ts, ts, job_id),
        )
    return res.rowcount == 1


def retry_all_failed(conn, table: str, queue: Optional[str], now: float) -> int:
    ts = iso_from_epoch(now)
    params: list = [ts, ts]
    where = _queue_filter(queue, params)
    with conn:
        res = conn.execute(
            f"""UPDATE {table}
               SET status='pending', attempts=0, exception=NULL, available_at=?, claimed_at=NULL, updated_at=?
               WHERE status='failed'{where}""",
            params,
        )
    return res.rowcount


# ---------- Maintenance ----------
def purge_terminal(conn, table: str, updated_before: Optional[float] = None) -> int:
    params: list = []
    where = "status IN ('completed','failed')"
    if updated_before is not None:
        where += " AND updated_at < ?"
        params.append(iso_from_epoch(updated_before))
    with conn:
        res = conn.execute(f"DELETE FROM {table} WHERE {where}", params)
    return res.rowcount


def purge_failed(conn, table: str, queue: Optional[str] = None) -> int:
    params: list = []
    where = _queue_filter(queue, params)
    with conn:
        res = conn.execute(f"DELETE FROM {table} WHERE status='failed'{where}", params)
    return res.rowcount
