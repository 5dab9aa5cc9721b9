"""
End-to-end checks for the jobqueue CLI
--------------------------------------
1. Job enqueue and completion
2. Retry scheduling and failed-job recovery
3. Persistence and configuration
"""
import json

import pytest
from click.testing import CliRunner

from jobqueue.cli import cli
from jobqueue.sqlite_store import SQLiteQueueStore


@pytest.fixture
def run(tmp_path):
    runner = CliRunner()
    db = str(tmp_path / "queue.db")

    def _run(*args, code=0):
        result = runner.invoke(cli, ["--db", db, *args], obj={})
        assert result.exit_code == code, result.output
        return result.output

    return _run


def stats(run):
    return json.loads(run("status"))


def test_basic_flow(run):
    run("enqueue", "sample_jobs.RecordingJob", "--payload", '{"n": 1}')
    run("enqueue", "sample_jobs.FailingJob", "--max-attempts", "1")
    assert stats(run)["pending"] == 2

    run("run")

    s = stats(run)
    assert s["completed"] == 1
    assert s["failed"] == 1

    failed = run("failed", "list")
    assert "sample_jobs.FailingJob" in failed
    assert "RuntimeError: boom" in failed

    shown = json.loads(run("failed", "show", "2"))
    assert shown["status"] == "failed"
    assert shown["attempts"] == 1

    assert "Re-queued failed job 2." in run("failed", "retry", "2")
    assert stats(run)["pending"] == 1


def test_enqueue_reports_clamped_priority(run):
    out = run("enqueue", "sample_jobs.RecordingJob", "--priority", "99", "--queue", "mail")
    assert "Enqueued sample_jobs.RecordingJob on 'mail' (priority=10, run_at=now)" in out
    assert "p=10" in run("list", "--queue", "mail")


def test_enqueue_with_delay(run):
    out = run("enqueue", "sample_jobs.RecordingJob", "--delay", "5m")
    assert "delay=5m" in out
    assert "sample_jobs.RecordingJob" in run("list", "--state", "delayed")

    run("run")
    assert stats(run)["delayed"] == 1


@pytest.mark.parametrize("args", [
    ["--payload", "not json"],
    ["--payload", "[1, 2]"],
    ["--delay", "soon"],
])
def test_enqueue_rejects_bad_input(run, args):
    out = run("enqueue", "sample_jobs.RecordingJob", *args, code=1)
    assert out.startswith("Error:")


def test_batch(run):
    for n in range(3):
        run("enqueue", "sample_jobs.RecordingJob", "--payload", json.dumps({"n": n}))

    out = run("batch", "--size", "2")

    assert "Batch completed: 2 processed, 2 successful, 0 failed" in out
    assert stats(run)["pending"] == 1


def test_list_empty(run):
    assert run("list").strip() == "No jobs."
    assert run("failed", "list").strip() == "No failed jobs."


def test_failed_retry_all_and_purge(run):
    for _ in range(2):
        run("enqueue", "sample_jobs.FailingJob", "--max-attempts", "1", "--queue", "mail")
    run("run")

    assert "Re-queued 2 failed job(s)." in run("failed", "retry-all", "--queue", "mail")
    run("run")
    assert "Purged 2 failed job(s)." in run("failed", "purge")


def test_failed_show_and_retry_unknown(run):
    assert "not found" in run("failed", "show", "42", code=1)
    assert "not found" in run("failed", "retry", "42", code=1)


def test_failed_show_with_undecodable_payload(run, tmp_path):
    store = SQLiteQueueStore(str(tmp_path / "queue.db"))
    try:
        store.add("sample_jobs.RecordingJob", {}, options={"max_attempts": 1})
        with store.conn:
            store.conn.execute("UPDATE jobs SET payload='[1,2]'")
    finally:
        store.close()

    run("run")

    shown = json.loads(run("failed", "show", "1"))
    assert shown["payload"] == "[1,2]"
    assert shown["status"] == "failed"


def test_cleanup_and_purge_old(run):
    run("enqueue", "sample_jobs.RecordingJob")
    run("enqueue", "sample_jobs.RecordingJob", "--delay", "1h")
    run("run")

    assert "Purged 0 job(s) older than 7 day(s)." in run("purge-old", "--days", "7")
    assert "Removed 0 finished job(s)." in run("cleanup", "--older-than", "1")
    assert "Removed 1 finished job(s)." in run("cleanup")
    assert stats(run)["delayed"] == 1


def test_maintenance(run):
    assert "Released 0 stuck job(s)." in run("maintenance")


def test_schedule_preview(run):
    out = run("schedule", "--base", "60", "--attempts", "3")
    assert out.splitlines() == ["attempt 1: 1m", "attempt 2: 2m", "attempt 3: 4m"]

    capped = run("schedule", "--strategy", "fixed", "--base", "5000", "--attempts", "1")
    assert capped.strip() == "attempt 1: 1h (capped)"


def test_config_get_and_set(run):
    cfg = json.loads(run("config", "get"))
    assert cfg["max_attempts_default"] == "3"

    assert "Config updated: max_attempts_default=5" in run("config", "set", "max_attempts_default", "5")
    assert json.loads(run("config", "get"))["max_attempts_default"] == "5"

    run("enqueue", "sample_jobs.RecordingJob")
    assert "attempts=0/5" in run("list")


def test_config_set_rejects_bad_values(run):
    assert "non-negative integer" in run("config", "set", "--", "retry_delay_default", "-1", code=1)
    assert json.loads(run("config", "get"))["retry_delay_default"] == "60"
    run("config", "set", "backoff_base", "2", code=2)


def test_db_from_environment(tmp_path):
    runner = CliRunner()
    env = {"JOBQUEUE_DB": str(tmp_path / "env.db")}

    result = runner.invoke(cli, ["enqueue", "sample_jobs.RecordingJob"], env=env, obj={})
    assert result.exit_code == 0, result.output

    result = runner.invoke(cli, ["status"], env=env, obj={})
    assert json.loads(result.output)["pending"] == 1
    assert (tmp_path / "env.db").exists()
