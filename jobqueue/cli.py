import json
import logging
import sys

import click

from .config import ALLOWED_CONFIG_KEYS, QueueConfig
from .db import DEFAULT_DB_FILE
from .exceptions import QueueError
from .manager import QueueManager, create_manager
from .models import BACKOFF_STRATEGIES, JobStatus, clamp_priority
from .retry import MAX_DELAY, format_delay, get_retry_schedule
from .utils import parse_delay_to_seconds, iso_from_epoch
from .worker import start_workers

STATES = [s.value for s in JobStatus]


def open_manager(ctx) -> QueueManager:
    """SQLite-backed manager for the --db database, with job_timeout from its config table."""
    config = QueueConfig(driver="sqlite", database=ctx.obj["db"])
    manager = create_manager(config)
    store = manager.store
    store.job_timeout = int(store.get_config().get("job_timeout", config.job_timeout))
    return manager


def fail(message: str):
    click.secho(f"Error: {message}", fg="red")
    raise SystemExit(1)


def format_job(job) -> str:
    return (
        f"{job.id:>6} | {job.status.value:<10} | {job.queue:<10} | p={job.priority:<2} "
        f"| attempts={job.attempts}/{job.max_attempts} | next={iso_from_epoch(job.available_at)} "
        f"| task={job.task}"
        + (f" | error={job.exception}" if job.exception else "")
    )


@click.group(help="jobqueue: background job queue CLI")
@click.option("--db", envvar="JOBQUEUE_DB", default=DEFAULT_DB_FILE, show_default=True,
              help="SQLite database file (env: JOBQUEUE_DB)")
@click.option("--path", "paths", multiple=True, type=click.Path(file_okay=False),
              help="Directory to add to the import path so job classes can be found")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
@click.pass_context
def cli(ctx, db, paths, verbose):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    for p in reversed(paths):
        if p not in sys.path:
            sys.path.insert(0, p)
    ctx.ensure_object(dict)
    ctx.obj["db"] = db


# ---------- Enqueue ----------
@cli.command("enqueue", help="Add a new job to the queue")
@click.argument("task")
@click.option("--payload", default="{}", help="JSON object passed to handle()")
@click.option("--queue", default="default", show_default=True)
@click.option("--priority", default=5, type=int, show_default=True,
              help="0-10, higher runs first (out-of-range values are clamped)")
@click.option("--delay", "delay_str", default=None,
              help="Run after a delay, e.g. 20s, 5m, 1h30m, 2d3h")
@click.option("--max-attempts", type=int, default=None, help="Override max attempts")
@click.option("--backoff", type=click.Choice(BACKOFF_STRATEGIES), default=None)
@click.option("--retry-after", type=int, default=None, help="Base retry delay in seconds")
@click.option("--timeout", type=int, default=None, help="Advisory job timeout in seconds")
@click.option("--tag", "tags", multiple=True, help="Label for filtering (repeatable)")
@click.pass_context
def enqueue_cmd(ctx, task, payload, queue, priority, delay_str, max_attempts, backoff, retry_after, timeout, tags):
    try:
        data = json.loads(payload)
        if not isinstance(data, dict):
            raise ValueError("payload must be a JSON object")
        delay = parse_delay_to_seconds(delay_str) if delay_str else None
    except ValueError as e:
        fail(str(e))

    options = {
        k: v for k, v in {
            "max_attempts": max_attempts,
            "backoff_strategy": backoff,
            "retry_delay": retry_after,
            "timeout": timeout,
        }.items() if v is not None
    }
    if tags:
        options["tags"] = list(tags)

    manager = open_manager(ctx)
    try:
        if not manager.add(task, data, queue, priority, delay, options):
            fail("could not store job (see log)")
        click.secho(
            f"Enqueued {task} on '{queue}' (priority={clamp_priority(priority)}, "
            f"{'delay=' + delay_str if delay_str else 'run_at=now'})",
            fg="green",
        )
    finally:
        manager.close()


# ---------- Processing ----------
@cli.command("run", help="Run one sweep over every job that is due")
@click.option("--queue", default=None)
@click.pass_context
def run_cmd(ctx, queue):
    manager = open_manager(ctx)
    try:
        before = manager.get_stats(queue)
        click.secho(f"Starting job execution{' from queue ' + repr(queue) if queue else ''}...", fg="cyan")
        manager.process(queue)
        after = manager.get_stats(queue)
        click.echo(json.dumps({"before": before, "after": after}, indent=2))
    finally:
        manager.close()


@cli.command("batch", help="Process a bounded batch of jobs")
@click.option("--size", default=10, show_default=True, type=int)
@click.option("--queue", default=None)
@click.option("--max-time", default=55.0, show_default=True, type=float, help="Seconds before no new job is picked")
@click.pass_context
def batch_cmd(ctx, size, queue, max_time):
    manager = open_manager(ctx)
    try:
        stats = manager.process_batch(size, queue, max_time)
    finally:
        manager.close()
    click.secho(
        f"Batch completed: {stats['processed']} processed, "
        f"{stats['successful']} successful, {stats['failed']} failed "
        f"in {stats['execution_time']}s",
        fg="green" if not stats["failed"] else "yellow",
    )


# ---------- Workers ----------
@cli.group("worker", help="Manage workers")
def worker_group():
    pass


@worker_group.command("start")
@click.option("--count", type=int, default=1, show_default=True, help="Number of worker threads")
@click.option("--batch-size", type=int, default=10, show_default=True)
@click.option("--queue", default=None)
@click.option("--max-time", type=float, default=55.0, show_default=True)
@click.option("--poll-interval", type=float, default=0.5, show_default=True)
@click.pass_context
def worker_start(ctx, count, batch_size, queue, max_time, poll_interval):
    click.secho(f"Starting {count} worker(s). Press Ctrl+C to stop…", fg="cyan")
    start_workers(
        count,
        lambda: open_manager(ctx),
        batch_size=batch_size,
        queue=queue,
        max_execution_time=max_time,
        poll_interval=poll_interval,
    )
    click.secho("Workers stopped.", fg="yellow")


# ---------- Jobs ----------
@cli.command("list")
@click.option("--state", type=click.Choice(STATES), default=None)
@click.option("--queue", default=None)
@click.pass_context
def list_cmd(ctx, state, queue):
    manager = open_manager(ctx)
    try:
        jobs = manager.list_jobs(state, queue)
    finally:
        manager.close()

    if not jobs:
        click.echo("No jobs.")
        return
    for job in jobs:
        click.echo(format_job(job))


@cli.command("status")
@click.option("--queue", default=None)
@click.pass_context
def status_cmd(ctx, queue):
    manager = open_manager(ctx)
    try:
        click.echo(json.dumps(manager.get_stats(queue), indent=2))
    finally:
        manager.close()


# ---------- Failed jobs ----------
@cli.group("failed", help="Inspect and recover failed jobs")
def failed_group():
    pass


@failed_group.command("list")
@click.option("--limit", default=50, show_default=True, type=int)
@click.option("--offset", default=0, show_default=True, type=int)
@click.pass_context
def failed_list_cmd(ctx, limit, offset):
    manager = open_manager(ctx)
    try:
        jobs = manager.get_failed_jobs(limit, offset)
    finally:
        manager.close()

    if not jobs:
        click.echo("No failed jobs.")
        return
    for job in jobs:
        click.echo(f"{job.id} | attempts={job.attempts} | queue={job.queue} | task={job.task} | error={job.exception}")


@failed_group.command("show")
@click.argument("job_id", type=int)
@click.pass_context
def failed_show_cmd(ctx, job_id):
    manager = open_manager(ctx)
    try:
        job = manager.get_failed_job(job_id)
    finally:
        manager.close()
    if job is None:
        fail(f"Job {job_id} not found among failed jobs.")
    click.echo(json.dumps(job.to_dict(), indent=2))


@failed_group.command("retry")
@click.argument("job_id", type=int)
@click.pass_context
def failed_retry_cmd(ctx, job_id):
    manager = open_manager(ctx)
    try:
        retried = manager.retry_failed_job(job_id)
    finally:
        manager.close()
    if not retried:
        fail(f"Job {job_id} not found among failed jobs.")
    click.secho(f"Re-queued failed job {job_id}.", fg="green")


@failed_group.command("retry-all")
@click.option("--queue", default=None)
@click.pass_context
def failed_retry_all_cmd(ctx, queue):
    manager = open_manager(ctx)
    try:
        count = manager.retry_all_failed_jobs(queue)
    finally:
        manager.close()
    click.secho(f"Re-queued {count} failed job(s).", fg="green")


@failed_group.command("purge")
@click.option("--queue", default=None)
@click.pass_context
def failed_purge_cmd(ctx, queue):
    manager = open_manager(ctx)
    try:
        count = manager.purge_failed_jobs(queue)
    finally:
        manager.close()
    click.secho(f"Purged {count} failed job(s).", fg="green")


# ---------- Maintenance ----------
@cli.command("purge-old", help="Delete completed/failed jobs not touched for N days")
@click.option("--days", default=7.0, show_default=True, type=float)
@click.pass_context
def purge_old_cmd(ctx, days):
    manager = open_manager(ctx)
    try:
        count = manager.purge_old_jobs(days)
    finally:
        manager.close()
    click.secho(f"Purged {count} job(s) older than {days:g} day(s).", fg="green")


@cli.command("cleanup", help="Delete every completed and failed job")
@click.option("--older-than", "older_than", default=None, type=float,
              help="Only remove jobs last updated more than this many days ago")
@click.pass_context
def cleanup_cmd(ctx, older_than):
    manager = open_manager(ctx)
    try:
        count = manager.cleanup(older_than)
    finally:
        manager.close()
    click.secho(f"Removed {count} finished job(s).", fg="green")


@cli.command("maintenance", help="Recover jobs stuck in processing past job_timeout")
@click.pass_context
def maintenance_cmd(ctx):
    manager = open_manager(ctx)
    try:
        released = manager.release_stuck_jobs()
    finally:
        manager.close()
    click.secho(f"Released {released} stuck job(s).", fg="green")


@cli.command("schedule", help="Preview the retry delays for a backoff strategy")
@click.option("--strategy", type=click.Choice(BACKOFF_STRATEGIES), default="exponential", show_default=True)
@click.option("--base", default=60, show_default=True, type=int, help="Base delay in seconds")
@click.option("--attempts", default=5, show_default=True, type=int)
def schedule_cmd(strategy, base, attempts):
    for attempt, delay in get_retry_schedule(strategy, base, attempts).items():
        capped = " (capped)" if delay == MAX_DELAY else ""
        click.echo(f"attempt {attempt}: {format_delay(delay)}{capped}")


# ---------- Config ----------
@cli.group("config", help="Configuration")
def config_group():
    pass


@config_group.command("get")
@click.pass_context
def config_get(ctx):
    manager = open_manager(ctx)
    try:
        click.echo(json.dumps(manager.store.get_config(), indent=2, sort_keys=True))
    finally:
        manager.close()


@config_group.command("set")
@click.argument("key", type=click.Choice(sorted(ALLOWED_CONFIG_KEYS)))
@click.argument("value")
@click.pass_context
def config_set_cmd(ctx, key, value):
    manager = open_manager(ctx)
    try:
        manager.store.set_config(key, value)
        click.secho(f"Config updated: {key}={value}", fg="green")
    except ValueError as e:
        fail(str(e))
    finally:
        manager.close()


def main():
    try:
        cli(obj={})
    except QueueError as e:
        click.secho(f"Error: {e}", fg="red", err=True)
        raise SystemExit(1)
