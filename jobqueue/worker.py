import logging
import signal
import threading
import time
from typing import Callable, Optional

from .manager import QueueManager

logger = logging.getLogger(__name__)

_stop = threading.Event()


def setup_signal_handlers(stop_event: threading.Event = _stop):
    def _handler(signum, frame):
        logger.info("Received signal %s. Stopping workers", signum)
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            signal.signal(sig, _handler)
        except ValueError:
            # signal.signal only works from the main thread
            logger.debug("Could not install handler for signal %s", sig)


def run_worker(name: str, manager: QueueManager, *, batch_size: int = 10, queue: Optional[str] = None,
               max_execution_time: float = 55, poll_interval: float = 0.5,
               stop_event: threading.Event = _stop, max_loops: Optional[int] = None) -> int:
    """
    Sweep in bounded batches until `stop_event` is set (or `max_loops` batches ran).
    Returns the number of jobs processed.
    """
    total = 0
    loops = 0

    while not stop_event.is_set():
        if max_loops is not None and loops >= max_loops:
            break
        loops += 1
        try:
            manager.release_stuck_jobs()
            result = manager.process_batch(batch_size, queue, max_execution_time)
            total += result["processed"]
            if result["processed"]:
                logger.info(
                    "[%s] batch: %d processed, %d successful, %d failed",
                    name, result["processed"], result["successful"], result["failed"],
                )
            else:
                stop_event.wait(poll_interval)
        except Exception:
            logger.exception("[%s] Unexpected error", name)
            stop_event.wait(1)

    logger.info("[%s] Worker stopped.", name)
    return total


def start_workers(count: int, manager_factory: Callable[[], QueueManager], **options):
    """Start `count` worker threads, each with its own manager (and so its own store connection)."""
    _stop.clear()
    setup_signal_handlers(_stop)
    threads = []

    def _target(name):
        manager = manager_factory()
        try:
            run_worker(name, manager, stop_event=_stop, **options)
        finally:
            manager.close()

    for i in range(count):
        t = threading.Thread(target=_target, args=(f"worker-{i+1}",), name=f"worker-{i+1}", daemon=True)
        t.start()
        threads.append(t)
        logger.info("Started %s", t.name)

    try:
        while any(t.is_alive() for t in threads):
            time.sleep(0.5)
    finally:
        _stop.set()
        for t in threads:
            t.join()
        logger.info("All workers stopped gracefully.")
