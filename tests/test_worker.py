import threading

import sample_jobs
from jobqueue.manager import QueueManager
from jobqueue.worker import run_worker, start_workers
from jobqueue.sqlite_store import SQLiteQueueStore


def test_run_worker_drains_the_queue(store):
    manager = QueueManager(store)
    for n in range(5):
        manager.add("sample_jobs.RecordingJob", {"n": n})

    processed = run_worker("worker-1", manager, batch_size=2, poll_interval=0,
                           stop_event=threading.Event(), max_loops=4)

    assert processed == 5
    assert manager.get_stats()["completed"] == 5


def test_run_worker_stops_when_event_is_set(store):
    manager = QueueManager(store)
    manager.add("sample_jobs.RecordingJob", {})
    stop = threading.Event()
    stop.set()

    assert run_worker("worker-1", manager, stop_event=stop) == 0
    assert sample_jobs.handled == []


class ExplodingManager:
    def __init__(self):
        self.calls = 0

    def release_stuck_jobs(self):
        return 0

    def process_batch(self, batch_size, queue, max_execution_time):
        self.calls += 1
        raise RuntimeError("database went away")


def test_run_worker_survives_errors(caplog):
    manager = ExplodingManager()
    stop = threading.Event()

    assert run_worker("worker-1", manager, stop_event=stop, max_loops=1) == 0
    assert manager.calls == 1
    assert "[worker-1] Unexpected error" in caplog.text


def test_start_workers_each_get_their_own_manager(tmp_path, monkeypatch):
    path = str(tmp_path / "queue.db")
    seed = SQLiteQueueStore(path)
    for n in range(6):
        seed.add("sample_jobs.RecordingJob", {"n": n})
    seed.close()

    managers = []

    def factory():
        managers.append(QueueManager(SQLiteQueueStore(path)))
        return managers[-1]

    monkeypatch.setattr("jobqueue.worker.setup_signal_handlers", lambda stop_event: None)
    start_workers(2, factory, poll_interval=0, max_loops=3)

    assert len(managers) == 2
    assert sorted(p["n"] for _, p in sample_jobs.handled) == list(range(6))

    check = SQLiteQueueStore(path)
    try:
        assert check.get_stats()["completed"] == 6
    finally:
        check.close()
