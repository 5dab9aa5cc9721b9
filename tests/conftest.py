import pytest

import sample_jobs
from jobqueue import dispatching
from jobqueue.sqlite_store import SQLiteQueueStore
from jobqueue.store import InMemoryQueueStore
from jobqueue.testing import MemoryQueueLogger

T0 = 1_700_000_000.0


class FakeClock:
    def __init__(self, start: float = T0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def queue_logger():
    return MemoryQueueLogger()


def make_store(driver, tmp_path, **kwargs):
    if driver == "sqlite":
        return SQLiteQueueStore(str(tmp_path / "queue.db"), **kwargs)
    return InMemoryQueueStore(**kwargs)


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path, clock, queue_logger):
    s = make_store(request.param, tmp_path, clock=clock, queue_logger=queue_logger, retry_jitter=False)
    yield s
    s.close()


@pytest.fixture
def sqlite_store(tmp_path, clock, queue_logger):
    s = make_store("sqlite", tmp_path, clock=clock, queue_logger=queue_logger, retry_jitter=False)
    yield s
    s.close()


@pytest.fixture(autouse=True)
def clean_state():
    dispatching.clear_dispatcher()
    sample_jobs.reset()
    yield
    dispatching.clear_dispatcher()
