import logging

import pytest

from jobqueue.dispatching import clear_dispatcher, register_dispatcher, resolve_dispatcher
from jobqueue.pending import PendingDispatch
from jobqueue.testing import FakeDispatcher, override_dispatcher


def test_dispatch_forwards_everything_once():
    fake = FakeDispatcher()

    ok = (
        PendingDispatch("app.jobs.SendEmail", dispatcher=fake)
        .on_queue("mail")
        .priority(8)
        .delay(30)
        .max_attempts(5)
        .timeout(20)
        .backoff("linear")
        .retry_after(15)
        .tags(["welcome"])
        .dispatch({"to": "a@example.com"})
    )

    assert ok is True
    assert fake.calls == [{
        "task": "app.jobs.SendEmail",
        "payload": {"to": "a@example.com"},
        "queue": "mail",
        "priority": 8,
        "delay": 30,
        "options": {
            "max_attempts": 5,
            "timeout": 20,
            "backoff_strategy": "linear",
            "retry_delay": 15,
            "tags": ["welcome"],
        },
    }]


def test_defaults():
    fake = FakeDispatcher()
    PendingDispatch("t", dispatcher=fake).dispatch()
    call = fake.calls[0]
    assert call["queue"] == "default"
    assert call["priority"] == 5
    assert call["delay"] is None
    assert call["payload"] == {}
    assert call["options"] == {}


@pytest.mark.parametrize("given,sent", [(99, 10), (-4, 0)])
def test_priority_is_clamped(given, sent):
    fake = FakeDispatcher()
    PendingDispatch("t", dispatcher=fake).priority(given).dispatch()
    assert fake.calls[0]["priority"] == sent


def test_dispatch_returns_dispatcher_result():
    assert PendingDispatch("t", dispatcher=FakeDispatcher(result=False)).dispatch() is False


def test_second_dispatch_is_rejected():
    fake = FakeDispatcher()
    pending = PendingDispatch("t", dispatcher=fake)
    pending.dispatch()
    with pytest.raises(RuntimeError):
        pending.dispatch()
    assert len(fake.calls) == 1


def test_no_dispatcher_fails_closed(caplog):
    with caplog.at_level(logging.WARNING, logger="jobqueue.pending"):
        assert PendingDispatch("app.jobs.Report").dispatch() is False
    assert "No dispatcher available; job 'app.jobs.Report' was not queued" in caplog.text


def test_registered_dispatcher_is_used():
    fake = FakeDispatcher()
    register_dispatcher(fake)
    assert PendingDispatch("t").dispatch() is True
    assert len(fake.calls) == 1


def test_registered_factory_is_called_per_dispatch():
    made = []

    def factory():
        made.append(FakeDispatcher())
        return made[-1]

    register_dispatcher(factory)
    PendingDispatch("t").dispatch()
    PendingDispatch("t").dispatch()
    assert len(made) == 2


def test_override_beats_registered():
    registered = FakeDispatcher()
    register_dispatcher(registered)

    with override_dispatcher() as fake:
        PendingDispatch("t").dispatch()

    assert len(fake.calls) == 1
    assert registered.calls == []
    assert resolve_dispatcher() is registered


def test_explicit_beats_override():
    explicit = FakeDispatcher()
    with override_dispatcher() as fake:
        PendingDispatch("t", dispatcher=explicit).dispatch()
    assert len(explicit.calls) == 1
    assert fake.calls == []


def test_clear_dispatcher():
    register_dispatcher(FakeDispatcher())
    clear_dispatcher()
    assert resolve_dispatcher() is None


def test_fake_dispatcher_filters_by_task():
    fake = FakeDispatcher()
    PendingDispatch("a", dispatcher=fake).dispatch()
    PendingDispatch("b", dispatcher=fake).dispatch()
    assert [c["task"] for c in fake.dispatched("b")] == ["b"]
