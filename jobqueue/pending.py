import logging
from typing import Any, Dict, Iterable, Optional

from .contracts import JobDispatcher
from .dispatching import resolve_dispatcher
from .models import DEFAULT_PRIORITY, DEFAULT_QUEUE, Payload, clamp_priority

logger = logging.getLogger(__name__)


class PendingDispatch:
    """
    Fluent, single-use request for one job:

        SendEmail.on_queue("mail").priority(8).delay(30).max_attempts(5).dispatch({"to": ...})

    Every setter returns the builder; ``dispatch`` makes exactly one call
    into the active dispatcher and returns its result.
    """

    def __init__(self, task: str, queue: Optional[str] = None, dispatcher: Optional[JobDispatcher] = None):
        self.task = task
        self.queue = queue or DEFAULT_QUEUE
        self._priority = DEFAULT_PRIORITY
        self._delay: Optional[int] = None
        self.options: Dict[str, Any] = {}
        self._dispatcher = dispatcher
        self._dispatched = False

    def on_queue(self, queue: str) -> "PendingDispatch":
        self.queue = queue
        return self

    def priority(self, priority: int) -> "PendingDispatch":
        self._priority = clamp_priority(priority)
        return self

    def delay(self, seconds: int) -> "PendingDispatch":
        self._delay = seconds
        return self

    def with_options(self, options: Dict[str, Any]) -> "PendingDispatch":
        self.options.update(options)
        return self

    def max_attempts(self, attempts: int) -> "PendingDispatch":
        self.options["max_attempts"] = attempts
        return self

    def timeout(self, seconds: int) -> "PendingDispatch":
        self.options["timeout"] = seconds
        return self

    def backoff(self, strategy: str) -> "PendingDispatch":
        self.options["backoff_strategy"] = strategy
        return self

    def retry_after(self, seconds: int) -> "PendingDispatch":
        self.options["retry_delay"] = seconds
        return self

    def tags(self, tags: Iterable[str]) -> "PendingDispatch":
        self.options["tags"] = list(tags)
        return self

    def dispatch(self, payload: Optional[Payload] = None) -> bool:
        if self._dispatched:
            raise RuntimeError(f"PendingDispatch for '{self.task}' was already dispatched")
        self._dispatched = True

        dispatcher = resolve_dispatcher(self._dispatcher)
        if dispatcher is None:
            logger.warning("No dispatcher available; job '%s' was not queued", self.task)
            return False

        return bool(dispatcher.add(
            self.task,
            payload or {},
            self.queue,
            self._priority,
            self._delay,
            dict(self.options),
        ))
