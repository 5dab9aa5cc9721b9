from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

from .contracts import JobDispatcher
from .executor import JobExecutor
from .models import Payload
from .pending import PendingDispatch
from .resolver import task_name_of


class Job(ABC):
    """
    Base class every job type implements.

        class SendWelcomeEmail(Job):
            queue = "mail"
            max_attempts = 5

            def handle(self, payload):
                send(payload["to"])

        SendWelcomeEmail.dispatch({"to": "a@example.com"})
        SendWelcomeEmail.later(60).dispatch({"to": "b@example.com"})
        SendWelcomeEmail.dispatch_sync({"to": "c@example.com"})

    Class attributes are the defaults sent with every dispatch.
    """

    queue: str = "default"
    priority: int = 5
    max_attempts: int = 3
    timeout: int = 300
    backoff_strategy: str = "exponential"
    retry_delay: int = 60
    tags: Tuple[str, ...] = ()

    @abstractmethod
    def handle(self, payload: Payload) -> None:
        ...

    @classmethod
    def task_name(cls) -> str:
        return task_name_of(cls)

    @classmethod
    def default_options(cls) -> Dict[str, Any]:
        return {
            "max_attempts": cls.max_attempts,
            "timeout": cls.timeout,
            "backoff_strategy": cls.backoff_strategy,
            "retry_delay": cls.retry_delay,
            "tags": list(cls.tags),
        }

    @classmethod
    def pending(cls, dispatcher: Optional[JobDispatcher] = None) -> PendingDispatch:
        return (
            PendingDispatch(cls.task_name(), cls.queue, dispatcher)
            .priority(cls.priority)
            .with_options(cls.default_options())
        )

    # ---------- Dispatch entrypoints ----------
    @classmethod
    def dispatch(cls, payload: Optional[Payload] = None, dispatcher: Optional[JobDispatcher] = None) -> bool:
        return cls.pending(dispatcher).dispatch(payload)

    @classmethod
    def dispatch_sync(cls, payload: Optional[Payload] = None, executor: Optional[JobExecutor] = None) -> bool:
        """Run in this process now, bypassing any queue. Needs no dispatcher."""
        return (executor or JobExecutor()).execute_sync(cls, payload or {})

    @classmethod
    def on_queue(cls, queue: str, dispatcher: Optional[JobDispatcher] = None) -> PendingDispatch:
        return cls.pending(dispatcher).on_queue(queue)

    @classmethod
    def with_priority(cls, priority: int, dispatcher: Optional[JobDispatcher] = None) -> PendingDispatch:
        return cls.pending(dispatcher).priority(priority)

    @classmethod
    def later(cls, seconds: int, dispatcher: Optional[JobDispatcher] = None) -> PendingDispatch:
        return cls.pending(dispatcher).delay(seconds)
