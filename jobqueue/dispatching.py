"""
Where dispatched jobs go.

Resolution order for a dispatch: an explicit ``dispatcher=`` argument, then a
test override (see ``jobqueue.testing.override_dispatcher``), then whatever
application bootstrap registered here. With none of those, dispatch fails
closed and returns False.
"""
import logging
from contextvars import ContextVar
from typing import Callable, Optional, Union

from .contracts import JobDispatcher

logger = logging.getLogger(__name__)

DispatcherSource = Union[JobDispatcher, Callable[[], JobDispatcher]]

_registered: Optional[DispatcherSource] = None
_override: ContextVar[Optional[JobDispatcher]] = ContextVar("jobqueue_dispatcher_override", default=None)


def register_dispatcher(source: Optional[DispatcherSource]) -> None:
    """Install a dispatcher, or a zero-argument callable returning one (e.g. a container lookup)."""
    global _registered
    _registered = source


def clear_dispatcher() -> None:
    register_dispatcher(None)


def resolve_dispatcher(explicit: Optional[JobDispatcher] = None) -> Optional[JobDispatcher]:
    if explicit is not None:
        return explicit

    override = _override.get()
    if override is not None:
        return override

    source = _registered
    if source is None:
        return None
    if isinstance(source, JobDispatcher):
        return source
    return source()
