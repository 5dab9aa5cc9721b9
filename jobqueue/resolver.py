import importlib
import inspect
from typing import Callable, Optional, Union

from .exceptions import JobContractError, JobResolutionError

TaskRef = Union[str, type]


def task_name_of(job_class: type) -> str:
    return f"{job_class.__module__}.{job_class.__qualname__}"


def import_task(identifier: str) -> type:
    """
    Import the class named by 'package.module.ClassName' or 'package.module:ClassName'.
    Nested classes ('module.Outer.Inner') are walked attribute by attribute.
    """
    if not identifier or not isinstance(identifier, str):
        raise JobResolutionError(f"Job class {identifier!r} does not exist")

    if ":" in identifier:
        module_name, _, attr_path = identifier.partition(":")
        candidates = [(module_name, attr_path)]
    else:
        parts = identifier.split(".")
        # Longest importable module prefix wins.
        candidates = [(".".join(parts[:i]), ".".join(parts[i:])) for i in range(len(parts) - 1, 0, -1)]

    for module_name, attr_path in candidates:
        try:
            module = importlib.import_module(module_name)
        except ModuleNotFoundError as e:
            if e.name and (module_name == e.name or module_name.startswith(e.name + ".")):
                continue
            raise JobResolutionError(f"Job class '{identifier}' could not be imported: {e}") from e
        except ImportError as e:
            raise JobResolutionError(f"Job class '{identifier}' could not be imported: {e}") from e
        obj = module
        try:
            for attr in attr_path.split("."):
                obj = getattr(obj, attr)
        except AttributeError:
            break
        if inspect.isclass(obj):
            return obj
        break

    raise JobResolutionError(f"Job class '{identifier}' does not exist")


class JobResolver:
    """
    Turns a task identifier into a job instance.

    By default the class is imported and instantiated with no arguments. A
    factory hook (e.g. a DI container's resolve function) may be installed to
    build instances instead; it receives the job class.
    """

    def __init__(self, factory: Optional[Callable[[type], object]] = None):
        self._factory = factory

    @classmethod
    def from_factory(cls, factory: Callable[[type], object]) -> "JobResolver":
        return cls(factory)

    def resolve(self, task: TaskRef):
        # Local import: job.py imports this module for dispatch_sync.
        from .job import Job

        job_class = task if inspect.isclass(task) else import_task(task)
        name = task_name_of(job_class)

        if issubclass(job_class, Job) and inspect.isabstract(job_class):
            raise JobContractError(f"Job class '{name}' must implement handle(payload)")

        try:
            instance = self._factory(job_class) if self._factory else job_class()
        except TypeError as e:
            raise JobResolutionError(f"Job class '{name}' could not be instantiated: {e}") from e

        if not isinstance(instance, Job):
            raise JobContractError(f"Job class '{name}' must implement the Job interface (handle(payload))")
        return instance
