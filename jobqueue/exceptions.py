class QueueError(Exception):
    """Base class for job queue errors."""


class JobResolutionError(QueueError):
    """The task identifier does not name an importable, instantiable class."""


class JobContractError(QueueError):
    """The resolved object does not implement the Job interface."""


class StorageError(QueueError, RuntimeError):
    """A storage backend failed (I/O, locking, lost connection)."""


class InvalidTransition(QueueError):
    pass


class JobTimeoutError(QueueError):
    """A processing record outlived job_timeout (its worker most likely died)."""
