import json
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional

from .exceptions import InvalidTransition

Payload = Dict[str, Any]

MIN_PRIORITY = 0
MAX_PRIORITY = 10
DEFAULT_PRIORITY = 5
DEFAULT_QUEUE = "default"

BACKOFF_STRATEGIES = ("exponential", "linear", "fixed")


class JobStatus(str, Enum):
    PENDING = "pending"
    DELAYED = "delayed"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)

    def can_transition(self, target: "JobStatus") -> bool:
        return target in _TRANSITIONS[self]


# failed -> pending is the operator retry path; completed is final.
_TRANSITIONS: Dict[JobStatus, FrozenSet[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING}),
    JobStatus.DELAYED: frozenset({JobStatus.PENDING, JobStatus.PROCESSING}),
    JobStatus.PROCESSING: frozenset({JobStatus.COMPLETED, JobStatus.PENDING, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset({JobStatus.PENDING}),
}

ELIGIBLE_STATUSES = (JobStatus.PENDING, JobStatus.DELAYED)
TERMINAL_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED)


def clamp_priority(priority) -> int:
    try:
        value = int(priority)
    except (TypeError, ValueError, OverflowError):
        return DEFAULT_PRIORITY
    return max(MIN_PRIORITY, min(MAX_PRIORITY, value))


def encode_payload(payload: Optional[Payload]) -> str:
    return json.dumps(dict(payload or {}), separators=(",", ":"), default=str)


def decode_payload(raw) -> Payload:
    """Decode a stored payload. An empty encoding decodes to an empty map."""
    if raw is None or raw == "" or raw == b"":
        return {}
    if isinstance(raw, dict):
        return dict(raw)
    decoded = json.loads(raw)
    if decoded is None:
        return {}
    if not isinstance(decoded, dict):
        raise ValueError(f"Job payload must decode to an object, got {type(decoded).__name__}")
    return decoded


def non_negative_int(value, default: int) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError, OverflowError):
        return default


@dataclass
class JobOptions:
    max_attempts: int = 3
    timeout: int = 300
    backoff_strategy: str = "exponential"
    retry_delay: int = 60
    tags: List[str] = field(default_factory=list)

    @classmethod
    def from_mapping(cls, options: Optional[Dict[str, Any]] = None,
                     defaults: Optional["JobOptions"] = None) -> "JobOptions":
        """Build options, clamping or defaulting anything invalid instead of rejecting it."""
        base = defaults or cls()
        options = options if isinstance(options, Mapping) else {}

        max_attempts = non_negative_int(options.get("max_attempts", base.max_attempts), base.max_attempts)
        strategy = str(options.get("backoff_strategy") or base.backoff_strategy).strip().lower()
        tags = options.get("tags", base.tags)
        if isinstance(tags, str):
            tags = [tags]
        elif not isinstance(tags, (list, tuple, set, frozenset)):
            tags = []

        return cls(
            max_attempts=max(1, max_attempts),
            timeout=non_negative_int(options.get("timeout", base.timeout), base.timeout),
            backoff_strategy=strategy,
            retry_delay=non_negative_int(options.get("retry_delay", base.retry_delay), base.retry_delay),
            tags=[str(t) for t in (tags or [])],
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class JobRecord:
    id: int
    task: str
    payload: str
    queue: str = DEFAULT_QUEUE
    priority: int = DEFAULT_PRIORITY
    status: JobStatus = JobStatus.PENDING
    available_at: float = 0.0
    attempts: int = 0
    options: JobOptions = field(default_factory=JobOptions)
    exception: Optional[str] = None
    created_at: float = 0.0
    updated_at: float = 0.0
    claimed_at: Optional[float] = None

    @property
    def max_attempts(self) -> int:
        return self.options.max_attempts

    def decoded_payload(self) -> Payload:
        return decode_payload(self.payload)

    def is_eligible(self, now: float) -> bool:
        return self.status in ELIGIBLE_STATUSES and self.available_at <= now

    def transition(self, target: JobStatus, now: float) -> None:
        if not self.status.can_transition(target):
            raise InvalidTransition(f"Job {self.id}: cannot move from {self.status.value} to {target.value}")
        self.status = target
        self.updated_at = now

    def to_dict(self) -> Dict[str, Any]:
        try:
            payload = self.decoded_payload()
        except ValueError:
            payload = self.payload  # undecodable rows are shown raw
        return {
            "id": self.id,
            "task": self.task,
            "payload": payload,
            "queue": self.queue,
            "priority": self.priority,
            "status": self.status.value,
            "available_at": self.available_at,
            "attempts": self.attempts,
            "max_attempts": self.options.max_attempts,
            "options": self.options.to_dict(),
            "exception": self.exception,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "claimed_at": self.claimed_at,
        }


def empty_stats() -> Dict[str, int]:
    return {status.value: 0 for status in
            (JobStatus.PENDING, JobStatus.PROCESSING, JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.DELAYED)}
