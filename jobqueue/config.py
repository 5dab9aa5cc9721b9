import re
from dataclasses import dataclass, fields
from typing import Any, Dict, Optional

from .models import BACKOFF_STRATEGIES, JobOptions

# Operator-tunable defaults, persisted as strings in the SQLite config table.
DEFAULT_CONFIG = {
    "max_attempts_default": "3",
    "retry_delay_default": "60",
    "backoff_strategy_default": "exponential",
    "timeout_default": "300",
    "job_timeout": "300",
}

ALLOWED_CONFIG_KEYS = set(DEFAULT_CONFIG.keys())

INTEGER_CONFIG_KEYS = {"max_attempts_default", "retry_delay_default", "timeout_default", "job_timeout"}

DRIVERS = ("memory", "sqlite")
DRIVER_ALIASES = {"sync": "memory", "database": "sqlite"}

TABLE_NAME_RE = re.compile(r"^[A-Za-z0-9_]+$")


def validate_config_value(key: str, value: str) -> str:
    if key not in ALLOWED_CONFIG_KEYS:
        raise ValueError(f"Allowed keys: {', '.join(sorted(ALLOWED_CONFIG_KEYS))}")
    value = str(value).strip()
    if key in INTEGER_CONFIG_KEYS:
        try:
            if int(value) < 0:
                raise ValueError
        except ValueError:
            raise ValueError(f"{key} must be a non-negative integer.")
    if key == "backoff_strategy_default" and value.lower() not in BACKOFF_STRATEGIES:
        raise ValueError(f"{key} must be one of: {', '.join(BACKOFF_STRATEGIES)}")
    return value.lower() if key == "backoff_strategy_default" else value


def options_from_config(cfg: Dict[str, str]) -> JobOptions:
    """Job option defaults taken from a (possibly partial) config map."""
    merged = dict(DEFAULT_CONFIG)
    merged.update(cfg or {})
    return JobOptions.from_mapping({
        "max_attempts": merged["max_attempts_default"],
        "retry_delay": merged["retry_delay_default"],
        "backoff_strategy": merged["backoff_strategy_default"],
        "timeout": merged["timeout_default"],
    })


def sanitize_table_name(name: str) -> str:
    if not name or not TABLE_NAME_RE.match(name):
        raise ValueError(
            f"Invalid table name: {name!r}. Only alphanumeric characters and underscores are allowed."
        )
    return name


@dataclass
class QueueConfig:
    enabled: bool = True
    driver: str = "memory"
    database: str = "queue.db"
    table: str = "jobs"
    job_timeout: int = 300
    retry_jitter: bool = True
    jitter_percent: float = 0.1

    def __post_init__(self):
        driver = str(self.driver or "memory").lower()
        driver = DRIVER_ALIASES.get(driver, driver)
        self.driver = driver if driver in DRIVERS else "memory"
        self.table = sanitize_table_name(self.table)
        self.job_timeout = max(0, int(self.job_timeout))
        self.jitter_percent = max(0.0, float(self.jitter_percent))

    @classmethod
    def from_mapping(cls, values: Optional[Dict[str, Any]] = None) -> "QueueConfig":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in (values or {}).items() if k in known})
