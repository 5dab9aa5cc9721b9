"""Backoff delay computation for failed job retries."""
import random
from typing import Dict

MAX_DELAY = 3600
DEFAULT_JITTER_PERCENT = 0.1


def _raw_delay(strategy: str, base_delay: int, attempt: int) -> int:
    attempt = max(1, int(attempt))
    base_delay = max(0, int(base_delay))
    if strategy == "fixed":
        return base_delay
    if strategy == "linear":
        return base_delay * attempt
    # exponential, and anything unrecognised
    if base_delay == 0:
        return 0
    # Past ~12 doublings any positive base is above the ceiling already.
    exponent = min(attempt - 1, 32)
    return base_delay * (2 ** exponent)


def add_jitter(delay: int, jitter_percent: float = DEFAULT_JITTER_PERCENT) -> int:
    jitter = int(delay * jitter_percent)
    if jitter <= 0:
        return delay
    return delay + random.randint(-jitter, jitter)


def calculate_delay(strategy: str, base_delay: int, attempt: int, jitter: bool = True,
                    jitter_percent: float = DEFAULT_JITTER_PERCENT) -> int:
    """
    Seconds to wait before retry number `attempt` (1-based).

    exponential: base * 2^(attempt-1); linear: base * attempt; fixed: base.
    Unknown strategies behave as exponential. The result never exceeds
    MAX_DELAY, jitter included.
    """
    delay = min(_raw_delay((strategy or "").lower(), base_delay, attempt), MAX_DELAY)
    if jitter:
        delay = add_jitter(delay, jitter_percent)
    return max(0, min(delay, MAX_DELAY))


def get_delay_for_attempt(strategy: str, base_delay: int, attempt: int) -> int:
    return calculate_delay(strategy, base_delay, attempt, jitter=False)


def get_retry_schedule(strategy: str, base_delay: int, max_attempts: int) -> Dict[int, int]:
    return {
        attempt: get_delay_for_attempt(strategy, base_delay, attempt)
        for attempt in range(1, max_attempts + 1)
    }


def format_delay(seconds: int) -> str:
    """90 -> '1m 30s', 3600 -> '1h', 3660 -> '1h 1m'. Seconds are dropped once hours show."""
    seconds = int(seconds)
    if seconds < 60:
        return f"{seconds}s"

    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)

    parts = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if secs and not hours:
        parts.append(f"{secs}s")
    return " ".join(parts)
