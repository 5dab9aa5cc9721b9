from datetime import datetime, timezone
import re
from typing import Optional

# e.g., "20s", "5m", "1h30m", "2d3h", "90m", "  2h  ", or a bare number of seconds
DELAY_RE = re.compile(r"(?i)^\s*(?:(\d+)\s*d)?\s*(?:(\d+)\s*h)?\s*(?:(\d+)\s*m)?\s*(?:(\d+)\s*s)?\s*$")

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def parse_delay_to_seconds(s: str) -> int:
    """
    Parse delay strings like '20s', '5m', '1h30m', '2d3h', '90m' or '45'.
    Returns total seconds (int). Raises ValueError on bad input or zero.
    """
    if not s or not s.strip():
        raise ValueError("delay string is empty")
    if s.strip().isdigit():
        total = int(s.strip())
    else:
        m = DELAY_RE.match(s)
        if not m or not any(m.groups()):
            raise ValueError(f"Invalid delay format: {s!r}")
        d, h, m_, s_ = m.groups()
        total = 0
        if d:  total += int(d) * 86400
        if h:  total += int(h) * 3600
        if m_: total += int(m_) * 60
        if s_: total += int(s_)
    if total <= 0:
        raise ValueError("delay must be > 0 seconds")
    return total


def iso_from_epoch(ts: float) -> str:
    """Fixed-width UTC timestamp like '2025-11-06T09:12:34.123456Z' (sorts lexically)."""
    return datetime.fromtimestamp(ts, timezone.utc).strftime(ISO_FORMAT)


def epoch_from_iso(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    dt = datetime.strptime(value, ISO_FORMAT).replace(tzinfo=timezone.utc)
    return dt.timestamp()
