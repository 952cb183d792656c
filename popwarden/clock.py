"""Epoch-millisecond time helpers shared by the learning and decision layers."""

import time
from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], int]

MS_PER_SECOND = 1000
MS_PER_MINUTE = 60 * MS_PER_SECOND
MS_PER_HOUR = 60 * MS_PER_MINUTE
MS_PER_DAY = 24 * MS_PER_HOUR


def epoch_ms() -> int:
    """Current wall-clock time in integer milliseconds since the epoch."""
    return int(time.time() * MS_PER_SECOND)


def ms_to_iso(value: int) -> str:
    """Render an epoch-millisecond timestamp as an ISO 8601 UTC string."""
    return datetime.fromtimestamp(value / MS_PER_SECOND, tz=timezone.utc).isoformat()


def ms_to_day(value: int) -> str:
    """Calendar day (YYYY-MM-DD, UTC) for an epoch-millisecond timestamp."""
    return datetime.fromtimestamp(value / MS_PER_SECOND, tz=timezone.utc).strftime("%Y-%m-%d")
