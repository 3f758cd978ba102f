"""Millisecond clock and expiry helpers shared by the memory adapter."""
import time
from datetime import timedelta
from typing import Union

Duration = Union[int, float, timedelta]

# 2**63 // 10**6, far beyond any process lifetime on the monotonic clock.
NEVER_EXPIRE = 9223372036854

BUCKET_MILLIS = 1000


def now_millis() -> int:
    return time.monotonic_ns() // 1_000_000


def to_millis(duration: Duration) -> int:
    """Convert seconds (int/float) or a timedelta to whole milliseconds.

    Sub-millisecond durations keep their sign so they never collapse to the
    "never expire" zero.
    """
    if isinstance(duration, timedelta):
        seconds = duration.total_seconds()
    else:
        seconds = float(duration)
    millis = int(seconds * 1000)
    if millis == 0 and seconds > 0:
        return 1
    if millis == 0 and seconds < 0:
        return -1
    return millis


def expire_at(duration: Duration) -> int:
    """Absolute expiry for `duration`; zero means the item never expires."""
    millis = to_millis(duration)
    if millis == 0:
        return NEVER_EXPIRE
    return now_millis() + millis


def bucket_of(expire: int) -> int:
    """Group an expiry timestamp into the next full second after it."""
    return (expire // BUCKET_MILLIS + 1) * BUCKET_MILLIS
