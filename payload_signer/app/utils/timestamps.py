"""
UTC timestamps in RFC 3339 form with nanosecond precision.

Format: ``YYYY-MM-DDTHH:MM:SS[.fraction]Z`` where the fraction carries
up to nine digits, trailing zeros trimmed, and is omitted when zero.
"""

import time
from datetime import datetime, timezone
from typing import Callable, Optional

# Returns nanoseconds since the Unix epoch
Clock = Callable[[], int]


def format_rfc3339_nano(epoch_ns: int) -> str:
    seconds, nanos = divmod(epoch_ns, 1_000_000_000)
    base = datetime.fromtimestamp(seconds, tz=timezone.utc).strftime(
        "%Y-%m-%dT%H:%M:%S"
    )
    if nanos:
        base += "." + f"{nanos:09d}".rstrip("0")
    return base + "Z"


def utc_now_rfc3339_nano(clock: Optional[Clock] = None) -> str:
    """Current UTC instant, formatted by ``format_rfc3339_nano``."""
    return format_rfc3339_nano((clock or time.time_ns)())
