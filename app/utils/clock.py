"""
Time helpers.

All timestamps are stored as naive UTC datetimes, matching the DateTime columns.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_milliseconds(delta: timedelta) -> int:
    return delta // timedelta(milliseconds=1)
