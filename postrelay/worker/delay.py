"""
Convert an absolute target time into the relative delay the broker expects.
"""
import math
from datetime import datetime, timezone
from typing import Optional

from ..exceptions import InvalidScheduleTime


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (storage drops tzinfo on SQLite)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def compute_delay(
    target: datetime,
    now: Optional[datetime] = None,
    max_delay: Optional[int] = None,
) -> int:
    """
    Whole seconds to wait from ``now`` until ``target``.

    Args:
        target: When the delivery should happen
        now: Current time (defaults to the wall clock)
        max_delay: Longest accepted delay in seconds, if any

    Returns:
        Non-negative delay in seconds, rounded down

    Raises:
        InvalidScheduleTime: target is not strictly after now, or is past
            the scheduling horizon
    """
    target = as_utc(target)
    now = as_utc(now) if now is not None else utcnow()

    if target <= now:
        raise InvalidScheduleTime(
            "Scheduled time must be in the future",
            {
                "scheduled_time": target.isoformat(),
                "current_time": now.isoformat(),
            },
        )

    delay = math.floor((target - now).total_seconds())

    if max_delay is not None and delay > max_delay:
        raise InvalidScheduleTime(
            "Scheduled time is beyond the scheduling horizon",
            {"scheduled_time": target.isoformat(), "max_delay_seconds": max_delay},
        )

    return delay
