"""
Generation of the daily grid of bookable start times.

The grid is derived data: it is recomputed for every view instead of being
stored, so changing the operating window only needs a config change.
"""

from datetime import time
from typing import List, Tuple

from pendulum import Date

DEFAULT_OPEN_HOUR = 8
DEFAULT_CLOSE_HOUR = 18
DEFAULT_STEP_MINUTES = 30


def generate_time_grid(
    open_hour: int = DEFAULT_OPEN_HOUR,
    close_hour: int = DEFAULT_CLOSE_HOUR,
    step_minutes: int = DEFAULT_STEP_MINUTES,
) -> Tuple[time, ...]:
    """
    Build the ordered start times for one business day.

    The grid runs from ``open_hour:00`` up to and including ``close_hour:00``.
    No entry is generated past closing, so with the defaults the last slot is
    18:00 and there is no 18:30.

    Args:
        open_hour: First bookable hour of the day
        close_hour: Hour of the last bookable slot
        step_minutes: Distance between two consecutive slots

    Returns:
        Tuple of time-of-day values

    Raises:
        ValueError: If the window or step is invalid
    """
    if not 0 <= open_hour <= 23 or not 0 <= close_hour <= 23:
        raise ValueError(
            f"Hours must be between 0 and 23, got {open_hour} and {close_hour}"
        )
    if close_hour <= open_hour:
        raise ValueError("close_hour must be later than open_hour")
    if step_minutes <= 0:
        raise ValueError("step_minutes must be greater than zero")

    last_minute = close_hour * 60
    return tuple(
        time(hour=minute // 60, minute=minute % 60)
        for minute in range(open_hour * 60, last_minute + 1, step_minutes)
    )


def bookable_dates(today: Date, horizon_days: int = 14) -> List[Date]:
    """Return the consecutive days offered for selection, starting with today."""
    if horizon_days <= 0:
        raise ValueError("horizon_days must be greater than zero")
    return [today.add(days=offset) for offset in range(horizon_days)]
