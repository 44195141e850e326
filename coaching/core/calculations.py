"""Small pure helpers shared by the attendance record model and the aggregator."""

from datetime import datetime, time
from typing import Optional, Union


def percentage(part: int, whole: int) -> int:
    """round(part / whole * 100) with halves rounded up; 0 when whole is 0."""
    if whole <= 0:
        return 0
    return (200 * part + whole) // (2 * whole)


def parse_hhmm(value: str) -> time:
    """Parse a schedule time such as "09:00" or "9:05"."""
    hours, minutes = value.strip().split(":")
    return time(int(hours), int(minutes))


def minutes_of_day(value: time) -> float:
    return value.hour * 60 + value.minute + value.second / 60


def compute_late_minutes(
    scheduled_start: Optional[str],
    arrival: Optional[Union[time, datetime]],
) -> int:
    """
    Minutes between the scheduled start and the arrival, assuming both fall on the
    same day. Early arrivals clamp to 0; a missing start or arrival yields 0.
    """
    if not scheduled_start or arrival is None:
        return 0
    if isinstance(arrival, datetime):
        arrival = arrival.time()
    delta = minutes_of_day(arrival) - minutes_of_day(parse_hhmm(scheduled_start))
    return max(0, int(delta + 0.5))
