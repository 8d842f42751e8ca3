"""
Write-time checks that a requested appointment fits the practitioner's schedule.
"""

from typing import Optional

from pendulum import DateTime

from .busy_intervals import breaks_to_utc
from .intervals import overlaps
from .models import ScheduleConfig, TimeRange
from .timezones import local_to_utc, utc_to_local


def check_booking_window(
    config: ScheduleConfig,
    start: DateTime,
    duration_minutes: int,
    buffer_minutes: int,
    now: DateTime,
) -> Optional[str]:
    """
    Check that an appointment starting at ``start`` can be booked.

    The service and its trailing buffer must fit inside a single work
    interval of the local day the appointment starts on, and must not touch a
    break.

    Returns:
        None when the appointment is acceptable, otherwise the reason it is not
    """
    if start <= now:
        return "start time must be in the future"

    local = utc_to_local(start, config.timezone)
    intervals = config.intervals_for(local.weekday)

    if not intervals:
        return "the practitioner does not work on this day"

    occupied = TimeRange(start=start, end=start.add(minutes=duration_minutes + buffer_minutes))

    fits = False
    for interval in intervals:
        work = TimeRange(
            start=local_to_utc(local.date, interval.start, config.timezone),
            end=local_to_utc(local.date, interval.end, config.timezone),
        )
        if work.contains(occupied):
            fits = True
            break

    if not fits:
        return "start time is outside the practitioner's working hours"

    for br in breaks_to_utc(config.breaks, local.date, config.timezone):
        if overlaps(occupied, br):
            return "start time falls on the practitioner's break"

    return None
