"""
Aggregation of everything that blocks new bookings on a day.

Bookings (extended by their buffers), practitioner breaks and auto-buffer
gaps are all just unavailable time, so they are folded into one merged list
that the slot calculator subtracts in a single pass.
"""

import logging
from datetime import date
from typing import Dict, List, Optional, Sequence

from pendulum import DateTime

from .intervals import merge_sorted
from .models import Break, ExistingBooking, ScheduleConfig, ServiceInfo, TimeRange
from .timezones import local_to_utc, to_utc

logger = logging.getLogger(__name__)


def booking_buffer_minutes(
    booking: ExistingBooking,
    config: ScheduleConfig,
    services_by_id: Dict[str, ServiceInfo],
) -> int:
    """Return the buffer appended after a booking (service buffer or schedule default)."""
    if booking.service_id is not None:
        service = services_by_id.get(booking.service_id)
        if service is not None:
            return service.buffer_or(config.buffer_minutes)
    return config.buffer_minutes


def extend_bookings(
    bookings: Sequence[ExistingBooking],
    config: ScheduleConfig,
    services_by_id: Dict[str, ServiceInfo],
) -> List[TimeRange]:
    """Extend every booking by its buffer and sort the result by start."""
    extended: List[TimeRange] = []

    for booking in bookings:
        buffer_minutes = booking_buffer_minutes(booking, config, services_by_id)
        extended.append(
            TimeRange(
                start=to_utc(booking.start),
                end=to_utc(booking.end).add(minutes=buffer_minutes),
            )
        )

    return sorted(extended, key=lambda r: r.start)


def close_short_gaps(intervals: Sequence[TimeRange], min_gap_minutes: int) -> List[TimeRange]:
    """
    Close every gap between consecutive intervals that is shorter than ``min_gap_minutes``.

    ``intervals`` must be sorted by start. A gap is measured from the latest
    end seen so far, so a long buffer that reaches past a shorter booking still
    counts. A positive gap below the minimum is absorbed by stretching the
    interval holding that latest end to the start of the next one. Gaps that
    are already long enough are left alone. Returns a new list; the input is
    not modified.
    """
    normalized: List[TimeRange] = []
    reach_index: Optional[int] = None

    for current in intervals:
        if reach_index is not None:
            reaching = normalized[reach_index]

            if reaching.end < current.start:
                gap_minutes = (current.start - reaching.end).total_seconds() / 60
                if gap_minutes < min_gap_minutes:
                    normalized[reach_index] = TimeRange(start=reaching.start, end=current.start)

        normalized.append(current)

        if reach_index is None or current.end > normalized[reach_index].end:
            reach_index = len(normalized) - 1

    return normalized


def breaks_to_utc(breaks: Sequence[Break], day: date, timezone: str) -> List[TimeRange]:
    """Convert the configured breaks to UTC ranges on a given local date."""
    ranges: List[TimeRange] = []

    for br in breaks:
        start: DateTime = local_to_utc(day, br.start, timezone)
        end: DateTime = local_to_utc(day, br.end, timezone)
        if start < end:
            ranges.append(TimeRange(start=start, end=end))

    return ranges


def aggregate_busy_intervals(
    bookings: Sequence[ExistingBooking],
    breaks: Sequence[Break],
    config: ScheduleConfig,
    day: date,
    services: Sequence[ServiceInfo],
) -> List[TimeRange]:
    """
    Build the merged, sorted busy intervals for one local calendar day.

    Args:
        bookings: Committed reservations of the practitioner
        breaks: Breaks to block on ``day``
        config: The practitioner's schedule
        day: Local calendar date the breaks are placed on
        services: Service metadata used to look up per-service buffers

    Returns:
        Merged busy intervals sorted by start
    """
    services_by_id = {service.id: service for service in services}

    intervals = extend_bookings(bookings, config, services_by_id)

    if config.auto_buffer:
        intervals = close_short_gaps(intervals, config.buffer_minutes)

    intervals.extend(breaks_to_utc(breaks, day, config.timezone))
    intervals.sort(key=lambda r: r.start)

    merged = merge_sorted(intervals)

    logger.debug(
        "Aggregated %d bookings and %d breaks into %d busy intervals for %s",
        len(bookings), len(breaks), len(merged), day.isoformat()
    )

    return merged
