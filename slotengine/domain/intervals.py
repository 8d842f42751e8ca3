"""
Operations on half-open ``[start, end)`` UTC intervals.
"""

from typing import Iterable, List

from .models import TimeRange


def overlaps(a: TimeRange, b: TimeRange) -> bool:
    """Check whether two half-open intervals share any instant."""
    return a.start < b.end and b.start < a.end


def merge_sorted(intervals: Iterable[TimeRange]) -> List[TimeRange]:
    """
    Merge overlapping or touching intervals.

    Input must be sorted by start time.

    Example: [09:00-10:00, 10:00-11:00, 10:30-12:00] -> [09:00-12:00]
    """
    merged: List[TimeRange] = []

    for current in intervals:
        if not merged:
            merged.append(current)
            continue

        last = merged[-1]

        # Touching intervals merge as well, no zero-length gap survives
        if current.start <= last.end:
            if current.end > last.end:
                merged[-1] = TimeRange(start=last.start, end=current.end)
        else:
            merged.append(current)

    return merged


def subtract(window: TimeRange, busy_merged: Iterable[TimeRange]) -> List[TimeRange]:
    """
    Subtract busy intervals from a window, yielding the free intervals.

    ``busy_merged`` must be sorted and merged (see ``merge_sorted``).

    Example:
    Window: 09:00 - 17:00
    Busy: [10:00-11:00, 14:00-15:00]
    Result: [09:00-10:00, 11:00-14:00, 15:00-17:00]
    """
    free_ranges: List[TimeRange] = []
    cursor = window.start

    for busy in busy_merged:
        if busy.end <= cursor:
            continue

        if busy.start >= window.end:
            break

        free_end = min(busy.start, window.end)
        if cursor < free_end:
            free_ranges.append(TimeRange(start=cursor, end=free_end))

        cursor = max(cursor, busy.end)

        if cursor >= window.end:
            break

    if cursor < window.end:
        free_ranges.append(TimeRange(start=cursor, end=window.end))

    return free_ranges
