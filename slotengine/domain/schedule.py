"""
Schedule update and validation.

A schedule is only ever changed through ``update_schedule`` so that the
invariants below are checked once, when the practitioner edits it, and never
during slot calculation.
"""

import dataclasses
from typing import Any, List

from .exceptions import InvalidScheduleConfig
from .models import ScheduleConfig, WorkInterval
from .timezones import format_clock, resolve_timezone

ALLOWED_SLOT_STEPS = (5, 10, 15)


def validate_schedule(config: ScheduleConfig) -> ScheduleConfig:
    """
    Validate a schedule and return it unchanged.

    Raises:
        InvalidScheduleConfig: If any invariant does not hold
    """
    resolve_timezone(config.timezone)

    if config.slot_step_minutes not in ALLOWED_SLOT_STEPS:
        raise InvalidScheduleConfig(
            f"slot_step_minutes must be one of {ALLOWED_SLOT_STEPS}, got {config.slot_step_minutes}"
        )
    if config.buffer_minutes < 0:
        raise InvalidScheduleConfig("buffer_minutes must not be negative")
    if config.min_service_duration_minutes <= 0:
        raise InvalidScheduleConfig("min_service_duration_minutes must be greater than zero")

    all_intervals: List[WorkInterval] = []

    for weekday, intervals in config.work_intervals.items():
        if weekday not in range(7):
            raise InvalidScheduleConfig(f"Weekday must be between 0 and 6, got {weekday}")

        ordered = config.intervals_for(weekday)
        for previous, current in zip(ordered, ordered[1:]):
            if current.start < previous.end:
                raise InvalidScheduleConfig(
                    f"Work intervals {format_clock(previous.start)}-{format_clock(previous.end)} and "
                    f"{format_clock(current.start)}-{format_clock(current.end)} overlap on weekday {weekday}"
                )

        all_intervals.extend(ordered)

    for br in config.breaks:
        inside = any(
            interval.start <= br.start and br.end <= interval.end
            for interval in all_intervals
        )
        if not inside:
            raise InvalidScheduleConfig(
                f"Break {format_clock(br.start)}-{format_clock(br.end)} is outside every work interval"
            )

    return config


def update_schedule(config: ScheduleConfig, **changes: Any) -> ScheduleConfig:
    """
    Return a copy of ``config`` with ``changes`` applied, after validation.

    Example:
        update_schedule(config, buffer_minutes=10, auto_buffer=True)
    """
    try:
        updated = dataclasses.replace(config, **changes)
    except (TypeError, ValueError) as exc:
        raise InvalidScheduleConfig(str(exc)) from exc

    return validate_schedule(updated)
