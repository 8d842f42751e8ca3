"""
Conversion between a practitioner's wall-clock time and UTC instants.

All scheduling math runs on UTC instants. Local time only appears at the
boundary, when a schedule (``"HH:mm"`` strings on a weekday) is interpreted
against a concrete calendar date.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, time, timedelta
from typing import NamedTuple

import pendulum
from pendulum import DateTime

from .exceptions import InvalidTimezone, TimezoneConversionError
from .models import TimeRange

logger = logging.getLogger(__name__)

# Upper bound for the fixed-point search in local_to_utc. Offsets only jump at
# DST transitions, so real zones settle after one or two steps.
MAX_CONVERSION_ITERATIONS = 10

_CLOCK_PATTERN = re.compile(r"^([01][0-9]|2[0-3]):([0-5][0-9])$")


class LocalMoment(NamedTuple):
    """Wall-clock components of an instant in a given zone."""
    date: date
    hour: int
    minute: int
    weekday: int  # 0=Monday, 6=Sunday


def resolve_timezone(name: str):
    """
    Resolve an IANA timezone name.

    Raises:
        InvalidTimezone: If the name is not a known zone. There is no fallback
            to UTC.
    """
    try:
        return pendulum.timezone(name)
    except (ValueError, KeyError) as exc:
        raise InvalidTimezone(name) from exc


def parse_clock(value: str) -> time:
    """Parse a ``HH:mm`` wall-clock string."""
    match = _CLOCK_PATTERN.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise ValueError(f"Time must use the HH:mm format, got {value!r}")
    return time(hour=int(match.group(1)), minute=int(match.group(2)))


def format_clock(value: time) -> str:
    """Format a wall-clock time as ``HH:mm``."""
    return f"{value.hour:02d}:{value.minute:02d}"


def to_utc(value: datetime) -> DateTime:
    """
    Normalise a timezone-aware datetime to a pendulum UTC instant.

    Raises:
        ValueError: If the datetime is naive.
    """
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"Datetime {value.isoformat()} has no timezone information")
    return pendulum.instance(value).in_timezone("UTC")


def local_to_utc(day: date, clock: str | time, timezone: str) -> DateTime:
    """
    Convert a wall-clock time on a local calendar date to a UTC instant.

    The conversion is a fixed-point search: the first guess reads the local
    time as if it were UTC, then each step looks at the wall clock the guess
    produces in ``timezone`` and shifts the guess by the difference. This
    stays correct on DST transition days where a fixed offset would not.

    Args:
        day: Calendar date in the practitioner's zone
        clock: ``HH:mm`` string or ``datetime.time``
        timezone: IANA timezone name

    A wall-clock time skipped by a DST jump has no exact instant. It resolves
    to the instant after the jump, e.g. 02:30 on a spring-forward day in
    Europe/Berlin becomes 03:30 local time.

    Returns:
        The UTC instant whose local wall clock equals ``day`` + ``clock``

    Raises:
        InvalidTimezone: If the zone is unknown
        TimezoneConversionError: If the search does not settle within
            ``MAX_CONVERSION_ITERATIONS`` for a time that does exist
    """
    tz = resolve_timezone(timezone)
    wall = clock if isinstance(clock, time) else parse_clock(clock)

    desired = datetime(day.year, day.month, day.day, wall.hour, wall.minute)
    guess = pendulum.datetime(day.year, day.month, day.day, wall.hour, wall.minute, tz="UTC")

    for _ in range(MAX_CONVERSION_ITERATIONS):
        local = guess.in_timezone(tz)
        observed = datetime(local.year, local.month, local.day, local.hour, local.minute, local.second)
        difference = desired - observed

        if abs(difference) < timedelta(minutes=1):
            return guess

        guess = guess.add(seconds=int(difference.total_seconds()))

    # A wall-clock time skipped by a DST jump makes the search oscillate
    # around the transition; it maps to the instant after the jump
    resolved = pendulum.datetime(day.year, day.month, day.day, wall.hour, wall.minute, tz=tz)
    if (resolved.hour, resolved.minute) != (wall.hour, wall.minute):
        logger.debug(
            "Local time %s %s is skipped in zone %s, using %s",
            day.isoformat(), format_clock(wall), timezone, resolved.to_iso8601_string()
        )
        return resolved.in_timezone("UTC")

    logger.warning(
        "Local time %s %s did not converge in zone %s", day.isoformat(), format_clock(wall), timezone
    )
    raise TimezoneConversionError(
        f"Local time {day.isoformat()} {format_clock(wall)} could not be resolved in {timezone}"
    )


def utc_to_local(instant: datetime, timezone: str) -> LocalMoment:
    """
    Break a UTC instant down into the wall-clock components of ``timezone``.

    The weekday is taken from the local calendar date, which can differ from
    the UTC date near midnight.
    """
    tz = resolve_timezone(timezone)
    local = pendulum.instance(instant).in_timezone(tz)

    return LocalMoment(
        date=local.date(),
        hour=local.hour,
        minute=local.minute,
        weekday=local.weekday(),
    )


def local_day_bounds(day: date, timezone: str) -> TimeRange:
    """Return the UTC range covering the local calendar day ``day``."""
    tz = resolve_timezone(timezone)
    start = pendulum.datetime(day.year, day.month, day.day, tz=tz)
    end = start.add(days=1)

    return TimeRange(start=start.in_timezone("UTC"), end=end.in_timezone("UTC"))
