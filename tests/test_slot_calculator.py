"""
Tests for slot calculation logic.
"""

from datetime import date, time

import pendulum
import pytest

from slotengine.domain.busy_intervals import aggregate_busy_intervals
from slotengine.domain.intervals import overlaps
from slotengine.domain.models import (
    Break,
    ExistingBooking,
    ScheduleConfig,
    ServiceInfo,
    TimeRange,
    WorkInterval,
)
from slotengine.domain.schedule import validate_schedule
from slotengine.domain.slot_calculator import SlotCalculator, compress_slots, round_up_to_step

MONDAY = date(2024, 11, 25)
SUNDAY_BEFORE = pendulum.datetime(2024, 11, 24, 0, 0, tz="UTC")

HAIRCUT = ServiceInfo(id="haircut", duration_minutes=60, buffer_minutes=15)

EXPECTED_MONDAY = [
    "09:00", "09:15", "09:30", "09:45", "10:00", "10:15", "10:45",
    "13:15", "13:30", "13:45", "14:00", "14:15", "14:30", "14:45",
    "15:00", "15:15", "15:30", "15:45", "16:00", "16:15", "16:45",
]


def _schedule(timezone: str = "UTC", **overrides) -> ScheduleConfig:
    """Monday 09:00-18:00, 15 minute buffer and step, 30 minute shortest service."""
    values = dict(
        work_intervals={0: [WorkInterval(time(9, 0), time(18, 0))]},
        buffer_minutes=15,
        slot_step_minutes=15,
        min_service_duration_minutes=30,
        timezone=timezone,
    )
    values.update(overrides)
    return ScheduleConfig(**values)


def _local(slots, timezone: str = "UTC"):
    return [slot.in_timezone(timezone).format("HH:mm") for slot in slots]


def _utc(clock: str) -> pendulum.DateTime:
    return pendulum.parse(f"2024-11-25T{clock}:00Z")


@pytest.fixture
def lunch_booking():
    """A haircut booked 12:00-13:00 UTC."""
    return ExistingBooking(start=_utc("12:00"), end=_utc("13:00"), service_id="haircut")


class TestSlotCalculator:
    """Tests for SlotCalculator."""

    def test_monday_with_one_booking(self, lunch_booking):
        """Test the full slot list around a buffered booking, tail rule included."""
        calculator = SlotCalculator(_schedule())

        slots = calculator.find_available_slots(
            day=MONDAY,
            service_ids=["haircut"],
            bookings=[lunch_booking],
            services=[HAIRCUT],
            now=SUNDAY_BEFORE,
        )

        assert _local(slots) == EXPECTED_MONDAY
        # 10:30 and 16:30 would leave 15 minute slivers
        assert "10:30" not in _local(slots)
        assert "16:30" not in _local(slots)

    def test_same_day_in_moscow(self):
        """Test that the schedule is read in the practitioner's own timezone."""
        booking = ExistingBooking(
            start=pendulum.datetime(2024, 11, 25, 12, 0, tz="Europe/Moscow"),
            end=pendulum.datetime(2024, 11, 25, 13, 0, tz="Europe/Moscow"),
            service_id="haircut",
        )
        calculator = SlotCalculator(_schedule("Europe/Moscow"))

        slots = calculator.find_available_slots(
            day=MONDAY,
            service_ids=["haircut"],
            bookings=[booking],
            services=[HAIRCUT],
            now=SUNDAY_BEFORE,
        )

        assert _local(slots, "Europe/Moscow") == EXPECTED_MONDAY
        assert slots[0] == pendulum.datetime(2024, 11, 25, 6, 0, tz="UTC")

    def test_slots_respect_invariants(self, lunch_booking):
        """Test containment, non-overlap, step alignment and the tail rule for every slot."""
        schedule = _schedule(breaks=[Break(time(15, 0), time(15, 30))])
        calculator = SlotCalculator(schedule)

        slots = calculator.find_available_slots(
            day=MONDAY,
            service_ids=["haircut"],
            bookings=[lunch_booking],
            services=[HAIRCUT],
            now=SUNDAY_BEFORE,
        )
        busy = aggregate_busy_intervals([lunch_booking], schedule.breaks, schedule, MONDAY, [HAIRCUT])
        work = TimeRange(start=_utc("09:00"), end=_utc("18:00"))

        assert slots
        assert slots == sorted(slots)
        for slot in slots:
            occupied = TimeRange(start=slot, end=slot.add(minutes=75))
            assert work.contains(occupied)
            assert not any(overlaps(occupied, interval) for interval in busy)
            assert slot.minute % 15 == 0

    def test_non_working_day_is_empty(self):
        """Test that a weekday without intervals has no slots."""
        calculator = SlotCalculator(_schedule())

        slots = calculator.find_available_slots(
            day=date(2024, 11, 24),
            service_ids=["haircut"],
            bookings=[],
            services=[HAIRCUT],
            now=pendulum.datetime(2024, 11, 23, tz="UTC"),
        )

        assert slots == []

    def test_now_inside_the_day(self, lunch_booking):
        """Test that no slot starts before now and the first one is rounded up."""
        calculator = SlotCalculator(_schedule())

        slots = calculator.find_available_slots(
            day=MONDAY,
            service_ids=["haircut"],
            bookings=[lunch_booking],
            services=[HAIRCUT],
            now=_utc("10:07"),
        )

        assert _local(slots)[:3] == ["10:15", "10:45", "13:15"]

    def test_now_with_seconds_rounds_past_the_grid_point(self, lunch_booking):
        """Test that 10:15:30 rounds to 10:30, which the tail rule then rejects."""
        calculator = SlotCalculator(_schedule())

        slots = calculator.find_available_slots(
            day=MONDAY,
            service_ids=["haircut"],
            bookings=[lunch_booking],
            services=[HAIRCUT],
            now=_utc("10:15").add(seconds=30),
        )

        assert _local(slots)[0] == "10:45"

    def test_day_already_over(self):
        """Test that a finished work interval yields nothing."""
        calculator = SlotCalculator(_schedule())

        slots = calculator.find_available_slots(
            day=MONDAY,
            service_ids=["haircut"],
            bookings=[],
            services=[HAIRCUT],
            now=_utc("19:00"),
        )

        assert slots == []

    def test_multiple_services_use_longest_not_sum(self):
        """Test that combined services need only the longest duration plus buffer."""
        schedule = _schedule(
            work_intervals={0: [WorkInterval(time(9, 0), time(11, 0))]},
            min_service_duration_minutes=15,
        )
        services = [
            ServiceInfo(id="short", duration_minutes=30, buffer_minutes=0),
            ServiceInfo(id="long", duration_minutes=60, buffer_minutes=0),
        ]
        calculator = SlotCalculator(schedule)

        slots = calculator.find_available_slots(
            day=MONDAY,
            service_ids=["short", "long"],
            bookings=[],
            services=services,
            now=SUNDAY_BEFORE,
        )

        assert calculator.max_total_duration(["short", "long"], services) == 60
        assert _local(slots) == ["09:00", "09:15", "09:30", "09:45", "10:00"]

    def test_unknown_services_fall_back_to_minimum_duration(self):
        """Test the fallback of shortest duration plus default buffer."""
        schedule = _schedule(work_intervals={0: [WorkInterval(time(9, 0), time(10, 0))]})
        calculator = SlotCalculator(schedule)

        slots = calculator.find_available_slots(
            day=MONDAY,
            service_ids=["missing"],
            bookings=[],
            services=[],
            now=SUNDAY_BEFORE,
        )

        # 45 minutes: 09:00 leaves a 15 minute tail, 09:15 ends exactly at 10:00
        assert _local(slots) == ["09:15"]

    def test_interval_consumed_by_break(self):
        """Test that a break covering the whole interval leaves no slots."""
        schedule = _schedule(
            work_intervals={0: [WorkInterval(time(9, 0), time(10, 0))]},
            breaks=[Break(time(9, 0), time(10, 0))],
        )

        slots = SlotCalculator(schedule).find_available_slots(
            day=MONDAY,
            service_ids=["haircut"],
            bookings=[],
            services=[HAIRCUT],
            now=SUNDAY_BEFORE,
        )

        assert slots == []

    def test_free_interval_shorter_than_service(self):
        """Test that a gap shorter than duration plus buffer offers nothing."""
        schedule = _schedule(work_intervals={0: [WorkInterval(time(9, 0), time(10, 0))]})

        slots = SlotCalculator(schedule).find_available_slots(
            day=MONDAY,
            service_ids=["haircut"],
            bookings=[],
            services=[HAIRCUT],
            now=SUNDAY_BEFORE,
        )

        assert slots == []

    def test_split_day(self):
        """Test that each work interval is walked separately."""
        schedule = _schedule(
            work_intervals={0: [WorkInterval(time(14, 0), time(15, 0)), WorkInterval(time(9, 0), time(10, 0))]},
        )
        service = ServiceInfo(id="consultation", duration_minutes=30, buffer_minutes=0)

        slots = SlotCalculator(schedule).find_available_slots(
            day=MONDAY,
            service_ids=["consultation"],
            bookings=[],
            services=[service],
            now=SUNDAY_BEFORE,
        )

        assert _local(slots) == ["09:00", "09:30", "14:00", "14:30"]

    def test_break_inside_spring_forward_gap(self):
        """Test that a break in the skipped Berlin hour still blocks the instants after the jump."""
        schedule = validate_schedule(
            _schedule(
                "Europe/Berlin",
                work_intervals={6: [WorkInterval(time(0, 0), time(8, 0))]},
                breaks=[Break(time(2, 0), time(2, 30))],
            )
        )
        blocked = TimeRange(
            start=pendulum.datetime(2024, 3, 31, 1, 0, tz="UTC"),
            end=pendulum.datetime(2024, 3, 31, 1, 30, tz="UTC"),
        )

        slots = SlotCalculator(schedule).find_available_slots(
            day=date(2024, 3, 31),
            service_ids=["haircut"],
            bookings=[],
            services=[HAIRCUT],
            now=pendulum.datetime(2024, 3, 30, 0, 0, tz="UTC"),
        )

        assert slots
        assert slots[0] == pendulum.datetime(2024, 3, 30, 23, 0, tz="UTC")
        for slot in slots:
            assert not overlaps(TimeRange(start=slot, end=slot.add(minutes=75)), blocked)


class TestAlternatives:
    """Tests for per-service fallback slots."""

    def test_only_fitting_services_are_offered(self):
        """Test that services without any slot are left out."""
        schedule = _schedule(work_intervals={0: [WorkInterval(time(9, 0), time(10, 0))]})
        services = [
            ServiceInfo(id="short", duration_minutes=30, buffer_minutes=0),
            ServiceInfo(id="long", duration_minutes=90, buffer_minutes=0),
        ]
        calculator = SlotCalculator(schedule)

        combined = calculator.find_available_slots(
            day=MONDAY, service_ids=["short", "long"], bookings=[], services=services, now=SUNDAY_BEFORE
        )
        alternatives = calculator.find_alternative_slots(
            day=MONDAY, service_ids=["short", "long"], bookings=[], services=services, now=SUNDAY_BEFORE
        )

        assert combined == []
        assert list(alternatives) == ["short"]
        assert _local(alternatives["short"]) == ["09:00", "09:30"]

    def test_services_not_requested_are_ignored(self):
        """Test that metadata of booked services does not create alternatives."""
        schedule = _schedule(work_intervals={0: [WorkInterval(time(9, 0), time(10, 0))]})
        services = [
            ServiceInfo(id="short", duration_minutes=30, buffer_minutes=0),
            ServiceInfo(id="booked", duration_minutes=15, buffer_minutes=0),
        ]

        alternatives = SlotCalculator(schedule).find_alternative_slots(
            day=MONDAY, service_ids=["short"], bookings=[], services=services, now=SUNDAY_BEFORE
        )

        assert list(alternatives) == ["short"]


class TestRounding:
    """Tests for round_up_to_step."""

    @pytest.mark.parametrize(
        "instant, expected",
        [
            (pendulum.datetime(2024, 11, 25, 10, 7, tz="UTC"), pendulum.datetime(2024, 11, 25, 10, 15, tz="UTC")),
            (pendulum.datetime(2024, 11, 25, 10, 15, tz="UTC"), pendulum.datetime(2024, 11, 25, 10, 15, tz="UTC")),
            (pendulum.datetime(2024, 11, 25, 10, 15, 30, tz="UTC"), pendulum.datetime(2024, 11, 25, 10, 30, tz="UTC")),
            (pendulum.datetime(2024, 11, 25, 23, 50, tz="UTC"), pendulum.datetime(2024, 11, 26, 0, 0, tz="UTC")),
        ],
    )
    def test_round_up(self, instant, expected):
        """Test rounding up to the 15 minute grid."""
        assert round_up_to_step(instant, 15) == expected


class TestCompressSlots:
    """Tests for compress_slots."""

    def test_runs_keep_first_and_last(self):
        """Test that runs collapse to their edges and isolated slots stay."""
        slots = [_utc(c) for c in ("09:00", "09:15", "09:30", "11:00", "13:00", "13:15")]

        compressed = compress_slots(slots, 15)

        assert _local(compressed) == ["09:00", "09:30", "11:00", "13:00", "13:15"]

    def test_short_lists_unchanged(self):
        """Test that zero, one or two slots are returned as they are."""
        assert compress_slots([], 15) == []
        assert compress_slots([_utc("09:00"), _utc("09:15")], 15) == [_utc("09:00"), _utc("09:15")]
