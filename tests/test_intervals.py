"""
Tests for interval algebra on half-open UTC ranges.
"""

import pendulum

from slotengine.domain.intervals import merge_sorted, overlaps, subtract
from slotengine.domain.models import TimeRange


def _range(start: str, end: str) -> TimeRange:
    """Helper to build a range on 2024-11-25 UTC from HH:mm strings."""
    return TimeRange(
        start=pendulum.parse(f"2024-11-25T{start}:00Z"),
        end=pendulum.parse(f"2024-11-25T{end}:00Z"),
    )


class TestOverlaps:
    """Tests for overlaps."""

    def test_touching_ranges_do_not_overlap(self):
        """[10:00, 11:00) and [11:00, 12:00) share no instant."""
        assert not overlaps(_range("10:00", "11:00"), _range("11:00", "12:00"))
        assert not overlaps(_range("11:00", "12:00"), _range("10:00", "11:00"))

    def test_partial_overlap(self):
        """Shifted ranges overlap in both argument orders."""
        assert overlaps(_range("10:00", "11:00"), _range("10:30", "11:30"))
        assert overlaps(_range("10:30", "11:30"), _range("10:00", "11:00"))

    def test_containment_overlaps(self):
        """A range inside another overlaps it."""
        assert overlaps(_range("09:00", "17:00"), _range("12:00", "12:15"))


class TestMergeSorted:
    """Tests for merge_sorted."""

    def test_empty(self):
        """No intervals merge into nothing."""
        assert merge_sorted([]) == []

    def test_touching_intervals_merge(self):
        """Adjacent intervals become one."""
        merged = merge_sorted([_range("09:00", "10:00"), _range("10:00", "11:00")])

        assert merged == [_range("09:00", "11:00")]

    def test_overlapping_and_disjoint(self):
        """Overlaps merge while a real gap survives."""
        merged = merge_sorted([
            _range("09:00", "10:00"),
            _range("09:30", "10:30"),
            _range("12:00", "13:00"),
        ])

        assert merged == [_range("09:00", "10:30"), _range("12:00", "13:00")]

    def test_contained_interval_is_absorbed(self):
        """A shorter interval inside a longer one does not shrink the result."""
        merged = merge_sorted([_range("10:00", "13:00"), _range("11:00", "12:00")])

        assert merged == [_range("10:00", "13:00")]


class TestSubtract:
    """Tests for subtract."""

    def test_two_busy_blocks(self):
        """Busy blocks inside the window split it into three free parts."""
        free = subtract(
            _range("09:00", "17:00"),
            [_range("10:00", "11:00"), _range("14:00", "15:00")],
        )

        assert free == [
            _range("09:00", "10:00"),
            _range("11:00", "14:00"),
            _range("15:00", "17:00"),
        ]

    def test_no_busy_time(self):
        """Without busy time the whole window is free."""
        assert subtract(_range("09:00", "17:00"), []) == [_range("09:00", "17:00")]

    def test_busy_overhanging_both_edges(self):
        """Busy time reaching past the window edges is clipped."""
        free = subtract(
            _range("09:00", "17:00"),
            [_range("08:00", "10:00"), _range("16:00", "18:00")],
        )

        assert free == [_range("10:00", "16:00")]

    def test_busy_outside_window_is_ignored(self):
        """Busy time before or after the window has no effect."""
        free = subtract(
            _range("09:00", "12:00"),
            [_range("06:00", "07:00"), _range("12:00", "13:00")],
        )

        assert free == [_range("09:00", "12:00")]

    def test_fully_consumed_window(self):
        """A window covered by busy time leaves nothing free."""
        assert subtract(_range("09:00", "12:00"), [_range("08:00", "13:00")]) == []
