from datetime import time

import pytest

from app.services.conflict_window import (
    WindowPolicy,
    format_time,
    has_conflict,
    slots_conflict,
    to_minutes,
)


class TestTimeParsing:
    def test_to_minutes_accepts_strings_and_times(self):
        assert to_minutes("19:30") == 19 * 60 + 30
        assert to_minutes("07:05:00") == 7 * 60 + 5
        assert to_minutes(time(12, 15)) == 12 * 60 + 15

    @pytest.mark.parametrize("value", ["1930", "25:00", "12:60"])
    def test_to_minutes_rejects_invalid(self, value):
        with pytest.raises(ValueError):
            to_minutes(value)

    def test_format_time_pads(self):
        assert format_time(time(9, 5)) == "09:05"
        assert format_time("9:05:00") == "09:05"


class TestForwardWindow:
    """A booking at T holds its table for [T, T + duration)."""

    def test_overlapping_start_conflicts(self):
        assert slots_conflict(to_minutes("19:00"), to_minutes("18:00"), 120)
        assert slots_conflict(to_minutes("18:00"), to_minutes("19:00"), 120)

    def test_back_to_back_bookings_do_not_conflict(self):
        assert not slots_conflict(to_minutes("20:00"), to_minutes("18:00"), 120)
        assert not slots_conflict(to_minutes("18:00"), to_minutes("20:00"), 120)

    def test_same_start_conflicts(self):
        assert slots_conflict(600, 600, 90)


class TestSymmetricWindow:
    def test_boundary_is_inclusive(self):
        requested = to_minutes("19:00")
        assert slots_conflict(requested, to_minutes("17:00"), 120, WindowPolicy.SYMMETRIC)
        assert slots_conflict(requested, to_minutes("21:00"), 120, WindowPolicy.SYMMETRIC)

    def test_outside_window_is_free(self):
        assert not slots_conflict(to_minutes("19:00"), to_minutes("21:01"), 120, WindowPolicy.SYMMETRIC)

    def test_symmetric_is_stricter_than_forward(self):
        # Back-to-back slots only collide under the symmetric policy
        assert not has_conflict("20:00", ["18:00"], 120, WindowPolicy.FORWARD)
        assert has_conflict("20:00", ["18:00"], 120, WindowPolicy.SYMMETRIC)


def test_has_conflict_with_no_bookings():
    assert not has_conflict("19:00", [], 120)


def test_has_conflict_checks_every_booking():
    assert has_conflict(time(13, 0), ["09:00", "12:30", "18:00"], 60)
    assert not has_conflict(time(15, 0), ["09:00", "12:30", "18:00"], 60)
