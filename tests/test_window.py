"""Tests for the daily time-window gate."""

from datetime import datetime, time

import pytest

from routelens.window import in_window, parse_window


class TestParseWindow:
    """Test window parsing."""

    def test_parses_minutes(self):
        """Test bounds are converted to minutes after midnight."""
        assert parse_window("02:00-08:30") == (120, 510)

    def test_tolerates_whitespace(self):
        """Test spaces around the bounds are ignored."""
        assert parse_window(" 23:00 - 06:00 ") == (1380, 360)

    @pytest.mark.parametrize("spec", [None, "", "   ", "bad-format", "02:00", "25:00-03:00",
                                      "02:00-08:00-09:00", "2am-8am"])
    def test_invalid_specs(self, spec):
        """Test empty or malformed specs parse to None."""
        assert parse_window(spec) is None


class TestInWindow:
    """Test window membership."""

    def test_inside_same_day_window(self):
        """Test 03:00 is inside 02:00-08:00."""
        assert in_window("02:00-08:00", time(3, 0)) is True

    def test_outside_same_day_window(self):
        """Test 09:00 is outside 02:00-08:00."""
        assert in_window("02:00-08:00", time(9, 0)) is False

    def test_cross_midnight_after_midnight(self):
        """Test 01:00 is inside 23:00-06:00."""
        assert in_window("23:00-06:00", time(1, 0)) is True

    def test_cross_midnight_before_midnight(self):
        """Test 23:30 is inside 23:00-06:00."""
        assert in_window("23:00-06:00", time(23, 30)) is True

    def test_cross_midnight_outside(self):
        """Test midday is outside 23:00-06:00."""
        assert in_window("23:00-06:00", time(12, 0)) is False

    @pytest.mark.parametrize("now", [time(0, 0), time(12, 0), time(23, 59)])
    def test_empty_spec_always_open(self, now):
        """Test an empty spec never restricts."""
        assert in_window("", now) is True
        assert in_window(None, now) is True

    @pytest.mark.parametrize("now", [time(0, 0), time(12, 0), time(23, 59)])
    def test_bad_format_fails_open(self, now):
        """Test a malformed spec fails open."""
        assert in_window("bad-format", now) is True

    def test_start_inclusive_end_exclusive(self):
        """Test the start minute is inside and the end minute is outside."""
        assert in_window("02:00-08:00", time(2, 0)) is True
        assert in_window("02:00-08:00", time(7, 59, 59)) is True
        assert in_window("02:00-08:00", time(8, 0)) is False

    def test_equal_bounds_cover_whole_day(self):
        """Test a window ending where it starts spans 24 hours."""
        assert in_window("05:00-05:00", time(4, 59)) is True
        assert in_window("05:00-05:00", time(17, 0)) is True

    def test_accepts_datetime(self):
        """Test a datetime is reduced to its local time of day."""
        assert in_window("02:00-08:00", datetime(2024, 6, 1, 3, 0)) is True

    def test_defaults_to_current_time(self):
        """Test now defaults to the current time without error."""
        assert isinstance(in_window("00:00-23:59"), bool)
