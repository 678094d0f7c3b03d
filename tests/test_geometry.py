"""Tests for the date/pixel mapping of the timeline."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from sprintboard.timeline.geometry import (
    date_to_x,
    day_labels,
    day_width,
    today_x,
    total_days,
    x_to_date,
)

START = datetime(2026, 1, 5, tzinfo=timezone.utc)
END = START + timedelta(days=12)
WIDTH = 600


class TestDateToX:
    """Test mapping dates onto the track."""

    def test_range_start_is_zero(self):
        assert date_to_x(START, START, END, WIDTH) == 0

    def test_range_end_is_full_width(self):
        assert date_to_x(END, START, END, WIDTH) == WIDTH

    def test_linear_inside_range(self):
        assert date_to_x(START + timedelta(days=3), START, END, WIDTH) == pytest.approx(150)

    def test_dates_outside_range_are_clamped(self):
        assert date_to_x(START - timedelta(days=2), START, END, WIDTH) == 0
        assert date_to_x(END + timedelta(days=2), START, END, WIDTH) == WIDTH

    def test_degenerate_range_maps_to_zero(self):
        """A range with no extent has nowhere to place anything."""
        assert date_to_x(START, START, START, WIDTH) == 0
        assert date_to_x(END, END, START, WIDTH) == 0


class TestXToDate:
    """Test mapping track positions back onto dates."""

    def test_zero_is_range_start(self):
        assert x_to_date(0, START, END, WIDTH) == START

    def test_full_width_is_range_end(self):
        assert x_to_date(WIDTH, START, END, WIDTH) == END

    def test_positions_outside_track_are_clamped(self):
        assert x_to_date(-40, START, END, WIDTH) == START
        assert x_to_date(WIDTH + 40, START, END, WIDTH) == END

    def test_zero_width_returns_range_start(self):
        assert x_to_date(120, START, END, 0) == START

    @pytest.mark.parametrize("hours", [0, 1, 17, 36, 100, 200, 287])
    def test_inverse_of_date_to_x(self, hours):
        d = START + timedelta(hours=hours)
        back = x_to_date(date_to_x(d, START, END, WIDTH), START, END, WIDTH)
        assert abs((back - d).total_seconds()) < 1


class TestDayHelpers:
    """Test day-based helpers used by the header row."""

    def test_total_days(self):
        assert total_days(START, END) == 12
        assert total_days(END, START) == 0

    def test_day_width(self):
        assert day_width(START, END, WIDTH) == 50
        assert day_width(START, START + timedelta(hours=6), 100) == 100

    def test_one_label_per_day_inclusive(self):
        labels = day_labels(START, END)
        assert len(labels) == 13
        assert labels[0].label == "5 Mon"
        assert labels[0].is_weekend is False
        assert labels[5].label == "10 Sat"
        assert labels[5].is_weekend is True

    def test_today_marker_inside_range(self):
        assert today_x(START + timedelta(days=6), START, END, WIDTH) == pytest.approx(300)

    def test_today_marker_hidden_outside_range(self):
        assert today_x(END + timedelta(minutes=1), START, END, WIDTH) is None
        assert today_x(START - timedelta(minutes=1), START, END, WIDTH) is None
