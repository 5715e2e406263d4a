"""
tests/test_streaks.py — Week Buckets, Streaks & Month Windows
==============================================================
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from tally.engine.streaks import (
    WeekCalendar,
    active_weeks,
    current_streak,
    longest_streak,
    week_runs,
)


class TestWeekIndex:
    def test_monday_boundary(self):
        cal = WeekCalendar(week_start=0, tz=UTC)
        sunday_night = datetime(2026, 3, 15, 23, 59, tzinfo=UTC)
        monday_morning = datetime(2026, 3, 16, 0, 0, tzinfo=UTC)
        assert cal.week_index(monday_morning) == cal.week_index(sunday_night) + 1

    def test_sunday_start(self):
        cal = WeekCalendar(week_start=6, tz=UTC)
        saturday = datetime(2026, 3, 14, 12, tzinfo=UTC)
        sunday = datetime(2026, 3, 15, 0, 0, tzinfo=UTC)
        assert cal.week_index(sunday) == cal.week_index(saturday) + 1

    def test_timezone_moves_the_boundary(self):
        """Sunday 23:30 in New York is already Monday in UTC."""
        ny = WeekCalendar(week_start=0, tz=ZoneInfo("America/New_York"))
        utc = WeekCalendar(week_start=0, tz=UTC)
        ts = datetime(2026, 3, 16, 3, 30, tzinfo=UTC)
        assert utc.week_index(ts) == ny.week_index(ts) + 1

    def test_naive_timestamps_are_utc(self):
        cal = WeekCalendar(week_start=0, tz=UTC)
        aware = datetime(2026, 3, 18, 10, tzinfo=UTC)
        assert cal.week_index(aware.replace(tzinfo=None)) == cal.week_index(aware)

    def test_before_anchor_uses_floor(self):
        cal = WeekCalendar(week_start=0, tz=UTC)
        assert cal.week_index(datetime(1970, 1, 4, tzinfo=UTC)) == -1

    def test_week_start_at_round_trips(self):
        cal = WeekCalendar(week_start=2, tz=UTC)
        start = cal.week_start_at(2930)
        assert start.weekday() == 2
        assert cal.week_index(start) == 2930
        assert cal.week_index(start - timedelta(microseconds=1)) == 2929

    def test_rejects_bad_weekday(self):
        with pytest.raises(ValueError):
            WeekCalendar(week_start=7, tz=UTC)


class TestStreaks:
    WEEKS = [1, 2, 3, 5, 6]

    def test_runs(self):
        assert week_runs(self.WEEKS) == [(3, 3), (6, 2)]

    def test_longest(self):
        assert longest_streak(self.WEEKS) == 3

    @pytest.mark.parametrize(("now_week", "expected"), [(6, 2), (7, 2), (8, 0)])
    def test_current(self, now_week, expected):
        assert current_streak(self.WEEKS, now_week) == expected

    def test_empty(self):
        assert longest_streak([]) == 0
        assert current_streak([], 10) == 0

    def test_future_weeks_ignored(self):
        assert current_streak([4, 5, 9], 5) == 2

    def test_active_weeks_deduplicates(self):
        cal = WeekCalendar(week_start=0, tz=UTC)
        monday = datetime(2026, 3, 16, 8, tzinfo=UTC)
        stamps = [monday, monday + timedelta(days=2), monday + timedelta(days=7)]
        base = cal.week_index(monday)
        assert active_weeks(cal, stamps) == [base, base + 1]


class TestMonthWindow:
    def test_utc_month(self):
        cal = WeekCalendar(week_start=0, tz=UTC)
        start, end = cal.month_window(datetime(2026, 3, 18, 15, tzinfo=UTC))
        assert start == datetime(2026, 3, 1, tzinfo=UTC)
        assert end == datetime(2026, 4, 1, tzinfo=UTC)

    def test_december_rolls_year(self):
        cal = WeekCalendar(week_start=0, tz=UTC)
        _, end = cal.month_window(datetime(2026, 12, 31, 23, tzinfo=UTC))
        assert end == datetime(2027, 1, 1, tzinfo=UTC)

    def test_local_month(self):
        """1 April 02:00 UTC is still March in Los Angeles."""
        la = ZoneInfo("America/Los_Angeles")
        cal = WeekCalendar(week_start=0, tz=la)
        start, _ = cal.month_window(datetime(2026, 4, 1, 2, tzinfo=UTC))
        assert (start.year, start.month, start.day) == (2026, 3, 1)
        assert start.utcoffset() == timedelta(hours=-8)
