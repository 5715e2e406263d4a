"""
tally.engine.streaks — Week Buckets, Streaks & Month Windows
=============================================================

Pure calculation over ledger timestamps.  No database I/O.

A *week* is a 7-day bucket that starts at 00:00 on the configured weekday
in the configured timezone.  Every timestamp maps to an integer week
index, so "consecutive weeks" is just "consecutive integers":

    index = (local_date − anchor).days // 7

where ``anchor`` is the first configured weekday on or after 1970-01-05
(a Monday).  Floor division keeps the mapping correct before the anchor.

A user is active in a week if the ledger holds at least one entry whose
``created_at`` falls in it.

* longest streak — longest run of consecutive active week indices.
* current streak — the run ending at the current week, or at the previous
  week when the current one has no entry yet; otherwise 0.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta, tzinfo
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tally.config import TallyConfig

_EPOCH_MONDAY = date(1970, 1, 5)


@dataclass(frozen=True, slots=True)
class WeekCalendar:
    """Maps instants to week indices and month windows for one deployment."""

    week_start: int  # 0 = Monday … 6 = Sunday
    tz: tzinfo

    def __post_init__(self) -> None:
        if not 0 <= self.week_start <= 6:
            raise ValueError(f"week_start must be 0..6 (got {self.week_start})")

    @classmethod
    def from_config(cls, cfg: TallyConfig) -> WeekCalendar:
        return cls(week_start=cfg.week_start, tz=cfg.tz)

    @property
    def anchor(self) -> date:
        return _EPOCH_MONDAY + timedelta(days=self.week_start)

    def local(self, ts: datetime) -> datetime:
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=UTC)
        return ts.astimezone(self.tz)

    def week_index(self, ts: datetime) -> int:
        return (self.local(ts).date() - self.anchor).days // 7

    def week_start_at(self, index: int) -> datetime:
        """First instant of week *index*, as an aware datetime in ``tz``."""
        day = self.anchor + timedelta(days=index * 7)
        return datetime(day.year, day.month, day.day, tzinfo=self.tz)

    def month_window(self, now: datetime) -> tuple[datetime, datetime]:
        """``[start, end)`` of the calendar month containing *now*."""
        local_now = self.local(now)
        start = datetime(local_now.year, local_now.month, 1, tzinfo=self.tz)
        if local_now.month == 12:
            end = datetime(local_now.year + 1, 1, 1, tzinfo=self.tz)
        else:
            end = datetime(local_now.year, local_now.month + 1, 1, tzinfo=self.tz)
        return start, end


# ---------------------------------------------------------------------------
# Streak arithmetic over week indices
# ---------------------------------------------------------------------------
def active_weeks(calendar: WeekCalendar, timestamps: Iterable[datetime]) -> list[int]:
    """Distinct week indices containing at least one timestamp, ascending."""
    return sorted({calendar.week_index(ts) for ts in timestamps})


def week_runs(weeks: Iterable[int]) -> list[tuple[int, int]]:
    """Maximal runs of consecutive indices as ``(last_week, length)`` pairs."""
    runs: list[tuple[int, int]] = []
    last: int | None = None
    length = 0
    for week in sorted(set(weeks)):
        if last is not None and week == last + 1:
            length += 1
        else:
            if last is not None:
                runs.append((last, length))
            length = 1
        last = week
    if last is not None:
        runs.append((last, length))
    return runs


def longest_streak(weeks: Iterable[int]) -> int:
    return max((length for _, length in week_runs(weeks)), default=0)


def current_streak(weeks: Iterable[int], now_week: int) -> int:
    # Entries dated after now (clock skew) do not extend the streak.
    for last, length in week_runs(w for w in weeks if w <= now_week):
        if last in (now_week, now_week - 1):
            return length
    return 0
