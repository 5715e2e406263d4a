"""
tests/test_ledger_service.py — Points Ledger, Totals & Streaks
===============================================================
"""

from __future__ import annotations

import random
from datetime import timedelta
from unittest.mock import patch

import pytest

from conftest import NOW, add_entry, make_event
from tally.database.store import SqlRecordStore
from tally.errors import ErrorCode, NotFoundError, ValidationError
from tally.services import ledger_service


class TestAward:
    def test_manual_award(self, store, now):
        result = ledger_service.award(store, "u1", 25, "manual_award", note="setup crew", now=now)
        assert result.error is None
        assert result.data["amount"] == 25
        assert result.data["note"] == "setup crew"

    def test_correction_may_be_negative(self, store, now):
        ledger_service.award(store, "u1", 25, "manual_award", now=now)
        assert ledger_service.award(store, "u1", -5, "correction", now=now).ok
        assert ledger_service.sum_for(store, "u1").data == 20

    @pytest.mark.parametrize(
        ("amount", "reason", "code"),
        [
            (0, "manual_award", ErrorCode.INVALID_AMOUNT),
            (0, "correction", ErrorCode.INVALID_AMOUNT),
            (-5, "manual_award", ErrorCode.INVALID_AMOUNT),
            (2.5, "manual_award", ErrorCode.INVALID_AMOUNT),
            (True, "manual_award", ErrorCode.INVALID_AMOUNT),
            (5, "bribe", ErrorCode.INVALID_REASON),
            (5, "event_checkin", ErrorCode.INVALID_REASON),
        ],
    )
    def test_rejected(self, store, amount, reason, code):
        result = ledger_service.award(store, "u1", amount, reason)
        assert isinstance(result.error, ValidationError)
        assert result.error.code == code
        assert store.count("points_ledger", {}) == 0

    def test_no_update_or_delete_operations(self):
        public = {name for name in dir(ledger_service) if not name.startswith("_")}
        assert not {n for n in public if n.startswith(("update", "delete", "remove"))}

    def test_award_for_event(self, fk_store, now):
        event = make_event(fk_store)
        result = ledger_service.award(fk_store, "u1", 4, "manual_award", event_id=event["id"], now=now)
        assert result.data["event_id"] == event["id"]

    def test_unknown_event_is_not_found(self, fk_store, now):
        result = ledger_service.award(fk_store, "u1", 5, "manual_award", event_id="no-such-event", now=now)
        assert isinstance(result.error, NotFoundError)
        assert result.error.code == ErrorCode.EVENT_NOT_FOUND
        assert fk_store.count("points_ledger", {}) == 0

    def test_foreign_key_rejection_is_not_found(self, fk_store, now):
        # The event lookup passes but the insert still hits the foreign key.
        with patch.object(SqlRecordStore, "select_one", return_value={"id": "ghost"}):
            result = ledger_service.award(fk_store, "u1", 5, "correction", event_id="ghost", now=now)
        assert result.error.code == ErrorCode.EVENT_NOT_FOUND
        assert fk_store.count("points_ledger", {}) == 0


class TestSums:
    def test_sum_is_order_independent(self, store):
        amounts = [5, 10, -3, 7, 1, -2, 40]
        shuffled = amounts[:]
        random.Random(7).shuffle(shuffled)
        for i, amount in enumerate(shuffled):
            reason = "correction" if amount < 0 else "manual_award"
            add_entry(store, "u1", amount, NOW - timedelta(hours=i), reason=reason)
        assert ledger_service.sum_for(store, "u1").data == sum(amounts)

    def test_since(self, store):
        add_entry(store, "u1", 100, NOW - timedelta(days=40))
        add_entry(store, "u1", 7, NOW - timedelta(days=1))
        since = NOW - timedelta(days=30)
        assert ledger_service.sum_for(store, "u1", since).data == 7
        assert ledger_service.calculate_user_total_points(store, "u1").data == 107

    def test_no_entries(self, store):
        assert ledger_service.calculate_user_total_points(store, "nobody").data == 0

    def test_points_by_user_window(self, store, calendar):
        start, end = calendar.month_window(NOW)
        add_entry(store, "a", 5, start)
        add_entry(store, "a", 50, end)
        add_entry(store, "b", 3, end - timedelta(seconds=1))
        add_entry(store, "b", 9, start - timedelta(seconds=1))
        totals = ledger_service.points_by_user(store, ["a", "b", "c"], start, end)
        assert totals == {"a": 5, "b": 3, "c": 0}

    def test_closed_window_limit_is_applied_in_query(self, store):
        start, end = NOW - timedelta(days=3), NOW
        for days in range(-2, 5):
            add_entry(store, "u1", 1, NOW - timedelta(days=days, hours=1))
        with patch.object(SqlRecordStore, "select_many", wraps=store.select_many) as select:
            rows = ledger_service.entries_for(store, ["u1"], start, end, limit=2)
        assert [r["created_at"] for r in rows] == [NOW - timedelta(hours=1), NOW - timedelta(days=1, hours=1)]
        assert select.call_args.kwargs["limit"] == 2


class TestStreaks:
    def _seed_weeks(self, store, calendar, weeks):
        for w in weeks:
            add_entry(store, "u1", 1, calendar.week_start_at(w) + timedelta(days=2))

    @pytest.mark.parametrize(("now_offset", "expected"), [(6, 2), (7, 2), (8, 0)])
    def test_weekly_streak(self, store, calendar, now_offset, expected):
        base = calendar.week_index(NOW) - 8
        self._seed_weeks(store, calendar, [base + w for w in (1, 2, 3, 5, 6)])
        now = calendar.week_start_at(base + now_offset) + timedelta(days=3)
        result = ledger_service.calculate_user_weekly_streak(store, "u1", calendar=calendar, now=now)
        assert result.data == expected

    def test_longest_streak(self, store, calendar):
        base = calendar.week_index(NOW) - 8
        self._seed_weeks(store, calendar, [base + w for w in (1, 2, 3, 5, 6)])
        result = ledger_service.calculate_user_longest_streak(store, "u1", calendar=calendar)
        assert result.data == 3

    def test_multiple_entries_in_one_week_count_once(self, store, calendar):
        monday = calendar.week_start_at(calendar.week_index(NOW))
        for hours in (1, 30, 100):
            add_entry(store, "u1", 1, monday + timedelta(hours=hours))
        assert ledger_service.calculate_user_longest_streak(store, "u1", calendar=calendar).data == 1
