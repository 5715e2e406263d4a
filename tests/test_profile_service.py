"""
tests/test_profile_service.py — Profile Summary & Activity Feed
================================================================
"""

from __future__ import annotations

from datetime import timedelta

from conftest import add_entry, make_event, make_profile
from tally.errors import ErrorCode
from tally.services import attendance_service, profile_service


class TestProfile:
    def test_profile_with_aggregates(self, store, alice, calendar, now):
        make_profile(store, "user-alice", "Alice")
        add_entry(store, "user-alice", 10, now)
        add_entry(store, "user-alice", 5, now - timedelta(weeks=1))
        add_entry(store, "user-alice", 7, now - timedelta(weeks=5))

        data = profile_service.get_profile(store, alice, calendar=calendar, now=now).data
        assert data["display_name"] == "Alice"
        assert data["total_points"] == 22
        assert data["current_streak"] == 2
        assert data["longest_streak"] == 2
        assert data["current_tier"] == "New Volunteer"
        assert data["next_tier"] == "Active Volunteer"
        assert data["points_to_next_tier"] == 78
        assert data["tier_progress"] == 0.22

    def test_tier_moves_with_total(self, store, alice, calendar, now):
        make_profile(store, "user-alice", "Alice")
        add_entry(store, "user-alice", 520, now - timedelta(weeks=2))

        data = profile_service.get_profile(store, alice, calendar=calendar, now=now).data
        assert data["current_tier"] == "Community Helper"
        assert data["next_tier"] == "Volunteer Champion"
        assert data["points_to_next_tier"] == 480
        assert data["tier_progress"] == 0.52

    def test_missing_profile(self, store, bob, calendar):
        result = profile_service.get_profile(store, bob, calendar=calendar)
        assert result.error.code == ErrorCode.PROFILE_NOT_FOUND


class TestActivity:
    def test_newest_first_with_titles(self, store, alice, policy, now):
        event = make_event(store, title="Park Planting")
        attendance_service.join_event(store, alice, event["id"], now=now)
        attendance_service.check_in(store, alice, event["id"], policy=policy, now=now)
        add_entry(store, "user-alice", 3, now + timedelta(hours=1))

        feed = profile_service.get_recent_activity(store, alice).data
        assert [(e["amount"], e["event_title"]) for e in feed] == [
            (3, None),
            (10, "Park Planting"),
        ]

    def test_limit(self, store, alice, now):
        for i in range(5):
            add_entry(store, "user-alice", 1, now - timedelta(hours=i))
        assert len(profile_service.get_recent_activity(store, alice, limit=2).data) == 2

    def test_only_callers_entries(self, store, alice, now):
        add_entry(store, "someone-else", 1, now)
        assert profile_service.get_recent_activity(store, alice).data == []
