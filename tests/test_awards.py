"""
tests/test_awards.py — Award Policies
======================================
"""

from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime, timedelta

import pytest

from tally.database.models import LedgerReason
from tally.engine.attendance import CheckedIn, CheckedOut, Joined
from tally.engine.awards import (
    DurationAwardPolicy,
    FlatAwardPolicy,
    award_for,
    build_policy,
)

T0 = datetime(2026, 3, 18, 9, 0, tzinfo=UTC)
EVENT = {"id": "evt-1", "title": "Food bank shift"}


class TestFlatPolicy:
    def test_fixed_amounts(self):
        policy = FlatAwardPolicy(checkin=10, checkout=5)
        assert policy.checkin_points(EVENT) == 10
        assert policy.checkout_points(EVENT, T0, T0 + timedelta(hours=9)) == 5

    @pytest.mark.parametrize("bad", [-1, 1.5, True])
    def test_rejects_bad_amounts(self, bad):
        with pytest.raises(ValueError):
            FlatAwardPolicy(checkin=bad, checkout=0)


class TestDurationPolicy:
    def test_proportional_to_whole_minutes(self):
        policy = DurationAwardPolicy(checkin=2, points_per_hour=12)
        out = T0 + timedelta(hours=1, minutes=30, seconds=59)
        assert policy.checkout_points(EVENT, T0, out) == 18

    def test_capped(self):
        policy = DurationAwardPolicy(checkin=0, points_per_hour=10, max_hours=2)
        assert policy.checkout_points(EVENT, T0, T0 + timedelta(hours=7)) == 20

    def test_never_negative(self):
        policy = DurationAwardPolicy(checkin=0, points_per_hour=10)
        assert policy.checkout_points(EVENT, T0, T0 - timedelta(hours=1)) == 0


class TestAwardFor:
    def test_checkin(self):
        policy = FlatAwardPolicy(checkin=10, checkout=5)
        state = CheckedIn("j", T0, T0)
        assert award_for(policy, EVENT, state) == (LedgerReason.EVENT_CHECKIN, 10)

    def test_checkout(self):
        policy = FlatAwardPolicy(checkin=10, checkout=5)
        state = CheckedOut("j", T0, T0, T0 + timedelta(hours=1))
        assert award_for(policy, EVENT, state) == (LedgerReason.EVENT_CHECKOUT, 5)

    def test_join_earns_nothing(self):
        assert award_for(FlatAwardPolicy(10, 5), EVENT, Joined("j", T0)) is None


class TestBuildPolicy:
    def test_flat(self, cfg):
        assert build_policy(cfg) == FlatAwardPolicy(checkin=10, checkout=5)

    def test_duration(self, cfg):
        cfg = replace(cfg, award_policy="duration", points_per_hour=20, max_award_hours=4)
        assert build_policy(cfg) == DurationAwardPolicy(checkin=10, points_per_hour=20, max_hours=4)

    def test_unknown(self, cfg):
        with pytest.raises(ValueError):
            build_policy(replace(cfg, award_policy="lottery"))
