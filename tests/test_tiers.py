"""
tests/test_tiers.py — Volunteer Tier Progression
=================================================
"""

from __future__ import annotations

import pytest

from tally.engine.tiers import TOP_TIER_NEXT, TierInfo, tier_for


@pytest.mark.parametrize(
    "points, expected",
    [
        (0, TierInfo("New Volunteer", "Active Volunteer", 100, 0.0)),
        (99, TierInfo("New Volunteer", "Active Volunteer", 1, 0.99)),
        (100, TierInfo("Active Volunteer", "Community Helper", 400, 0.2)),
        (499, TierInfo("Active Volunteer", "Community Helper", 1, 0.998)),
        (500, TierInfo("Community Helper", "Volunteer Champion", 500, 0.5)),
        (1000, TierInfo("Volunteer Champion", "Volunteer Legend", 1000, 0.5)),
        (1999, TierInfo("Volunteer Champion", "Volunteer Legend", 1, 0.9995)),
    ],
)
def test_thresholds(points, expected):
    assert tier_for(points) == expected


@pytest.mark.parametrize("points", [2000, 2001, 50_000])
def test_top_tier(points):
    info = tier_for(points)
    assert info.current_tier == "Volunteer Legend"
    assert info.next_tier == TOP_TIER_NEXT
    assert info.points_to_next_tier == 0
    assert info.tier_progress == 1.0


def test_negative_total_stays_in_first_tier():
    info = tier_for(-10)
    assert info.current_tier == "New Volunteer"
    assert info.points_to_next_tier == 110
    assert info.tier_progress == 0.0


def test_to_dict():
    assert tier_for(250).to_dict() == {
        "current_tier": "Active Volunteer",
        "next_tier": "Community Helper",
        "points_to_next_tier": 250,
        "tier_progress": 0.5,
    }
