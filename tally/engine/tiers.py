"""
tally.engine.tiers — Volunteer Tier Progression
================================================

Pure calculation over a user's lifetime ledger total.

    points      tier
    ≥ 2000      Volunteer Legend     (top tier)
    ≥ 1000      Volunteer Champion
    ≥  500      Community Helper
    ≥  100      Active Volunteer
    otherwise   New Volunteer

``tier_progress`` is the total as a fraction of the *next* tier's threshold
(not of the gap from the current one), clamped to ``[0, 1]``; the top
tier reports 1 with nothing left to earn.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

TOP_TIER_NEXT = "Max Tier Reached"

# (threshold, name), ascending.
TIERS: tuple[tuple[int, str], ...] = (
    (0, "New Volunteer"),
    (100, "Active Volunteer"),
    (500, "Community Helper"),
    (1000, "Volunteer Champion"),
    (2000, "Volunteer Legend"),
)


@dataclass(frozen=True, slots=True)
class TierInfo:
    current_tier: str
    next_tier: str
    points_to_next_tier: int
    tier_progress: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_tier": self.current_tier,
            "next_tier": self.next_tier,
            "points_to_next_tier": self.points_to_next_tier,
            "tier_progress": self.tier_progress,
        }


def tier_for(points: int) -> TierInfo:
    """Tier standing for a lifetime total of *points*."""
    index = 0
    for i, (threshold, _) in enumerate(TIERS):
        if points >= threshold:
            index = i
    current = TIERS[index][1]
    if index == len(TIERS) - 1:
        return TierInfo(current, TOP_TIER_NEXT, 0, 1.0)
    next_threshold, next_name = TIERS[index + 1]
    return TierInfo(
        current_tier=current,
        next_tier=next_name,
        points_to_next_tier=next_threshold - points,
        tier_progress=round(min(1.0, max(0.0, points / next_threshold)), 4),
    )
