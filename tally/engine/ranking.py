"""
tally.engine.ranking — Leaderboard Ordering & Goal Progress
============================================================

Pure calculation.  Callers supply the roster and each member's points for
the window being ranked.

Ordering is total: points descending, then earlier ``joined_at`` (the
longer-standing member wins a tie), then user id.  Ranks are 1..n with no
shared numbers, so two members on equal points never hold the same rank.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass(frozen=True, slots=True)
class Standing:
    rank: int
    user_id: str
    points: int
    joined_at: datetime
    role: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "rank": self.rank,
            "user_id": self.user_id,
            "points": self.points,
            "joined_at": self.joined_at.isoformat(),
            "role": self.role,
        }


def rank_members(
    members: Iterable[Mapping[str, Any]],
    points_by_user: Mapping[str, int],
) -> list[Standing]:
    """Rank ``group_members`` rows by their points in *points_by_user*.

    Members absent from *points_by_user* have zero points.
    """
    ordered = sorted(
        members,
        key=lambda m: (-points_by_user.get(m["user_id"], 0), m["joined_at"], m["user_id"]),
    )
    return [
        Standing(
            rank=i + 1,
            user_id=m["user_id"],
            points=points_by_user.get(m["user_id"], 0),
            joined_at=m["joined_at"],
            role=m["role"],
        )
        for i, m in enumerate(ordered)
    ]


@dataclass(frozen=True, slots=True)
class GoalProgress:
    current_points: int
    monthly_goal: int
    percentage: float
    remaining: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_points": self.current_points,
            "monthly_goal": self.monthly_goal,
            "percentage": self.percentage,
            "remaining": self.remaining,
        }


def goal_progress(current_points: int, monthly_goal: int) -> GoalProgress:
    """Progress towards *monthly_goal*, with the percentage clamped to [0, 100]."""
    if monthly_goal <= 0:
        raise ValueError("monthly_goal must be positive")
    pct = 100.0 * current_points / monthly_goal
    return GoalProgress(
        current_points=current_points,
        monthly_goal=monthly_goal,
        percentage=round(min(100.0, max(0.0, pct)), 2),
        remaining=max(0, monthly_goal - current_points),
    )
