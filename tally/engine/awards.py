"""
tally.engine.awards — Point Award Policies
===========================================

How many points a check-in or check-out is worth is a deployment choice,
so the amount comes from a pluggable policy selected in ``config.yaml``:

* ``flat``     — fixed points for check-in and for check-out.
* ``duration`` — fixed points for check-in; check-out earns
  ``points_per_hour`` for the time between check-in and check-out,
  in whole minutes, capped at ``max_hours``.

Policies are pure and always return a non-negative integer.  A result of
zero means "no ledger entry" (the ledger rejects zero amounts).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol

from tally.database.models import LedgerReason
from tally.engine.attendance import AttendanceState, CheckedIn, CheckedOut

if TYPE_CHECKING:
    from tally.config import TallyConfig


class AwardPolicy(Protocol):
    def checkin_points(self, event: Mapping[str, Any]) -> int: ...

    def checkout_points(
        self,
        event: Mapping[str, Any],
        checked_in_at: datetime,
        checked_out_at: datetime,
    ) -> int: ...


def _require_non_negative(**values: int) -> None:
    for name, value in values.items():
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise ValueError(f"{name} must be a non-negative integer (got {value!r})")


@dataclass(frozen=True, slots=True)
class FlatAwardPolicy:
    checkin: int
    checkout: int

    def __post_init__(self) -> None:
        _require_non_negative(checkin=self.checkin, checkout=self.checkout)

    def checkin_points(self, event: Mapping[str, Any]) -> int:
        return self.checkin

    def checkout_points(
        self,
        event: Mapping[str, Any],
        checked_in_at: datetime,
        checked_out_at: datetime,
    ) -> int:
        return self.checkout


@dataclass(frozen=True, slots=True)
class DurationAwardPolicy:
    checkin: int
    points_per_hour: int
    max_hours: int = 8

    def __post_init__(self) -> None:
        _require_non_negative(
            checkin=self.checkin,
            points_per_hour=self.points_per_hour,
            max_hours=self.max_hours,
        )

    def checkin_points(self, event: Mapping[str, Any]) -> int:
        return self.checkin

    def checkout_points(
        self,
        event: Mapping[str, Any],
        checked_in_at: datetime,
        checked_out_at: datetime,
    ) -> int:
        minutes = max(0, int((checked_out_at - checked_in_at).total_seconds() // 60))
        minutes = min(minutes, self.max_hours * 60)
        return minutes * self.points_per_hour // 60


def build_policy(cfg: TallyConfig) -> AwardPolicy:
    """Construct the policy named by ``cfg.award_policy``."""
    if cfg.award_policy == "flat":
        return FlatAwardPolicy(checkin=cfg.checkin_points, checkout=cfg.checkout_points)
    if cfg.award_policy == "duration":
        return DurationAwardPolicy(
            checkin=cfg.checkin_points,
            points_per_hour=cfg.points_per_hour,
            max_hours=cfg.max_award_hours,
        )
    raise ValueError(f"Unknown award policy: {cfg.award_policy!r}")


def award_for(
    policy: AwardPolicy,
    event: Mapping[str, Any],
    state: AttendanceState,
) -> tuple[LedgerReason, int] | None:
    """The ledger reason and amount earned by arriving in *state*.

    ``None`` for states that earn nothing (joined, left).
    """
    if isinstance(state, CheckedIn):
        return LedgerReason.EVENT_CHECKIN, policy.checkin_points(event)
    if isinstance(state, CheckedOut):
        return LedgerReason.EVENT_CHECKOUT, policy.checkout_points(
            event, state.checked_in_at, state.checked_out_at
        )
    return None
