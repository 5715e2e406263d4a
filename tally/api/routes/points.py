"""
tally.api.routes.points — Ledger, profile and streak endpoints
===============================================================
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from tally.api.deps import (
    get_calendar,
    get_current_admin,
    get_identity,
    get_store,
    raise_for_error,
    unwrap,
)
from tally.database.store import RecordStore
from tally.engine.streaks import WeekCalendar
from tally.errors import TallyError
from tally.identity import IdentityProvider, require_user
from tally.services import ledger_service, profile_service

router = APIRouter(tags=["points"])


class ManualAward(BaseModel):
    user_id: str
    amount: int
    reason: str = "manual_award"
    event_id: str | None = None
    note: str | None = None


def _caller(identity: IdentityProvider) -> str:
    try:
        return require_user(identity)
    except TallyError as exc:
        raise_for_error(exc)


# ---------------------------------------------------------------------------
# Caller's own figures
# ---------------------------------------------------------------------------
@router.get("/me/profile")
def my_profile(
    store: RecordStore = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity),
    calendar: WeekCalendar = Depends(get_calendar),
):
    return unwrap(profile_service.get_profile(store, identity, calendar=calendar))


@router.get("/me/points")
def my_points(
    store: RecordStore = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity),
    calendar: WeekCalendar = Depends(get_calendar),
):
    user_id = _caller(identity)
    return {
        "user_id": user_id,
        "total_points": unwrap(ledger_service.calculate_user_total_points(store, user_id)),
        "current_streak": unwrap(
            ledger_service.calculate_user_weekly_streak(store, user_id, calendar=calendar)
        ),
        "longest_streak": unwrap(
            ledger_service.calculate_user_longest_streak(store, user_id, calendar=calendar)
        ),
    }


@router.get("/me/activity")
def my_activity(
    limit: int = Query(20, ge=1, le=200),
    store: RecordStore = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity),
):
    return unwrap(profile_service.get_recent_activity(store, identity, limit=limit))


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------
@router.post("/points/award", status_code=201)
def award_points(
    body: ManualAward,
    store: RecordStore = Depends(get_store),
    admin: str = Depends(get_current_admin),
):
    """Append a manual award or correction to a user's ledger."""
    note = body.note or f"by {admin}"
    return unwrap(ledger_service.award(
        store,
        body.user_id,
        body.amount,
        body.reason,
        event_id=body.event_id,
        note=note,
    ))


@router.get("/users/{user_id}/points")
def user_points(
    user_id: str,
    since: datetime | None = None,
    store: RecordStore = Depends(get_store),
    admin: str = Depends(get_current_admin),  # noqa: ARG001
):
    return {"user_id": user_id, "points": unwrap(ledger_service.sum_for(store, user_id, since))}
