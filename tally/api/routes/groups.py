"""
tally.api.routes.groups — Group, membership and leaderboard endpoints
======================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from tally.api.deps import get_calendar, get_identity, get_store, unwrap
from tally.database.store import RecordStore
from tally.engine.streaks import WeekCalendar
from tally.identity import IdentityProvider
from tally.services import group_service

router = APIRouter(prefix="/groups", tags=["groups"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class GroupCreate(BaseModel):
    name: str
    description: str
    monthly_goal: int = group_service.DEFAULT_MONTHLY_GOAL


class GroupUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    monthly_goal: int | None = None


class GroupJoin(BaseModel):
    invite_code: str


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------
@router.post("", status_code=201)
def create_group(
    body: GroupCreate,
    store: RecordStore = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity),
):
    return unwrap(group_service.create_group(
        store, identity, body.name, body.description, body.monthly_goal
    ))


@router.post("/join", status_code=201)
def join_group(
    body: GroupJoin,
    store: RecordStore = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity),
):
    return unwrap(group_service.join_group(store, identity, body.invite_code))


@router.get("")
def my_groups(
    store: RecordStore = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity),
    calendar: WeekCalendar = Depends(get_calendar),
):
    return unwrap(group_service.get_user_groups(store, identity, calendar=calendar))


@router.patch("/{group_id}")
def update_group(
    group_id: str,
    body: GroupUpdate,
    store: RecordStore = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity),
):
    return unwrap(group_service.update_group(
        store, identity, group_id, **body.model_dump(exclude_none=True)
    ))


@router.delete("/{group_id}")
def disband_group(
    group_id: str,
    store: RecordStore = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity),
):
    return unwrap(group_service.disband_group(store, identity, group_id))


@router.post("/{group_id}/leave")
def leave_group(
    group_id: str,
    store: RecordStore = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity),
):
    return unwrap(group_service.leave_group(store, identity, group_id))


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------
@router.get("/{group_id}/members")
def group_members(
    group_id: str,
    store: RecordStore = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity),
):
    return unwrap(group_service.get_group_members(store, identity, group_id))


@router.delete("/{group_id}/members/{user_id}")
def remove_member(
    group_id: str,
    user_id: str,
    store: RecordStore = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity),
):
    return unwrap(group_service.remove_member(store, identity, group_id, user_id))


# ---------------------------------------------------------------------------
# Standings
# ---------------------------------------------------------------------------
@router.get("/{group_id}")
def group_dashboard(
    group_id: str,
    store: RecordStore = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity),
    calendar: WeekCalendar = Depends(get_calendar),
):
    return unwrap(group_service.get_group_dashboard(store, identity, group_id, calendar=calendar))


@router.get("/{group_id}/leaderboard")
def group_leaderboard(
    group_id: str,
    store: RecordStore = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity),
    calendar: WeekCalendar = Depends(get_calendar),
):
    return unwrap(group_service.leaderboard(store, identity, group_id, calendar=calendar))


@router.get("/{group_id}/progress")
def group_progress(
    group_id: str,
    store: RecordStore = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity),
    calendar: WeekCalendar = Depends(get_calendar),
):
    return unwrap(group_service.group_progress(store, identity, group_id, calendar=calendar))
