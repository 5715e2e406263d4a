"""
tally.services.group_service — Groups, Memberships & Leaderboards
==================================================================

A group is a set of volunteers pooling points towards a monthly goal.

Roles:
- ``admin``  — created the group or was promoted; edits, removes members,
  disbands
- ``member`` — joined with the invite code

Every points figure here is a window over the ledger: the calendar month
(in the deployment timezone) containing ``now``.  A member's points count
towards the group no matter which event earned them.

Invite codes are six upper-case alphanumerics.  Lookups upper-case the
input first, so ``ab12cd`` finds ``AB12CD``.
"""

from __future__ import annotations

import logging
import secrets
import string
from datetime import datetime
from typing import Any

from tally.database.models import GroupRole, new_id, utcnow
from tally.database.store import RecordConflict, RecordStore, Row, ne, one_of
from tally.engine.ranking import GoalProgress, Standing, goal_progress, rank_members
from tally.engine.streaks import WeekCalendar
from tally.errors import (
    AuthorizationError,
    BackendUnavailable,
    ErrorCode,
    NotFoundError,
    StateConflict,
    ValidationError,
)
from tally.identity import IdentityProvider, require_user
from tally.services.ledger_service import entries_for, points_by_user
from tally.services.result import as_result

logger = logging.getLogger(__name__)

DEFAULT_MONTHLY_GOAL = 10_000
INVITE_CODE_LENGTH = 6
INVITE_CODE_ALPHABET = string.ascii_uppercase + string.digits
_INVITE_CODE_ATTEMPTS = 5


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------
def _clean_name(name: Any) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError(ErrorCode.INVALID_NAME, "Group name must not be blank.")
    if len(name.strip()) > 100:
        raise ValidationError(ErrorCode.INVALID_NAME, "Group name is too long.")
    return name.strip()


def _clean_description(description: Any) -> str:
    if not isinstance(description, str) or not description.strip():
        raise ValidationError(ErrorCode.INVALID_DESCRIPTION)
    return description.strip()


def _clean_goal(goal: Any) -> int:
    if not isinstance(goal, int) or isinstance(goal, bool) or goal <= 0:
        raise ValidationError(ErrorCode.INVALID_GOAL)
    return goal


def generate_invite_code() -> str:
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(INVITE_CODE_LENGTH))


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------
def load_group(store: RecordStore, group_id: str, *, lock: bool = False) -> Row:
    """Fetch a group.  With *lock*, membership changes to it serialize on the row."""
    group = store.select_one("groups", {"id": group_id}, for_update=lock)
    if group is None:
        raise NotFoundError(ErrorCode.GROUP_NOT_FOUND)
    return group


def membership(store: RecordStore, group_id: str, user_id: str) -> Row | None:
    return store.select_one("group_members", {"group_id": group_id, "user_id": user_id})


def _require_member(store: RecordStore, group_id: str, user_id: str) -> Row:
    row = membership(store, group_id, user_id)
    if row is None:
        raise AuthorizationError(ErrorCode.FORBIDDEN, "Only members can view this group.")
    return row


def _require_admin(store: RecordStore, group_id: str, user_id: str) -> Row:
    row = membership(store, group_id, user_id)
    if row is None or row["role"] != GroupRole.ADMIN:
        raise AuthorizationError(ErrorCode.FORBIDDEN, "Only group admins can do this.")
    return row


def _members(store: RecordStore, group_id: str) -> list[Row]:
    return store.select_many("group_members", {"group_id": group_id}, order_by=("joined_at",))


def _display_names(store: RecordStore, user_ids: list[str]) -> dict[str, str]:
    if not user_ids:
        return {}
    rows = store.select_many("profiles", {"id": one_of(user_ids)})
    return {row["id"]: row["display_name"] for row in rows}


def _month_points(
    store: RecordStore,
    members: list[Row],
    calendar: WeekCalendar,
    now: datetime,
) -> dict[str, int]:
    start, end = calendar.month_window(now)
    return points_by_user(store, [m["user_id"] for m in members], start, end)


def _standings(
    store: RecordStore,
    group_id: str,
    calendar: WeekCalendar,
    now: datetime,
) -> tuple[list[Standing], dict[str, int]]:
    members = _members(store, group_id)
    points = _month_points(store, members, calendar, now)
    return rank_members(members, points), points


def _progress(group: Row, points: dict[str, int]) -> GoalProgress:
    return goal_progress(sum(points.values()), group["monthly_goal"])


# ---------------------------------------------------------------------------
# Public operations: lifecycle
# ---------------------------------------------------------------------------
@as_result
def create_group(
    store: RecordStore,
    identity: IdentityProvider,
    name: str,
    description: str,
    monthly_goal: int = DEFAULT_MONTHLY_GOAL,
    *,
    now: datetime | None = None,
) -> Row:
    """Create a group and make the caller its admin, atomically."""
    creator = require_user(identity)
    name = _clean_name(name)
    description = _clean_description(description)
    monthly_goal = _clean_goal(monthly_goal)
    now = now or utcnow()

    for attempt in range(1, _INVITE_CODE_ATTEMPTS + 1):
        code = generate_invite_code()
        try:
            with store.transaction() as tx:
                group = tx.insert("groups", {
                    "id": new_id(),
                    "name": name,
                    "description": description,
                    "monthly_goal": monthly_goal,
                    "invite_code": code,
                    "created_by": creator,
                    "created_at": now,
                    "updated_at": now,
                })
                tx.insert("group_members", {
                    "group_id": group["id"],
                    "user_id": creator,
                    "role": GroupRole.ADMIN.value,
                    "joined_at": now,
                })
        except RecordConflict as exc:
            # Group ids are fresh UUIDs, so a conflict on ``groups`` is the
            # invite code.
            if exc.collection != "groups":
                raise StateConflict(ErrorCode.ALREADY_MEMBER) from None
            logger.debug("Invite code collision on attempt %d", attempt)
            continue
        logger.info("Group %s (%r) created by %s", group["id"], name, creator)
        return group
    logger.warning("No free invite code after %d attempts", _INVITE_CODE_ATTEMPTS)
    raise BackendUnavailable("Could not allocate an invite code. Please retry.")


@as_result
def join_group(
    store: RecordStore,
    identity: IdentityProvider,
    invite_code: str,
    *,
    now: datetime | None = None,
) -> Row:
    """Join the group whose invite code matches, case-insensitively."""
    user_id = require_user(identity)
    code = invite_code.strip().upper() if isinstance(invite_code, str) else ""
    with store.transaction() as tx:
        group = tx.select_one("groups", {"invite_code": code}, for_update=True) if code else None
        if group is None:
            raise NotFoundError(ErrorCode.INVALID_INVITE_CODE)
        if membership(tx, group["id"], user_id) is not None:
            raise StateConflict(ErrorCode.ALREADY_MEMBER)
        try:
            row = tx.insert("group_members", {
                "group_id": group["id"],
                "user_id": user_id,
                "role": GroupRole.MEMBER.value,
                "joined_at": now or utcnow(),
            })
        except RecordConflict:
            raise StateConflict(ErrorCode.ALREADY_MEMBER) from None
    logger.info("User %s joined group %s", user_id, group["id"])
    return row


@as_result
def remove_member(
    store: RecordStore,
    identity: IdentityProvider,
    group_id: str,
    target_user_id: str,
) -> dict[str, Any]:
    acting = require_user(identity)
    with store.transaction() as tx:
        load_group(tx, group_id, lock=True)
        _require_admin(tx, group_id, acting)
        if target_user_id == acting:
            raise ValidationError(ErrorCode.CANNOT_REMOVE_SELF)
        removed = tx.delete("group_members", {"group_id": group_id, "user_id": target_user_id})
        if not removed:
            raise NotFoundError(ErrorCode.NOT_A_MEMBER)
    logger.info("User %s removed %s from group %s", acting, target_user_id, group_id)
    return {"group_id": group_id, "user_id": target_user_id}


@as_result
def update_group(
    store: RecordStore,
    identity: IdentityProvider,
    group_id: str,
    *,
    name: str | None = None,
    description: str | None = None,
    monthly_goal: int | None = None,
    now: datetime | None = None,
) -> Row:
    """Partially edit a group.  Fields left as ``None`` are unchanged."""
    acting = require_user(identity)
    group = load_group(store, group_id)
    _require_admin(store, group_id, acting)

    patch: dict[str, Any] = {}
    if name is not None:
        patch["name"] = _clean_name(name)
    if description is not None:
        patch["description"] = _clean_description(description)
    if monthly_goal is not None:
        patch["monthly_goal"] = _clean_goal(monthly_goal)
    if not patch:
        return group
    patch["updated_at"] = now or utcnow()

    updated = store.update("groups", {"id": group_id}, patch)
    if updated is None:
        raise NotFoundError(ErrorCode.GROUP_NOT_FOUND)
    logger.info("Group %s updated by %s: %s", group_id, acting, sorted(patch))
    return updated


@as_result
def leave_group(
    store: RecordStore,
    identity: IdentityProvider,
    group_id: str,
) -> dict[str, Any]:
    """Leave a group.  A sole member leaving disbands it.

    Each outcome is decided by a guarded ``DELETE``: an admin's row goes
    only while another admin remains, and the group goes only while the
    caller is its sole member.
    """
    user_id = require_user(identity)
    own_key = {"group_id": group_id, "user_id": user_id}
    others = {"group_id": group_id, "user_id": ne(user_id)}
    with store.transaction() as tx:
        load_group(tx, group_id, lock=True)
        own = membership(tx, group_id, user_id)
        if own is None:
            raise NotFoundError(ErrorCode.NOT_A_MEMBER)

        if tx.delete("group_members", own_key, forbid=others):
            tx.delete("groups", {"id": group_id})
            logger.info("Group %s disbanded as its last member %s left", group_id, user_id)
            return {"group_id": group_id, "disbanded": True}

        if own["role"] == GroupRole.ADMIN:
            other_admins = {**others, "role": GroupRole.ADMIN.value}
            left = tx.delete("group_members", own_key, require=other_admins)
        else:
            left = tx.delete("group_members", own_key)
        if not left:
            if membership(tx, group_id, user_id) is None:
                raise NotFoundError(ErrorCode.NOT_A_MEMBER)
            raise StateConflict(ErrorCode.LAST_ADMIN)
    logger.info("User %s left group %s", user_id, group_id)
    return {"group_id": group_id, "disbanded": False}


@as_result
def disband_group(
    store: RecordStore,
    identity: IdentityProvider,
    group_id: str,
) -> dict[str, Any]:
    acting = require_user(identity)
    with store.transaction() as tx:
        load_group(tx, group_id, lock=True)
        _require_admin(tx, group_id, acting)
        tx.delete("group_members", {"group_id": group_id})
        tx.delete("groups", {"id": group_id})
    logger.info("Group %s disbanded by %s", group_id, acting)
    return {"group_id": group_id, "disbanded": True}


# ---------------------------------------------------------------------------
# Public operations: standings & views
# ---------------------------------------------------------------------------
@as_result
def leaderboard(
    store: RecordStore,
    identity: IdentityProvider,
    group_id: str,
    *,
    calendar: WeekCalendar,
    now: datetime | None = None,
) -> list[dict[str, Any]]:
    """Members ranked by points in the current month window."""
    caller = require_user(identity)
    load_group(store, group_id)
    _require_member(store, group_id, caller)
    standings, _ = _standings(store, group_id, calendar, now or utcnow())
    names = _display_names(store, [s.user_id for s in standings])
    return [
        {**s.to_dict(), "display_name": names.get(s.user_id, s.user_id)}
        for s in standings
    ]


@as_result
def group_progress(
    store: RecordStore,
    identity: IdentityProvider,
    group_id: str,
    *,
    calendar: WeekCalendar,
    now: datetime | None = None,
) -> dict[str, Any]:
    caller = require_user(identity)
    group = load_group(store, group_id)
    _require_member(store, group_id, caller)
    points = _month_points(store, _members(store, group_id), calendar, now or utcnow())
    return _progress(group, points).to_dict()


@as_result
def get_user_groups(
    store: RecordStore,
    identity: IdentityProvider,
    *,
    calendar: WeekCalendar,
    now: datetime | None = None,
) -> list[dict[str, Any]]:
    """The caller's groups with role, member count and this month's points."""
    user_id = require_user(identity)
    now = now or utcnow()
    own = {m["group_id"]: m for m in store.select_many("group_members", {"user_id": user_id})}
    if not own:
        return []
    groups = store.select_many("groups", {"id": one_of(own)}, order_by=("name",))
    result = []
    for group in groups:
        members = _members(store, group["id"])
        points = _month_points(store, members, calendar, now)
        result.append({
            "group": group,
            "role": own[group["id"]]["role"],
            "member_count": len(members),
            "current_points": sum(points.values()),
        })
    return result


@as_result
def get_group_members(
    store: RecordStore,
    identity: IdentityProvider,
    group_id: str,
) -> list[dict[str, Any]]:
    """Roster with admins first, then by display name."""
    caller = require_user(identity)
    load_group(store, group_id)
    _require_member(store, group_id, caller)
    members = _members(store, group_id)
    names = _display_names(store, [m["user_id"] for m in members])
    roster = [
        {
            "user_id": m["user_id"],
            "display_name": names.get(m["user_id"], m["user_id"]),
            "role": m["role"],
            "joined_at": m["joined_at"],
        }
        for m in members
    ]
    roster.sort(key=lambda r: (r["role"] != GroupRole.ADMIN, r["display_name"].casefold()))
    return roster


@as_result
def get_group_dashboard(
    store: RecordStore,
    identity: IdentityProvider,
    group_id: str,
    *,
    calendar: WeekCalendar,
    now: datetime | None = None,
    activity_limit: int = 10,
) -> dict[str, Any]:
    """Everything the group screen shows, in one read."""
    caller = require_user(identity)
    group = load_group(store, group_id)
    own = _require_member(store, group_id, caller)
    now = now or utcnow()

    standings, points = _standings(store, group_id, calendar, now)
    names = _display_names(store, [s.user_id for s in standings])
    start, end = calendar.month_window(now)
    activity = entries_for(store, list(points), start, end, limit=activity_limit)

    return {
        "group": group,
        "invite_code": group["invite_code"],
        "role": own["role"],
        "progress": _progress(group, points).to_dict(),
        "leaderboard": [
            {**s.to_dict(), "display_name": names.get(s.user_id, s.user_id)}
            for s in standings
        ],
        "recent_activity": [
            {**row, "display_name": names.get(row["user_id"], row["user_id"])}
            for row in activity
        ],
    }
