"""
tally.services.profile_service — Profile & Activity Feed
=========================================================

Read-only views for the caller's own profile screen.  Profile rows are
written by the auth layer; this module only adds the ledger aggregates.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from tally.database.models import utcnow
from tally.database.store import RecordStore, one_of
from tally.engine.streaks import WeekCalendar
from tally.engine.tiers import tier_for
from tally.errors import ErrorCode, NotFoundError
from tally.identity import IdentityProvider, require_user
from tally.services.ledger_service import best_streak, entries_for, total_points, weekly_streak
from tally.services.result import as_result

logger = logging.getLogger(__name__)

MAX_ACTIVITY = 200


@as_result
def get_profile(
    store: RecordStore,
    identity: IdentityProvider,
    *,
    calendar: WeekCalendar,
    now: datetime | None = None,
) -> dict[str, Any]:
    user_id = require_user(identity)
    profile = store.select_one("profiles", {"id": user_id})
    if profile is None:
        raise NotFoundError(ErrorCode.PROFILE_NOT_FOUND)
    total = total_points(store, user_id)
    return {
        **profile,
        "total_points": total,
        "current_streak": weekly_streak(store, user_id, calendar, now or utcnow()),
        "longest_streak": best_streak(store, user_id, calendar),
        **tier_for(total).to_dict(),
    }


@as_result
def get_recent_activity(
    store: RecordStore,
    identity: IdentityProvider,
    *,
    limit: int = 20,
) -> list[dict[str, Any]]:
    """The caller's ledger entries, newest first, with event titles attached."""
    user_id = require_user(identity)
    entries = entries_for(store, [user_id], limit=max(1, min(limit, MAX_ACTIVITY)))
    event_ids = {e["event_id"] for e in entries if e["event_id"]}
    titles = {}
    if event_ids:
        titles = {
            e["id"]: e["title"]
            for e in store.select_many("events", {"id": one_of(event_ids)})
        }
    return [{**e, "event_title": titles.get(e["event_id"])} for e in entries]
