"""
tally.services.ledger_service — Points Ledger & Aggregates
===========================================================

The ``points_ledger`` collection is the only place points live.  Totals,
streaks and group progress are always recomputed from it; nothing caches
a balance.

Writes go through :func:`append_entry`, which validates the amount and
reason the same way for attendance awards and administrative awards.
Attendance reasons (``event_checkin`` / ``event_checkout``) are written
only by the attendance transitions; :func:`award` accepts
``manual_award`` and ``correction``.

Amount rules:
- zero is never a valid amount (the ledger would carry no information)
- negative amounts are corrections; any other reason must be positive
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from tally.database.models import LedgerReason, new_id, utcnow
from tally.database.store import RecordConflict, RecordStore, Row, between, gte, lt, one_of
from tally.engine.streaks import WeekCalendar, active_weeks, current_streak, longest_streak
from tally.errors import ErrorCode, NotFoundError, ValidationError
from tally.services.result import as_result

logger = logging.getLogger(__name__)

MANUAL_REASONS: frozenset[LedgerReason] = frozenset({
    LedgerReason.MANUAL_AWARD,
    LedgerReason.CORRECTION,
})


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------
def parse_reason(reason: Any) -> LedgerReason:
    try:
        return LedgerReason(reason)
    except ValueError:
        raise ValidationError(
            ErrorCode.INVALID_REASON, f"Unknown ledger reason: {reason!r}"
        ) from None


def validate_amount(amount: Any, reason: LedgerReason) -> int:
    if not isinstance(amount, int) or isinstance(amount, bool):
        raise ValidationError(ErrorCode.INVALID_AMOUNT, "Amount must be a whole number.")
    if amount == 0:
        raise ValidationError(ErrorCode.INVALID_AMOUNT, "Amount must not be zero.")
    if amount < 0 and reason is not LedgerReason.CORRECTION:
        raise ValidationError(
            ErrorCode.INVALID_AMOUNT, "Only corrections may deduct points."
        )
    return amount


# ---------------------------------------------------------------------------
# Internal building blocks (raise domain errors)
# ---------------------------------------------------------------------------
def append_entry(
    store: RecordStore,
    user_id: str,
    amount: int,
    reason: LedgerReason | str,
    *,
    event_id: str | None = None,
    note: str | None = None,
    now: datetime | None = None,
) -> Row:
    """Validate and insert one ledger row.  Never updates an existing row."""
    reason = parse_reason(reason)
    amount = validate_amount(amount, reason)
    entry = store.insert("points_ledger", {
        "id": new_id(),
        "user_id": user_id,
        "amount": amount,
        "reason": reason.value,
        "event_id": event_id,
        "note": note,
        "created_at": now or utcnow(),
    })
    logger.info(
        "Ledger +%d → user=%s reason=%s event=%s", amount, user_id, reason, event_id
    )
    return entry


def entries_for(
    store: RecordStore,
    user_ids: Iterable[str],
    since: datetime | None = None,
    until: datetime | None = None,
    limit: int | None = None,
) -> list[Row]:
    """Ledger rows for *user_ids* with ``since <= created_at < until``, newest first."""
    ids = list(user_ids)
    if not ids:
        return []
    flt: dict[str, Any] = {"user_id": one_of(ids)}
    if since is not None and until is not None:
        flt["created_at"] = between(since, until)
    elif since is not None:
        flt["created_at"] = gte(since)
    elif until is not None:
        flt["created_at"] = lt(until)
    return store.select_many("points_ledger", flt, limit=limit, order_by=("-created_at",))


def total_points(
    store: RecordStore,
    user_id: str,
    since: datetime | None = None,
    until: datetime | None = None,
) -> int:
    return sum(row["amount"] for row in entries_for(store, [user_id], since, until))


def points_by_user(
    store: RecordStore,
    user_ids: Iterable[str],
    since: datetime,
    until: datetime,
) -> dict[str, int]:
    """Signed sum per user over ``[since, until)``; users with no rows map to 0."""
    ids = list(user_ids)
    totals = dict.fromkeys(ids, 0)
    for row in entries_for(store, ids, since, until):
        totals[row["user_id"]] += row["amount"]
    return totals


def _active_weeks(store: RecordStore, user_id: str, calendar: WeekCalendar) -> list[int]:
    rows = store.select_many("points_ledger", {"user_id": user_id})
    return active_weeks(calendar, (row["created_at"] for row in rows))


def weekly_streak(
    store: RecordStore,
    user_id: str,
    calendar: WeekCalendar,
    now: datetime | None = None,
) -> int:
    now_week = calendar.week_index(now or utcnow())
    return current_streak(_active_weeks(store, user_id, calendar), now_week)


def best_streak(store: RecordStore, user_id: str, calendar: WeekCalendar) -> int:
    return longest_streak(_active_weeks(store, user_id, calendar))


# ---------------------------------------------------------------------------
# Public operations
# ---------------------------------------------------------------------------
@as_result
def award(
    store: RecordStore,
    user_id: str,
    amount: int,
    reason: LedgerReason | str,
    *,
    event_id: str | None = None,
    note: str | None = None,
    now: datetime | None = None,
) -> Row:
    """Append an administrative award or correction for *user_id*.

    An *event_id* must name an existing event (``EventNotFound``).
    """
    parsed = parse_reason(reason)
    if parsed not in MANUAL_REASONS:
        raise ValidationError(
            ErrorCode.INVALID_REASON,
            "Attendance points are awarded by checking in and out.",
        )
    if event_id is not None and store.select_one("events", {"id": event_id}) is None:
        raise NotFoundError(ErrorCode.EVENT_NOT_FOUND)
    try:
        return append_entry(
            store, user_id, amount, parsed, event_id=event_id, note=note, now=now
        )
    except RecordConflict as exc:
        # Manual reasons are outside the attendance unique index, so the
        # only constraint left is the event foreign key.
        logger.info("Award for %s rejected: %s", user_id, exc)
        raise NotFoundError(ErrorCode.EVENT_NOT_FOUND) from None


@as_result
def sum_for(store: RecordStore, user_id: str, since: datetime | None = None) -> int:
    """Signed sum of *user_id*'s entries, optionally from *since* onwards."""
    return total_points(store, user_id, since)


@as_result
def calculate_user_total_points(store: RecordStore, user_id: str) -> int:
    return total_points(store, user_id)


@as_result
def calculate_user_weekly_streak(
    store: RecordStore,
    user_id: str,
    *,
    calendar: WeekCalendar,
    now: datetime | None = None,
) -> int:
    return weekly_streak(store, user_id, calendar, now)


@as_result
def calculate_user_longest_streak(
    store: RecordStore,
    user_id: str,
    *,
    calendar: WeekCalendar,
) -> int:
    return best_streak(store, user_id, calendar)
